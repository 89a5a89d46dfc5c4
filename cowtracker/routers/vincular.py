from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel
from sqlmodel.ext.asyncio.session import AsyncSession

from cowtracker.auth import CurrentUserDep
from cowtracker.core.config import get_settings
from cowtracker.core.errors import InvalidArgument, NotFound
from cowtracker.database import get_db
from cowtracker.services.binding_codes import BindingCodeManager

router = APIRouter(prefix="/vincular", tags=["vincular"])


class GenerateCodeRequest(BaseModel):
    idFinca: int | None = None
    tipo: str | None = None
    duracionMinutos: int | None = None


class RedeemCodeRequest(BaseModel):
    codigo: str | None = None


def get_binding_codes(request: Request) -> BindingCodeManager:
    return request.app.state.binding_codes


@router.post("/generar", status_code=status.HTTP_201_CREATED)
async def generate_code(
    body: GenerateCodeRequest,
    user: CurrentUserDep,
    codes: BindingCodeManager = Depends(get_binding_codes),
    db: AsyncSession = Depends(get_db),
):
    """Issue a binding code for a worker or veterinarian"""
    if not body.idFinca or not body.tipo:
        raise InvalidArgument("idFinca and tipo (worker or veterinarian) are required")

    duration = body.duracionMinutos
    if duration is None:
        duration = get_settings().binding_code_default_minutes
    entry = await codes.issue(body.idFinca, body.tipo, duration, db=db)
    return {
        "success": True,
        "data": {
            "codigo": entry.code,
            "idFinca": entry.farm_id,
            "tipo": entry.role_type.value,
            "expiraEn": entry.expires_at,
        },
    }


@router.post("/verificar")
async def redeem_code(
    body: RedeemCodeRequest,
    user: CurrentUserDep,
    codes: BindingCodeManager = Depends(get_binding_codes),
    db: AsyncSession = Depends(get_db),
):
    """Redeem a binding code for the authenticated caller"""
    if not body.codigo:
        raise InvalidArgument("codigo is required")

    result = await codes.redeem(body.codigo, user.uid, db=db)
    return {
        "success": True,
        "message": "Binding successful",
        "data": {
            "idUsuario": result["user_id"],
            "idFinca": result["farm_id"],
            "tipo": result["role_type"].value,
            "vinculacion": result["membership"],
        },
    }


@router.get("/finca/{idFinca}")
async def list_codes(
    idFinca: int,
    user: CurrentUserDep,
    codes: BindingCodeManager = Depends(get_binding_codes),
):
    return {
        "success": True,
        "data": [
            {
                "codigo": entry.code,
                "tipo": entry.role_type.value,
                "creado": entry.created_at,
                "expira": entry.expires_at,
            }
            for entry in codes.list_active(idFinca)
        ],
    }


@router.delete("/codigo/{codigo}/finca/{idFinca}")
async def revoke_code(
    codigo: str,
    idFinca: int,
    user: CurrentUserDep,
    codes: BindingCodeManager = Depends(get_binding_codes),
):
    if not codes.revoke(codigo, idFinca):
        raise NotFound("Code not found or it does not belong to the given farm")
    return {"success": True, "message": "Code deleted"}
