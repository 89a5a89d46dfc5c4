from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel.ext.asyncio.session import AsyncSession

from cowtracker.auth import CurrentUserDep
from cowtracker.database import get_db
from cowtracker.models import FarmResponse, MembershipRequest, MembershipResponse, UserResponse
from cowtracker.services.membership_service import MembershipService

router = APIRouter(prefix="/usuario-finca", tags=["memberships"])


@router.post("/asociar", response_model=MembershipResponse, status_code=status.HTTP_201_CREATED)
async def associate(
    body: MembershipRequest, user: CurrentUserDep, db: AsyncSession = Depends(get_db)
):
    """Link a user to a farm"""
    return await MembershipService.associate(body.id_usuario, body.id_finca, db)


@router.post("/desasociar")
async def dissociate(
    body: MembershipRequest, user: CurrentUserDep, db: AsyncSession = Depends(get_db)
):
    """Remove a user's link to a farm"""
    if not await MembershipService.dissociate(body.id_usuario, body.id_finca, db):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User {body.id_usuario} is not linked to farm {body.id_finca}",
        )
    return {"success": True, "message": "Membership removed"}


@router.get("/usuario/{id_usuario}", response_model=list[FarmResponse])
async def farms_of_user(id_usuario: int, user: CurrentUserDep, db: AsyncSession = Depends(get_db)):
    return await MembershipService.farms_of_user(id_usuario, db)


@router.get("/finca/{id_finca}", response_model=list[UserResponse])
async def users_of_farm(id_finca: int, user: CurrentUserDep, db: AsyncSession = Depends(get_db)):
    return await MembershipService.users_of_farm(id_finca, db)
