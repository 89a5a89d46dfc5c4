from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlmodel.ext.asyncio.session import AsyncSession

from cowtracker.auth import CurrentUserDep
from cowtracker.database import get_db
from cowtracker.models import CattleCreate, CattleResponse, CattleUpdate

from cowtracker.services.cattle_service import CattleService

router = APIRouter(prefix="/cattle", tags=["cattle"])


@router.post("/", response_model=CattleResponse, status_code=status.HTTP_201_CREATED)
async def create_cattle(
    cattle_data: CattleCreate, user: CurrentUserDep, db: AsyncSession = Depends(get_db)
):
    """Register an animal"""
    return await CattleService.create_cattle(cattle_data, db)


@router.get("/", response_model=list[CattleResponse])
async def get_cattle_list(
    request: Request,
    user: CurrentUserDep,
    farmId: int | None = None,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    query = dict(request.query_params)
    return await CattleService.list_cattle(user.uid, query, farmId, db, skip=skip, limit=limit)


@router.get("/{cattle_id}", response_model=CattleResponse)
async def get_cattle(cattle_id: int, user: CurrentUserDep, db: AsyncSession = Depends(get_db)):
    """Get a specific animal by ID"""

    cattle = await CattleService.get_cattle(cattle_id, db)

    if not cattle:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Cattle with id {cattle_id} not found",
        )
    return cattle


@router.put("/{cattle_id}", response_model=CattleResponse)
async def update_cattle(
    cattle_id: int,
    cattle_data: CattleUpdate,
    user: CurrentUserDep,
    db: AsyncSession = Depends(get_db),
):
    cattle = await CattleService.update_cattle(cattle_id, cattle_data, db)
    if not cattle:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Cattle with id {cattle_id} not found",
        )
    return cattle


@router.delete("/{cattle_id}")
async def delete_cattle(cattle_id: int, user: CurrentUserDep, db: AsyncSession = Depends(get_db)):
    """Delete an animal"""
    result = await CattleService.delete_cattle(cattle_id, db)

    if not result:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Cattle with id {cattle_id} not found",
        )
    return {"success": True, "message": "Cattle deleted"}
