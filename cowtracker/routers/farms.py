from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlmodel.ext.asyncio.session import AsyncSession

from cowtracker.auth import CurrentUserDep
from cowtracker.core.config import get_settings
from cowtracker.database import get_db
from cowtracker.models import (
    CattleResponse,
    FarmCreate,
    FarmMemberRequest,
    FarmResponse,
    FarmUpdate,
    MembershipResponse,
    UserResponse,
)
from cowtracker.services.farm_service import FarmService
from cowtracker.services.membership_service import MembershipService

router = APIRouter(prefix="/farms", tags=["farms"])


def _not_found(farm_id: int):
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Farm with id {farm_id} not found",
    )


@router.get("/", response_model=list[FarmResponse])
async def get_farms(
    request: Request,
    user: CurrentUserDep,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Farms the caller belongs to"""
    query = dict(request.query_params)
    return await FarmService.list_farms(user.uid, query, db, skip=skip, limit=limit)


@router.post("/", response_model=FarmResponse, status_code=status.HTTP_201_CREATED)
async def create_farm(
    farm_data: FarmCreate, user: CurrentUserDep, db: AsyncSession = Depends(get_db)
):
    """Create a farm; the caller becomes a member"""
    return await FarmService.create_farm(farm_data, user.user, db)


@router.get("/{farm_id}", response_model=FarmResponse)
async def get_farm(farm_id: int, user: CurrentUserDep, db: AsyncSession = Depends(get_db)):
    farm = await FarmService.get_farm(farm_id, db)
    if not farm:
        raise _not_found(farm_id)
    return farm


@router.put("/{farm_id}", response_model=FarmResponse)
async def update_farm(
    farm_id: int,
    farm_data: FarmUpdate,
    user: CurrentUserDep,
    db: AsyncSession = Depends(get_db),
):
    farm = await FarmService.update_farm(farm_id, farm_data, db)
    if not farm:
        raise _not_found(farm_id)
    return farm


@router.delete("/{farm_id}")
async def delete_farm(farm_id: int, user: CurrentUserDep, db: AsyncSession = Depends(get_db)):
    if not await FarmService.delete_farm(farm_id, db):
        raise _not_found(farm_id)
    return {"success": True, "message": "Farm deleted"}


@router.get("/{farm_id}/cattle", response_model=list[CattleResponse])
async def get_farm_cattle(
    farm_id: int, request: Request, user: CurrentUserDep, db: AsyncSession = Depends(get_db)
):
    query = dict(request.query_params)
    return await FarmService.farm_cattle(farm_id, user.uid, query, db)


@router.get("/{farm_id}/workers", response_model=list[UserResponse])
async def get_farm_workers(
    farm_id: int, user: CurrentUserDep, db: AsyncSession = Depends(get_db)
):
    role_id = get_settings().worker_role_id
    return await MembershipService.users_of_farm(farm_id, db, role_id=role_id)


@router.get("/{farm_id}/veterinarians", response_model=list[UserResponse])
async def get_farm_veterinarians(
    farm_id: int, user: CurrentUserDep, db: AsyncSession = Depends(get_db)
):
    role_id = get_settings().veterinarian_role_id
    return await MembershipService.users_of_farm(farm_id, db, role_id=role_id)


async def _add_member(farm_id: int, body: FarmMemberRequest, role_id: int, db: AsyncSession):
    if not await FarmService.get_farm(farm_id, db):
        raise _not_found(farm_id)
    return await MembershipService.add_with_role(body.id_usuario, farm_id, role_id, db)


async def _remove_member(farm_id: int, user_id: int, role_id: int, db: AsyncSession):
    if not await MembershipService.remove_with_role(user_id, farm_id, role_id, db):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User {user_id} is not a member of farm {farm_id} with that role",
        )
    return {"success": True, "message": "Member removed from farm"}


@router.post(
    "/{farm_id}/workers",
    response_model=MembershipResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_farm_worker(
    farm_id: int,
    body: FarmMemberRequest,
    user: CurrentUserDep,
    db: AsyncSession = Depends(get_db),
):
    """Link a worker to the farm"""
    return await _add_member(farm_id, body, get_settings().worker_role_id, db)


@router.delete("/{farm_id}/workers/{worker_id}")
async def remove_farm_worker(
    farm_id: int, worker_id: int, user: CurrentUserDep, db: AsyncSession = Depends(get_db)
):
    return await _remove_member(farm_id, worker_id, get_settings().worker_role_id, db)


@router.post(
    "/{farm_id}/veterinarians",
    response_model=MembershipResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_farm_veterinarian(
    farm_id: int,
    body: FarmMemberRequest,
    user: CurrentUserDep,
    db: AsyncSession = Depends(get_db),
):
    """Link a veterinarian to the farm"""
    return await _add_member(farm_id, body, get_settings().veterinarian_role_id, db)


@router.delete("/{farm_id}/veterinarians/{vet_id}")
async def remove_farm_veterinarian(
    farm_id: int, vet_id: int, user: CurrentUserDep, db: AsyncSession = Depends(get_db)
):
    return await _remove_member(farm_id, vet_id, get_settings().veterinarian_role_id, db)
