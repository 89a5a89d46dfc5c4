from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlmodel.ext.asyncio.session import AsyncSession

from cowtracker.auth import CurrentUserDep
from cowtracker.database import get_db
from cowtracker.models import UserResponse, UserUpdate
from cowtracker.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["users"])


def _no_profile():
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail="No profile registered for this account",
    )


@router.get("/profile", response_model=UserResponse)
async def get_profile(request: Request, user: CurrentUserDep, db: AsyncSession = Depends(get_db)):
    profile = await UserService.get_profile(user.uid, dict(request.query_params), db)
    if not profile:
        raise _no_profile()
    return profile


@router.put("/profile", response_model=UserResponse)
async def update_profile(
    user_data: UserUpdate, user: CurrentUserDep, db: AsyncSession = Depends(get_db)
):
    profile = await UserService.update_profile(user.uid, user_data, db)
    if not profile:
        raise _no_profile()
    return profile
