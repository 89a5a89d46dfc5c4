from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from cowtracker.cache.decorators import USER, async_cached, invalidates, response_key
from cowtracker.models import User, UserUpdate


class UserService:
    @staticmethod
    async def get_by_auth_id(auth_id: str, db: AsyncSession) -> User | None:
        """Resolve the usuario row for an identity-provider user id."""
        result = await db.exec(select(User).where(User.id_autentificar == auth_id))
        return result.first()

    @staticmethod
    @async_cached(
        lambda auth_id, query, *_, **__: response_key(USER, auth_id, query=query),
        ttl=1800,
    )
    async def get_profile(auth_id: str, query: dict, db: AsyncSession):
        return await UserService.get_by_auth_id(auth_id, db)

    @staticmethod
    @invalidates(USER)
    async def update_profile(auth_id: str, user_data: UserUpdate, db: AsyncSession):
        user = await UserService.get_by_auth_id(auth_id, db)
        if not user:
            return None
        user.sqlmodel_update(user_data.model_dump(exclude_unset=True))
        await db.commit()
        await db.refresh(user)
        return user
