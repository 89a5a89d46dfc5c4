from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from cowtracker.cache.decorators import FARMS, USER, invalidates
from cowtracker.core.errors import Forbidden, NotFound
from cowtracker.models import Farm, FarmMembership, User


class MembershipService:
    @staticmethod
    async def link(user_id: int, farm_id: int, db: AsyncSession) -> FarmMembership:
        """Upsert the usuario_finca row; an existing link is returned unchanged."""
        query = select(FarmMembership).where(
            FarmMembership.id_usuario == user_id, FarmMembership.id_finca == farm_id
        )
        result = await db.exec(query)
        existing = result.first()
        if existing:
            return existing

        membership = FarmMembership(id_usuario=user_id, id_finca=farm_id)
        db.add(membership)
        await db.commit()
        await db.refresh(membership)
        return membership

    @staticmethod
    @invalidates(FARMS, USER)
    async def associate(user_id: int, farm_id: int, db: AsyncSession) -> FarmMembership:
        return await MembershipService.link(user_id, farm_id, db)

    @staticmethod
    @invalidates(FARMS, USER)
    async def dissociate(user_id: int, farm_id: int, db: AsyncSession) -> bool:
        query = select(FarmMembership).where(
            FarmMembership.id_usuario == user_id, FarmMembership.id_finca == farm_id
        )
        result = await db.exec(query)
        membership = result.first()
        if not membership:
            return False
        await db.delete(membership)
        await db.commit()
        return True

    @staticmethod
    @invalidates(FARMS, USER)
    async def add_with_role(
        user_id: int, farm_id: int, role_id: int, db: AsyncSession
    ) -> FarmMembership:
        """Link a user to a farm, only if they hold ``role_id``."""
        user = await db.get(User, user_id)
        if user is None:
            raise NotFound(f"User {user_id} does not exist")
        if user.id_rol != role_id:
            raise Forbidden(f"User {user_id} does not hold the required role")
        return await MembershipService.link(user_id, farm_id, db)

    @staticmethod
    async def remove_with_role(user_id: int, farm_id: int, role_id: int, db: AsyncSession) -> bool:
        """Unlink a user holding ``role_id``; False if there is no such member."""
        user = await db.get(User, user_id)
        if user is None or user.id_rol != role_id:
            return False
        return await MembershipService.dissociate(user_id, farm_id, db)

    @staticmethod
    async def farms_of_user(user_id: int, db: AsyncSession):
        query = (
            select(Farm)
            .join(FarmMembership, FarmMembership.id_finca == Farm.id_finca)
            .where(FarmMembership.id_usuario == user_id)
            .order_by(Farm.id_finca)
        )
        result = await db.exec(query)
        return result.all()

    @staticmethod
    async def users_of_farm(farm_id: int, db: AsyncSession, role_id: int | None = None):
        query = (
            select(User)
            .join(FarmMembership, FarmMembership.id_usuario == User.id_usuario)
            .where(FarmMembership.id_finca == farm_id)
        )
        if role_id is not None:
            query = query.where(User.id_rol == role_id)
        result = await db.exec(query.order_by(User.id_usuario))
        return result.all()
