from datetime import datetime, timezone

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from cowtracker.cache.decorators import (
    CATTLE,
    FARMS,
    USER,
    async_cached,
    invalidates,
    response_key,
)
from cowtracker.models import Cattle, Farm, FarmCreate, FarmMembership, FarmUpdate, User
from cowtracker.services.membership_service import MembershipService

import logging

logger = logging.getLogger(__name__)


class FarmService:
    @staticmethod
    async def get_farm(farm_id: int, db: AsyncSession) -> Farm | None:
        return await db.get(Farm, farm_id)

    @staticmethod
    @async_cached(
        lambda auth_id, query, *_, **__: response_key(FARMS, auth_id, query=query),
        ttl=900,
    )
    async def list_farms(
        auth_id: str, query: dict, db: AsyncSession, skip: int = 0, limit: int = 100
    ):
        """Farms the caller is a member of."""
        statement = (
            select(Farm)
            .join(FarmMembership, FarmMembership.id_finca == Farm.id_finca)
            .join(User, User.id_usuario == FarmMembership.id_usuario)
            .where(User.id_autentificar == auth_id)
            .order_by(Farm.id_finca)
            .offset(skip)
            .limit(limit)
        )
        result = await db.exec(statement)
        return result.all()

    @staticmethod
    @invalidates(FARMS, CATTLE, USER)
    async def create_farm(farm_data: FarmCreate, owner: User | None, db: AsyncSession):
        farm = Farm.model_validate(farm_data)
        db.add(farm)
        await db.commit()
        await db.refresh(farm)

        if owner is not None:
            await MembershipService.link(owner.id_usuario, farm.id_finca, db)
        else:
            logger.warning(f"Farm {farm.id_finca} created without an owner membership")
        return farm

    @staticmethod
    @invalidates(FARMS, CATTLE, USER)
    async def update_farm(farm_id: int, farm_data: FarmUpdate, db: AsyncSession):
        farm = await db.get(Farm, farm_id)
        if not farm:
            return None
        farm.sqlmodel_update(farm_data.model_dump(exclude_unset=True))
        farm.updated_at = datetime.now(timezone.utc)
        await db.commit()
        await db.refresh(farm)
        return farm

    @staticmethod
    @invalidates(FARMS, CATTLE, USER)
    async def delete_farm(farm_id: int, db: AsyncSession):
        farm = await db.get(Farm, farm_id)
        if not farm:
            return False

        memberships = await db.exec(
            select(FarmMembership).where(FarmMembership.id_finca == farm_id)
        )
        for membership in memberships.all():
            await db.delete(membership)

        # cattle outlive their farm, unassigned
        cattle = await db.exec(select(Cattle).where(Cattle.id_finca == farm_id))
        for animal in cattle.all():
            animal.id_finca = None

        await db.delete(farm)
        await db.commit()
        return True

    @staticmethod
    @async_cached(
        lambda farm_id, auth_id, query, *_, **__: response_key(
            CATTLE, auth_id, farm_id, query=query
        ),
        ttl=600,
    )
    async def farm_cattle(farm_id: int, auth_id: str, query: dict, db: AsyncSession):
        result = await db.exec(
            select(Cattle).where(Cattle.id_finca == farm_id).order_by(Cattle.id_ganado)
        )
        return result.all()
