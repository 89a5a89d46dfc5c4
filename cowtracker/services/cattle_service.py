from datetime import datetime, timezone

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from cowtracker.cache.decorators import CATTLE, FARMS, async_cached, invalidates, response_key
from cowtracker.models import Cattle, CattleCreate, CattleUpdate


class CattleService:
    @staticmethod
    @async_cached(
        lambda auth_id, query, farm_id=None, *_, **__: response_key(
            CATTLE, auth_id, farm_id if farm_id is not None else "all", query=query
        ),
        ttl=600,
    )
    async def list_cattle(
        auth_id: str,
        query: dict,
        farm_id: int | None,
        db: AsyncSession,
        skip: int = 0,
        limit: int = 100,
    ):
        statement = select(Cattle)
        if farm_id is not None:
            statement = statement.where(Cattle.id_finca == farm_id)
        statement = statement.offset(skip).limit(limit).order_by(Cattle.id_ganado)

        result = await db.exec(statement)
        return result.all()

    @staticmethod
    async def get_cattle(cattle_id: int, db: AsyncSession):
        return await db.get(Cattle, cattle_id)

    @staticmethod
    @invalidates(CATTLE, FARMS)
    async def create_cattle(cattle_data: CattleCreate, db: AsyncSession):
        cattle = Cattle.model_validate(cattle_data)
        db.add(cattle)
        await db.commit()
        await db.refresh(cattle)
        return cattle

    @staticmethod
    @invalidates(CATTLE, FARMS)
    async def update_cattle(cattle_id: int, cattle_data: CattleUpdate, db: AsyncSession):
        cattle = await db.get(Cattle, cattle_id)
        if not cattle:
            return None
        cattle.sqlmodel_update(cattle_data.model_dump(exclude_unset=True))
        cattle.updated_at = datetime.now(timezone.utc)
        await db.commit()
        await db.refresh(cattle)
        return cattle

    @staticmethod
    @invalidates(CATTLE, FARMS)
    async def delete_cattle(cattle_id: int, db: AsyncSession):
        cattle = await db.get(Cattle, cattle_id)
        if not cattle:
            return False
        await db.delete(cattle)
        await db.commit()
        return True
