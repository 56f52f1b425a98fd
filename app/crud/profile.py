from datetime import datetime
from typing import Dict, List, Optional
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from app.db.models import ClientProfile, ClientType, DesignerProfile

async def count_clients(db: AsyncSession, created_since: Optional[datetime] = None) -> int:
    query = select(func.count()).select_from(ClientProfile)
    if created_since is not None:
        query = query.where(ClientProfile.created_at >= created_since)
    return (await db.execute(query)).scalar_one()

async def count_clients_by_type(db: AsyncSession) -> Dict[ClientType, int]:
    result = await db.execute(
        select(ClientProfile.client_type, func.count(ClientProfile.id)).group_by(ClientProfile.client_type)
    )
    return {ClientType(client_type): count for client_type, count in result.all()}

async def count_designers(db: AsyncSession, is_admin: bool) -> int:
    result = await db.execute(
        select(func.count()).select_from(DesignerProfile).where(DesignerProfile.is_admin.is_(is_admin))
    )
    return result.scalar_one()

async def get_designers(db: AsyncSession) -> List[DesignerProfile]:
    result = await db.execute(select(DesignerProfile).order_by(DesignerProfile.name))
    return list(result.scalars().all())
