"""
Dashboard Service

Tenant-level counters and pipeline distribution for the home screen.
"""

from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel

from ..matching.service import MatchingService, RecentMatchResponse
from ..pipeline.db_service import StageDBService
from ..properties.models import PropertyStatus


class DashboardStats(BaseModel):
    total_clients: int
    total_properties: int
    active_properties: int
    total_matches: int


class StageCount(BaseModel):
    stage_id: str
    stage_name: str
    stage_position: int
    is_final: bool
    client_count: int


class DashboardService:
    def __init__(self, db: AsyncIOMotorDatabase, tenant_id: str):
        self.db = db
        self.tenant_id = tenant_id
        self.matching_service = MatchingService(db, tenant_id)

    async def stats(self) -> DashboardStats:
        live = {"tenant_id": self.tenant_id, "deleted_at": None}
        return DashboardStats(
            total_clients=await self.db["clients"].count_documents(live),
            total_properties=await self.db["properties"].count_documents(live),
            active_properties=await self.db["properties"].count_documents(
                {**live, "status": PropertyStatus.ACTIVE}
            ),
            total_matches=await self.matching_service.count_matches(),
        )

    async def clients_by_stage(self) -> list[StageCount]:
        stages = await StageDBService(self.db).list_stages(self.tenant_id)
        counts = []
        for stage in stages:
            client_count = await self.db["clients"].count_documents(
                {"tenant_id": self.tenant_id, "stage_id": stage.stage_id, "deleted_at": None}
            )
            counts.append(
                StageCount(
                    stage_id=stage.stage_id,
                    stage_name=stage.name,
                    stage_position=stage.position,
                    is_final=stage.is_final,
                    client_count=client_count,
                )
            )
        return counts

    async def recent_matches(self, limit: int = 5) -> list[RecentMatchResponse]:
        return await self.matching_service.recent_matches(limit)
