"""
Stage Database Service

CRUD operations for pipeline stages in tenant databases.
"""

from datetime import datetime
from typing import Optional
from uuid import uuid4

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, IndexModel

from ..constants import DEFAULT_STAGES
from .models import ClientStage, StageCreate


class StageDBService:
    """
    Database service for client stages.

    Operates on tenant-specific databases.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["client_stages"]

    async def ensure_indexes(self) -> None:
        indexes = [
            IndexModel([("stage_id", ASCENDING)], unique=True),
            IndexModel([("tenant_id", ASCENDING), ("position", ASCENDING)]),
        ]
        await self.collection.create_indexes(indexes)

    async def seed_default_stages(self, tenant_id: str) -> list[ClientStage]:
        """Create the default pipeline of a new tenant."""
        now = datetime.utcnow()
        stages = [
            ClientStage(
                stage_id=_new_stage_id(),
                tenant_id=tenant_id,
                created_at=now,
                **stage,
            )
            for stage in DEFAULT_STAGES
        ]
        await self.collection.insert_many([stage.model_dump() for stage in stages])
        return stages

    async def list_stages(self, tenant_id: str) -> list[ClientStage]:
        cursor = self.collection.find({"tenant_id": tenant_id}).sort("position", ASCENDING)

        stages = []
        async for stage_dict in cursor:
            stages.append(ClientStage(**stage_dict))

        return stages

    async def get_stage(self, stage_id: str, tenant_id: str) -> Optional[ClientStage]:
        stage_dict = await self.collection.find_one({"stage_id": stage_id, "tenant_id": tenant_id})
        if stage_dict:
            return ClientStage(**stage_dict)
        return None

    async def first_stage(self, tenant_id: str) -> Optional[ClientStage]:
        """Stage with the lowest position; new clients land here."""
        cursor = self.collection.find({"tenant_id": tenant_id}).sort("position", ASCENDING).limit(1)
        async for stage_dict in cursor:
            return ClientStage(**stage_dict)
        return None

    async def create_stage(self, tenant_id: str, stage_create: StageCreate) -> ClientStage:
        position = stage_create.position
        if position is None:
            position = await self.collection.count_documents({"tenant_id": tenant_id}) + 1

        stage = ClientStage(
            stage_id=_new_stage_id(),
            tenant_id=tenant_id,
            name=stage_create.name.strip(),
            position=position,
            is_final=stage_create.is_final,
        )
        await self.collection.insert_one(stage.model_dump())
        return stage

    async def update_stage(self, stage_id: str, tenant_id: str, update_data: dict) -> Optional[ClientStage]:
        result = await self.collection.find_one_and_update(
            {"stage_id": stage_id, "tenant_id": tenant_id},
            {"$set": update_data},
            return_document=True,
        )
        if result:
            return ClientStage(**result)
        return None

    async def reorder_stages(self, tenant_id: str, stage_ids: list[str]) -> list[ClientStage]:
        """
        Assign positions 1..n following ``stage_ids``.

        Raises:
            ValueError: If ``stage_ids`` is not a permutation of the tenant's stages
        """
        existing = {stage.stage_id for stage in await self.list_stages(tenant_id)}
        if len(stage_ids) != len(set(stage_ids)) or set(stage_ids) != existing:
            raise ValueError("Stage order must list every stage exactly once")

        for position, stage_id in enumerate(stage_ids, start=1):
            await self.collection.update_one(
                {"stage_id": stage_id, "tenant_id": tenant_id},
                {"$set": {"position": position}},
            )

        return await self.list_stages(tenant_id)

    async def delete_stage(self, stage_id: str, tenant_id: str) -> bool:
        """
        Delete a stage that no client references.

        Raises:
            ValueError: If non-deleted clients are still in the stage
        """
        in_use = await self.db["clients"].count_documents(
            {"tenant_id": tenant_id, "stage_id": stage_id, "deleted_at": None}
        )
        if in_use:
            raise ValueError(f"Stage has {in_use} client(s); move them before deleting it")

        result = await self.collection.delete_one({"stage_id": stage_id, "tenant_id": tenant_id})
        return result.deleted_count > 0


def _new_stage_id() -> str:
    return f"stage_{uuid4().hex[:12]}"
