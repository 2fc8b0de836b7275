"""
Client Database Service

CRUD operations for clients in tenant databases. Deletes are soft; the phone
number is unique among a tenant's non-deleted clients.
"""

import re
from datetime import datetime
from typing import Optional
from uuid import uuid4

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, IndexModel

from ..pipeline.db_service import StageDBService
from ..shared_services.utils import normalize_phone, normalize_text, to_cents
from .models import Client, ClientCreate, ClientTransactionType, DuplicatePhoneError, StageNotFoundError


class ClientDBService:
    """
    Database service for clients.

    Operates on tenant-specific databases.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["clients"]
        self.stage_service = StageDBService(db)

    async def ensure_indexes(self) -> None:
        indexes = [
            IndexModel([("client_id", ASCENDING)], unique=True),
            IndexModel([("tenant_id", ASCENDING), ("phone_normalized", ASCENDING)]),
            IndexModel([("tenant_id", ASCENDING), ("stage_id", ASCENDING)]),
            IndexModel([("created_at", DESCENDING)]),
        ]
        await self.collection.create_indexes(indexes)

    async def create_client(
        self,
        tenant_id: str,
        client_create: ClientCreate,
        created_by: Optional[str] = None,
    ) -> Client:
        """
        Create a client.

        Raises:
            DuplicatePhoneError: If the phone is already registered
            StageNotFoundError: If ``stage_id`` is unknown or the tenant has no stages
        """
        data = client_create.model_dump()
        data["phone_normalized"] = normalize_phone(data["phone"])
        await self._ensure_phone_free(tenant_id, data["phone_normalized"])

        if data["stage_id"]:
            await self._ensure_stage_exists(tenant_id, data["stage_id"])
        else:
            first_stage = await self.stage_service.first_stage(tenant_id)
            if not first_stage:
                raise StageNotFoundError("No pipeline stages configured")
            data["stage_id"] = first_stage.stage_id

        _convert_prices(data)
        _apply_normalized(data)

        now = datetime.utcnow()
        client = Client(
            client_id=f"cli_{uuid4().hex[:12]}",
            tenant_id=tenant_id,
            created_by=created_by,
            created_at=now,
            updated_at=now,
            **data,
        )
        await self.collection.insert_one(client.model_dump())
        return client

    async def get_client(self, client_id: str, tenant_id: str) -> Optional[Client]:
        client_dict = await self.collection.find_one(
            {"client_id": client_id, "tenant_id": tenant_id, "deleted_at": None}
        )
        if client_dict:
            return Client(**client_dict)
        return None

    async def update_client(self, client_id: str, tenant_id: str, update_data: dict) -> Optional[Client]:
        """
        Update a client.

        Args:
            update_data: Fields to set, desired prices in reais. A None value clears the field.

        Raises:
            DuplicatePhoneError: If the new phone belongs to another client
            StageNotFoundError: If the new ``stage_id`` is unknown
            ValueError: If the merged ranges are inverted
        """
        existing = await self.get_client(client_id, tenant_id)
        if not existing:
            return None

        if "phone" in update_data:
            update_data["phone_normalized"] = normalize_phone(update_data["phone"])
            await self._ensure_phone_free(tenant_id, update_data["phone_normalized"], exclude_client_id=client_id)

        if "stage_id" in update_data:
            await self._ensure_stage_exists(tenant_id, update_data["stage_id"])

        _convert_prices(update_data)
        _apply_normalized(update_data)

        merged = {**existing.model_dump(), **update_data}
        for field in ("bedrooms", "price"):
            low, high = merged[f"desired_{field}_min"], merged[f"desired_{field}_max"]
            if low is not None and high is not None and low > high:
                raise ValueError(f"Minimum {field} cannot be greater than maximum {field}")

        update_data["updated_at"] = datetime.utcnow()

        result = await self.collection.find_one_and_update(
            {"client_id": client_id, "tenant_id": tenant_id, "deleted_at": None},
            {"$set": update_data},
            return_document=True,
        )
        if result:
            return Client(**result)
        return None

    async def update_stage(self, client_id: str, tenant_id: str, stage_id: str) -> bool:
        """Single write persisting a pipeline move."""
        result = await self.collection.update_one(
            {"client_id": client_id, "tenant_id": tenant_id, "deleted_at": None},
            {"$set": {"stage_id": stage_id, "updated_at": datetime.utcnow()}},
        )
        return result.matched_count > 0

    async def soft_delete(self, client_id: str, tenant_id: str) -> bool:
        now = datetime.utcnow()
        result = await self.collection.update_one(
            {"client_id": client_id, "tenant_id": tenant_id, "deleted_at": None},
            {"$set": {"deleted_at": now, "updated_at": now}},
        )
        return result.matched_count > 0

    async def list_clients(
        self,
        tenant_id: str,
        stage_id: Optional[str] = None,
        desired_transaction_type: Optional[ClientTransactionType] = None,
        search: Optional[str] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> list[Client]:
        query = self._build_query(tenant_id, stage_id, desired_transaction_type, search)
        cursor = self.collection.find(query).sort("created_at", DESCENDING).skip(skip).limit(limit)

        clients = []
        async for client_dict in cursor:
            clients.append(Client(**client_dict))

        return clients

    async def count_clients(
        self,
        tenant_id: str,
        stage_id: Optional[str] = None,
        desired_transaction_type: Optional[ClientTransactionType] = None,
        search: Optional[str] = None,
    ) -> int:
        query = self._build_query(tenant_id, stage_id, desired_transaction_type, search)
        return await self.collection.count_documents(query)

    async def list_active(self, tenant_id: str) -> list[Client]:
        """All non-deleted clients, newest first."""
        cursor = self.collection.find({"tenant_id": tenant_id, "deleted_at": None}).sort(
            "created_at", DESCENDING
        )
        return [Client(**client_dict) async for client_dict in cursor]

    async def _ensure_phone_free(
        self,
        tenant_id: str,
        phone_normalized: str,
        exclude_client_id: Optional[str] = None,
    ) -> None:
        query: dict = {"tenant_id": tenant_id, "phone_normalized": phone_normalized, "deleted_at": None}
        if exclude_client_id:
            query["client_id"] = {"$ne": exclude_client_id}

        if await self.collection.count_documents(query, limit=1):
            raise DuplicatePhoneError("Phone already registered for another client")

    async def _ensure_stage_exists(self, tenant_id: str, stage_id: str) -> None:
        if not await self.stage_service.get_stage(stage_id, tenant_id):
            raise StageNotFoundError(f"Stage '{stage_id}' not found")

    @staticmethod
    def _build_query(
        tenant_id: str,
        stage_id: Optional[str],
        desired_transaction_type: Optional[ClientTransactionType],
        search: Optional[str],
    ) -> dict:
        query: dict = {"tenant_id": tenant_id, "deleted_at": None}

        if stage_id:
            query["stage_id"] = stage_id
        if desired_transaction_type:
            query["desired_transaction_type"] = desired_transaction_type

        if search and search.strip():
            term = search.strip()
            pattern = {"$regex": re.escape(term), "$options": "i"}
            conditions = [{"name": pattern}, {"phone": pattern}, {"email": pattern}]
            digits = normalize_phone(term)
            if digits:
                conditions.append({"phone_normalized": {"$regex": re.escape(digits)}})
            query["$or"] = conditions

        return query


def _convert_prices(data: dict) -> None:
    for key in ("desired_price_min", "desired_price_max"):
        if data.get(key) is not None:
            data[key] = to_cents(data[key])


def _apply_normalized(data: dict) -> None:
    for key in ("city", "neighborhood"):
        if key in data:
            value = (data[key] or "").strip() or None
            data[key] = value
            data[f"{key}_normalized"] = normalize_text(value)
