"""
Property Database Service

CRUD operations for property listings in tenant databases. Deletes are soft.
"""

import re
from datetime import datetime
from typing import Optional
from uuid import uuid4

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, IndexModel

from ..shared_services.utils import normalize_text, to_cents
from .models import Property, PropertyCreate, PropertyStatus, PropertyType, TransactionType


class PropertyDBService:
    """
    Database service for properties.

    Operates on tenant-specific databases.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["properties"]

    async def ensure_indexes(self) -> None:
        indexes = [
            IndexModel([("property_id", ASCENDING)], unique=True),
            IndexModel([("tenant_id", ASCENDING), ("status", ASCENDING), ("deleted_at", ASCENDING)]),
            IndexModel([("tenant_id", ASCENDING), ("city_normalized", ASCENDING)]),
            IndexModel([("created_at", DESCENDING)]),
        ]
        await self.collection.create_indexes(indexes)

    async def create_property(
        self,
        tenant_id: str,
        property_create: PropertyCreate,
        created_by: Optional[str] = None,
    ) -> Property:
        data = property_create.model_dump()
        data["price"] = to_cents(data["price"])
        _apply_normalized(data)

        now = datetime.utcnow()
        prop = Property(
            property_id=f"prop_{uuid4().hex[:12]}",
            tenant_id=tenant_id,
            created_by=created_by,
            created_at=now,
            updated_at=now,
            **data,
        )
        await self.collection.insert_one(prop.model_dump())
        return prop

    async def get_property(self, property_id: str, tenant_id: str) -> Optional[Property]:
        """Get a property; soft deleted ones are not found."""
        prop_dict = await self.collection.find_one(
            {"property_id": property_id, "tenant_id": tenant_id, "deleted_at": None}
        )
        if prop_dict:
            return Property(**prop_dict)
        return None

    async def update_property(self, property_id: str, tenant_id: str, update_data: dict) -> Optional[Property]:
        """
        Update a property.

        Args:
            update_data: Fields to set, ``price`` in reais. A None value clears an optional field.

        Returns:
            Updated property, or None if not found or deleted
        """
        if "price" in update_data:
            update_data["price"] = to_cents(update_data["price"])
        _apply_normalized(update_data)
        update_data["updated_at"] = datetime.utcnow()

        result = await self.collection.find_one_and_update(
            {"property_id": property_id, "tenant_id": tenant_id, "deleted_at": None},
            {"$set": update_data},
            return_document=True,
        )
        if result:
            return Property(**result)
        return None

    async def soft_delete(self, property_id: str, tenant_id: str) -> bool:
        now = datetime.utcnow()
        result = await self.collection.update_one(
            {"property_id": property_id, "tenant_id": tenant_id, "deleted_at": None},
            {"$set": {"deleted_at": now, "updated_at": now}},
        )
        return result.matched_count > 0

    async def list_properties(
        self,
        tenant_id: str,
        property_type: Optional[PropertyType] = None,
        transaction_type: Optional[TransactionType] = None,
        status: Optional[PropertyStatus] = None,
        search: Optional[str] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> list[Property]:
        query = self._build_query(tenant_id, property_type, transaction_type, status, search)
        cursor = self.collection.find(query).sort("created_at", DESCENDING).skip(skip).limit(limit)

        properties = []
        async for prop_dict in cursor:
            properties.append(Property(**prop_dict))

        return properties

    async def count_properties(
        self,
        tenant_id: str,
        property_type: Optional[PropertyType] = None,
        transaction_type: Optional[TransactionType] = None,
        status: Optional[PropertyStatus] = None,
        search: Optional[str] = None,
    ) -> int:
        query = self._build_query(tenant_id, property_type, transaction_type, status, search)
        return await self.collection.count_documents(query)

    async def list_active(self, tenant_id: str) -> list[Property]:
        """Non-deleted ACTIVE properties: the matching inventory."""
        cursor = self.collection.find(
            {"tenant_id": tenant_id, "status": PropertyStatus.ACTIVE, "deleted_at": None}
        ).sort("created_at", DESCENDING)

        return [Property(**prop_dict) async for prop_dict in cursor]

    @staticmethod
    def _build_query(
        tenant_id: str,
        property_type: Optional[PropertyType],
        transaction_type: Optional[TransactionType],
        status: Optional[PropertyStatus],
        search: Optional[str],
    ) -> dict:
        query: dict = {"tenant_id": tenant_id, "deleted_at": None}

        if property_type:
            query["property_type"] = property_type
        if transaction_type:
            query["transaction_type"] = transaction_type
        if status:
            query["status"] = status

        if search and search.strip():
            pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
            query["$or"] = [
                {"title": pattern},
                {"city": pattern},
                {"neighborhood": pattern},
            ]

        return query


def _apply_normalized(data: dict) -> None:
    if "city" in data:
        data["city"] = data["city"].strip()
        data["city_normalized"] = normalize_text(data["city"])
    if "neighborhood" in data:
        neighborhood = (data["neighborhood"] or "").strip() or None
        data["neighborhood"] = neighborhood
        data["neighborhood_normalized"] = normalize_text(neighborhood)
