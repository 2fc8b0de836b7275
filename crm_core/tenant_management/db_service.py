"""
Tenant Database Service

Agency records in the platform database.
"""

import re
from datetime import datetime
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, IndexModel
from pymongo.errors import DuplicateKeyError

from .models import Tenant, TenantStatus

SUBDOMAIN_FIELD = "config.domains.subdomain"
DOMAIN_FIELD = "config.domains.primary_domain"


class TenantDBService:
    """Operates on the platform database, never on an agency database."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["tenants"]

    async def ensure_indexes(self) -> None:
        indexes = [
            IndexModel([("tenant_id", ASCENDING)], unique=True),
            IndexModel([(SUBDOMAIN_FIELD, ASCENDING)], unique=True),
            IndexModel([(DOMAIN_FIELD, ASCENDING)], sparse=True),
            IndexModel([("status", ASCENDING), ("created_at", DESCENDING)]),
        ]
        await self.collection.create_indexes(indexes)

    async def create_tenant(self, tenant: Tenant) -> Tenant:
        """
        Raises:
            ValueError: If the tenant id or subdomain is already registered
        """
        now = datetime.utcnow()
        tenant = tenant.model_copy(update={"created_at": now, "updated_at": now})

        try:
            await self.collection.insert_one(tenant.model_dump())
        except DuplicateKeyError as e:
            if SUBDOMAIN_FIELD in str(e) or "subdomain" in str(e):
                raise ValueError(f"Subdomain '{tenant.subdomain}' is already taken")
            raise ValueError(f"Tenant '{tenant.tenant_id}' already exists")

        return tenant

    async def get_tenant_by_id(self, tenant_id: str) -> Optional[Tenant]:
        return await self._find_one({"tenant_id": tenant_id})

    async def get_tenant_by_subdomain(self, subdomain: str) -> Optional[Tenant]:
        return await self._find_one({SUBDOMAIN_FIELD: subdomain.lower()})

    async def get_tenant_by_domain(self, domain: str) -> Optional[Tenant]:
        return await self._find_one({DOMAIN_FIELD: domain.lower()})

    async def subdomain_available(self, subdomain: str) -> bool:
        return not await self.collection.count_documents({SUBDOMAIN_FIELD: subdomain.lower()}, limit=1)

    async def update_tenant(self, tenant_id: str, update_data: dict) -> Optional[Tenant]:
        """
        Args:
            update_data: Fields to set; dotted paths reach into ``config``
        """
        result = await self.collection.find_one_and_update(
            {"tenant_id": tenant_id},
            {"$set": {**update_data, "updated_at": datetime.utcnow()}},
            return_document=True,
        )
        if result:
            return Tenant(**result)
        return None

    async def update_tenant_status(
        self,
        tenant_id: str,
        status: TenantStatus,
        status_reason: Optional[str] = None,
    ) -> bool:
        """Change the lifecycle status; an ACTIVE tenant carries no reason."""
        update_data: dict = {"status": status, "updated_at": datetime.utcnow()}
        if status == TenantStatus.ACTIVE:
            update_data["status_reason"] = None
        elif status_reason:
            update_data["status_reason"] = status_reason

        result = await self.collection.update_one({"tenant_id": tenant_id}, {"$set": update_data})
        return result.matched_count > 0

    async def set_owner(self, tenant_id: str, owner_user_id: str) -> bool:
        result = await self.collection.update_one(
            {"tenant_id": tenant_id},
            {"$set": {"owner_user_id": owner_user_id, "updated_at": datetime.utcnow()}},
        )
        return result.matched_count > 0

    async def touch_activity(self, tenant_id: str) -> None:
        await self.collection.update_one(
            {"tenant_id": tenant_id},
            {"$set": {"last_activity_at": datetime.utcnow()}},
        )

    async def list_tenants(
        self,
        status: Optional[TenantStatus] = None,
        search: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[Tenant]:
        """Newest first; ``search`` matches the agency name or subdomain."""
        cursor = (
            self.collection.find(self._build_query(status, search))
            .sort("created_at", DESCENDING)
            .skip(skip)
            .limit(limit)
        )
        return [Tenant(**tenant_dict) async for tenant_dict in cursor]

    async def count_tenants(self, status: Optional[TenantStatus] = None, search: Optional[str] = None) -> int:
        return await self.collection.count_documents(self._build_query(status, search))

    async def deactivate_tenant(self, tenant_id: str, reason: str = "Agency closed") -> bool:
        return await self.update_tenant_status(tenant_id, TenantStatus.DEACTIVATED, reason)

    async def hard_delete_tenant(self, tenant_id: str) -> bool:
        """Remove the record entirely. Only used to undo a failed onboarding."""
        result = await self.collection.delete_one({"tenant_id": tenant_id})
        return result.deleted_count > 0

    async def _find_one(self, query: dict) -> Optional[Tenant]:
        tenant_dict = await self.collection.find_one(query)
        if tenant_dict:
            return Tenant(**tenant_dict)
        return None

    @staticmethod
    def _build_query(status: Optional[TenantStatus], search: Optional[str]) -> dict:
        query: dict = {}
        if status:
            query["status"] = status
        if search and search.strip():
            pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
            query["$or"] = [{"name": pattern}, {SUBDOMAIN_FIELD: pattern}]
        return query
