"""
Audit Logging

Change trail for every write to tenant records (clients, properties, stages, users).
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel, Field
from pymongo import ASCENDING, DESCENDING, IndexModel
from pymongo.errors import PyMongoError
from structlog import get_logger

from ..config import get_config

logger = get_logger()


class AuditAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class AuditLog(BaseModel):
    """
    Audit log entry.

    Stored in the tenant-specific database.
    """

    log_id: str = Field(default_factory=lambda: str(uuid4()))
    tenant_id: str
    user_id: Optional[str] = Field(default=None, description="User who made the change")

    action: AuditAction
    table_name: str = Field(..., description="Collection that changed")
    record_id: str

    old_data: Optional[dict[str, Any]] = Field(default=None)
    new_data: Optional[dict[str, Any]] = Field(default=None)

    created_at: datetime = Field(default_factory=datetime.utcnow)


class AuditService:
    """Service for writing and reading audit logs."""

    collection_name = "audit_log"

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db[self.collection_name]

    async def ensure_indexes(self) -> None:
        indexes = [
            IndexModel([("log_id", ASCENDING)], unique=True),
            IndexModel([("created_at", DESCENDING)]),
            IndexModel([("user_id", ASCENDING)]),
            IndexModel([("table_name", ASCENDING), ("record_id", ASCENDING)]),
        ]
        await self.collection.create_indexes(indexes)

    async def record(
        self,
        tenant_id: str,
        action: AuditAction,
        table_name: str,
        record_id: str,
        user_id: Optional[str] = None,
        old_data: Optional[dict[str, Any]] = None,
        new_data: Optional[dict[str, Any]] = None,
    ) -> Optional[str]:
        """
        Record a change.

        Storage failures are logged and swallowed so the audited write still succeeds.

        Returns:
            Log ID, or None when auditing is disabled or failed
        """
        if not get_config().enable_audit_logging:
            return None

        audit_log = AuditLog(
            tenant_id=tenant_id,
            user_id=user_id,
            action=action,
            table_name=table_name,
            record_id=record_id,
            old_data=_strip_internal(old_data),
            new_data=_strip_internal(new_data),
        )

        try:
            await self.collection.insert_one(audit_log.model_dump())
        except PyMongoError as e:
            logger.error(
                "audit_log_write_failed",
                tenant_id=tenant_id,
                table_name=table_name,
                record_id=record_id,
                error=str(e),
            )
            return None

        return audit_log.log_id

    async def list_logs(
        self,
        table_name: Optional[str] = None,
        record_id: Optional[str] = None,
        user_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[AuditLog]:
        query = self._build_query(table_name, record_id, user_id, start_date, end_date)
        cursor = self.collection.find(query).sort("created_at", DESCENDING).skip(skip).limit(limit)

        logs = []
        async for log_dict in cursor:
            logs.append(AuditLog(**log_dict))

        return logs

    async def count_logs(
        self,
        table_name: Optional[str] = None,
        record_id: Optional[str] = None,
        user_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> int:
        query = self._build_query(table_name, record_id, user_id, start_date, end_date)
        return await self.collection.count_documents(query)

    @staticmethod
    def _build_query(
        table_name: Optional[str],
        record_id: Optional[str],
        user_id: Optional[str],
        start_date: Optional[datetime],
        end_date: Optional[datetime],
    ) -> dict[str, Any]:
        query: dict[str, Any] = {}

        if table_name:
            query["table_name"] = table_name
        if record_id:
            query["record_id"] = record_id
        if user_id:
            query["user_id"] = user_id

        if start_date or end_date:
            date_query = {}
            if start_date:
                date_query["$gte"] = start_date
            if end_date:
                date_query["$lte"] = end_date
            query["created_at"] = date_query

        return query


def _strip_internal(data: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
    if data is None:
        return None
    return {k: v for k, v in data.items() if k not in ("_id", "hashed_password")}
