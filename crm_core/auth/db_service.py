"""
User Database Service

Agency members (owner and collaborators), stored in the agency database.
Users are never hard-deleted so audit entries keep resolving to a name.
"""

from datetime import datetime
from typing import Optional
from uuid import uuid4

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, IndexModel
from pymongo.errors import DuplicateKeyError

from .models import User, UserCreate, UserRole
from .security import get_password_hash


class UserDBService:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["users"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_indexes(
            [
                IndexModel([("user_id", ASCENDING)], unique=True),
                IndexModel([("tenant_id", ASCENDING), ("email", ASCENDING)], unique=True),
                IndexModel([("tenant_id", ASCENDING), ("role", ASCENDING), ("is_active", ASCENDING)]),
            ]
        )

    async def create_user(
        self,
        user_create: UserCreate,
        tenant_id: str,
        created_by: Optional[str] = None,
    ) -> User:
        """
        Raises:
            ValueError: If the e-mail is already registered in this agency
        """
        now = datetime.utcnow()
        user = User(
            user_id=f"user_{uuid4().hex[:12]}",
            tenant_id=tenant_id,
            email=user_create.email.lower(),
            hashed_password=get_password_hash(user_create.password),
            name=user_create.name.strip(),
            avatar_url=user_create.avatar_url,
            role=user_create.role,
            created_at=now,
            updated_at=now,
            created_by=created_by,
        )

        try:
            await self.collection.insert_one(user.model_dump())
        except DuplicateKeyError:
            raise ValueError(f"E-mail '{user.email}' is already registered")

        return user

    async def get_user_by_id(self, user_id: str) -> Optional[User]:
        return await self._find_one({"user_id": user_id})

    async def get_user_by_email(self, email: str, tenant_id: str) -> Optional[User]:
        return await self._find_one({"tenant_id": tenant_id, "email": email.strip().lower()})

    async def update_user(self, user_id: str, update_data: dict) -> Optional[User]:
        result = await self.collection.find_one_and_update(
            {"user_id": user_id},
            {"$set": {**update_data, "updated_at": datetime.utcnow()}},
            return_document=True,
        )
        return User(**result) if result else None

    async def update_password(self, user_id: str, new_password: str) -> bool:
        return await self._set(
            user_id,
            hashed_password=get_password_hash(new_password),
            updated_at=datetime.utcnow(),
        )

    async def update_last_login(self, user_id: str) -> bool:
        return await self._set(user_id, last_login_at=datetime.utcnow())

    async def list_users(
        self,
        tenant_id: str,
        role: Optional[UserRole] = None,
        is_active: Optional[bool] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[User]:
        """Newest first, optionally narrowed by role and active flag."""
        query = self._build_query(tenant_id, role, is_active)
        cursor = self.collection.find(query).sort("created_at", DESCENDING).skip(skip).limit(limit)
        return [User(**user_dict) async for user_dict in cursor]

    async def count_users(
        self,
        tenant_id: str,
        role: Optional[UserRole] = None,
        is_active: Optional[bool] = None,
    ) -> int:
        return await self.collection.count_documents(self._build_query(tenant_id, role, is_active))

    async def deactivate_user(self, user_id: str) -> bool:
        """Revoke access; the record stays for the audit trail."""
        return await self._set(user_id, is_active=False, updated_at=datetime.utcnow())

    async def _find_one(self, query: dict) -> Optional[User]:
        user_dict = await self.collection.find_one(query)
        return User(**user_dict) if user_dict else None

    async def _set(self, user_id: str, **fields) -> bool:
        result = await self.collection.update_one({"user_id": user_id}, {"$set": fields})
        return result.matched_count > 0

    @staticmethod
    def _build_query(tenant_id: str, role: Optional[UserRole], is_active: Optional[bool]) -> dict:
        query: dict = {"tenant_id": tenant_id}
        if role:
            query["role"] = role
        if is_active is not None:
            query["is_active"] = is_active
        return query
