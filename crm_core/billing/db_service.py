"""
Subscription Database Service

Operates on the platform database, alongside the tenants collection.
"""

from datetime import datetime, timedelta
from typing import Optional
from uuid import uuid4

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, IndexModel
from pymongo.errors import DuplicateKeyError

from ..config import get_config
from .models import Subscription, SubscriptionStatus


class SubscriptionDBService:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["subscriptions"]

    async def ensure_indexes(self) -> None:
        indexes = [
            IndexModel([("subscription_id", ASCENDING)], unique=True),
            IndexModel([("tenant_id", ASCENDING)], unique=True),
            IndexModel([("mercado_pago_subscription_id", ASCENDING)], sparse=True),
            IndexModel([("status", ASCENDING)]),
        ]
        await self.collection.create_indexes(indexes)

    async def create_trial(self, tenant_id: str, now: Optional[datetime] = None) -> Subscription:
        """
        Create the TRIAL subscription of a new tenant.

        Raises:
            ValueError: If the tenant already has a subscription
        """
        config = get_config()
        now = now or datetime.utcnow()

        subscription = Subscription(
            subscription_id=f"sub_{uuid4().hex[:12]}",
            tenant_id=tenant_id,
            plan_type=config.subscription_plan_type,
            status=SubscriptionStatus.TRIAL,
            trial_ends_at=now + timedelta(days=config.trial_days),
            created_at=now,
            updated_at=now,
        )

        try:
            await self.collection.insert_one(subscription.model_dump())
        except DuplicateKeyError:
            raise ValueError(f"Tenant '{tenant_id}' already has a subscription")

        return subscription

    async def get_by_tenant(self, tenant_id: str) -> Optional[Subscription]:
        sub_dict = await self.collection.find_one({"tenant_id": tenant_id})
        if sub_dict:
            return Subscription(**sub_dict)
        return None

    async def get_by_provider_id(self, mercado_pago_subscription_id: str) -> Optional[Subscription]:
        sub_dict = await self.collection.find_one(
            {"mercado_pago_subscription_id": mercado_pago_subscription_id}
        )
        if sub_dict:
            return Subscription(**sub_dict)
        return None

    async def attach_provider_ids(
        self,
        tenant_id: str,
        mercado_pago_subscription_id: str,
        mercado_pago_customer_id: Optional[str] = None,
    ) -> bool:
        update_data = {
            "mercado_pago_subscription_id": mercado_pago_subscription_id,
            "updated_at": datetime.utcnow(),
        }
        if mercado_pago_customer_id:
            update_data["mercado_pago_customer_id"] = mercado_pago_customer_id

        result = await self.collection.update_one({"tenant_id": tenant_id}, {"$set": update_data})
        return result.matched_count > 0

    async def update_from_webhook(
        self,
        tenant_id: str,
        status: SubscriptionStatus,
        current_period_ends_at: Optional[datetime] = None,
        canceled_at: Optional[datetime] = None,
        mercado_pago_subscription_id: Optional[str] = None,
    ) -> Optional[Subscription]:
        """
        Apply a provider status change.

        Returns:
            Updated subscription, or None when the tenant has none
        """
        update_data: dict = {"status": status, "updated_at": datetime.utcnow()}
        if current_period_ends_at:
            update_data["current_period_ends_at"] = current_period_ends_at
        if canceled_at:
            update_data["canceled_at"] = canceled_at
        if mercado_pago_subscription_id:
            update_data["mercado_pago_subscription_id"] = mercado_pago_subscription_id

        result = await self.collection.find_one_and_update(
            {"tenant_id": tenant_id},
            {"$set": update_data},
            return_document=True,
        )
        if result:
            return Subscription(**result)
        return None

    async def delete_by_tenant(self, tenant_id: str) -> bool:
        result = await self.collection.delete_one({"tenant_id": tenant_id})
        return result.deleted_count > 0

    async def count_by_status(self, status: SubscriptionStatus) -> int:
        return await self.collection.count_documents({"status": status})
