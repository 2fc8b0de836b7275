"""
Subscription Models

Billing state of a tenant. Drives feature gating.
"""

import math
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class SubscriptionStatus(str, Enum):
    TRIAL = "TRIAL"
    ACTIVE = "ACTIVE"
    PAST_DUE = "PAST_DUE"
    CANCELED = "CANCELED"


class Subscription(BaseModel):
    """
    Subscription model.

    Stored in the platform database, one per tenant.
    """

    subscription_id: str
    tenant_id: str
    plan_type: str = Field(default="BASE")
    status: SubscriptionStatus = Field(default=SubscriptionStatus.TRIAL)

    trial_ends_at: Optional[datetime] = Field(default=None)
    current_period_ends_at: Optional[datetime] = Field(default=None)
    canceled_at: Optional[datetime] = Field(default=None)

    # Mercado Pago references
    mercado_pago_subscription_id: Optional[str] = Field(default=None)
    mercado_pago_customer_id: Optional[str] = Field(default=None)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    def is_trial_active(self, now: Optional[datetime] = None) -> bool:
        if self.status != SubscriptionStatus.TRIAL or not self.trial_ends_at:
            return False
        return self.trial_ends_at > (now or datetime.utcnow())

    def is_trial_expired(self, now: Optional[datetime] = None) -> bool:
        if self.status != SubscriptionStatus.TRIAL or not self.trial_ends_at:
            return False
        return self.trial_ends_at <= (now or datetime.utcnow())

    def is_active(self, now: Optional[datetime] = None) -> bool:
        """ACTIVE, or TRIAL with time left."""
        if self.status == SubscriptionStatus.ACTIVE:
            return True
        return self.is_trial_active(now)

    def trial_days_left(self, now: Optional[datetime] = None) -> int:
        if not self.trial_ends_at:
            return 0
        remaining = (self.trial_ends_at - (now or datetime.utcnow())).total_seconds()
        return max(0, math.ceil(remaining / 86400))

    class Config:
        json_schema_extra = {
            "example": {
                "subscription_id": "sub_9f8e7d6c5b4a",
                "tenant_id": "imobsol_20260223",
                "plan_type": "BASE",
                "status": "TRIAL",
                "trial_ends_at": "2026-03-02T12:00:00",
            }
        }


class SubscriptionResponse(BaseModel):
    """Subscription state shown on the billing page."""

    subscription_id: str
    status: SubscriptionStatus
    status_label: str
    plan_type: str
    is_active: bool
    trial_days_left: int
    trial_ends_at: Optional[datetime]
    current_period_ends_at: Optional[datetime]
    canceled_at: Optional[datetime]
    price_cents: int
    price_formatted: str


class CheckoutResponse(BaseModel):
    success: bool = True
    checkout_url: str
    subscription_id: str


class WebhookResult(BaseModel):
    """Outcome of a processed webhook notification. Always returned with HTTP 200."""

    success: bool
    message: str
    tenant_id: Optional[str] = None
    status: Optional[SubscriptionStatus] = None
