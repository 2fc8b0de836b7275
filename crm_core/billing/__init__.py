"""
Billing Module

Trial and paid subscriptions through Mercado Pago, and subscription-based feature gating.
"""

from .dependencies import require_active_subscription
from .models import Subscription, SubscriptionStatus

__all__ = ["Subscription", "SubscriptionStatus", "require_active_subscription"]
