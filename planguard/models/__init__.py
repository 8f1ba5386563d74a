"""
Database models package.
"""

from planguard.core.database import Base
from planguard.models.base import BaseModel
from planguard.models.tenant import Tenant
from planguard.models.user import User
from planguard.models.shop import Shop
from planguard.models.subscription import (
    BillingCycle,
    Subscription,
    SubscriptionPlan,
    SubscriptionStatus,
)
from planguard.models.tenant_limit import TenantLimit
from planguard.models.limit_event import LimitEvent, LimitEventType, ResourceKind
from planguard.models.email_send import EmailSendRecord

__all__ = [
    "Base",
    "BaseModel",
    "Tenant",
    "User",
    "Shop",
    "BillingCycle",
    "Subscription",
    "SubscriptionPlan",
    "SubscriptionStatus",
    "TenantLimit",
    "LimitEvent",
    "LimitEventType",
    "ResourceKind",
    "EmailSendRecord",
]
