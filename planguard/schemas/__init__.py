"""
Pydantic schemas package.
"""

from planguard.schemas.common import BaseSchema, ErrorResponse, MessageResponse
from planguard.schemas.limits import (
    CustomLimitRead,
    CustomLimitUpdate,
    EmailReservation,
    LimitEventRead,
    LimitStatus,
    LimitSummary,
)
from planguard.schemas.role import MyPermissions, PermissionCategory, RoleCatalog, RoleRead
from planguard.schemas.shop import ShopCreate, ShopRead
from planguard.schemas.subscription import (
    CancelRequest,
    CheckoutResponse,
    PlanChangeRequest,
    PlanRead,
    ScheduleDowngradeRequest,
    SubscriptionRead,
    TenantPlan,
    TransitionDirection,
    TransitionOutcome,
    WebhookAck,
)
from planguard.schemas.tenant import TenantRead, TenantReadWithUsage
from planguard.schemas.user import RoleChangeRequest, UserCreate, UserRead

__all__ = [
    # Common
    "BaseSchema",
    "MessageResponse",
    "ErrorResponse",
    # Limits
    "LimitStatus",
    "LimitSummary",
    "EmailReservation",
    "CustomLimitUpdate",
    "CustomLimitRead",
    "LimitEventRead",
    # Roles
    "RoleRead",
    "RoleCatalog",
    "PermissionCategory",
    "MyPermissions",
    # Shops
    "ShopCreate",
    "ShopRead",
    # Subscriptions
    "PlanRead",
    "SubscriptionRead",
    "TenantPlan",
    "PlanChangeRequest",
    "ScheduleDowngradeRequest",
    "CancelRequest",
    "TransitionDirection",
    "TransitionOutcome",
    "CheckoutResponse",
    "WebhookAck",
    # Tenant
    "TenantRead",
    "TenantReadWithUsage",
    # User
    "UserCreate",
    "UserRead",
    "RoleChangeRequest",
]
