"""
Custom exception hierarchy for the application.

Every expected outcome of a permission, guard, limit or plan check is a
PlanGuardError subclass. The API renders them with their own status code
and structured details; only unexpected exceptions reach the 500 handler.
"""

from typing import Any

from fastapi import HTTPException, status


class PlanGuardError(Exception):
    """Base exception for all application exceptions."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "error"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "detail": self.message,
            "code": self.code,
            "context": self.details,
        }


# Not found

class NotFoundError(PlanGuardError):
    """Raised when a resource is missing or belongs to another tenant."""

    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class PlanNotFoundError(NotFoundError):
    code = "plan_not_found"


# Forbidden

class ForbiddenError(PlanGuardError):
    """Raised when a role, permission or guard rule denies the action."""

    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"


class PermissionDenied(ForbiddenError):
    code = "permission_denied"


class SelfRoleChangeForbidden(ForbiddenError):
    code = "self_role_change_forbidden"


class SelfModificationForbidden(ForbiddenError):
    code = "self_modification_forbidden"


class InsufficientPrivilege(ForbiddenError):
    code = "insufficient_privilege"


class SoleOwnerProtection(ForbiddenError):
    code = "sole_owner_protection"


class OwnerDeletionForbidden(ForbiddenError):
    code = "owner_deletion_forbidden"


class PlanFeatureUnavailable(ForbiddenError):
    code = "plan_feature_unavailable"


# Quota and billing

class LimitExceededError(PlanGuardError):
    """Raised when a tenant's resource ceiling is reached."""

    status_code = status.HTTP_403_FORBIDDEN
    code = "limit_exceeded"


class PaymentRequiredError(PlanGuardError):
    """Raised when a paid plan would be activated without checkout."""

    status_code = status.HTTP_402_PAYMENT_REQUIRED
    code = "payment_required"


class InvalidStateError(PlanGuardError):
    status_code = status.HTTP_409_CONFLICT
    code = "invalid_state"


class NoActiveSubscriptionError(InvalidStateError):
    code = "no_active_subscription"


class ConcurrentModificationError(InvalidStateError):
    """The subscription row changed between read and write."""

    code = "concurrent_modification"


class InvalidWebhookSignature(PlanGuardError):
    """Billing webhook payload failed signature or timestamp verification."""

    code = "invalid_webhook_signature"


# Technical

class TechnicalFailureError(PlanGuardError):
    """Storage or provider failure. The only category treated as a fault."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "technical_failure"


class BillingError(TechnicalFailureError):
    status_code = status.HTTP_502_BAD_GATEWAY
    code = "billing_failure"


# HTTP Exception helpers (authentication layer)
def unauthorized(detail: str = "Not authenticated") -> HTTPException:
    """Return 401 Unauthorized exception."""
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def forbidden(detail: str = "Insufficient permissions") -> HTTPException:
    """Return 403 Forbidden exception."""
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail=detail,
    )