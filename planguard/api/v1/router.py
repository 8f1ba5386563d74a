"""
API v1 router aggregator.

All v1 routes are registered here.
"""

from fastapi import APIRouter

from planguard.features.limits.router import router as limits_router
from planguard.features.roles.router import router as roles_router
from planguard.features.shops.router import router as shops_router
from planguard.features.subscriptions.router import router as subscriptions_router
from planguard.features.tenants.router import router as tenants_router
from planguard.features.users.router import router as users_router
from planguard.schemas.common import ErrorResponse

# Documented on every route; the body comes from PlanGuardError.to_dict()
DOMAIN_ERROR_RESPONSES = {
    402: {"model": ErrorResponse, "description": "Plan change requires payment"},
    403: {"model": ErrorResponse, "description": "Permission, guard rule or resource limit"},
    404: {"model": ErrorResponse, "description": "Not found in the caller's tenant"},
    409: {"model": ErrorResponse, "description": "Subscription state conflict"},
}

v1_router = APIRouter(prefix="/v1", responses=DOMAIN_ERROR_RESPONSES)

v1_router.include_router(tenants_router)
v1_router.include_router(roles_router)
v1_router.include_router(users_router)
v1_router.include_router(shops_router)
v1_router.include_router(limits_router)
v1_router.include_router(subscriptions_router)
