"""
Unit tests for limit arithmetic and plan snapshots.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from planguard.features.limits.service import ResolvedLimits, build_status, month_window
from planguard.features.subscriptions.catalog import EffectivePlan
from planguard.models.limit_event import ResourceKind
from planguard.models.subscription import BillingCycle
from planguard.models.tenant_limit import TenantLimit


def _plan(**overrides) -> EffectivePlan:
    values = {
        "id": "plan-1",
        "name": "Plus",
        "display_name": "Plus",
        "price": Decimal("49.00"),
        "yearly_price": Decimal("470.40"),
        "max_users": 3,
        "max_shops": 3,
        "monthly_email_limit": 500,
        "allow_users_management": True,
        "allow_roles_management": True,
    }
    values.update(overrides)
    return EffectivePlan(**values)


@pytest.mark.unit
class TestBuildStatus:

    @pytest.mark.parametrize("current", [0, 1, 50, 10_000])
    def test_unlimited_always_allows(self, current):
        status = build_status(ResourceKind.SHOPS, current, None, False, "Pro")

        assert status.can_add is True
        assert status.remaining is None
        assert status.limit is None

    def test_below_limit(self):
        status = build_status(ResourceKind.SHOPS, 2, 5, False, "Plus")

        assert status.can_add is True
        assert status.remaining == 3

    def test_at_limit(self):
        status = build_status(ResourceKind.USERS, 5, 5, False, "Plus")

        assert status.can_add is False
        assert status.remaining == 0

    def test_over_limit_never_negative(self):
        status = build_status(ResourceKind.SHOPS, 8, 5, True, "Free")

        assert status.can_add is False
        assert status.remaining == 0
        assert status.is_custom_limit is True


@pytest.mark.unit
class TestMonthWindow:

    def test_mid_month(self):
        start, end = month_window(datetime(2026, 5, 17, 13, 45, tzinfo=timezone.utc))

        assert start == datetime(2026, 5, 1, tzinfo=timezone.utc)
        assert end == datetime(2026, 6, 1, tzinfo=timezone.utc)

    def test_december_rolls_over_year(self):
        start, end = month_window(datetime(2026, 12, 31, 23, 59, tzinfo=timezone.utc))

        assert start == datetime(2026, 12, 1, tzinfo=timezone.utc)
        assert end == datetime(2027, 1, 1, tzinfo=timezone.utc)


@pytest.mark.unit
class TestEffectivePlan:

    def test_limit_for_each_resource(self):
        plan = _plan(max_users=2, max_shops=4, monthly_email_limit=None)

        assert plan.limit_for(ResourceKind.USERS) == 2
        assert plan.limit_for(ResourceKind.SHOPS) == 4
        assert plan.limit_for("emails") is None

    def test_price_for_cycle(self):
        plan = _plan()

        assert plan.price_for(BillingCycle.MONTHLY) == Decimal("49.00")
        assert plan.price_for(BillingCycle.YEARLY) == Decimal("470.40")

    def test_yearly_price_falls_back_to_twelve_months(self):
        assert _plan(yearly_price=None).price_for("yearly") == Decimal("588.00")

    def test_cache_round_trip_keeps_decimals(self):
        plan = _plan()

        restored = EffectivePlan.from_cache(plan.to_cache())

        assert restored == plan
        assert isinstance(restored.price, Decimal)


@pytest.mark.unit
class TestResolvedLimits:

    def test_plan_limits_without_override(self):
        resolved = ResolvedLimits(plan=_plan(), subscription=None, override=None)

        assert resolved.limit_for(ResourceKind.SHOPS) == (3, False)

    def test_override_fields_win_where_set(self):
        override = TenantLimit(tenant_id="t", max_shops=10, max_users=None, monthly_email_limit=None)
        resolved = ResolvedLimits(plan=_plan(), subscription=None, override=override)

        assert resolved.limit_for(ResourceKind.SHOPS) == (10, True)
        assert resolved.limit_for(ResourceKind.USERS) == (3, False)
