"""
Integration tests for the role assignment guard.
"""

import pytest

from planguard.core.exceptions import (
    InsufficientPrivilege,
    LimitExceededError,
    NotFoundError,
    OwnerDeletionForbidden,
    SelfModificationForbidden,
    SelfRoleChangeForbidden,
    SoleOwnerProtection,
)
from planguard.features.audit.service import AuditService
from planguard.features.rbac.guard import RoleGuard, count_seated_owners
from planguard.features.rbac.permissions import Role
from planguard.models import User
from planguard.models.limit_event import LimitEventType
from tests.factories import SubscriptionFactory, TenantFactory, UserFactory


@pytest.mark.integration
class TestChangeRole:
    """Test role changes and their preconditions."""

    async def test_owner_changes_employee_role(self, db_session, owner, employee):
        """Test a plain role change is applied and audited."""
        updated = await RoleGuard.change_role(db_session, owner, employee.id, Role.MANAGER)

        assert updated.role == Role.MANAGER.value

        events = await AuditService.list_events(
            db_session, owner.tenant_id, event_type=LimitEventType.ROLE_CHANGED
        )
        assert len(events) == 1
        assert events[0].actor_user_id == owner.id
        assert events[0].details["old_role"] == "Employee"
        assert events[0].details["new_role"] == "Manager"
        assert events[0].details["target_user_id"] == employee.id

    async def test_cannot_change_own_role(self, db_session, administrator):
        """Test the self check comes before any role rule."""
        with pytest.raises(SelfRoleChangeForbidden):
            await RoleGuard.change_role(db_session, administrator, administrator.id, Role.OWNER)

    async def test_sole_owner_cannot_demote_self(self, db_session, owner):
        """Test self change wins over sole-owner protection."""
        with pytest.raises(SelfRoleChangeForbidden):
            await RoleGuard.change_role(db_session, owner, owner.id, Role.ADMINISTRATOR)

    async def test_administrator_cannot_touch_owner(self, db_session, owner, administrator):
        """Test a non-Owner cannot change an Owner's role."""
        with pytest.raises(InsufficientPrivilege):
            await RoleGuard.change_role(db_session, administrator, owner.id, Role.EMPLOYEE)

        await db_session.refresh(owner)
        assert owner.role == Role.OWNER.value

    async def test_administrator_cannot_promote_to_owner(self, db_session, administrator, employee):
        """Test only an Owner can grant the Owner role."""
        with pytest.raises(InsufficientPrivilege):
            await RoleGuard.change_role(db_session, administrator, employee.id, Role.OWNER)

    async def test_owner_can_promote_to_owner(self, db_session, owner, employee):
        """Test an Owner can create another Owner."""
        updated = await RoleGuard.change_role(db_session, owner, employee.id, Role.OWNER)

        assert updated.role == Role.OWNER.value
        assert await count_seated_owners(db_session, owner.tenant_id) == 2

    async def test_two_owners_allow_demotion(self, db_session, test_tenant, owner):
        """Test an Owner can be demoted while another seated Owner remains."""
        co_owner = await UserFactory.create(db_session, test_tenant, role=Role.OWNER)

        updated = await RoleGuard.change_role(db_session, owner, co_owner.id, Role.ADMINISTRATOR)

        assert updated.role == Role.ADMINISTRATOR.value
        assert await count_seated_owners(db_session, test_tenant.id) == 1

    async def test_demoting_owner_when_one_seated_owner_remains(self, db_session, test_tenant, owner):
        """Test inactive Owners do not count towards the owner quorum."""
        dormant = await UserFactory.create(db_session, test_tenant, role=Role.OWNER, is_active=False)

        with pytest.raises(SoleOwnerProtection) as exc_info:
            await RoleGuard.change_role(db_session, owner, dormant.id, Role.EMPLOYEE)

        assert exc_info.value.details["owner_count"] == 1

    async def test_target_in_other_tenant_is_not_found(self, db_session, owner):
        """Test a foreign user id is reported as missing."""
        other_tenant = await TenantFactory.create(db_session)
        stranger = await UserFactory.create(db_session, other_tenant)

        with pytest.raises(NotFoundError):
            await RoleGuard.change_role(db_session, owner, stranger.id, Role.MANAGER)


@pytest.mark.integration
class TestUserStatus:
    """Test deactivation, reactivation and deletion."""

    async def test_deactivate_frees_a_seat(self, db_session, owner, employee):
        """Test deactivation is audited with before and after counts."""
        target = await RoleGuard.deactivate_user(db_session, owner, employee.id)

        assert target.is_active is False

        events = await AuditService.list_events(
            db_session, owner.tenant_id, event_type=LimitEventType.USER_DEACTIVATED
        )
        assert len(events) == 1
        assert events[0].before_count == 2
        assert events[0].after_count == 1

    async def test_cannot_deactivate_self(self, db_session, owner):
        """Test self deactivation is rejected."""
        with pytest.raises(SelfModificationForbidden):
            await RoleGuard.deactivate_user(db_session, owner, owner.id)

    async def test_administrator_cannot_deactivate_owner(self, db_session, owner, administrator):
        """Test a non-Owner cannot deactivate an Owner."""
        with pytest.raises(InsufficientPrivilege):
            await RoleGuard.deactivate_user(db_session, administrator, owner.id)

    async def test_reactivate_within_seat_limit(self, db_session, test_tenant, pro_plan, owner):
        """Test reactivation succeeds when a seat is free."""
        await SubscriptionFactory.create(db_session, test_tenant, pro_plan)
        member = await UserFactory.create(db_session, test_tenant, is_active=False)

        target = await RoleGuard.reactivate_user(db_session, owner, member.id)

        assert target.is_active is True

    async def test_reactivate_blocked_by_seat_limit(self, db_session, test_tenant, free_plan, owner):
        """Test reactivation takes a seat and respects the plan ceiling."""
        member = await UserFactory.create(db_session, test_tenant, is_active=False)

        with pytest.raises(LimitExceededError):
            await RoleGuard.reactivate_user(db_session, owner, member.id)
        await db_session.rollback()

        refreshed = await db_session.get(User, member.id)
        assert refreshed.is_active is False

        events = await AuditService.list_events(
            db_session, owner.tenant_id, event_type=LimitEventType.LIMIT_EXCEEDED
        )
        assert len(events) == 1
        assert events[0].resource == "users"

    async def test_delete_employee(self, db_session, owner, employee):
        """Test a deleted user is gone and the deletion is audited."""
        await RoleGuard.delete_user(db_session, owner, employee.id)

        assert await db_session.get(User, employee.id) is None

        events = await AuditService.list_events(
            db_session, owner.tenant_id, event_type=LimitEventType.USER_DELETED
        )
        assert len(events) == 1
        assert events[0].details["target_user_id"] == employee.id

    async def test_owner_cannot_be_deleted(self, db_session, test_tenant, owner):
        """Test Owners must be demoted before deletion."""
        co_owner = await UserFactory.create(db_session, test_tenant, role=Role.OWNER)

        with pytest.raises(OwnerDeletionForbidden):
            await RoleGuard.delete_user(db_session, owner, co_owner.id)

    async def test_cannot_delete_self(self, db_session, administrator):
        """Test self deletion is rejected."""
        with pytest.raises(SelfModificationForbidden):
            await RoleGuard.delete_user(db_session, administrator, administrator.id)
