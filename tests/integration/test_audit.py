"""
Integration tests for the audit logger.
"""

from datetime import timedelta

import pytest
from prometheus_client import REGISTRY
from sqlalchemy.exc import OperationalError

from planguard.features.audit.service import AuditService
from planguard.features.rbac.guard import RoleGuard
from planguard.features.rbac.permissions import Role
from planguard.models.base import utcnow
from planguard.models.limit_event import LimitEventType, ResourceKind
from tests.factories import TenantFactory


def _failures(event_type: str) -> float:
    return REGISTRY.get_sample_value(
        "audit_write_failures_total", {"event_type": event_type}
    ) or 0.0


@pytest.mark.integration
class TestAuditService:
    """Test audit record storage and retrieval."""

    async def test_record_is_stored_with_caller_commit(self, db_session, test_tenant, owner):
        """Test a record becomes visible once the caller commits."""
        await AuditService.record(
            db_session,
            test_tenant.id,
            LimitEventType.LIMIT_REACHED,
            before_count=2,
            after_count=3,
            resource=ResourceKind.SHOPS,
            limit_value=3,
            actor_user_id=owner.id,
            metadata={"source": "test"},
        )
        await db_session.commit()

        events = await AuditService.list_events(db_session, test_tenant.id)

        assert len(events) == 1
        assert events[0].event_type == "limit_reached"
        assert events[0].resource == "shops"
        assert events[0].details == {"source": "test"}

    async def test_record_rolls_back_with_caller(self, db_session, test_tenant):
        """Test a record is part of the caller's unit of work."""
        tenant_id = test_tenant.id
        await AuditService.record(db_session, tenant_id, LimitEventType.PLAN_CHANGED)
        await db_session.rollback()

        assert await AuditService.list_events(db_session, tenant_id) == []

    async def test_events_newest_first_and_filtered(self, db_session, test_tenant):
        """Test ordering, type filter and time range."""
        for event_type in (
            LimitEventType.SHOP_CREATED,
            LimitEventType.LIMIT_REACHED,
            LimitEventType.LIMIT_EXCEEDED,
        ):
            await AuditService.record(db_session, test_tenant.id, event_type, resource=ResourceKind.SHOPS)
            await db_session.commit()

        events = await AuditService.list_events(db_session, test_tenant.id)
        assert [event.event_type for event in events] == ["limit_exceeded", "limit_reached", "shop_created"]
        assert events[0].created_at >= events[-1].created_at

        created = await AuditService.list_events(
            db_session, test_tenant.id, event_type=LimitEventType.SHOP_CREATED
        )
        assert len(created) == 1

        limited = await AuditService.list_events(db_session, test_tenant.id, limit=1)
        assert len(limited) == 1

        future = await AuditService.list_events(
            db_session, test_tenant.id, from_date=utcnow() + timedelta(hours=1)
        )
        assert future == []

    async def test_events_are_tenant_scoped(self, db_session, test_tenant):
        """Test one tenant never sees another tenant's trail."""
        other = await TenantFactory.create(db_session)
        await AuditService.record(db_session, other.id, LimitEventType.PLAN_CHANGED)
        await db_session.commit()

        assert await AuditService.list_events(db_session, test_tenant.id) == []

    async def test_storage_failure_does_not_fail_the_operation(
        self, db_session, monkeypatch, owner, employee
    ):
        """Test a failing audit insert is reported and swallowed."""
        before = _failures("role_changed")

        def broken_savepoint(*args, **kwargs):
            raise OperationalError("INSERT INTO limit_events", {}, Exception("disk full"))

        monkeypatch.setattr(db_session, "begin_nested", broken_savepoint)

        updated = await RoleGuard.change_role(db_session, owner, employee.id, Role.MANAGER)
        monkeypatch.undo()

        assert updated.role == Role.MANAGER.value
        assert _failures("role_changed") == before + 1
        assert await AuditService.list_events(db_session, owner.tenant_id) == []
