"""
API tests for user and role endpoints.
"""

import pytest
from httpx import AsyncClient

from planguard.features.rbac.permissions import Role
from tests.factories import SubscriptionFactory, UserFactory, auth_headers


@pytest.mark.api
class TestUserEndpoints:
    """Test user API endpoints."""

    async def test_requires_authentication(self, client: AsyncClient):
        """Test anonymous requests are rejected."""
        response = await client.get("/api/v1/users/")

        assert response.status_code == 401

    async def test_list_users(self, client: AsyncClient, owner, employee):
        """Test listing users of the caller's tenant."""
        response = await client.get("/api/v1/users/", headers=auth_headers(owner))

        assert response.status_code == 200
        emails = {user["email"] for user in response.json()}
        assert emails == {"owner@example.com", "employee@example.com"}

    async def test_employee_cannot_list_users(self, client: AsyncClient, employee):
        """Test the permission table is enforced with a structured error."""
        response = await client.get("/api/v1/users/", headers=auth_headers(employee))

        assert response.status_code == 403
        body = response.json()
        assert body["code"] == "permission_denied"
        assert body["context"] == {"permission": "users.view", "role": "Employee"}

    async def test_create_user_needs_plan_feature(self, client: AsyncClient, free_plan, owner):
        """Test the free plan does not allow user management."""
        response = await client.post(
            "/api/v1/users/",
            headers=auth_headers(owner),
            json={"email": "new@example.com", "role": "Employee"},
        )

        assert response.status_code == 403
        assert response.json()["code"] == "plan_feature_unavailable"

    async def test_create_user(self, client: AsyncClient, db_session, test_tenant, plans, owner):
        """Test adding a user on a plan with free seats."""
        await SubscriptionFactory.create(db_session, test_tenant, plans["Plus"])

        response = await client.post(
            "/api/v1/users/",
            headers=auth_headers(owner),
            json={"email": "New.Hire@Example.com", "first_name": "New", "role": "Manager"},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["email"] == "new.hire@example.com"
        assert data["full_name"] == "New"
        assert data["role"] == "Manager"
        assert data["tenant_id"] == test_tenant.id

    async def test_create_user_over_seat_limit(self, client: AsyncClient, db_session, test_tenant, plans, owner):
        """Test a full plan answers 403 limit_exceeded with usage details."""
        await SubscriptionFactory.create(db_session, test_tenant, plans["Plus"])
        await UserFactory.create_batch(db_session, test_tenant, count=2)

        response = await client.post(
            "/api/v1/users/",
            headers=auth_headers(owner),
            json={"email": "fourth@example.com"},
        )

        assert response.status_code == 403
        body = response.json()
        assert body["code"] == "limit_exceeded"
        assert body["context"]["resource"] == "users"
        assert body["context"]["current"] == 3
        assert body["context"]["limit"] == 3

    async def test_create_owner_is_refused(self, client: AsyncClient, db_session, test_tenant, plans, owner):
        await SubscriptionFactory.create(db_session, test_tenant, plans["Pro"])

        response = await client.post(
            "/api/v1/users/",
            headers=auth_headers(owner),
            json={"email": "boss@example.com", "role": "Owner"},
        )

        assert response.status_code == 403
        assert response.json()["code"] == "insufficient_privilege"

    async def test_invalid_payload(self, client: AsyncClient, owner):
        """Test validation errors are reported without echoing input."""
        response = await client.post(
            "/api/v1/users/",
            headers=auth_headers(owner),
            json={"email": "not-an-email"},
        )

        assert response.status_code == 422
        body = response.json()
        assert body["code"] == "validation_error"
        assert "not-an-email" not in response.text

    async def test_delete_owner_forbidden(self, client: AsyncClient, db_session, test_tenant, owner):
        """Test Owners cannot be deleted through the API."""
        co_owner = await UserFactory.create(db_session, test_tenant, role=Role.OWNER)

        response = await client.delete(f"/api/v1/users/{co_owner.id}", headers=auth_headers(owner))

        assert response.status_code == 403
        assert response.json()["code"] == "owner_deletion_forbidden"

    async def test_delete_employee(self, client: AsyncClient, owner, employee):
        response = await client.delete(f"/api/v1/users/{employee.id}", headers=auth_headers(owner))

        assert response.status_code == 204

    async def test_deactivated_user_is_locked_out(self, client: AsyncClient, owner, employee):
        """Test a deactivated user's token stops working."""
        response = await client.post(
            f"/api/v1/users/{employee.id}/deactivate", headers=auth_headers(owner)
        )
        assert response.status_code == 200
        assert response.json()["is_active"] is False

        response = await client.get("/api/v1/roles/me/permissions", headers=auth_headers(employee))
        assert response.status_code == 403


@pytest.mark.api
class TestRoleEndpoints:
    """Test role API endpoints."""

    async def test_role_catalog(self, client: AsyncClient, owner, administrator, employee):
        """Test the catalog lists the four roles, strongest first, with counts."""
        response = await client.get("/api/v1/roles/", headers=auth_headers(owner))

        assert response.status_code == 200
        data = response.json()
        assert [role["name"] for role in data["roles"]] == ["Owner", "Administrator", "Manager", "Employee"]
        counts = {role["name"]: role["user_count"] for role in data["roles"]}
        assert counts == {"Owner": 1, "Administrator": 1, "Manager": 0, "Employee": 1}
        assert len(data["permission_categories"]) == 13

    async def test_my_permissions(self, client: AsyncClient, employee):
        response = await client.get("/api/v1/roles/me/permissions", headers=auth_headers(employee))

        assert response.status_code == 200
        data = response.json()
        assert data["role"] == "Employee"
        assert data["permissions"]["contacts.create"] is True
        assert data["permissions"]["users.view"] is False
        assert len(data["permissions"]) == 40

    async def test_change_role_needs_plan_feature(self, client: AsyncClient, free_plan, owner, employee):
        response = await client.patch(
            f"/api/v1/roles/users/{employee.id}/role",
            headers=auth_headers(owner),
            json={"role": "Manager"},
        )

        assert response.status_code == 403
        assert response.json()["code"] == "plan_feature_unavailable"

    async def test_change_role(self, client: AsyncClient, db_session, test_tenant, plans, owner, employee):
        await SubscriptionFactory.create(db_session, test_tenant, plans["Pro"])

        response = await client.patch(
            f"/api/v1/roles/users/{employee.id}/role",
            headers=auth_headers(owner),
            json={"role": "Manager"},
        )

        assert response.status_code == 200
        assert response.json()["role"] == "Manager"

    async def test_change_own_role(self, client: AsyncClient, db_session, test_tenant, plans, owner):
        await SubscriptionFactory.create(db_session, test_tenant, plans["Pro"])

        response = await client.patch(
            f"/api/v1/roles/users/{owner.id}/role",
            headers=auth_headers(owner),
            json={"role": "Administrator"},
        )

        assert response.status_code == 403
        assert response.json()["code"] == "self_role_change_forbidden"

    async def test_manager_cannot_change_roles(self, client: AsyncClient, db_session, test_tenant, employee):
        manager = await UserFactory.create(db_session, test_tenant, role=Role.MANAGER)

        response = await client.patch(
            f"/api/v1/roles/users/{employee.id}/role",
            headers=auth_headers(manager),
            json={"role": "Administrator"},
        )

        assert response.status_code == 403
        assert response.json()["code"] == "permission_denied"
