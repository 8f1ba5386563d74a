"""
API tests for shop and limit endpoints.
"""

import pytest
from httpx import AsyncClient

from planguard.features.rbac.permissions import Role
from tests.factories import ShopFactory, SubscriptionFactory, TenantFactory, UserFactory, auth_headers


@pytest.mark.api
class TestShopEndpoints:
    """Test shop API endpoints."""

    async def test_create_and_list(self, client: AsyncClient, free_plan, owner):
        """Test creating a shop and seeing it listed."""
        response = await client.post(
            "/api/v1/shops/",
            headers=auth_headers(owner),
            json={"name": "Main street", "city": "Lyon"},
        )

        assert response.status_code == 201
        shop = response.json()
        assert shop["name"] == "Main street"
        assert shop["is_suspended"] is False
        assert shop["created_by_user_id"] == owner.id

        response = await client.get("/api/v1/shops/", headers=auth_headers(owner))
        assert [item["id"] for item in response.json()] == [shop["id"]]

    async def test_create_over_limit(self, client: AsyncClient, db_session, test_tenant, free_plan, owner):
        """Test the shop ceiling answers 403 limit_exceeded."""
        await ShopFactory.create(db_session, test_tenant)

        response = await client.post("/api/v1/shops/", headers=auth_headers(owner), json={"name": "Second"})

        assert response.status_code == 403
        body = response.json()
        assert body["code"] == "limit_exceeded"
        assert body["context"]["plan_name"] == "Free"

    async def test_manager_cannot_create(self, client: AsyncClient, db_session, test_tenant, free_plan):
        manager = await UserFactory.create(db_session, test_tenant, role=Role.MANAGER)

        response = await client.post("/api/v1/shops/", headers=auth_headers(manager), json={"name": "Kiosk"})

        assert response.status_code == 403
        assert response.json()["code"] == "permission_denied"

    async def test_close_shop(self, client: AsyncClient, db_session, test_tenant, free_plan, owner):
        """Test closing frees room for a new shop."""
        shop = await ShopFactory.create(db_session, test_tenant)

        response = await client.delete(f"/api/v1/shops/{shop.id}", headers=auth_headers(owner))
        assert response.status_code == 200
        assert response.json()["is_active"] is False

        response = await client.get("/api/v1/shops/limits", headers=auth_headers(owner))
        assert response.json()["current"] == 0
        assert response.json()["can_add"] is True

    async def test_other_tenant_shop_is_not_found(self, client: AsyncClient, db_session, owner):
        """Test tenant isolation on direct ids."""
        other = await TenantFactory.create(db_session)
        foreign = await ShopFactory.create(db_session, other)

        response = await client.delete(f"/api/v1/shops/{foreign.id}", headers=auth_headers(owner))

        assert response.status_code == 404


@pytest.mark.api
class TestLimitEndpoints:
    """Test limit API endpoints."""

    async def test_all_limits(self, client: AsyncClient, plans, owner):
        response = await client.get("/api/v1/limits/", headers=auth_headers(owner))

        assert response.status_code == 200
        by_resource = {item["resource"]: item for item in response.json()}
        assert set(by_resource) == {"shops", "users", "emails"}
        assert by_resource["emails"]["limit"] == 100
        assert by_resource["users"]["remaining"] == 0

    async def test_single_limit(self, client: AsyncClient, db_session, test_tenant, plans, owner):
        await SubscriptionFactory.create(db_session, test_tenant, plans["Pro"])

        response = await client.get("/api/v1/limits/shops", headers=auth_headers(owner))

        assert response.status_code == 200
        assert response.json()["limit"] == 10
        assert response.json()["plan_name"] == "Pro"

    async def test_unknown_resource(self, client: AsyncClient, owner):
        response = await client.get("/api/v1/limits/warehouses", headers=auth_headers(owner))

        assert response.status_code == 422

    async def test_reserve_emails(self, client: AsyncClient, free_plan, owner):
        response = await client.post(
            "/api/v1/limits/emails/reserve",
            headers=auth_headers(owner),
            json={"recipient_count": 100},
        )

        assert response.status_code == 200
        assert response.json()["can_add"] is False

        response = await client.post(
            "/api/v1/limits/emails/reserve",
            headers=auth_headers(owner),
            json={"recipient_count": 1},
        )
        assert response.status_code == 403
        assert response.json()["code"] == "limit_exceeded"

    async def test_events(self, client: AsyncClient, free_plan, owner):
        """Test the audit trail endpoint with a type filter."""
        await client.post("/api/v1/shops/", headers=auth_headers(owner), json={"name": "First"})
        await client.post("/api/v1/shops/", headers=auth_headers(owner), json={"name": "Second"})

        response = await client.get(
            "/api/v1/limits/events",
            headers=auth_headers(owner),
            params={"event_type": "limit_exceeded"},
        )

        assert response.status_code == 200
        events = response.json()
        assert len(events) == 1
        assert events[0]["resource"] == "shops"
        assert events[0]["metadata"]["requested"] == 1

    async def test_custom_limit_requires_superuser(self, client: AsyncClient, test_tenant, owner):
        response = await client.put(
            f"/api/v1/limits/tenants/{test_tenant.id}/custom",
            headers=auth_headers(owner),
            json={"max_shops": 50, "override_reason": "Self service"},
        )

        assert response.status_code == 403

    async def test_custom_limit_by_superuser(self, client: AsyncClient, test_tenant, free_plan, owner, superuser):
        response = await client.put(
            f"/api/v1/limits/tenants/{test_tenant.id}/custom",
            headers=auth_headers(superuser),
            json={"max_shops": 50, "override_reason": "Franchise pilot"},
        )

        assert response.status_code == 200
        assert response.json()["max_shops"] == 50
        assert response.json()["created_by_user_id"] == superuser.id

        response = await client.get("/api/v1/limits/shops", headers=auth_headers(owner))
        assert response.json()["limit"] == 50
        assert response.json()["is_custom_limit"] is True

        response = await client.delete(
            f"/api/v1/limits/tenants/{test_tenant.id}/custom", headers=auth_headers(superuser)
        )
        assert response.status_code == 200

        response = await client.delete(
            f"/api/v1/limits/tenants/{test_tenant.id}/custom", headers=auth_headers(superuser)
        )
        assert response.status_code == 404

    async def test_custom_limit_needs_a_ceiling(self, client: AsyncClient, test_tenant, superuser):
        response = await client.put(
            f"/api/v1/limits/tenants/{test_tenant.id}/custom",
            headers=auth_headers(superuser),
            json={"override_reason": "Nothing to change"},
        )

        assert response.status_code == 422
