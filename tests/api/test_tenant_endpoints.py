"""
API tests for tenant, health and metrics endpoints.
"""

import pytest
from httpx import AsyncClient

from tests.factories import ShopFactory, auth_headers


@pytest.mark.api
class TestTenantEndpoints:
    """Test tenant API endpoints."""

    async def test_my_tenant_with_usage(self, client: AsyncClient, db_session, test_tenant, free_plan, owner):
        """Test members see their tenant with the effective plan and usage."""
        await ShopFactory.create(db_session, test_tenant)

        response = await client.get("/api/v1/tenants/me", headers=auth_headers(owner))

        assert response.status_code == 200
        data = response.json()
        assert data["slug"] == "test-corp"
        assert data["plan_name"] == "Free"
        shops = next(item for item in data["usage"] if item["resource"] == "shops")
        assert shops["current"] == 1
        assert shops["can_add"] is False

    async def test_list_tenants_superuser_only(self, client: AsyncClient, owner, superuser):
        response = await client.get("/api/v1/tenants/", headers=auth_headers(owner))
        assert response.status_code == 403

        response = await client.get("/api/v1/tenants/", headers=auth_headers(superuser))
        assert response.status_code == 200
        assert {tenant["slug"] for tenant in response.json()} == {"test-corp", "operators"}


@pytest.mark.api
class TestOperationalEndpoints:
    """Test probes and metrics."""

    async def test_liveness(self, client: AsyncClient):
        response = await client.get("/health/live")

        assert response.status_code == 200
        assert response.json() == {"status": "alive"}

    async def test_metrics_exposes_domain_counters(self, client: AsyncClient, free_plan, owner):
        """Test limit checks show up in the Prometheus exposition."""
        await client.get("/api/v1/limits/shops", headers=auth_headers(owner))

        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "limit_checks_total" in response.text
        assert "http_requests_total" in response.text

    async def test_request_id_header(self, client: AsyncClient):
        response = await client.get("/health/live")

        assert len(response.headers["X-Request-ID"]) == 36

    async def test_openapi_documents_error_body(self, client: AsyncClient):
        """Test domain error responses are described in the schema."""
        response = await client.get("/openapi.json")

        assert response.status_code == 200
        schema = response.json()
        assert "ErrorResponse" in schema["components"]["schemas"]
        create_shop = schema["paths"]["/api/v1/shops/"]["post"]
        assert "403" in create_shop["responses"]
