"""
Integration tests for the HTTP API.
"""
from typing import Any, Dict

import pytest
from httpx import AsyncClient

from mowave.core.container import Services

ADMIN_EMAIL = "admin@mowave.com"
ADMIN_PASSWORD = "password"


class TestVoucherEndpoints:
    """Public voucher routes."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_generate_and_list(self, client: AsyncClient) -> None:
        response = await client.post(
            "/vouchers/generate", json={"duration": 24, "price": 10000, "data_limit": "5GB"}
        )

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Voucher generated successfully"
        assert body["data"]["code"].startswith("MW-")

        listing = (await client.get("/vouchers")).json()
        assert listing["count"] == 1
        assert listing["data"][0]["id"] == body["data"]["id"]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_generate_rejects_bad_body(self, client: AsyncClient) -> None:
        response = await client.post("/vouchers/generate", json={"duration": 0, "price": 1000})

        assert response.status_code == 400
        assert response.json()["success"] is False
        assert response.json()["error"] == "VALIDATION_ERROR"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_validate_and_redeem(self, client: AsyncClient, app_services: Services) -> None:
        voucher = app_services.vouchers.create_voucher(24, 10000, "5GB")

        validated = await client.post("/vouchers/validate", json={"code": voucher.code})
        assert validated.status_code == 200
        assert validated.json()["message"] == "Voucher is valid"

        redeemed = await client.post(
            "/vouchers/redeem", json={"code": voucher.code, "user_info": {"device": "laptop"}}
        )
        assert redeemed.status_code == 200
        data = redeemed.json()["data"]
        assert data["voucher"] == {"code": voucher.code, "duration": 24, "data_limit": "5GB"}
        assert data["session"]["is_active"] is True

        again = await client.post("/vouchers/redeem", json={"code": voucher.code})
        assert again.status_code == 400
        assert again.json() == {
            "success": False,
            "message": "Voucher has already been used",
            "error": "VOUCHER_ALREADY_USED",
        }

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_unknown_voucher(self, client: AsyncClient) -> None:
        response = await client.post("/vouchers/validate", json={"code": "MW-00000000"})
        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"

        response = await client.get("/vouchers/missing")
        assert response.status_code == 404


class TestPaymentEndpoints:
    """Payment initiation and status."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_purchase_flow(
        self,
        client: AsyncClient,
        app_services: Services,
        sample_payment_data: Dict[str, Any],
    ) -> None:
        voucher = app_services.vouchers.create_voucher(24, 10000, "5GB")

        response = await client.post(
            "/payments", json={**sample_payment_data, "voucher_id": voucher.id}
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["status"] == "pending"
        assert data["payment_method"] == "mtn_momo"
        assert data["estimated_processing_time"] == "3-5 seconds"

        await app_services.worker.join()
        await app_services.notifier.drain()

        verified = (await client.get(f"/payments/{data['payment_id']}/verify")).json()["data"]
        assert verified["status"] == "success"
        assert verified["transaction_id"].startswith("MTN_")
        assert verified["voucher"]["code"] == voucher.code

        by_reference = (await client.get(f"/payments/reference/{data['reference']}")).json()
        assert by_reference["data"]["status"] == "success"

        details = (await client.get(f"/payments/{data['payment_id']}")).json()["data"]
        assert details["voucher"]["is_used"] is True

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_amount_mismatch(
        self,
        client: AsyncClient,
        app_services: Services,
        sample_payment_data: Dict[str, Any],
    ) -> None:
        voucher = app_services.vouchers.create_voucher(24, 10000, "5GB")

        response = await client.post(
            "/payments", json={**sample_payment_data, "amount": 5000, "voucher_id": voucher.id}
        )

        assert response.status_code == 400
        assert response.json()["error"] == "AMOUNT_MISMATCH"
        assert app_services.store.get_all_payments() == []

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_phone_number_with_plus_is_accepted(
        self,
        client: AsyncClient,
        app_services: Services,
        sample_payment_data: Dict[str, Any],
    ) -> None:
        voucher = app_services.vouchers.create_voucher(24, 10000, "5GB")

        response = await client.post(
            "/payments",
            json={**sample_payment_data, "phone_number": "+256700000000", "voucher_id": voucher.id},
        )

        assert response.status_code == 201
        assert response.json()["data"]["phone_number"] == "256700000000"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_cancel_requires_authentication(
        self,
        client: AsyncClient,
        app_services: Services,
        user_headers: Dict[str, str],
    ) -> None:
        await app_services.worker.stop()
        voucher = app_services.vouchers.create_voucher(24, 10000, "5GB")
        payment = app_services.settlement.initiate(10000, "256700000000", "mtn_momo", voucher.id)

        anonymous = await client.delete(f"/payments/{payment.id}")
        assert anonymous.status_code == 401
        assert anonymous.json()["message"] == "Access token required"

        cancelled = await client.delete(f"/payments/{payment.id}", headers=user_headers)
        assert cancelled.status_code == 200
        assert cancelled.json()["data"]["status"] == "cancelled"

        again = await client.delete(f"/payments/{payment.id}", headers=user_headers)
        assert again.status_code == 400
        assert again.json()["error"] == "INVALID_STATE"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_stats_summary_requires_admin(
        self,
        client: AsyncClient,
        admin_headers: Dict[str, str],
        user_headers: Dict[str, str],
    ) -> None:
        forbidden = await client.get("/payments/stats/summary", headers=user_headers)
        assert forbidden.status_code == 403
        assert forbidden.json()["error"] == "PERMISSION_DENIED"

        allowed = await client.get("/payments/stats/summary", headers=admin_headers)
        assert allowed.status_code == 200
        assert allowed.json()["data"]["total"] == 0


class TestAuthEndpoints:
    """Login and current user."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_login(self, client: AsyncClient) -> None:
        response = await client.post(
            "/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD}
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["token_type"] == "bearer"
        assert data["user"]["role"] == "admin"

        me = await client.get(
            "/auth/me", headers={"Authorization": f"Bearer {data['access_token']}"}
        )
        assert me.json()["data"]["email"] == ADMIN_EMAIL

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_login_with_uppercase_email(self, client: AsyncClient) -> None:
        response = await client.post(
            "/auth/login", json={"email": ADMIN_EMAIL.upper(), "password": ADMIN_PASSWORD}
        )

        assert response.status_code == 200
        assert response.json()["data"]["user"]["email"] == ADMIN_EMAIL

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_login_wrong_password(self, client: AsyncClient) -> None:
        response = await client.post(
            "/auth/login", json={"email": ADMIN_EMAIL, "password": "wrong"}
        )

        assert response.status_code == 401
        assert response.json()["error"] == "AUTHENTICATION_FAILED"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_invalid_token(self, client: AsyncClient) -> None:
        response = await client.get("/auth/me", headers={"Authorization": "Bearer garbage"})

        assert response.status_code == 401
        assert response.json()["message"] == "Invalid token"


class TestAdminEndpoints:
    """Admin routes."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_admin_routes_require_admin(
        self, client: AsyncClient, user_headers: Dict[str, str]
    ) -> None:
        assert (await client.get("/admin/dashboard")).status_code == 401
        assert (await client.get("/admin/dashboard", headers=user_headers)).status_code == 403

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_dashboard(self, client: AsyncClient, admin_headers: Dict[str, str]) -> None:
        response = await client.get("/admin/dashboard", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert set(data) == {
            "overview",
            "recent_payments",
            "recent_vouchers",
            "recent_users",
            "analytics",
        }
        assert len(data["analytics"]["monthly_revenue"]) == 12

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_voucher_management(
        self, client: AsyncClient, admin_headers: Dict[str, str]
    ) -> None:
        created = await client.post(
            "/admin/vouchers",
            json={"duration": 6, "price": 5000, "data_limit": "2GB", "quantity": 3},
            headers=admin_headers,
        )
        assert created.status_code == 201
        assert created.json()["message"] == "3 voucher(s) created successfully"
        voucher_id = created.json()["data"][0]["id"]

        page = await client.get(
            "/admin/vouchers", params={"limit": 2, "page": 2}, headers=admin_headers
        )
        assert page.json()["pagination"] == {"page": 2, "limit": 2, "total": 3, "pages": 2}

        updated = await client.put(
            f"/admin/vouchers/{voucher_id}",
            json={"price": 6000, "status": "inactive"},
            headers=admin_headers,
        )
        assert updated.json()["data"]["price"] == 6000
        assert updated.json()["data"]["status"] == "inactive"

        deleted = await client.delete(f"/admin/vouchers/{voucher_id}", headers=admin_headers)
        assert deleted.json() == {"success": True, "message": "Voucher deleted successfully"}

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_bulk_vouchers_report_errors(
        self, client: AsyncClient, admin_headers: Dict[str, str]
    ) -> None:
        response = await client.post(
            "/admin/bulk/vouchers",
            json={
                "vouchers": [
                    {"duration": 1, "price": 1000, "data_limit": "500MB", "quantity": 2},
                    {"duration": 24, "price": 10000},
                ]
            },
            headers=admin_headers,
        )

        assert response.status_code == 201
        body = response.json()
        assert len(body["data"]) == 2
        assert body["errors"] == ["Voucher 2: Duration, price, and data_limit are required"]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_user_management(
        self, client: AsyncClient, admin_headers: Dict[str, str]
    ) -> None:
        created = await client.post(
            "/admin/users",
            json={"email": "Staff@Example.com", "password": "pass1234", "role": "admin"},
            headers=admin_headers,
        )
        assert created.status_code == 201
        user = created.json()["data"]
        assert user["email"] == "staff@example.com"

        duplicate = await client.post(
            "/admin/users",
            json={"email": "staff@example.com", "password": "pass1234"},
            headers=admin_headers,
        )
        assert duplicate.status_code == 400

        listing = await client.get(
            "/admin/users", params={"role": "admin"}, headers=admin_headers
        )
        assert listing.json()["pagination"]["total"] == 2

        deactivated = await client.put(
            f"/admin/users/{user['id']}", json={"is_active": False}, headers=admin_headers
        )
        assert deactivated.json()["data"]["is_active"] is False

        deleted = await client.delete(f"/admin/users/{user['id']}", headers=admin_headers)
        assert deleted.status_code == 200

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_admin_cannot_delete_self(
        self, client: AsyncClient, app_services: Services, admin_headers: Dict[str, str]
    ) -> None:
        admin = app_services.store.get_user_by_email(ADMIN_EMAIL)

        response = await client.delete(f"/admin/users/{admin.id}", headers=admin_headers)

        assert response.status_code == 400
        assert response.json()["message"] == "Cannot delete your own account"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_payment_correction(
        self, client: AsyncClient, app_services: Services, admin_headers: Dict[str, str]
    ) -> None:
        voucher = app_services.vouchers.create_voucher(24, 10000, "5GB")
        payment = app_services.settlement.initiate(10000, "256700000000", "mtn_momo", voucher.id)
        await app_services.worker.join()

        listing = await client.get(
            "/admin/payments", params={"status": "success"}, headers=admin_headers
        )
        assert listing.json()["pagination"]["total"] == 1
        listed = listing.json()["data"][0]
        assert listed["id"] == payment.id
        assert listed["voucher"]["code"] == voucher.code
        assert listed["voucher"]["data_limit"] == "5GB"
        assert listed["voucher"]["duration"] == 24
        assert listed["voucher"]["is_used"] is True

        corrected = await client.put(
            f"/admin/payments/{payment.id}",
            json={"status": "failed", "notes": "chargeback"},
            headers=admin_headers,
        )
        assert corrected.status_code == 200
        assert corrected.json()["data"]["error_code"] == "ADMIN_CORRECTION"
        assert voucher.is_used is False

        illegal = await client.put(
            f"/admin/payments/{payment.id}", json={"status": "pending"}, headers=admin_headers
        )
        assert illegal.status_code == 400
        assert illegal.json()["error"] == "INVALID_STATE"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_analytics(self, client: AsyncClient, admin_headers: Dict[str, str]) -> None:
        revenue = await client.get(
            "/admin/analytics/revenue", params={"period": "week"}, headers=admin_headers
        )
        assert revenue.json()["data"]["summary"]["period"] == "week"

        bad_period = await client.get(
            "/admin/analytics/revenue", params={"period": "decade"}, headers=admin_headers
        )
        assert bad_period.status_code == 400

        vouchers = await client.get("/admin/analytics/vouchers", headers=admin_headers)
        assert len(vouchers.json()["data"]["daily_usage"]) == 30

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_sms_logs(
        self, client: AsyncClient, app_services: Services, admin_headers: Dict[str, str]
    ) -> None:
        voucher = app_services.vouchers.create_voucher(24, 10000, "5GB")
        app_services.settlement.initiate(10000, "256700000000", "mtn_momo", voucher.id)
        await app_services.worker.join()
        await app_services.notifier.drain()

        logs = await client.get("/admin/sms/logs", headers=admin_headers)
        assert logs.json()["data"][0]["kind"] == "voucher_code"
        assert logs.json()["data"][0]["phone_number"] == "+256700000000"

        stats = await client.get("/admin/sms/stats", headers=admin_headers)
        assert stats.json()["data"]["successful"] == 1


class TestMonitoringEndpoints:
    """Health, metrics and the root endpoint."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient) -> None:
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["checks"]["settlement_worker"]["concurrency"] == 2

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_readiness_fails_without_worker(
        self, client: AsyncClient, app_services: Services
    ) -> None:
        await app_services.worker.stop()

        response = await client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["error"] == "HTTP_503"
        assert response.json()["details"]["status"] == "unhealthy"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_liveness(self, client: AsyncClient) -> None:
        response = await client.get("/health/live")
        assert response.json()["status"] == "alive"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_metrics(self, client: AsyncClient) -> None:
        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "mowave_payments_initiated_total" in response.text

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_request_id_is_echoed(self, client: AsyncClient) -> None:
        response = await client.get("/", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"
        assert response.json()["status"] == "operational"
