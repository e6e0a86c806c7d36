"""Tests for the credit endpoints."""

from economy.services.credit import CreditService

from tests.helpers import INTERNAL_HEADERS


class TestUserEndpoints:
    async def test_balance_requires_token(self, client):
        response = await client.get("/credits/balance")

        assert response.status_code == 401
        assert response.json()["error"] == "Unauthorized"

    async def test_balance_of_new_user(self, client, user, auth_headers):
        response = await client.get("/credits/balance", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {"user_id": user.id, "balance": 0, "total_recharged": 0, "total_consumed": 0}

    async def test_check_reports_shortage(self, client, db, user, auth_headers):
        await CreditService(db).recharge(user.id, 3)

        response = await client.post("/credits/check", json={"units": 5}, headers=auth_headers)

        assert response.json() == {"sufficient": False, "balance": 3, "required": 5, "shortage": 2}

    async def test_transactions(self, client, db, user, auth_headers):
        service = CreditService(db)
        await service.recharge(user.id, 10)
        await service.consume(user.id, 4)

        response = await client.get("/credits/transactions", headers=auth_headers)

        data = response.json()
        assert data["total_count"] == 2
        assert [t["amount"] for t in data["transactions"]] == [-4, 10]

    async def test_redeem_unknown_code(self, client, user, auth_headers):
        response = await client.post("/credits/redeem", json={"code": "missing"}, headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"


class TestInternalEndpoints:
    async def test_consume_needs_api_key(self, client, user):
        response = await client.post(f"/credits/consume?user_id={user.id}", json={"units": 1},
                                     headers={"api-key": "wrong"})

        assert response.status_code == 403

    async def test_consume_insufficient_balance(self, client, db, user):
        await CreditService(db).recharge(user.id, 2)

        response = await client.post(f"/credits/consume?user_id={user.id}", json={"units": 5},
                                     headers=INTERNAL_HEADERS)

        assert response.status_code == 402
        body = response.json()
        assert body["error"] == "INSUFFICIENT_BALANCE"
        assert body["details"]["balance"] == 2
        assert "request_id" in body

    async def test_recharge_then_consume(self, client, user):
        recharge = await client.post(f"/credits/recharge?user_id={user.id}",
                                     json={"units": 10, "idempotency_key": "order-1"},
                                     headers=INTERNAL_HEADERS)
        consume = await client.post(f"/credits/consume?user_id={user.id}",
                                    json={"units": 4, "related_id": "gen-1", "related_type": "generation"},
                                    headers=INTERNAL_HEADERS)

        assert recharge.json()["balance"] == 10
        assert consume.status_code == 200
        assert consume.json()["balance"] == 6

    async def test_invalid_units(self, client, user):
        response = await client.post(f"/credits/consume?user_id={user.id}", json={"units": 0},
                                     headers=INTERNAL_HEADERS)

        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_INPUT"

    async def test_unknown_user_is_not_found(self, client, db):
        response = await client.post("/credits/recharge?user_id=nobody", json={"units": 10},
                                     headers=INTERNAL_HEADERS)

        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"
        assert await CreditService(db).base_service.get_account("nobody") is None


class TestAdminAdjust:
    async def test_non_admin_is_forbidden(self, client, user, auth_headers):
        response = await client.post("/credits/admin/adjust", json={"user_id": user.id, "delta": 5},
                                     headers=auth_headers)

        assert response.status_code == 403
        assert response.json()["error"] == "Forbidden"

    async def test_admin_adjusts(self, client, user, admin_headers):
        response = await client.post("/credits/admin/adjust",
                                     json={"user_id": user.id, "delta": 7, "note": "support"},
                                     headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["balance"] == 7
