"""Tests for the points, check-in and exchange endpoints."""

from datetime import date

from economy.services.points import PointService

from tests.helpers import business_day, create_rate, seed_checkin_ladder

DAY = date(2026, 3, 10)


class TestCheckIn:
    async def test_repeat_check_in_is_not_an_error(self, client, db, auth_headers):
        await seed_checkin_ladder(db)

        with business_day(DAY):
            first = await client.post("/points/checkin", headers=auth_headers)
            second = await client.post("/points/checkin", headers=auth_headers)

        assert first.status_code == 200
        assert first.json()["success"] is True
        assert first.json()["points_awarded"] == 10
        assert second.status_code == 200
        assert second.json()["success"] is False
        assert second.json()["reason"] == "ALREADY_DONE"
        assert second.json()["balance"] == 10

    async def test_status(self, client, db, auth_headers):
        await seed_checkin_ladder(db)

        with business_day(DAY):
            await client.post("/points/checkin", headers=auth_headers)
            response = await client.get("/points/checkin/status", headers=auth_headers)

        data = response.json()
        assert data["has_checked_in_today"] is True
        assert data["consecutive_days"] == 1
        assert data["today"] == "2026-03-10"

    async def test_requires_token(self, client):
        assert (await client.post("/points/checkin")).status_code == 401


class TestExchange:
    async def test_exchange(self, client, db, user, auth_headers):
        rate = await create_rate(db, points_required=100, credits_received=1)
        await PointService(db).grant(user.id, 250)

        rates = await client.get("/points/exchange-rates", headers=auth_headers)
        response = await client.post("/points/exchange", json={"credits": 2, "rate_id": rate.id},
                                     headers=auth_headers)
        history = await client.get("/points/exchange-history", headers=auth_headers)
        balance = await client.get("/credits/balance", headers=auth_headers)

        assert [r["id"] for r in rates.json()] == [rate.id]
        assert response.status_code == 200
        assert response.json()["points_spent"] == 200
        assert response.json()["point_balance"] == 50
        assert len(history.json()) == 1
        assert balance.json()["balance"] == 2

    async def test_insufficient_points(self, client, db, user, auth_headers):
        await create_rate(db)
        await PointService(db).grant(user.id, 50)

        response = await client.post("/points/exchange", json={"credits": 1}, headers=auth_headers)

        assert response.status_code == 402
        assert response.json()["error"] == "INSUFFICIENT_POINTS"
        assert response.json()["details"]["point_balance"] == 50


class TestAdminGrant:
    async def test_admin_grant(self, client, user, admin_headers, auth_headers):
        response = await client.post("/points/admin/grant", json={"user_id": user.id, "points": 30},
                                     headers=admin_headers)
        transactions = await client.get("/points/transactions", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["balance"] == 30
        assert transactions.json()["transactions"][0]["source"] == "admin"

    async def test_non_admin_grant(self, client, user, auth_headers):
        response = await client.post("/points/admin/grant", json={"user_id": user.id, "points": 30},
                                     headers=auth_headers)

        assert response.status_code == 403
