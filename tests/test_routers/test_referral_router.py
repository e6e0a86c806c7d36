"""Tests for the referral endpoints."""

from tests.helpers import INTERNAL_HEADERS, bearer, create_test_user


async def test_referral_flow(client, db, user, auth_headers):
    invitee = await create_test_user(db)
    invitee_headers = bearer(invitee)

    code = (await client.get("/referral/code", headers=auth_headers)).json()["code"]
    validated = await client.get(f"/referral/validate/{code.lower()}")
    bound = await client.post("/referral/bind", json={"code": f" {code.lower()} "}, headers=invitee_headers)
    completed = await client.post("/referral/complete",
                                  json={"invitee_id": invitee.id, "task_type": "verified_email"},
                                  headers=INTERNAL_HEADERS)
    stats = await client.get("/referral/stats", headers=auth_headers)
    inviter_balance = await client.get("/credits/balance", headers=auth_headers)

    assert validated.json()["inviter_id"] == user.id
    assert bound.status_code == 200
    assert bound.json()["inviter_id"] == user.id
    assert completed.json()["inviter_reward"] == 10
    assert stats.json()["successful_invites"] == 1
    assert inviter_balance.json()["balance"] == 10


async def test_bind_own_code(client, auth_headers):
    code = (await client.get("/referral/code", headers=auth_headers)).json()["code"]

    response = await client.post("/referral/bind", json={"code": code}, headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_INPUT"


async def test_validate_unknown_code(client):
    response = await client.get("/referral/validate/NOPE2345")

    assert response.status_code == 404


async def test_complete_requires_api_key(client, user):
    response = await client.post("/referral/complete", json={"invitee_id": user.id})

    assert response.status_code == 422


async def test_complete_twice(client, db, user):
    invitee = await create_test_user(db)
    code = (await client.get("/referral/code", headers=bearer(user))).json()["code"]
    await client.post("/referral/bind", json={"code": code}, headers=bearer(invitee))
    payload = {"invitee_id": invitee.id}

    first = await client.post("/referral/complete", json=payload, headers=INTERNAL_HEADERS)
    second = await client.post("/referral/complete", json=payload, headers=INTERNAL_HEADERS)

    assert first.status_code == 200
    assert second.status_code == 409
    assert second.json()["error"] == "ALREADY_DONE"
