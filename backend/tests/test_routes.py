# backend/tests/test_routes.py

import httpx
import pytest
from bson import ObjectId

from app.api.dependencies import get_engine, get_reward_issuer
from app.core.exceptions import TransientDependencyError
from app.core.security import create_access_token
from app.db.mongodb import get_db
from app.main import app
from app.services.progression.reward_issuer import LoggingRewardIssuer
from app.shared.constants import COLL_CHALLENGES

from conftest import BAKERY_TBILISI


@pytest.fixture
async def client(catalog_db):
    # pas de lifespan : ni index ni seed sur la vraie base
    app.dependency_overrides[get_db] = lambda: catalog_db
    app.dependency_overrides[get_reward_issuer] = LoggingRewardIssuer
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def user_headers(user_id):
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user_id), 'role': 'user'})}"}


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {create_access_token({'sub': str(ObjectId()), 'role': 'admin'})}"}


async def test_ping_and_levels(client):
    r = await client.get("/ping")
    assert r.status_code == 200
    assert r.json()["message"] == "pong"

    r = await client.get("/levels")
    levels = r.json()
    assert len(levels) == 10
    assert levels[0] == {"level": 1, "name": "Beginner", "min_xp": 0}
    assert levels[-1]["min_xp"] == 2250


async def test_requires_authentication(client):
    r = await client.get("/my/progression")
    assert r.status_code == 401
    body = r.json()
    assert body["success"] is False
    assert body["error"]["code"] == "HTTP_401"

    r = await client.get("/my/progression", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401


async def test_admin_routes_require_admin_role(client, user_headers):
    r = await client.get("/admin/challenges/issues", headers=user_headers)
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "HTTP_403"


async def test_post_activity_updates_progression(client, user_headers, user_id, make_challenge):
    trail = await make_challenge("First bite", {"kind": "count", "activity_type": "check_in", "target": 1}, xp_reward=20)

    r = await client.post(
        "/activities",
        json={"activity_type": "check_in", "venue_id": str(BAKERY_TBILISI), "event_id": "evt-1"},
        headers=user_headers,
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["duplicate"] is False
    assert body["xp_gained"] == 20
    assert body["challenges_completed"][0]["challenge_id"] == str(trail.id)
    assert body["progression"]["user_id"] == str(user_id)

    r = await client.get("/my/progression", headers=user_headers)
    assert r.json()["xp"] == 20
    assert r.json()["badges"] == ["First bite"]

    r = await client.get(f"/my/challenges/{trail.id}", headers=user_headers)
    assert r.status_code == 200
    assert (r.json()["state"], r.json()["percentage"]) == ("rewarded", 100)


async def test_my_challenges_grouped_by_category(client, user_headers, make_challenge):
    await make_challenge("First bite", {"kind": "count", "activity_type": "check_in", "target": 1})
    await make_challenge("Pair", {"kind": "menu_combo", "items": ["wine", "salad"], "required_count": 2})

    r = await client.get("/my/challenges", headers=user_headers)
    assert r.status_code == 200
    body = r.json()
    assert list(body["groups"]) == ["special", "menu_combo", "venue", "combo", "regular"]
    assert [c["name"] for c in body["groups"]["menu_combo"]] == ["Pair"]
    assert body["groups"]["regular"][0]["state"] == "not_started"
    assert (body["total"], body["completed"]) == (2, 0)

    r = await client.get("/my/challenges", params={"category": "menu_combo"}, headers=user_headers)
    assert list(r.json()["groups"]) == ["menu_combo"]


async def test_unknown_challenge_is_404(client, user_headers):
    r = await client.get(f"/my/challenges/{ObjectId()}", headers=user_headers)
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "HTTP_404"


async def test_invalid_activity_is_422(client, user_headers):
    r = await client.post("/activities", json={"activity_type": "check_in"}, headers=user_headers)
    assert r.status_code == 422
    assert r.json()["error"]["code"] == "VALIDATION_ERROR"


async def test_oversized_body_is_413(client, user_headers):
    payload = {"activity_type": "order", "venue_id": str(BAKERY_TBILISI), "items": ["x" * 1000] * 100}
    r = await client.post("/activities", json=payload, headers=user_headers)
    assert r.status_code == 413
    assert r.json()["error"]["code"] == "PAYLOAD_TOO_LARGE"


async def test_transient_failure_is_503_envelope(client, user_headers):
    class UnavailableEngine:
        async def handle_activity(self, user_id, payload):
            raise TransientDependencyError("progress store unavailable")

    app.dependency_overrides[get_engine] = UnavailableEngine

    r = await client.post("/activities", json={"activity_type": "review"}, headers=user_headers)

    assert r.status_code == 503
    assert r.headers["Retry-After"] == "5"
    assert r.json() == {
        "success": False,
        "error": {"code": "TRANSIENT_DEPENDENCY_ERROR", "message": "Service temporarily unavailable, try again later"},
    }


async def test_admin_lists_config_issues(client, admin_headers, make_challenge):
    broken = await make_challenge("Lost", {"kind": "required_venues", "venue_ids": [str(ObjectId())]})

    r = await client.get("/admin/challenges/issues", params={"rescan": "true"}, headers=admin_headers)

    assert r.status_code == 200
    issues = r.json()
    assert [i["challenge_id"] for i in issues] == [str(broken.id)]
    assert issues[0]["code"] == "CHALLENGE_CONFIGURATION_ERROR"


async def test_admin_reprocess_and_reward_retry(client, admin_headers, user_id):
    r = await client.post("/admin/progression/reprocess", headers=admin_headers)
    assert r.json() == {"processed": 0, "still_parked": 0}

    r = await client.post(f"/admin/progression/{user_id}/rewards/retry", headers=admin_headers)
    assert r.status_code == 200
    assert r.json() == {"user_id": str(user_id), "rewards_unlocked": []}


async def test_my_rewards_list_and_redeem(client, user_headers, make_challenge):
    await make_challenge(
        "First bite",
        {"kind": "count", "activity_type": "check_in", "target": 1},
        reward={"kind": "discount", "value": "-10%", "valid_days": 7},
    )
    await client.post("/activities", json={"activity_type": "check_in", "venue_id": str(BAKERY_TBILISI)}, headers=user_headers)

    r = await client.get("/my/rewards", headers=user_headers)
    assert r.status_code == 200
    rewards = r.json()
    assert [(x["challenge_name"], x["kind"], x["value"], x["redeemed"]) for x in rewards] == [
        ("First bite", "discount", "-10%", False)
    ]
    assert rewards[0]["expires_at"] is not None

    r = await client.post(f"/my/rewards/{rewards[0]['id']}/redeem", headers=user_headers)
    assert r.status_code == 200
    assert r.json()["redeemed"] is True

    r = await client.post(f"/my/rewards/{rewards[0]['id']}/redeem", headers=user_headers)
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "ALREADY_REDEEMED"

    r = await client.get("/my/rewards", params={"redeemed": "false"}, headers=user_headers)
    assert r.json() == []


async def test_redeem_unknown_reward_is_404(client, user_headers):
    r = await client.post(f"/my/rewards/{ObjectId()}/redeem", headers=user_headers)
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "HTTP_404"


async def test_admin_recompute_backfills_fixed_challenge(client, admin_headers, user_headers, user_id, make_challenge, catalog_db):
    broken = await make_challenge("Tbilisi bakery", {"kind": "required_venues", "venue_ids": [str(ObjectId())]}, xp_reward=40)
    await client.post("/activities", json={"activity_type": "check_in", "venue_id": str(BAKERY_TBILISI)}, headers=user_headers)

    await catalog_db[COLL_CHALLENGES].update_one(
        {"_id": broken.id}, {"$set": {"requirement.venue_ids": [BAKERY_TBILISI]}}
    )

    r = await client.post(f"/admin/progression/{user_id}/recompute", headers=admin_headers)
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["user_id"] == str(user_id)
    assert [c["name"] for c in body["challenges_completed"]] == ["Tbilisi bakery"]
    assert body["progression"]["xp"] == 40

    r = await client.post(f"/admin/progression/{user_id}/recompute", headers=admin_headers)
    assert r.json()["challenges_completed"] == []
    assert r.json()["progression"]["xp"] == 40


async def test_recompute_requires_admin_role(client, user_headers, user_id):
    r = await client.post(f"/admin/progression/{user_id}/recompute", headers=user_headers)
    assert r.status_code == 403
