# backend/tests/test_reward_dispenser.py

import asyncio

import httpx
import pytest
from bson import ObjectId

from app.core.exceptions import TransientDependencyError
from app.models._shared import RequirementProgress
from app.models.user_progression import RewardGrant
from app.services.progression.completion_detector import CompletionDetector
from app.services.progression.progress_aggregator import ProgressAggregator
from app.services.progression.reward_dispenser import RewardDispenser
from app.services.progression.reward_issuer import HttpRewardIssuer, LoggingRewardIssuer, idempotency_key
from app.shared.constants import COLL_PROGRESSIONS, COLL_REWARD_GRANTS


class RecordingIssuer:
    """Émetteur de test : enregistre les clés, échoue tant que `down` est vrai."""

    def __init__(self, down=False):
        self.down = down
        self.keys = []

    async def issue(self, grant):
        self.keys.append(idempotency_key(grant))
        if self.down:
            raise TransientDependencyError("reward service down")


@pytest.fixture
async def trail(make_challenge):
    return await make_challenge(
        "Khachapuri Trail",
        {"kind": "count", "activity_type": "check_in", "target": 1},
        xp_reward=100,
        reward={"kind": "badge", "value": "Khachapuri Connoisseur"},
    )


async def test_dispense_grants_xp_and_badge(db, trail, user_id):
    dispenser = RewardDispenser(db, LoggingRewardIssuer())

    grant, newly_granted = await dispenser.dispense(user_id, trail)

    assert newly_granted is True
    assert (grant.kind, grant.value, grant.xp, grant.badge_id) == ("badge", "Khachapuri Connoisseur", 100, "Khachapuri Connoisseur")
    progression = await dispenser.get_progression(user_id)
    assert progression.xp == 100
    assert progression.badges == ["Khachapuri Connoisseur"]
    assert progression.granted_challenge_ids == [trail.id]


async def test_concurrent_dispense_grants_exactly_once(db, trail, user_id):
    dispenser = RewardDispenser(db, LoggingRewardIssuer())

    results = await asyncio.gather(*(dispenser.dispense(user_id, trail) for _ in range(100)))

    assert sum(1 for _, newly in results if newly) == 1
    progression = await dispenser.get_progression(user_id)
    assert progression.xp == 100
    assert progression.badges == ["Khachapuri Connoisseur"]
    assert await db[COLL_PROGRESSIONS].count_documents({"user_id": user_id}) == 1
    assert await db[COLL_REWARD_GRANTS].count_documents({"user_id": user_id}) == 1


async def test_concurrent_completion_rewards_once(db, trail, user_id):
    detector = CompletionDetector(ProgressAggregator(db), RewardDispenser(db, LoggingRewardIssuer()))
    measure = RequirementProgress(current=1, required=1)

    outcomes = await asyncio.gather(*(detector.process(user_id, trail, measure) for _ in range(100)))

    assert sum(1 for o in outcomes if o.newly_completed) == 1
    assert sum(1 for o in outcomes if o.grant is not None) == 1
    progression = await RewardDispenser(db).get_progression(user_id)
    assert progression.xp == 100


async def test_discount_reward_grants_no_badge(db, make_challenge, user_id):
    challenge = await make_challenge(
        "Tbilisi Classic",
        {"kind": "count", "activity_type": "review", "target": 1},
        xp_reward=30,
        reward={"kind": "discount", "value": "-10%"},
    )
    dispenser = RewardDispenser(db)

    grant, _ = await dispenser.dispense(user_id, challenge)

    assert grant.badge_id is None
    assert (await dispenser.get_progression(user_id)).badges == []


async def test_activity_xp_is_additive(db, user_id):
    dispenser = RewardDispenser(db)

    assert await dispenser.add_activity_xp(user_id, 10) == 10
    assert await dispenser.add_activity_xp(user_id, 0) == 0
    await dispenser.add_activity_xp(user_id, 15)

    assert (await dispenser.get_progression(user_id)).xp == 25


async def test_failed_issue_leaves_reward_pending_then_recovers(db, trail, user_id):
    issuer = RecordingIssuer(down=True)
    aggregator = ProgressAggregator(db)
    dispenser = RewardDispenser(db, issuer)
    detector = CompletionDetector(aggregator, dispenser)

    outcome = await detector.process(user_id, trail, RequirementProgress(current=1, required=1))

    assert outcome.newly_completed is True
    assert outcome.reward_pending is True
    stored = await aggregator.get(user_id, trail.id)
    assert detector.state(stored) == "completed"
    assert stored.reward_granted_at is None

    # tant que le service est en panne, la reprise ne marque rien
    assert await dispenser.retry_pending_rewards(user_id) == []
    assert (await aggregator.get(user_id, trail.id)).reward_granted_at is None

    issuer.down = False
    await dispenser.retry_pending_rewards(user_id)

    stored = await aggregator.get(user_id, trail.id)
    assert detector.state(stored) == "rewarded"
    assert (await dispenser.get_progression(user_id)).xp == 100
    assert set(issuer.keys) == {f"{user_id}:{trail.id}"}
    assert await dispenser.retry_pending_rewards(user_id) == []


def test_state_of_missing_record_is_not_started():
    assert CompletionDetector.state(None) == "not_started"


def _grant():
    return RewardGrant(user_id=ObjectId(), challenge_id=ObjectId(), kind="badge", value="Wine Master", xp=200)


async def test_http_issuer_sends_idempotency_key():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["key"] = request.headers["Idempotency-Key"]
        return httpx.Response(201, json={"ok": True})

    grant = _grant()
    issuer = HttpRewardIssuer("http://rewards.local/", transport=httpx.MockTransport(handler))
    await issuer.issue(grant)

    assert seen["url"] == "http://rewards.local/rewards"
    assert seen["key"] == f"{grant.user_id}:{grant.challenge_id}"


async def test_http_issuer_treats_conflict_as_success():
    issuer = HttpRewardIssuer("http://rewards.local", transport=httpx.MockTransport(lambda r: httpx.Response(409)))
    await issuer.issue(_grant())


@pytest.mark.parametrize("status_code", [500, 503, 422])
async def test_http_issuer_error_statuses_are_transient(status_code):
    issuer = HttpRewardIssuer("http://rewards.local", transport=httpx.MockTransport(lambda r: httpx.Response(status_code)))

    with pytest.raises(TransientDependencyError):
        await issuer.issue(_grant())


async def test_http_issuer_network_failure_is_transient():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    issuer = HttpRewardIssuer("http://rewards.local", transport=httpx.MockTransport(handler))

    with pytest.raises(TransientDependencyError):
        await issuer.issue(_grant())
