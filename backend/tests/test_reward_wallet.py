# backend/tests/test_reward_wallet.py

import asyncio
import datetime as dt

import pytest
from bson import ObjectId

from app.core.exceptions import RewardAlreadyRedeemed, RewardExpired
from app.core.utils import utcnow
from app.services.progression.reward_dispenser import RewardDispenser
from app.services.progression.reward_issuer import LoggingRewardIssuer
from app.services.progression.reward_wallet import RewardWallet
from app.shared.constants import COLL_REWARD_GRANTS


@pytest.fixture
async def tasting(make_challenge):
    return await make_challenge(
        "Kakheti Tasting",
        {"kind": "count", "activity_type": "check_in", "target": 2},
        xp_reward=30,
        reward={"kind": "free_tasting", "value": "Saperavi flight", "valid_days": 30},
    )


async def _grant(db, user_id, challenge):
    grant, _ = await RewardDispenser(db, LoggingRewardIssuer()).dispense(user_id, challenge)
    return grant


async def test_grant_carries_expiry_from_reward_validity(db, tasting, user_id):
    grant = await _grant(db, user_id, tasting)

    assert grant.expires_at is not None
    assert dt.timedelta(days=29) < grant.expires_at - grant.granted_at <= dt.timedelta(days=30)


async def test_list_rewards_with_challenge_name_and_redeemed_filter(db, tasting, make_challenge, user_id):
    badge = await make_challenge("First bite", {"kind": "count", "activity_type": "check_in", "target": 1})
    await _grant(db, user_id, tasting)
    await _grant(db, user_id, badge)
    await _grant(db, ObjectId(), badge)

    wallet = RewardWallet(db)
    rewards = await wallet.list_rewards(user_id)
    assert sorted((r.challenge_name, r.value) for r in rewards) == [
        ("First bite", "First bite"),
        ("Kakheti Tasting", "Saperavi flight"),
    ]

    tasting_reward = next(r for r in rewards if r.challenge_id == tasting.id)
    await wallet.redeem(user_id, tasting_reward.id)

    assert [r.value for r in await wallet.list_rewards(user_id, redeemed=True)] == ["Saperavi flight"]
    assert [r.value for r in await wallet.list_rewards(user_id, redeemed=False)] == ["First bite"]


async def test_redeem_is_single_use(db, tasting, user_id):
    grant = await _grant(db, user_id, tasting)
    wallet = RewardWallet(db)

    redeemed = await wallet.redeem(user_id, grant.id)
    assert redeemed.redeemed is True
    assert redeemed.redeemed_at is not None

    with pytest.raises(RewardAlreadyRedeemed):
        await wallet.redeem(user_id, grant.id)


async def test_concurrent_redeem_succeeds_once(db, tasting, user_id):
    grant = await _grant(db, user_id, tasting)
    wallet = RewardWallet(db)

    results = await asyncio.gather(*(wallet.redeem(user_id, grant.id) for _ in range(20)), return_exceptions=True)

    assert sum(1 for r in results if not isinstance(r, Exception)) == 1
    assert all(isinstance(r, RewardAlreadyRedeemed) for r in results if isinstance(r, Exception))


async def test_redeem_unknown_or_foreign_reward_returns_none(db, tasting, user_id):
    grant = await _grant(db, user_id, tasting)
    wallet = RewardWallet(db)

    assert await wallet.redeem(user_id, ObjectId()) is None
    assert await wallet.redeem(ObjectId(), grant.id) is None


async def test_expired_reward_is_hidden_and_not_redeemable(db, tasting, user_id):
    grant = await _grant(db, user_id, tasting)
    await db[COLL_REWARD_GRANTS].update_one(
        {"_id": grant.id}, {"$set": {"expires_at": utcnow() - dt.timedelta(days=1)}}
    )
    wallet = RewardWallet(db)

    assert await wallet.list_rewards(user_id) == []
    with pytest.raises(RewardExpired):
        await wallet.redeem(user_id, grant.id)
