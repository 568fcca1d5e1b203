# backend/tests/test_requirement_evaluator.py

import datetime as dt

import pytest
from bson import ObjectId

from app.core.exceptions import ConfigurationError
from app.core.utils import utcnow
from app.models.activity import ActivityIn
from app.models.requirement import (
    ComboRequirement,
    CountRequirement,
    EventWindow,
    MenuComboRequirement,
    RequiredVenuesRequirement,
)
from app.services.progression.activity_view import ActivityLog, UserActivityView
from app.services.progression.catalog import Catalog
from app.services.progression.requirement_evaluator import RequirementEvaluator
from app.shared.constants import COLL_PROGRESS

from conftest import BAKERY_BATUMI, BAKERY_TBILISI, GUESTHOUSE_KAZBEGI, WINERY_KAKHETI, WINERY_TELAVI


async def _log(db, user_id, activity_type, venue_id=None, items=(), occurred_at=None):
    payload = ActivityIn(
        activity_type=activity_type,
        venue_id=venue_id,
        items=list(items),
        occurred_at=occurred_at or utcnow(),
    )
    activity, _ = await ActivityLog(db).record(user_id, payload)
    return activity


async def _evaluate(db, user_id, requirement, **kwargs):
    evaluator = RequirementEvaluator(Catalog(db))
    return await evaluator.evaluate(requirement, UserActivityView(db, user_id), **kwargs)


async def test_count_by_activity_type(catalog_db, user_id):
    await _log(catalog_db, user_id, "check_in", BAKERY_TBILISI)
    await _log(catalog_db, user_id, "check_in", WINERY_KAKHETI)
    await _log(catalog_db, user_id, "review")

    measure = await _evaluate(catalog_db, user_id, CountRequirement(activity_type="check_in", target=3))

    assert (measure.current, measure.required) == (2, 3)


async def test_count_ignores_other_users(catalog_db, user_id):
    await _log(catalog_db, ObjectId(), "check_in", BAKERY_TBILISI)

    measure = await _evaluate(catalog_db, user_id, CountRequirement(activity_type="check_in", target=1))

    assert measure.current == 0


async def test_count_with_venue_filter(catalog_db, user_id):
    for venue in (BAKERY_TBILISI, BAKERY_BATUMI, WINERY_KAKHETI, GUESTHOUSE_KAZBEGI):
        await _log(catalog_db, user_id, "check_in", venue)

    bakeries = CountRequirement(activity_type="check_in", target=5, categories=["khachapuri"])
    kakheti_wineries = CountRequirement(activity_type="check_in", target=5, venue_types=["winery"], regions=["Kakheti"])

    assert (await _evaluate(catalog_db, user_id, bakeries)).current == 2
    assert (await _evaluate(catalog_db, user_id, kakheti_wineries)).current == 1


async def test_count_filter_matching_no_venue_is_a_configuration_error(catalog_db, user_id):
    req = CountRequirement(activity_type="check_in", target=1, regions=["Svaneti"])

    with pytest.raises(ConfigurationError):
        await _evaluate(catalog_db, user_id, req)


async def test_required_venues_counts_distinct_visits(catalog_db, user_id):
    await _log(catalog_db, user_id, "check_in", WINERY_KAKHETI)
    await _log(catalog_db, user_id, "check_in", WINERY_KAKHETI)
    await _log(catalog_db, user_id, "scan", WINERY_TELAVI)
    await _log(catalog_db, user_id, "check_in", BAKERY_TBILISI)  # hors liste

    req = RequiredVenuesRequirement(venue_ids=[WINERY_KAKHETI, WINERY_TELAVI, GUESTHOUSE_KAZBEGI])
    measure = await _evaluate(catalog_db, user_id, req)

    assert (measure.current, measure.required) == (2, 3)


async def test_required_venues_rejects_empty_and_unknown(catalog_db, user_id):
    with pytest.raises(ConfigurationError):
        await _evaluate(catalog_db, user_id, RequiredVenuesRequirement(venue_ids=[]))

    with pytest.raises(ConfigurationError) as exc:
        await _evaluate(catalog_db, user_id, RequiredVenuesRequirement(venue_ids=[WINERY_KAKHETI, ObjectId()]))
    assert "unknown venues" in exc.value.message


async def test_menu_combo_counts_distinct_items(catalog_db, user_id):
    for _ in range(5):
        await _log(catalog_db, user_id, "order", BAKERY_TBILISI, ["khachapuri"])

    req = MenuComboRequirement(items=["khachapuri", "wine", "salad"], required_count=3)
    measure = await _evaluate(catalog_db, user_id, req)

    assert (measure.current, measure.required) == (1, 3)


async def test_menu_combo_item_keys_are_normalized(catalog_db, user_id):
    await _log(catalog_db, user_id, "order", BAKERY_TBILISI, [" KHACHAPURI ", "Wine"])

    req = MenuComboRequirement(items=["Khachapuri", "wine"], required_count=2)

    assert (await _evaluate(catalog_db, user_id, req)).current == 2


async def test_menu_combo_same_visit_uses_best_single_order(catalog_db, user_id):
    await _log(catalog_db, user_id, "order", BAKERY_TBILISI, ["khachapuri", "wine"])
    await _log(catalog_db, user_id, "order", BAKERY_TBILISI, ["salad"])

    across_visits = MenuComboRequirement(items=["khachapuri", "wine", "salad"], required_count=3)
    same_visit = MenuComboRequirement(items=["khachapuri", "wine", "salad"], required_count=3, same_visit=True)

    assert (await _evaluate(catalog_db, user_id, across_visits)).current == 3
    assert (await _evaluate(catalog_db, user_id, same_visit)).current == 2


async def test_menu_combo_configuration_errors(catalog_db, user_id):
    with pytest.raises(ConfigurationError):
        await _evaluate(catalog_db, user_id, MenuComboRequirement(items=[], required_count=1))
    with pytest.raises(ConfigurationError):
        # deux items distincts seulement après normalisation
        await _evaluate(catalog_db, user_id, MenuComboRequirement(items=["wine", "WINE", "salad"], required_count=3))
    with pytest.raises(ConfigurationError):
        await _evaluate(catalog_db, user_id, MenuComboRequirement(items=["wine", "churchkhela"], required_count=2))


async def test_window_excludes_activities_outside_bounds(catalog_db, user_id):
    halloween = EventWindow(
        start=dt.datetime(2025, 10, 25, tzinfo=dt.timezone.utc),
        end=dt.datetime(2025, 11, 2, 23, 59, tzinfo=dt.timezone.utc),
    )
    await _log(catalog_db, user_id, "check_in", BAKERY_TBILISI, occurred_at=dt.datetime(2025, 10, 31, 20, 0, tzinfo=dt.timezone.utc))
    await _log(catalog_db, user_id, "check_in", BAKERY_TBILISI, occurred_at=dt.datetime(2025, 11, 2, 23, 59, tzinfo=dt.timezone.utc))
    await _log(catalog_db, user_id, "check_in", BAKERY_TBILISI, occurred_at=dt.datetime(2025, 11, 3, 0, 1, tzinfo=dt.timezone.utc))
    await _log(catalog_db, user_id, "check_in", BAKERY_TBILISI, occurred_at=dt.datetime(2025, 10, 1, tzinfo=dt.timezone.utc))

    req = CountRequirement(activity_type="check_in", target=3, window=halloween)
    assert (await _evaluate(catalog_db, user_id, req)).current == 2

    # une fenêtre explicite remplace celle de l'exigence
    no_window = CountRequirement(activity_type="check_in", target=3)
    assert (await _evaluate(catalog_db, user_id, no_window, window=halloween)).current == 2
    assert (await _evaluate(catalog_db, user_id, no_window)).current == 4


async def test_combo_counts_completed_dependencies(catalog_db, user_id):
    done, pending = ObjectId(), ObjectId()
    await catalog_db[COLL_PROGRESS].insert_many([
        {"user_id": user_id, "challenge_id": done, "current": 1, "required": 1, "percentage": 100, "completed_at": utcnow(), "version": 1},
        {"user_id": user_id, "challenge_id": pending, "current": 0, "required": 1, "percentage": 0, "version": 1},
    ])

    measure = await _evaluate(catalog_db, user_id, ComboRequirement(challenge_ids=[done, pending]))

    assert (measure.current, measure.required) == (1, 2)


async def test_combo_self_reference_and_empty_are_configuration_errors(catalog_db, user_id):
    me = ObjectId()
    with pytest.raises(ConfigurationError):
        await _evaluate(catalog_db, user_id, ComboRequirement(challenge_ids=[me, ObjectId()]), challenge_id=me)
    with pytest.raises(ConfigurationError):
        await _evaluate(catalog_db, user_id, ComboRequirement(challenge_ids=[]))


def test_required_for_display():
    assert RequirementEvaluator.required_for(CountRequirement(activity_type="scan", target=7)) == 7
    assert RequirementEvaluator.required_for(MenuComboRequirement(items=["a", "b"], required_count=2)) == 2
    venue = ObjectId()
    assert RequirementEvaluator.required_for(RequiredVenuesRequirement(venue_ids=[venue, venue])) == 1
    assert RequirementEvaluator.required_for(ComboRequirement(challenge_ids=[ObjectId(), ObjectId()])) == 2


async def test_validated_requirement_is_not_checked_again(catalog_db, user_id, monkeypatch):
    catalog = Catalog(catalog_db)
    lookups = []

    async def counting_missing_venue_ids(venue_ids):
        lookups.append(set(venue_ids))
        return set()

    monkeypatch.setattr(catalog, "missing_venue_ids", counting_missing_venue_ids)
    await _log(catalog_db, user_id, "check_in", BAKERY_TBILISI)
    req = RequiredVenuesRequirement(venue_ids=[BAKERY_TBILISI, BAKERY_BATUMI])
    evaluator = RequirementEvaluator(catalog)
    view = UserActivityView(catalog_db, user_id)

    assert (await evaluator.evaluate(req, view, checked=True)).current == 1
    assert lookups == []

    assert (await evaluator.evaluate(req, view)).current == 1
    assert lookups == [{BAKERY_TBILISI, BAKERY_BATUMI}]
