# backend/tests/test_challenge_classifier.py

import datetime as dt

from bson import ObjectId

from app.models.challenge import Challenge
from app.services.progression.challenge_classifier import ChallengeClassifier
from app.shared.constants import CATEGORIES

classifier = ChallengeClassifier()


def _challenge(requirement, **extra):
    return Challenge(
        _id=ObjectId(),
        name=extra.pop("name", "c"),
        requirement=requirement,
        reward={"kind": "badge", "value": "b"},
        **extra,
    )


def test_each_kind_maps_to_its_category():
    assert classifier.classify(_challenge({"kind": "count", "activity_type": "check_in", "target": 3})) == "regular"
    assert classifier.classify(_challenge({"kind": "menu_combo", "items": ["wine", "cheese"], "required_count": 2})) == "menu_combo"
    assert classifier.classify(_challenge({"kind": "required_venues", "venue_ids": [ObjectId()]})) == "venue"
    assert classifier.classify(_challenge({"kind": "combo", "challenge_ids": [ObjectId()]})) == "combo"


def test_special_takes_precedence_over_requirement_shape():
    special_menu = _challenge(
        {"kind": "menu_combo", "items": ["wine", "cheese"], "required_count": 2},
        is_special=True,
        event_type="halloween",
        start_date=dt.datetime(2026, 10, 25, tzinfo=dt.timezone.utc),
        end_date=dt.datetime(2026, 11, 2, tzinfo=dt.timezone.utc),
    )
    assert classifier.classify(special_menu) == "special"


def test_empty_lists_fall_through_to_regular():
    assert classifier.classify(_challenge({"kind": "menu_combo", "items": [], "required_count": 1})) == "regular"
    assert classifier.classify(_challenge({"kind": "required_venues", "venue_ids": []})) == "regular"


def test_raw_documents_are_classified():
    doc = {
        "_id": ObjectId(),
        "name": "Wine trail",
        "requirement": {"kind": "required_venues", "venue_ids": [str(ObjectId())]},
        "reward": {"kind": "badge", "value": "Sommelier"},
    }
    assert classifier.classify(doc) == "venue"


def test_malformed_document_is_regular():
    assert classifier.classify({"_id": ObjectId(), "name": "broken"}) == "regular"
    assert classifier.classify({"_id": ObjectId(), "name": "x", "requirement": {"kind": "unknown"}}) == "regular"


def test_partition_covers_every_challenge_once():
    items = [
        _challenge({"kind": "count", "activity_type": "scan", "target": 1}),
        _challenge({"kind": "combo", "challenge_ids": [ObjectId()]}),
        _challenge({"kind": "combo", "challenge_ids": [ObjectId()]}, is_special=True),
        _challenge({"kind": "required_venues", "venue_ids": [ObjectId()]}),
        {"_id": ObjectId(), "name": "broken"},
    ]
    buckets = classifier.partition(items)

    assert list(buckets) == list(CATEGORIES)
    assert sum(len(v) for v in buckets.values()) == len(items)
    assert len(buckets["special"]) == 1
    assert len(buckets["combo"]) == 1
    assert len(buckets["venue"]) == 1
    assert len(buckets["regular"]) == 2
    assert buckets["menu_combo"] == []
