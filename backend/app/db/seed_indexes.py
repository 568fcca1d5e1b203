# app/db/seed_indexes.py
"""
Idempotent index seeding for the progression engine.

- Works on the database passed in (the app database by default, an in-memory double in tests).
- Matching by KEYS: if an index with same keys exists, keep it when options match.
- If options differ (unique / partialFilterExpression), drop & recreate.
- Unique pairs (user_id, challenge_id) back the exactly-once guarantees of progress and reward grants.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple, Union

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.operations import IndexModel

from app.shared.constants import (
    COLL_ACTIVITIES,
    COLL_CHALLENGES,
    COLL_CONFIG_ISSUES,
    COLL_MENU_ITEMS,
    COLL_PARKED_ACTIVITIES,
    COLL_PROGRESS,
    COLL_PROGRESSIONS,
    COLL_REWARD_GRANTS,
    COLL_VENUES,
)

Direction = Union[int, str]
KeySpec = List[Tuple[str, Direction]]


def _normalize_key_from_mongo(key_doc: Dict[str, Any]) -> KeySpec:
    """Mongo returns an OrderedDict-like mapping; convert to list of (field, direction)."""
    norm: KeySpec = []
    for k, v in key_doc.items():
        if isinstance(v, (int, float)):
            norm.append((k, int(v)))
        else:
            norm.append((k, str(v)))
    return norm


async def _find_existing_by_keys(coll, keys: KeySpec) -> Optional[Dict[str, Any]]:
    async for ix in coll.list_indexes():
        if 'key' in ix and _normalize_key_from_mongo(ix['key']) == keys:
            return ix
    return None


def _same_options(existing: Dict[str, Any], *, unique: Optional[bool], partial: Optional[Dict[str, Any]]) -> bool:
    if bool(unique) != bool(existing.get('unique', False)):
        return False
    return (partial or None) == (existing.get('partialFilterExpression') or None)


async def ensure_index(db: AsyncIOMotorDatabase, coll_name: str, keys: KeySpec, *,
                       name: Optional[str] = None,
                       unique: Optional[bool] = None,
                       partial: Optional[Dict[str, Any]] = None) -> None:
    coll = db[coll_name]
    existing = await _find_existing_by_keys(coll, keys)
    if existing and _same_options(existing, unique=unique, partial=partial):
        return
    if existing:
        await coll.drop_index(existing['name'])
    opts: Dict[str, Any] = {}
    if name:
        opts['name'] = name
    if unique is not None:
        opts['unique'] = unique
    if partial:
        opts['partialFilterExpression'] = partial
    await coll.create_indexes([IndexModel(keys, **opts)])


async def ensure_indexes(db: AsyncIOMotorDatabase | None = None) -> None:
    if db is None:
        from app.db.mongodb import db as app_db
        db = app_db

    # ---------- challenges ----------
    await ensure_index(db, COLL_CHALLENGES, [('is_active', ASCENDING)])
    await ensure_index(db, COLL_CHALLENGES, [('requirement.kind', ASCENDING)])
    # combos dépendant d'un challenge donné (suivi des complétions)
    await ensure_index(db, COLL_CHALLENGES, [('requirement.challenge_ids', ASCENDING)], name='ix_challenges__combo_deps')

    # ---------- activities ----------
    await ensure_index(db, COLL_ACTIVITIES, [('event_id', ASCENDING)], name='uniq_activity_event_if_present',
                       unique=True, partial={'event_id': {'$type': 'string'}})
    await ensure_index(db, COLL_ACTIVITIES, [('user_id', ASCENDING), ('occurred_at', DESCENDING)])

    # ---------- user_challenge_progress ----------
    await ensure_index(db, COLL_PROGRESS, [('user_id', ASCENDING), ('challenge_id', ASCENDING)],
                       name='uniq_user_challenge_progress', unique=True)
    await ensure_index(db, COLL_PROGRESS, [('user_id', ASCENDING), ('completed_at', ASCENDING), ('reward_granted_at', ASCENDING)],
                       name='ix_progress__pending_rewards')

    # ---------- user_progressions ----------
    await ensure_index(db, COLL_PROGRESSIONS, [('user_id', ASCENDING)], name='uniq_user_progression', unique=True)

    # ---------- reward_grants ----------
    await ensure_index(db, COLL_REWARD_GRANTS, [('user_id', ASCENDING), ('challenge_id', ASCENDING)],
                       name='uniq_reward_grant', unique=True)

    # ---------- catalogs ----------
    await ensure_index(db, COLL_VENUES, [('type', ASCENDING)])
    await ensure_index(db, COLL_VENUES, [('region', ASCENDING)])
    await ensure_index(db, COLL_MENU_ITEMS, [('key', ASCENDING)], name='uniq_menu_item_key', unique=True)

    # ---------- operations ----------
    await ensure_index(db, COLL_PARKED_ACTIVITIES, [('activity_id', ASCENDING)], name='uniq_parked_activity', unique=True)
    await ensure_index(db, COLL_CONFIG_ISSUES, [('challenge_id', ASCENDING)], name='uniq_config_issue', unique=True)
