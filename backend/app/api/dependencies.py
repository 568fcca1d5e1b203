# backend/app/api/dependencies.py
# Dépendances FastAPI des services de progression (surchargées dans les tests).

from fastapi import Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.settings import get_settings
from app.db.mongodb import get_db
from app.services.progression.challenge_validator import ChallengeValidator
from app.services.progression.progress_query import ProgressQuery
from app.services.progression.progression_engine import ProgressionEngine
from app.services.progression.reward_issuer import RewardIssuer, build_reward_issuer
from app.services.progression.reward_wallet import RewardWallet


def get_reward_issuer() -> RewardIssuer:
    return build_reward_issuer(get_settings())


def get_engine(
    db: AsyncIOMotorDatabase = Depends(get_db),
    issuer: RewardIssuer = Depends(get_reward_issuer),
) -> ProgressionEngine:
    return ProgressionEngine(db, issuer)


def get_progress_query(db: AsyncIOMotorDatabase = Depends(get_db)) -> ProgressQuery:
    return ProgressQuery(db)


def get_challenge_validator(db: AsyncIOMotorDatabase = Depends(get_db)) -> ChallengeValidator:
    return ChallengeValidator(db)


def get_reward_wallet(db: AsyncIOMotorDatabase = Depends(get_db)) -> RewardWallet:
    return RewardWallet(db)
