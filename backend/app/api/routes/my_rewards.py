# backend/app/api/routes/my_rewards.py
# Routes "mes récompenses" : liste des récompenses obtenues et utilisation.

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from app.api.dependencies import get_reward_wallet
from app.core.bson_utils import PyObjectId
from app.core.security import CurrentUserId, get_current_user_id
from app.models.progress_dto import MyRewardOut
from app.services.progression.reward_wallet import RewardWallet

router = APIRouter(
    prefix="/my/rewards",
    tags=["my-rewards"],
    dependencies=[Depends(get_current_user_id)],
)


@router.get(
    "",
    response_model=list[MyRewardOut],
    summary="Lister mes récompenses",
    description=(
        "Retourne les récompenses obtenues (plus récentes d'abord), hors récompenses expirées.\n\n"
        "- Filtre optionnel `redeemed`"
    ),
)
async def list_my_rewards(
    user_id: CurrentUserId,
    redeemed: bool | None = Query(default=None, description="Filtrer sur l'état d'utilisation."),
    wallet: RewardWallet = Depends(get_reward_wallet),
) -> list[MyRewardOut]:
    return await wallet.list_rewards(user_id, redeemed)


@router.post(
    "/{reward_id}/redeem",
    response_model=MyRewardOut,
    summary="Utiliser une récompense",
    description="Marque la récompense comme utilisée. Refusé si elle l'est déjà ou si elle a expiré.",
)
async def redeem_reward(
    user_id: CurrentUserId,
    reward_id: PyObjectId = Path(..., description="Identifiant de la récompense."),
    wallet: RewardWallet = Depends(get_reward_wallet),
) -> MyRewardOut:
    """Utiliser une récompense.

    Raises:
        HTTPException: 404 si la récompense n'appartient pas à l'utilisateur.
    """
    reward = await wallet.redeem(user_id, reward_id)
    if reward is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Reward not found")
    return reward
