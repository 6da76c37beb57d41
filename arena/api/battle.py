from typing import Annotated

from fastapi import APIRouter, Depends

from arena.core.security import get_current_player, require_admin
from arena.models.player import Player
from arena.schemas.battle import (
    ActionRequest,
    BattleActionResult,
    SessionSummary,
    SessionView,
    StartBattleRequest,
    SwitchRequest,
)
from arena.schemas.common import APIResponse
from arena.schemas.rewards import RewardRecord
from arena.services.battle import BattleService, get_battle_service

router = APIRouter(prefix="/battles", tags=["battles"])


@router.post("/")
async def start_battle(
    body: StartBattleRequest,
    service: Annotated[BattleService, Depends(get_battle_service)],
    player: Annotated[Player, Depends(get_current_player)],
) -> APIResponse[BattleActionResult]:
    result = await service.start_battle(player.id, body.mode)
    return APIResponse(data=result, message="Battle started")


@router.get("/")
async def list_battles(
    service: Annotated[BattleService, Depends(get_battle_service)],
    player: Annotated[Player, Depends(get_current_player)],
) -> APIResponse[list[SessionSummary]]:
    return APIResponse(data=await service.list_sessions(player.id))


@router.delete("/expired")
async def expire_battles(
    service: Annotated[BattleService, Depends(get_battle_service)],
    _admin: Annotated[Player, Depends(require_admin)],
) -> APIResponse[int]:
    """Delete idle battle sessions (admin only)."""
    count = await service.expire_sessions()
    return APIResponse(data=count, message=f"Expired {count} battle sessions")


@router.get("/{session_id}")
async def get_battle(
    session_id: str,
    service: Annotated[BattleService, Depends(get_battle_service)],
    player: Annotated[Player, Depends(get_current_player)],
) -> APIResponse[SessionView]:
    return APIResponse(data=await service.get_session(session_id, user_id=player.id))


@router.post("/{session_id}/actions")
async def apply_action(
    session_id: str,
    body: ActionRequest,
    service: Annotated[BattleService, Depends(get_battle_service)],
    player: Annotated[Player, Depends(get_current_player)],
) -> APIResponse[BattleActionResult]:
    result = await service.apply_action(
        session_id, body.action, body.move_idx, user_id=player.id
    )
    return APIResponse(data=result)


@router.post("/{session_id}/switch")
async def switch_combatant(
    session_id: str,
    body: SwitchRequest,
    service: Annotated[BattleService, Depends(get_battle_service)],
    player: Annotated[Player, Depends(get_current_player)],
) -> APIResponse[BattleActionResult]:
    result = await service.switch_combatant(session_id, body.new_idx, user_id=player.id)
    return APIResponse(data=result)


@router.post("/{session_id}/rewards")
async def claim_rewards(
    session_id: str,
    service: Annotated[BattleService, Depends(get_battle_service)],
    player: Annotated[Player, Depends(get_current_player)],
) -> APIResponse[RewardRecord]:
    reward = await service.claim_rewards(session_id, user_id=player.id)
    return APIResponse(data=reward, message=f"Earned {reward.coins_earned} coins")
