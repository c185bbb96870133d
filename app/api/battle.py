from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query

from app.core.enums import BattleStatus
from app.core.security import get_current_player, require_admin
from app.models.player import Player
from app.schemas.battle import (
    BattleCreate,
    BattleDetailResponse,
    BattlePullResult,
    BattleResponse,
    BattleSimulateRequest,
    BattleSimulationResult,
)
from app.schemas.common import APIResponse
from app.services.battle import BattleService

router = APIRouter(prefix="/battles", tags=["battles"])


@router.get("/")
async def get_battles(
    service: Annotated[BattleService, Depends()],
    status: Annotated[BattleStatus | None, Query(description="Filter by battle status")] = None,
) -> APIResponse[list[BattleResponse]]:
    """Get the 50 newest battles."""
    battles = await service.get_battles(status)
    return APIResponse(data=battles)


@router.get("/{battle_id}")
async def get_battle(
    battle_id: int, service: Annotated[BattleService, Depends()]
) -> APIResponse[BattleDetailResponse]:
    battle = await service.get_battle_detail(battle_id)
    return APIResponse(data=battle)


@router.post("/")
async def create_battle(
    data: BattleCreate,
    service: Annotated[BattleService, Depends()],
    player: Annotated[Player, Depends(get_current_player)],
) -> APIResponse[BattleResponse]:
    battle = await service.create_battle(player.id, data)
    return APIResponse(data=battle, message="Battle created successfully")


@router.post("/{battle_id}/join")
async def join_battle(
    battle_id: int,
    service: Annotated[BattleService, Depends()],
    player: Annotated[Player, Depends(get_current_player)],
) -> APIResponse[BattleResponse]:
    battle = await service.join_battle(player.id, battle_id)
    return APIResponse(data=battle, message="Joined battle successfully")


@router.post("/{battle_id}/pull")
async def pull_round(
    battle_id: int,
    service: Annotated[BattleService, Depends()],
    player: Annotated[Player, Depends(get_current_player)],
) -> APIResponse[BattlePullResult]:
    result = await service.pull_round(player.id, battle_id)
    return APIResponse(data=result)


@router.post("/{battle_id}/simulate")
async def simulate_battle(
    battle_id: int,
    service: Annotated[BattleService, Depends()],
    _admin: Annotated[Player, Depends(require_admin)],
    request: BattleSimulateRequest | None = None,
) -> APIResponse[BattleSimulationResult]:
    """Fill a battle with bots and play it to the end (admin only)."""
    bot_count = request.bot_count if request else None
    result = await service.simulate_battle(battle_id, bot_count)
    return APIResponse(data=result, message="Battle simulated successfully")


@router.delete("/{battle_id}")
async def delete_battle(
    battle_id: int,
    service: Annotated[BattleService, Depends()],
    _admin: Annotated[Player, Depends(require_admin)],
) -> APIResponse[None]:
    deleted = await service.delete_battle(battle_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="找不到對戰")
    return APIResponse(message="Battle deleted successfully")
