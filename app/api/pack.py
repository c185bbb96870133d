from typing import Annotated

from fastapi import APIRouter, Depends

from app.core.security import get_current_player
from app.models.player import Player
from app.schemas.box import PackOpenRequest, PackOpenResponse
from app.schemas.common import APIResponse
from app.services.pack import PackService

router = APIRouter(prefix="/packs", tags=["packs"])


@router.post("/open")
async def open_packs(
    request: PackOpenRequest,
    service: Annotated[PackService, Depends()],
    player: Annotated[Player, Depends(get_current_player)],
) -> APIResponse[PackOpenResponse]:
    """Open 1 to 5 packs of a box, paid from the player's coins."""
    result = await service.open_packs(player.id, request.box_id, request.quantity)
    return APIResponse(data=result, message=f"Opened {result.packs_opened} pack(s) successfully")
