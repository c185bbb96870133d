from collections.abc import Sequence
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from app.core.security import get_current_player
from app.models.player import Player
from app.models.sale_history import SaleHistory
from app.schemas.common import APIResponse, PaginatedResponse
from app.schemas.inventory import BulkSellRequest, BulkSellResult, PullResponse, SellResult
from app.services.inventory import InventoryService

router = APIRouter(prefix="/pulls", tags=["pulls"])


@router.get("/me")
async def get_my_pulls(
    service: Annotated[InventoryService, Depends()],
    player: Annotated[Player, Depends(get_current_player)],
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1)] = 20,
) -> PaginatedResponse[Sequence[PullResponse]]:
    """Get the logged-in player's collection, newest first."""
    pulls, pagination = await service.get_player_pulls(
        player.id, page=page, page_size=page_size
    )
    return PaginatedResponse(data=pulls, pagination=pagination)


@router.get("/sales")
async def get_my_sales(
    service: Annotated[InventoryService, Depends()],
    player: Annotated[Player, Depends(get_current_player)],
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1)] = 20,
) -> PaginatedResponse[Sequence[SaleHistory]]:
    sales, pagination = await service.get_sales_history(
        player.id, page=page, page_size=page_size
    )
    return PaginatedResponse(data=sales, pagination=pagination)


@router.post("/sell-bulk")
async def sell_pulls(
    request: BulkSellRequest,
    service: Annotated[InventoryService, Depends()],
    player: Annotated[Player, Depends(get_current_player)],
) -> APIResponse[BulkSellResult]:
    """Sell several pulls; the ones that cannot be sold are listed with a reason."""
    result = await service.sell_pulls(player.id, request.pull_ids)
    return APIResponse(
        data=result,
        message=f"Sold {len(result.sold)} item(s) for {result.coins_received} coins",
    )


@router.post("/{pull_id}/sell")
async def sell_pull(
    pull_id: int,
    service: Annotated[InventoryService, Depends()],
    player: Annotated[Player, Depends(get_current_player)],
) -> APIResponse[SellResult]:
    result = await service.sell_pull(player.id, pull_id)
    return APIResponse(
        data=result, message=f"Sold {result.item_name} for {result.coins_received} coins"
    )
