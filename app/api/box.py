from collections.abc import Sequence
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query

from app.models.box import Box
from app.schemas.box import PoolItemPreview
from app.schemas.common import APIResponse, PaginatedResponse
from app.services.box import BoxService

router = APIRouter(prefix="/boxes", tags=["boxes"])


@router.get("/")
async def get_boxes(
    service: Annotated[BoxService, Depends()],
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1)] = 10,
    active_only: Annotated[bool, Query(description="Only list boxes open for sale")] = True,
) -> PaginatedResponse[Sequence[Box]]:
    boxes, pagination = await service.get_boxes(
        page=page, page_size=page_size, active_only=active_only
    )
    return PaginatedResponse(data=boxes, pagination=pagination)


@router.get("/{box_id}")
async def get_box(box_id: int, service: Annotated[BoxService, Depends()]) -> APIResponse[Box]:
    box = await service.get_box(box_id)
    if not box:
        raise HTTPException(status_code=404, detail="找不到卡盒")
    return APIResponse(data=box)


@router.get("/{box_id}/items")
async def get_box_items(
    box_id: int, service: Annotated[BoxService, Depends()]
) -> APIResponse[list[PoolItemPreview]]:
    """Get the drawable items of a box with the chance of drawing each one."""
    preview = await service.get_pool_preview(box_id)
    return APIResponse(data=preview)
