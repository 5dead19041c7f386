"""
Ultra Roadmap Sync - Users API
==============================

Account administration endpoints.
"""

from fastapi import APIRouter

from roadmap_sync.api.deps import ApiKey, Roadmaps
from roadmap_sync.core.schemas import BlockUserRequest, BlockUserResponse, ErrorResponse

router = APIRouter(tags=["Users"], dependencies=[ApiKey])


@router.post(
    "/block-user",
    response_model=BlockUserResponse,
    responses={code: {"model": ErrorResponse} for code in (400, 401, 403, 404, 500)},
    summary="Block or unblock an account",
)
async def block_user(request: BlockUserRequest, service: Roadmaps) -> BlockUserResponse:
    """``blocked`` defaults to true; ``false`` lifts the block."""
    return await service.block_user(request)
