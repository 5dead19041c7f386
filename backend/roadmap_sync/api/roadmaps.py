"""
Ultra Roadmap Sync - Roadmap API
================================

Roadmap ingestion endpoints. Bodies are accepted in either roadmap shape
and decoded by the pipeline, so they are taken as raw JSON here.
"""

from typing import Annotated, Any

from fastapi import APIRouter, BackgroundTasks, Body

from roadmap_sync.api.deps import ApiKey, Roadmaps
from roadmap_sync.core.schemas import (
    AddRoadmapResponse,
    ErrorResponse,
    NewCycleResponse,
    UpdateRoadmapResponse,
)

router = APIRouter(tags=["Roadmaps"], dependencies=[ApiKey])

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}

RoadmapBody = Annotated[Any, Body()]


@router.post(
    "/add-roadmap",
    response_model=AddRoadmapResponse,
    responses=ERROR_RESPONSES,
    summary="Create or reuse a client and import its roadmap",
)
async def add_roadmap(
    body: RoadmapBody,
    service: Roadmaps,
    background_tasks: BackgroundTasks,
) -> AddRoadmapResponse:
    """
    Import a roadmap for a new or existing client.

    The client's credentials are emailed after the response is sent.
    """
    result = await service.add_roadmap(body)
    background_tasks.add_task(service.send_credentials, result.notice)
    return result.response


@router.put(
    "/update-roadmap",
    response_model=UpdateRoadmapResponse,
    responses=ERROR_RESPONSES,
    summary="Rewrite the roadmap of a client's active cycle",
)
async def update_roadmap(body: RoadmapBody, service: Roadmaps) -> UpdateRoadmapResponse:
    return await service.update_roadmap(body)


@router.post(
    "/new-cycle-roadmap",
    response_model=NewCycleResponse,
    responses=ERROR_RESPONSES,
    summary="Open a new coaching cycle with its roadmap",
)
async def new_cycle_roadmap(body: RoadmapBody, service: Roadmaps) -> NewCycleResponse:
    return await service.new_cycle_roadmap(body)
