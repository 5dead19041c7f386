"""
Ultra Roadmap Sync - API Dependencies
=====================================

Shared dependencies for FastAPI endpoints.
"""

import secrets
from typing import Annotated, Optional

import structlog
from fastapi import Depends, Header, Request

from roadmap_sync.core.config import Settings, get_settings
from roadmap_sync.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConfigurationError,
)
from roadmap_sync.core.roadmap import RoadmapService

logger = structlog.get_logger()


# ==========================================================================
# Shared Secret
# ==========================================================================

async def require_api_key(
    config: Annotated[Settings, Depends(get_settings)],
    x_api_key: Annotated[Optional[str], Header(alias="X-API-KEY")] = None,
) -> None:
    """
    Check the shared secret header.

    Raises:
        AuthenticationError: header missing (401)
        ConfigurationError: server has no secret configured (500)
        AuthorizationError: header does not match (403)
    """
    provided = (x_api_key or "").strip()
    if not provided:
        raise AuthenticationError()

    expected = config.expected_api_key
    if not expected:
        logger.error("api_key_not_configured")
        raise ConfigurationError("Server configuration error: X_API_KEY or API_KEY must be set")

    if not secrets.compare_digest(provided.encode(), expected.encode()):
        raise AuthorizationError()


# ==========================================================================
# Services
# ==========================================================================

def get_roadmap_service(request: Request) -> RoadmapService:
    """The pipeline built once at startup."""
    return request.app.state.roadmap_service


ApiKey = Depends(require_api_key)
Roadmaps = Annotated[RoadmapService, Depends(get_roadmap_service)]
