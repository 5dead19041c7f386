"""
Cycle Manager
=============

Picks the coaching cycle (``coach_clients`` row) a roadmap is written to:
the active cycle of a coach/client pair, the single active cycle of a
client, or a freshly opened cycle.

Opening a cycle never closes earlier ones; a pair accumulates one row per
cycle, told apart by ``cycle_number``.
"""

import re
from datetime import date, datetime, timezone
from typing import Optional
from uuid import UUID

import structlog

from roadmap_sync.core.exceptions import (
    EngagementNotFoundError,
    RelationCreationError,
    StoreError,
)
from roadmap_sync.core.models import CoachClient, EngagementStatus
from roadmap_sync.core.schemas import TOTAL_WEEKS
from roadmap_sync.core.store import Store

logger = structlog.get_logger()

ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
FIRST_CYCLE = 1


def today() -> date:
    return datetime.now(timezone.utc).date()


def resolve_start_date(raw: Optional[str]) -> date:
    """``YYYY-MM-DD`` when well formed, today otherwise."""
    if raw and ISO_DATE.match(raw.strip()):
        try:
            return date.fromisoformat(raw.strip())
        except ValueError:
            logger.warning("start_date_invalid", value=raw)
    return today()


class CycleManager:
    """Lookup and creation of coaching cycles."""

    def __init__(self, store: Store):
        self.store = store

    async def find_active(self, coach_id: UUID, client_id: UUID) -> Optional[CoachClient]:
        return await self.store.first(
            CoachClient,
            coach_id=coach_id,
            client_id=client_id,
            status=EngagementStatus.ACTIVE,
            order_by=[CoachClient.cycle_number.desc()],
        )

    async def ensure_active(self, coach_id: UUID, client_id: UUID, start_date: date) -> CoachClient:
        """
        Active cycle of the pair, created as cycle 1 when none exists.

        Raises:
            RelationCreationError: the cycle could not be created
        """
        engagement = await self.find_active(coach_id, client_id)
        if engagement is not None:
            logger.info("engagement_reused", coach_client_id=str(engagement.id))
            return engagement

        return await self._insert(
            coach_id,
            client_id,
            start_date,
            FIRST_CYCLE,
            failure_message="Failed to create coach-client relation",
        )

    async def find_active_for_client(self, client_id: UUID) -> CoachClient:
        """
        The client's active cycle. With several, the latest cycle wins.

        Raises:
            EngagementNotFoundError: the client has no active cycle
        """
        engagement = await self.store.first(
            CoachClient,
            client_id=client_id,
            status=EngagementStatus.ACTIVE,
            order_by=[CoachClient.cycle_number.desc(), CoachClient.created_at.desc()],
        )
        if engagement is None:
            raise EngagementNotFoundError(
                details="No active coach-client relation for this client. Use /add-roadmap to create one."
            )
        return engagement

    async def next_cycle_number(self, coach_id: UUID, client_id: UUID) -> int:
        """One past the pair's highest cycle; 2 when none is recorded."""
        latest = await self.store.first(
            CoachClient,
            coach_id=coach_id,
            client_id=client_id,
            order_by=[CoachClient.cycle_number.desc()],
        )
        if latest is None or not latest.cycle_number:
            return FIRST_CYCLE + 1
        return latest.cycle_number + 1

    async def open_cycle(
        self,
        coach_id: UUID,
        client_id: UUID,
        start_date: date,
        cycle_number: Optional[int] = None,
    ) -> CoachClient:
        """
        Always insert a new active cycle for the pair.

        Raises:
            RelationCreationError: the cycle could not be created
        """
        if cycle_number is None:
            cycle_number = await self.next_cycle_number(coach_id, client_id)
        return await self._insert(
            coach_id,
            client_id,
            start_date,
            cycle_number,
            failure_message="Failed to create coach-client relation for new cycle",
        )

    async def _insert(
        self,
        coach_id: UUID,
        client_id: UUID,
        start_date: date,
        cycle_number: int,
        failure_message: str,
    ) -> CoachClient:
        try:
            engagement = await self.store.insert(
                CoachClient,
                {
                    "coach_id": coach_id,
                    "client_id": client_id,
                    "status": EngagementStatus.ACTIVE,
                    "program_start_date": start_date,
                    "total_weeks": TOTAL_WEEKS,
                    "current_week": 1,
                    "cycle_number": cycle_number,
                },
            )
        except StoreError as e:
            logger.error("engagement_creation_failed", coach_id=str(coach_id), client_id=str(client_id), error=str(e))
            raise RelationCreationError(failure_message, details=str(e)) from e

        logger.info(
            "engagement_created",
            coach_client_id=str(engagement.id),
            cycle_number=cycle_number,
            program_start_date=start_date.isoformat(),
        )
        return engagement
