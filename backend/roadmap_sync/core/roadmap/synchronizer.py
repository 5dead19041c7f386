"""
Roadmap Synchronizer
====================

Writes the strategic content of a roadmap into one coaching cycle:

1. three strategic pillars, upserted on (cycle, pillar type)
2. sixteen week notes, upserted on (cycle, week), titled by the
   ``WeekTitleGenerator``; week 1 also carries the strategic goals
3. one task per bullet of every week when the cycle has a coach, skipped
   when a similar task already exists for the client and week
4. the week 1 financial snapshot, upserted on (cycle, week), falling back
   to select-then-update-or-insert when the store rejects that target

Each entity is written independently. A failed write is logged and
reported, and the remaining writes still run.

Task duplicate checks are one lookup per bullet and dominate the latency
of large plans.
"""

import asyncio
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional, Sequence
from uuid import UUID

import structlog

from roadmap_sync.core.exceptions import ConflictTargetError, StoreError
from roadmap_sync.core.models import (
    ClientMetric,
    CoachingTask,
    PillarType,
    StrategicPillar,
    TaskPriority,
    TaskStatus,
    WeekNote,
)
from roadmap_sync.core.roadmap.cycles import today
from roadmap_sync.core.roadmap.parsers import (
    bullet_items,
    parse_count,
    parse_currency,
    parse_percentage,
    short_title,
    split_lines,
)
from roadmap_sync.core.roadmap.titles import WeekTitleGenerator
from roadmap_sync.core.schemas import (
    WEEKS_PER_MONTH,
    Financials,
    MonthlyPlan,
    RoadmapContent,
    StrategicGoals,
    Vision,
)
from roadmap_sync.core.store import Store

logger = structlog.get_logger()

TASK_TITLE_MAX_LENGTH = 80
DUPLICATE_PROBE_LENGTH = 50
METRICS_WEEK = 1
NO_SUGGESTION = "Aucune suggestion"

# (vision slot, stored pillar type, display title)
PILLAR_SLOTS = (
    ("operations", PillarType.OPERATIONS, "Structure & Opérations"),
    ("acquisition", PillarType.ACQUISITION, "Acquisition & Vente"),
    ("vision_pilotage", PillarType.VISION, "Vision & Pilotage"),
)

PILLAR_CONFLICT = ("coach_client_id", "pillar_type")
WEEK_NOTE_CONFLICT = ("coach_client_id", "week_number")
METRIC_CONFLICT = ("coach_client_id", "week_number")


@dataclass
class SyncTarget:
    """Where a roadmap is written."""
    coach_client_id: UUID
    client_id: UUID
    coach_id: Optional[UUID] = None


@dataclass
class WeekPlan:
    week_number: int
    actions: str
    title: str = ""


@dataclass
class SyncReport:
    """What one synchronization wrote."""
    pillars: int = 0
    week_notes: int = 0
    tasks_created: int = 0
    tasks_skipped: int = 0
    metrics_written: bool = False
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


# ==========================================================================
# Row builders
# ==========================================================================

def build_pillar_rows(coach_client_id: UUID, vision: Vision) -> list[dict[str, Any]]:
    """Exactly three pillar rows; missing sections degrade to placeholders."""
    rows = []
    for slot, pillar_type, title in PILLAR_SLOTS:
        section = getattr(vision, slot)
        rows.append({
            "coach_client_id": coach_client_id,
            "pillar_type": pillar_type,
            "title": title,
            "problem": section.current_situation if section else "",
            "actions": split_lines(section.actions) if section else [],
            "expert_tip": (section.expert_suggestion if section else "") or NO_SUGGESTION,
        })
    return rows


def format_strategic_goals(goals: Optional[StrategicGoals]) -> Optional[str]:
    if goals is None:
        return None
    return (
        "OBJECTIFS STRATÉGIQUES\n\n"
        f"Objectifs 4 mois:\n{goals.goals_4_months}\n\n"
        f"Objectifs 12 mois:\n{goals.goals_12_months}"
    )


def build_week_plans(monthly_plan: MonthlyPlan) -> list[WeekPlan]:
    """Weeks 1..16, month by month."""
    plans = []
    for month_index, month in enumerate(monthly_plan.months):
        for week_offset, actions in enumerate(month.weeks):
            plans.append(WeekPlan(
                week_number=month_index * WEEKS_PER_MONTH + week_offset + 1,
                actions=actions,
            ))
    return plans


def build_week_note_rows(
    coach_client_id: UUID,
    weeks: Sequence[WeekPlan],
    goals: Optional[str],
) -> list[dict[str, Any]]:
    return [
        {
            "coach_client_id": coach_client_id,
            "week_number": week.week_number,
            "comment": week.title,
            "details": goals if week.week_number == 1 else None,
        }
        for week in weeks
    ]


def build_metric_values(financials: Optional[Financials]) -> Optional[dict[str, Any]]:
    """
    Parsed financial fields, unparseable ones omitted.

    ``None`` unless revenue, cash or headcount parsed.
    """
    if financials is None:
        return None

    revenue = parse_currency(financials.ca)
    cash_in_bank = parse_currency(financials.treasury)
    clients_count = parse_count(financials.collaborators)
    conversion_rate = parse_percentage(financials.margin)

    if revenue is None and cash_in_bank is None and clients_count is None:
        return None

    values = {
        "revenue": _decimal(revenue),
        "cash_in_bank": _decimal(cash_in_bank),
        "clients_count": clients_count,
        "conversion_rate": _decimal(conversion_rate),
    }
    return {name: value for name, value in values.items() if value is not None}


def _decimal(value: Optional[float]) -> Optional[Decimal]:
    return None if value is None else Decimal(str(value))


def _like_pattern(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


# ==========================================================================
# Synchronizer
# ==========================================================================

class RoadmapSynchronizer:
    """Writes roadmap content into a coaching cycle."""

    def __init__(self, store: Store, titles: WeekTitleGenerator):
        self.store = store
        self.titles = titles

    async def sync(
        self,
        target: SyncTarget,
        content: RoadmapContent,
        concurrent: bool = False,
    ) -> SyncReport:
        """
        Write every part of ``content`` the roadmap carries.

        With ``concurrent`` the pillar, week note and task writes are
        issued together; otherwise they run pillar by pillar and week by
        week. Never raises for a failed entity write.
        """
        report = SyncReport()
        log = logger.bind(coach_client_id=str(target.coach_client_id))

        weeks: list[WeekPlan] = []
        if content.monthly_plan is not None:
            weeks = build_week_plans(content.monthly_plan)
            titles = await self.titles.generate([week.actions for week in weeks])
            for week, title in zip(weeks, titles):
                week.title = title
        goals = format_strategic_goals(content.strategic_goals)

        if concurrent:
            await self._sync_batched(target, content, weeks, goals, report)
        else:
            await self._sync_sequential(target, content, weeks, goals, report)

        metrics = build_metric_values(content.header.financials)
        if metrics is not None:
            report.metrics_written = await self.write_metrics(target, metrics, report)

        log.info(
            "roadmap_synchronized",
            mode="concurrent" if concurrent else "sequential",
            pillars=report.pillars,
            week_notes=report.week_notes,
            tasks_created=report.tasks_created,
            tasks_skipped=report.tasks_skipped,
            metrics_written=report.metrics_written,
            errors=len(report.errors),
        )
        return report

    async def _sync_batched(
        self,
        target: SyncTarget,
        content: RoadmapContent,
        weeks: Sequence[WeekPlan],
        goals: Optional[str],
        report: SyncReport,
    ) -> None:
        jobs = []
        if content.vision is not None:
            jobs.append(self._write_pillars(build_pillar_rows(target.coach_client_id, content.vision), report))
        if weeks:
            jobs.append(self._write_week_notes(build_week_note_rows(target.coach_client_id, weeks, goals), report))
            if target.coach_id is not None:
                jobs.append(self._write_tasks(target, weeks, report))
        await asyncio.gather(*jobs)

    async def _sync_sequential(
        self,
        target: SyncTarget,
        content: RoadmapContent,
        weeks: Sequence[WeekPlan],
        goals: Optional[str],
        report: SyncReport,
    ) -> None:
        if content.vision is not None:
            for row in build_pillar_rows(target.coach_client_id, content.vision):
                await self._write_pillars([row], report)

        for week in weeks:
            rows = build_week_note_rows(target.coach_client_id, [week], goals)
            await self._write_week_notes(rows, report)
            if target.coach_id is not None:
                await self._write_tasks(target, [week], report)

    # ======================================================================
    # Entity writers
    # ======================================================================

    async def _write_pillars(self, rows: list[dict[str, Any]], report: SyncReport) -> None:
        try:
            report.pillars += await self.store.upsert(StrategicPillar, rows, conflict=PILLAR_CONFLICT)
        except StoreError as e:
            kinds = [row["pillar_type"].value for row in rows]
            logger.error("pillar_upsert_failed", pillar_types=kinds, error=str(e))
            report.errors.append(f"pillars {','.join(kinds)}: {e}")

    async def _write_week_notes(self, rows: list[dict[str, Any]], report: SyncReport) -> None:
        try:
            report.week_notes += await self.store.upsert(WeekNote, rows, conflict=WEEK_NOTE_CONFLICT)
        except StoreError as e:
            week_numbers = [row["week_number"] for row in rows]
            logger.error("week_note_upsert_failed", weeks=week_numbers, error=str(e))
            report.errors.append(f"week notes {week_numbers}: {e}")

    async def _write_tasks(self, target: SyncTarget, weeks: Sequence[WeekPlan], report: SyncReport) -> None:
        for week in weeks:
            for action in bullet_items(week.actions):
                try:
                    if await self.task_exists(target.client_id, week.week_number, action):
                        report.tasks_skipped += 1
                        continue
                    await self.store.insert(CoachingTask, {
                        "coach_id": target.coach_id,
                        "client_id": target.client_id,
                        "title": short_title(action, TASK_TITLE_MAX_LENGTH),
                        "week_number": week.week_number,
                        "status": TaskStatus.PENDING,
                        "priority": TaskPriority.MEDIUM,
                    })
                    report.tasks_created += 1
                except StoreError as e:
                    logger.error("task_creation_failed", week=week.week_number, error=str(e))
                    report.errors.append(f"task week {week.week_number}: {e}")

    async def task_exists(self, client_id: UUID, week_number: int, action: str) -> bool:
        """Case-insensitive substring match on the start of the action text."""
        probe = action[:DUPLICATE_PROBE_LENGTH]
        existing = await self.store.first(
            CoachingTask,
            CoachingTask.title.ilike(_like_pattern(probe), escape="\\"),
            client_id=client_id,
            week_number=week_number,
        )
        return existing is not None

    async def write_metrics(self, target: SyncTarget, values: dict[str, Any], report: SyncReport) -> bool:
        row = {
            "coach_client_id": target.coach_client_id,
            "client_id": target.client_id,
            "week_number": METRICS_WEEK,
            "metric_date": today(),
            **values,
        }
        try:
            try:
                await self.store.upsert(ClientMetric, [row], conflict=METRIC_CONFLICT)
            except ConflictTargetError:
                logger.warning("metrics_upsert_target_rejected", coach_client_id=str(target.coach_client_id))
                await self._replace_metrics(row)
        except StoreError as e:
            logger.error("metrics_write_failed", coach_client_id=str(target.coach_client_id), error=str(e))
            report.errors.append(f"metrics: {e}")
            return False
        return True

    async def _replace_metrics(self, row: dict[str, Any]) -> None:
        existing = await self.store.first(
            ClientMetric,
            coach_client_id=row["coach_client_id"],
            week_number=row["week_number"],
        )
        if existing is not None:
            await self.store.update(ClientMetric, row, id=existing.id)
        else:
            await self.store.insert(ClientMetric, row)
