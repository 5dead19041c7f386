"""
Ultra Roadmap Sync - Roadmap Synchronizer Tests
===============================================
"""

from decimal import Decimal
from uuid import uuid4

import pytest

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
from roadmap_sync.core.roadmap.titles import WeekTitleGenerator
from roadmap_sync.core.roadmap.synchronizer import (
    NO_SUGGESTION,
    RoadmapSynchronizer,
    SyncTarget,
    build_metric_values,
    build_pillar_rows,
)
from roadmap_sync.core.schemas import Financials, RoadmapContent, Vision


@pytest.fixture
def content(plan) -> RoadmapContent:
    return RoadmapContent.model_validate(plan)


@pytest.fixture
async def target(cycles, coach, create_profile) -> SyncTarget:
    client = await create_profile("jean@acme.test", full_name="Jean Dupont")
    engagement = await cycles.ensure_active(coach.id, client.id, today())
    return SyncTarget(coach_client_id=engagement.id, client_id=client.id, coach_id=coach.id)


# ==========================================================================
# Row builders
# ==========================================================================

class TestRowBuilders:

    def test_three_pillars_with_placeholders(self, content):
        rows = build_pillar_rows(uuid4(), content.vision)

        assert [row["pillar_type"] for row in rows] == [
            PillarType.OPERATIONS,
            PillarType.ACQUISITION,
            PillarType.VISION,
        ]
        operations, acquisition, vision = rows
        assert operations["title"] == "Structure & Opérations"
        assert operations["actions"] == ["Documenter les processus", "Recruter un assistant"]
        assert acquisition["expert_tip"] == NO_SUGGESTION
        assert vision["problem"] == ""
        assert vision["actions"] == []
        assert vision["expert_tip"] == NO_SUGGESTION

    def test_empty_vision(self):
        rows = build_pillar_rows(uuid4(), Vision())
        assert len(rows) == 3
        assert all(row["expert_tip"] == NO_SUGGESTION for row in rows)

    def test_metric_values(self):
        values = build_metric_values(Financials(ca="1 234,56 €", treasury="", collaborators="12", margin="12%"))
        assert values == {
            "revenue": Decimal("1234.56"),
            "clients_count": 12,
            "conversion_rate": Decimal("12.0"),
        }

    def test_margin_alone_is_not_enough(self):
        assert build_metric_values(Financials(margin="12%")) is None
        assert build_metric_values(None) is None


# ==========================================================================
# Synchronization
# ==========================================================================

class TestSync:

    @pytest.mark.parametrize("concurrent", [True, False])
    async def test_writes_every_entity(self, synchronizer, store, target, content, concurrent):
        report = await synchronizer.sync(target, content, concurrent=concurrent)

        assert report.ok
        assert report.pillars == 3
        assert report.week_notes == 16
        assert report.tasks_created == 32
        assert report.metrics_written

        notes = await store.select(WeekNote, coach_client_id=target.coach_client_id, order_by=[WeekNote.week_number])
        assert [note.week_number for note in notes] == list(range(1, 17))
        assert notes[0].comment == "Action 1.1 prospect leads"
        assert notes[0].details.startswith("OBJECTIFS STRATÉGIQUES")
        assert "Doubler le pipeline" in notes[0].details
        assert notes[1].details is None

        tasks = await store.select(CoachingTask, client_id=target.client_id, week_number=5)
        assert sorted(task.title for task in tasks) == ["Action 2.1 prospect leads", "Review 2.1 pipeline"]
        assert all(task.status == TaskStatus.PENDING for task in tasks)
        assert all(task.priority == TaskPriority.MEDIUM for task in tasks)
        assert all(task.coach_id == target.coach_id for task in tasks)

        metric = await store.first(ClientMetric, coach_client_id=target.coach_client_id)
        assert metric.week_number == 1
        assert metric.revenue == Decimal("1234.56")
        assert metric.cash_in_bank == Decimal("10000.00")
        assert metric.clients_count == 12
        assert metric.conversion_rate == Decimal("12.00")
        assert metric.metric_date == today()

    async def test_reingestion_is_idempotent(self, synchronizer, store, target, content):
        await synchronizer.sync(target, content, concurrent=True)
        report = await synchronizer.sync(target, content)

        assert report.tasks_created == 0
        assert report.tasks_skipped == 32
        assert len(await store.select(StrategicPillar, coach_client_id=target.coach_client_id)) == 3
        assert len(await store.select(WeekNote, coach_client_id=target.coach_client_id)) == 16
        assert len(await store.select(CoachingTask, client_id=target.client_id)) == 32
        assert len(await store.select(ClientMetric, coach_client_id=target.coach_client_id)) == 1

    async def test_last_write_wins(self, synchronizer, store, target, plan):
        await synchronizer.sync(target, RoadmapContent.model_validate(plan))

        plan["vision"]["structure"]["current_situation"] = "Processus documentés"
        plan["header"]["financials"]["ca"] = "2 000 €"
        await synchronizer.sync(target, RoadmapContent.model_validate(plan))

        pillar = await store.first(
            StrategicPillar,
            coach_client_id=target.coach_client_id,
            pillar_type=PillarType.OPERATIONS,
        )
        assert pillar.problem == "Processus documentés"
        metric = await store.first(ClientMetric, coach_client_id=target.coach_client_id)
        assert metric.revenue == Decimal("2000.00")

    async def test_no_tasks_without_coach(self, synchronizer, store, target, content):
        target.coach_id = None
        report = await synchronizer.sync(target, content)

        assert report.tasks_created == 0
        assert report.week_notes == 16
        assert await store.select(CoachingTask, client_id=target.client_id) == []

    async def test_similar_task_suppressed(self, synchronizer, store, target, plan):
        plan["monthly_plan"]["month_1"]["week_1"] = "- Call 10 leads"
        await synchronizer.sync(target, RoadmapContent.model_validate(plan))

        plan["monthly_plan"]["month_1"]["week_1"] = "- CALL 10 LEADS\n- Draft 100% proposal"
        report = await synchronizer.sync(target, RoadmapContent.model_validate(plan))

        week_one = await store.select(CoachingTask, client_id=target.client_id, week_number=1)
        assert sorted(task.title for task in week_one) == ["Call 10 leads", "Draft 100% proposal"]
        assert report.tasks_created == 1

    async def test_long_action_truncated(self, synchronizer, store, target, plan):
        action = "Organiser " + "une série d'ateliers " * 10
        plan["monthly_plan"]["month_1"]["week_1"] = f"- {action}"
        await synchronizer.sync(target, RoadmapContent.model_validate(plan))

        task = await store.first(CoachingTask, client_id=target.client_id, week_number=1)
        assert task.title.endswith("...")
        assert len(task.title) <= 83

    async def test_partial_content(self, synchronizer, store, target):
        report = await synchronizer.sync(target, RoadmapContent())

        assert report.ok
        assert report.pillars == 0
        assert report.week_notes == 0
        assert not report.metrics_written
        assert await store.select(WeekNote, coach_client_id=target.coach_client_id) == []


# ==========================================================================
# Failure handling
# ==========================================================================

class TestFailures:

    async def test_metrics_fallback_when_target_rejected(self, store, titles, target, content):
        class RejectingStore(type(store)):
            async def upsert(self, model, rows, conflict):
                if model is ClientMetric:
                    raise ConflictTargetError(model.__tablename__, conflict)
                return await super().upsert(model, rows, conflict)

        rejecting = RejectingStore(store._session_factory)
        synchronizer = RoadmapSynchronizer(rejecting, titles)

        first = await synchronizer.sync(target, content)
        second = await synchronizer.sync(target, content)

        assert first.metrics_written and second.metrics_written
        metrics = await store.select(ClientMetric, coach_client_id=target.coach_client_id)
        assert len(metrics) == 1
        assert metrics[0].revenue == Decimal("1234.56")

    async def test_entity_failure_does_not_abort(self, store, titles, target, content):
        class FlakyStore(type(store)):
            async def upsert(self, model, rows, conflict):
                if model is StrategicPillar:
                    raise StoreError("pillars unavailable")
                return await super().upsert(model, rows, conflict)

        synchronizer = RoadmapSynchronizer(FlakyStore(store._session_factory), titles)
        report = await synchronizer.sync(target, content, concurrent=True)

        assert not report.ok
        assert any("pillars" in error for error in report.errors)
        assert report.week_notes == 16
        assert report.tasks_created == 32
        assert report.metrics_written


async def test_generated_week_titles(store, http_client, upstream, completion_response, target, content):
    url = "https://completion.test/v1/chat/completions"
    upstream.queue(url, completion_response([f"Semaine {n}" for n in range(1, 17)]))
    titles = WeekTitleGenerator(api_key="sk-test", api_url=url, model="test-model", client=http_client)

    await RoadmapSynchronizer(store, titles).sync(target, content)

    notes = await store.select(WeekNote, coach_client_id=target.coach_client_id, order_by=[WeekNote.week_number])
    assert [note.comment for note in notes] == [f"Semaine {n}" for n in range(1, 17)]
    assert len(upstream.sent_to(url)) == 1
