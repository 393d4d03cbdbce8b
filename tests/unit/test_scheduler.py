"""Unit tests for the dependency scheduler."""

import pytest

from engineering_partner.core.cancellation import CancellationToken
from engineering_partner.core.errors import (
    DependencyCycleError,
    DependencyStallError,
    ScheduleConfigurationError,
    WorkflowCancelledError,
)
from engineering_partner.core.events import EventEmitter, EventType
from engineering_partner.project.models import VersionedOutput, WorkItem, WorkItemStatus
from engineering_partner.workflow.scheduler import (
    DependencyScheduler,
    UnitOutput,
    detect_cycles,
    validate_schedule,
)


def recording_generator(calls: list[str], fail: set[str] | None = None):
    async def generate(item: WorkItem) -> UnitOutput:
        calls.append(item.id)
        if fail and item.id in fail:
            raise RuntimeError(f"model refused {item.name}")
        return UnitOutput(content=f"spec for {item.name}", deliverables=[f"{item.name}.md"])

    return generate


# =============================================================================
# GRAPH VALIDATION
# =============================================================================


@pytest.mark.unit
class TestGraphValidation:
    """Tests for cycle detection and batch validation."""

    def test_detect_cycles_none(self) -> None:
        assert detect_cycles({"a": [], "b": ["a"], "c": ["a", "b"]}) is None

    def test_detect_two_cycle(self) -> None:
        cycles = detect_cycles({"a": ["b"], "b": ["a"]})
        assert cycles is not None
        assert set(cycles[0]) == {"a", "b"}

    def test_cycle_rejected_listing_both_items(self) -> None:
        items = [
            WorkItem(id="x", name="Thermal", dependencies=["y"]),
            WorkItem(id="y", name="Structure", dependencies=["x"]),
        ]
        with pytest.raises(DependencyCycleError) as exc:
            validate_schedule(items)

        assert set(exc.value.stuck_ids) >= {"x", "y"}
        assert set(exc.value.stuck_names) == {"Thermal", "Structure"}
        assert isinstance(exc.value, DependencyStallError)

    def test_self_dependency_rejected(self) -> None:
        with pytest.raises(ScheduleConfigurationError, match="depends on itself"):
            validate_schedule([WorkItem(id="a", name="Loop", dependencies=["a"])])

    def test_unknown_dependency_rejected(self) -> None:
        with pytest.raises(ScheduleConfigurationError, match="unknown dependencies: ghost"):
            validate_schedule([WorkItem(id="a", name="A", dependencies=["ghost"])])

    def test_duplicate_ids_rejected(self) -> None:
        with pytest.raises(ScheduleConfigurationError, match="Duplicate"):
            validate_schedule([WorkItem(id="a", name="A"), WorkItem(id="a", name="B")])

    def test_sink_requires_ids(self, sink) -> None:
        with pytest.raises(ScheduleConfigurationError):
            DependencyScheduler([], recording_generator([]), sink=sink)


# =============================================================================
# SCHEDULING
# =============================================================================


@pytest.mark.unit
class TestDependencyScheduler:
    """Tests for DependencyScheduler.run."""

    @pytest.mark.asyncio
    async def test_topological_order(self, chain_items: list[WorkItem]) -> None:
        calls: list[str] = []
        # Declared out of order on purpose
        items = [chain_items[2], chain_items[1], chain_items[0]]

        report = await DependencyScheduler(items, recording_generator(calls)).run()

        assert calls == ["a", "b", "c"]
        assert report.completed == ["a", "b", "c"]
        assert report.succeeded
        assert all(i.status == WorkItemStatus.COMPLETED for i in items)

    @pytest.mark.asyncio
    async def test_outputs_appended_with_deliverables(self, chain_items: list[WorkItem]) -> None:
        await DependencyScheduler(chain_items, recording_generator([])).run()

        item = chain_items[1]
        assert item.latest_version == 1
        assert item.current_content == "spec for FMEA"
        assert item.outputs[0].reason == "Automated generation"
        assert item.deliverables == ["FMEA.md"]

    @pytest.mark.asyncio
    async def test_each_item_generated_once(self) -> None:
        calls: list[str] = []
        items = [
            WorkItem(id="a", name="A"),
            WorkItem(id="b", name="B", dependencies=["a"]),
            WorkItem(id="c", name="C", dependencies=["a"]),
            WorkItem(id="d", name="D", dependencies=["b", "c"]),
        ]

        await DependencyScheduler(items, recording_generator(calls)).run()

        assert sorted(calls) == ["a", "b", "c", "d"]
        assert calls[0] == "a"
        assert calls[-1] == "d"

    @pytest.mark.asyncio
    async def test_partial_failure_stalls_dependents(self, chain_items: list[WorkItem]) -> None:
        calls: list[str] = []
        events = EventEmitter()
        scheduler = DependencyScheduler(chain_items, recording_generator(calls, fail={"b"}), events=events)

        with pytest.raises(DependencyStallError) as exc:
            await scheduler.run()

        assert calls == ["a", "b"]
        assert exc.value.stuck_ids == ["c"]
        assert exc.value.stuck_names == ["DFMA"]
        assert exc.value.report.completed == ["a"]
        assert "b" in exc.value.report.failed
        assert chain_items[0].status == WorkItemStatus.COMPLETED
        assert chain_items[1].status == WorkItemStatus.FAILED
        assert chain_items[2].status == WorkItemStatus.NOT_STARTED
        assert len(events.events_of(EventType.STALLED)) == 1
        assert "DFMA" in events.events_of(EventType.STALLED)[0].message

    @pytest.mark.asyncio
    async def test_failure_does_not_block_independent_branch(self) -> None:
        calls: list[str] = []
        items = [
            WorkItem(id="a", name="A"),
            WorkItem(id="b", name="B"),
            WorkItem(id="c", name="C", dependencies=["b"]),
        ]

        report = await DependencyScheduler(items, recording_generator(calls, fail={"a"})).run()

        assert calls == ["a", "b", "c"]
        assert report.completed == ["b", "c"]
        assert list(report.failed) == ["a"]
        assert not report.succeeded

    @pytest.mark.asyncio
    async def test_completed_items_are_skipped(self, chain_items: list[WorkItem]) -> None:
        calls: list[str] = []
        chain_items[0].status = WorkItemStatus.COMPLETED

        report = await DependencyScheduler(chain_items, recording_generator(calls)).run()

        assert calls == ["b", "c"]
        assert report.completed == ["b", "c"]

    @pytest.mark.asyncio
    async def test_delay_between_units(self, chain_items: list[WorkItem], sleep) -> None:
        await DependencyScheduler(chain_items, recording_generator([]), unit_delay=1.5, sleep=sleep).run()

        assert sleep.delays == [1.5, 1.5]

    @pytest.mark.asyncio
    async def test_persists_completed_and_failed(self, chain_items: list[WorkItem], sink) -> None:
        scheduler = DependencyScheduler(
            chain_items[:2],
            recording_generator([], fail={"b"}),
            sink=sink,
            project_id="proj-1",
            phase_id="critical-design",
        )

        await scheduler.run()

        first, second = sink.updates
        assert first.work_item_id == "a"
        assert first.work_item_status == WorkItemStatus.COMPLETED
        assert first.output is not None and first.output.version == 1
        assert first.deliverables == ["Architecture.md"]
        assert second.work_item_id == "b"
        assert second.work_item_status == WorkItemStatus.FAILED
        assert second.output is None

    @pytest.mark.asyncio
    async def test_completion_hook_called_in_order(self, chain_items: list[WorkItem]) -> None:
        seen: list[tuple[str, int]] = []

        async def hook(item: WorkItem, output: VersionedOutput) -> None:
            seen.append((item.id, output.version))

        await DependencyScheduler(chain_items, recording_generator([]), on_completed=hook).run()

        assert seen == [("a", 1), ("b", 1), ("c", 1)]

    @pytest.mark.asyncio
    async def test_events_for_each_unit(self, chain_items: list[WorkItem]) -> None:
        events = EventEmitter()

        await DependencyScheduler(chain_items, recording_generator([]), events=events, unit_label="document").run()

        started = events.events_of(EventType.UNIT_STARTED)
        assert [e.subject_id for e in started] == ["a", "b", "c"]
        assert started[0].message == "Generating document: Architecture..."
        assert len(events.events_of(EventType.UNIT_COMPLETED)) == 3


@pytest.mark.unit
class TestSchedulerCancellation:
    """Tests for cancellation between and during units."""

    @pytest.mark.asyncio
    async def test_cancel_before_start(self, chain_items: list[WorkItem]) -> None:
        calls: list[str] = []
        token = CancellationToken()
        token.cancel()

        with pytest.raises(WorkflowCancelledError):
            await DependencyScheduler(chain_items, recording_generator(calls), cancel_token=token).run()

        assert calls == []

    @pytest.mark.asyncio
    async def test_cancel_during_unit_restores_status(self, chain_items: list[WorkItem]) -> None:
        token = CancellationToken()
        calls: list[str] = []

        async def generate(item: WorkItem) -> UnitOutput:
            calls.append(item.id)
            if item.id == "b":
                token.cancel()
            return UnitOutput(content="done")

        with pytest.raises(WorkflowCancelledError):
            await DependencyScheduler(chain_items, generate, cancel_token=token).run()

        assert calls == ["a", "b"]
        assert chain_items[0].status == WorkItemStatus.COMPLETED
        assert chain_items[1].status == WorkItemStatus.NOT_STARTED
        assert chain_items[1].outputs == []
