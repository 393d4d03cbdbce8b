"""
Dependency Scheduler.

Drives a batch of work items through generation exactly once each, in an
order consistent with their declared dependencies. Items run sequentially:
later prompts read content produced by earlier items and the provider is
rate limited. A failed item never blocks independent branches; items that
depend on it end the run in the stalled state.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from engineering_partner.core.cancellation import CancellationToken
from engineering_partner.core.errors import (
    DependencyCycleError,
    DependencyStallError,
    ScheduleConfigurationError,
    WorkflowCancelledError,
)
from engineering_partner.core.events import EventEmitter, EventLevel, EventType
from engineering_partner.llm.retry import SleepFunc
from engineering_partner.project.models import VersionedOutput, WorkItem, WorkItemStatus
from engineering_partner.project.store import ProjectUpdate, UpdateSink

# =============================================================================
# RESULT MODELS
# =============================================================================


@dataclass
class UnitOutput:
    """Content produced for one work item."""

    content: str
    reason: str = "Automated generation"
    deliverables: list[str] | None = None


@dataclass
class ScheduleReport:
    """Outcome of a scheduler run."""

    completed: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    stalled: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        """True when every item completed."""
        return not self.failed and not self.stalled

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "completed": self.completed,
            "failed": self.failed,
            "stalled": self.stalled,
        }


UnitGenerator = Callable[[WorkItem], Awaitable[UnitOutput]]
CompletionHook = Callable[[WorkItem, VersionedOutput], Awaitable[None]]


# =============================================================================
# GRAPH VALIDATION
# =============================================================================


def detect_cycles(graph: dict[str, list[str]]) -> list[list[str]] | None:
    """
    Detect cycles in a dependency graph using DFS.

    Args:
        graph: Dependency graph (item_id -> [dependency_ids]).

    Returns:
        List of cycle paths if found, None otherwise.

    Example:
        >>> detect_cycles({"a": ["b"], "b": ["a"]})[0]
        ['a', 'b', 'a']
    """
    WHITE, GRAY, BLACK = 0, 1, 2
    colors: dict[str, int] = {node: WHITE for node in graph}
    cycles: list[list[str]] = []

    def dfs(node: str, path: list[str]) -> bool:
        colors[node] = GRAY
        path.append(node)

        for neighbor in graph.get(node, []):
            if neighbor not in colors:
                continue
            if colors[neighbor] == GRAY:
                cycle_start = path.index(neighbor)
                cycles.append(path[cycle_start:] + [neighbor])
                return True
            if colors[neighbor] == WHITE and dfs(neighbor, path):
                return True

        path.pop()
        colors[node] = BLACK
        return False

    for node in graph:
        if colors[node] == WHITE:
            dfs(node, [])

    return cycles if cycles else None


def validate_schedule(items: list[WorkItem]) -> None:
    """Reject batches that can never be scheduled.

    Raises:
        ScheduleConfigurationError: Duplicate id, self-dependency, or a
            dependency outside the batch.
        DependencyCycleError: Two or more items depend on each other.
    """
    ids = [item.id for item in items]
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        raise ScheduleConfigurationError(f"Duplicate work item ids: {', '.join(duplicates)}")

    known = set(ids)
    for item in items:
        if item.id in item.dependencies:
            raise ScheduleConfigurationError(f"Work item '{item.name}' ({item.id}) depends on itself")
        unknown = [dep for dep in item.dependencies if dep not in known]
        if unknown:
            raise ScheduleConfigurationError(
                f"Work item '{item.name}' ({item.id}) has unknown dependencies: {', '.join(unknown)}"
            )

    cycles = detect_cycles({item.id: list(item.dependencies) for item in items})
    if cycles:
        names = {item.id: item.name for item in items}
        cycle = cycles[0]
        raise DependencyCycleError(cycle, stuck_names=[names[i] for i in dict.fromkeys(cycle)])


# =============================================================================
# SCHEDULER
# =============================================================================


class DependencyScheduler:
    """
    Sequential, dependency-ordered driver for work item generation.

    Example:
        >>> scheduler = DependencyScheduler(phase.work_items, generate_sprint, events=emitter)
        >>> report = await scheduler.run()
        >>> report.completed
        ['critical-design-1', 'critical-design-2']
    """

    def __init__(
        self,
        items: list[WorkItem],
        generate: UnitGenerator,
        *,
        sink: UpdateSink | None = None,
        project_id: str | None = None,
        phase_id: str | None = None,
        events: EventEmitter | None = None,
        cancel_token: CancellationToken | None = None,
        on_completed: CompletionHook | None = None,
        unit_delay: float = 0.0,
        sleep: SleepFunc = asyncio.sleep,
        unit_label: str = "sprint",
    ) -> None:
        """
        Initialize the scheduler.

        Args:
            items: Live work items; statuses and outputs are updated in place.
            generate: Produces the content of one item.
            sink: Persistence for completed / failed items.
            project_id: Project owning the items (required with ``sink``).
            phase_id: Phase owning the items (required with ``sink``).
            events: Event channel for progress notifications.
            cancel_token: Checked between units and around each call.
            on_completed: Awaited after each item is committed.
            unit_delay: Pause between units in seconds.
            sleep: Awaitable sleep used for the pause.
            unit_label: Noun used for items in notifications.

        Raises:
            ScheduleConfigurationError: If the batch is malformed.
            DependencyCycleError: If the batch contains a cycle.
        """
        if sink is not None and (project_id is None or phase_id is None):
            raise ScheduleConfigurationError("project_id and phase_id are required to persist updates")

        validate_schedule(items)

        self.items = items
        self.generate = generate
        self.sink = sink
        self.project_id = project_id
        self.phase_id = phase_id
        self.events = events or EventEmitter()
        self.cancel_token = cancel_token or CancellationToken()
        self.on_completed = on_completed
        self.unit_delay = unit_delay
        self.sleep = sleep
        self.unit_label = unit_label

    async def run(self) -> ScheduleReport:
        """Process every item once.

        Returns:
            Report of completed and failed items.

        Raises:
            DependencyStallError: If pending items remain whose
                prerequisites can never complete.
            WorkflowCancelledError: If cancellation was requested.
        """
        report = ScheduleReport()
        completed: set[str] = {i.id for i in self.items if i.status == WorkItemStatus.COMPLETED}
        logger.info(f"Scheduling {len(self.items)} work items ({len(completed)} already completed)")

        while True:
            pending = [i for i in self.items if i.id not in completed and i.id not in report.failed]
            if not pending:
                break

            processable = [i for i in pending if i.is_ready(completed)]
            if not processable:
                self._stall(pending, report)

            for index, item in enumerate(processable):
                self.cancel_token.raise_if_cancelled()

                if await self._run_unit(item, report):
                    completed.add(item.id)

                if index < len(processable) - 1 or len(completed) + len(report.failed) < len(self.items):
                    await self._pause()

        logger.info(
            f"Schedule finished: {len(report.completed)} completed, {len(report.failed)} failed"
        )
        return report

    # -------------------------------------------------------------------------
    # Units
    # -------------------------------------------------------------------------

    async def _run_unit(self, item: WorkItem, report: ScheduleReport) -> bool:
        previous_status = item.status
        item.status = WorkItemStatus.IN_PROGRESS
        self.events.emit(EventType.UNIT_STARTED, f"Generating {self.unit_label}: {item.name}...", subject_id=item.id)
        logger.debug(f"Starting work item {item.id}")

        try:
            result = await self.generate(item)
            self.cancel_token.raise_if_cancelled()
        except WorkflowCancelledError:
            item.status = previous_status
            logger.info(f"Cancelled while generating {item.id}; status restored to {previous_status.value}")
            raise
        except Exception as e:
            item.status = WorkItemStatus.FAILED
            report.failed[item.id] = str(e)
            logger.error(f"Work item {item.id} failed: {e}")
            await self._persist(ProjectUpdate(
                project_id=self.project_id or "",
                phase_id=self.phase_id,
                work_item_id=item.id,
                work_item_status=WorkItemStatus.FAILED,
            ))
            self.events.emit(
                EventType.UNIT_FAILED,
                f'Failed on {self.unit_label} "{item.name}": {e}',
                level=EventLevel.ERROR,
                subject_id=item.id,
                error=str(e),
            )
            return False

        output = item.append_output(result.content, result.reason)
        item.status = WorkItemStatus.COMPLETED
        if result.deliverables is not None:
            item.deliverables = list(result.deliverables)

        await self._persist(ProjectUpdate(
            project_id=self.project_id or "",
            phase_id=self.phase_id,
            work_item_id=item.id,
            output=output,
            work_item_status=WorkItemStatus.COMPLETED,
            deliverables=result.deliverables,
        ))
        report.completed.append(item.id)
        self.events.emit(
            EventType.UNIT_COMPLETED,
            f'{self.unit_label.capitalize()} "{item.name}" completed.',
            level=EventLevel.SUCCESS,
            subject_id=item.id,
            version=output.version,
        )

        if self.on_completed is not None:
            await self.on_completed(item, output)
        return True

    async def _persist(self, update: ProjectUpdate) -> None:
        if self.sink is not None:
            await self.sink.apply(update)

    async def _pause(self) -> None:
        if self.unit_delay > 0:
            await self.sleep(self.unit_delay)
        self.cancel_token.raise_if_cancelled()

    def _stall(self, pending: list[WorkItem], report: ScheduleReport) -> None:
        report.stalled = [i.id for i in pending]
        names = [i.name for i in pending]
        message = f"Automation stalled. Could not process remaining {self.unit_label}s: {', '.join(names)}"
        logger.error(f"{message} (failed prerequisites: {', '.join(report.failed) or 'none'})")
        self.events.emit(
            EventType.STALLED,
            message,
            level=EventLevel.ERROR,
            stuck_ids=report.stalled,
            failed=list(report.failed),
        )
        raise DependencyStallError(message, stuck_ids=report.stalled, stuck_names=names, report=report)
