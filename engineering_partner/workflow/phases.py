"""
Automated phase generation.

Runs one lifecycle phase end to end: document phases generate their
standard documents in order, Critical Design plans dependency-ordered
sprints and drives them through the DependencyScheduler, and every other
phase gets a single phase document. The phase then receives a completion
version and, where a design review is required, a review checklist.
"""

import asyncio
import json
from dataclasses import dataclass, field

from loguru import logger

from engineering_partner.core.cancellation import CancellationToken
from engineering_partner.core.errors import (
    DependencyCycleError,
    DependencyStallError,
    PartnerError,
    ProjectNotFoundError,
    WorkflowCancelledError,
)
from engineering_partner.core.events import EventEmitter, EventLevel, EventType
from engineering_partner.llm.invoker import ModelInvoker
from engineering_partner.llm.retry import SleepFunc
from engineering_partner.llm.schemas import SprintPlan, SprintSpecification
from engineering_partner.llm.selection import TaskType
from engineering_partner.project.context import (
    SECTION_SEPARATOR,
    base_prompt_context,
    prior_phase_context,
    system_instruction,
)
from engineering_partner.project.models import (
    DesignReview,
    DesignReviewChecklistItem,
    Phase,
    PhaseStatus,
    Project,
    VersionedOutput,
    WorkItem,
    WorkItemStatus,
)
from engineering_partner.project.store import ProjectUpdate, UpdateSink
from engineering_partner.prompts.templates import (
    CRITICAL_DESIGN_PROMPT,
    CRITICAL_DESIGN_SYSTEM,
    DFMA_SPRINT_SYSTEM,
    DOCUMENT_OBJECTIVES,
    FMEA_SPRINT_SYSTEM,
    PHASE_DOCUMENT_PROMPT,
    PHASE_DOCUMENT_SYSTEM,
    SPRINT_SPECIFICATION_PROMPT,
    SPRINT_SYSTEM,
    SUB_DOCUMENT_PROMPT,
    SUB_DOCUMENT_SYSTEM,
)
from engineering_partner.workflow.insights import generate_design_review_checklist
from engineering_partner.workflow.scheduler import (
    CompletionHook,
    DependencyScheduler,
    ScheduleReport,
    UnitGenerator,
    UnitOutput,
)

DOCUMENT_PHASES = ("Requirements", "Preliminary Design", "Testing")
CRITICAL_DESIGN = "Critical Design"


@dataclass
class PhaseRunResult:
    """Outcome of an automated phase run."""

    phase_id: str
    status: PhaseStatus
    report: ScheduleReport = field(default_factory=ScheduleReport)
    stall: DependencyStallError | None = None
    final_content: str = ""


def build_sprints(phase_id: str, plan: SprintPlan) -> list[WorkItem]:
    """Turn a sprint plan into work items.

    Ids are ``<phase_id>-<n>``. Dependency names are mapped to ids; names
    that match no sprint, and a sprint naming itself, are dropped.
    """
    ids = {draft.name: f"{phase_id}-{index + 1}" for index, draft in enumerate(plan.sprints)}
    sprints = []
    for index, draft in enumerate(plan.sprints):
        sprint_id = f"{phase_id}-{index + 1}"
        dependencies = [ids[name] for name in draft.dependencies if name in ids and ids[name] != sprint_id]
        sprints.append(
            WorkItem(
                id=sprint_id,
                name=draft.name,
                description=draft.description,
                dependencies=list(dict.fromkeys(dependencies)),
            )
        )
    return sprints


def _notes_block(item: WorkItem, kind: str) -> str:
    if not item.notes:
        return ""
    return f"\n\n## User-Provided Notes for this {kind} (Incorporate these specific intents):\n{item.notes}"


class PhaseAutomation:
    """
    Generates the content of one project phase.

    Example:
        >>> automation = PhaseAutomation(invoker, sink=store, events=emitter)
        >>> result = await automation.run(project, "critical-design")
        >>> result.status
        <PhaseStatus.COMPLETED: 'completed'>
    """

    def __init__(
        self,
        invoker: ModelInvoker,
        sink: UpdateSink | None = None,
        events: EventEmitter | None = None,
        unit_delay: float = 1.5,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        """
        Initialize phase automation.

        Args:
            invoker: Model invocation layer.
            sink: Persistence for phase and work item updates.
            events: Event channel for progress notifications.
            unit_delay: Pause between generated units in seconds.
            sleep: Awaitable sleep used for the pause.
        """
        self.invoker = invoker
        self.sink = sink
        self.events = events or EventEmitter()
        self.unit_delay = unit_delay
        self.sleep = sleep

    async def run(
        self,
        project: Project,
        phase_id: str,
        cancel_token: CancellationToken | None = None,
        regenerate: bool = False,
    ) -> PhaseRunResult:
        """Generate a phase end to end.

        Args:
            project: Live project snapshot; updated in place.
            phase_id: Phase to generate.
            cancel_token: Cancellation signal.
            regenerate: Generate a new version of documents that are
                already completed instead of skipping them.

        Returns:
            Result with the final phase status and the scheduler report.

        Raises:
            ProjectNotFoundError: If the phase does not exist.
            WorkflowCancelledError: If cancellation was requested.
            PartnerError: If generation or persistence fails; the phase
                status is restored before the error propagates.
        """
        phase = project.get_phase(phase_id)
        if phase is None:
            raise ProjectNotFoundError(f"Phase not found: {phase_id}")

        token = cancel_token or CancellationToken()
        result = PhaseRunResult(phase_id=phase.id, status=phase.status)
        previous_status = phase.status
        logger.info(f"Automating phase '{phase.name}' of project '{project.name}'")

        try:
            token.raise_if_cancelled()
            phase.status = PhaseStatus.IN_PROGRESS
            await self._apply(project, phase, phase_status=PhaseStatus.IN_PROGRESS)

            if regenerate:
                for item in phase.work_items:
                    if item.status == WorkItemStatus.COMPLETED:
                        item.status = WorkItemStatus.NOT_STARTED

            if phase.name in DOCUMENT_PHASES:
                result.final_content = await self._run_document_phase(project, phase, token, result)
            elif phase.name == CRITICAL_DESIGN:
                result.final_content = await self._run_critical_design(project, phase, token, result)
            else:
                result.final_content = await self._run_standard_phase(project, phase, token)

            token.raise_if_cancelled()
            await self._finalize(project, phase, result.final_content, token)
        except WorkflowCancelledError:
            self.events.emit(EventType.CANCELLED, "Automation was cancelled by the user.")
            raise
        except PartnerError as e:
            message = f"Automation of phase '{phase.name}' failed: {e}"
            logger.error(message)
            self.events.emit(EventType.ERROR, message, level=EventLevel.ERROR, error=str(e))
            await self._restore_status(project, phase, previous_status)
            raise

        result.status = phase.status
        self.events.emit(EventType.COMPLETED, f"Phase '{phase.name}' automated.", level=EventLevel.SUCCESS)
        return result

    # -------------------------------------------------------------------------
    # Phase kinds
    # -------------------------------------------------------------------------

    async def _run_document_phase(
        self,
        project: Project,
        phase: Phase,
        token: CancellationToken,
        result: PhaseRunResult,
    ) -> str:
        async def generate(item: WorkItem) -> UnitOutput:
            return UnitOutput(content=await self.generate_sub_document(project, phase, item))

        await self._schedule(project, phase, generate, token, "document", result)

        merged = SECTION_SEPARATOR.join(
            f"## {item.name}\n\n{item.current_content or 'Not generated.'}" for item in phase.work_items
        )
        output = phase.append_output(merged, "Automated sprint merge")
        await self._apply(project, phase, output=output)
        return merged

    async def _run_critical_design(
        self,
        project: Project,
        phase: Phase,
        token: CancellationToken,
        result: PhaseRunResult,
    ) -> str:
        self.events.emit(EventType.PROGRESS, "Generating initial design spec & sprints...")
        plan = await self.generate_sprint_plan(project, phase)
        token.raise_if_cancelled()

        phase.work_items = build_sprints(phase.id, plan)
        output = phase.append_output(plan.preliminary_spec, "Initial critical design spec")
        await self._apply(project, phase, output=output, work_items=phase.work_items)

        async def generate(item: WorkItem) -> UnitOutput:
            spec = await self.generate_sprint_specification(project, phase, item)
            return UnitOutput(content=spec.technical_spec, deliverables=spec.deliverables)

        async def merge(item: WorkItem, sprint_output: VersionedOutput) -> None:
            merged = (
                f"{phase.current_content or ''}{SECTION_SEPARATOR}"
                f"### Completed Sprint: {item.name}\n\n{sprint_output.content}"
            )
            merged_output = phase.append_output(merged, f"Automated merge of sprint {item.name}")
            await self._apply(project, phase, output=merged_output)

        await self._schedule(project, phase, generate, token, "sprint", result, on_completed=merge)
        return phase.current_content or ""

    async def _run_standard_phase(self, project: Project, phase: Phase, token: CancellationToken) -> str:
        self.events.emit(EventType.PROGRESS, f"Generating documentation for {phase.name}...")
        content = await self.generate_phase_document(project, phase)
        token.raise_if_cancelled()
        output = phase.append_output(content, "Automated generation")
        await self._apply(project, phase, output=output)
        return content

    async def _schedule(
        self,
        project: Project,
        phase: Phase,
        generate: UnitGenerator,
        token: CancellationToken,
        unit_label: str,
        result: PhaseRunResult,
        on_completed: CompletionHook | None = None,
    ) -> None:
        try:
            scheduler = DependencyScheduler(
                phase.work_items,
                generate,
                sink=self.sink,
                project_id=project.id,
                phase_id=phase.id,
                events=self.events,
                cancel_token=token,
                on_completed=on_completed,
                unit_delay=self.unit_delay,
                sleep=self.sleep,
                unit_label=unit_label,
            )
            result.report = await scheduler.run()
        except DependencyStallError as e:
            # Stalls end the schedule, not the phase
            logger.warning(f"Phase '{phase.name}' continues to finalization after stall: {e}")
            if isinstance(e, DependencyCycleError):
                # Raised before the scheduler could report it
                self.events.emit(EventType.STALLED, str(e), level=EventLevel.ERROR, stuck_ids=e.stuck_ids)
            result.stall = e
            if isinstance(e.report, ScheduleReport):
                result.report = e.report
            else:
                result.report = ScheduleReport(stalled=list(e.stuck_ids))

    async def _finalize(
        self,
        project: Project,
        phase: Phase,
        final_content: str,
        token: CancellationToken,
    ) -> None:
        output = phase.append_output(final_content, "Automated phase completion")
        await self._apply(project, phase, output=output)

        if phase.design_review.required and final_content:
            self.events.emit(EventType.PROGRESS, "Generating design review checklist...")
            token.raise_if_cancelled()
            checklist = await self.generate_design_review_checklist(phase.id, final_content)
            phase.design_review = DesignReview(required=True, checklist=checklist)
            phase.status = PhaseStatus.IN_REVIEW
            await self._apply(project, phase, phase_status=PhaseStatus.IN_REVIEW, design_review=phase.design_review)
            self.events.emit(EventType.STATUS, "Design review generated. Auto-completing...")

        phase.status = PhaseStatus.COMPLETED
        await self._apply(project, phase, phase_status=PhaseStatus.COMPLETED)

    async def _apply(self, project: Project, phase: Phase, **changes) -> None:
        if self.sink is not None:
            await self.sink.apply(ProjectUpdate(project_id=project.id, phase_id=phase.id, **changes))

    async def _restore_status(self, project: Project, phase: Phase, status: PhaseStatus) -> None:
        phase.status = status
        try:
            await self._apply(project, phase, phase_status=status)
        except PartnerError as e:
            logger.error(f"Could not restore status of phase '{phase.name}' to {status.value}: {e}")

    # -------------------------------------------------------------------------
    # Single items
    # -------------------------------------------------------------------------

    async def regenerate_item(
        self,
        project: Project,
        phase_id: str,
        item_id: str,
        reason: str = "Regenerated",
        cancel_token: CancellationToken | None = None,
    ) -> VersionedOutput:
        """Generate a new version of one document or sprint.

        Earlier versions are kept; the new output is ``latest_version + 1``.

        Args:
            project: Live project snapshot; updated in place.
            phase_id: Phase owning the item.
            item_id: Document or sprint to regenerate.
            reason: Reason recorded on the new version.
            cancel_token: Cancellation signal.

        Returns:
            The appended version.

        Raises:
            ProjectNotFoundError: If the phase or work item does not exist.
            WorkflowCancelledError: If cancellation was requested.

        Example:
            >>> output = await automation.regenerate_item(project, "testing", "testing-1")
            >>> output.version
            2
        """
        phase = project.get_phase(phase_id)
        item = phase.get_work_item(item_id) if phase is not None else None
        if phase is None or item is None:
            raise ProjectNotFoundError(f"Work item not found: {phase_id}/{item_id}")

        token = cancel_token or CancellationToken()
        token.raise_if_cancelled()
        previous_status = item.status
        item.status = WorkItemStatus.IN_PROGRESS
        self.events.emit(EventType.UNIT_STARTED, f"Regenerating {item.name}...", subject_id=item.id)

        deliverables: list[str] | None = None
        try:
            if phase.name == CRITICAL_DESIGN:
                spec = await self.generate_sprint_specification(project, phase, item)
                content, deliverables = spec.technical_spec, spec.deliverables
            else:
                content = await self.generate_sub_document(project, phase, item)
            token.raise_if_cancelled()
        except WorkflowCancelledError:
            item.status = previous_status
            raise
        except PartnerError as e:
            item.status = previous_status
            self.events.emit(
                EventType.UNIT_FAILED,
                f'Failed to regenerate "{item.name}": {e}',
                level=EventLevel.ERROR,
                subject_id=item.id,
            )
            raise

        output = item.append_output(content, reason)
        item.status = WorkItemStatus.COMPLETED
        if deliverables is not None:
            item.deliverables = list(deliverables)
        await self._apply(
            project,
            phase,
            work_item_id=item.id,
            output=output,
            work_item_status=WorkItemStatus.COMPLETED,
            deliverables=deliverables,
        )
        logger.info(f"Regenerated {item.id} as version {output.version}")
        self.events.emit(
            EventType.UNIT_COMPLETED,
            f'"{item.name}" regenerated as version {output.version}.',
            level=EventLevel.SUCCESS,
            subject_id=item.id,
            version=output.version,
        )
        return output

    # -------------------------------------------------------------------------
    # Model calls
    # -------------------------------------------------------------------------

    async def generate_phase_document(self, project: Project, phase: Phase) -> str:
        """Generate the single document of a standard phase."""
        disciplines = ", ".join(project.disciplines)
        return await self.invoker.generate_text(
            PHASE_DOCUMENT_PROMPT.format(
                base_context=base_prompt_context(project),
                prior_context=prior_phase_context(project, phase.id),
                phase_name=phase.name,
                phase_description=phase.description,
                tuning=json.dumps(phase.tuning),
            ),
            TaskType.PHASE_GENERATION,
            system_instruction=system_instruction(
                PHASE_DOCUMENT_SYSTEM.format(disciplines=disciplines), project.development_mode
            ),
        )

    async def generate_sub_document(self, project: Project, phase: Phase, item: WorkItem) -> str:
        """Generate one standard document of a document phase."""
        objective = DOCUMENT_OBJECTIVES.get(
            (phase.name, item.name),
            f'Generate the document titled "{item.name}" with the following objective: {item.description}',
        )
        index = next((i for i, w in enumerate(phase.work_items) if w.id == item.id), len(phase.work_items))
        sibling_context = SECTION_SEPARATOR.join(
            f"## Context from Previous Document ({w.name}):\n{w.current_content}"
            for w in phase.work_items[:index]
            if w.outputs
        )
        return await self.invoker.generate_text(
            SUB_DOCUMENT_PROMPT.format(
                base_context=base_prompt_context(project),
                prior_context=prior_phase_context(project, phase.id),
                sibling_context=sibling_context,
                document_name=item.name,
                phase_name=phase.name,
                objective=objective,
                notes=_notes_block(item, "Document"),
                tuning=json.dumps(phase.tuning),
            ),
            TaskType.PHASE_GENERATION,
            system_instruction=system_instruction(
                SUB_DOCUMENT_SYSTEM.format(
                    disciplines=", ".join(project.disciplines),
                    document_name=item.name,
                    phase_name=phase.name,
                ),
                project.development_mode,
            ),
        )

    async def generate_sprint_plan(self, project: Project, phase: Phase) -> SprintPlan:
        """Generate the preliminary spec and sprint breakdown of Critical Design."""
        return await self.invoker.generate_structured(
            CRITICAL_DESIGN_PROMPT.format(
                base_context=base_prompt_context(project),
                prior_context=prior_phase_context(project, phase.id),
            ),
            SprintPlan,
            TaskType.PHASE_GENERATION,
            system_instruction=system_instruction(
                CRITICAL_DESIGN_SYSTEM.format(disciplines=", ".join(project.disciplines)),
                project.development_mode,
            ),
        )

    async def generate_sprint_specification(
        self,
        project: Project,
        phase: Phase,
        sprint: WorkItem,
    ) -> SprintSpecification:
        """Generate the technical spec and deliverables of one sprint."""
        name = sprint.name.lower()
        if "fmea" in name:
            base = FMEA_SPRINT_SYSTEM
        elif "dfma" in name:
            base = DFMA_SPRINT_SYSTEM
        else:
            base = SPRINT_SYSTEM

        completed = [w for w in phase.work_items if w.outputs and w.id != sprint.id]
        sprint_context = (phase.current_content or "") + "\n\n" + SECTION_SEPARATOR.join(
            f"### Completed Sprint: {w.name}\n\n{w.current_content}" for w in completed
        )
        return await self.invoker.generate_structured(
            SPRINT_SPECIFICATION_PROMPT.format(
                sprint_context=sprint_context,
                sprint_name=sprint.name,
                sprint_description=sprint.description,
                tuning=json.dumps(phase.tuning),
                notes=_notes_block(sprint, "Sprint"),
            ),
            SprintSpecification,
            TaskType.SPRINT_GENERATION,
            system_instruction=system_instruction(
                base.format(disciplines=", ".join(project.disciplines)), project.development_mode
            ),
        )

    async def generate_design_review_checklist(
        self,
        phase_id: str,
        document: str,
    ) -> list[DesignReviewChecklistItem]:
        """Generate review checklist items for a phase document."""
        return await generate_design_review_checklist(self.invoker, phase_id, document)
