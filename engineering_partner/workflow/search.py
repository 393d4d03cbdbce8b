"""
Iterative-search agent loop.

Discovers a growing list of items (risks, resources) one at a time. Each
iteration the Orchestrator picks a topic informed by what has been found,
the Doer formulates one candidate, and QA approves or rejects it and
decides whether the search should stop. Every iteration is written to a
markdown log kept as a project meta document.
"""

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from loguru import logger
from pydantic import BaseModel

from engineering_partner.core.cancellation import CancellationToken
from engineering_partner.core.errors import WorkflowCancelledError
from engineering_partner.core.events import EventEmitter, EventLevel, EventType
from engineering_partner.llm.invoker import ModelInvoker
from engineering_partner.llm.schemas import ResourceDraft, RiskDraft, SearchVerdict
from engineering_partner.llm.selection import TaskType
from engineering_partner.project.context import render_documents, serialize_project_documents
from engineering_partner.project.models import MetaDocument, Project, Resource, Risk
from engineering_partner.project.store import ProjectUpdate, UpdateSink
from engineering_partner.prompts.templates import (
    RESOURCE_DOER_SYSTEM,
    RESOURCE_ORCHESTRATOR_SYSTEM,
    RESOURCE_QA_SYSTEM,
    RISK_DOER_SYSTEM,
    RISK_ORCHESTRATOR_SYSTEM,
    RISK_QA_SYSTEM,
    SEARCH_DOER_PROMPT,
    SEARCH_ORCHESTRATOR_PROMPT,
    SEARCH_QA_PROMPT,
    PromptTemplate,
)

# =============================================================================
# SEARCH CONFIGURATION
# =============================================================================


@dataclass(frozen=True)
class SearchConfig:
    """What a search looks for and how its findings are logged."""

    label: str
    log_title: str
    log_name: str
    doc_type: str
    draft_schema: type[BaseModel]
    build: Callable[[Any], BaseModel]
    headline: Callable[[Any], str]
    details: Callable[[Any], str]
    orchestrator_system: PromptTemplate
    doer_system: PromptTemplate
    qa_system: PromptTemplate


RISK_SEARCH = SearchConfig(
    label="Risk",
    log_title="AI Risk Assessment Log",
    log_name="Risk Assessment Log",
    doc_type="risk-assessment-log",
    draft_schema=RiskDraft,
    build=lambda draft: Risk(**draft.model_dump()),
    headline=lambda risk: f"{risk.title} ({risk.severity.value})",
    details=lambda risk: f"- **Description**: {risk.description}\n- **Mitigation**: {risk.mitigation}",
    orchestrator_system=RISK_ORCHESTRATOR_SYSTEM,
    doer_system=RISK_DOER_SYSTEM,
    qa_system=RISK_QA_SYSTEM,
)


RESOURCE_SEARCH = SearchConfig(
    label="Resource",
    log_title="AI Resource Analysis Log",
    log_name="Resource Analysis Log",
    doc_type="resource-analysis-log",
    draft_schema=ResourceDraft,
    build=lambda draft: Resource(**draft.model_dump()),
    headline=lambda resource: f"{resource.name} ({resource.category.value})",
    details=lambda resource: f"- **Source**: {resource.source}\n- **Justification**: {resource.justification}",
    orchestrator_system=RESOURCE_ORCHESTRATOR_SYSTEM,
    doer_system=RESOURCE_DOER_SYSTEM,
    qa_system=RESOURCE_QA_SYSTEM,
)


@dataclass
class SearchResult:
    """Outcome of a search run."""

    items: list[Any] = field(default_factory=list)
    log_document: MetaDocument | None = None
    iterations: int = 0
    stopped_by_qa: bool = False


# =============================================================================
# LOOP
# =============================================================================


class IterativeSearchLoop:
    """
    Bounded Orchestrator -> Doer -> QA discovery loop.

    Example:
        >>> loop = IterativeSearchLoop(invoker, RISK_SEARCH, max_iterations=25)
        >>> result = await loop.run(project)
        >>> [risk.title for risk in result.items]
        ['Thermal runaway in battery pack']
    """

    def __init__(
        self,
        invoker: ModelInvoker,
        config: SearchConfig,
        events: EventEmitter | None = None,
        max_iterations: int = 25,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.invoker = invoker
        self.config = config
        self.events = events or EventEmitter()
        self.max_iterations = max_iterations
        self.cancel_token = cancel_token or CancellationToken()

    async def run(self, project: Project, sink: UpdateSink | None = None) -> SearchResult:
        """Search until QA stops it or the iteration budget is spent.

        Args:
            project: Project whose documents are searched.
            sink: Persistence for the log document.

        Returns:
            Approved items and the log document.

        Raises:
            Exception: Any agent failure aborts the search and propagates
                after the partial log is stored.
            WorkflowCancelledError: If cancellation was requested.
        """
        cfg = self.config
        docs = [d for d in serialize_project_documents(project) if not d.name.lower().endswith(".png")]
        context = render_documents(docs)
        result = SearchResult()
        log = f"# {cfg.log_title} for {project.name}\n\n"

        for iteration in range(1, self.max_iterations + 1):
            self.cancel_token.raise_if_cancelled()
            result.iterations = iteration

            try:
                verdict, item = await self._iterate(context, result.items, iteration)
            except WorkflowCancelledError:
                raise
            except Exception as e:
                log += f"\n##  Iteration {iteration}: Workflow Error\n- **Details**: {e}\n"
                logger.error(f"{cfg.label} search failed at iteration {iteration}: {e}")
                self.events.emit(
                    EventType.ERROR,
                    str(e) or "An agent failed in its task.",
                    level=EventLevel.ERROR,
                    iteration=iteration,
                )
                await self._save_log(project, log, result, sink)
                raise

            if verdict.approved:
                result.items.append(item)
                log += f"\n##  Iteration {iteration}: {cfg.headline(item)}\n{cfg.details(item)}\n"
                self.events.emit(
                    EventType.ITEM_FOUND,
                    f'{cfg.label} "{cfg.headline(item)}" approved.',
                    level=EventLevel.SUCCESS,
                    subject_id=item.id,
                    iteration=iteration,
                )
            else:
                log += f"\n##  Iteration {iteration}: {cfg.label} Rejected\n- **Reason**: {verdict.feedback}\n"
                self.events.emit(
                    EventType.PROGRESS,
                    f"{cfg.label} rejected: {verdict.feedback}",
                    iteration=iteration,
                )

            if verdict.should_stop:
                result.stopped_by_qa = True
                log += "\n--- WORKFLOW COMPLETE (QA Decision) ---"
                self.events.emit(EventType.PROGRESS, "QA Agent determined workflow should stop.", iteration=iteration)
                break

            if iteration == self.max_iterations:
                log += "\n--- WORKFLOW COMPLETE (Max Iterations Reached) ---"

        await self._save_log(project, log, result, sink)

        logger.info(
            f"{cfg.label} search finished after {result.iterations} iterations: {len(result.items)} approved"
        )
        self.events.emit(
            EventType.COMPLETED,
            "Workflow finished.",
            level=EventLevel.SUCCESS,
            found=len(result.items),
            iterations=result.iterations,
        )
        return result

    async def _save_log(
        self,
        project: Project,
        log: str,
        result: SearchResult,
        sink: UpdateSink | None,
    ) -> None:
        """Store the log as a meta document, including a failed run's partial log."""
        cfg = self.config
        result.log_document = MetaDocument(
            name=f"{project.name} - {cfg.log_name}",
            content=log,
            doc_type=cfg.doc_type,
        )
        if sink is not None:
            await sink.apply(ProjectUpdate(project_id=project.id, meta_document=result.log_document))

    async def _iterate(
        self,
        context: str,
        found: list[Any],
        iteration: int,
    ) -> tuple[SearchVerdict, Any]:
        cfg = self.config
        label_lower = cfg.label.lower()

        self.events.emit(EventType.PROGRESS, "Orchestrator: identifying next area of concern...", iteration=iteration)
        task = await self.invoker.generate_text(
            SEARCH_ORCHESTRATOR_PROMPT.format(
                context=context,
                label=cfg.label,
                found=json.dumps([i.model_dump(mode="json") for i in found]),
                label_lower=label_lower,
            ),
            TaskType.ORCHESTRATOR,
            system_instruction=cfg.orchestrator_system.template,
        )
        self.events.emit(EventType.PROGRESS, f"Task for Doer: {task}", iteration=iteration)

        self.cancel_token.raise_if_cancelled()
        draft = await self.invoker.generate_structured(
            SEARCH_DOER_PROMPT.format(context=context, task=task, label_lower=label_lower),
            cfg.draft_schema,
            TaskType.DOER,
            system_instruction=cfg.doer_system.template,
        )

        self.cancel_token.raise_if_cancelled()
        self.events.emit(EventType.PROGRESS, f"QA: validating {label_lower}...", iteration=iteration)
        verdict = await self.invoker.generate_structured(
            SEARCH_QA_PROMPT.format(
                label=cfg.label,
                candidate=draft.model_dump_json(by_alias=True),
                iteration=iteration,
                max_iterations=self.max_iterations,
                label_lower=label_lower,
            ),
            SearchVerdict,
            TaskType.QA,
            system_instruction=cfg.qa_system.template,
        )
        return verdict, cfg.build(draft)
