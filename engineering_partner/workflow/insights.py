"""
Project insights.

Single-call helpers over the ModelInvoker: question answering, risk
assessment, recommendations, review checklists, context compaction,
summaries, version comparison and project-setup drafts. Project metrics
are computed locally.
"""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from loguru import logger

from engineering_partner.llm.invoker import ModelInvoker
from engineering_partner.llm.schemas import ChecklistDraft, RecommendationDraft, RiskDraft
from engineering_partner.llm.selection import TaskType
from engineering_partner.project.context import base_prompt_context, full_project_context
from engineering_partner.project.models import (
    DesignReviewChecklistItem,
    PhaseStatus,
    Project,
    Recommendation,
    Risk,
    VersionedOutput,
    WorkItemStatus,
)
from engineering_partner.prompts.templates import (
    CHECKLIST_PROMPT,
    CHECKLIST_SYSTEM,
    COMPACT_CONTEXT_PROMPT,
    COMPACT_CONTEXT_SYSTEM,
    COMPARE_VERSIONS_PROMPT,
    COMPARE_VERSIONS_SYSTEM,
    INITIAL_CONSTRAINTS_SYSTEM,
    INITIAL_DOCUMENT_PROMPT,
    INITIAL_REQUIREMENTS_SYSTEM,
    PROJECT_SUMMARY_PROMPT,
    PROJECT_SUMMARY_SYSTEM,
    QUERY_PROMPT,
    QUERY_SYSTEM,
    RECOMMENDATIONS_PROMPT,
    RECOMMENDATIONS_SYSTEM,
    RISK_ASSESSMENT_PROMPT,
    RISK_ASSESSMENT_SYSTEM,
)

# =============================================================================
# METRICS
# =============================================================================


@dataclass
class ProjectMetrics:
    """Progress metrics of a project."""

    completion_rate: float
    sprint_completion_rate: float
    total_sprints: int
    completed_sprints: int
    time_elapsed_days: int
    current_phase_name: str
    phase_status_counts: dict[str, int] = field(default_factory=dict)
    sprints_per_week: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)


def calculate_project_metrics(project: Project, now: datetime | None = None) -> ProjectMetrics:
    """
    Compute progress metrics.

    Args:
        project: Project to measure.
        now: Reference time; defaults to the current UTC time.

    Returns:
        ProjectMetrics. Elapsed days are rounded and never below 1.

    Example:
        >>> metrics = calculate_project_metrics(project)
        >>> metrics.current_phase_name
        'Requirements'
    """
    now = now or datetime.utcnow()
    phases = project.phases

    completed_phases = sum(1 for p in phases if p.status == PhaseStatus.COMPLETED)
    completion_rate = completed_phases / len(phases) * 100 if phases else 0.0

    total_sprints = sum(len(p.work_items) for p in phases)
    completed_sprints = sum(
        1 for p in phases for item in p.work_items if item.status == WorkItemStatus.COMPLETED
    )
    sprint_completion_rate = completed_sprints / total_sprints * 100 if total_sprints else 0.0

    elapsed_days = max(1, round((now - project.created_at).total_seconds() / 86400))

    current = next((p for p in phases if p.status != PhaseStatus.COMPLETED), None)

    counts: dict[str, int] = {}
    for phase in phases:
        counts[phase.status.value] = counts.get(phase.status.value, 0) + 1

    return ProjectMetrics(
        completion_rate=completion_rate,
        sprint_completion_rate=sprint_completion_rate,
        total_sprints=total_sprints,
        completed_sprints=completed_sprints,
        time_elapsed_days=elapsed_days,
        current_phase_name=current.name if current else "Completed",
        phase_status_counts=counts,
        sprints_per_week=round(completed_sprints / elapsed_days * 7, 1),
    )


# =============================================================================
# MODEL-BACKED INSIGHTS
# =============================================================================


async def query_project(invoker: ModelInvoker, project: Project, question: str) -> str:
    """Answer a question using only the project's documentation."""
    return await invoker.generate_text(
        QUERY_PROMPT.format(context=full_project_context(project), question=question),
        TaskType.QUERY,
        system_instruction=QUERY_SYSTEM.template,
    )


async def assess_risks(invoker: ModelInvoker, project: Project) -> list[Risk]:
    """Single-shot risk assessment over the whole project."""
    drafts = await invoker.generate_structured(
        RISK_ASSESSMENT_PROMPT.format(context=full_project_context(project)),
        list[RiskDraft],
        TaskType.ANALYSIS,
        system_instruction=RISK_ASSESSMENT_SYSTEM.format(disciplines=", ".join(project.disciplines)),
    )
    logger.info(f"Risk assessment for '{project.name}' returned {len(drafts)} risks")
    return [Risk(**draft.model_dump()) for draft in drafts]


async def generate_recommendations(
    invoker: ModelInvoker,
    project: Project,
    now: datetime | None = None,
) -> list[Recommendation]:
    """Recommendations informed by the documentation and current metrics."""
    metrics = calculate_project_metrics(project, now)
    drafts = await invoker.generate_structured(
        RECOMMENDATIONS_PROMPT.format(
            context=full_project_context(project),
            metrics=json.dumps(metrics.to_dict(), indent=2),
        ),
        list[RecommendationDraft],
        TaskType.ANALYSIS,
        system_instruction=RECOMMENDATIONS_SYSTEM.format(disciplines=", ".join(project.disciplines)),
    )
    return [Recommendation(**draft.model_dump()) for draft in drafts]


async def generate_design_review_checklist(
    invoker: ModelInvoker,
    phase_id: str,
    document: str,
) -> list[DesignReviewChecklistItem]:
    """Checklist items for reviewing a phase document.

    Item ids are ``<phase_id>-check-<n>`` starting at 1.
    """
    draft = await invoker.generate_structured(
        CHECKLIST_PROMPT.format(document=document),
        ChecklistDraft,
        TaskType.ANALYSIS,
        system_instruction=CHECKLIST_SYSTEM.template,
    )
    return [
        DesignReviewChecklistItem(id=f"{phase_id}-check-{index + 1}", text=text)
        for index, text in enumerate(draft.checklist)
    ]


async def generate_compacted_context(invoker: ModelInvoker, project: Project) -> str:
    """Compress the Requirements phase into a dense context block.

    Returns an empty string when the project has no Requirements content.
    """
    requirements = project.phases[0] if project.phases else None
    if requirements is None or not requirements.outputs:
        logger.warning(f"No requirements content to compact for '{project.name}'")
        return ""

    parts = [requirements.current_content or ""]
    parts.extend(
        f"### {item.name}\n{item.current_content}" for item in requirements.work_items if item.outputs
    )
    return await invoker.generate_text(
        COMPACT_CONTEXT_PROMPT.format(
            base_context=base_prompt_context(project),
            requirements="\n\n".join(parts),
        ),
        TaskType.ANALYSIS,
        system_instruction=COMPACT_CONTEXT_SYSTEM.template,
    )


async def generate_project_summary(invoker: ModelInvoker, project: Project) -> str:
    """Executive summary of the project in Markdown."""
    return await invoker.generate_text(
        PROJECT_SUMMARY_PROMPT.format(context=full_project_context(project)),
        TaskType.ANALYSIS,
        system_instruction=PROJECT_SUMMARY_SYSTEM.format(disciplines=", ".join(project.disciplines)),
    )


async def compare_document_versions(
    invoker: ModelInvoker,
    document_name: str,
    old: VersionedOutput,
    new: VersionedOutput,
) -> str:
    """Describe what changed between two versions of a document."""
    return await invoker.generate_text(
        COMPARE_VERSIONS_PROMPT.format(
            document_name=document_name,
            old_version=old.version,
            old_reason=old.reason or "unspecified",
            old_content=old.content,
            new_version=new.version,
            new_reason=new.reason or "unspecified",
            new_content=new.content,
        ),
        TaskType.ANALYSIS,
        system_instruction=COMPARE_VERSIONS_SYSTEM.template,
    )


async def generate_initial_document(
    invoker: ModelInvoker,
    name: str,
    description: str,
    disciplines: list[str],
    kind: str,
) -> str:
    """
    Draft project-setup requirements or constraints.

    Args:
        invoker: Model invoker.
        name: Project name.
        description: Project description.
        disciplines: Engineering disciplines involved.
        kind: ``"requirements"`` or ``"constraints"``.

    Raises:
        ValueError: If ``kind`` is not recognised.
    """
    if kind == "requirements":
        system = INITIAL_REQUIREMENTS_SYSTEM.template
        task = "Generate a comprehensive technical requirements document for this project."
    elif kind == "constraints":
        system = INITIAL_CONSTRAINTS_SYSTEM.template
        task = "Generate a list of likely technical, budget, schedule and regulatory constraints."
    else:
        raise ValueError(f"Unknown initial document kind: {kind}")

    return await invoker.generate_text(
        INITIAL_DOCUMENT_PROMPT.format(
            name=name,
            description=description,
            disciplines=", ".join(disciplines),
            task=task,
        ),
        TaskType.PROJECT_SETUP,
        system_instruction=system,
    )
