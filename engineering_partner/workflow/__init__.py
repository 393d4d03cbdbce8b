"""Workflow module - scheduler, agent pipelines, search loop and phase automation."""

from engineering_partner.workflow.change import ChangeImpactPipeline, ChangeImpactResult
from engineering_partner.workflow.export import (
    DEFAULT_EXPORT_TARGETS,
    ExportArtifact,
    ExportCatalog,
    ExportCategory,
    ExportPipeline,
    ExportTarget,
    export_file_name,
)
from engineering_partner.workflow.insights import (
    ProjectMetrics,
    assess_risks,
    calculate_project_metrics,
    compare_document_versions,
    generate_compacted_context,
    generate_design_review_checklist,
    generate_initial_document,
    generate_project_summary,
    generate_recommendations,
    query_project,
)
from engineering_partner.workflow.phases import PhaseAutomation, PhaseRunResult, build_sprints
from engineering_partner.workflow.pipeline import AgentPipeline, PipelineStatus
from engineering_partner.workflow.scheduler import (
    DependencyScheduler,
    ScheduleReport,
    UnitOutput,
    detect_cycles,
    validate_schedule,
)
from engineering_partner.workflow.search import (
    RESOURCE_SEARCH,
    RISK_SEARCH,
    IterativeSearchLoop,
    SearchConfig,
    SearchResult,
)

__all__ = [
    "AgentPipeline",
    "ChangeImpactPipeline",
    "ChangeImpactResult",
    "DEFAULT_EXPORT_TARGETS",
    "DependencyScheduler",
    "ExportArtifact",
    "ExportCatalog",
    "ExportCategory",
    "ExportPipeline",
    "ExportTarget",
    "IterativeSearchLoop",
    "PhaseAutomation",
    "PhaseRunResult",
    "PipelineStatus",
    "ProjectMetrics",
    "RESOURCE_SEARCH",
    "RISK_SEARCH",
    "ScheduleReport",
    "SearchConfig",
    "SearchResult",
    "UnitOutput",
    "assess_risks",
    "build_sprints",
    "calculate_project_metrics",
    "compare_document_versions",
    "detect_cycles",
    "export_file_name",
    "generate_compacted_context",
    "generate_design_review_checklist",
    "generate_initial_document",
    "generate_project_summary",
    "generate_recommendations",
    "query_project",
    "validate_schedule",
]
