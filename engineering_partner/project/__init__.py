"""Project module - data model, prompt context and persistence."""

from engineering_partner.project.context import (
    ProjectDocument,
    base_prompt_context,
    full_project_context,
    prior_phase_context,
    render_documents,
    serialize_project_documents,
    system_instruction,
)
from engineering_partner.project.models import (
    DesignReview,
    DesignReviewChecklistItem,
    DevelopmentMode,
    DocumentStatus,
    ImpactedDocument,
    MetaDocument,
    Phase,
    PhaseStatus,
    Project,
    Recommendation,
    RecommendationCategory,
    Resource,
    ResourceCategory,
    Risk,
    RiskCategory,
    RiskSeverity,
    VersionedOutput,
    WorkItem,
    WorkItemStatus,
    create_default_phases,
)
from engineering_partner.project.store import (
    InMemoryProjectStore,
    JsonProjectStore,
    NullSink,
    ProjectUpdate,
    UpdateSink,
)

__all__ = [
    # Models
    "DesignReview",
    "DesignReviewChecklistItem",
    "DevelopmentMode",
    "DocumentStatus",
    "ImpactedDocument",
    "MetaDocument",
    "Phase",
    "PhaseStatus",
    "Project",
    "Recommendation",
    "RecommendationCategory",
    "Resource",
    "ResourceCategory",
    "Risk",
    "RiskCategory",
    "RiskSeverity",
    "VersionedOutput",
    "WorkItem",
    "WorkItemStatus",
    "create_default_phases",
    # Context
    "ProjectDocument",
    "base_prompt_context",
    "full_project_context",
    "prior_phase_context",
    "render_documents",
    "serialize_project_documents",
    "system_instruction",
    # Store
    "InMemoryProjectStore",
    "JsonProjectStore",
    "NullSink",
    "ProjectUpdate",
    "UpdateSink",
]
