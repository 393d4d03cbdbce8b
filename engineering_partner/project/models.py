"""Pydantic models for engineering projects.

This module defines the project aggregate used by every workflow: the
project itself, its lifecycle phases, the work items (sprints / documents)
inside each phase, and the append-only versioned output history that
records every piece of generated content.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

# =============================================================================
# ENUMS
# =============================================================================


class WorkItemStatus(str, Enum):
    """Status of a work item (sprint or phase document)."""

    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"


class PhaseStatus(str, Enum):
    """Status of a lifecycle phase."""

    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    IN_REVIEW = "in-review"
    COMPLETED = "completed"


class DevelopmentMode(str, Enum):
    """How verbose generated documentation should be."""

    FULL = "full"
    RAPID = "rapid"


class DocumentStatus(str, Enum):
    """Status of a document inside a change-impact run."""

    PENDING = "pending"
    EDITING = "editing"
    VALIDATING = "validating"
    COMPLETE = "complete"
    FAILED = "failed"


class RiskCategory(str, Enum):
    TECHNICAL = "Technical"
    SCHEDULE = "Schedule"
    BUDGET = "Budget"
    RESOURCE = "Resource"
    OPERATIONAL = "Operational"
    OTHER = "Other"


class RiskSeverity(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class ResourceCategory(str, Enum):
    SOFTWARE = "Software"
    EQUIPMENT = "Equipment"
    OTHER = "Other"


class RecommendationCategory(str, Enum):
    METHODOLOGY = "Methodology"
    PROCESS = "Process"
    TOOLS = "Tools"
    RISK_MITIGATION = "Risk Mitigation"


# =============================================================================
# VERSIONED OUTPUT
# =============================================================================


class VersionedOutput(BaseModel):
    """Immutable snapshot of generated content.

    Example:
        >>> v = VersionedOutput(version=1, content="# Spec", reason="Automated generation")
        >>> v.version
        1
    """

    model_config = ConfigDict(frozen=True)

    version: int = Field(ge=1, description="Monotonic version number per parent")
    content: str = Field(description="Generated content")
    reason: str = Field(default="", description="Why this version was produced")
    created_at: datetime = Field(default_factory=datetime.utcnow)


class VersionedMixin(BaseModel):
    """Append-only output history shared by phases and work items."""

    outputs: list[VersionedOutput] = Field(default_factory=list)

    @property
    def latest_version(self) -> int:
        """Version number of the current output, 0 if none exists."""
        return self.outputs[-1].version if self.outputs else 0

    @property
    def current_content(self) -> str | None:
        """Content of the latest output."""
        return self.outputs[-1].content if self.outputs else None

    def append_output(self, content: str, reason: str) -> VersionedOutput:
        """Append a new version; existing versions are never touched.

        Args:
            content: New content.
            reason: Human-readable reason for the new version.

        Returns:
            The appended VersionedOutput.
        """
        output = VersionedOutput(
            version=self.latest_version + 1,
            content=content,
            reason=reason,
        )
        self.outputs = [*self.outputs, output]
        return output


# =============================================================================
# WORK ITEMS AND PHASES
# =============================================================================


class WorkItem(VersionedMixin):
    """A schedulable unit of content generation (sprint or phase document).

    Example:
        >>> item = WorkItem(id="cd-2", name="FMEA", dependencies=["cd-1"])
        >>> item.is_ready({"cd-1"})
        True
    """

    model_config = ConfigDict(frozen=False)

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str = Field(..., min_length=1)
    description: str = ""
    status: WorkItemStatus = WorkItemStatus.NOT_STARTED
    dependencies: list[str] = Field(default_factory=list)
    deliverables: list[str] = Field(default_factory=list)
    notes: str | None = None

    def is_ready(self, completed: set[str]) -> bool:
        """Check if all dependencies are satisfied."""
        return all(dep in completed for dep in self.dependencies)


class DesignReviewChecklistItem(BaseModel):
    """One verification item in a design review."""

    id: str
    text: str
    checked: bool = False


class DesignReview(BaseModel):
    """Design review gate attached to a phase."""

    required: bool = False
    checklist: list[DesignReviewChecklistItem] = Field(default_factory=list)


class Phase(VersionedMixin):
    """A lifecycle stage owning an ordered list of work items."""

    model_config = ConfigDict(frozen=False)

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str = Field(..., min_length=1)
    description: str = ""
    status: PhaseStatus = PhaseStatus.NOT_STARTED
    work_items: list[WorkItem] = Field(default_factory=list)
    tuning: dict[str, float | int | str | bool] = Field(default_factory=dict)
    design_review: DesignReview = Field(default_factory=DesignReview)

    def get_work_item(self, item_id: str) -> WorkItem | None:
        """Get a work item by ID."""
        for item in self.work_items:
            if item.id == item_id:
                return item
        return None


# =============================================================================
# GENERATED ARTIFACTS
# =============================================================================


class MetaDocument(BaseModel):
    """A generated side document (search log, summary, export, report)."""

    id: str = Field(default_factory=lambda: f"meta-{uuid4().hex[:12]}")
    name: str
    content: str
    doc_type: str = "document"
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_textual(self) -> bool:
        """Binary asset types are excluded from prompt context."""
        return self.doc_type not in ("2d-image", "3d-image", "diagram", "wireframe", "schematic")


class Risk(BaseModel):
    """A project risk found by assessment or iterative search."""

    id: str = Field(default_factory=lambda: f"risk-{uuid4().hex[:12]}")
    title: str
    category: RiskCategory
    severity: RiskSeverity
    description: str
    mitigation: str


class Resource(BaseModel):
    """A required resource (software, equipment) and where to source it."""

    id: str = Field(default_factory=lambda: f"resource-{uuid4().hex[:12]}")
    name: str
    source: str
    category: ResourceCategory
    justification: str


class Recommendation(BaseModel):
    """An actionable recommendation for improving project execution."""

    id: str = Field(default_factory=lambda: f"rec-{uuid4().hex[:12]}")
    title: str
    category: RecommendationCategory
    description: str
    actionable_step: str


class ImpactedDocument(BaseModel):
    """A document the orchestrator judged affected by a change request."""

    id: str
    name: str
    status: DocumentStatus = DocumentStatus.PENDING
    original_content: str
    new_content: str | None = None
    qa_feedback: str | None = None


# =============================================================================
# PROJECT
# =============================================================================


class Project(BaseModel):
    """An engineering project and its lifecycle phases.

    Example:
        >>> project = Project(
        ...     name="CubeSat Comms",
        ...     requirements="S-band downlink at 2 Mbps",
        ...     disciplines=["Aerospace Engineering", "Electrical Engineering"],
        ...     phases=create_default_phases(),
        ... )
        >>> project.get_phase_by_name("Critical Design").design_review.required
        True
    """

    model_config = ConfigDict(frozen=False)

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    requirements: str = ""
    constraints: str = ""
    disciplines: list[str] = Field(default_factory=list)
    development_mode: DevelopmentMode = DevelopmentMode.FULL
    compliance_standards: list[str] = Field(default_factory=list)
    custom_concept: str | None = None
    compacted_context: str | None = None
    phases: list[Phase] = Field(default_factory=list)
    meta_documents: list[MetaDocument] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    def get_phase(self, phase_id: str) -> Phase | None:
        """Get a phase by ID."""
        for phase in self.phases:
            if phase.id == phase_id:
                return phase
        return None

    def get_phase_by_name(self, name: str) -> Phase | None:
        """Get a phase by display name (case-insensitive)."""
        for phase in self.phases:
            if phase.name.lower() == name.lower():
                return phase
        return None

    def phase_index(self, phase_id: str) -> int:
        """Index of a phase, -1 if absent."""
        for index, phase in enumerate(self.phases):
            if phase.id == phase_id:
                return index
        return -1

    def find_document_owner(self, document_id: str) -> tuple[Phase, WorkItem | None] | None:
        """Resolve a serialized document id (``phase-<id>`` / ``sprint-<id>``)."""
        kind, _, owner_id = document_id.partition("-")
        for phase in self.phases:
            if kind == "phase" and phase.id == owner_id:
                return phase, None
            if kind == "sprint":
                item = phase.get_work_item(owner_id)
                if item is not None:
                    return phase, item
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dictionary."""
        return self.model_dump(mode="json")


# =============================================================================
# DEFAULT LIFECYCLE
# =============================================================================


DEFAULT_PHASES: list[dict[str, Any]] = [
    {
        "id": "requirements",
        "name": "Requirements",
        "description": "Capture functional and non-functional requirements.",
        "documents": [
            ("Project Scope", "Define the scope, objectives, and stakeholders of the project."),
            ("Statement of Work (SOW)", "Describe the work to be performed, deliverables, and timeline."),
            ("Technical Requirements Specification", "List measurable technical requirements."),
        ],
    },
    {
        "id": "preliminary-design",
        "name": "Preliminary Design",
        "description": "Explore concepts and select an architecture.",
        "documents": [
            ("Conceptual Design Options", "Propose and compare several conceptual designs."),
            ("Trade Study Analysis", "Evaluate the concepts against weighted criteria."),
        ],
        "design_review": True,
    },
    {
        "id": "critical-design",
        "name": "Critical Design",
        "description": "Detail the design through dependency-ordered sprints.",
        "documents": [],
        "design_review": True,
    },
    {
        "id": "testing",
        "name": "Testing",
        "description": "Plan and record verification and validation.",
        "documents": [
            ("Verification Plan", "Define how each requirement will be verified."),
            ("Validation Plan", "Define how the system will be validated against user needs."),
        ],
    },
    {
        "id": "launch",
        "name": "Launch",
        "description": "Prepare production, deployment, and release.",
        "documents": [],
    },
    {
        "id": "operation",
        "name": "Operation",
        "description": "Operate, monitor, and maintain the system.",
        "documents": [],
    },
    {
        "id": "improvement",
        "name": "Improvement",
        "description": "Capture lessons learned and plan the next iteration.",
        "documents": [],
    },
]


def create_default_phases() -> list[Phase]:
    """Build the seven standard lifecycle phases with their documents."""
    phases: list[Phase] = []
    for spec in DEFAULT_PHASES:
        work_items = [
            WorkItem(id=f"{spec['id']}-{index + 1}", name=name, description=description)
            for index, (name, description) in enumerate(spec["documents"])
        ]
        phases.append(
            Phase(
                id=spec["id"],
                name=spec["name"],
                description=spec["description"],
                work_items=work_items,
                design_review=DesignReview(required=spec.get("design_review", False)),
            )
        )
    return phases
