"""Static model-tier selection.

Callers classify each request with a TaskType; a fixed table maps the task
type to a tier and the injected ModelTable maps the tier to a model name.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ModelTier(str, Enum):
    """Cost/quality class of the model serving a request."""

    FAST = "fast"
    QUALITY = "quality"


class TaskType(str, Enum):
    """Classification of a model call."""

    PROJECT_SETUP = "project_setup"
    QUERY = "query"
    PHASE_GENERATION = "phase_generation"
    SPRINT_GENERATION = "sprint_generation"
    ANALYSIS = "analysis"
    ORCHESTRATOR = "orchestrator"
    DOER = "doer"
    QA = "qa"


TASK_TIERS: dict[TaskType, ModelTier] = {
    TaskType.PROJECT_SETUP: ModelTier.FAST,
    TaskType.QUERY: ModelTier.FAST,
    TaskType.PHASE_GENERATION: ModelTier.QUALITY,
    TaskType.SPRINT_GENERATION: ModelTier.QUALITY,
    TaskType.ANALYSIS: ModelTier.QUALITY,
    TaskType.ORCHESTRATOR: ModelTier.QUALITY,
    TaskType.DOER: ModelTier.QUALITY,
    TaskType.QA: ModelTier.QUALITY,
}


class ModelTable(BaseModel):
    """Model name per tier."""

    model_config = ConfigDict(frozen=True)

    fast: str = Field(..., min_length=1)
    quality: str = Field(..., min_length=1)

    def for_tier(self, tier: ModelTier) -> str:
        """Model name serving ``tier``."""
        return self.fast if tier == ModelTier.FAST else self.quality


def tier_for(task_type: TaskType) -> ModelTier:
    """Tier for a task type; unclassified tasks get the quality tier."""
    return TASK_TIERS.get(task_type, ModelTier.QUALITY)


def select_model(task_type: TaskType, table: ModelTable) -> str:
    """Pick the model for a task.

    Example:
        >>> table = ModelTable(fast="claude-3-5-haiku-latest", quality="claude-sonnet-4-20250514")
        >>> select_model(TaskType.QUERY, table)
        'claude-3-5-haiku-latest'
    """
    return table.for_tier(tier_for(task_type))
