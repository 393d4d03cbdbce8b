"""LLM module - provider, model selection, retry policy and schemas."""

from engineering_partner.llm.invoker import ModelInvoker
from engineering_partner.llm.provider import (
    AnthropicProvider,
    GenerationRequest,
    GenerationResponse,
    ModelProvider,
)
from engineering_partner.llm.retry import RetryPolicy, is_rate_limited, with_retry
from engineering_partner.llm.schemas import (
    ChecklistDraft,
    ImpactedDocumentNames,
    QAVerdict,
    RecommendationDraft,
    ResourceDraft,
    RiskDraft,
    SearchVerdict,
    SprintDraft,
    SprintPlan,
    SprintSpecification,
    parse_structured,
    strip_code_fences,
)
from engineering_partner.llm.selection import (
    TASK_TIERS,
    ModelTable,
    ModelTier,
    TaskType,
    select_model,
)

__all__ = [
    "AnthropicProvider",
    "ChecklistDraft",
    "GenerationRequest",
    "GenerationResponse",
    "ImpactedDocumentNames",
    "ModelInvoker",
    "ModelProvider",
    "ModelTable",
    "ModelTier",
    "QAVerdict",
    "RecommendationDraft",
    "ResourceDraft",
    "RetryPolicy",
    "RiskDraft",
    "SearchVerdict",
    "SprintDraft",
    "SprintPlan",
    "SprintSpecification",
    "TASK_TIERS",
    "TaskType",
    "is_rate_limited",
    "parse_structured",
    "select_model",
    "strip_code_fences",
    "with_retry",
]
