"""
Structured-output schemas and validation.

Every JSON payload requested from the model is parsed into one of these
pydantic models. A payload that is not JSON, or that does not match the
expected shape, raises GenerationFormatError carrying the raw text.
"""

import json
import re
from typing import Any, TypeVar

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, RootModel, TypeAdapter, ValidationError, model_validator

from engineering_partner.core.errors import GenerationFormatError
from engineering_partner.project.models import (
    RecommendationCategory,
    ResourceCategory,
    RiskCategory,
    RiskSeverity,
)

T = TypeVar("T")

_FENCE_RE = re.compile(r"^```[a-zA-Z0-9_+-]*\s*\n?|\n?```\s*$")


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence, if any.

    Example:
        >>> strip_code_fences("```json\\n{\\"a\\": 1}\\n```")
        '{"a": 1}'
    """
    text = text.strip()
    if text.startswith("```"):
        text = _FENCE_RE.sub("", text).strip()
    return text


class _CamelModel(BaseModel):
    """Accepts both the camelCase keys the model emits and snake_case."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# =============================================================================
# QA VERDICTS
# =============================================================================


class QAVerdict(_CamelModel):
    """QA decision on a produced artifact; feedback is required on rejection."""

    approved: bool
    feedback: str = ""

    @model_validator(mode="after")
    def _feedback_on_rejection(self) -> "QAVerdict":
        if not self.approved and not self.feedback.strip():
            raise ValueError("feedback is required when approved is false")
        return self


class SearchVerdict(QAVerdict):
    """QA decision inside the iterative search loop."""

    should_stop: bool = Field(default=False, alias="shouldStop")


# =============================================================================
# GENERATION PAYLOADS
# =============================================================================


class SprintDraft(_CamelModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    dependencies: list[str] = Field(default_factory=list)


class SprintPlan(_CamelModel):
    """Critical-design plan: preliminary specification plus sprint breakdown."""

    preliminary_spec: str = Field(..., alias="preliminarySpec")
    sprints: list[SprintDraft] = Field(default_factory=list)


class SprintSpecification(_CamelModel):
    technical_spec: str = Field(..., alias="technicalSpec")
    deliverables: list[str] = Field(default_factory=list)


class RiskDraft(_CamelModel):
    title: str = Field(..., min_length=1)
    category: RiskCategory
    severity: RiskSeverity
    description: str
    mitigation: str


class ResourceDraft(_CamelModel):
    name: str = Field(..., min_length=1)
    source: str
    category: ResourceCategory
    justification: str


class RecommendationDraft(_CamelModel):
    title: str = Field(..., min_length=1)
    category: RecommendationCategory
    description: str
    actionable_step: str = Field(..., alias="actionableStep")


class ChecklistDraft(_CamelModel):
    checklist: list[str] = Field(..., min_length=1)


class ImpactedDocumentNames(RootModel[list[str]]):
    """Names of documents the orchestrator judged affected by a change."""


# =============================================================================
# PARSING
# =============================================================================


def schema_for(schema: Any) -> dict[str, Any]:
    """JSON schema (with camelCase aliases) used to instruct the model."""
    return TypeAdapter(schema).json_schema(by_alias=True)


def _load_json(text: str) -> Any:
    cleaned = strip_code_fences(text)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    # Tolerate prose around a single JSON object or array
    match = re.search(r"(\{.*\}|\[.*\])", cleaned, re.DOTALL)
    if match:
        try:
            return json.loads(match.group(1))
        except json.JSONDecodeError:
            pass
    raise GenerationFormatError("Model response is not valid JSON", raw=text)


def parse_structured(text: str, schema: type[T]) -> T:
    """Parse and validate a model response.

    Args:
        text: Raw model output.
        schema: Pydantic model or type understood by TypeAdapter.

    Returns:
        Validated instance of ``schema``.

    Raises:
        GenerationFormatError: If the text is not JSON or does not match.
    """
    data = _load_json(text)
    try:
        return TypeAdapter(schema).validate_python(data)
    except ValidationError as e:
        name = getattr(schema, "__name__", str(schema))
        logger.warning(f"Structured output did not match {name}: {e.error_count()} errors")
        raise GenerationFormatError(f"Model response does not match {name}: {e}", raw=text) from e
