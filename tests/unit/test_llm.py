"""Unit tests for the model invocation layer."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import pytest

from engineering_partner.core.errors import (
    GenerationFormatError,
    ProviderError,
    ProviderTransientError,
    RateLimitedError,
)
from engineering_partner.llm.invoker import ModelInvoker
from engineering_partner.llm.provider import AnthropicProvider, GenerationRequest
from engineering_partner.llm.retry import RetryPolicy, is_rate_limited, with_retry
from engineering_partner.llm.schemas import (
    ImpactedDocumentNames,
    QAVerdict,
    SearchVerdict,
    SprintPlan,
    parse_structured,
    strip_code_fences,
)
from engineering_partner.llm.selection import ModelTable, ModelTier, TaskType, select_model, tier_for

# =============================================================================
# RETRY
# =============================================================================


@pytest.mark.unit
class TestRetry:
    """Tests for with_retry and rate-limit classification."""

    @pytest.mark.asyncio
    async def test_rate_limited_twice_then_success(self, sleep) -> None:
        attempts = 0

        async def operation() -> str:
            nonlocal attempts
            attempts += 1
            if attempts <= 2:
                raise RateLimitedError("429 Too Many Requests", status_code=429)
            return "ok"

        result = await with_retry(operation, RetryPolicy(), sleep=sleep)

        assert result == "ok"
        assert attempts == 3
        assert sleep.delays == [30.0, 30.0]

    @pytest.mark.asyncio
    async def test_generic_failure_uses_short_backoff(self, sleep) -> None:
        attempts = 0

        async def operation() -> str:
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                raise ProviderTransientError("connection reset")
            return "ok"

        assert await with_retry(operation, RetryPolicy(), sleep=sleep) == "ok"
        assert sleep.delays == [2.0]

    @pytest.mark.asyncio
    async def test_exhaustion_propagates_last_error(self, sleep) -> None:
        attempts = 0

        async def operation() -> str:
            nonlocal attempts
            attempts += 1
            raise ProviderError(f"boom {attempts}", status_code=400)

        with pytest.raises(ProviderError, match="boom 4"):
            await with_retry(operation, RetryPolicy(max_retries=3), sleep=sleep)

        assert attempts == 4
        assert sleep.delays == [2.0, 2.0, 2.0]

    @pytest.mark.asyncio
    async def test_format_errors_not_retried(self, sleep) -> None:
        operation = AsyncMock(side_effect=GenerationFormatError("bad json"))

        with pytest.raises(GenerationFormatError):
            await with_retry(operation, RetryPolicy(), sleep=sleep)

        assert operation.await_count == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_zero_retries(self, sleep) -> None:
        operation = AsyncMock(side_effect=ProviderTransientError("down"))

        with pytest.raises(ProviderTransientError):
            await with_retry(operation, RetryPolicy(max_retries=0), sleep=sleep)

        assert operation.await_count == 1

    @pytest.mark.parametrize(
        "error, expected",
        [
            (RateLimitedError("slow down"), True),
            (ProviderError("quota", status_code=429), True),
            (RuntimeError("RESOURCE_EXHAUSTED: quota"), True),
            (RuntimeError("Rate limit reached"), True),
            (ProviderTransientError("overloaded", status_code=529), False),
            (ValueError("nope"), False),
        ],
    )
    def test_is_rate_limited(self, error: Exception, expected: bool) -> None:
        assert is_rate_limited(error) is expected


# =============================================================================
# SELECTION
# =============================================================================


@pytest.mark.unit
class TestModelSelection:
    """Tests for static tier selection."""

    def test_fast_tier_tasks(self) -> None:
        assert tier_for(TaskType.PROJECT_SETUP) == ModelTier.FAST
        assert tier_for(TaskType.QUERY) == ModelTier.FAST

    @pytest.mark.parametrize(
        "task_type",
        [TaskType.PHASE_GENERATION, TaskType.SPRINT_GENERATION, TaskType.ANALYSIS, TaskType.QA],
    )
    def test_quality_tier_tasks(self, task_type: TaskType) -> None:
        assert tier_for(task_type) == ModelTier.QUALITY

    def test_select_model(self, model_table: ModelTable) -> None:
        assert select_model(TaskType.QUERY, model_table) == "fast-model"
        assert select_model(TaskType.DOER, model_table) == "quality-model"


# =============================================================================
# SCHEMAS
# =============================================================================


@pytest.mark.unit
class TestSchemas:
    """Tests for structured output parsing."""

    def test_strip_code_fences(self) -> None:
        assert strip_code_fences("```json\n{\"approved\": true}\n```") == '{"approved": true}'
        assert strip_code_fences("  plain text  ") == "plain text"

    def test_parse_fenced_verdict(self) -> None:
        verdict = parse_structured('```json\n{"approved": true, "feedback": ""}\n```', QAVerdict)
        assert verdict.approved is True

    def test_parse_camel_case_aliases(self) -> None:
        verdict = parse_structured(
            '{"approved": false, "feedback": "Duplicate", "shouldStop": true}',
            SearchVerdict,
        )
        assert verdict.should_stop is True

        plan = parse_structured(
            '{"preliminarySpec": "# Spec", "sprints": [{"name": "FMEA", "dependencies": []}]}',
            SprintPlan,
        )
        assert plan.preliminary_spec == "# Spec"
        assert plan.sprints[0].name == "FMEA"

    def test_json_inside_prose(self) -> None:
        names = parse_structured('Impacted documents: ["Requirements"] as discussed.', ImpactedDocumentNames)
        assert names.root == ["Requirements"]

    def test_rejection_requires_feedback(self) -> None:
        with pytest.raises(GenerationFormatError):
            parse_structured('{"approved": false, "feedback": ""}', QAVerdict)

    def test_missing_field(self) -> None:
        with pytest.raises(GenerationFormatError) as exc:
            parse_structured('{"feedback": "fine"}', QAVerdict)
        assert exc.value.raw == '{"feedback": "fine"}'

    def test_not_json(self) -> None:
        with pytest.raises(GenerationFormatError, match="not valid JSON"):
            parse_structured("Looks good to me!", QAVerdict)


# =============================================================================
# INVOKER
# =============================================================================


@pytest.mark.unit
class TestModelInvoker:
    """Tests for ModelInvoker."""

    @pytest.mark.asyncio
    async def test_text_uses_tier_model(self, invoker: ModelInvoker, provider) -> None:
        provider.queue("  answer  ")

        text = await invoker.generate_text("What is the budget?", TaskType.QUERY, system_instruction="Be brief")

        assert text == "answer"
        request = provider.requests[0]
        assert request.model == "fast-model"
        assert request.tier == ModelTier.FAST
        assert request.system_instruction == "Be brief"

    @pytest.mark.asyncio
    async def test_strip_fences(self, invoker: ModelInvoker, provider) -> None:
        provider.queue("```csv\nDesignator,Footprint,Quantity\n```")

        text = await invoker.generate_text("export", TaskType.DOER, strip_fences=True)

        assert text == "Designator,Footprint,Quantity"

    @pytest.mark.asyncio
    async def test_structured_appends_schema(self, invoker: ModelInvoker, provider) -> None:
        provider.queue_json({"approved": True})

        verdict = await invoker.generate_structured("Check this", QAVerdict, TaskType.QA)

        assert verdict.approved
        request = provider.requests[0]
        assert request.prompt.startswith("Check this")
        assert '"approved"' in request.prompt
        assert request.output_schema is not None

    @pytest.mark.asyncio
    async def test_provider_errors_retried(self, invoker: ModelInvoker, provider, sleep) -> None:
        provider.queue(RateLimitedError("429"), ProviderTransientError("503"), '{"approved": true}')

        verdict = await invoker.generate_structured("Check", QAVerdict, TaskType.QA)

        assert verdict.approved
        assert sleep.delays == [30.0, 2.0]
        assert invoker.call_count == 3

    @pytest.mark.asyncio
    async def test_malformed_payload_not_retried(self, invoker: ModelInvoker, provider) -> None:
        provider.queue("not json")

        with pytest.raises(GenerationFormatError):
            await invoker.generate_structured("Check", QAVerdict, TaskType.QA)

        assert invoker.call_count == 1


# =============================================================================
# ANTHROPIC PROVIDER
# =============================================================================


def _response(status: int) -> httpx.Response:
    return httpx.Response(status, request=httpx.Request("POST", "https://api.anthropic.com/v1/messages"))


def _client(result=None, error: Exception | None = None) -> MagicMock:
    client = MagicMock()
    client.messages.create = AsyncMock(return_value=result, side_effect=error)
    return client


@pytest.fixture
def request_() -> GenerationRequest:
    return GenerationRequest(prompt="Summarize", model="quality-model", system_instruction="You are terse")


@pytest.mark.unit
class TestAnthropicProvider:
    """Tests for AnthropicProvider response and error mapping."""

    @pytest.mark.asyncio
    async def test_joins_text_blocks(self, request_: GenerationRequest) -> None:
        message = SimpleNamespace(
            content=[
                SimpleNamespace(type="text", text="Part one. "),
                SimpleNamespace(type="tool_use", name="x"),
                SimpleNamespace(type="text", text="Part two."),
            ],
            model="quality-model",
            stop_reason="end_turn",
            usage=SimpleNamespace(input_tokens=12, output_tokens=5),
        )
        client = _client(result=message)

        response = await AnthropicProvider(client=client).generate(request_)

        assert response.text == "Part one. Part two."
        assert response.output_tokens == 5
        kwargs = client.messages.create.await_args.kwargs
        assert kwargs["system"] == "You are terse"
        assert kwargs["messages"] == [{"role": "user", "content": "Summarize"}]

    @pytest.mark.asyncio
    async def test_rate_limit_mapped(self, request_: GenerationRequest) -> None:
        error = anthropic.RateLimitError("rate limited", response=_response(429), body=None)

        with pytest.raises(RateLimitedError) as exc:
            await AnthropicProvider(client=_client(error=error)).generate(request_)

        assert exc.value.status_code == 429

    @pytest.mark.asyncio
    async def test_server_error_is_transient(self, request_: GenerationRequest) -> None:
        error = anthropic.InternalServerError("server error", response=_response(500), body=None)

        with pytest.raises(ProviderTransientError):
            await AnthropicProvider(client=_client(error=error)).generate(request_)

    @pytest.mark.asyncio
    async def test_connection_error_is_transient(self, request_: GenerationRequest) -> None:
        error = anthropic.APIConnectionError(request=httpx.Request("POST", "https://api.anthropic.com"))

        with pytest.raises(ProviderTransientError):
            await AnthropicProvider(client=_client(error=error)).generate(request_)

    @pytest.mark.asyncio
    async def test_bad_request_is_permanent(self, request_: GenerationRequest) -> None:
        error = anthropic.BadRequestError("invalid model", response=_response(400), body=None)

        with pytest.raises(ProviderError) as exc:
            await AnthropicProvider(client=_client(error=error)).generate(request_)

        assert not isinstance(exc.value, ProviderTransientError)
        assert exc.value.status_code == 400
