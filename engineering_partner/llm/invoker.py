"""
Model Invocation Layer.

ModelInvoker is the one call surface every workflow uses: it resolves the
model for a task type, wraps the provider call in the retry policy and,
for structured calls, validates the payload against a schema.
"""

import asyncio
import json
from typing import TypeVar

from loguru import logger

from engineering_partner.llm.provider import GenerationRequest, ModelProvider
from engineering_partner.llm.retry import RetryPolicy, SleepFunc, with_retry
from engineering_partner.llm.schemas import parse_structured, schema_for, strip_code_fences
from engineering_partner.llm.selection import ModelTable, TaskType, tier_for

T = TypeVar("T")

JSON_INSTRUCTION = """

Respond ONLY with valid JSON matching this JSON schema. Do not wrap it in prose.
{schema}"""


class ModelInvoker:
    """
    Retrying, tier-aware facade over a ModelProvider.

    Example:
        >>> invoker = ModelInvoker(provider, ModelTable(fast="haiku", quality="sonnet"))
        >>> verdict = await invoker.generate_structured(prompt, QAVerdict, TaskType.QA)
        >>> verdict.approved
        True
    """

    def __init__(
        self,
        provider: ModelProvider,
        models: ModelTable,
        retry_policy: RetryPolicy | None = None,
        max_tokens: int = 8000,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        """
        Initialize the invoker.

        Args:
            provider: Model provider serving requests.
            models: Tier to model-name table.
            retry_policy: Retry bound and backoffs.
            max_tokens: Output token cap per call.
            sleep: Awaitable sleep used for retry backoff.
        """
        self.provider = provider
        self.models = models
        self.retry_policy = retry_policy or RetryPolicy()
        self.max_tokens = max_tokens
        self.sleep = sleep
        self.call_count = 0

    def build_request(
        self,
        prompt: str,
        task_type: TaskType,
        system_instruction: str | None = None,
        output_schema: dict | None = None,
    ) -> GenerationRequest:
        """Resolve tier and model for a task."""
        tier = tier_for(task_type)
        return GenerationRequest(
            prompt=prompt,
            model=self.models.for_tier(tier),
            tier=tier,
            system_instruction=system_instruction,
            output_schema=output_schema,
            max_tokens=self.max_tokens,
        )

    async def _call(self, request: GenerationRequest, task_type: TaskType) -> str:
        async def attempt() -> str:
            self.call_count += 1
            response = await self.provider.generate(request)
            return response.text

        logger.info(f"Model call: {task_type.value} -> {request.model}")
        return await with_retry(
            attempt,
            self.retry_policy,
            sleep=self.sleep,
            label=f"{task_type.value} call",
        )

    async def generate_text(
        self,
        prompt: str,
        task_type: TaskType,
        system_instruction: str | None = None,
        strip_fences: bool = False,
    ) -> str:
        """Generate free text.

        Args:
            prompt: User prompt.
            task_type: Task classification used for model selection.
            system_instruction: Optional system prompt.
            strip_fences: Remove a surrounding markdown code fence.

        Returns:
            Model output text.
        """
        request = self.build_request(prompt, task_type, system_instruction)
        text = await self._call(request, task_type)
        return strip_code_fences(text) if strip_fences else text.strip()

    async def generate_structured(
        self,
        prompt: str,
        schema: type[T],
        task_type: TaskType,
        system_instruction: str | None = None,
    ) -> T:
        """Generate a payload validated against ``schema``.

        Provider failures are retried; a payload that fails validation is
        not, and surfaces as GenerationFormatError.
        """
        json_schema = schema_for(schema)
        full_prompt = prompt + JSON_INSTRUCTION.format(schema=json.dumps(json_schema, indent=2))
        request = self.build_request(full_prompt, task_type, system_instruction, json_schema)
        text = await self._call(request, task_type)
        return parse_structured(text, schema)
