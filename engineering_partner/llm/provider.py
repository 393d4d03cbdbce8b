"""
Model provider capability.

ModelProvider is the single seam between workflows and the remote
generative model. AnthropicProvider serves it with the Anthropic Messages
API and translates SDK exceptions into the project's error taxonomy so
the retry layer never needs to know about SDK types.
"""

from abc import ABC, abstractmethod
from typing import Any

from loguru import logger
from pydantic import BaseModel, Field

from engineering_partner.core.errors import ProviderError, ProviderTransientError, RateLimitedError
from engineering_partner.llm.selection import ModelTier

# =============================================================================
# REQUEST / RESPONSE
# =============================================================================


class GenerationRequest(BaseModel):
    """One model call."""

    prompt: str = Field(..., min_length=1)
    model: str = Field(..., min_length=1)
    tier: ModelTier = ModelTier.QUALITY
    system_instruction: str | None = None
    output_schema: dict[str, Any] | None = None
    max_tokens: int = Field(default=8000, ge=1)


class GenerationResponse(BaseModel):
    """Text returned by the provider."""

    text: str
    model: str = ""
    stop_reason: str | None = None
    input_tokens: int = 0
    output_tokens: int = 0


class ModelProvider(ABC):
    """Capability to serve a GenerationRequest.

    Implementations raise RateLimitedError, ProviderTransientError or
    ProviderError; they never retry on their own.
    """

    @abstractmethod
    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        """Serve one request."""


# =============================================================================
# ANTHROPIC
# =============================================================================


class AnthropicProvider(ModelProvider):
    """
    Provider backed by ``anthropic.AsyncAnthropic``.

    Example:
        >>> provider = AnthropicProvider(api_key=settings.anthropic_api_key.get_secret_value())
        >>> response = await provider.generate(
        ...     GenerationRequest(prompt="Summarize the SOW", model="claude-sonnet-4-20250514")
        ... )
    """

    def __init__(self, api_key: str | None = None, client: Any = None) -> None:
        """
        Initialize the provider.

        Args:
            api_key: Anthropic API key, used when no client is given.
            client: Pre-built AsyncAnthropic-compatible client.
        """
        if client is None:
            from anthropic import AsyncAnthropic

            client = AsyncAnthropic(api_key=api_key)
        self._client = client

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        import anthropic

        kwargs: dict[str, Any] = {
            "model": request.model,
            "max_tokens": request.max_tokens,
            "messages": [{"role": "user", "content": request.prompt}],
        }
        if request.system_instruction:
            kwargs["system"] = request.system_instruction

        logger.debug(f"Calling {request.model} ({request.tier.value} tier)")

        try:
            response = await self._client.messages.create(**kwargs)
        except anthropic.RateLimitError as e:
            raise RateLimitedError(str(e), status_code=429) from e
        except anthropic.APIConnectionError as e:
            # Includes APITimeoutError
            raise ProviderTransientError(f"Connection to provider failed: {e}") from e
        except anthropic.APIStatusError as e:
            if e.status_code >= 500 or "overloaded" in str(e).lower():
                raise ProviderTransientError(str(e), status_code=e.status_code) from e
            raise ProviderError(str(e), status_code=e.status_code) from e

        text = "".join(
            getattr(block, "text", "") for block in response.content if getattr(block, "type", "text") == "text"
        )
        usage = getattr(response, "usage", None)

        return GenerationResponse(
            text=text,
            model=getattr(response, "model", request.model),
            stop_reason=getattr(response, "stop_reason", None),
            input_tokens=getattr(usage, "input_tokens", 0) or 0,
            output_tokens=getattr(usage, "output_tokens", 0) or 0,
        )
