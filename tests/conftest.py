"""Pytest configuration and shared fixtures."""

import json
import os
from collections.abc import Callable, Generator
from typing import Any

import pytest

# Set test environment
os.environ.setdefault("ANTHROPIC_API_KEY", "sk-ant-REDACTED")
os.environ.setdefault("PARTNER_LOG_LEVEL", "DEBUG")

from engineering_partner.core.events import EventEmitter  # noqa: E402
from engineering_partner.llm.invoker import ModelInvoker  # noqa: E402
from engineering_partner.llm.provider import GenerationRequest, GenerationResponse, ModelProvider  # noqa: E402
from engineering_partner.llm.retry import RetryPolicy  # noqa: E402
from engineering_partner.llm.selection import ModelTable  # noqa: E402
from engineering_partner.project.models import (  # noqa: E402
    PhaseStatus,
    Project,
    WorkItem,
    create_default_phases,
)
from engineering_partner.project.store import InMemoryProjectStore, ProjectUpdate  # noqa: E402

Reply = str | BaseException | Callable[[GenerationRequest], str]


# =============================================================================
# FAKES
# =============================================================================


class ScriptedProvider(ModelProvider):
    """Provider replaying queued replies and recording every request.

    A reply is returned as text, raised if it is an exception, or called
    with the request if it is callable.
    """

    def __init__(self, replies: list[Reply] | None = None) -> None:
        self.replies: list[Reply] = list(replies or [])
        self.requests: list[GenerationRequest] = []

    def queue(self, *replies: Reply) -> "ScriptedProvider":
        self.replies.extend(replies)
        return self

    def queue_json(self, *payloads: Any) -> "ScriptedProvider":
        self.replies.extend(json.dumps(payload) for payload in payloads)
        return self

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        self.requests.append(request)
        if not self.replies:
            raise AssertionError(f"Unexpected model call: {request.prompt[:80]}")
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        text = reply(request) if callable(reply) else reply
        return GenerationResponse(text=text, model=request.model)


class RecordingSleep:
    """Zero-delay sleep recording the requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class RecordingSink:
    """UpdateSink collecting updates without storing them."""

    def __init__(self) -> None:
        self.updates: list[ProjectUpdate] = []

    async def apply(self, update: ProjectUpdate) -> None:
        self.updates.append(update)

    async def apply_all(self, updates: list[ProjectUpdate]) -> None:
        self.updates.extend(updates)


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def mock_settings() -> Generator:
    """Reset cached settings around a test."""
    from engineering_partner.core.config import clear_settings_cache

    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def provider() -> ScriptedProvider:
    """Provide an empty scripted provider."""
    return ScriptedProvider()


@pytest.fixture
def sleep() -> RecordingSleep:
    """Provide a recording, zero-delay sleep."""
    return RecordingSleep()


@pytest.fixture
def model_table() -> ModelTable:
    """Provide a model table with distinct tier names."""
    return ModelTable(fast="fast-model", quality="quality-model")


@pytest.fixture
def invoker(provider: ScriptedProvider, model_table: ModelTable, sleep: RecordingSleep) -> ModelInvoker:
    """Provide an invoker over the scripted provider with instant backoff."""
    return ModelInvoker(provider, model_table, retry_policy=RetryPolicy(), sleep=sleep)


@pytest.fixture
def events() -> EventEmitter:
    """Provide an event emitter."""
    return EventEmitter()


@pytest.fixture
def sink() -> RecordingSink:
    """Provide a recording sink."""
    return RecordingSink()


@pytest.fixture
def sample_project() -> Project:
    """Provide a project whose Requirements phase is completed."""
    project = Project(
        id="proj-1",
        name="CubeSat Comms",
        requirements="S-band downlink at 2 Mbps; 10 W power budget",
        constraints="1U form factor; 18 month schedule",
        disciplines=["Aerospace Engineering", "Electrical Engineering"],
        compliance_standards=["ECSS-E-ST-50C"],
        phases=create_default_phases(),
    )
    requirements = project.get_phase("requirements")
    assert requirements is not None
    requirements.append_output("## Requirements\nDownlink 2 Mbps at 2.2 GHz.", "Automated generation")
    requirements.status = PhaseStatus.COMPLETED
    return project


@pytest.fixture
def store(sample_project: Project) -> InMemoryProjectStore:
    """Provide an in-memory store holding the sample project."""
    store = InMemoryProjectStore()
    store.add(sample_project.model_copy(deep=True))
    return store


@pytest.fixture
def chain_items() -> list[WorkItem]:
    """Provide three work items A <- B <- C."""
    return [
        WorkItem(id="a", name="Architecture"),
        WorkItem(id="b", name="FMEA", dependencies=["a"]),
        WorkItem(id="c", name="DFMA", dependencies=["b"]),
    ]


# Markers
def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: mark test as unit test")
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "e2e: mark test as end-to-end test")
    config.addinivalue_line("markers", "slow: mark test as slow running")
