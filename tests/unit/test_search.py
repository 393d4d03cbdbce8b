"""Unit tests for the iterative search loop."""

import json

import pytest

from engineering_partner.core.cancellation import CancellationToken
from engineering_partner.core.errors import GenerationFormatError, WorkflowCancelledError
from engineering_partner.core.events import EventEmitter, EventType
from engineering_partner.llm.invoker import ModelInvoker
from engineering_partner.project.models import MetaDocument, Project, Resource, Risk, RiskSeverity
from engineering_partner.workflow.search import RESOURCE_SEARCH, RISK_SEARCH, IterativeSearchLoop


def risk_payload(title: str) -> str:
    return json.dumps({
        "title": title,
        "category": "Technical",
        "severity": "High",
        "description": f"{title} could end the mission.",
        "mitigation": "Add margin and test early.",
    })


def verdict(approved: bool, stop: bool = False, feedback: str = "") -> str:
    return json.dumps({"approved": approved, "feedback": feedback, "shouldStop": stop})


@pytest.mark.unit
class TestIterativeSearchLoop:
    """Tests for IterativeSearchLoop."""

    @pytest.mark.asyncio
    async def test_stops_when_qa_decides(
        self,
        invoker: ModelInvoker,
        provider,
        sample_project: Project,
        sink,
    ) -> None:
        provider.queue("Look at thermal control.", risk_payload("Thermal runaway"), verdict(True, stop=True))
        events = EventEmitter()

        result = await IterativeSearchLoop(invoker, RISK_SEARCH, events=events).run(sample_project, sink=sink)

        assert result.iterations == 1
        assert result.stopped_by_qa
        assert len(provider.requests) == 3
        risk = result.items[0]
        assert isinstance(risk, Risk)
        assert risk.severity == RiskSeverity.HIGH

        log = result.log_document
        assert log.name == "CubeSat Comms - Risk Assessment Log"
        assert log.content.startswith("# AI Risk Assessment Log for CubeSat Comms\n")
        assert "##  Iteration 1: Thermal runaway (High)" in log.content
        assert log.content.endswith("--- WORKFLOW COMPLETE (QA Decision) ---")

        assert sink.updates[0].meta_document == log
        assert len(events.events_of(EventType.ITEM_FOUND)) == 1

    @pytest.mark.asyncio
    async def test_runs_to_max_iterations(self, invoker: ModelInvoker, provider, sample_project: Project) -> None:
        provider.queue(
            "Topic 1", risk_payload("Battery degradation"), verdict(True),
            "Topic 2", risk_payload("Battery degradation"), verdict(False, feedback="Duplicate of iteration 1"),
        )

        result = await IterativeSearchLoop(invoker, RISK_SEARCH, max_iterations=2).run(sample_project)

        assert result.iterations == 2
        assert not result.stopped_by_qa
        assert [r.title for r in result.items] == ["Battery degradation"]
        assert "##  Iteration 2: Risk Rejected\n- **Reason**: Duplicate of iteration 1" in result.log_document.content
        assert result.log_document.content.endswith("--- WORKFLOW COMPLETE (Max Iterations Reached) ---")

    @pytest.mark.asyncio
    async def test_found_items_fed_back_to_orchestrator(
        self,
        invoker: ModelInvoker,
        provider,
        sample_project: Project,
    ) -> None:
        provider.queue(
            "Topic 1", risk_payload("Radiation upsets"), verdict(True),
            "Topic 2", risk_payload("Launch vibration"), verdict(True, stop=True),
        )

        await IterativeSearchLoop(invoker, RISK_SEARCH).run(sample_project)

        assert "Radiation upsets" in provider.requests[3].prompt
        assert "Radiation upsets" not in provider.requests[0].prompt

    @pytest.mark.asyncio
    async def test_agent_failure_propagates(self, invoker: ModelInvoker, provider, sample_project: Project) -> None:
        provider.queue("Topic", "not a risk at all")
        events = EventEmitter()

        with pytest.raises(GenerationFormatError):
            await IterativeSearchLoop(invoker, RISK_SEARCH, events=events).run(sample_project)

        assert len(events.events_of(EventType.ERROR)) == 1
        assert events.events_of(EventType.COMPLETED) == []

    @pytest.mark.asyncio
    async def test_failure_saves_partial_log(
        self,
        invoker: ModelInvoker,
        provider,
        sample_project: Project,
        sink,
    ) -> None:
        provider.queue(
            "Look at thermal control.", risk_payload("Thermal runaway"), verdict(True),
            "Look at the radio.", "not a risk at all",
        )

        with pytest.raises(GenerationFormatError):
            await IterativeSearchLoop(invoker, RISK_SEARCH).run(sample_project, sink=sink)

        assert len(sink.updates) == 1
        log = sink.updates[0].meta_document
        assert log.name == "CubeSat Comms - Risk Assessment Log"
        assert "##  Iteration 1: Thermal runaway (High)" in log.content
        assert "##  Iteration 2: Workflow Error\n- **Details**: " in log.content
        assert "WORKFLOW COMPLETE" not in log.content

    @pytest.mark.asyncio
    async def test_image_documents_excluded(self, invoker: ModelInvoker, provider, sample_project: Project) -> None:
        sample_project.meta_documents.append(MetaDocument(name="render.png", content="PNGDATA"))
        provider.queue("Topic", risk_payload("Corrosion"), verdict(True, stop=True))

        await IterativeSearchLoop(invoker, RISK_SEARCH).run(sample_project)

        assert "PNGDATA" not in provider.requests[0].prompt

    @pytest.mark.asyncio
    async def test_cancelled(self, invoker: ModelInvoker, provider, sample_project: Project) -> None:
        token = CancellationToken()
        token.cancel()

        with pytest.raises(WorkflowCancelledError):
            await IterativeSearchLoop(invoker, RISK_SEARCH, cancel_token=token).run(sample_project)

        assert provider.requests == []

    @pytest.mark.asyncio
    async def test_resource_search(self, invoker: ModelInvoker, provider, sample_project: Project) -> None:
        payload = json.dumps({
            "name": "STK",
            "source": "https://www.ansys.com/products/missions/ansys-stk",
            "category": "Software",
            "justification": "Link budget and orbit analysis.",
        })
        provider.queue("Orbit analysis tooling", payload, verdict(True, stop=True))

        result = await IterativeSearchLoop(invoker, RESOURCE_SEARCH).run(sample_project)

        assert isinstance(result.items[0], Resource)
        assert result.log_document.content.startswith("# AI Resource Analysis Log for CubeSat Comms")
        assert "##  Iteration 1: STK (Software)" in result.log_document.content

    def test_max_iterations_validated(self, invoker: ModelInvoker) -> None:
        with pytest.raises(ValueError):
            IterativeSearchLoop(invoker, RISK_SEARCH, max_iterations=0)
