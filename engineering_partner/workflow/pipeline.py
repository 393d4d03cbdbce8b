"""
Orchestrator -> Doer -> QA building blocks.

AgentPipeline holds the run state machine shared by the change-impact and
export pipelines and implements the Doer/QA cycle: the Doer produces a
full artifact, QA returns a verdict, and a rejection either feeds the QA
feedback into another Doer attempt or, once attempts are exhausted, fails
the unit with QARejectedError.
"""

from collections.abc import Awaitable, Callable
from enum import Enum

from loguru import logger

from engineering_partner.core.cancellation import CancellationToken
from engineering_partner.core.errors import QARejectedError
from engineering_partner.core.events import EventEmitter, EventLevel, EventType
from engineering_partner.llm.invoker import ModelInvoker
from engineering_partner.llm.schemas import QAVerdict


class PipelineStatus(str, Enum):
    """Run-level state of an agent pipeline."""

    IDLE = "idle"
    ORCHESTRATING = "orchestrating"
    DOING = "doing"
    VALIDATING = "validating"
    COMPLETE = "complete"
    ERROR = "error"


Producer = Callable[[str], Awaitable[str]]
Validator = Callable[[str], Awaitable[QAVerdict]]


def revision_notes(feedback: str | None) -> str:
    """Prompt fragment carrying the previous QA rejection."""
    if not feedback:
        return ""
    return f"\nA previous attempt was rejected by QA with this feedback. Address it:\n{feedback}\n"


class AgentPipeline:
    """Base class for three-role agent pipelines."""

    def __init__(
        self,
        invoker: ModelInvoker,
        events: EventEmitter | None = None,
        qa_max_attempts: int = 1,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        """
        Initialize the pipeline.

        Args:
            invoker: Model invocation layer.
            events: Event channel for progress notifications.
            qa_max_attempts: Doer/QA attempts per unit; 1 makes a QA
                rejection terminal.
            cancel_token: Checked before each agent step.
        """
        if qa_max_attempts < 1:
            raise ValueError("qa_max_attempts must be at least 1")
        self.invoker = invoker
        self.events = events or EventEmitter()
        self.qa_max_attempts = qa_max_attempts
        self.cancel_token = cancel_token or CancellationToken()
        self.status = PipelineStatus.IDLE

    def _set_status(self, status: PipelineStatus, message: str) -> None:
        self.status = status
        logger.info(f"[{self.__class__.__name__}] {status.value}: {message}")
        level = EventLevel.ERROR if status == PipelineStatus.ERROR else EventLevel.INFO
        if status == PipelineStatus.COMPLETE:
            level = EventLevel.SUCCESS
        self.events.emit(EventType.STATUS, message, level=level, status=status.value)

    async def _doer_qa_cycle(
        self,
        subject: str,
        produce: Producer,
        validate: Validator,
        on_produced: Callable[[str], None] | None = None,
    ) -> str:
        """Run Doer then QA until approval or attempts run out.

        Args:
            subject: Name of the artifact, for messages.
            produce: Doer step; receives revision notes ("" on first attempt).
            validate: QA step for a produced artifact.
            on_produced: Called with each produced artifact before QA.

        Returns:
            The approved artifact.

        Raises:
            QARejectedError: If the final attempt is rejected.
        """
        feedback: str | None = None
        for attempt in range(1, self.qa_max_attempts + 1):
            self.cancel_token.raise_if_cancelled()
            self._set_status(PipelineStatus.DOING, f"Doer is producing {subject}...")
            content = await produce(revision_notes(feedback))
            if on_produced is not None:
                on_produced(content)

            self.cancel_token.raise_if_cancelled()
            self._set_status(PipelineStatus.VALIDATING, f"QA is validating {subject}...")
            verdict = await validate(content)
            if verdict.approved:
                logger.debug(f"QA approved {subject} on attempt {attempt}")
                return content

            feedback = verdict.feedback
            logger.warning(f"QA rejected {subject} (attempt {attempt}/{self.qa_max_attempts}): {feedback}")

        raise QARejectedError(feedback or "QA rejected the artifact.", subject=subject)
