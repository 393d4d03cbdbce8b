"""Exception hierarchy for Engineering Partner workflows."""

from typing import Any


class PartnerError(Exception):
    """Base exception for Engineering Partner errors."""

    pass


# =============================================================================
# PROVIDER ERRORS
# =============================================================================


class ProviderError(PartnerError):
    """The model provider failed to serve a request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ProviderTransientError(ProviderError):
    """Network, timeout or 5xx failure; safe to retry."""

    pass


class RateLimitedError(ProviderError):
    """Provider signalled throttling (HTTP 429 / resource exhausted)."""

    pass


class GenerationFormatError(PartnerError):
    """Provider responded but the payload did not match the expected shape."""

    def __init__(self, message: str, raw: str = "") -> None:
        super().__init__(message)
        self.raw = raw


# =============================================================================
# SCHEDULER ERRORS
# =============================================================================


class ScheduleConfigurationError(PartnerError):
    """Work items cannot form a valid schedule (self-dependency, unknown id)."""

    pass


class DependencyStallError(PartnerError):
    """No work item can proceed although some remain incomplete."""

    def __init__(
        self,
        message: str,
        stuck_ids: list[str],
        stuck_names: list[str] | None = None,
        report: Any = None,
    ) -> None:
        super().__init__(message)
        self.stuck_ids = stuck_ids
        self.stuck_names = stuck_names or []
        self.report = report


class DependencyCycleError(DependencyStallError):
    """Work items depend on each other in a cycle; detected before any work starts."""

    def __init__(self, cycle: list[str], stuck_names: list[str] | None = None) -> None:
        members = list(dict.fromkeys(cycle))
        super().__init__(
            f"Circular dependency detected: {' -> '.join(cycle)}",
            stuck_ids=members,
            stuck_names=stuck_names,
        )
        self.cycle = cycle


# =============================================================================
# PIPELINE ERRORS
# =============================================================================


class QARejectedError(PartnerError):
    """The QA agent declined to approve a produced artifact."""

    def __init__(self, feedback: str, subject: str | None = None) -> None:
        message = f"QA Failed: {feedback}"
        if subject:
            message = f"QA Failed for {subject}: {feedback}"
        super().__init__(message)
        self.feedback = feedback
        self.subject = subject


class WorkflowCancelledError(PartnerError):
    """A long-running run was aborted by the user."""

    def __init__(self, message: str = "Automation was cancelled by the user.") -> None:
        super().__init__(message)


class UnknownExportTargetError(PartnerError):
    """Requested export tool is not in the catalog."""

    pass


# =============================================================================
# STORAGE ERRORS
# =============================================================================


class ProjectNotFoundError(PartnerError):
    """Project (or a phase/work item inside it) does not exist."""

    pass


class VersionConflictError(PartnerError):
    """An append was based on a stale version of the output history."""

    def __init__(self, key: str, expected: int, actual: int) -> None:
        super().__init__(
            f"Version conflict on {key}: expected latest version {expected}, found {actual}"
        )
        self.key = key
        self.expected = expected
        self.actual = actual
