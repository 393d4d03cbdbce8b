"""Core module - errors, event channel, cancellation.

Settings live in ``engineering_partner.core.config`` and are imported
explicitly by entry points.
"""

from engineering_partner.core.cancellation import CancellationToken
from engineering_partner.core.errors import (
    DependencyCycleError,
    DependencyStallError,
    GenerationFormatError,
    PartnerError,
    ProjectNotFoundError,
    ProviderError,
    ProviderTransientError,
    QARejectedError,
    RateLimitedError,
    ScheduleConfigurationError,
    UnknownExportTargetError,
    VersionConflictError,
    WorkflowCancelledError,
)
from engineering_partner.core.events import (
    EventEmitter,
    EventLevel,
    EventType,
    WorkflowEvent,
)

__all__ = [
    "CancellationToken",
    "DependencyCycleError",
    "DependencyStallError",
    "EventEmitter",
    "EventLevel",
    "EventType",
    "GenerationFormatError",
    "PartnerError",
    "ProjectNotFoundError",
    "ProviderError",
    "ProviderTransientError",
    "QARejectedError",
    "RateLimitedError",
    "ScheduleConfigurationError",
    "UnknownExportTargetError",
    "VersionConflictError",
    "WorkflowCancelledError",
    "WorkflowEvent",
]
