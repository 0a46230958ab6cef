"""prtracker — Submit fork → modify → pull request jobs and track them through their pipeline stages."""

from prtracker.stages import (
    StageState,
    StageDescriptor,
    StageRegistry,
    DEFAULT_REGISTRY,
    resolve,
)
from prtracker.snapshots import StatusSnapshot
from prtracker.outcomes import (
    Outcome,
    OutcomeBase,
    OutcomeKind,
    InProgress,
    Success,
    Rejected,
    JobError,
    TransportFailure,
    classify,
    is_terminal,
)
from prtracker.ratelimit import RateLimitInfo, interpret
from prtracker.errors import (
    PRTrackerError,
    ConfigurationError,
    ValidationError,
    TransportError,
    RateLimited,
    SoftRejection,
    FatalJobError,
)
from prtracker.source import StatusSource, ScriptedStatusSource
from prtracker.poller import StatusPoller, PollerState
from prtracker.client import JobClient, SubmissionRequest, SubmissionReceipt

__version__ = "0.1.0"

__all__ = [
    # Stages
    "StageState",
    "StageDescriptor",
    "StageRegistry",
    "DEFAULT_REGISTRY",
    "resolve",
    # Snapshots and outcomes
    "StatusSnapshot",
    "Outcome",
    "OutcomeBase",
    "OutcomeKind",
    "InProgress",
    "Success",
    "Rejected",
    "JobError",
    "TransportFailure",
    "classify",
    "is_terminal",
    # Rate limits
    "RateLimitInfo",
    "interpret",
    # Errors
    "PRTrackerError",
    "ConfigurationError",
    "ValidationError",
    "TransportError",
    "RateLimited",
    "SoftRejection",
    "FatalJobError",
    # Polling
    "StatusSource",
    "ScriptedStatusSource",
    "StatusPoller",
    "PollerState",
    # HTTP client
    "JobClient",
    "SubmissionRequest",
    "SubmissionReceipt",
]
