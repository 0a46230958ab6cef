"""
Outcome classification for status snapshots.

An Outcome is a closed tagged variant. Terminal variants end polling for a
job; InProgress keeps it alive. Classification is a pure function of one
snapshot, so it can be re-derived from a stored snapshot at any time.
"""

import logging
from enum import Enum
from typing import Annotated, Any, ClassVar, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from prtracker.errors import FatalJobError, SoftRejection, TransportError
from prtracker.snapshots import StatusSnapshot

logger = logging.getLogger(__name__)


STATUS_COMPLETED = "completed"
STATUS_REJECTED = "rejected"
STATUS_ERROR = "error"

TERMINAL_STATUSES = frozenset({STATUS_COMPLETED, STATUS_REJECTED, STATUS_ERROR})

REJECTION_TIPS: tuple[str, ...] = (
    "Be specific about which file(s) to modify",
    "Clearly describe what changes you want",
    "Include examples if helpful",
    'Avoid vague terms like "improve" or "make better"',
)

EXAMPLE_PROMPTS: tuple[str, ...] = (
    "Add a 'Hello World' comment to the README.md file",
    "Update the package.json version to 2.0.0",
    "Add error handling to the main.go file",
)


class OutcomeKind(str, Enum):
    """Tags of the Outcome variant."""

    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    REJECTED = "rejected"
    JOB_ERROR = "error"
    TRANSPORT_FAILURE = "transport_failure"


class OutcomeBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    terminal: ClassVar[bool] = True

    job_id: Optional[str] = Field(default=None, description="Job the outcome belongs to")
    repository: Optional[str] = Field(default=None, description="Repository the job operates on")

    def raise_for_outcome(self) -> None:
        """Raise the matching exception for failure outcomes; no-op otherwise."""


class InProgress(OutcomeBase):
    """The job is still running (or reported something we cannot act on yet)."""

    terminal: ClassVar[bool] = False

    kind: Literal[OutcomeKind.IN_PROGRESS] = OutcomeKind.IN_PROGRESS
    raw_status: Optional[str] = None


class Success(OutcomeBase):
    """The pull request was created."""

    kind: Literal[OutcomeKind.SUCCESS] = OutcomeKind.SUCCESS
    artifact_url: str


class Rejected(OutcomeBase):
    """
    The job judged the modification prompt unusable.

    Recoverable: nothing is retried automatically, but the caller can
    return to the submission step with a better prompt.
    """

    kind: Literal[OutcomeKind.REJECTED] = OutcomeKind.REJECTED
    diagnostic: Optional[str] = None

    @property
    def tips(self) -> tuple[str, ...]:
        return REJECTION_TIPS

    @property
    def example_prompts(self) -> tuple[str, ...]:
        return EXAMPLE_PROMPTS

    def raise_for_outcome(self) -> None:
        raise SoftRejection(
            "Modification request is too vague or unclear",
            diagnostic=self.diagnostic,
            job_id=self.job_id,
            repository=self.repository,
        )


class JobError(OutcomeBase):
    """The job failed after it started. Fatal for this job id."""

    kind: Literal[OutcomeKind.JOB_ERROR] = OutcomeKind.JOB_ERROR
    message: str = ""
    diagnostic: Optional[str] = None

    def raise_for_outcome(self) -> None:
        raise FatalJobError(
            self.message or "Processing failed",
            diagnostic=self.diagnostic,
            job_id=self.job_id,
            repository=self.repository,
        )


class TransportFailure(OutcomeBase):
    """Status could not be fetched. Polling halts; the caller may restart it."""

    kind: Literal[OutcomeKind.TRANSPORT_FAILURE] = OutcomeKind.TRANSPORT_FAILURE
    message: str
    status_code: Optional[int] = None

    def raise_for_outcome(self) -> None:
        raise TransportError(
            self.message,
            status_code=self.status_code,
            job_id=self.job_id,
            repository=self.repository,
        )


Outcome = Annotated[
    Union[InProgress, Success, Rejected, JobError, TransportFailure],
    Field(discriminator="kind"),
]

_outcome_adapter: TypeAdapter[Any] = TypeAdapter(Outcome)


def is_terminal(outcome: OutcomeBase) -> bool:
    return outcome.terminal


def outcome_from_dict(data: dict[str, Any]) -> OutcomeBase:
    """Deserialize an outcome previously dumped with ``model_dump``."""
    return _outcome_adapter.validate_python(data)


def classify(snapshot: StatusSnapshot) -> OutcomeBase:
    """
    Classify a snapshot into an Outcome.

    Rules, first match wins:
        completed with a pull request URL -> Success
        completed without one            -> InProgress (server contract violation)
        rejected                         -> Rejected
        error                            -> JobError
        anything else                    -> InProgress
    """
    context = {"job_id": snapshot.job_id, "repository": snapshot.repository or None}
    status = snapshot.raw_status

    if status == STATUS_COMPLETED:
        if snapshot.artifact_url:
            return Success(artifact_url=snapshot.artifact_url, **context)
        logger.warning(f"[prtracker] {snapshot.job_id}: status 'completed' reported without a pull request URL")
        return InProgress(raw_status=status, **context)

    if status == STATUS_REJECTED:
        return Rejected(diagnostic=snapshot.diagnostic, **context)

    if status == STATUS_ERROR:
        return JobError(message=snapshot.message, diagnostic=snapshot.diagnostic, **context)

    return InProgress(raw_status=status, **context)
