"""
Exception hierarchy for submitting and tracking pipeline jobs.

Every exception carries the job id and repository when they are known,
so a failure shown to a user can be correlated with server-side logs.
"""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from prtracker.ratelimit import RateLimitInfo


class PRTrackerError(RuntimeError):
    """Base exception for prtracker failures."""

    def __init__(
        self,
        message: str,
        *,
        job_id: Optional[str] = None,
        repository: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.job_id = job_id
        self.repository = repository

    def __str__(self) -> str:
        context = []
        if self.repository:
            context.append(f"repository={self.repository}")
        if self.job_id:
            context.append(f"job_id={self.job_id}")
        if not context:
            return self.message
        return f"{self.message} ({', '.join(context)})"


class ConfigurationError(PRTrackerError):
    """Raised when the API endpoint is missing or unusable."""


class ValidationError(PRTrackerError):
    """Raised when a submission is missing required fields. Never reaches the network."""

    def __init__(self, message: str, *, fields: Optional[list[str]] = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.fields = fields or []


class TransportError(PRTrackerError):
    """Raised on network failure, an undecodable body, or an unexpected HTTP status."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.status_code = status_code


class RateLimited(PRTrackerError):
    """Raised when the submission endpoint answers 429. Not retried automatically."""

    def __init__(self, info: "RateLimitInfo", **kwargs) -> None:
        super().__init__(info.message, **kwargs)
        self.info = info


class SoftRejection(PRTrackerError):
    """The job judged its input unusable. The caller may resubmit with a better prompt."""

    def __init__(self, message: str, *, diagnostic: Optional[str] = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.diagnostic = diagnostic


class FatalJobError(PRTrackerError):
    """The job failed after it started."""

    def __init__(self, message: str, *, diagnostic: Optional[str] = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.diagnostic = diagnostic
