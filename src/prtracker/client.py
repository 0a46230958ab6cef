"""
HTTP client for the job submission and status endpoints.

Usage:
    from prtracker.client import JobClient, SubmissionRequest

    async with JobClient(api_endpoint="https://api.example.com/prod/process") as client:
        receipt = await client.submit(
            SubmissionRequest(repository_url="https://github.com/org/repo", modification_prompt="...")
        )
        snapshot = await client.query_status(receipt.job_id)

The endpoint falls back to the PRTRACKER_API_ENDPOINT environment variable.
There is no built-in default: a client without an endpoint refuses to start.
"""

import logging
import os
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from prtracker.errors import ConfigurationError, RateLimited, TransportError, ValidationError
from prtracker.ratelimit import HTTP_TOO_MANY_REQUESTS, interpret
from prtracker.snapshots import StatusSnapshot

logger = logging.getLogger(__name__)

ENDPOINT_ENV = "PRTRACKER_API_ENDPOINT"
TIMEOUT_ENV = "PRTRACKER_TIMEOUT"
DEFAULT_TIMEOUT = 30.0


class SubmissionRequest(BaseModel):
    """Body of a job submission."""

    model_config = ConfigDict(populate_by_name=True)

    repository_url: str = Field(default="", alias="repositoryUrl", description="Repository to contribute to")
    modification_prompt: str = Field(default="", alias="modificationPrompt", description="Requested change")
    github_username: Optional[str] = Field(
        default=None, alias="githubUsername", description="Added as collaborator on the fork"
    )

    def validate_required(self) -> None:
        """Raise ValidationError if a required field is blank."""
        missing = []
        if not self.repository_url.strip():
            missing.append("repositoryUrl")
        if not self.modification_prompt.strip():
            missing.append("modificationPrompt")
        if missing:
            raise ValidationError(
                "Repository URL and modification prompt are required",
                fields=missing,
                repository=self.repository_url.strip() or None,
            )

    def to_payload(self) -> dict[str, Any]:
        payload = {
            "repositoryUrl": self.repository_url.strip(),
            "modificationPrompt": self.modification_prompt.strip(),
        }
        if self.github_username and self.github_username.strip():
            payload["githubUsername"] = self.github_username.strip()
        return payload


class SubmissionReceipt(BaseModel):
    """2xx reply of the submission endpoint."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    job_id: str = Field(..., alias="requestId", min_length=1)
    repository: str = Field(default="")
    message: str = Field(default="Your request is being processed.")


def status_endpoint(api_endpoint: str, job_id: str) -> str:
    """
    Derive the status URL of a job from the submission URL.

    The last path segment of the submission URL is replaced by
    ``status/{job_id}``: ``https://host/prod/process`` becomes
    ``https://host/prod/status/{job_id}``.
    """
    url = httpx.URL(api_endpoint)
    path = url.path.rstrip("/")
    parent = path.rsplit("/", 1)[0] if "/" in path else ""
    return str(url.copy_with(path=f"{parent}/status/{job_id}"))


def _load_timeout(timeout: Optional[float]) -> float:
    if timeout is not None:
        return timeout
    raw = os.environ.get(TIMEOUT_ENV)
    if not raw:
        return DEFAULT_TIMEOUT
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{TIMEOUT_ENV} must be a number of seconds, got {raw!r}")


def _json_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


class JobClient:
    """
    Async client for the submission and status endpoints.

    Implements the StatusSource protocol, so it can be handed straight to
    a StatusPoller.
    """

    def __init__(
        self,
        api_endpoint: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        endpoint = api_endpoint or os.environ.get(ENDPOINT_ENV)
        if not endpoint:
            raise ConfigurationError(f"No API endpoint configured. Pass api_endpoint or set {ENDPOINT_ENV}.")
        if not endpoint.startswith(("http://", "https://")):
            raise ConfigurationError(f"API endpoint must be an http(s) URL, got {endpoint!r}")
        self._endpoint = endpoint
        self._timeout = _load_timeout(timeout)
        self._client = client
        self._owns_client = client is None

    @property
    def api_endpoint(self) -> str:
        return self._endpoint

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "JobClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def status_url(self, job_id: str) -> str:
        return status_endpoint(self._endpoint, job_id)

    async def submit(self, request: SubmissionRequest) -> SubmissionReceipt:
        """
        Submit a job.

        Raises:
            ValidationError: required fields missing (no request is sent)
            RateLimited: the endpoint answered 429
            TransportError: network failure or any other non-2xx answer
        """
        request.validate_required()
        repository = request.repository_url.strip()

        try:
            response = await self.client.post(self._endpoint, json=request.to_payload())
        except httpx.HTTPError as e:
            logger.error(f"[prtracker] Submission failed for {repository}: {e}")
            raise TransportError(f"Submission failed: {e}", repository=repository) from e

        body = _json_body(response)
        if not isinstance(body, dict):
            body = {}

        if response.status_code == HTTP_TOO_MANY_REQUESTS:
            info = interpret(response.status_code, body)
            logger.warning(f"[prtracker] Submission rate limited for {repository}: {info.message}")
            raise RateLimited(info, repository=repository)

        if not response.is_success:
            message = body.get("message") or body.get("error") or "Failed to submit request"
            logger.error(f"[prtracker] Submission rejected with HTTP {response.status_code} for {repository}")
            raise TransportError(str(message), status_code=response.status_code, repository=repository)

        try:
            receipt = SubmissionReceipt.model_validate(body)
        except PydanticValidationError as e:
            raise TransportError(
                "Submission response did not include a request id",
                status_code=response.status_code,
                repository=repository,
            ) from e

        if not receipt.repository:
            receipt = receipt.model_copy(update={"repository": repository})

        logger.info(f"[prtracker] {receipt.job_id}: submitted for {receipt.repository}")
        return receipt

    async def query_status(self, job_id: str) -> StatusSnapshot:
        """
        Fetch the current status snapshot of a job.

        Raises:
            RateLimited: the endpoint answered 429
            TransportError: network failure, non-2xx answer, or malformed body
        """
        url = self.status_url(job_id)
        try:
            response = await self.client.get(url)
        except httpx.HTTPError as e:
            raise TransportError(f"Failed to fetch status: {e}", job_id=job_id) from e

        if response.status_code == HTTP_TOO_MANY_REQUESTS:
            info = interpret(response.status_code, _json_body(response))
            raise RateLimited(info, job_id=job_id)

        if not response.is_success:
            raise TransportError(
                f"Failed to fetch status: {response.status_code}",
                status_code=response.status_code,
                job_id=job_id,
            )

        body = _json_body(response)
        if not isinstance(body, dict):
            raise TransportError("Status response was not a JSON object", status_code=response.status_code, job_id=job_id)

        try:
            return StatusSnapshot.from_dict(body)
        except PydanticValidationError as e:
            raise TransportError(
                f"Malformed status response: {e.error_count()} invalid field(s)",
                status_code=response.status_code,
                job_id=job_id,
            ) from e
