"""
Status-query protocol used by the poller.

Implement this protocol to plug in any way of fetching job status
(HTTP, a message queue, a local fake, etc.).
"""

import asyncio
from typing import Iterable, Protocol, Union, runtime_checkable

from prtracker.snapshots import StatusSnapshot


@runtime_checkable
class StatusSource(Protocol):
    """
    Capability to fetch the current status of a job.

    ``query_status`` raises TransportError on network failure or a non-2xx
    response. prtracker ships an HTTP implementation (JobClient) and an
    in-memory scripted one for testing.
    """

    async def query_status(self, job_id: str) -> StatusSnapshot:
        """Fetch the current snapshot for a job."""
        ...


ScriptStep = Union[StatusSnapshot, dict, BaseException]


class ScriptedStatusSource:
    """
    In-memory status source that replays a script of responses.

    Each call returns (or raises) the next step. Once the script is
    exhausted the last step is repeated. Dict steps are parsed as status
    endpoint bodies. ``latency`` delays every answer, which lets tests
    exercise slow queries.

    Not thread-safe. Not for production use.
    """

    def __init__(self, steps: Iterable[ScriptStep], latency: float = 0.0) -> None:
        self._steps: list[ScriptStep] = list(steps)
        if not self._steps:
            raise ValueError("ScriptedStatusSource needs at least one step")
        self._latency = latency
        self._position = 0
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def query_status(self, job_id: str) -> StatusSnapshot:
        self.calls.append(job_id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self._latency:
                await asyncio.sleep(self._latency)
            step = self._next_step()
            if isinstance(step, BaseException):
                raise step
            if isinstance(step, dict):
                return StatusSnapshot.from_dict({"requestId": job_id, **step})
            return step
        finally:
            self.in_flight -= 1

    def _next_step(self) -> ScriptStep:
        index = min(self._position, len(self._steps) - 1)
        self._position += 1
        return self._steps[index]

    @property
    def call_count(self) -> int:
        return len(self.calls)

