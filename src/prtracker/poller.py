"""
StatusPoller — fixed-interval status polling for one job at a time.

Owns the only mutable state in prtracker: the current snapshot of the
tracked job. Everything it derives (stage states, outcomes) comes from the
pure functions in ``prtracker.stages`` and ``prtracker.outcomes``.
"""

import asyncio
import functools
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional, Union

import httpx

from prtracker.errors import RateLimited, TransportError
from prtracker.outcomes import InProgress, Success, TransportFailure, OutcomeBase, classify
from prtracker.snapshots import StatusSnapshot
from prtracker.source import StatusSource
from prtracker.stages import DEFAULT_REGISTRY, StageRegistry, StageState, resolve

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 3.0
SUCCESS_GRACE = 1.0


def _log_task_failure(job_id: str, task: asyncio.Task) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error(f"[prtracker] {job_id}: polling task failed: {error!r}")


class PollerState(str, Enum):
    """Lifecycle of a StatusPoller."""

    IDLE = "idle"
    POLLING = "polling"
    TERMINATED = "terminated"


# Type aliases for the query capability and hooks
StatusQuery = Callable[[str], Awaitable[StatusSnapshot]]
SnapshotHook = Callable[[StatusSnapshot, dict[str, StageState]], None]
OutcomeHook = Callable[[OutcomeBase], None]


class StatusPoller:
    """
    Polls a job's status until it reaches a terminal outcome.

    One query is issued immediately on ``start``; subsequent queries are
    spaced ``interval`` seconds apart, measured from the start of each
    query. Queries never overlap: if one outlasts the interval, the next is
    issued as soon as it returns.

    Snapshot hooks fire after every applied snapshot. Outcome hooks fire
    once per tracking session with the terminal outcome; for Success they
    fire ``success_grace`` seconds after polling stops.

    Example:
        from prtracker import JobClient, StatusPoller

        async with JobClient() as client, StatusPoller(client) as poller:
            poller.add_snapshot_hook(lambda snap, stages: print(snap.raw_status))
            outcome = await poller.track(receipt.job_id, receipt.repository)
    """

    def __init__(
        self,
        source: Union[StatusSource, StatusQuery],
        registry: StageRegistry = DEFAULT_REGISTRY,
        interval: float = DEFAULT_INTERVAL,
        success_grace: float = SUCCESS_GRACE,
        snapshot_hooks: Optional[list[SnapshotHook]] = None,
        outcome_hooks: Optional[list[OutcomeHook]] = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        if success_grace < 0:
            raise ValueError("success_grace must not be negative")

        self._query: StatusQuery = source.query_status if isinstance(source, StatusSource) else source
        self._registry = registry
        self._interval = interval
        self._success_grace = success_grace
        self._snapshot_hooks: list[SnapshotHook] = snapshot_hooks or []
        self._outcome_hooks: list[OutcomeHook] = outcome_hooks or []

        self._state = PollerState.IDLE
        self._job_id: Optional[str] = None
        self._repository: Optional[str] = None
        self._snapshot: Optional[StatusSnapshot] = None
        self._outcome: Optional[OutcomeBase] = None
        self._task: Optional[asyncio.Task] = None
        self._generation = 0
        self._poll_count = 0

    async def __aenter__(self) -> "StatusPoller":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.stop()

    @property
    def state(self) -> PollerState:
        return self._state

    @property
    def job_id(self) -> Optional[str]:
        return self._job_id

    @property
    def repository(self) -> Optional[str]:
        return self._repository

    @property
    def snapshot(self) -> Optional[StatusSnapshot]:
        """The latest applied snapshot of the current session."""
        return self._snapshot

    @property
    def outcome(self) -> Optional[OutcomeBase]:
        """Classification of the latest snapshot, or the transport failure."""
        return self._outcome

    @property
    def stage_states(self) -> dict[str, StageState]:
        raw_status = self._snapshot.raw_status if self._snapshot else None
        return resolve(self._registry, raw_status)

    @property
    def poll_count(self) -> int:
        """Number of queries issued in the current session."""
        return self._poll_count

    @property
    def interval(self) -> float:
        return self._interval

    def add_snapshot_hook(self, hook: SnapshotHook) -> None:
        """Register a hook that fires after each applied snapshot."""
        self._snapshot_hooks.append(hook)

    def add_outcome_hook(self, hook: OutcomeHook) -> None:
        """Register a hook that fires once a session reaches a terminal outcome."""
        self._outcome_hooks.append(hook)

    def start(self, job_id: str, repository: Optional[str] = None) -> None:
        """
        Begin polling ``job_id``.

        Must be called with an asyncio event loop running. Any session in
        progress is stopped first, so calling start again restarts polling
        from scratch.
        """
        if not job_id:
            raise ValueError("job_id is required")

        loop = asyncio.get_running_loop()
        self.stop()

        self._job_id = job_id
        self._repository = repository
        self._snapshot = None
        self._outcome = None
        self._poll_count = 0
        self._state = PollerState.POLLING

        logger.info(f"[prtracker] {job_id}: polling started (every {self._interval:g}s)")
        self._task = loop.create_task(self._run(job_id, self._generation))
        self._task.add_done_callback(functools.partial(_log_task_failure, job_id))

    def restart(self, job_id: Optional[str] = None, repository: Optional[str] = None) -> None:
        """
        Start a fresh session, by default for the job tracked last.

        The previous repository is only carried over when restarting the
        same job.
        """
        if job_id is None or job_id == self._job_id:
            job_id = self._job_id
            repository = repository or self._repository
        if not job_id:
            raise ValueError("No job to restart")
        self.start(job_id, repository)

    def stop(self) -> None:
        """
        Cancel polling and any pending completion signal.

        Idempotent. A response that arrives after stop is discarded.
        """
        self._generation += 1
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
        if self._state == PollerState.POLLING:
            self._state = PollerState.IDLE
            logger.info(f"[prtracker] {self._job_id}: polling stopped")

    async def wait(self) -> Optional[OutcomeBase]:
        """
        Wait for the current session to finish.

        Returns the terminal outcome, or None if the session was stopped
        before reaching one. Cancelling the waiter does not stop polling.
        """
        task = self._task
        if task is not None:
            try:
                await asyncio.shield(task)
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise
        if self._state == PollerState.TERMINATED:
            return self._outcome
        return None

    async def track(self, job_id: str, repository: Optional[str] = None) -> Optional[OutcomeBase]:
        """Start polling and wait for the terminal outcome."""
        self.start(job_id, repository)
        return await self.wait()

    async def _run(self, job_id: str, generation: int) -> None:
        loop = asyncio.get_running_loop()
        try:
            while True:
                started = loop.time()
                outcome = await self._poll_once(job_id, generation)
                if outcome is None:
                    return
                if outcome.terminal:
                    await self._finish(outcome, generation)
                    return
                delay = self._interval - (loop.time() - started)
                if delay > 0:
                    await asyncio.sleep(delay)
        finally:
            if generation == self._generation and self._state == PollerState.POLLING:
                self._state = PollerState.IDLE

    async def _poll_once(self, job_id: str, generation: int) -> Optional[OutcomeBase]:
        self._poll_count += 1
        logger.debug(f"[prtracker] {job_id}: poll #{self._poll_count}")

        try:
            snapshot = await self._query(job_id)
        except RateLimited as e:
            if generation != self._generation:
                return None
            # Throttled ticks keep the previous snapshot; polling continues.
            logger.warning(f"[prtracker] {job_id}: status query rate limited: {e.message}")
            return self._outcome or InProgress(job_id=job_id, repository=self._repository)
        except TransportError as e:
            if generation != self._generation:
                return None
            return self._transport_failure(e.message, e.status_code)
        except (httpx.HTTPError, OSError) as e:
            if generation != self._generation:
                return None
            return self._transport_failure(str(e) or type(e).__name__, None)

        if generation != self._generation:
            logger.debug(f"[prtracker] {job_id}: discarding response after stop")
            return None

        self._snapshot = snapshot
        stage_states = resolve(self._registry, snapshot.raw_status)
        outcome = classify(snapshot)
        if not outcome.repository and self._repository:
            outcome = outcome.model_copy(update={"repository": self._repository})
        self._outcome = outcome

        for hook in self._snapshot_hooks:
            try:
                hook(snapshot, stage_states)
            except Exception as e:
                logger.warning(f"[prtracker] Snapshot hook error: {e}")

        if generation != self._generation:
            return None
        return outcome

    def _transport_failure(self, message: str, status_code: Optional[int]) -> TransportFailure:
        repository = self._repository or (self._snapshot.repository if self._snapshot else None)
        logger.error(f"[prtracker] {self._job_id}: status query failed: {message}")
        outcome = TransportFailure(
            message=message,
            status_code=status_code,
            job_id=self._job_id,
            repository=repository or None,
        )
        self._outcome = outcome
        return outcome

    async def _finish(self, outcome: OutcomeBase, generation: int) -> None:
        if generation != self._generation:
            return
        self._state = PollerState.TERMINATED
        logger.info(f"[prtracker] {self._job_id}: terminal outcome {outcome.kind.value} after {self._poll_count} poll(s)")

        if isinstance(outcome, Success) and self._success_grace:
            await asyncio.sleep(self._success_grace)

        for hook in self._outcome_hooks:
            try:
                hook(outcome)
            except Exception as e:
                logger.warning(f"[prtracker] Outcome hook error: {e}")
