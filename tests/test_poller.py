"""Tests for the StatusPoller."""

import asyncio
import logging

import pytest

from prtracker.errors import RateLimited, TransportError
from prtracker.outcomes import InProgress, Rejected, Success, TransportFailure
from prtracker.poller import DEFAULT_INTERVAL, SUCCESS_GRACE, PollerState, StatusPoller
from prtracker.ratelimit import RateLimitInfo
from prtracker.snapshots import StatusSnapshot
from prtracker.render import render_outcome
from prtracker.source import ScriptedStatusSource
from prtracker.stages import StageState

REPO = "https://github.com/org/repo"
PR_URL = "https://github.com/x/y/pull/1"

FAST = 0.02


def failing_source(message, status_code=None):
    return ScriptedStatusSource([TransportError(message, status_code=status_code)])


def completed():
    return {"status": "completed", "message": "Done", "repository": REPO, "prUrl": PR_URL}


def running(status):
    return {"status": status, "message": f"{status}...", "repository": REPO}


class TestDefaults:
    def test_cadence_constants(self):
        assert DEFAULT_INTERVAL == 3.0
        assert SUCCESS_GRACE == 1.0

    def test_initial_state(self):
        poller = StatusPoller(ScriptedStatusSource([running("pending")]))
        assert poller.state == PollerState.IDLE
        assert poller.snapshot is None
        assert poller.outcome is None
        assert set(poller.stage_states.values()) == {StageState.PENDING}

    def test_invalid_interval(self):
        with pytest.raises(ValueError):
            StatusPoller(ScriptedStatusSource([running("pending")]), interval=0)

    def test_start_requires_running_loop(self):
        poller = StatusPoller(ScriptedStatusSource([running("pending")]))
        with pytest.raises(RuntimeError):
            poller.start("req-1")

    def test_stop_when_idle_is_noop(self):
        poller = StatusPoller(ScriptedStatusSource([running("pending")]))
        poller.stop()
        poller.stop()
        assert poller.state == PollerState.IDLE


class TestPolling:
    @pytest.mark.asyncio
    async def test_forking_snapshot_updates_stage_states(self):
        source = ScriptedStatusSource([running("forking")])
        seen = []
        poller = StatusPoller(source, interval=FAST)
        poller.add_snapshot_hook(lambda snapshot, states: seen.append(states))

        poller.start("req-1", REPO)
        await asyncio.sleep(FAST / 2)
        poller.stop()

        assert seen
        states = seen[0]
        assert states["pending"] == StageState.COMPLETED
        assert states["validating"] == StageState.COMPLETED
        assert states["forking"] == StageState.CURRENT
        assert states["cloning"] == StageState.PENDING
        assert states["creating_pr"] == StageState.PENDING
        assert poller.stage_states == states
        assert poller.snapshot.raw_status == "forking"

    @pytest.mark.asyncio
    async def test_progresses_through_stages(self):
        source = ScriptedStatusSource(
            [running("pending"), running("forking"), running("creating_pr"), completed()]
        )
        statuses = []
        poller = StatusPoller(source, interval=FAST, success_grace=0)
        poller.add_snapshot_hook(lambda snapshot, states: statuses.append(snapshot.raw_status))

        outcome = await poller.track("req-1", REPO)

        assert statuses == ["pending", "forking", "creating_pr", "completed"]
        assert isinstance(outcome, Success)
        assert poller.state == PollerState.TERMINATED
        assert poller.poll_count == 4

    @pytest.mark.asyncio
    async def test_first_query_is_immediate(self):
        source = ScriptedStatusSource([running("pending")])
        poller = StatusPoller(source, interval=10)
        poller.start("req-1")
        await asyncio.sleep(0.05)
        poller.stop()
        assert source.call_count == 1
        assert source.calls == ["req-1"]

    @pytest.mark.asyncio
    async def test_interval_measured_from_poll_start(self):
        source = ScriptedStatusSource([running("analyzing")], latency=0.05)
        poller = StatusPoller(source, interval=0.1)
        poller.start("req-1")
        await asyncio.sleep(0.37)
        poller.stop()
        # polls at ~0.0, 0.1, 0.2, 0.3; latency does not push the schedule back
        assert 3 <= source.call_count <= 5

    @pytest.mark.asyncio
    async def test_no_overlapping_queries(self):
        source = ScriptedStatusSource([running("analyzing")], latency=0.1)
        poller = StatusPoller(source, interval=FAST)
        poller.start("req-1")
        await asyncio.sleep(0.45)
        poller.stop()

        assert source.max_in_flight == 1
        assert 3 <= source.call_count <= 5

    @pytest.mark.asyncio
    async def test_completed_without_url_keeps_polling(self):
        source = ScriptedStatusSource(
            [{"status": "completed", "repository": REPO}, completed()]
        )
        poller = StatusPoller(source, interval=FAST, success_grace=0)
        outcome = await poller.track("req-1")
        assert isinstance(outcome, Success)
        assert source.call_count == 2

    @pytest.mark.asyncio
    async def test_accepts_plain_query_function(self):
        calls = []

        async def query(job_id):
            calls.append(job_id)
            return StatusSnapshot(job_id=job_id, raw_status="rejected", diagnostic="nope")

        poller = StatusPoller(query, interval=FAST)
        outcome = await poller.track("req-9")
        assert isinstance(outcome, Rejected)
        assert calls == ["req-9"]


class TestTermination:
    @pytest.mark.asyncio
    async def test_success_signal_after_grace(self):
        source = ScriptedStatusSource([completed()])
        loop = asyncio.get_running_loop()
        times = {}
        poller = StatusPoller(source)
        poller.add_snapshot_hook(lambda snapshot, states: times.setdefault("classified", loop.time()))
        poller.add_outcome_hook(lambda outcome: times.setdefault("complete", loop.time()))

        outcome = await poller.track("req-1", REPO)

        assert outcome == Success(artifact_url=PR_URL, job_id="req-1", repository=REPO)
        delay = times["complete"] - times["classified"]
        assert 0.95 <= delay < 1.5
        assert source.call_count == 1

    @pytest.mark.asyncio
    async def test_polling_stops_before_success_signal(self):
        source = ScriptedStatusSource([completed()])
        fired = []
        poller = StatusPoller(source, interval=FAST, success_grace=0.2)
        poller.add_outcome_hook(fired.append)

        poller.start("req-1")
        await asyncio.sleep(0.1)

        assert poller.state == PollerState.TERMINATED
        assert isinstance(poller.outcome, Success)
        assert fired == []

        await poller.wait()
        assert len(fired) == 1
        assert source.call_count == 1

    @pytest.mark.asyncio
    async def test_stop_during_grace_suppresses_signal(self):
        fired = []
        poller = StatusPoller(ScriptedStatusSource([completed()]), success_grace=0.2)
        poller.add_outcome_hook(fired.append)

        poller.start("req-1")
        await asyncio.sleep(0.05)
        poller.stop()
        await asyncio.sleep(0.3)

        assert fired == []
        assert poller.state == PollerState.TERMINATED

    @pytest.mark.asyncio
    async def test_rejected_stops_immediately(self):
        source = ScriptedStatusSource([{"status": "rejected", "errorDetails": "too vague", "repository": REPO}])
        fired = []
        poller = StatusPoller(source, interval=FAST)
        poller.add_outcome_hook(fired.append)

        outcome = await poller.track("req-1", REPO)
        await asyncio.sleep(FAST * 5)

        assert outcome == Rejected(diagnostic="too vague", job_id="req-1", repository=REPO)
        assert fired == [outcome]
        assert source.call_count == 1

    @pytest.mark.asyncio
    async def test_job_error_stops(self):
        source = ScriptedStatusSource([running("cloning"), {"status": "error", "message": "Clone failed"}])
        poller = StatusPoller(source, interval=FAST)
        outcome = await poller.track("req-1")
        await asyncio.sleep(FAST * 3)
        assert outcome.kind.value == "error"
        assert outcome.message == "Clone failed"
        assert source.call_count == 2


class TestTransportFailures:
    @pytest.mark.asyncio
    async def test_network_exception(self):
        source = ScriptedStatusSource([ConnectionError("connection reset")])
        poller = StatusPoller(source, interval=FAST)

        outcome = await poller.track("req-1", REPO)
        await asyncio.sleep(FAST * 3)

        assert isinstance(outcome, TransportFailure)
        assert "connection reset" in outcome.message
        assert outcome.job_id == "req-1"
        assert outcome.repository == REPO
        assert poller.state == PollerState.TERMINATED
        assert source.call_count == 1

        poller.stop()
        poller.stop()
        assert poller.state == PollerState.TERMINATED

    @pytest.mark.asyncio
    async def test_transport_error_keeps_status_code(self):
        poller = StatusPoller(failing_source("Failed to fetch status: 502", status_code=502), interval=FAST)
        outcome = await poller.track("req-1")
        assert outcome.status_code == 502
        assert outcome.message == "Failed to fetch status: 502"

    @pytest.mark.asyncio
    async def test_restart_after_transport_failure(self):
        source = ScriptedStatusSource([TransportError("down"), running("analyzing"), completed()])
        poller = StatusPoller(source, interval=FAST, success_grace=0)

        first = await poller.track("req-1", REPO)
        assert isinstance(first, TransportFailure)

        poller.restart()
        assert poller.state == PollerState.POLLING
        assert poller.outcome is None
        second = await poller.wait()

        assert isinstance(second, Success)
        assert second.repository == REPO
        assert source.call_count == 3

    @pytest.mark.asyncio
    async def test_rate_limited_tick_keeps_polling(self):
        source = ScriptedStatusSource(
            [running("forking"), RateLimited(RateLimitInfo(message="slow down")), completed()]
        )
        poller = StatusPoller(source, interval=FAST, success_grace=0)
        outcome = await poller.track("req-1")
        assert isinstance(outcome, Success)
        assert source.call_count == 3


class TestCancellation:
    @pytest.mark.asyncio
    async def test_stop_discards_in_flight_response(self):
        source = ScriptedStatusSource([running("forking")], latency=0.1)
        seen = []
        poller = StatusPoller(source, interval=FAST)
        poller.add_snapshot_hook(lambda snapshot, states: seen.append(snapshot))

        poller.start("req-1")
        await asyncio.sleep(0.02)
        poller.stop()
        await asyncio.sleep(0.2)

        assert seen == []
        assert poller.snapshot is None
        assert poller.state == PollerState.IDLE
        assert source.call_count == 1

    @pytest.mark.asyncio
    async def test_no_queries_after_stop(self):
        source = ScriptedStatusSource([running("analyzing")])
        poller = StatusPoller(source, interval=FAST)
        poller.start("req-1")
        await asyncio.sleep(FAST * 3)
        poller.stop()
        count = source.call_count
        await asyncio.sleep(FAST * 5)
        assert source.call_count == count

    @pytest.mark.asyncio
    async def test_wait_returns_none_when_stopped(self):
        poller = StatusPoller(ScriptedStatusSource([running("analyzing")]), interval=FAST)
        poller.start("req-1")

        async def stop_soon():
            await asyncio.sleep(FAST * 2)
            poller.stop()

        stopper = asyncio.ensure_future(stop_soon())
        assert await poller.wait() is None
        await stopper

    @pytest.mark.asyncio
    async def test_context_manager_stops_on_exit(self):
        source = ScriptedStatusSource([running("analyzing")])
        async with StatusPoller(source, interval=FAST) as poller:
            poller.start("req-1")
            await asyncio.sleep(FAST)
        count = source.call_count
        await asyncio.sleep(FAST * 4)
        assert poller.state == PollerState.IDLE
        assert source.call_count == count

    @pytest.mark.asyncio
    async def test_start_again_restarts_from_scratch(self):
        source = ScriptedStatusSource([running("analyzing")], latency=0.05)
        poller = StatusPoller(source, interval=FAST)
        poller.start("req-1")
        await asyncio.sleep(0.01)
        poller.start("req-2")
        await asyncio.sleep(0.03)
        poller.stop()
        assert source.max_in_flight <= 2
        assert poller.job_id == "req-2"
        assert poller.snapshot is None or poller.snapshot.job_id == "req-2"


class TestHooks:
    @pytest.mark.asyncio
    async def test_hook_error_does_not_break_polling(self):
        def bad_hook(snapshot, states):
            raise RuntimeError("hook exploded")

        def bad_outcome_hook(outcome):
            raise RuntimeError("also exploded")

        poller = StatusPoller(
            ScriptedStatusSource([running("forking"), completed()]),
            interval=FAST,
            success_grace=0,
            snapshot_hooks=[bad_hook],
            outcome_hooks=[bad_outcome_hook],
        )
        outcome = await poller.track("req-1")
        assert isinstance(outcome, Success)

    @pytest.mark.asyncio
    async def test_outcome_hook_fires_once(self):
        fired = []
        poller = StatusPoller(
            ScriptedStatusSource([running("pending"), running("forking"), completed()]),
            interval=FAST,
            success_grace=0,
        )
        poller.add_outcome_hook(fired.append)
        await poller.track("req-1")
        assert len(fired) == 1
        assert not isinstance(fired[0], InProgress)


class TestCorrelation:
    @pytest.mark.asyncio
    async def test_rejection_without_repository_field_uses_tracked_repository(self):
        source = ScriptedStatusSource([{"status": "rejected", "errorDetails": "too vague"}])
        poller = StatusPoller(source, interval=FAST)

        outcome = await poller.track("req-1", REPO)

        assert isinstance(outcome, Rejected)
        assert outcome.repository == REPO
        assert poller.outcome.repository == REPO
        assert f"Repository: {REPO}" in render_outcome(outcome)

    @pytest.mark.asyncio
    async def test_snapshot_repository_wins_when_present(self):
        source = ScriptedStatusSource([{"status": "error", "repository": "https://github.com/org/fork"}])
        poller = StatusPoller(source, interval=FAST)
        outcome = await poller.track("req-1", REPO)
        assert outcome.repository == "https://github.com/org/fork"

    @pytest.mark.asyncio
    async def test_restart_other_job_drops_previous_repository(self):
        poller = StatusPoller(ScriptedStatusSource([running("analyzing")]), interval=FAST)
        poller.start("req-1", "https://github.com/org/old")
        poller.restart("req-2")
        assert poller.job_id == "req-2"
        assert poller.repository is None

        poller.restart("req-3", "https://github.com/org/new")
        assert poller.repository == "https://github.com/org/new"
        poller.stop()

    @pytest.mark.asyncio
    async def test_restart_same_job_keeps_repository(self):
        poller = StatusPoller(ScriptedStatusSource([running("analyzing")]), interval=FAST)
        poller.start("req-1", REPO)
        poller.restart()
        assert poller.repository == REPO
        poller.restart("req-1")
        assert poller.repository == REPO
        poller.stop()


class TestStopFromHook:
    @pytest.mark.asyncio
    async def test_stop_in_snapshot_hook_suppresses_terminal_outcome(self):
        fired = []
        poller = StatusPoller(ScriptedStatusSource([{"status": "error", "message": "boom"}]), interval=FAST)
        poller.add_snapshot_hook(lambda snapshot, states: poller.stop())
        poller.add_outcome_hook(fired.append)

        poller.start("req-1", REPO)
        await asyncio.sleep(FAST * 3)

        assert fired == []
        assert poller.state == PollerState.IDLE

    @pytest.mark.asyncio
    async def test_stop_in_snapshot_hook_halts_polling(self):
        source = ScriptedStatusSource([running("forking")])
        poller = StatusPoller(source, interval=FAST)
        poller.add_snapshot_hook(lambda snapshot, states: poller.stop())

        poller.start("req-1")
        await asyncio.sleep(FAST * 4)

        assert source.call_count == 1
        assert poller.state == PollerState.IDLE


class TestTaskFailures:
    @pytest.mark.asyncio
    async def test_unexpected_query_error_is_logged(self, caplog):
        async def query(job_id):
            raise ValueError("bad payload")

        poller = StatusPoller(query, interval=FAST)
        with caplog.at_level(logging.ERROR, logger="prtracker.poller"):
            poller.start("req-1")
            await asyncio.sleep(FAST * 2)

        assert "[prtracker] req-1: polling task failed" in caplog.text
        assert "bad payload" in caplog.text
        assert poller.state == PollerState.IDLE
