"""
Command line front end: submit a job and follow it to a pull request.

Requires the `cli` extra: pip install prtracker[cli]

Commands:
- prtracker stages - List the known pipeline stages
- prtracker submit - Submit a job and track it to completion
- prtracker track  - Track a job submitted earlier
"""

import asyncio
import logging
from typing import Optional

try:
    import typer
except ImportError:
    raise ImportError("typer is required for the prtracker CLI. Install it with: pip install prtracker[cli]")

from prtracker.client import JobClient, SubmissionRequest
from prtracker.errors import ConfigurationError, RateLimited, TransportError, ValidationError
from prtracker.outcomes import Success, OutcomeBase
from prtracker.poller import DEFAULT_INTERVAL, StatusPoller
from prtracker.render import polling_notice, render_outcome, render_rate_limit, render_stages
from prtracker.snapshots import StatusSnapshot
from prtracker.stages import DEFAULT_REGISTRY, StageState

EXIT_FAILED = 1
EXIT_USAGE = 2

app = typer.Typer(
    name="prtracker",
    help="Submit AI pull request jobs and track them to completion",
    no_args_is_help=True,
)


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )


async def _follow(client: JobClient, job_id: str, repository: Optional[str], interval: float) -> Optional[OutcomeBase]:
    last_status: list[Optional[str]] = [None]

    def on_snapshot(snapshot: StatusSnapshot, stage_states: dict[str, StageState]) -> None:
        if snapshot.raw_status == last_status[0]:
            return
        last_status[0] = snapshot.raw_status
        if snapshot.raw_status in DEFAULT_REGISTRY:
            typer.echo(render_stages(DEFAULT_REGISTRY, stage_states))
            typer.echo("")

    async with StatusPoller(client, interval=interval) as poller:
        poller.add_snapshot_hook(on_snapshot)
        typer.echo(polling_notice(interval))
        return await poller.track(job_id, repository)


def _report(outcome: Optional[OutcomeBase]) -> None:
    if outcome is None:
        typer.echo("Tracking stopped before the job finished.", err=True)
        raise typer.Exit(code=EXIT_FAILED)
    typer.echo(render_outcome(outcome))
    if not isinstance(outcome, Success):
        raise typer.Exit(code=EXIT_FAILED)


@app.command("stages")
def stages_cmd() -> None:
    """List the pipeline stages in order."""
    for stage in DEFAULT_REGISTRY:
        typer.echo(f"{stage.order}. {stage.id:<12} {stage.label}")


@app.command("submit")
def submit_cmd(
    repo: str = typer.Option(..., "--repo", "-r", help="GitHub repository URL"),
    prompt: str = typer.Option(..., "--prompt", "-p", help="Modification prompt"),
    username: Optional[str] = typer.Option(None, "--username", "-u", help="GitHub username to add to the fork"),
    endpoint: Optional[str] = typer.Option(None, "--endpoint", help="Submission endpoint URL"),
    track: bool = typer.Option(True, "--track/--no-track", help="Follow the job until it finishes"),
    interval: float = typer.Option(DEFAULT_INTERVAL, "--interval", help="Seconds between status polls"),
) -> None:
    """Submit a job, then track it to completion."""
    request = SubmissionRequest(repository_url=repo, modification_prompt=prompt, github_username=username)

    async def run() -> Optional[OutcomeBase]:
        async with JobClient(api_endpoint=endpoint) as client:
            receipt = await client.submit(request)
            typer.echo(receipt.message)
            typer.echo(f"Request ID: {receipt.job_id}")
            if not track:
                return None
            return await _follow(client, receipt.job_id, receipt.repository, interval)

    try:
        outcome = asyncio.run(run())
    except (ValidationError, ConfigurationError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=EXIT_USAGE)
    except RateLimited as e:
        typer.echo(render_rate_limit(e.info, e.repository), err=True)
        raise typer.Exit(code=EXIT_USAGE)
    except TransportError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=EXIT_FAILED)

    if track:
        _report(outcome)


@app.command("track")
def track_cmd(
    job_id: str = typer.Argument(..., help="Request id returned by the submission"),
    repository: Optional[str] = typer.Option(None, "--repository", help="Repository URL, for display"),
    endpoint: Optional[str] = typer.Option(None, "--endpoint", help="Submission endpoint URL"),
    interval: float = typer.Option(DEFAULT_INTERVAL, "--interval", help="Seconds between status polls"),
) -> None:
    """Track a previously submitted job."""

    async def run() -> Optional[OutcomeBase]:
        async with JobClient(api_endpoint=endpoint) as client:
            return await _follow(client, job_id, repository, interval)

    try:
        outcome = asyncio.run(run())
    except ConfigurationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=EXIT_USAGE)

    _report(outcome)


if __name__ == "__main__":
    app()
