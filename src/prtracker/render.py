"""Plain-text rendering of stage progress and outcomes."""

from typing import Optional

from prtracker.outcomes import InProgress, JobError, Rejected, Success, TransportFailure, OutcomeBase
from prtracker.ratelimit import RateLimitInfo
from prtracker.stages import StageRegistry, StageState

STAGE_MARKERS: dict[StageState, str] = {
    StageState.COMPLETED: "[x]",
    StageState.CURRENT: "[>]",
    StageState.PENDING: "[ ]",
}


def correlation_lines(repository: Optional[str], job_id: Optional[str]) -> list[str]:
    """Repository and request id lines shown under every panel."""
    return [
        f"Repository: {repository or 'unknown'}",
        f"Request ID: {job_id or 'unknown'}",
    ]


def polling_notice(interval: float) -> str:
    return f"Polling for updates every {interval:g} seconds..."


def render_stages(registry: StageRegistry, stage_states: dict[str, StageState]) -> str:
    lines = []
    for stage in registry:
        state = stage_states.get(stage.id, StageState.PENDING)
        lines.append(f"{STAGE_MARKERS[state]} {stage.label}")
    return "\n".join(lines)


def render_outcome(outcome: OutcomeBase) -> str:
    """Render a terminal (or in-progress) outcome as a text panel."""
    if isinstance(outcome, Success):
        lines = [
            "Pull Request Created Successfully!",
            "Your pull request has been created and is ready for review.",
            f"View Pull Request: {outcome.artifact_url}",
        ]
    elif isinstance(outcome, Rejected):
        lines = ["Prompt Needs Improvement", "Your modification request is too vague or unclear."]
        if outcome.diagnostic:
            lines.append(outcome.diagnostic)
        lines.append("")
        lines.append("Tips for writing clear prompts:")
        lines.extend(f"  - {tip}" for tip in outcome.tips)
        lines.append("Example good prompts:")
        lines.extend(f'  * "{example}"' for example in outcome.example_prompts)
    elif isinstance(outcome, JobError):
        lines = ["Processing Failed"]
        if outcome.message:
            lines.append(outcome.message)
        if outcome.diagnostic:
            lines.append(outcome.diagnostic)
    elif isinstance(outcome, TransportFailure):
        lines = ["Error Fetching Status", outcome.message]
    elif isinstance(outcome, InProgress):
        lines = ["Processing Your Request"]
    else:
        raise TypeError(f"Unknown outcome type: {type(outcome).__name__}")

    lines.append("")
    lines.extend(correlation_lines(outcome.repository, outcome.job_id))
    return "\n".join(lines)


def render_rate_limit(info: RateLimitInfo, repository: Optional[str] = None) -> str:
    lines = ["Rate Limit Reached", info.message]
    if info.reset_time is not None:
        lines.append(f"Resets at {info.reset_time.strftime('%Y-%m-%d %H:%M:%S UTC')} ({info.reset_time_relative})")
    if repository:
        lines.append(f"Repository: {repository}")
    return "\n".join(lines)
