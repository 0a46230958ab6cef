"""
Interpretation of rate-limited (HTTP 429) submission responses.

The server is the only enforcer; this module only turns its reply into
something a user can act on. It never talks to the network.
"""

import time
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

HTTP_TOO_MANY_REQUESTS = 429

DEFAULT_MESSAGE = "Rate limit exceeded. Please try again later."


class RateLimitInfo(BaseModel):
    """Display-only view of a 429 response."""

    model_config = ConfigDict(frozen=True)

    message: str = Field(default=DEFAULT_MESSAGE, description="Message to show the user")
    limit: Optional[int] = Field(default=None, description="Requests allowed in the window")
    used: Optional[int] = Field(default=None, description="Requests used in the window")
    reset_at: Optional[int] = Field(default=None, description="Window reset (epoch seconds)")
    reset_time: Optional[datetime] = Field(default=None, description="Window reset as UTC datetime")
    reset_time_relative: Optional[str] = Field(default=None, description='e.g. "in 1h 30m" or "now"')


def format_reset_relative(reset_at: int, now: Optional[float] = None) -> str:
    """
    Render the time until ``reset_at`` as a coarse human string.

    "now" once the reset is not in the future, otherwise "in {H}h {M}m"
    with the hours term dropped when zero. Remaining time is floored to
    whole minutes.
    """
    if now is None:
        now = time.time()
    remaining = reset_at - int(now)
    if remaining <= 0:
        return "now"
    minutes_total = remaining // 60
    hours, minutes = divmod(minutes_total, 60)
    if hours:
        return f"in {hours}h {minutes}m"
    return f"in {minutes}m"


def interpret(status_code: int, body: Any, now: Optional[float] = None) -> Optional[RateLimitInfo]:
    """
    Parse a submission response into RateLimitInfo.

    Returns None unless ``status_code`` is 429. A structured
    ``rateLimit: {limit, used, resetAt}`` payload yields reset timing; a
    bare ``error`` string is passed through verbatim with no timing.
    """
    if status_code != HTTP_TOO_MANY_REQUESTS:
        return None

    if not isinstance(body, dict):
        body = {}

    error_text = body.get("error")
    if not isinstance(error_text, str) or not error_text:
        error_text = None

    structured = body.get("rateLimit")
    if isinstance(structured, dict) and structured.get("resetAt") is not None:
        try:
            reset_at = int(structured["resetAt"])
            limit = int(structured["limit"]) if structured.get("limit") is not None else None
            used = int(structured["used"]) if structured.get("used") is not None else None
        except (TypeError, ValueError):
            return RateLimitInfo(message=error_text or DEFAULT_MESSAGE)

        relative = format_reset_relative(reset_at, now)
        if error_text:
            message = error_text
        elif relative == "now":
            message = "Rate limit exceeded. You can try again now."
        else:
            message = f"Rate limit exceeded. Try again {relative}."
        if limit is not None and used is not None and not error_text:
            message = f"{message} ({used}/{limit} requests used)"

        return RateLimitInfo(
            message=message,
            limit=limit,
            used=used,
            reset_at=reset_at,
            reset_time=datetime.fromtimestamp(reset_at, tz=timezone.utc),
            reset_time_relative=relative,
        )

    return RateLimitInfo(message=error_text or DEFAULT_MESSAGE)
