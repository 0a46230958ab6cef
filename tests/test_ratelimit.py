"""Tests for rate-limit interpretation."""

from datetime import datetime, timezone

import pytest

from prtracker.ratelimit import DEFAULT_MESSAGE, format_reset_relative, interpret

NOW = 1_700_000_000


class TestFormatResetRelative:
    @pytest.mark.parametrize(
        "offset,expected",
        [
            (5400, "in 1h 30m"),
            (3600, "in 1h 0m"),
            (7199, "in 1h 59m"),
            (600, "in 10m"),
            (59, "in 0m"),
            (0, "now"),
            (-30, "now"),
        ],
    )
    def test_rendering(self, offset, expected):
        assert format_reset_relative(NOW + offset, now=NOW) == expected

    def test_fractional_now_does_not_lose_a_minute(self):
        assert format_reset_relative(NOW + 5400, now=NOW + 0.9) == "in 1h 30m"


class TestInterpret:
    def test_not_rate_limited(self):
        assert interpret(200, {"requestId": "x"}) is None
        assert interpret(500, {"error": "boom"}) is None

    def test_structured_payload(self):
        body = {"rateLimit": {"limit": 10, "used": 10, "resetAt": NOW + 5400}}
        info = interpret(429, body, now=NOW)
        assert info.limit == 10
        assert info.used == 10
        assert info.reset_at == NOW + 5400
        assert info.reset_time == datetime.fromtimestamp(NOW + 5400, tz=timezone.utc)
        assert info.reset_time_relative == "in 1h 30m"
        assert "in 1h 30m" in info.message
        assert "10/10" in info.message

    def test_structured_payload_in_the_past(self):
        body = {"rateLimit": {"limit": 10, "used": 10, "resetAt": NOW - 1}}
        info = interpret(429, body, now=NOW)
        assert info.reset_time_relative == "now"

    def test_structured_payload_prefers_server_error_text(self):
        body = {"error": "Daily quota used", "rateLimit": {"limit": 5, "used": 5, "resetAt": NOW + 120}}
        info = interpret(429, body, now=NOW)
        assert info.message == "Daily quota used"
        assert info.reset_time_relative == "in 2m"

    def test_legacy_error_string(self):
        info = interpret(429, {"error": "Too many requests, slow down"}, now=NOW)
        assert info.message == "Too many requests, slow down"
        assert info.reset_time is None
        assert info.reset_time_relative is None
        assert info.limit is None

    def test_empty_body(self):
        info = interpret(429, None, now=NOW)
        assert info.message == DEFAULT_MESSAGE
        assert info.reset_time is None

    def test_malformed_reset(self):
        info = interpret(429, {"rateLimit": {"limit": 10, "used": 10, "resetAt": "soon"}}, now=NOW)
        assert info.message == DEFAULT_MESSAGE
        assert info.reset_time_relative is None
