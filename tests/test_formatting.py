"""Tests for relaybot.formatting."""

from __future__ import annotations

import math

import pytest

from relaybot.errors import (
    EmptyResponse,
    PlatformSendFailure,
    RemoteCreateFailure,
    RemoteSubmitFailure,
    RunTerminalFailure,
    RunTimeout,
)
from relaybot.formatting import (
    DEFAULT_CHUNK_SIZE,
    failure_notice,
    format_help,
    format_usage,
    split_message,
)

# ---------------------------------------------------------------------------
# split_message
# ---------------------------------------------------------------------------


class TestSplitMessage:
    @pytest.mark.parametrize("length", [1, 1999, 2000, 2001, 4000, 4001, 10_500])
    def test_chunking_law(self, length: int) -> None:
        text = "".join(chr(ord("a") + i % 26) for i in range(length))
        chunks = split_message(text)
        assert len(chunks) == math.ceil(length / DEFAULT_CHUNK_SIZE)
        assert all(len(c) <= DEFAULT_CHUNK_SIZE for c in chunks)
        assert "".join(chunks) == text

    def test_short_message(self) -> None:
        assert split_message("hello", max_len=100) == ["hello"]

    def test_does_not_strip_or_split_on_newlines(self) -> None:
        text = "a" * 5 + "\n" + "b" * 5
        assert split_message(text, max_len=4) == ["aaaa", "a\nbb", "bbb"]

    def test_preserves_whitespace(self) -> None:
        text = "  leading and trailing  "
        assert "".join(split_message(text, max_len=5)) == text

    def test_empty_message(self) -> None:
        assert split_message("") == []

    def test_rejects_zero_width(self) -> None:
        with pytest.raises(ValueError):
            split_message("abc", max_len=0)


# ---------------------------------------------------------------------------
# Help and usage text
# ---------------------------------------------------------------------------


class TestHelp:
    def test_lists_all_commands(self) -> None:
        text = format_help()
        for cmd in ("!ask", "!rules", "!reset", "!help"):
            assert cmd in text
        assert "/ask" in text

    def test_custom_prefix(self) -> None:
        assert "?ask" in format_help(prefix="?")

    def test_without_slash_commands(self) -> None:
        assert "/ask" not in format_help(slash_commands=False)

    def test_usage(self) -> None:
        assert format_usage("rules", "!") == (
            "Please include a question, e.g. `!rules What is rule 3?`"
        )


# ---------------------------------------------------------------------------
# failure_notice
# ---------------------------------------------------------------------------


class TestFailureNotice:
    def test_run_failure_includes_status(self) -> None:
        notice = failure_notice(RunTerminalFailure("failed", run_id="run_secret"))
        assert "failed" in notice
        assert "run_secret" not in notice
        assert notice.startswith("Sorry")

    @pytest.mark.parametrize(
        "exc",
        [
            RunTimeout(301.0, status="in_progress"),
            EmptyResponse("No assistant message in thread thread_secret"),
            RemoteCreateFailure("threads.create -> thread_secret"),
            RemoteSubmitFailure("messages.create on thread_secret -> 500"),
            PlatformSendFailure("chat.update -> Slack error: msg_too_long"),
            RuntimeError("thread_secret"),
        ],
    )
    def test_never_leaks_internals(self, exc: Exception) -> None:
        notice = failure_notice(exc)
        assert notice.startswith("Sorry")
        assert "thread_secret" not in notice
        assert "Traceback" not in notice

    def test_each_kind_has_its_own_text(self) -> None:
        notices = {
            failure_notice(RunTimeout(1.0)),
            failure_notice(EmptyResponse("x")),
            failure_notice(RemoteCreateFailure("x")),
            failure_notice(RemoteSubmitFailure("x")),
            failure_notice(RuntimeError("x")),
        }
        assert len(notices) == 5
