"""Tests for relaybot.commands."""

from __future__ import annotations

import pytest

from relaybot.commands import (
    CMD_ASK,
    CMD_HELP,
    CMD_RESET,
    SLASH_COMMANDS,
    Command,
    parse_command,
    parse_slash_command,
)


class TestParseCommand:
    def test_ask(self):
        assert parse_command("!ask What is rule 3?") == Command(
            CMD_ASK, "What is rule 3?", "ask"
        )

    def test_rules_is_ask_alias(self):
        cmd = parse_command("!rules can I castle twice?")
        assert cmd.name == CMD_ASK
        assert cmd.alias == "rules"
        assert cmd.args == "can I castle twice?"

    def test_reset(self):
        assert parse_command("!reset") == Command(CMD_RESET, "", "reset")

    def test_help(self):
        assert parse_command("!help").name == CMD_HELP

    def test_case_insensitive(self):
        cmd = parse_command("!ASK hello")
        assert cmd.name == CMD_ASK
        assert cmd.alias == "ask"

    def test_strips_whitespace(self):
        assert parse_command("   !ask    spaced out   ").args == "spaced out"

    def test_bare_ask_has_empty_args(self):
        assert parse_command("!ask") == Command(CMD_ASK, "", "ask")

    def test_multiline_question(self):
        cmd = parse_command("!ask line one\nline two")
        assert cmd.args == "line one\nline two"

    @pytest.mark.parametrize(
        "text",
        [
            "",
            "ask what?",
            "hello !ask what?",
            "!asking for a friend",
            "!unknown thing",
            "!",
        ],
    )
    def test_not_a_command(self, text):
        assert parse_command(text) is None

    def test_custom_prefix(self):
        assert parse_command("?ask hi", prefix="?").args == "hi"
        assert parse_command("!ask hi", prefix="?") is None

    def test_regex_prefix_is_escaped(self):
        assert parse_command("xask hi", prefix=".") is None
        assert parse_command(".ask hi", prefix=".").args == "hi"

    def test_empty_prefix_disables(self):
        assert parse_command("ask hi", prefix="") is None


class TestParseSlashCommand:
    def test_ask(self):
        assert parse_slash_command("/ask", " rule 3? ") == Command(
            CMD_ASK, "rule 3?", "ask"
        )

    def test_rules(self):
        assert parse_slash_command("/rules", "x").name == CMD_ASK

    def test_reset_ignores_text(self):
        assert parse_slash_command("/reset", "").name == CMD_RESET

    def test_none_text(self):
        assert parse_slash_command("/help", None).args == ""

    def test_unknown(self):
        assert parse_slash_command("/deploy", "prod") is None

    def test_each_slash_command_registered_once(self):
        assert sorted(SLASH_COMMANDS) == ["/ask", "/help", "/reset", "/rules"]
        assert len(set(SLASH_COMMANDS)) == len(SLASH_COMMANDS)
