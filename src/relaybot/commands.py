"""In-chat command parsing for relaybot.

Text commands share one prefix (``!`` by default):

    !ask <question>     ask the assistant
    !rules <question>   alias of !ask
    !reset              forget this conversation's thread
    !help               list commands

Slash commands (/ask, /rules, /reset, /help) map onto the same names;
slack_bot.py registers each surface once.
"""

from __future__ import annotations

import re
from typing import NamedTuple

CMD_ASK = "ask"
CMD_RESET = "reset"
CMD_HELP = "help"

# Command aliases -> canonical command
COMMAND_ALIASES: dict[str, str] = {
    "ask": CMD_ASK,
    "rules": CMD_ASK,
    "reset": CMD_RESET,
    "help": CMD_HELP,
}

SLASH_COMMANDS: tuple[str, ...] = tuple(f"/{name}" for name in COMMAND_ALIASES)


class Command(NamedTuple):
    """A parsed chat command."""

    name: str  # canonical name: ask | reset | help
    args: str
    alias: str  # the word the user typed, lowercased


def _command_re(prefix: str) -> re.Pattern[str]:
    names = "|".join(re.escape(n) for n in sorted(COMMAND_ALIASES))
    return re.compile(
        r"^\s*" + re.escape(prefix) + r"(" + names + r")(?:\s+(.*))?\s*$",
        re.IGNORECASE | re.DOTALL,
    )


def parse_command(text: str, prefix: str = "!") -> Command | None:
    """Parse a prefixed text command.

    Returns None when the text is not one of the known commands, so
    ordinary chatter and unknown ``!words`` are ignored.

    >>> parse_command("!ask What is rule 3?")
    Command(name='ask', args='What is rule 3?', alias='ask')
    """
    if not text or not prefix:
        return None
    m = _command_re(prefix).match(text)
    if not m:
        return None
    alias = m.group(1).lower()
    return Command(COMMAND_ALIASES[alias], (m.group(2) or "").strip(), alias)


def parse_slash_command(command: str, text: str) -> Command | None:
    """Map a Slack slash command payload onto a Command."""
    alias = command.lstrip("/").strip().lower()
    name = COMMAND_ALIASES.get(alias)
    if name is None:
        return None
    return Command(name, (text or "").strip(), alias)
