"""User-facing text for relaybot replies.

Builds every string the bot sends that does not come from the
assistant: help, usage hints, status, reset confirmations, and failure
notices. Failure notices never include exception text, thread ids, or
run ids; those go to the logs.
"""

from __future__ import annotations

from relaybot.errors import (
    EmptyResponse,
    PlatformSendFailure,
    RemoteCreateFailure,
    RemoteSubmitFailure,
    RunTerminalFailure,
    RunTimeout,
)

# Maximum characters per outbound chat message
DEFAULT_CHUNK_SIZE = 2000

THINKING_TEXT = ":hourglass_flowing_sand: Thinking..."
RESET_DONE_TEXT = "Conversation reset. Your next question starts a new thread."
RESET_NOOP_TEXT = "There is no active conversation to reset."


def split_message(text: str, max_len: int = DEFAULT_CHUNK_SIZE) -> list[str]:
    """Split text into consecutive chunks of at most ``max_len`` characters.

    A plain fixed-width partition: ``"".join(chunks) == text`` and there
    are ``ceil(len(text) / max_len)`` chunks. Empty text yields no chunks.
    """
    if max_len <= 0:
        raise ValueError(f"max_len must be positive, got {max_len}")
    return [text[i : i + max_len] for i in range(0, len(text), max_len)]


def format_help(prefix: str = "!", slash_commands: bool = True) -> str:
    """Return the help text listing every command."""
    lines = [
        "*Commands*",
        f"`{prefix}ask <question>` - ask the assistant a question",
        f"`{prefix}rules <question>` - same as {prefix}ask",
        f"`{prefix}reset` - forget the current conversation and start fresh",
        f"`{prefix}help` - show this message",
    ]
    if slash_commands:
        lines.append(
            "Slash commands `/ask`, `/rules`, `/reset` and `/help` also work."
        )
    lines.append(
        "Conversations are remembered until you reset them or stay idle for a while."
    )
    return "\n".join(lines)


def format_usage(alias: str = "ask", prefix: str = "!") -> str:
    """Hint shown when a question command arrives with no question."""
    return f"Please include a question, e.g. `{prefix}{alias} What is rule 3?`"


def failure_notice(exc: BaseException) -> str:
    """Map a request failure onto one apologetic sentence."""
    if isinstance(exc, RunTerminalFailure):
        return (
            "Sorry, I couldn't process your request "
            f"(the assistant run ended as `{exc.status}`). Please try again."
        )
    if isinstance(exc, RunTimeout):
        return (
            "Sorry, the assistant is taking too long to answer. "
            "Please try again in a moment."
        )
    if isinstance(exc, EmptyResponse):
        return "Sorry, the assistant finished without writing an answer."
    if isinstance(exc, RemoteCreateFailure):
        return "Sorry, I couldn't start a conversation with the assistant."
    if isinstance(exc, RemoteSubmitFailure):
        return "Sorry, I couldn't reach the assistant. Please try again."
    if isinstance(exc, PlatformSendFailure):
        return "Sorry, I couldn't deliver the answer."
    return "Sorry, something went wrong."
