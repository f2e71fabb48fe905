"""Request dispatcher: one inbound question in, one relayed answer out.

Sits between the chat surface (slack_bot.py) and the assistant
(assistant_client.py). Everything platform-specific is hidden behind the
Replier protocol, so the same flow serves text commands, mentions, and
slash commands.

All failures end here -- ``ask`` never raises. Each one is logged and
turned into a single apologetic chat message. The requester's thread
mapping is left alone so a retry keeps the conversation context.
"""

from __future__ import annotations

import contextlib
import logging
from typing import Any, Protocol, runtime_checkable

from relaybot.assistant_client import AssistantClient
from relaybot.errors import PlatformSendFailure, RelayError
from relaybot.formatting import (
    DEFAULT_CHUNK_SIZE,
    RESET_DONE_TEXT,
    RESET_NOOP_TEXT,
    THINKING_TEXT,
    failure_notice,
    format_help,
    split_message,
)
from relaybot.thread_registry import ThreadRegistry

logger = logging.getLogger(__name__)


@runtime_checkable
class Replier(Protocol):
    """Outbound chat operations for one inbound request.

    Implementations raise PlatformSendFailure when the platform rejects
    a call.
    """

    def send_typing(self) -> None: ...

    def send_reply(self, text: str) -> Any: ...

    def send_follow_up(self, text: str) -> Any: ...

    def edit_reply(self, handle: Any, text: str) -> None: ...

    def delete_message(self, handle: Any) -> None: ...


class RequestDispatcher:
    """Relays questions to the assistant and answers back to the chat.

    Args:
        registry: Requester -> thread mapping.
        assistant: Assistant API client.
        chunk_size: Maximum characters per outbound message.
        command_prefix: Prefix shown in help and usage text.
        slash_commands: Whether help mentions slash commands.
    """

    def __init__(
        self,
        registry: ThreadRegistry,
        assistant: AssistantClient,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        command_prefix: str = "!",
        slash_commands: bool = True,
    ) -> None:
        self.registry = registry
        self.assistant = assistant
        self.chunk_size = chunk_size
        self.command_prefix = command_prefix
        self.slash_commands = slash_commands

    # -- Commands -----------------------------------------------------------

    def ask(self, requester_id: str, question: str, replier: Replier) -> bool:
        """Answer a question in the requester's conversation thread.

        Returns True if an answer was relayed, False if the request ended
        in a failure notice.
        """
        status_handle = None
        status_sent = False
        try:
            with contextlib.suppress(PlatformSendFailure):
                replier.send_typing()
            status_handle = replier.send_reply(THINKING_TEXT)
            status_sent = True

            thread_id = self.registry.resolve(requester_id)
            logger.info(
                "Question from requester=%s on thread=%s (%d chars)",
                requester_id,
                thread_id,
                len(question),
            )
            answer = self.assistant.ask(thread_id, question)
            self._relay(answer, status_handle, replier)
            return True

        except RelayError as exc:
            logger.warning("Request failed for requester=%s: %s", requester_id, exc)
            self._notify_failure(exc, status_handle, status_sent, replier)
            return False
        except Exception as exc:
            logger.exception("Unexpected error for requester=%s", requester_id)
            self._notify_failure(exc, status_handle, status_sent, replier)
            return False

    def reset(self, requester_id: str, replier: Replier) -> bool:
        """Drop the requester's thread and confirm in chat."""
        removed = self.registry.reset(requester_id)
        try:
            replier.send_reply(RESET_DONE_TEXT if removed else RESET_NOOP_TEXT)
        except PlatformSendFailure:
            logger.exception("Could not confirm reset for requester=%s", requester_id)
        return removed

    def help(self, replier: Replier) -> None:
        """Send the command list."""
        try:
            replier.send_reply(format_help(self.command_prefix, self.slash_commands))
        except PlatformSendFailure:
            logger.exception("Could not send help text")

    # -- Helpers ------------------------------------------------------------

    def _relay(self, answer: str, status_handle: Any, replier: Replier) -> None:
        """Replace the status message with the answer, splitting if long."""
        chunks = split_message(answer, max_len=self.chunk_size)
        if len(chunks) == 1:
            replier.edit_reply(status_handle, chunks[0])
            return

        logger.debug("Relaying answer in %d chunks", len(chunks))
        replier.delete_message(status_handle)
        for chunk in chunks:
            replier.send_follow_up(chunk)

    def _notify_failure(
        self,
        exc: BaseException,
        status_handle: Any,
        status_sent: bool,
        replier: Replier,
    ) -> None:
        """Send one apology, editing the status message when possible."""
        notice = failure_notice(exc)
        try:
            if status_sent:
                replier.edit_reply(status_handle, notice)
            else:
                replier.send_reply(notice)
        except PlatformSendFailure:
            logger.exception("Could not deliver failure notice")
