"""OpenAI Assistants API client for relaybot.

Thin wrapper over ``client.beta.threads`` that creates conversation
threads, posts user messages, starts runs, polls them to a terminal
status, and extracts the newest assistant reply.

Follows the same pattern as the other API clients: @dataclass with a
from_env() factory, and every SDK error re-raised as one of the typed
errors in relaybot.errors.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any

from relaybot.errors import (
    EmptyResponse,
    RemoteCreateFailure,
    RemoteSubmitFailure,
    RunTerminalFailure,
    RunTimeout,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Run statuses
# ---------------------------------------------------------------------------

STATUS_COMPLETED = "completed"

# Statuses that mean the run is still working and should be polled again
POLLED_STATUSES: frozenset[str] = frozenset({"queued", "in_progress", "cancelling"})

# Everything else that is not "completed" ends the request as a failure
FAILED_STATUSES: frozenset[str] = frozenset(
    {"failed", "cancelled", "expired", "incomplete", "requires_action"}
)

# Non-polled statuses that leave the run active and the thread locked
OPEN_STATUSES: frozenset[str] = frozenset({"requires_action"})


@dataclass
class AssistantMessage:
    """A single message in an assistant thread."""

    id: str
    role: str
    text: str


@dataclass
class AssistantClient:
    """Client for a hosted OpenAI assistant.

    Args:
        api_key: OpenAI API key.
        assistant_id: Identifier of the assistant that answers questions.
        poll_interval_s: Fixed delay between run status checks.
        max_wait_s: Give up polling after this many seconds (0 = never).
        client: Optional pre-built ``openai.OpenAI`` (for testing).
    """

    api_key: str
    assistant_id: str
    poll_interval_s: float = 0.5
    max_wait_s: float = 300.0
    client: Any = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.client is None:
            from openai import OpenAI

            self.client = OpenAI(api_key=self.api_key)

    @classmethod
    def from_env(cls) -> AssistantClient:
        """Create client from environment variables.

        Reads OPENAI_API_KEY and ASSISTANT_ID.

        Raises:
            ValueError: If either variable is not set.
        """
        api_key = os.environ.get("OPENAI_API_KEY", "")
        assistant_id = os.environ.get("ASSISTANT_ID", "")
        missing = [
            name
            for name, value in (
                ("OPENAI_API_KEY", api_key),
                ("ASSISTANT_ID", assistant_id),
            )
            if not value
        ]
        if missing:
            raise ValueError(
                f"Missing required environment variables: {', '.join(missing)}"
            )
        return cls(api_key=api_key, assistant_id=assistant_id)

    # -- Threads and messages -----------------------------------------------

    def create_thread(self) -> str:
        """Create an empty conversation thread and return its id.

        Raises:
            RemoteCreateFailure: On any API error.
        """
        try:
            thread = self.client.beta.threads.create()
        except Exception as exc:
            raise RemoteCreateFailure(f"threads.create -> {exc}") from exc
        logger.debug("Created thread %s", thread.id)
        return thread.id

    def post_message(self, thread_id: str, text: str, role: str = "user") -> None:
        """Append a message to a thread.

        Raises:
            RemoteSubmitFailure: On any API error.
        """
        try:
            self.client.beta.threads.messages.create(
                thread_id, role=role, content=text
            )
        except Exception as exc:
            raise RemoteSubmitFailure(
                f"messages.create on {thread_id} -> {exc}"
            ) from exc

    def list_messages(self, thread_id: str, limit: int = 20) -> list[AssistantMessage]:
        """Fetch the most recent messages in a thread, newest first.

        Only text content parts are kept; a message's parts are joined
        with no separator.

        Raises:
            RemoteSubmitFailure: On any API error.
        """
        try:
            page = self.client.beta.threads.messages.list(
                thread_id, order="desc", limit=limit
            )
        except Exception as exc:
            raise RemoteSubmitFailure(
                f"messages.list on {thread_id} -> {exc}"
            ) from exc

        messages = []
        for msg in page.data:
            parts = []
            for part in msg.content:
                if getattr(part, "type", "") == "text":
                    parts.append(part.text.value)
            messages.append(
                AssistantMessage(id=msg.id, role=msg.role, text="".join(parts))
            )
        return messages

    def latest_reply(self, thread_id: str) -> str:
        """Return the text of the newest assistant-authored message.

        Raises:
            EmptyResponse: If the thread holds no assistant message, or the
                newest one has no text content.
            RemoteSubmitFailure: On any API error.
        """
        for msg in self.list_messages(thread_id):
            if msg.role != "assistant":
                continue
            if not msg.text:
                raise EmptyResponse(f"Assistant message {msg.id} has no text")
            return msg.text
        raise EmptyResponse(f"No assistant message in thread {thread_id}")

    # -- Runs ---------------------------------------------------------------

    def start_run(self, thread_id: str) -> str:
        """Start the configured assistant on a thread and return the run id.

        Raises:
            RemoteSubmitFailure: On any API error.
        """
        try:
            run = self.client.beta.threads.runs.create(
                thread_id, assistant_id=self.assistant_id
            )
        except Exception as exc:
            raise RemoteSubmitFailure(f"runs.create on {thread_id} -> {exc}") from exc
        logger.debug("Started run %s on thread %s", run.id, thread_id)
        return run.id

    def get_run_status(self, thread_id: str, run_id: str) -> str:
        """Return the current status string of a run.

        Raises:
            RemoteSubmitFailure: On any API error.
        """
        try:
            run = self.client.beta.threads.runs.retrieve(run_id, thread_id=thread_id)
        except Exception as exc:
            raise RemoteSubmitFailure(f"runs.retrieve {run_id} -> {exc}") from exc
        return run.status

    def wait_for_run(self, thread_id: str, run_id: str) -> str:
        """Poll a run at a fixed interval until it leaves the polled states.

        A run abandoned on timeout or ``requires_action`` is cancelled so
        the thread accepts the next message.

        Returns:
            The terminal status (always ``"completed"``).

        Raises:
            RunTerminalFailure: If the run ends in any other status.
            RunTimeout: If ``max_wait_s`` elapses first.
            RemoteSubmitFailure: On any API error while polling.
        """
        started = time.monotonic()
        polls = 0
        while True:
            status = self.get_run_status(thread_id, run_id)
            polls += 1
            if status == STATUS_COMPLETED:
                logger.debug("Run %s completed after %d polls", run_id, polls)
                return status
            if status not in POLLED_STATUSES:
                logger.warning("Run %s ended with status=%s", run_id, status)
                if status in OPEN_STATUSES:
                    self.cancel_run(thread_id, run_id)
                raise RunTerminalFailure(status, run_id=run_id)

            waited = time.monotonic() - started
            if self.max_wait_s and waited >= self.max_wait_s:
                logger.warning(
                    "Run %s still %s after %.1fs, giving up", run_id, status, waited
                )
                self.cancel_run(thread_id, run_id)
                raise RunTimeout(waited, status=status)
            time.sleep(self.poll_interval_s)

    def cancel_run(self, thread_id: str, run_id: str) -> bool:
        """Cancel a run that would otherwise keep the thread locked.

        Best effort: errors are logged and False is returned.
        """
        try:
            self.client.beta.threads.runs.cancel(run_id, thread_id=thread_id)
        except Exception:
            logger.warning(
                "Could not cancel run %s on thread %s",
                run_id,
                thread_id,
                exc_info=True,
            )
            return False
        logger.info("Cancelled run %s on thread %s", run_id, thread_id)
        return True

    def ask(self, thread_id: str, question: str) -> str:
        """Post a question to a thread, run the assistant, return its reply."""
        self.post_message(thread_id, question)
        run_id = self.start_run(thread_id)
        self.wait_for_run(thread_id, run_id)
        return self.latest_reply(thread_id)
