"""Error taxonomy for relaybot.

Raised at the API wrapper seams (assistant_client, thread_registry,
slack_bot repliers) and caught only at the request-handling boundary in
dispatcher.py, where each kind becomes one apologetic chat message.
"""

from __future__ import annotations


class RelayError(Exception):
    """Base class for every failure a request can end in."""


class RemoteCreateFailure(RelayError):
    """The assistant API could not create a conversation thread."""


class RemoteSubmitFailure(RelayError):
    """Posting a message, starting a run, or reading results failed."""


class RunTerminalFailure(RelayError):
    """A run ended in a non-success terminal status."""

    def __init__(self, status: str, run_id: str = ""):
        super().__init__(f"Run {run_id or '?'} ended with status {status!r}")
        self.status = status
        self.run_id = run_id


class RunTimeout(RelayError):
    """A run stayed in a polled status longer than the configured limit."""

    def __init__(self, waited_s: float, status: str = ""):
        super().__init__(
            f"Run still {status or 'pending'} after {waited_s:.1f}s of polling"
        )
        self.waited_s = waited_s
        self.status = status


class EmptyResponse(RelayError):
    """A run completed but the thread holds no assistant message."""


class PlatformSendFailure(RelayError):
    """The chat platform rejected a send, edit, or delete call."""

    def __init__(self, message: str, error_code: str | None = None):
        super().__init__(message)
        self.error_code = error_code
