"""relaybot: Slack bot that relays questions to a hosted OpenAI assistant."""

__version__ = "0.3.0"

from relaybot.errors import (
    EmptyResponse,
    PlatformSendFailure,
    RelayError,
    RemoteCreateFailure,
    RemoteSubmitFailure,
    RunTerminalFailure,
    RunTimeout,
)
from relaybot.thread_registry import ThreadRegistry

__all__ = [
    # errors
    "EmptyResponse",
    "PlatformSendFailure",
    "RelayError",
    "RemoteCreateFailure",
    "RemoteSubmitFailure",
    "RunTerminalFailure",
    "RunTimeout",
    # thread_registry
    "ThreadRegistry",
]
