"""Configuration loader for relaybot.

Credentials come from environment variables. Tuning knobs live in the
``bot:`` section of an optional YAML file (``relaybot.yaml`` in the
working directory, or the path in RELAYBOT_CONFIG), with a couple of env
overrides for quick deploy-time changes.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

IDENTITY_USER = "user"
IDENTITY_CHANNEL = "channel"
IDENTITY_SCOPES: frozenset[str] = frozenset({IDENTITY_USER, IDENTITY_CHANNEL})

DEFAULT_CONFIG_FILENAME = "relaybot.yaml"

_REQUIRED_ENV = ("SLACK_BOT_TOKEN", "SLACK_APP_TOKEN", "OPENAI_API_KEY", "ASSISTANT_ID")


@dataclass(frozen=True)
class BotConfig:
    """Configuration for the relaybot process.

    Attributes:
        slack_bot_token: Bot User OAuth Token (xoxb-...).
        slack_app_token: App-level token for Socket Mode (xapp-...).
        openai_api_key: OpenAI API key.
        assistant_id: OpenAI assistant that answers questions.
        identity_scope: Track conversations per ``user`` or per ``channel``.
        idle_timeout_s: Drop a requester's thread after this much silence.
        poll_interval_s: Fixed delay between run status checks.
        max_run_wait_s: Give up on a run after this long (0 = never).
        chunk_size: Maximum characters per outbound message.
        command_prefix: Prefix for text commands (``!ask``).
        slash_commands: Register /ask, /rules, /reset, /help.
    """

    slack_bot_token: str
    slack_app_token: str
    openai_api_key: str
    assistant_id: str
    identity_scope: str = IDENTITY_USER
    idle_timeout_s: float = 1800.0
    poll_interval_s: float = 0.5
    max_run_wait_s: float = 300.0
    chunk_size: int = 2000
    command_prefix: str = "!"
    slash_commands: bool = True

    def __post_init__(self) -> None:
        if self.identity_scope not in IDENTITY_SCOPES:
            raise ValueError(
                f"identity_scope must be one of {sorted(IDENTITY_SCOPES)}, "
                f"got {self.identity_scope!r}"
            )
        if self.idle_timeout_s <= 0:
            raise ValueError(
                f"idle_timeout_s must be positive, got {self.idle_timeout_s}"
            )
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")

    @classmethod
    def from_env(cls, config_path: Path | None = None) -> BotConfig:
        """Create config from environment variables and the YAML file.

        Required env vars: SLACK_BOT_TOKEN, SLACK_APP_TOKEN, OPENAI_API_KEY,
        ASSISTANT_ID. Optional: RELAYBOT_CONFIG, RELAYBOT_IDLE_TIMEOUT_S,
        RELAYBOT_IDENTITY_SCOPE (both override the YAML values).

        Raises:
            ValueError: If required variables are missing or a value is
                invalid.
        """
        missing = [name for name in _REQUIRED_ENV if not os.environ.get(name)]
        if missing:
            raise ValueError(
                f"Missing required environment variables: {', '.join(missing)}"
            )

        if config_path is None:
            config_path = Path(
                os.environ.get("RELAYBOT_CONFIG", "") or DEFAULT_CONFIG_FILENAME
            )
        settings = _build_settings(load_bot_section(config_path))

        idle_override = os.environ.get("RELAYBOT_IDLE_TIMEOUT_S", "")
        if idle_override:
            try:
                settings["idle_timeout_s"] = float(idle_override)
            except ValueError:
                raise ValueError(
                    f"RELAYBOT_IDLE_TIMEOUT_S must be a number, got {idle_override!r}"
                ) from None
        scope_override = os.environ.get("RELAYBOT_IDENTITY_SCOPE", "")
        if scope_override:
            settings["identity_scope"] = scope_override.strip().lower()

        return cls(
            slack_bot_token=os.environ["SLACK_BOT_TOKEN"],
            slack_app_token=os.environ["SLACK_APP_TOKEN"],
            openai_api_key=os.environ["OPENAI_API_KEY"],
            assistant_id=os.environ["ASSISTANT_ID"],
            **settings,
        )


def load_bot_section(config_path: Path) -> dict[str, Any]:
    """Load the ``bot:`` section from a YAML file, returning {} on failure."""
    try:
        if not config_path.exists():
            return {}
        raw = yaml.safe_load(config_path.read_text())
        if isinstance(raw, dict) and isinstance(raw.get("bot"), dict):
            return raw["bot"]
    except (OSError, yaml.YAMLError):
        logger.debug("Could not read bot config from %s", config_path, exc_info=True)
    return {}


_TRUE_WORDS = frozenset({"true", "yes", "on", "1"})
_FALSE_WORDS = frozenset({"false", "no", "off", "0"})


def _coerce(key: str, type_name: str, value: Any) -> Any:
    """Convert a YAML value to the BotConfig field type.

    Raises:
        ValueError: If the value cannot be read as that type.
    """
    if type_name == "bool":
        if isinstance(value, bool):
            return value
        word = str(value).strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    elif type_name in ("int", "float"):
        # bool is an int subclass; ``chunk_size: yes`` is a typo, not 1
        if not isinstance(value, (bool, list, dict)) and value is not None:
            try:
                return int(value) if type_name == "int" else float(value)
            except (TypeError, ValueError):
                pass
    elif type_name == "str":
        if isinstance(value, (str, int, float)) and not isinstance(value, bool):
            return str(value)
    raise ValueError(f"bot.{key} must be a {type_name}, got {value!r}")


def _build_settings(data: dict[str, Any]) -> dict[str, Any]:
    """Keep only tunable BotConfig fields, converted to their declared types.

    Credentials and unknown keys are ignored.

    Raises:
        ValueError: If a tunable value has the wrong type.
    """
    credentials = {
        "slack_bot_token",
        "slack_app_token",
        "openai_api_key",
        "assistant_id",
    }
    # Annotations are strings under ``from __future__ import annotations``
    tunable = {
        f.name: str(f.type) for f in fields(BotConfig) if f.name not in credentials
    }
    return {
        key: _coerce(key, tunable[key], value)
        for key, value in data.items()
        if key in tunable
    }
