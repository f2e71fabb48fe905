"""Slack front end for relaybot.

Listens via Socket Mode for text commands (``!ask``, ``!rules``,
``!reset``, ``!help``), @mentions, and the matching slash commands, and
hands each request to the RequestDispatcher. Answers come from an OpenAI
assistant; each requester (user or channel, per config) keeps one
assistant thread until it goes idle or is reset.

Handlers never raise -- failures become a chat apology in dispatcher.py,
and anything that escapes a listener is logged by the global error
handler.
"""

from __future__ import annotations

import contextlib
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from slack_sdk.errors import SlackApiError

from relaybot.assistant_client import AssistantClient
from relaybot.commands import (
    CMD_ASK,
    CMD_HELP,
    CMD_RESET,
    SLASH_COMMANDS,
    Command,
    parse_command,
    parse_slash_command,
)
from relaybot.config import IDENTITY_CHANNEL, BotConfig
from relaybot.dispatcher import Replier, RequestDispatcher
from relaybot.errors import PlatformSendFailure
from relaybot.formatting import format_usage
from relaybot.thread_registry import ThreadRegistry

logger = logging.getLogger(__name__)

# User mention, plain or with a label: <@U123> or <@U123|name>
_MENTION_RE = re.compile(r"<@([^>|]+)(?:\|[^>]*)?>")
_LEADING_MENTION_RE = re.compile(r"^\s*<@[^>|]+(?:\|[^>]*)?>")


def _platform_error(method: str, exc: SlackApiError) -> PlatformSendFailure:
    error = ""
    with contextlib.suppress(Exception):
        error = exc.response.get("error", "")
    return PlatformSendFailure(
        f"{method} -> Slack error: {error or exc}", error_code=error or None
    )


# ---------------------------------------------------------------------------
# Repliers
# ---------------------------------------------------------------------------


@dataclass
class MessageReplier:
    """Replies to a channel message in its thread via the Web API.

    Message handles are Slack message timestamps.
    """

    client: Any
    channel: str
    thread_ts: str
    message_ts: str = ""

    def send_typing(self) -> None:
        """Slack bots have no typing indicator; react with a thinking face."""
        if not self.message_ts:
            return
        try:
            self.client.reactions_add(
                name="thinking_face", channel=self.channel, timestamp=self.message_ts
            )
        except SlackApiError as exc:
            raise _platform_error("reactions.add", exc) from exc

    def send_reply(self, text: str) -> str:
        try:
            resp = self.client.chat_postMessage(
                channel=self.channel, text=text, thread_ts=self.thread_ts
            )
        except SlackApiError as exc:
            raise _platform_error("chat.postMessage", exc) from exc
        return resp.get("ts", "")

    def send_follow_up(self, text: str) -> str:
        return self.send_reply(text)

    def edit_reply(self, handle: str, text: str) -> None:
        try:
            self.client.chat_update(channel=self.channel, ts=handle, text=text)
        except SlackApiError as exc:
            raise _platform_error("chat.update", exc) from exc

    def delete_message(self, handle: str) -> None:
        try:
            self.client.chat_delete(channel=self.channel, ts=handle)
        except SlackApiError as exc:
            raise _platform_error("chat.delete", exc) from exc

    def finish(self, ok: bool) -> None:
        """Swap the thinking reaction for a result reaction. Best effort."""
        if not self.message_ts:
            return
        try:
            self.client.reactions_remove(
                name="thinking_face", channel=self.channel, timestamp=self.message_ts
            )
            self.client.reactions_add(
                name="white_check_mark" if ok else "x",
                channel=self.channel,
                timestamp=self.message_ts,
            )
        except SlackApiError:
            logger.debug("Could not update reactions on %s", self.message_ts)


@dataclass
class CommandReplier:
    """Replies to a slash command through its ``respond`` callable.

    The response_url only addresses the original response, so handles
    are unused: edits replace it and deletes remove it.
    """

    respond: Any

    def _call(self, **kwargs: Any) -> None:
        try:
            self.respond(**kwargs)
        except SlackApiError as exc:
            raise _platform_error("response_url", exc) from exc
        except Exception as exc:
            raise PlatformSendFailure(f"response_url -> {exc}") from exc

    def send_typing(self) -> None:
        return None

    def send_reply(self, text: str) -> None:
        self._call(text=text, response_type="in_channel")

    def send_follow_up(self, text: str) -> None:
        self._call(text=text, response_type="in_channel", replace_original=False)

    def edit_reply(self, handle: Any, text: str) -> None:
        self._call(text=text, response_type="in_channel", replace_original=True)

    def delete_message(self, handle: Any) -> None:
        self._call(delete_original=True)


# ---------------------------------------------------------------------------
# SlackBot
# ---------------------------------------------------------------------------


@dataclass
class SlackBot:
    """Relays Slack questions to an OpenAI assistant.

    Args:
        config: Bot configuration.
        app: Optional pre-built slack_bolt.App (for testing).
        dispatcher: Optional pre-built RequestDispatcher (for testing).
    """

    config: BotConfig
    app: Any = field(default=None, repr=False)
    dispatcher: RequestDispatcher | None = field(default=None, repr=False)
    _bot_user_id: str = field(default="", init=False, repr=False)

    def __post_init__(self) -> None:
        if self.app is None:
            from slack_bolt import App

            self.app = App(token=self.config.slack_bot_token)

        if self.dispatcher is None:
            assistant = AssistantClient(
                api_key=self.config.openai_api_key,
                assistant_id=self.config.assistant_id,
                poll_interval_s=self.config.poll_interval_s,
                max_wait_s=self.config.max_run_wait_s,
            )
            registry = ThreadRegistry(
                create_thread=assistant.create_thread,
                idle_timeout_s=self.config.idle_timeout_s,
            )
            self.dispatcher = RequestDispatcher(
                registry=registry,
                assistant=assistant,
                chunk_size=self.config.chunk_size,
                command_prefix=self.config.command_prefix,
                slash_commands=self.config.slash_commands,
            )

        # One handler per event type; bot mentions are skipped in _handle_message
        self.app.event("app_mention")(self._handle_mention)
        self.app.event("message")(self._handle_message)
        if self.config.slash_commands:
            for name in SLASH_COMMANDS:
                self.app.command(name)(self._handle_slash_command)
        self.app.error(self._handle_error)

    def start(self) -> None:
        """Start the bot (blocking). Connects via Socket Mode."""
        from slack_bolt.adapter.socket_mode import SocketModeHandler

        try:
            auth = self.app.client.auth_test()
            self._bot_user_id = auth.get("user_id", "")
            logger.info("Bot identity resolved: %s", self._bot_user_id)
        except Exception:
            logger.warning("Could not resolve bot identity via auth.test")

        logger.info(
            "Starting Slack bot via Socket Mode (identity_scope=%s, idle_timeout=%ss)",
            self.config.identity_scope,
            self.config.idle_timeout_s,
        )
        handler = SocketModeHandler(self.app, self.config.slack_app_token)
        handler.start()

    def close(self) -> None:
        """Cancel pending idle timers."""
        if self.dispatcher is not None:
            self.dispatcher.registry.close()

    # -- Event handling -----------------------------------------------------

    def _handle_mention(self, event: dict[str, Any], client: Any) -> None:
        """Handle app_mention events. Unprefixed text is treated as a question."""
        if not self._should_respond(event):
            return
        text = self._strip_bot_mention(event.get("text", ""), leading_fallback=True)
        command = parse_command(text, self.config.command_prefix)
        if command is None and text:
            command = Command(CMD_ASK, text, "ask")
        elif command is None:
            command = Command(CMD_HELP, "", "help")
        logger.info("app_mention from user=%s", event.get("user", ""))
        self._run_event_command(command, event, client)

    def _handle_message(self, event: dict[str, Any], client: Any) -> None:
        """Handle message events carrying a prefixed text command."""
        if not self._should_respond(event):
            return
        text = event.get("text", "")
        # @mentions outside DMs arrive again as app_mention
        if self._mentions_bot(text) and event.get("channel_type", "") != "im":
            return
        text = self._strip_bot_mention(text)
        command = parse_command(text, self.config.command_prefix)
        if command is None:
            return
        logger.info(
            "Text command %s from user=%s channel=%s",
            command.alias,
            event.get("user", ""),
            event.get("channel", ""),
        )
        self._run_event_command(command, event, client)

    def _handle_slash_command(
        self, ack: Any, command: dict[str, Any], respond: Any
    ) -> None:
        """Handle /ask, /rules, /reset and /help."""
        ack()
        parsed = parse_slash_command(
            command.get("command", ""), command.get("text", "")
        )
        if parsed is None:
            return
        requester_id = self._requester_id(
            command.get("user_id", ""), command.get("channel_id", "")
        )
        logger.info("Slash command %s from requester=%s", parsed.alias, requester_id)
        self._dispatch(parsed, requester_id, CommandReplier(respond=respond), "/")

    def _handle_error(self, error: Exception, body: dict[str, Any]) -> None:
        """Global listener error handler: log and carry on."""
        body = body if isinstance(body, dict) else {}
        source = body.get("event", {}).get("type") or body.get("command", "unknown")
        logger.error(
            "Unhandled error in listener (source=%s): %s",
            source,
            error,
            exc_info=error,
        )

    def _should_respond(self, event: dict[str, Any]) -> bool:
        """Skip the bot's own messages, other bots, and message subtypes."""
        user = event.get("user", "")
        if not user:
            return False
        if self._bot_user_id and user == self._bot_user_id:
            return False
        if event.get("bot_id"):
            return False
        return not event.get("subtype", "")

    def _mentions_bot(self, text: str) -> bool:
        if not self._bot_user_id:
            return False
        return any(
            m.group(1) == self._bot_user_id for m in _MENTION_RE.finditer(text)
        )

    def _strip_bot_mention(self, text: str, leading_fallback: bool = False) -> str:
        """Remove the bot's own mentions, leaving other users' mentions intact.

        Before the bot identity is known, ``leading_fallback`` strips only a
        leading mention (app_mention text always addresses the bot first).
        """
        if self._bot_user_id:
            text = _MENTION_RE.sub(
                lambda m: "" if m.group(1) == self._bot_user_id else m.group(0), text
            )
        elif leading_fallback:
            text = _LEADING_MENTION_RE.sub("", text, count=1)
        return text.strip()

    def _requester_id(self, user_id: str, channel_id: str) -> str:
        if self.config.identity_scope == IDENTITY_CHANNEL:
            return channel_id
        return user_id

    def _run_event_command(
        self, command: Command, event: dict[str, Any], client: Any
    ) -> None:
        channel = event.get("channel", "")
        replier = MessageReplier(
            client=client,
            channel=channel,
            thread_ts=event.get("thread_ts") or event.get("ts", ""),
            message_ts=event.get("ts", ""),
        )
        requester_id = self._requester_id(event.get("user", ""), channel)
        ok = self._dispatch(command, requester_id, replier, self.config.command_prefix)
        if command.name == CMD_ASK and command.args:
            replier.finish(ok)

    def _dispatch(
        self, command: Command, requester_id: str, replier: Replier, prefix: str
    ) -> bool:
        """Route a parsed command to the dispatcher."""
        if command.name == CMD_RESET:
            self.dispatcher.reset(requester_id, replier)
            return True
        if command.name == CMD_HELP:
            self.dispatcher.help(replier)
            return True
        if not command.args:
            try:
                replier.send_reply(format_usage(command.alias, prefix))
            except PlatformSendFailure:
                logger.exception("Could not send usage hint")
            return False
        return self.dispatcher.ask(requester_id, command.args, replier)


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def main() -> None:
    """CLI entrypoint for the Slack bot."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    from dotenv import load_dotenv

    load_dotenv(override=False)

    config = BotConfig.from_env()
    bot = SlackBot(config=config)
    try:
        bot.start()
    finally:
        bot.close()


if __name__ == "__main__":
    main()
