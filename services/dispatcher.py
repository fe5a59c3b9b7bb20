"""
Dispatcher - Decides whether and what to reply to a chat line
=============================================================

Every chat line goes through the same stages, in this order:

1. Command-text: the whole message is looked up verbatim; a hit is
   rendered and force-sent, and the message counts as consumed.
2. Commands: the first token is looked up in the command table and the
   mapped mnemonic is executed. Every known mnemonic ends processing.
3. Triggers: each lower-cased token with a trigger entry produces its
   own throttled reply.
4. Multi-triggers: the last multi-trigger whose slots all appear in the
   lower-cased message produces one throttled reply.

Stages 3 and 4 only run if nothing consumed the message, the speaker is
not ignored and the channel is in the normal mood. After the line is
handled the channel's dedup flag is cleared.

The passive sweep, run once per loop iteration, sends unsolicited
advice to quiet channels and lifts expired backoffs.
"""

import re
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional

from core.config import BehaviorConfig
from core.logging import clear_log_context, get_logger, set_log_context
from core.state import ChannelState, Mood, SessionState
from rules.compiler import (
    PASSIVE_ADVICE_LIST,
    QUESTIONS_LIST,
    ListRef,
    LiteralValue,
    RuleSet,
    RuleValue,
)
from rules.templates import ReplyContext, TemplateEngine
from transport.base import ChatLine

from .messenger import Messenger

logger = get_logger("services.dispatcher")

CONFIG_USAGE = (
    'invalid command, expected format "cd <min> <max>" '
    "where <min> and <max> are integer numbers"
)

_UNSIGNED = re.compile(r"\+?[0-9]+")
_SIGNED = re.compile(r"[+-]?[0-9]+")

# Largest accepted cooldown bound (unsigned 64-bit)
MAX_COOLDOWN_BOUND = 2 ** 64 - 1


def format_duration(seconds: float) -> str:
    """Format seconds as ``Xh Ym Zs`` (hours are not wrapped)."""
    total = int(seconds)
    return f"{total // 3600}h {total // 60 % 60}m {total % 60}s"


def parse_cooldown_bound(token: str) -> Optional[int]:
    """A non-negative integer no larger than ``MAX_COOLDOWN_BOUND``, or None."""
    if not _UNSIGNED.fullmatch(token):
        return None
    if len(token.lstrip("+").lstrip("0")) > len(str(MAX_COOLDOWN_BOUND)):
        return None
    value = int(token)
    return value if value <= MAX_COOLDOWN_BOUND else None


def parse_repeat_count(token: str, limit: int) -> int:
    """Repeat count from a token: 1 if unparseable, never above ``limit``."""
    if not _SIGNED.fullmatch(token):
        return 1
    if len(token.lstrip("+-").lstrip("0")) > len(str(limit)):
        return 0 if token.startswith("-") else limit
    return min(int(token), limit)


@dataclass
class CommandCall:
    """
    One command invocation.

    Attributes:
        channel (ChannelState): Channel the command was issued in
        line (ChatLine): The incoming message
        tokens (list): Whitespace tokens of the message
        mapped_args (list): Tokens after the mnemonic in the command's value
        context (ReplyContext): Context for rendering replies
    """
    channel: ChannelState
    line: ChatLine
    tokens: List[str]
    mapped_args: List[str]
    context: ReplyContext


class Dispatcher:
    """
    Applies the rule set to incoming chat lines.

    Example:
        dispatcher = Dispatcher(rules, state, messenger, templates)
        await dispatcher.handle(ChatLine("somechannel", "alice", "hello"))
        await dispatcher.passive_sweep()
    """

    def __init__(
        self,
        rules: RuleSet,
        state: SessionState,
        messenger: Messenger,
        templates: TemplateEngine,
        behavior: Optional[BehaviorConfig] = None,
        clock: Optional[Callable[[], float]] = None
    ):
        self.rules = rules
        self.state = state
        self.messenger = messenger
        self.templates = templates
        self.behavior = behavior or BehaviorConfig()
        self.clock = clock or messenger.clock or time.time

        self._mnemonics: Dict[str, Callable[[CommandCall], Awaitable[None]]] = {
            "COMMANDS": self._list_commands,
            "CONFIG": self._configure,
            "LEAVE": self._leave,
            "JOIN": self._join,
            "RANDOM_STATEMENT": self._random_statement,
            "RANDOM_QUESTION": self._random_question,
            "IGNORE_ME": self._ignore_me,
            "NOTICE_ME": self._notice_me,
            "OFF_TOPIC": self._off_topic,
            "ON_TOPIC": self._on_topic,
            "TOTAL_OFF_TOPIC": self._total_off_topic,
            "SET_TOPIC": self._set_topic,
            "RESETCD": self._reset_cooldown,
            "REPEAT": self._repeat,
            "REPEAT_MAPPED": self._repeat_mapped,
        }

    @property
    def mnemonics(self) -> List[str]:
        return list(self._mnemonics)

    # === Chat lines ===

    async def handle(self, line: ChatLine) -> None:
        """
        Process one chat line.

        Args:
            line: The incoming message
        """
        channel = self.state.get(line.channel)
        if channel is None:
            logger.warning(f"Message from unknown channel #{line.channel} dropped")
            return

        set_log_context(channel=line.channel, user=line.user)
        try:
            logger.debug(f"{line.user}: {line.text}")
            await self._dispatch(channel, line)
        finally:
            channel.dedup_message = False
            clear_log_context()

    async def _dispatch(self, channel: ChannelState, line: ChatLine) -> None:
        consumed = False

        if self.behavior.command_messages:
            consumed = await self._command_text(channel, line)
            if await self._command(channel, line):
                return

        if consumed:
            return

        if self.behavior.trigger_messages:
            await self._triggers(channel, line)

    async def _command_text(self, channel: ChannelState, line: ChatLine) -> bool:
        value = self.rules.command_text.get(line.text)
        if value is None:
            return False

        logger.debug(f"Command text hit: {line.text!r}")
        context = self._context(channel, line, trigger=line.text)
        response = self._respond(value, context)
        if response is not None:
            await self.messenger.force_send(channel, response)
        return True

    async def _command(self, channel: ChannelState, line: ChatLine) -> bool:
        """Returns True if a known mnemonic handled the message."""
        tokens = line.text.split()
        value = self.rules.commands.get(tokens[0] if tokens else "")
        if not isinstance(value, LiteralValue):
            return False

        mapped = value.text.split()
        mnemonic = mapped[0] if mapped else ""
        handler = self._mnemonics.get(mnemonic)
        if handler is None:
            logger.warning(f"Unknown command mnemonic {mnemonic!r} for {tokens[0]!r}")
            return False

        logger.info(f"Command {tokens[0]} -> {mnemonic}")
        await handler(CommandCall(
            channel=channel,
            line=line,
            tokens=tokens,
            mapped_args=mapped[1:],
            context=self._context(channel, line, trigger=line.text),
        ))
        return True

    async def _triggers(self, channel: ChannelState, line: ChatLine) -> None:
        if channel.mood is not Mood.NORMAL or self.state.is_ignored(line.user):
            return

        lowered = line.text.lower()

        for token in lowered.split():
            value = self.rules.triggers.get(token)
            if value is None:
                continue
            logger.debug(f"Trigger hit: {token!r}")
            response = self._respond(value, self._context(channel, line, trigger=token))
            if response is not None:
                await self.messenger.send(channel, response)

        slot_context = self._context(channel, line, trigger="")
        matched = None
        for multi in self.rules.multi_triggers:
            if all(
                self.templates.substitute_context(slot, slot_context) in lowered
                for slot in multi.slots
            ):
                matched = multi

        if matched is not None:
            logger.debug(f"Multi-trigger hit: {matched.trigger!r}")
            response = self._respond(
                matched.value, self._context(channel, line, trigger=matched.trigger)
            )
            if response is not None:
                await self.messenger.send(channel, response)

    # === Passive sweep ===

    async def passive_sweep(self) -> int:
        """
        Send passive advice where it is due and lift expired backoffs.

        Returns:
            Number of advice messages sent
        """
        now = self.clock()
        sent = 0

        for channel in list(self.state.channels.values()):
            if not channel.advice_due(now):
                continue

            if channel.mood is Mood.BACKOFF:
                channel.join(self.behavior.passive_advice_interval)
                logger.info(f"Backoff over for #{channel.channel_name}, back to normal")
                continue

            if self.behavior.passive_messages and not channel.dedup_message:
                context = ReplyContext(user="", channel=channel.channel_name)
                if await self._send_from_list(channel, PASSIVE_ADVICE_LIST, context, force=False):
                    sent += 1

        return sent

    # === Helpers ===

    def _context(self, channel: ChannelState, line: ChatLine, trigger: str) -> ReplyContext:
        return ReplyContext(
            user=line.user,
            channel=channel.channel_name,
            trigger=trigger,
            trigger_message=line.text,
        )

    def _respond(self, value: RuleValue, context: ReplyContext) -> Optional[str]:
        """Render a rule value; None if it names an unknown or empty list."""
        if isinstance(value, ListRef):
            template = self.templates.pick(value.name)
            if template is None:
                logger.warning(f"List '{value.name}' is unknown or empty")
                return None
        else:
            template = value.text
        return self.templates.render(template, context)

    async def _send_from_list(
        self,
        channel: ChannelState,
        list_name: str,
        context: ReplyContext,
        force: bool
    ) -> bool:
        response = self._respond(ListRef(list_name), context)
        if response is None:
            return False
        if force:
            return await self.messenger.force_send(channel, response)
        return await self.messenger.send(channel, response)

    async def _reply(self, call: CommandCall, text: str) -> None:
        await self.messenger.force_send(
            call.channel, self.templates.render(text, call.context)
        )

    # === Mnemonics ===

    async def _list_commands(self, call: CommandCall) -> None:
        names = sorted(set(self.rules.commands) | set(self.rules.command_text))
        await self.messenger.force_send(call.channel, ", ".join(names))

    async def _configure(self, call: CommandCall) -> None:
        tokens = call.line.text.lower().split()
        subcommand = tokens[1] if len(tokens) > 1 else ""

        if subcommand != "cd":
            logger.info(f"Unknown CONFIG subcommand in {call.line.text!r}")
            return

        bounds = [parse_cooldown_bound(token) for token in tokens[2:4]]
        if len(bounds) < 2 or None in bounds:
            await self.messenger.force_send(call.channel, CONFIG_USAGE)
            return

        low, high = min(bounds), max(bounds)
        call.channel.set_cooldown(low, high)
        await self.messenger.force_send(
            call.channel, f"successfully changed message cooldown to {low}s-{high}s"
        )

    async def _leave(self, call: CommandCall) -> None:
        call.channel.leave(self.behavior.backoff_advice_interval)
        logger.info("Backing off")

    async def _join(self, call: CommandCall) -> None:
        call.channel.join(self.behavior.passive_advice_interval)
        logger.info("Back to normal")

    async def _random_statement(self, call: CommandCall) -> None:
        await self._send_from_list(call.channel, PASSIVE_ADVICE_LIST, call.context, force=True)

    async def _random_question(self, call: CommandCall) -> None:
        await self._send_from_list(call.channel, QUESTIONS_LIST, call.context, force=True)

    async def _ignore_me(self, call: CommandCall) -> None:
        self.state.ignore(call.line.user)
        logger.info(f"Ignoring {call.line.user}")

    async def _notice_me(self, call: CommandCall) -> None:
        self.state.notice(call.line.user)
        logger.info(f"Noticing {call.line.user}")

    async def _off_topic(self, call: CommandCall) -> None:
        elapsed = call.channel.start_off_topic(self.clock())
        if elapsed is None:
            response = "starting off topic timer"
        else:
            response = (
                f"{call.channel.channel_name} has already been off topic for "
                f"{format_duration(elapsed)}"
            )
        await self._reply(call, response)

    async def _on_topic(self, call: CommandCall) -> None:
        elapsed = call.channel.stop_off_topic(self.clock())
        if elapsed is None:
            return
        await self._reply(
            call,
            f"{call.channel.channel_name} is finally on topic, it took them "
            f"{format_duration(elapsed)}"
        )

    async def _total_off_topic(self, call: CommandCall) -> None:
        await self._reply(
            call,
            "The streamer has been off topic a total of "
            f"{format_duration(call.channel.total_off_topic)}"
        )

    async def _set_topic(self, call: CommandCall) -> None:
        topic = " ".join(call.tokens[1:])
        call.channel.current_topic = topic or None
        await self._reply(call, f"current topic is now {topic}")

    async def _reset_cooldown(self, call: CommandCall) -> None:
        call.channel.reset_cooldown()
        logger.info("Cooldown reset")

    async def _repeat(self, call: CommandCall) -> None:
        count = parse_repeat_count(
            call.tokens[1] if len(call.tokens) > 1 else "", self.behavior.repeat_limit
        )
        text = " ".join(call.tokens[2:]) + " "
        await self._send_repeated(call, text, count)

    async def _repeat_mapped(self, call: CommandCall) -> None:
        count = parse_repeat_count(
            call.tokens[1] if len(call.tokens) > 1 else "", self.behavior.repeat_limit
        )
        text = " ".join(call.mapped_args) + " "
        await self._send_repeated(call, text, count)

    async def _send_repeated(self, call: CommandCall, text: str, count: int) -> None:
        if count <= 0:
            logger.debug(f"Nothing to repeat (count {count})")
            return
        await self._reply(call, text * count)
