"""
Session - Receive loop and reconnect supervisor
===============================================

This module runs the bot:
- ``Session``: one connection's receive/dispatch loop with the
  once-per-iteration maintenance (temp sweep, snapshot, passive sweep)
- ``Supervisor``: connects, joins and runs sessions forever, sleeping
  with exponential backoff between them

Rules and session state are loaded once and outlive every connection.
Configuration and snapshot errors are fatal; everything else ends the
current session and triggers a reconnect.
"""

import asyncio
import random
import time
from typing import Awaitable, Callable, List, Optional

from core.config import Config
from core.exceptions import ConfigError, SnapshotError, TransportError
from core.logging import get_logger
from core.persistence import SnapshotStore
from core.rate_limiter import CooldownRange, ReconnectBackoff
from core.state import SessionState
from rules.compiler import RuleSet, load_channels, load_rule_set
from rules.templates import TemplateEngine
from transport.base import BaseTransport, ChatLine, EndOfStream, Quit
from transport.factory import create_transport

from .dispatcher import Dispatcher
from .messenger import Messenger

logger = get_logger("services.session")


class Session:
    """
    The receive loop of one connection.

    Each iteration sweeps stale temp files, saves the snapshot if due,
    waits for the next event, dispatches chat lines and finally runs the
    passive sweep. The loop ends on ``Quit`` or ``EndOfStream``.
    """

    def __init__(
        self,
        transport: BaseTransport,
        dispatcher: Dispatcher,
        store: SnapshotStore,
        state: SessionState
    ):
        self.transport = transport
        self.dispatcher = dispatcher
        self.store = store
        self.state = state
        self.events_handled = 0

    async def run(self) -> str:
        """
        Run until the stream ends.

        Returns:
            Why the session ended: ``"quit"`` or ``"eof"``
        """
        while True:
            self.store.sweep_temp_files()
            self.store.maybe_save(self.state)

            event = await self.transport.next_event()
            self.events_handled += 1

            if isinstance(event, ChatLine):
                await self.dispatcher.handle(event)
            elif isinstance(event, Quit):
                logger.info(f"Quit received: {event.reason or 'no reason'}")
                return "quit"
            elif isinstance(event, EndOfStream):
                logger.info("End of stream")
                return "eof"

            await self.dispatcher.passive_sweep()


class Supervisor:
    """
    Keeps the bot connected.

    Attributes:
        config (Config): Application configuration
        rules (RuleSet): Compiled rules
        state (SessionState): Session state shared by every connection
        store (SnapshotStore): Snapshot persistence
        channels (list): Channels joined on every connect
        sessions (int): Number of sessions started

    Example:
        supervisor = Supervisor.from_config(config)
        await supervisor.run()
    """

    def __init__(
        self,
        config: Config,
        rules: RuleSet,
        state: SessionState,
        store: SnapshotStore,
        channels: List[str],
        transport_factory: Callable[[], BaseTransport],
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.config = config
        self.rules = rules
        self.state = state
        self.store = store
        self.channels = list(channels)
        self.transport_factory = transport_factory
        self.clock = clock
        self.rng = rng or random.Random()
        self.sleep = sleep

        self.templates = TemplateEngine(rules.lists, config.bot.name, self.rng)
        self.sessions = 0
        self.transport: Optional[BaseTransport] = None

    @classmethod
    def from_config(
        cls,
        config: Config,
        transport_factory: Optional[Callable[[], BaseTransport]] = None
    ) -> "Supervisor":
        """
        Load rules, channels and state as configured.

        Raises:
            ConfigError: If rule files are missing or invalid
            SnapshotError: If the snapshot is corrupt
        """
        paths = config.paths
        rules = load_rule_set(paths.config_dir, paths.data_dir, config.bot.name)
        rules.validate(passive_messages=config.behavior.passive_messages)
        channels = load_channels(paths.config_dir)

        store = SnapshotStore(
            paths.state_dir,
            snapshot_name=config.persistence.snapshot_name,
            save_interval=config.persistence.save_interval,
        )
        state = store.load(
            channels,
            prune=config.persistence.prune_unconfigured_channels,
            cooldown=CooldownRange(config.behavior.cooldown_min, config.behavior.cooldown_max),
            advice_interval=config.behavior.passive_advice_interval,
        )

        return cls(
            config,
            rules,
            state,
            store,
            channels,
            transport_factory=transport_factory or (lambda: create_transport(config)),
        )

    def build_dispatcher(self, transport: BaseTransport) -> Dispatcher:
        messenger = Messenger(transport, clock=self.clock, rng=self.rng)
        return Dispatcher(
            self.rules,
            self.state,
            messenger,
            self.templates,
            behavior=self.config.behavior,
            clock=self.clock,
        )

    async def run_session(self) -> str:
        """
        Connect, join every channel and run one session.

        Returns:
            Why the session ended
        """
        transport = self.transport_factory()
        self.transport = transport
        self.sessions += 1

        try:
            await transport.connect()
            for channel in self.channels:
                await transport.join(channel)
            logger.info(f"Session {self.sessions} started in {len(self.channels)} channel(s)")

            session = Session(transport, self.build_dispatcher(transport), self.store, self.state)
            return await session.run()
        finally:
            await transport.close()

    async def run(self, max_sessions: Optional[int] = None) -> None:
        """
        Run sessions until cancelled (or ``max_sessions`` have run).

        The snapshot is flushed when this returns or is cancelled.

        Raises:
            ConfigError: Fatal configuration problem
            SnapshotError: Fatal snapshot problem
        """
        backoff = ReconnectBackoff(
            stable_window=self.config.supervisor.stable_window,
            max_delay=self.config.supervisor.max_backoff_seconds,
            now=self.clock(),
        )
        started = 0

        try:
            while max_sessions is None or started < max_sessions:
                start_time = self.clock()
                started += 1

                try:
                    reason = await self.run_session()
                    logger.info(f"Session ended ({reason})")
                except (ConfigError, SnapshotError):
                    raise
                except (TransportError, OSError) as e:
                    logger.error(f"Session failed: {e}")
                except Exception:
                    logger.exception("Unexpected error in session")

                delay = backoff.next_delay(start_time)
                if max_sessions is not None and started >= max_sessions:
                    break

                logger.info(f"Disconnected, reconnecting in {delay:.0f}s")
                await self.sleep(delay)
        finally:
            self.store.flush(self.state)
            logger.info("Snapshot flushed")
