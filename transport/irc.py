"""
IRC Transport - Twitch chat over IRC
====================================

This module connects to Twitch chat (or any IRC server) with the
asyncio flavour of the ``irc`` library. Reactor callbacks translate
IRC events into transport events and push them onto a queue that
``next_event`` drains.

Event mapping:
- ``pubmsg`` -> ChatLine
- ``error`` -> Quit
- ``disconnect`` -> EndOfStream
- anything else -> OtherEvent
"""

import asyncio
from typing import List, Optional

import irc.client
import irc.client_aio
import irc.connection

from core.exceptions import TransportError
from core.logging import get_logger

from .base import BaseTransport, ChatLine, EndOfStream, Event, OtherEvent, Quit

logger = get_logger("transport.irc")

# RFC 2812 line limit, CR/LF included
MAX_LINE_BYTES = 512


def _channel_name(target: str) -> str:
    return target[1:] if target.startswith("#") else target


def truncate_message(text: str, max_bytes: int) -> str:
    """Cut ``text`` to at most ``max_bytes`` of UTF-8 without splitting a character."""
    encoded = text.encode("utf-8")
    if len(encoded) <= max_bytes:
        return text
    return encoded[:max(max_bytes, 0)].decode("utf-8", errors="ignore")


class IRCTransport(BaseTransport):
    """
    IRC transport built on ``irc.client_aio.AioReactor``.

    Attributes:
        server (str): IRC server host
        port (int): IRC server port
        nickname (str): Login name (lower-cased, as Twitch expects)
        tls (bool): Wrap the connection in TLS
        capabilities (list): IRCv3 capabilities requested after connecting

    Example:
        transport = IRCTransport("irc.chat.twitch.tv", 6697, "mybot", "oauth-token")
        await transport.connect()
        await transport.join("somechannel")
    """

    name = "irc"

    def __init__(
        self,
        server: str,
        port: int,
        nickname: str,
        token: str,
        tls: bool = True,
        capabilities: Optional[List[str]] = None
    ):
        self.server = server
        self.port = port
        self.nickname = nickname.lower()
        self.token = token
        self.tls = tls
        self.capabilities = list(capabilities or [])

        self.reactor: Optional[irc.client_aio.AioReactor] = None
        self.connection: Optional[irc.client_aio.AioConnection] = None
        self.queue: "asyncio.Queue[Event]" = asyncio.Queue()

    @property
    def password(self) -> str:
        if self.token.startswith("oauth:"):
            return self.token
        return f"oauth:{self.token}"

    async def connect(self) -> None:
        # A fresh queue per session; stale events from a dead connection are dropped
        self.queue = asyncio.Queue()
        self.reactor = irc.client_aio.AioReactor(loop=asyncio.get_running_loop())
        self.reactor.add_global_handler("all_events", self._on_event)

        self.connection = self.reactor.server()
        logger.info(f"Connecting to {self.server}:{self.port} as {self.nickname}")

        try:
            await self.connection.connect(
                self.server,
                self.port,
                self.nickname,
                password=self.password,
                connect_factory=irc.connection.AioFactory(ssl=self.tls),
            )
        except irc.client.ServerConnectionError as e:
            raise TransportError(
                f"Failed to connect to {self.server}:{self.port}: {e}",
                {"server": self.server, "port": self.port}
            )

        if self.capabilities:
            self.connection.cap("REQ", *self.capabilities)

    async def join(self, channel: str) -> None:
        self._require_connection().join(f"#{channel}")
        logger.info(f"Joined #{channel}")

    async def next_event(self) -> Event:
        return await self.queue.get()

    async def send(self, channel: str, text: str) -> None:
        """
        Send a PRIVMSG, cut to fit one IRC line.

        Lines the library still refuses (stray CR/LF) are logged and
        dropped; only a lost connection raises.
        """
        connection = self._require_connection()
        target = f"#{channel}"
        overhead = len(f"PRIVMSG {target} :\r\n".encode("utf-8"))
        text = truncate_message(text, MAX_LINE_BYTES - overhead)

        try:
            connection.privmsg(target, text)
        except irc.client.ServerNotConnectedError as e:
            raise TransportError(f"Send failed: {e}", {"channel": channel})
        except (irc.client.MessageTooLong, irc.client.InvalidCharacters) as e:
            logger.warning(f"Dropped message to {target}: {e}")

    async def close(self) -> None:
        if self.connection is not None and self.connection.is_connected():
            self.connection.disconnect("bye")
        self.connection = None

    def _require_connection(self) -> irc.client_aio.AioConnection:
        if self.connection is None or not self.connection.is_connected():
            raise TransportError("Not connected", {"server": self.server})
        return self.connection

    def _on_event(self, connection, event) -> None:
        """Reactor callback: translate and enqueue."""
        self.queue.put_nowait(self.translate(event))

    @staticmethod
    def translate(event) -> Event:
        """Map an ``irc.client.Event`` to a transport event."""
        if event.type == "pubmsg":
            user = event.source.nick if event.source else ""
            text = event.arguments[0] if event.arguments else ""
            return ChatLine(channel=_channel_name(event.target or ""), user=user, text=text)

        if event.type == "error":
            reason = event.target or (event.arguments[0] if event.arguments else "")
            logger.warning(f"Server error: {reason}")
            return Quit(reason=str(reason))

        if event.type == "disconnect":
            logger.warning("Disconnected from server")
            return EndOfStream()

        return OtherEvent(
            kind=event.type,
            raw={
                "source": str(event.source) if event.source else None,
                "target": event.target,
                "arguments": list(event.arguments or []),
            }
        )
