"""
Test Transports
===============

Tests for the transport factory, the memory transport, IRC event
translation and sending over a live IRC connection.
"""

import asyncio
import random
import pytest
from pathlib import Path

# Add parent directory to path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

import irc.client_aio
from irc.client import Event, NickMask

from core.config import Config
from core.exceptions import ConfigError, TransportError
from core.persistence import SnapshotStore
from core.state import SessionState
from rules.compiler import LiteralValue, RuleSet
from rules.templates import TemplateEngine
from services.dispatcher import Dispatcher
from services.messenger import Messenger
from services.session import Session
from transport.base import ChatLine, EndOfStream, OtherEvent, Quit
from transport.factory import create_transport
from transport.irc import IRCTransport, truncate_message
from transport.memory import MemoryTransport


class TestFactory:
    """Tests for create_transport."""

    def test_irc(self):
        config = Config()
        config.bot.name = "MyBot"
        config.bot.token = "abc"
        transport = create_transport(config)
        assert isinstance(transport, IRCTransport)
        assert transport.nickname == "mybot"
        assert transport.password == "oauth:abc"
        assert transport.capabilities == config.bot.capabilities

    def test_memory(self):
        config = Config()
        config.bot.transport = "memory"
        assert isinstance(create_transport(config), MemoryTransport)

    def test_unknown(self):
        config = Config()
        config.bot.transport = "smoke-signals"
        with pytest.raises(ConfigError):
            create_transport(config)


class TestMemoryTransport:
    """Tests for MemoryTransport."""

    def test_replays_then_ends(self):
        async def scenario():
            transport = MemoryTransport([ChatLine("chan", "alice", "hi")])
            await transport.connect()
            first = await transport.next_event()
            second = await transport.next_event()
            return first, second

        first, second = asyncio.run(scenario())
        assert first == ChatLine("chan", "alice", "hi")
        assert second == EndOfStream()

    def test_send_requires_connection(self):
        transport = MemoryTransport()
        with pytest.raises(TransportError):
            asyncio.run(transport.send("chan", "hi"))

    def test_records_sent(self):
        async def scenario():
            transport = MemoryTransport()
            await transport.connect()
            await transport.send("a", "one")
            await transport.send("b", "two")
            return transport

        transport = asyncio.run(scenario())
        assert transport.sent == [("a", "one"), ("b", "two")]
        assert transport.sent_to("b") == ["two"]


class TestIRCTranslate:
    """Tests for IRC event translation."""

    def test_pubmsg(self):
        event = Event("pubmsg", NickMask("alice!alice@alice.tmi.twitch.tv"), "#somechannel", ["Hello there"])
        assert IRCTransport.translate(event) == ChatLine("somechannel", "alice", "Hello there")

    def test_error_is_quit(self):
        event = Event("error", None, "Closing Link", [])
        assert IRCTransport.translate(event) == Quit("Closing Link")

    def test_disconnect(self):
        event = Event("disconnect", "irc.chat.twitch.tv", "", ["Connection reset"])
        assert IRCTransport.translate(event) == EndOfStream()

    def test_other(self):
        event = Event("join", NickMask("bob!bob@bob.tmi.twitch.tv"), "#somechannel", [])
        translated = IRCTransport.translate(event)
        assert isinstance(translated, OtherEvent)
        assert translated.kind == "join"
        assert translated.raw["target"] == "#somechannel"

    def test_token_already_prefixed(self):
        transport = IRCTransport("irc.chat.twitch.tv", 6697, "mybot", "oauth:abc")
        assert transport.password == "oauth:abc"

    def test_send_without_connection(self):
        transport = IRCTransport("irc.chat.twitch.tv", 6697, "mybot", "abc")
        with pytest.raises(TransportError):
            asyncio.run(transport.send("chan", "hi"))


NOW = 1_700_000_000.0


class FakeWire:
    """Records the bytes an AioConnection writes to its socket."""

    def __init__(self):
        self.lines = []

    def write(self, data):
        self.lines.append(data)

    send = write


def wire_up(transport):
    """Attach a live AioConnection backed by a FakeWire. Call inside a running loop."""
    reactor = irc.client_aio.AioReactor(loop=asyncio.get_running_loop())
    connection = reactor.server()
    wire = FakeWire()
    connection.transport = wire
    connection.connected = True
    transport.reactor = reactor
    transport.connection = connection
    return wire


def make_session(transport, tmp_path):
    lists = {"passive_advice": ("stay hydrated",)}
    rules = RuleSet(lists=lists, commands={"!repeat": LiteralValue("REPEAT")})
    state = SessionState.new(["chan"], NOW)
    clock = lambda: NOW
    dispatcher = Dispatcher(
        rules,
        state,
        Messenger(transport, clock=clock, rng=random.Random(1)),
        TemplateEngine(lists, "mybot", random.Random(1)),
        clock=clock,
    )
    store = SnapshotStore(str(tmp_path), clock=clock, rng=random.Random(1))
    return Session(transport, dispatcher, store, state)


class TestIRCSend:
    """Tests for sending over a live IRC connection."""

    def test_truncate_message(self):
        assert truncate_message("hello", 10) == "hello"
        assert truncate_message("hello", 3) == "hel"
        # Never splits a multi-byte character
        assert truncate_message("aé", 2) == "a"
        assert truncate_message("aé", 3) == "aé"

    def test_short_message(self):
        async def scenario():
            transport = IRCTransport("irc.chat.twitch.tv", 6697, "mybot", "abc")
            wire = wire_up(transport)
            await transport.send("chan", "hello")
            return wire

        wire = asyncio.run(scenario())
        assert wire.lines == [b"PRIVMSG #chan :hello\r\n"]

    def test_long_message_fits_one_line(self):
        async def scenario():
            transport = IRCTransport("irc.chat.twitch.tv", 6697, "mybot", "abc")
            wire = wire_up(transport)
            await transport.send("chan", "é" * 400)
            return wire

        wire = asyncio.run(scenario())
        assert len(wire.lines) == 1
        line = wire.lines[0]
        assert len(line) <= 512
        assert line.endswith(b"\r\n")
        text = line[len(b"PRIVMSG #chan :"):-2].decode("utf-8")
        assert set(text) == {"é"}

    def test_line_break_is_dropped(self):
        async def scenario():
            transport = IRCTransport("irc.chat.twitch.tv", 6697, "mybot", "abc")
            wire = wire_up(transport)
            await transport.send("chan", "one\ntwo")
            return wire

        assert asyncio.run(scenario()).lines == []

    def test_long_repeat_keeps_session_alive(self, tmp_path):
        async def scenario():
            transport = IRCTransport("irc.chat.twitch.tv", 6697, "mybot", "abc")
            wire = wire_up(transport)
            transport.queue.put_nowait(ChatLine("chan", "alice", "!repeat 200 hi"))
            transport.queue.put_nowait(ChatLine("chan", "alice", "!repeat 2 ok"))
            transport.queue.put_nowait(EndOfStream())
            reason = await make_session(transport, tmp_path).run()
            return reason, wire

        reason, wire = asyncio.run(scenario())
        assert reason == "eof"
        assert len(wire.lines) == 2
        assert len(wire.lines[0]) <= 512
        assert wire.lines[0].startswith(b"PRIVMSG #chan :hi hi hi ")
        assert wire.lines[1] == b"PRIVMSG #chan :ok ok \r\n"


# Run tests if executed directly
if __name__ == "__main__":
    pytest.main([__file__, "-v"])
