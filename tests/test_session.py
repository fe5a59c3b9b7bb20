"""
Test Session and Supervisor
===========================

Tests for the receive loop, snapshot maintenance and reconnects.
"""

import asyncio
import random
import pytest
from pathlib import Path

# Add parent directory to path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.config import Config
from core.exceptions import ConfigError, SnapshotError
from core.persistence import SnapshotStore
from core.state import SessionState
from rules.compiler import LiteralValue, RuleSet
from services.session import Session, Supervisor
from transport.base import ChatLine, EndOfStream, OtherEvent, Quit
from transport.memory import MemoryTransport

NOW = 1_700_000_000.0


class FakeClock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def make_config():
    config = Config()
    config.bot.name = "mybot"
    config.bot.transport = "memory"
    return config


def make_rules():
    return RuleSet(
        lists={"passive_advice": ("stay hydrated",)},
        triggers={"hello": LiteralValue("hi {user}")},
        commands={"!repeat": LiteralValue("REPEAT")},
    )


def make_supervisor(tmp_path, transport, clock=None, sleep=None):
    clock = clock or FakeClock()
    store = SnapshotStore(str(tmp_path), clock=clock, rng=random.Random(1))
    state = SessionState.new(["chan"], clock())
    return Supervisor(
        make_config(),
        make_rules(),
        state,
        store,
        ["chan"],
        transport_factory=lambda: transport,
        clock=clock,
        rng=random.Random(1),
        sleep=sleep or SleepRecorder(),
    )


class TestSession:
    """Tests for one session's loop."""

    def run_session(self, tmp_path, events, clock=None):
        transport = MemoryTransport(events)
        supervisor = make_supervisor(tmp_path, transport, clock=clock)
        asyncio.run(transport.connect())
        session = Session(
            transport, supervisor.build_dispatcher(transport), supervisor.store, supervisor.state
        )
        reason = asyncio.run(session.run())
        return reason, transport, supervisor, session

    def test_dispatches_until_end_of_stream(self, tmp_path):
        reason, transport, _, session = self.run_session(tmp_path, [
            ChatLine("chan", "alice", "!repeat 2 go"),
            OtherEvent("join"),
        ])
        assert reason == "eof"
        assert transport.sent == [("chan", "go go ")]
        assert session.events_handled == 3

    def test_quit_stops_loop(self, tmp_path):
        reason, transport, _, _ = self.run_session(tmp_path, [
            Quit("bye"),
            ChatLine("chan", "alice", "!repeat 1 late"),
        ])
        assert reason == "quit"
        assert transport.sent == []
        assert len(transport.events) == 1

    def test_saves_when_due_and_sweeps(self, tmp_path):
        (tmp_path / "42-state.json.temp").write_text("partial", encoding="utf-8")
        clock = FakeClock()
        transport = MemoryTransport([EndOfStream()])
        supervisor = make_supervisor(tmp_path, transport, clock=clock)
        clock.now += 61

        asyncio.run(transport.connect())
        session = Session(transport, supervisor.build_dispatcher(transport), supervisor.store, supervisor.state)
        asyncio.run(session.run())

        assert (tmp_path / "state.json").exists()
        assert not (tmp_path / "42-state.json.temp").exists()

    def test_passive_sweep_runs_after_events(self, tmp_path):
        clock = FakeClock()
        transport = MemoryTransport([OtherEvent("ping")])
        supervisor = make_supervisor(tmp_path, transport, clock=clock)
        clock.now += 10801

        asyncio.run(transport.connect())
        session = Session(transport, supervisor.build_dispatcher(transport), supervisor.store, supervisor.state)
        asyncio.run(session.run())

        assert transport.sent == [("chan", "stay hydrated")]


class TestSupervisor:
    """Tests for the reconnect envelope."""

    def test_joins_configured_channels(self, tmp_path):
        transport = MemoryTransport()
        supervisor = make_supervisor(tmp_path, transport)
        asyncio.run(supervisor.run(max_sessions=1))
        assert transport.joined == ["chan"]
        assert transport.connected is False

    def test_backoff_between_quick_sessions(self, tmp_path):
        sleep = SleepRecorder()
        supervisor = make_supervisor(tmp_path, MemoryTransport(), sleep=sleep)
        asyncio.run(supervisor.run(max_sessions=3))
        assert sleep.delays == [2.0, 4.0]
        assert supervisor.sessions == 3

    def test_stable_session_resets_backoff(self, tmp_path):
        clock = FakeClock()
        sleep = SleepRecorder()

        async def sleep_and_advance(delay):
            await sleep(delay)
            clock.now += 4000

        supervisor = make_supervisor(tmp_path, MemoryTransport(), clock=clock, sleep=sleep_and_advance)
        asyncio.run(supervisor.run(max_sessions=3))
        assert sleep.delays == [2.0, 1.0]

    def test_transport_failure_is_retried(self, tmp_path):
        transport = MemoryTransport(fail_connect=1)
        supervisor = make_supervisor(tmp_path, transport)
        asyncio.run(supervisor.run(max_sessions=2))
        assert transport.connects == 2
        assert transport.joined == ["chan"]

    def test_config_error_is_fatal(self, tmp_path):
        def broken_factory():
            raise ConfigError("no transport")

        supervisor = make_supervisor(tmp_path, MemoryTransport())
        supervisor.transport_factory = broken_factory
        with pytest.raises(ConfigError):
            asyncio.run(supervisor.run())
        # State is still flushed on the way out
        assert (tmp_path / "state.json").exists()

    def test_state_survives_reconnects(self, tmp_path):
        transport = MemoryTransport([
            ChatLine("chan", "alice", "!repeat 1 one"),
            EndOfStream(),
            ChatLine("chan", "alice", "!repeat 1 two"),
        ])
        supervisor = make_supervisor(tmp_path, transport)
        asyncio.run(supervisor.run(max_sessions=2))
        assert transport.sent_to("chan") == ["one ", "two "]

    def test_flush_on_exit(self, tmp_path):
        supervisor = make_supervisor(tmp_path, MemoryTransport())
        supervisor.state.ignore("alice")
        asyncio.run(supervisor.run(max_sessions=1))

        restored = SnapshotStore(str(tmp_path)).read()
        assert restored.ignores == {"alice"}


class TestFromConfig:
    """Tests for building a supervisor from configuration."""

    def write_files(self, tmp_path):
        config_dir = tmp_path / "config"
        data_dir = tmp_path / "data"
        config_dir.mkdir()
        data_dir.mkdir()
        (config_dir / "channels.list").write_text("chan\nother\n", encoding="utf-8")
        (config_dir / "commands.map").write_text("!repeat=REPEAT\n", encoding="utf-8")
        (data_dir / "passive_advice.list").write_text("stay hydrated\n", encoding="utf-8")
        (data_dir / "triggers.map").write_text("hello=hi\n", encoding="utf-8")
        (data_dir / "commands_text.map").write_text("", encoding="utf-8")

        config = make_config()
        config.paths.config_dir = str(config_dir)
        config.paths.data_dir = str(data_dir)
        config.paths.state_dir = str(tmp_path / "state")
        config.behavior.cooldown_min = 5
        config.behavior.cooldown_max = 10
        return config

    def test_loads_everything(self, tmp_path):
        config = self.write_files(tmp_path)
        supervisor = Supervisor.from_config(config)

        assert supervisor.channels == ["chan", "other"]
        assert set(supervisor.state.channels) == {"chan", "other"}
        assert supervisor.state.channels["chan"].next_message.max == 10
        assert "hello" in supervisor.rules.triggers
        assert isinstance(supervisor.transport_factory(), MemoryTransport)

    def test_missing_passive_list_is_fatal(self, tmp_path):
        config = self.write_files(tmp_path)
        (Path(config.paths.data_dir) / "passive_advice.list").unlink()
        with pytest.raises(ConfigError):
            Supervisor.from_config(config)

    def test_corrupt_snapshot_is_fatal(self, tmp_path):
        config = self.write_files(tmp_path)
        state_dir = Path(config.paths.state_dir)
        state_dir.mkdir()
        (state_dir / "state.json").write_text("{broken", encoding="utf-8")
        with pytest.raises(SnapshotError):
            Supervisor.from_config(config)


# Run tests if executed directly
if __name__ == "__main__":
    pytest.main([__file__, "-v"])
