"""
Test Status API
===============

Tests for the read-only FastAPI endpoints.
"""

import pytest
from pathlib import Path

# Add parent directory to path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from fastapi.testclient import TestClient

from core.state import SessionState
from rules.compiler import LiteralValue, MultiTrigger, RuleSet
from ui.web.app import create_app


@pytest.fixture
def client():
    state = SessionState.new(["b_chan", "a_chan"], 1000.0)
    state.channels["a_chan"].leave()
    state.channels["a_chan"].current_topic = "cooking"
    state.ignore("alice")

    rules = RuleSet(
        lists={"passive_advice": ("stay hydrated",)},
        triggers={"hello": LiteralValue("hi")},
        multi_triggers=[MultiTrigger(("cpp", "bad"), LiteralValue("agreed"))],
        commands={"!cd": LiteralValue("CONFIG")},
        command_text={"!discord": LiteralValue("join us")},
    )
    return TestClient(create_app(state, rules))


class TestStatusAPI:
    """Tests for the status endpoints."""

    def test_status(self, client):
        response = client.get("/api/status")
        assert response.status_code == 200
        data = response.json()
        assert data["channels"] == 2
        assert data["ignores"] == 1
        assert data["rules"]["triggers"] == 1
        assert data["rules"]["multi_triggers"] == 1

    def test_channels_sorted(self, client):
        data = client.get("/api/channels").json()
        assert [c["channel_name"] for c in data] == ["a_chan", "b_chan"]
        assert data[0]["mood"] == "backoff"
        assert data[0]["next_message"] == {"min": 1200.0, "max": 1800.0}

    def test_channel(self, client):
        response = client.get("/api/channels/a_chan")
        assert response.status_code == 200
        assert response.json()["current_topic"] == "cooking"

    def test_unknown_channel(self, client):
        assert client.get("/api/channels/nowhere").status_code == 404

    def test_rules(self, client):
        data = client.get("/api/rules").json()
        assert data["commands"] == ["!cd"]
        assert data["command_text"] == ["!discord"]
        assert data["triggers"] == ["hello"]
        assert data["multi_triggers"] == [["cpp", "bad"]]
        assert data["lists"] == {"passive_advice": 1}


# Run tests if executed directly
if __name__ == "__main__":
    pytest.main([__file__, "-v"])
