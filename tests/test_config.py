"""
Test Configuration Module
========================

Unit tests for configuration loading and validation.
"""

import os
import pytest
from pathlib import Path

# Add parent directory to path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.config import (
    Config, BotConfig, BehaviorConfig, PersistenceConfig,
    SupervisorConfig, UIConfig, load_config, save_config
)
from core.exceptions import ConfigError


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Point every directory at tmp_path and clear credential variables."""
    for var in list(os.environ):
        if var.startswith("RULEBOT_") or var.startswith("TWITCH_"):
            monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("RULEBOT_CONFIG_DIR", str(tmp_path / "config"))
    monkeypatch.setenv("RULEBOT_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("RULEBOT_STATE_DIR", str(tmp_path / "state"))
    yield tmp_path
    # Variables set directly (or by a .env file) are not tracked by monkeypatch
    for var in list(os.environ):
        if var.startswith("RULEBOT_") or var.startswith("TWITCH_"):
            del os.environ[var]


class TestBotConfig:
    """Tests for BotConfig."""

    def test_default_values(self):
        """Test default configuration values."""
        config = BotConfig()
        assert config.transport == "irc"
        assert config.server == "irc.chat.twitch.tv"
        assert config.port == 6697
        assert config.tls is True

    def test_irc_requires_credentials(self):
        """Test the IRC transport needs a name and a token."""
        with pytest.raises(ConfigError):
            BotConfig(name="", token="abc").validate()
        with pytest.raises(ConfigError):
            BotConfig(name="mybot", token="").validate()

    def test_memory_transport_needs_no_credentials(self):
        """Test the memory transport validates without credentials."""
        BotConfig(transport="memory").validate()  # Should not raise

    def test_invalid_transport(self):
        """Test an unknown transport raises error."""
        with pytest.raises(ConfigError):
            BotConfig(transport="carrier-pigeon").validate()


class TestBehaviorConfig:
    """Tests for BehaviorConfig."""

    def test_default_values(self):
        """Test default configuration values."""
        config = BehaviorConfig()
        assert config.passive_advice_interval == 10800
        assert config.backoff_advice_interval == 86400
        assert config.cooldown_min == 1200
        assert config.cooldown_max == 1800
        assert config.repeat_limit == 200

    def test_validation_reversed_cooldown(self):
        """Test min above max raises error."""
        with pytest.raises(ConfigError):
            BehaviorConfig(cooldown_min=10, cooldown_max=5).validate()

    def test_validation_negative_cooldown(self):
        """Test negative bounds raise error."""
        with pytest.raises(ConfigError):
            BehaviorConfig(cooldown_min=-1).validate()


class TestOtherSections:
    """Tests for the smaller sections."""

    def test_snapshot_name_must_be_a_file_name(self):
        with pytest.raises(ConfigError):
            PersistenceConfig(snapshot_name="../state.json").validate()

    def test_supervisor_rejects_negative_values(self):
        with pytest.raises(ConfigError):
            SupervisorConfig(max_backoff_seconds=-1).validate()

    def test_web_port_range(self):
        with pytest.raises(ConfigError):
            UIConfig(web_port=70000).validate()


class TestConfig:
    """Tests for main Config class."""

    def test_default_values(self):
        """Test default configuration values."""
        config = Config()
        assert config.app_name == "Rulebot"
        assert config.bot is not None
        assert config.behavior is not None

    def test_to_dict_hides_token(self):
        """Test the token never ends up in exported config."""
        config = Config()
        config.bot.token = "secret"
        d = config.to_dict()
        assert "bot" in d
        assert "token" not in d["bot"]
        assert "secret" not in str(d)

    def test_snapshot_path(self):
        config = Config()
        config.paths.state_dir = "/tmp/rulebot"
        assert config.snapshot_path == Path("/tmp/rulebot/state.json")


class TestLoadConfig:
    """Tests for load_config."""

    def test_defaults_from_environment_dirs(self, clean_env):
        """Test directories resolve from the environment."""
        os.environ["TWITCH_NAME"] = "mybot"
        os.environ["TWITCH_TOKEN"] = "abc"
        config = load_config()
        assert config.bot.name == "mybot"
        assert config.bot.token == "abc"
        assert config.paths.data_dir == str(clean_env / "data")
        assert config.paths.log_dir == str(clean_env / "state" / "logs")

    def test_yaml_values(self, clean_env):
        """Test YAML values override defaults."""
        path = clean_env / "custom.yaml"
        path.write_text(
            "bot:\n"
            "  transport: memory\n"
            "behavior:\n"
            "  cooldown_min: 5\n"
            "  cooldown_max: 10\n"
            "persistence:\n"
            "  save_interval: 30\n",
            encoding="utf-8"
        )
        config = load_config(str(path))
        assert config.bot.transport == "memory"
        assert config.behavior.cooldown_min == 5
        assert config.persistence.save_interval == 30

    def test_env_overrides_yaml(self, clean_env):
        """Test environment variables win over YAML."""
        path = clean_env / "custom.yaml"
        path.write_text("bot:\n  transport: memory\nui:\n  web_port: 8000\n", encoding="utf-8")
        os.environ["RULEBOT_UI_WEB_PORT"] = "9000"
        os.environ["RULEBOT_BEHAVIOR_PASSIVE_MESSAGES"] = "false"
        config = load_config(str(path))
        assert config.ui.web_port == 9000
        assert config.behavior.passive_messages is False

    def test_missing_explicit_file(self, clean_env):
        """Test an explicit path that does not exist raises error."""
        with pytest.raises(ConfigError):
            load_config(str(clean_env / "nope.yaml"))

    def test_malformed_yaml(self, clean_env):
        """Test unparseable YAML raises error."""
        path = clean_env / "bad.yaml"
        path.write_text("bot: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_config(str(path))

    def test_bad_env_number(self, clean_env):
        """Test a non-numeric override raises error."""
        os.environ["RULEBOT_BOT_TRANSPORT"] = "memory"
        os.environ["RULEBOT_BOT_PORT"] = "not-a-port"
        with pytest.raises(ConfigError):
            load_config()

    def test_env_file(self, clean_env):
        """Test credentials are read from a .env file in the config dir."""
        config_dir = clean_env / "config"
        config_dir.mkdir()
        (config_dir / ".env").write_text("TWITCH_NAME=envbot\nTWITCH_TOKEN=xyz\n", encoding="utf-8")
        config = load_config()
        assert config.bot.name == "envbot"
        assert config.bot.token == "xyz"

    def test_save_and_reload(self, clean_env):
        """Test saved configuration loads back."""
        config = Config()
        config.bot.transport = "memory"
        config.behavior.repeat_limit = 50
        path = clean_env / "saved.yaml"
        save_config(config, str(path))

        loaded = load_config(str(path))
        assert loaded.behavior.repeat_limit == 50


# Run tests if executed directly
if __name__ == "__main__":
    pytest.main([__file__, "-v"])
