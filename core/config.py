"""
Configuration Management - YAML-based configuration with environment overrides
=============================================================================

This module handles all configuration aspects including:
- Loading from YAML files
- Environment variable overrides (including a ``.env`` file)
- Default values
- Configuration validation

The rule files themselves (``*.list`` and ``*.map``) are not handled
here; see ``rules.compiler``.
"""

import os
import yaml
from pathlib import Path
from typing import Any, Dict, Optional, List
from dataclasses import dataclass, field, asdict

from .exceptions import ConfigError


TWITCH_CAPABILITIES = [
    "twitch.tv/membership",
    "twitch.tv/tags",
    "twitch.tv/commands",
]


@dataclass
class BotConfig:
    """
    Chat identity and transport settings.

    ``name`` doubles as the bot identity substituted for ``{me}``
    in templates.
    """
    name: str = ""
    token: str = ""  # Loaded from environment
    transport: str = "irc"  # irc, memory

    # IRC server settings
    server: str = "irc.chat.twitch.tv"
    port: int = 6697
    tls: bool = True
    capabilities: List[str] = field(default_factory=lambda: list(TWITCH_CAPABILITIES))

    def validate(self) -> None:
        """Validate bot configuration."""
        if self.transport not in ["irc", "memory"]:
            raise ConfigError(f"Invalid transport: {self.transport}")

        if self.port < 1 or self.port > 65535:
            raise ConfigError(f"Invalid IRC port: {self.port}")

        if self.transport == "irc":
            if not self.name:
                raise ConfigError("Bot name is required, please set `TWITCH_NAME`")
            if not self.token:
                raise ConfigError("OAuth token is required, please set `TWITCH_TOKEN`")


@dataclass
class PathsConfig:
    """
    Filesystem locations.

    - config_dir: ``channels.list`` and ``commands.map``
    - data_dir: ``*.list``, ``triggers.map`` and ``commands_text.map``
    - state_dir: the snapshot and its temp files
    """
    config_dir: str = ""
    data_dir: str = ""
    state_dir: str = ""
    log_dir: str = ""


@dataclass
class BehaviorConfig:
    """
    Response behavior.

    The three switches turn whole classes of outgoing messages on or off.
    Intervals are in seconds.
    """
    passive_messages: bool = True
    trigger_messages: bool = True
    command_messages: bool = True

    passive_advice_interval: float = 60 * 60 * 3   # 3h
    backoff_advice_interval: float = 60 * 60 * 24  # 24h

    # Default re-speak cooldown range for new channels
    cooldown_min: float = 1200
    cooldown_max: float = 1800

    repeat_limit: int = 200

    def validate(self) -> None:
        """Validate behavior configuration."""
        if self.cooldown_min < 0 or self.cooldown_max < 0:
            raise ConfigError("Cooldown bounds cannot be negative")

        if self.cooldown_min > self.cooldown_max:
            raise ConfigError(
                f"cooldown_min ({self.cooldown_min}) must not exceed cooldown_max ({self.cooldown_max})"
            )

        if self.passive_advice_interval <= 0 or self.backoff_advice_interval <= 0:
            raise ConfigError("Advice intervals must be positive")

        if self.repeat_limit < 0:
            raise ConfigError("repeat_limit cannot be negative")


@dataclass
class PersistenceConfig:
    """Snapshot settings."""
    save_interval: float = 60.0
    snapshot_name: str = "state.json"
    prune_unconfigured_channels: bool = False

    def validate(self) -> None:
        if self.save_interval < 0:
            raise ConfigError("save_interval cannot be negative")
        if not self.snapshot_name or "/" in self.snapshot_name:
            raise ConfigError(f"Invalid snapshot name: {self.snapshot_name!r}")


@dataclass
class SupervisorConfig:
    """
    Reconnect policy.

    A session that starts within ``stable_window`` seconds of the previous
    one counts as a failure. The sleep before reconnecting is
    ``2 ** failures`` seconds, capped at ``max_backoff_seconds``
    (0 disables the cap).
    """
    stable_window: float = 60 * 60
    max_backoff_seconds: float = 60 * 60

    def validate(self) -> None:
        if self.stable_window < 0:
            raise ConfigError("stable_window cannot be negative")
        if self.max_backoff_seconds < 0:
            raise ConfigError("max_backoff_seconds cannot be negative")


@dataclass
class UIConfig:
    """Status web API settings."""
    web_enabled: bool = False
    web_host: str = "127.0.0.1"
    web_port: int = 8080

    def validate(self) -> None:
        if self.web_port < 1 or self.web_port > 65535:
            raise ConfigError(f"Invalid web port: {self.web_port}")


@dataclass
class LoggingConfig:
    level: str = "INFO"
    json: bool = False

    def validate(self) -> None:
        if self.level.upper() not in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
            raise ConfigError(f"Invalid log level: {self.level}")


@dataclass
class Config:
    """
    Main configuration container.

    Aggregates all configuration sections into a single object
    and provides methods for validating and exporting.
    """
    app_name: str = "Rulebot"
    version: str = "1.0.0"
    debug: bool = False

    bot: BotConfig = field(default_factory=BotConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)
    behavior: BehaviorConfig = field(default_factory=BehaviorConfig)
    persistence: PersistenceConfig = field(default_factory=PersistenceConfig)
    supervisor: SupervisorConfig = field(default_factory=SupervisorConfig)
    ui: UIConfig = field(default_factory=UIConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def validate(self) -> None:
        """
        Validate all configuration sections.

        Raises:
            ConfigError: If any configuration section is invalid
        """
        self.bot.validate()
        self.behavior.validate()
        self.persistence.validate()
        self.supervisor.validate()
        self.ui.validate()
        self.logging.validate()

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary, without the token."""
        bot = asdict(self.bot)
        bot.pop("token", None)
        return {
            "app_name": self.app_name,
            "version": self.version,
            "debug": self.debug,
            "bot": bot,
            "paths": asdict(self.paths),
            "behavior": asdict(self.behavior),
            "persistence": asdict(self.persistence),
            "supervisor": asdict(self.supervisor),
            "ui": asdict(self.ui),
            "logging": asdict(self.logging),
        }

    @property
    def snapshot_path(self) -> Path:
        return Path(self.paths.state_dir) / self.persistence.snapshot_name


SECTIONS = ["bot", "paths", "behavior", "persistence", "supervisor", "ui", "logging"]


def get_default_config_dir() -> Path:
    """
    Get the default configuration directory path.

    Order: ``RULEBOT_CONFIG_DIR``, ``$XDG_CONFIG_HOME/rulebot``,
    then ``./config`` under the working directory.
    """
    if "RULEBOT_CONFIG_DIR" in os.environ:
        return Path(os.environ["RULEBOT_CONFIG_DIR"])

    if "XDG_CONFIG_HOME" in os.environ:
        return Path(os.environ["XDG_CONFIG_HOME"]) / "rulebot"

    return Path.cwd() / "config"


def get_default_data_dir() -> Path:
    """
    Get the default data directory path (lists and trigger maps).

    Order: ``RULEBOT_DATA_DIR``, ``$XDG_DATA_HOME/rulebot``,
    then ``./data`` under the working directory.
    """
    if "RULEBOT_DATA_DIR" in os.environ:
        return Path(os.environ["RULEBOT_DATA_DIR"])

    if "XDG_DATA_HOME" in os.environ:
        return Path(os.environ["XDG_DATA_HOME"]) / "rulebot"

    return Path.cwd() / "data"


def get_default_state_dir() -> Path:
    """Get the default state directory (``RULEBOT_STATE_DIR`` or ``~/rulebot``)."""
    if "RULEBOT_STATE_DIR" in os.environ:
        return Path(os.environ["RULEBOT_STATE_DIR"])

    return Path.home() / "rulebot"


def load_config(config_path: Optional[str] = None, load_env: bool = True) -> Config:
    """
    Load configuration from YAML file with environment variable overrides.

    This function loads configuration in the following order:
    1. Default values from dataclass
    2. Values from YAML file
    3. Environment variable overrides

    Args:
        config_path: Path to configuration file (optional)
        load_env: Whether to load environment variable overrides

    Returns:
        Config object with loaded values

    Raises:
        ConfigError: If configuration is invalid or cannot be loaded
    """
    config = Config()

    config.paths.config_dir = str(get_default_config_dir())
    config.paths.data_dir = str(get_default_data_dir())
    config.paths.state_dir = str(get_default_state_dir())

    if load_env:
        _load_env_file(Path(config.paths.config_dir) / ".env")

    if config_path:
        yaml_path = Path(config_path)
        if not yaml_path.exists():
            raise ConfigError("Config file not found", {"path": str(yaml_path)})
    else:
        yaml_path = Path(config.paths.config_dir) / "config.yaml"

    if yaml_path.exists():
        try:
            with open(yaml_path, "r", encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse config file: {e}", {"path": str(yaml_path)})
        except IOError as e:
            raise ConfigError(f"Failed to read config file: {e}", {"path": str(yaml_path)})

        if not isinstance(yaml_config, dict):
            raise ConfigError("Config file must contain a mapping", {"path": str(yaml_path)})

        _apply_yaml_config(config, yaml_config)

    if load_env:
        _apply_env_overrides(config)

    if not config.paths.log_dir:
        config.paths.log_dir = str(Path(config.paths.state_dir) / "logs")

    config.validate()

    return config


def _load_env_file(env_file: Path) -> None:
    """Export ``KEY=value`` lines from a .env file, without overriding the environment."""
    if not env_file.exists():
        return

    try:
        with open(env_file, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#") and "=" in line:
                    key, value = line.split("=", 1)
                    if key and value and key not in os.environ:
                        os.environ[key] = value
    except IOError as e:
        raise ConfigError(f"Failed to read .env file: {e}", {"path": str(env_file)})


def _apply_yaml_config(config: Config, yaml_config: Dict[str, Any]) -> None:
    """
    Apply YAML configuration values to Config object.

    Unknown keys are ignored; a section that is not a mapping is an error.
    """
    for key in ("app_name", "version", "debug"):
        if key in yaml_config:
            setattr(config, key, yaml_config[key])

    for section in SECTIONS:
        if section not in yaml_config:
            continue

        values = yaml_config[section] or {}
        if not isinstance(values, dict):
            raise ConfigError(f"Config section '{section}' must be a mapping")

        section_obj = getattr(config, section)
        for key, value in values.items():
            if hasattr(section_obj, key):
                setattr(section_obj, key, value)


def _apply_env_overrides(config: Config) -> None:
    """
    Apply environment variable overrides to Config object.

    Environment variables follow the pattern: RULEBOT_SECTION_KEY,
    for example RULEBOT_BOT_NAME or RULEBOT_UI_WEB_PORT. The Twitch
    variables ``TWITCH_NAME`` and ``TWITCH_TOKEN`` are also honored.
    """
    env_mappings = {
        # Legacy credentials
        "TWITCH_NAME": ("bot", "name"),
        "TWITCH_TOKEN": ("bot", "token"),

        # Bot settings
        "RULEBOT_BOT_NAME": ("bot", "name"),
        "RULEBOT_BOT_TOKEN": ("bot", "token"),
        "RULEBOT_BOT_TRANSPORT": ("bot", "transport"),
        "RULEBOT_BOT_SERVER": ("bot", "server"),
        "RULEBOT_BOT_PORT": ("bot", "port", int),
        "RULEBOT_BOT_TLS": ("bot", "tls", bool),

        # Behavior switches
        "RULEBOT_BEHAVIOR_PASSIVE_MESSAGES": ("behavior", "passive_messages", bool),
        "RULEBOT_BEHAVIOR_TRIGGER_MESSAGES": ("behavior", "trigger_messages", bool),
        "RULEBOT_BEHAVIOR_COMMAND_MESSAGES": ("behavior", "command_messages", bool),

        # Persistence
        "RULEBOT_PERSISTENCE_SAVE_INTERVAL": ("persistence", "save_interval", float),

        # UI settings
        "RULEBOT_UI_WEB_ENABLED": ("ui", "web_enabled", bool),
        "RULEBOT_UI_WEB_HOST": ("ui", "web_host"),
        "RULEBOT_UI_WEB_PORT": ("ui", "web_port", int),

        # Logging
        "RULEBOT_LOG_LEVEL": ("logging", "level"),
    }

    for env_var, mapping in env_mappings.items():
        value = os.environ.get(env_var)
        if value is None:
            continue

        section, key = mapping[0], mapping[1]
        converter = mapping[2] if len(mapping) > 2 else str
        section_obj = getattr(config, section)

        if converter == bool:
            converted = value.lower() in ("true", "1", "yes", "on")
        else:
            try:
                converted = converter(value)
            except ValueError:
                raise ConfigError(f"Invalid value for {env_var}: {value!r}")

        setattr(section_obj, key, converted)


def save_config(config: Config, config_path: Optional[str] = None) -> None:
    """
    Save configuration to YAML file.

    Raises:
        ConfigError: If configuration cannot be saved
    """
    if config_path:
        yaml_path = Path(config_path)
    else:
        yaml_path = Path(config.paths.config_dir) / "config.yaml"

    yaml_path.parent.mkdir(parents=True, exist_ok=True)

    try:
        with open(yaml_path, "w", encoding="utf-8") as f:
            yaml.dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)
    except IOError as e:
        raise ConfigError(f"Failed to save config file: {e}", {"path": str(yaml_path)})


def create_default_config(config_dir: Optional[str] = None) -> Config:
    """
    Create a default configuration file and the directory layout.

    Writes ``config.yaml`` plus empty ``channels.list`` and ``commands.map``
    files when they do not exist yet.
    """
    config = Config()
    config.bot.transport = "memory"

    base = Path(config_dir) if config_dir else get_default_config_dir()
    config.paths.config_dir = str(base)
    config.paths.data_dir = str(get_default_data_dir())
    config.paths.state_dir = str(get_default_state_dir())
    config.paths.log_dir = str(Path(config.paths.state_dir) / "logs")

    for directory in (config.paths.config_dir, config.paths.data_dir, config.paths.state_dir):
        Path(directory).mkdir(parents=True, exist_ok=True)

    for name in ("channels.list", "commands.map"):
        path = base / name
        if not path.exists():
            path.write_text("", encoding="utf-8")

    save_config(config)

    return config
