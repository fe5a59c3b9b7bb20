"""
Rule Compiler - Turns list and map files into lookup tables
===========================================================

Two plain-text formats feed the bot.

List files (``<name>.list``), one entry per line::

    - lines starting with a dash are comments
    hello
    good morning

Map files (``triggers.map``, ``commands.map``, ``commands_text.map``), one
``key=value`` pair per line. Only the first ``=`` splits the line::

    - comment
    hello=hi {user}!                 literal response
    bye=[farewells                   random item of farewells.list
    [greetings=[greetings            one key per item of greetings.list
    cpp bad={user} is right          multi-trigger: every word must appear
    !cd=CONFIG                       command mnemonic (commands.map)

Keys are stored exactly as written while incoming tokens are lower-cased,
so a key containing capitals can never match.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

from core.exceptions import ConfigError
from core.logging import get_logger

from .templates import subst_global

logger = get_logger("rules.compiler")

TRIGGERS_FILE = "triggers.map"
COMMANDS_FILE = "commands.map"
COMMANDS_TEXT_FILE = "commands_text.map"
CHANNELS_FILE = "channels.list"

LIST_SUFFIX = ".list"
MAX_MULTI_SLOTS = 4

PASSIVE_ADVICE_LIST = "passive_advice"
QUESTIONS_LIST = "questions"


@dataclass(frozen=True)
class LiteralValue:
    """Respond with this template."""
    text: str


@dataclass(frozen=True)
class ListRef:
    """Respond with a random template from the named list."""
    name: str


RuleValue = Union[LiteralValue, ListRef]


@dataclass(frozen=True)
class MultiTrigger:
    """
    A trigger that needs several substrings present at once.

    Attributes:
        slots (tuple): Two to four substrings, in declaration order
        value (RuleValue): Response when every slot matches
    """
    slots: Tuple[str, ...]
    value: RuleValue

    @property
    def trigger(self) -> str:
        return " ".join(self.slots)


@dataclass
class CompiledMap:
    """Output of compiling one map file."""
    multi_triggers: List[MultiTrigger] = field(default_factory=list)
    table: Dict[str, RuleValue] = field(default_factory=dict)


@dataclass
class RuleSet:
    """
    Everything the dispatcher looks things up in.

    Attributes:
        lists (dict): Named lists, immutable tuples
        triggers (dict): Single-token triggers
        multi_triggers (list): Multi-triggers in declaration order
        commands (dict): Command name to mnemonic
        command_text (dict): Whole message to canned response
    """
    lists: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    triggers: Dict[str, RuleValue] = field(default_factory=dict)
    multi_triggers: List[MultiTrigger] = field(default_factory=list)
    commands: Dict[str, RuleValue] = field(default_factory=dict)
    command_text: Dict[str, RuleValue] = field(default_factory=dict)

    def mnemonics(self) -> List[str]:
        """Mnemonics used by the command table."""
        return [
            value.text.split()[0]
            for value in self.commands.values()
            if isinstance(value, LiteralValue) and value.text.split()
        ]

    def validate(self, passive_messages: bool = True) -> None:
        """
        Check that lists required by the configured behavior exist.

        Raises:
            ConfigError: If a required list is missing or empty
        """
        required = set()
        if passive_messages:
            required.add(PASSIVE_ADVICE_LIST)

        mnemonics = set(self.mnemonics())
        if "RANDOM_STATEMENT" in mnemonics:
            required.add(PASSIVE_ADVICE_LIST)
        if "RANDOM_QUESTION" in mnemonics:
            required.add(QUESTIONS_LIST)

        for name in sorted(required):
            if not self.lists.get(name):
                raise ConfigError(
                    f"Required list '{name}' is missing or empty",
                    {"expected_file": f"{name}{LIST_SUFFIX}"}
                )

    def summary(self) -> Dict[str, int]:
        return {
            "lists": len(self.lists),
            "triggers": len(self.triggers),
            "multi_triggers": len(self.multi_triggers),
            "commands": len(self.commands),
            "command_text": len(self.command_text),
        }


def parse_list(contents: str) -> Tuple[str, ...]:
    """
    Parse a list file: one entry per non-empty line, ``-`` starts a comment.
    """
    return tuple(
        line for line in contents.splitlines()
        if line and not line.startswith("-")
    )


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigError(f"Missing configuration file: {path.name}", {"path": str(path)})
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"Failed to read {path.name}: {e}", {"path": str(path)})


def load_lists(directory: Union[str, Path]) -> Dict[str, Tuple[str, ...]]:
    """
    Load every ``*.list`` file of a directory, keyed by file stem.

    Raises:
        ConfigError: If the directory does not exist or a file is unreadable
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise ConfigError("Data directory not found", {"path": str(directory)})

    lists = {}
    for path in sorted(directory.glob(f"*{LIST_SUFFIX}")):
        lists[path.stem] = parse_list(_read_text(path))
        logger.debug(f"Loaded list '{path.stem}' with {len(lists[path.stem])} entries")

    return lists


def load_channels(config_dir: Union[str, Path]) -> List[str]:
    """Load the configured channel names, without a leading ``#``."""
    entries = parse_list(_read_text(Path(config_dir) / CHANNELS_FILE))
    return [entry.strip().lstrip("#") for entry in entries if entry.strip()]


def _strip_brackets(text: str) -> str:
    """``[name`` and ``[name]`` both name the list ``name``."""
    name = text[1:]
    if name.endswith("]"):
        name = name[:-1]
    return name


def parse_value(value: str, identity: str) -> RuleValue:
    """Parse the right-hand side of a map line."""
    if value.startswith("["):
        return ListRef(_strip_brackets(value))
    return LiteralValue(subst_global(value, identity))


def _expand_key(key: str, lists: Mapping[str, Sequence[str]], line_number: int) -> Sequence[str]:
    if not key.startswith("["):
        return (key,)

    name = _strip_brackets(key)
    if name not in lists:
        raise ConfigError(
            f"Map key references unknown list '{name}'",
            {"line": line_number, "key": key}
        )
    return lists[name]


def _multi_trigger(key: str, value: RuleValue, line_number: int) -> Optional[MultiTrigger]:
    parts = key.split()
    if len(parts) < 2:
        logger.warning(f"Ignoring multi-trigger with fewer than two words on line {line_number}: {key!r}")
        return None
    if len(parts) > MAX_MULTI_SLOTS:
        logger.warning(
            f"Multi-trigger on line {line_number} has {len(parts)} words, "
            f"only the first {MAX_MULTI_SLOTS} are used"
        )
    return MultiTrigger(slots=tuple(parts[:MAX_MULTI_SLOTS]), value=value)


def compile_map(
    contents: str,
    lists: Mapping[str, Sequence[str]],
    identity: str = "",
    split_multi: bool = True
) -> CompiledMap:
    """
    Compile a map file.

    Args:
        contents: Map file text
        lists: Already loaded named lists, for ``[name`` keys
        identity: Bot identity substituted for ``{me}`` at load time
        split_multi: Turn keys containing a space into multi-triggers;
            when False they are kept whole as table keys

    Returns:
        CompiledMap with the multi-triggers and the single-key table

    Raises:
        ConfigError: If a key references a list that does not exist
    """
    compiled = CompiledMap()

    for line_number, line in enumerate(contents.splitlines(), start=1):
        meta_key, separator, raw_value = line.partition("=")
        if not separator or not meta_key or not raw_value:
            continue
        if meta_key.startswith("-"):
            continue

        value = parse_value(raw_value, identity)

        for key in _expand_key(meta_key, lists, line_number):
            if split_multi and " " in key:
                multi = _multi_trigger(key, value, line_number)
                if multi is not None:
                    compiled.multi_triggers.append(multi)
                continue

            if "{" in key:
                logger.debug(f"Dropping key with placeholder on line {line_number}: {key!r}")
                continue

            key = subst_global(key, identity)
            if key in compiled.table:
                logger.debug(f"Key {key!r} redefined on line {line_number}")
            compiled.table[key] = value

    return compiled


def load_rule_set(config_dir: Union[str, Path], data_dir: Union[str, Path], identity: str) -> RuleSet:
    """
    Load lists and all three map files.

    ``triggers.map`` and ``commands_text.map`` live next to the lists in the
    data directory; ``commands.map`` lives in the config directory. Only
    ``triggers.map`` contributes multi-triggers; canned phrases in
    ``commands_text.map`` keep their spaces.

    Raises:
        ConfigError: On any missing file or unknown list reference
    """
    data_dir = Path(data_dir)
    lists = load_lists(data_dir)

    triggers = compile_map(_read_text(data_dir / TRIGGERS_FILE), lists, identity)
    command_text = compile_map(
        _read_text(data_dir / COMMANDS_TEXT_FILE), lists, identity, split_multi=False
    )
    commands = compile_map(_read_text(Path(config_dir) / COMMANDS_FILE), lists, identity)

    rule_set = RuleSet(
        lists=lists,
        triggers=triggers.table,
        multi_triggers=triggers.multi_triggers,
        commands=commands.table,
        command_text=command_text.table,
    )

    logger.info("Rules compiled", extra=rule_set.summary())
    return rule_set
