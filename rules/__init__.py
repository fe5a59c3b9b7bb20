"""
Rules Module - Config-driven triggers, commands and templates
=============================================================

This module turns the bot's plain-text configuration into lookup tables
and renders responses from them:
- Named lists and ``key=value`` map files
- Single-token and multi-word triggers
- Command and canned-phrase tables
- Two-pass template substitution
"""

from .compiler import (
    CompiledMap,
    ListRef,
    LiteralValue,
    MultiTrigger,
    RuleSet,
    RuleValue,
    compile_map,
    load_channels,
    load_lists,
    load_rule_set,
    parse_list,
)
from .templates import ReplyContext, TemplateEngine, subst_global

__all__ = [
    "CompiledMap",
    "ListRef",
    "LiteralValue",
    "MultiTrigger",
    "RuleSet",
    "RuleValue",
    "compile_map",
    "load_channels",
    "load_lists",
    "load_rule_set",
    "parse_list",
    "ReplyContext",
    "TemplateEngine",
    "subst_global",
]
