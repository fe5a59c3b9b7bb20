"""
Rulebot - Rule-driven Twitch chat bot
=====================================

A chat bot whose every reply comes from plain-text rule files:
1. Single-word and multi-word triggers with random response pools
2. Chat commands for cooldowns, moods and off-topic timers

State survives restarts through atomic JSON snapshots.

License: MIT
Version: 1.0.0
"""

__version__ = "1.0.0"
__license__ = "MIT"
