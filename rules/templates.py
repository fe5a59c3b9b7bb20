"""
Template Engine - Placeholder substitution for responses
========================================================

Responses are plain text with ``{name}`` placeholders, resolved in two
passes that always run in this order:

1. List substitution: ``{list_name}`` becomes a random item of that list.
2. Context substitution: ``{trigger}``, ``{trigger_message}``, ``{user}``,
   ``{channel}`` and ``{me}`` become values of the current message.

Each pass scans its input once; text inserted by a replacement is not
scanned again by the same pass. Unknown placeholders are left as they are.
"""

import random
import re
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Sequence

# From "{" to the nearest "}" after it
SPAN_PATTERN = re.compile(r"\{[^}]*\}")
CONTEXT_PATTERN = re.compile(r"\{(trigger_message|trigger|user|channel)\}")


def subst_global(text: str, identity: str) -> str:
    """
    Replace ``{me}`` with the bot identity.

    Applied once to rule values at load time, and again after context
    substitution at reply time. Idempotent.
    """
    if "{" not in text:
        return text
    return text.replace("{me}", identity)


@dataclass
class ReplyContext:
    """
    Values available to context substitution.

    Attributes:
        user (str): Speaking user
        channel (str): Channel name without ``#``
        trigger (str): Text that fired the response
        trigger_message (str): The full incoming message
    """
    user: str
    channel: str
    trigger: str = ""
    trigger_message: str = ""

    def as_dict(self, identity: str) -> Dict[str, str]:
        return {
            "trigger": self.trigger,
            "trigger_message": self.trigger_message,
            "user": self.user,
            "channel": self.channel,
            "me": identity,
        }


class TemplateEngine:
    """
    Renders response templates against named lists and a reply context.

    The randomness source is injected so tests can replay picks.

    Example:
        engine = TemplateEngine({"greetings": ("hi", "hello")}, "mybot", random.Random(1))
        ctx = ReplyContext(user="alice", channel="somechannel")
        engine.render("{greetings} {user}, I am {me}", ctx)  # e.g. "hi alice, I am mybot"
    """

    def __init__(
        self,
        lists: Mapping[str, Sequence[str]],
        identity: str,
        rng: Optional[random.Random] = None
    ):
        self.lists = lists
        self.identity = identity
        self.rng = rng or random.Random()

    def pick(self, list_name: str) -> Optional[str]:
        """Uniformly pick one item of a named list, or None if unknown or empty."""
        items = self.lists.get(list_name)
        if not items:
            return None
        return items[self.rng.randrange(len(items))]

    def substitute_lists(self, text: str) -> str:
        """
        First pass: replace ``{list_name}`` spans with random list items.

        Every span gets its own pick; ``{}`` and unknown names are kept.
        """
        if "{" not in text:
            return text

        def replace(match: re.Match) -> str:
            span = match.group(0)
            if len(span) < 3:
                return span
            item = self.pick(span[1:-1])
            return span if item is None else item

        return SPAN_PATTERN.sub(replace, text)

    def substitute_context(self, text: str, context: ReplyContext) -> str:
        """
        Second pass: replace the per-message placeholders in one scan,
        then ``{me}`` across the result (including text the scan inserted).
        """
        if "{" not in text:
            return text

        values = context.as_dict(self.identity)
        text = CONTEXT_PATTERN.sub(lambda match: values[match.group(1)], text)
        return subst_global(text, self.identity)

    def render(self, template: str, context: ReplyContext) -> str:
        """Run both passes in order."""
        return self.substitute_context(self.substitute_lists(template), context)
