"""
Messenger - Throttled and forced sends
======================================

Every outgoing chat message goes through here so the channel state is
updated consistently:
- ``send`` respects the channel cooldown (and the direct-message override)
- ``force_send`` always transmits

A successful transmission sets the dedup flag, resets both the cooldown
and the passive-advice clocks, and clears the override.
"""

import random
import time
from typing import Callable, Optional

from core.logging import get_logger
from core.state import ChannelState
from transport.base import BaseTransport

logger = get_logger("services.messenger")


class Messenger:
    """
    Sends messages to channels on behalf of the dispatcher.

    Attributes:
        transport (BaseTransport): Where messages go
        clock (callable): Returns the current epoch seconds
        rng (random.Random): Randomness for cooldown draws
        sent_count (int): Messages transmitted since creation
    """

    def __init__(
        self,
        transport: BaseTransport,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None
    ):
        self.transport = transport
        self.clock = clock
        self.rng = rng or random.Random()
        self.sent_count = 0

    async def send(self, channel: ChannelState, text: str) -> bool:
        """
        Send unless the channel is still cooling down.

        Returns:
            True if the message was transmitted
        """
        if not text:
            return False

        result = channel.check_send(self.clock(), self.rng)
        if not result.allowed:
            logger.debug(
                f"Suppressed by cooldown ({result.retry_after:.0f}s left): {text!r}"
            )
            return False

        await self._transmit(channel, text)
        return True

    async def force_send(self, channel: ChannelState, text: str) -> bool:
        """
        Send regardless of the cooldown.

        Returns:
            True if the message was transmitted (False only for empty text)
        """
        if not text:
            return False
        await self._transmit(channel, text)
        return True

    async def _transmit(self, channel: ChannelState, text: str) -> None:
        await self.transport.send(channel.channel_name, text)
        channel.mark_sent(self.clock())
        self.sent_count += 1
        logger.info(f"Sent: {text}")
