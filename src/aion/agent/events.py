"""Bounded, strictly ordered channel between the orchestrator and its observers."""

import asyncio
import logging
from typing import List

from aion.core.schema import (
    BusyEvent,
    Event,
    FinishedEvent,
    Message,
    MessageEvent,
    SessionOutcome,
)

logger = logging.getLogger(__name__)


class EventChannel:
    """
    FIFO of observer events.

    The orchestrator is the only writer and never waits on it.  The queue is bounded: when
    observers fall behind, the oldest event is dropped to make room, so a turn loop cannot stall
    on an absent reader.  Surviving events keep their order; nothing is batched or coalesced.
    """

    def __init__(self, maxsize: int = 256) -> None:
        self._queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def publish(self, event: Event) -> None:
        """Append *event*, evicting the oldest one if the channel is full."""
        while True:
            try:
                self._queue.put_nowait(event)
                return
            except asyncio.QueueFull:
                self._queue.get_nowait()
                self.dropped += 1
                if self.dropped == 1 or self.dropped % 100 == 0:
                    logger.warning("Event channel full; %d events dropped so far", self.dropped)

    def message(self, message: Message) -> None:
        """Publish a read-only copy of *message*."""
        self.publish(MessageEvent(message=message.model_copy(deep=True)))

    def busy(self, busy: bool) -> None:
        """Publish a busy/idle toggle."""
        self.publish(BusyEvent(busy=busy))

    def finished(self, outcome: SessionOutcome) -> None:
        """Publish the terminal outcome of a turn loop."""
        self.publish(FinishedEvent(outcome=outcome))

    async def get(self) -> Event:
        """Wait for the next event."""
        return await self._queue.get()

    def drain(self) -> List[Event]:
        """Return every event available right now without waiting."""
        events: List[Event] = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                return events

    async def wait(self, timeout: float) -> List[Event]:
        """Long-poll: wait up to *timeout* seconds for one event, then drain the rest."""
        try:
            first = await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return []
        return [first] + self.drain()
