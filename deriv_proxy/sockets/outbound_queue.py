"""
Bounded queue of client-bound messages for one connection
"""
import asyncio
import logging
from collections import deque
from typing import Any, Deque, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class OutboundQueue:
    """
    FIFO buffer between a bridge and its client writer

    When full, the oldest droppable message (a tick) is discarded to make room.
    Non-droppable messages are always queued, even past the bound.
    """
    def __init__(self, max_size: int = 1000):
        self.max_size = max_size
        self.dropped = 0
        self.closed = False
        self._items: Deque[Tuple[Dict[str, Any], bool]] = deque()
        self._ready = asyncio.Event()

    def put(self, message: Dict[str, Any], droppable: bool = False) -> bool:
        """
        Queue a message

        Args:
            message: The wire message
            droppable: True for ticks, which may be discarded on overflow

        Returns:
            False if the message was discarded
        """
        if self.closed:
            return False

        if len(self._items) >= self.max_size and not self._drop_oldest_droppable():
            if droppable:
                self._record_drop()
                return False

        self._items.append((message, droppable))
        self._ready.set()
        return True

    async def get(self) -> Optional[Dict[str, Any]]:
        """Wait for the next message; None once the queue is closed"""
        while not self._items:
            if self.closed:
                return None
            self._ready.clear()
            await self._ready.wait()
        if self.closed:
            return None
        message, _ = self._items.popleft()
        return message

    def close(self):
        self.closed = True
        self._items.clear()
        self._ready.set()

    def _drop_oldest_droppable(self) -> bool:
        for index, (_, droppable) in enumerate(self._items):
            if droppable:
                del self._items[index]
                self._record_drop()
                return True
        return False

    def _record_drop(self):
        self.dropped += 1
        if self.dropped == 1 or self.dropped % 100 == 0:
            logger.warning(f"Outbound queue full, dropped {self.dropped} tick(s) so far")

    def __len__(self) -> int:
        return len(self._items)
