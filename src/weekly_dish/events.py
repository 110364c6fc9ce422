"""
In-process event bus for plan/shopping-list notifications.

Consumers subscribe to shopping-list changes instead of polling storage.
Subscriptions are either callbacks (sync or async) or async iterators backed
by an asyncio.Queue. A trailing "*" in a subscription matches any channel
with that prefix, e.g. "shopping_list.*".

Limitations:
- Single process only
- Messages published with no subscribers are dropped
"""

import asyncio
import inspect
import logging
from collections import defaultdict
from typing import AsyncGenerator, Awaitable, Callable, Dict, List, Set, Union

logger = logging.getLogger(__name__)

SHOPPING_LIST_INVALIDATED = "shopping_list.invalidated"
SHOPPING_LIST_REGENERATED = "shopping_list.regenerated"

Listener = Callable[[str, dict], Union[None, Awaitable[None]]]


class EventBus:
    """Publish/subscribe over named channels."""

    def __init__(self):
        # pattern -> subscribers
        self._queues: Dict[str, Set[asyncio.Queue]] = defaultdict(set)
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)

    @staticmethod
    def _matches_pattern(pattern: str, channel: str) -> bool:
        """Check if a channel matches a glob pattern."""
        if pattern.endswith("*"):
            return channel.startswith(pattern[:-1])
        return pattern == channel

    def add_listener(self, pattern: str, callback: Listener) -> Callable[[], None]:
        """
        Register a callback invoked as callback(channel, message).

        Returns:
            A function that removes the listener
        """
        self._listeners[pattern].append(callback)
        logger.debug(f"Listener added for {pattern}")

        def remove() -> None:
            if callback in self._listeners.get(pattern, []):
                self._listeners[pattern].remove(callback)
                logger.debug(f"Listener removed for {pattern}")

        return remove

    async def publish(self, channel: str, message: dict) -> int:
        """
        Publish a message to a channel.

        A failing listener is logged and does not stop delivery to others.

        Returns:
            Number of subscribers that received the message
        """
        count = 0
        for pattern, queues in list(self._queues.items()):
            if self._matches_pattern(pattern, channel):
                for queue in list(queues):
                    await queue.put({**message, "_channel": channel})
                    count += 1

        for pattern, listeners in list(self._listeners.items()):
            if not self._matches_pattern(pattern, channel):
                continue
            for callback in list(listeners):
                try:
                    result = callback(channel, message)
                    if inspect.isawaitable(result):
                        await result
                    count += 1
                except Exception as e:
                    logger.error(f"Listener for {pattern} failed on {channel}: {e}", exc_info=True)

        logger.debug(f"Published to {channel}: {message.get('reason', 'unknown')} ({count} subscribers)")
        return count

    async def subscribe(self, pattern: str) -> AsyncGenerator[dict, None]:
        """
        Yield messages published to channels matching pattern.

        Each yielded message carries the concrete channel under "_channel".
        """
        queue: asyncio.Queue = asyncio.Queue()
        self._queues[pattern].add(queue)
        logger.debug(f"Subscribed to {pattern}")
        try:
            while True:
                yield await queue.get()
        finally:
            self._queues[pattern].discard(queue)
            logger.debug(f"Unsubscribed from {pattern}")

    def subscriber_count(self, channel: str) -> int:
        queues = sum(len(q) for p, q in self._queues.items() if self._matches_pattern(p, channel))
        listeners = sum(len(l) for p, l in self._listeners.items() if self._matches_pattern(p, channel))
        return queues + listeners
