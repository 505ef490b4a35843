"""Change feed — pushes fresh snapshots to live subscribers.

A topic is fed by a source: a database watch started with the first
subscriber and stopped with the last, so writes from any process reach
every subscriber. Subscribers (SSE streams, tests) receive each published
snapshot in subscription order. A failing callback is logged and skipped
so one broken listener cannot starve the others.

Topics are plain strings: "users/<uid>" for a learner's profile document,
and the collection name for public collections ("cms_content",
"activities", "layout_settings", "media_assets", "global_settings").

Tier 2 module: stdlib only.

Usage:
    feed = ChangeFeed()
    unsubscribe = feed.subscribe("activities", print)
    feed.publish("activities", [...])
    unsubscribe()
"""

import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

Callback = Callable[[Any], None]
Unsubscribe = Callable[[], None]
Source = Callable[[], Unsubscribe]


def profile_topic(user_id: str) -> str:
    return f"users/{user_id}"


class ChangeFeed:
    """Topic-keyed fan-out of snapshot payloads."""

    def __init__(self) -> None:
        # Per topic: subscription token -> callback. Dicts keep insertion order.
        self._subscribers: dict[str, dict[int, Callback]] = {}
        self._next_token = 0
        self._sources: dict[str, Unsubscribe] = {}

    def subscribe(
        self, topic: str, callback: Callback, *, source: Source | None = None
    ) -> Unsubscribe:
        """Registers callback for topic.

        Args:
            source: Starts whatever feeds the topic, typically a database
                watch that publishes each change. Started once, when the
                topic gains a source-carrying subscriber; the stop function
                it returns runs when the topic's last subscriber leaves.

        Returns:
            An unsubscribe function. Calling it more than once is a no-op.
        """
        token = self._next_token
        self._next_token += 1
        self._subscribers.setdefault(topic, {})[token] = callback

        def unsubscribe() -> None:
            listeners = self._subscribers.get(topic)
            if listeners is None:
                return
            listeners.pop(token, None)
            if not listeners:
                del self._subscribers[topic]
                stop = self._sources.pop(topic, None)
                if stop is not None:
                    stop()
                    logger.debug("Stopped change source for %s", topic)

        if source is not None and topic not in self._sources:
            try:
                self._sources[topic] = source()
            except Exception:
                unsubscribe()
                raise
            logger.debug("Started change source for %s", topic)
        return unsubscribe

    def publish(self, topic: str, payload: Any) -> None:
        """Delivers payload to every current subscriber of topic."""
        # Copy: callbacks may unsubscribe while we iterate.
        for callback in list(self._subscribers.get(topic, {}).values()):
            try:
                callback(payload)
            except Exception:
                logger.exception("Change subscriber for %s failed", topic)

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, {}))

