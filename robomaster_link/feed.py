"""Multi-subscriber broadcast feeds with subscriber-count transitions."""

from __future__ import annotations

import logging
import threading
import weakref
from typing import Callable, Dict, Generic, List, Optional, TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

Subscriber = Callable[[T], None]
TransitionCallback = Callable[[], None]


class Subscription(Generic[T]):
    """Handle returned by :meth:`Feed.subscribe`; disposing it unsubscribes."""

    def __init__(self, feed: "Feed[T]", callback: Subscriber[T]) -> None:
        self._feed_ref = weakref.ref(feed)
        self.callback = callback

    @property
    def active(self) -> bool:
        feed = self._feed_ref()
        return feed is not None and feed._is_current(self)

    def dispose(self) -> None:
        feed = self._feed_ref()
        if feed is not None:
            feed._remove(self)

    def __enter__(self) -> "Subscription[T]":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.dispose()


class Feed(Generic[T]):
    """Thread-safe broadcast registry for decoded values.

    ``on_has_subscribers`` fires once when the subscriber set goes from empty
    to non-empty and ``on_no_subscribers`` once when it goes back to empty.
    Both run on the thread performing the (un)subscribe while the registry
    lock is held, so they observe transitions in order; they must return
    quickly and should hand real work to another thread or the event loop.
    """

    def __init__(
        self,
        name: str = "feed",
        *,
        on_has_subscribers: Optional[TransitionCallback] = None,
        on_no_subscribers: Optional[TransitionCallback] = None,
    ) -> None:
        self.name = name
        self._subscriptions: Dict[Subscriber[T], Subscription[T]] = {}
        self._lock = threading.RLock()
        self._on_has_subscribers: List[TransitionCallback] = []
        self._on_no_subscribers: List[TransitionCallback] = []
        if on_has_subscribers is not None:
            self._on_has_subscribers.append(on_has_subscribers)
        if on_no_subscribers is not None:
            self._on_no_subscribers.append(on_no_subscribers)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    @property
    def has_subscribers(self) -> bool:
        return self.subscriber_count > 0

    def add_transition_callbacks(
        self,
        *,
        on_has_subscribers: Optional[TransitionCallback] = None,
        on_no_subscribers: Optional[TransitionCallback] = None,
    ) -> None:
        with self._lock:
            if on_has_subscribers is not None:
                self._on_has_subscribers.append(on_has_subscribers)
            if on_no_subscribers is not None:
                self._on_no_subscribers.append(on_no_subscribers)

    def subscribe(self, callback: Subscriber[T]) -> Subscription[T]:
        with self._lock:
            existing = self._subscriptions.get(callback)
            if existing is not None:
                return existing

            subscription = Subscription(self, callback)
            was_empty = not self._subscriptions
            self._subscriptions[callback] = subscription
            if was_empty:
                LOGGER.debug("Feed %s has subscribers", self.name)
                self._fire(self._on_has_subscribers)
            return subscription

    def unsubscribe(self, callback: Subscriber[T]) -> None:
        with self._lock:
            subscription = self._subscriptions.get(callback)
            if subscription is not None:
                self._remove(subscription)

    def notify(self, value: T) -> None:
        with self._lock:
            callbacks = list(self._subscriptions)

        for callback in callbacks:
            try:
                callback(value)
            except Exception:
                LOGGER.exception("Subscriber of feed %s failed", self.name)

    def _is_current(self, subscription: Subscription[T]) -> bool:
        with self._lock:
            return self._subscriptions.get(subscription.callback) is subscription

    def _remove(self, subscription: Subscription[T]) -> None:
        with self._lock:
            if self._subscriptions.get(subscription.callback) is not subscription:
                return
            del self._subscriptions[subscription.callback]
            if not self._subscriptions:
                LOGGER.debug("Feed %s has no subscribers", self.name)
                self._fire(self._on_no_subscribers)

    def _fire(self, callbacks: List[TransitionCallback]) -> None:
        for callback in list(callbacks):
            try:
                callback()
            except Exception:
                LOGGER.exception("Transition callback of feed %s failed", self.name)
