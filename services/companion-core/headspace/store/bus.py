"""Change notification bus shared by every surface in a context.

Two transports feed it. The local event transport carries announcements made
in this context (``{"key", "value"}``); the storage event transport carries
writes made by other contexts of the same origin (``{"key", "newValue"}``).
Both arrive at subscribers as a :class:`ChangeEvent`.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Literal, Optional

logger = logging.getLogger(__name__)

ANY_KEY = "*"

EventSource = Literal["local", "storage"]
Detail = Dict[str, Any]
DetailListener = Callable[[Detail], None]


@dataclass(frozen=True)
class ChangeEvent:
    key: str
    value: Optional[str]
    source: EventSource


Handler = Callable[[ChangeEvent], None]


class _Transport:
    def __init__(self) -> None:
        self._listeners: List[DetailListener] = []

    def add_listener(self, listener: DetailListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: DetailListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def dispatch(self, detail: Detail) -> None:
        for listener in list(self._listeners):
            listener(detail)


class LocalEventTransport(_Transport):
    """In-context custom event channel."""


class StorageEventTransport(_Transport):
    """Cross-context storage-change channel, fed by a shared origin."""


class _Subscription:
    __slots__ = ("key", "handler", "active")

    def __init__(self, key: str, handler: Handler) -> None:
        self.key = key
        self.handler = handler
        self.active = True


class ChangeBus:
    def __init__(self, local: Optional[LocalEventTransport] = None, storage: Optional[StorageEventTransport] = None) -> None:
        self.local = local or LocalEventTransport()
        self.storage = storage
        self._subscriptions: List[_Subscription] = []
        self.local.add_listener(self._on_local_detail)
        if self.storage is not None:
            self.storage.add_listener(self._on_storage_detail)

    def publish(self, key: str, value: Optional[str] = None) -> None:
        """Announce that ``key`` changed. Call right after a successful write."""
        self.local.dispatch({"key": key, "value": value})

    def subscribe(self, key: str, handler: Handler) -> Callable[[], None]:
        subscription = _Subscription(key, handler)
        self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            if not subscription.active:
                return
            subscription.active = False
            self._subscriptions.remove(subscription)

        return unsubscribe

    def subscriber_count(self, key: Optional[str] = None) -> int:
        if key is None:
            return len(self._subscriptions)
        return len([sub for sub in self._subscriptions if sub.key == key])

    def close(self) -> None:
        self.local.remove_listener(self._on_local_detail)
        if self.storage is not None:
            self.storage.remove_listener(self._on_storage_detail)
        for subscription in self._subscriptions:
            subscription.active = False
        self._subscriptions.clear()

    def _on_local_detail(self, detail: Detail) -> None:
        self._emit(ChangeEvent(key=str(detail.get("key")), value=detail.get("value"), source="local"))

    def _on_storage_detail(self, detail: Detail) -> None:
        key = detail.get("key")
        if key is None:
            # A storage clear; nothing key-scoped to announce.
            return
        self._emit(ChangeEvent(key=str(key), value=detail.get("newValue"), source="storage"))

    def _emit(self, event: ChangeEvent) -> None:
        for subscription in list(self._subscriptions):
            if not subscription.active:
                continue
            if subscription.key != event.key and subscription.key != ANY_KEY:
                continue
            try:
                subscription.handler(event)
            except Exception:  # pylint: disable=broad-except
                logger.exception("Change handler for %s failed", event.key)
