"""Several contexts ("tabs") sharing one backing store.

A write or remove made through one tab's store is announced to every other
tab on its storage event transport, never to the writing tab itself. That tab
announces its own writes through :meth:`ChangeBus.publish`.
"""

from typing import Dict, Iterator, Optional

from .adapter import MemoryStore, PersistedStore
from .bus import ChangeBus, LocalEventTransport, StorageEventTransport


class OriginTabStore(PersistedStore):
    def __init__(self, origin: "SharedOrigin", tab_id: str) -> None:
        self._origin = origin
        self.tab_id = tab_id

    def read(self, key: str) -> Optional[str]:
        return self._origin.backing.read(key)

    def write(self, key: str, text: str) -> None:
        old_value = self._origin.backing.read(key)
        self._origin.backing.write(key, text)
        if old_value != text:
            self._origin.broadcast(self.tab_id, key, text, old_value)

    def remove(self, key: str) -> None:
        old_value = self._origin.backing.read(key)
        self._origin.backing.remove(key)
        if old_value is not None:
            self._origin.broadcast(self.tab_id, key, None, old_value)

    def keys(self) -> Iterator[str]:
        return self._origin.backing.keys()


class OriginTab:
    def __init__(self, origin: "SharedOrigin", tab_id: str) -> None:
        self.tab_id = tab_id
        self.store = OriginTabStore(origin, tab_id)
        self.storage_events = StorageEventTransport()
        self.bus = ChangeBus(local=LocalEventTransport(), storage=self.storage_events)


class SharedOrigin:
    def __init__(self, backing: Optional[PersistedStore] = None) -> None:
        self.backing = backing or MemoryStore()
        self._tabs: Dict[str, OriginTab] = {}

    def open_tab(self, tab_id: str) -> OriginTab:
        if tab_id in self._tabs:
            raise ValueError(f"Tab {tab_id!r} already open")
        tab = OriginTab(self, tab_id)
        self._tabs[tab_id] = tab
        return tab

    def close_tab(self, tab_id: str) -> None:
        tab = self._tabs.pop(tab_id, None)
        if tab:
            tab.bus.close()

    def broadcast(self, sender_tab_id: str, key: str, new_value: Optional[str], old_value: Optional[str]) -> None:
        detail = {"key": key, "newValue": new_value, "oldValue": old_value}
        for tab_id, tab in list(self._tabs.items()):
            if tab_id == sender_tab_id:
                continue
            tab.storage_events.dispatch(dict(detail))
