"""Builds the store, bus, repositories and managers once and hands them out."""

import asyncio
import logging
from typing import Dict, List, Optional

import httpx

from .companion.client import ExternalApiClient
from .companion.companions import CompanionCatalog, catalog as default_catalog
from .companion.conversation import ConversationManager, Converse
from .companion.retry import Sleep, call_with_retry
from .config import Settings, get_settings
from .errors import NotFound, StorageWriteFailed
from .repositories.journal import JournalRepository
from .repositories.milestones import MilestoneTracker
from .repositories.persona import PersonaRepository
from .repositories.tasks import TaskRepository
from .store import keys
from .store.adapter import JsonFileStore, MemoryStore, PersistedStore
from .store.bus import ChangeBus
from .sync.reconcile import ReconciliationLoop
from .sync.surfaces import CompanionPanel, JournalPanel, Surface, TaskSidebar
from .utils.clock import Clock, now_iso

logger = logging.getLogger(__name__)


def _default_store(settings: Settings) -> PersistedStore:
    if settings.store_path:
        return JsonFileStore(settings.store_path)
    return MemoryStore()


class Workspace:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[PersistedStore] = None,
        bus: Optional[ChangeBus] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        catalog: Optional[CompanionCatalog] = None,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = now_iso,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = store or _default_store(self.settings)
        self.bus = bus or ChangeBus()
        self.catalog = catalog or default_catalog
        self.client = ExternalApiClient(self.settings, transport=transport)
        self._sleep = sleep
        self._clock = clock

        self.milestones = MilestoneTracker(self.store, self.bus, clock=clock)
        self.tasks = TaskRepository(self.store, self.bus, milestones=self.milestones, clock=clock)
        self.journal = JournalRepository(self.store, self.bus, summarizer=self._summarize, clock=clock)
        self.persona = PersonaRepository(
            self.store,
            self.bus,
            default_persona=self.settings.default_persona,
            default_companion=self.settings.default_companion,
        )
        self.reconciler = ReconciliationLoop(interval_seconds=self.settings.reconcile_interval_seconds)
        self._managers: Dict[str, ConversationManager] = {}

    async def _summarize(self, content: str, mood: str) -> str:
        return await call_with_retry(
            lambda attempt: self.client.summarize(content, mood),
            attempts=self.settings.retry_attempts,
            base_delay=self.settings.retry_base_delay_seconds,
            sleep=self._sleep,
        )

    def companion_name(self, companion_id: Optional[str] = None) -> str:
        return self.catalog.resolve(companion_id or self.persona.companion_id()).name

    def conversation(self, companion_name: Optional[str] = None, converse: Optional[Converse] = None) -> ConversationManager:
        """Return the manager for a catalog companion, one per name.

        Raises NotFound for a name that is not in the catalog.
        """
        name = companion_name or self.companion_name()
        if name not in {companion.name for companion in self.catalog.all()}:
            raise NotFound(f"No companion named {name!r}")
        manager = self._managers.get(name)
        if manager is None:
            manager = ConversationManager(
                name,
                self.store,
                self.bus,
                tasks=self.tasks,
                journal=self.journal,
                persona=self.persona,
                converse=converse or self.client.converse,
                retry_attempts=self.settings.retry_attempts,
                retry_base_delay=self.settings.retry_base_delay_seconds,
                sleep=self._sleep,
                clock=self._clock,
            )
            self._managers[name] = manager
        return manager

    def mount_task_sidebar(self) -> TaskSidebar:
        surface = TaskSidebar(self.bus, self.tasks, self.milestones)
        surface.mount()
        self.reconciler.add(surface)
        return surface

    def mount_journal_panel(self) -> JournalPanel:
        surface = JournalPanel(self.bus, self.journal)
        surface.mount()
        self.reconciler.add(surface)
        return surface

    def mount_companion_panel(self, companion_name: Optional[str] = None) -> CompanionPanel:
        surface = CompanionPanel(self.bus, self.conversation(companion_name), self.journal, self.tasks, self.persona)
        surface.mount()
        self.reconciler.add(surface)
        return surface

    def unmount(self, surface: Surface) -> None:
        surface.unmount()
        self.reconciler.discard(surface)

    def wipe(self) -> List[str]:
        """Remove every application key, conversation histories included."""
        removed: List[str] = []
        for key in list(self.store.keys()):
            if not keys.is_application_key(key):
                continue
            try:
                self.store.remove(key)
            except StorageWriteFailed as error:
                logger.warning("Failed to remove %s: %s", key, error)
                continue
            self.bus.publish(key, None)
            removed.append(key)
        leftover = [key for key in self.store.keys() if keys.is_application_key(key)]
        if leftover:
            logger.warning("Some keys were not removed: %s", leftover)
        return removed
