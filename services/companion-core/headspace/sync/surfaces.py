"""Mounted views over the shared collections.

A surface keeps a snapshot of the collections it shows. ``mount`` subscribes it
to the keys it depends on and loads them, ``unmount`` drops every
subscription, and any change notification for one of its keys triggers a full
``reload`` from the store. Reloads are idempotent: repeated notifications for
one change only repeat the read.
"""

import logging
from typing import Callable, List, Optional, Sequence

from ..companion.conversation import ConversationManager
from ..errors import StorageWriteFailed
from ..repositories.journal import JournalRepository
from ..repositories.milestones import MilestoneTracker
from ..repositories.persona import PersonaRepository
from ..repositories.tasks import TaskRepository
from ..schemas.conversation import ConversationMessage
from ..schemas.journal import JournalEntry
from ..schemas.milestone import Milestone, MilestoneProgress
from ..schemas.task import Task
from ..store import keys
from ..store.bus import ChangeBus, ChangeEvent

logger = logging.getLogger(__name__)


class Surface:
    name = "surface"
    watched_keys: Sequence[str] = ()

    def __init__(self, bus: ChangeBus) -> None:
        self._bus = bus
        self._unsubscribers: List[Callable[[], None]] = []
        self.reload_count = 0

    @property
    def mounted(self) -> bool:
        return bool(self._unsubscribers)

    def mount(self) -> None:
        if self.mounted:
            return
        for key in self.watched_keys:
            self._unsubscribers.append(self._bus.subscribe(key, self._on_change))
        self.reload()

    def unmount(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def _on_change(self, event: ChangeEvent) -> None:
        logger.debug("%s: %s event received for %s", self.name, event.source, event.key)
        self.reload()

    def reload(self) -> None:
        self.reload_count += 1
        self._load()

    def _load(self) -> None:
        raise NotImplementedError


class TaskSidebar(Surface):
    name = "TaskSidebar"
    watched_keys = (keys.TODO_TASKS, keys.TOTAL_TASKS_COMPLETED, keys.MILESTONE_STATES)

    def __init__(self, bus: ChangeBus, tasks: TaskRepository, milestones: MilestoneTracker) -> None:
        super().__init__(bus)
        self._tasks = tasks
        self._milestones = milestones
        self.tasks: List[Task] = []
        self.lifetime_completed = 0
        self.milestones: List[Milestone] = []
        self.progress: Optional[MilestoneProgress] = None

    def _load(self) -> None:
        self.tasks = self._tasks.list_tasks()
        self.lifetime_completed = self._tasks.repair_lifetime_counter()
        try:
            self._milestones.evaluate(self.lifetime_completed)
        except StorageWriteFailed as error:
            logger.error("%s: milestone state not saved: %s", self.name, error)
        self.milestones = self._milestones.milestones()
        self.progress = self._milestones.progress_to_next(self.lifetime_completed)

    @property
    def active_tasks(self) -> List[Task]:
        return [task for task in self.tasks if not task.completed]


class JournalPanel(Surface):
    name = "JournalPanel"
    watched_keys = (keys.JOURNAL_ENTRIES,)

    def __init__(self, bus: ChangeBus, journal: JournalRepository) -> None:
        super().__init__(bus)
        self._journal = journal
        self.entries: List[JournalEntry] = []

    def _load(self) -> None:
        self.entries = self._journal.list_entries()


class CompanionPanel(Surface):
    name = "CompanionPanel"

    def __init__(self, bus: ChangeBus, manager: ConversationManager, journal: JournalRepository, tasks: TaskRepository, persona: PersonaRepository) -> None:
        super().__init__(bus)
        self._manager = manager
        self._journal = journal
        self._tasks = tasks
        self._persona = persona
        self.watched_keys = (keys.JOURNAL_ENTRIES, keys.USER_PERSONA, keys.TODO_TASKS, manager.history_key)
        self.entries: List[JournalEntry] = []
        self.tasks: List[Task] = []
        self.persona_text = ""
        self.messages: List[ConversationMessage] = []

    def _load(self) -> None:
        self.entries = self._journal.list_entries()
        self.tasks = self._tasks.list_tasks()
        self.persona_text = self._persona.persona_text()
        self.messages = self._manager.history()

    @property
    def sending(self) -> bool:
        return self._manager.state.value == "sending"
