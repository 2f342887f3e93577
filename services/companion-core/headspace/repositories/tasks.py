"""Task list with the active-task cap and the lifetime completion counter.

Every operation re-reads the persisted list, applies its change, enforces the
cap and writes the list back once. Failures are returned on the
:class:`TaskResult` rather than raised.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from ..errors import ErrorCode, StorageWriteFailed
from ..schemas.milestone import MilestoneDefinition
from ..schemas.task import NewTaskDirective, RemovedTask, RemoveTaskDirective, Task
from ..store import keys
from ..store.adapter import PersistedStore, read_json, write_json
from ..store.bus import ChangeBus
from ..utils.clock import Clock, now_iso, parse_iso
from ..utils.nanoid import new_record_id
from .milestones import MilestoneTracker

logger = logging.getLogger(__name__)

ACTIVE_TASK_LIMIT = 5
MAX_DIRECTIVE_NEW_TASKS = 2
AUTOMATIC_REMOVAL_REASON = f"Automatically removed to maintain task limit of {ACTIVE_TASK_LIMIT}"

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class TaskResult:
    ok: bool
    error: Optional[ErrorCode] = None
    message: Optional[str] = None
    task: Optional[Task] = None
    tasks: List[Task] = field(default_factory=list)
    added: List[Task] = field(default_factory=list)
    removed: List[RemovedTask] = field(default_factory=list)
    truncated: int = 0
    unmatched: List[RemoveTaskDirective] = field(default_factory=list)
    lifetime_completed: Optional[int] = None
    milestones_achieved: List[MilestoneDefinition] = field(default_factory=list)


def _failure(code: ErrorCode, message: str, tasks: Optional[List[Task]] = None) -> TaskResult:
    return TaskResult(ok=False, error=code, message=message, tasks=list(tasks or []))


def _age_key(item: Tuple[int, Task]) -> Tuple[datetime, int]:
    index, task = item
    # Tasks are prepended, so a larger index is older when timestamps tie.
    return (parse_iso(task.createdAt) or _EPOCH, -index)


def enforce_active_cap(
    tasks: List[Task], reason: str = AUTOMATIC_REMOVAL_REASON, keep_id: Optional[str] = None
) -> Tuple[List[Task], List[RemovedTask]]:
    """Drop the oldest active tasks until at most ACTIVE_TASK_LIMIT remain.

    The task with ``keep_id`` is never dropped.
    """
    active = [(index, task) for index, task in enumerate(tasks) if not task.completed]
    excess = len(active) - ACTIVE_TASK_LIMIT
    if excess <= 0:
        return tasks, []
    candidates = [item for item in active if item[1].id != keep_id]
    oldest = sorted(candidates, key=_age_key)[:excess]
    dropped_ids = {task.id for _, task in oldest}
    removed = [RemovedTask(task=task, reason=reason, automatic=True) for _, task in oldest]
    for item in removed:
        logger.info("Removed task %r: %s", item.task.text, reason)
    return [task for task in tasks if task.id not in dropped_ids], removed


def _coerce(items: Optional[Iterable[Any]], model: Any) -> List[Any]:
    coerced = []
    for item in items or []:
        if isinstance(item, model):
            coerced.append(item)
        elif isinstance(item, dict):
            try:
                coerced.append(model(**item))
            except (TypeError, ValidationError):
                logger.warning("Skipping malformed task directive: %r", item)
        elif isinstance(item, str) and model is RemoveTaskDirective:
            coerced.append(RemoveTaskDirective(text=item))
        elif isinstance(item, str) and model is NewTaskDirective:
            coerced.append(NewTaskDirective(text=item))
    return coerced


def _match_by_text(tasks: Sequence[Task], needle: str) -> Optional[Task]:
    lowered = needle.strip().lower()
    if not lowered:
        return None
    # Prefer active tasks so a vague match does not eat finished work first.
    ordered = [task for task in tasks if not task.completed] + [task for task in tasks if task.completed]
    for task in ordered:
        text = task.text.lower()
        if lowered in text or (text and text in lowered):
            return task
    return None


class TaskRepository:
    def __init__(self, store: PersistedStore, bus: ChangeBus, milestones: Optional[MilestoneTracker] = None, clock: Clock = now_iso) -> None:
        self._store = store
        self._bus = bus
        self._milestones = milestones
        self._clock = clock

    def list_tasks(self) -> List[Task]:
        raw = read_json(self._store, keys.TODO_TASKS, [])
        if not isinstance(raw, list):
            return []
        tasks: List[Task] = []
        for item in raw:
            try:
                tasks.append(Task(**item))
            except (TypeError, ValueError):
                logger.warning("Skipping malformed stored task: %r", item)
        return tasks

    def active_tasks(self) -> List[Task]:
        return [task for task in self.list_tasks() if not task.completed]

    def lifetime_completed(self) -> int:
        raw = self._store.read(keys.TOTAL_TASKS_COMPLETED)
        if raw is None:
            return 0
        try:
            return max(int(raw), 0)
        except ValueError:
            logger.warning("Lifetime counter %r is not an integer, reading as 0", raw)
            return 0

    def _save(self, tasks: List[Task]) -> None:
        text = write_json(self._store, keys.TODO_TASKS, [task.model_dump(exclude_none=True) for task in tasks])
        self._bus.publish(keys.TODO_TASKS, text)
        logger.debug("Saved %s tasks", len(tasks))

    def _new_task(self, text: str) -> Task:
        return Task(id=new_record_id(), text=text, completed=False, createdAt=self._clock())

    def add_task(self, text: str) -> TaskResult:
        trimmed = (text or "").strip()
        if not trimmed:
            return _failure(ErrorCode.INVALID_INPUT, "Task text is empty")
        task = self._new_task(trimmed)
        tasks, removed = enforce_active_cap([task, *self.list_tasks()])
        try:
            self._save(tasks)
        except StorageWriteFailed as error:
            logger.error("Could not save new task: %s", error)
            return _failure(ErrorCode.STORAGE_WRITE_FAILED, str(error), self.list_tasks())
        logger.info("Added new task: %s", task.text)
        return TaskResult(ok=True, task=task, tasks=tasks, added=[task], removed=removed)

    def toggle_task(self, task_id: str) -> TaskResult:
        tasks = self.list_tasks()
        target = next((task for task in tasks if task.id == task_id), None)
        if target is None:
            return _failure(ErrorCode.NOT_FOUND, f"Task {task_id} not found", tasks)

        completing = not target.completed
        updated = target.model_copy(update={"completed": completing, "completedAt": self._clock() if completing else None})
        tasks = [updated if task.id == task_id else task for task in tasks]
        tasks, removed = enforce_active_cap(tasks, keep_id=task_id)
        counted_before = self.lifetime_completed()
        try:
            self._save(tasks)
        except StorageWriteFailed as error:
            logger.error("Could not save toggled task %s: %s", task_id, error)
            return _failure(ErrorCode.STORAGE_WRITE_FAILED, str(error), self.list_tasks())

        result = TaskResult(ok=True, task=updated, tasks=tasks, removed=removed, lifetime_completed=self.lifetime_completed())
        if not completing:
            # Un-completing never lowers the lifetime counter.
            return result

        # A subscriber may already have repaired the counter from the saved list.
        total = max(counted_before + 1, result.lifetime_completed)
        try:
            self._store.write(keys.TOTAL_TASKS_COMPLETED, str(total))
        except StorageWriteFailed as error:
            logger.error("Task %s completed but lifetime counter was not saved: %s", task_id, error)
            result.ok = False
            result.error = ErrorCode.STORAGE_WRITE_FAILED
            result.message = str(error)
            return result
        self._bus.publish(keys.TOTAL_TASKS_COMPLETED, str(total))
        result.lifetime_completed = total

        if self._milestones is not None:
            try:
                result.milestones_achieved = self._milestones.evaluate(total)
            except StorageWriteFailed as error:
                result.ok = False
                result.error = ErrorCode.STORAGE_WRITE_FAILED
                result.message = str(error)
        return result

    def delete_task(self, task_id: str) -> TaskResult:
        tasks = self.list_tasks()
        target = next((task for task in tasks if task.id == task_id), None)
        if target is None:
            return _failure(ErrorCode.NOT_FOUND, f"Task {task_id} not found", tasks)
        remaining = [task for task in tasks if task.id != task_id]
        try:
            self._save(remaining)
        except StorageWriteFailed as error:
            logger.error("Could not delete task %s: %s", task_id, error)
            return _failure(ErrorCode.STORAGE_WRITE_FAILED, str(error), tasks)
        return TaskResult(ok=True, task=target, tasks=remaining, removed=[RemovedTask(task=target, reason="Deleted")])

    def clear_completed(self) -> TaskResult:
        tasks = self.list_tasks()
        completed = [task for task in tasks if task.completed]
        if not completed:
            return TaskResult(ok=True, tasks=tasks)
        remaining = [task for task in tasks if not task.completed]
        try:
            self._save(remaining)
        except StorageWriteFailed as error:
            logger.error("Could not clear completed tasks: %s", error)
            return _failure(ErrorCode.STORAGE_WRITE_FAILED, str(error), tasks)
        return TaskResult(ok=True, tasks=remaining, removed=[RemovedTask(task=task, reason="Cleared") for task in completed])

    def apply_directive(self, new_tasks: Optional[Iterable[Any]] = None, remove_tasks: Optional[Iterable[Any]] = None) -> TaskResult:
        """Apply a companion's task updates as one unit and persist once.

        Removals run against the existing list first (by id, then by text), up
        to MAX_DIRECTIVE_NEW_TASKS new tasks are prepended, and the active cap
        is enforced last with the automatic removal reason.
        """
        additions = [item for item in _coerce(new_tasks, NewTaskDirective) if item.text and item.text.strip()]
        removals = _coerce(remove_tasks, RemoveTaskDirective)

        truncated = max(len(additions) - MAX_DIRECTIVE_NEW_TASKS, 0)
        if truncated:
            logger.info("Directive suggested %s new tasks, keeping the first %s", len(additions), MAX_DIRECTIVE_NEW_TASKS)
            additions = additions[:MAX_DIRECTIVE_NEW_TASKS]

        tasks = self.list_tasks()
        removed: List[RemovedTask] = []
        unmatched: List[RemoveTaskDirective] = []
        for directive in removals:
            target = None
            if directive.id:
                target = next((task for task in tasks if task.id == directive.id), None)
            if target is None:
                target = _match_by_text(tasks, directive.text or directive.id or "")
            if target is None:
                logger.info("No task matched removal directive %r", directive.model_dump(exclude_none=True))
                unmatched.append(directive)
                continue
            tasks = [task for task in tasks if task.id != target.id]
            removed.append(RemovedTask(task=target, reason=directive.reason, automatic=False))

        added = [self._new_task(item.text.strip()) for item in additions]
        tasks = [*added, *tasks]
        tasks, auto_removed = enforce_active_cap(tasks)
        removed.extend(auto_removed)

        if not added and not removed:
            return TaskResult(ok=True, tasks=tasks, truncated=truncated, unmatched=unmatched)

        try:
            self._save(tasks)
        except StorageWriteFailed as error:
            logger.error("Could not apply task directive: %s", error)
            failed = _failure(ErrorCode.STORAGE_WRITE_FAILED, str(error), self.list_tasks())
            failed.truncated = truncated
            return failed
        for task, directive in zip(added, additions):
            logger.info("Added task: %s (%s)", task.text, directive.reason or "no reason given")
        return TaskResult(ok=True, tasks=tasks, added=added, removed=removed, truncated=truncated, unmatched=unmatched)

    def repair_lifetime_counter(self) -> int:
        """Raise the stored counter to at least the number of completed tasks present."""
        stored = self.lifetime_completed()
        present = len([task for task in self.list_tasks() if task.completed])
        if present <= stored:
            return stored
        try:
            self._store.write(keys.TOTAL_TASKS_COMPLETED, str(present))
        except StorageWriteFailed as error:
            logger.error("Could not repair lifetime counter: %s", error)
            return present
        self._bus.publish(keys.TOTAL_TASKS_COMPLETED, str(present))
        return present
