"""Per-companion conversation history and the send/reply exchange.

An exchange moves the manager from ``idle`` to ``sending`` and always back to
``idle``: on a real reply, on a degraded reply, or on the canned apology once
retries run out. Task updates in a reply go through
:meth:`TaskRepository.apply_directive`, under the same caps as user edits.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from ..errors import ErrorCode, ExternalApiFailure, StorageWriteFailed
from ..repositories.journal import SUMMARY_FAILED, SUMMARY_UNAVAILABLE, JournalRepository
from ..repositories.persona import PersonaRepository
from ..repositories.tasks import TaskRepository, TaskResult
from ..schemas.conversation import ConversationMessage, ConversationReply, ConversationRequest, HistoryTurn, TaskSnapshot
from ..schemas.task import NewTaskDirective, TaskUpdateSummary
from ..store import keys
from ..store.adapter import PersistedStore, read_json, write_json
from ..store.bus import ChangeBus
from ..utils.clock import Clock, now_iso
from ..utils.nanoid import new_record_id
from .client import ApiReply
from .parsing import parse_conversation_reply
from .retry import RetryAbandoned, Sleep, call_with_retry

logger = logging.getLogger(__name__)

APOLOGY_RESPONSE = "I apologize, but I'm having trouble connecting right now. Please try again in a moment."

_PLACEHOLDER_SUMMARIES = {SUMMARY_UNAVAILABLE, SUMMARY_FAILED}

Converse = Callable[[ConversationRequest], Awaitable[ApiReply]]


class ConversationState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"


@dataclass
class SendResult:
    ok: bool
    error: Optional[ErrorCode] = None
    message: Optional[str] = None
    user_message: Optional[ConversationMessage] = None
    assistant_message: Optional[ConversationMessage] = None
    degraded: bool = False
    abandoned: bool = False
    task_result: Optional[TaskResult] = None
    storage_error: Optional[str] = None


def summarize_task_result(result: Optional[TaskResult]) -> Optional[TaskUpdateSummary]:
    if result is None or not result.ok:
        return None
    if not result.added and not result.removed:
        return None
    return TaskUpdateSummary(
        newTasks=[NewTaskDirective(text=task.text) for task in result.added],
        removeTasks=[item.task.text for item in result.removed],
    )


class ConversationManager:
    def __init__(
        self,
        companion_name: str,
        store: PersistedStore,
        bus: ChangeBus,
        tasks: TaskRepository,
        journal: JournalRepository,
        persona: PersonaRepository,
        converse: Converse,
        retry_attempts: int = 3,
        retry_base_delay: float = 1.0,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = now_iso,
    ) -> None:
        self.companion_name = companion_name
        self.history_key = keys.conversation_history_key(companion_name)
        self.state = ConversationState.IDLE
        self._store = store
        self._bus = bus
        self._tasks = tasks
        self._journal = journal
        self._persona = persona
        self._converse = converse
        self._retry_attempts = retry_attempts
        self._retry_base_delay = retry_base_delay
        self._sleep = sleep
        self._clock = clock
        self._exchange = 0

    def history(self) -> List[ConversationMessage]:
        raw = read_json(self._store, self.history_key, [])
        if not isinstance(raw, list):
            return []
        messages: List[ConversationMessage] = []
        for item in raw:
            try:
                messages.append(ConversationMessage(**item))
            except (TypeError, ValueError):
                logger.warning("Skipping malformed stored message: %r", item)
        return messages

    def _persist(self, messages: List[ConversationMessage]) -> Optional[str]:
        try:
            text = write_json(self._store, self.history_key, [message.model_dump(exclude_none=True) for message in messages])
        except StorageWriteFailed as error:
            logger.error("Could not save conversation history for %s: %s", self.companion_name, error)
            return str(error)
        self._bus.publish(self.history_key, text)
        return None

    def build_request(self, prior: List[ConversationMessage], text: str) -> ConversationRequest:
        summaries = []
        for entry in self._journal.list_entries():
            summary = entry.summary if entry.summary and entry.summary not in _PLACEHOLDER_SUMMARIES else None
            value = summary or entry.content
            if value:
                summaries.append(value)
        return ConversationRequest(
            summaries=summaries,
            userPersonaText=self._persona.persona_text(),
            chatbotPersonaId=self.companion_name.lower(),
            questions=[text],
            conversationHistory=[HistoryTurn(role=message.role, text=message.text) for message in prior],
            currentTasks=[TaskSnapshot(id=task.id, text=task.text, completed=task.completed) for task in self._tasks.list_tasks()],
        )

    async def _request_reply(self, request: ConversationRequest, exchange: int) -> ConversationReply:
        async def attempt(number: int) -> ApiReply:
            logger.debug("Conversation attempt %s for %s", number, self.companion_name)
            return await self._converse(request)

        try:
            reply = await call_with_retry(
                attempt,
                attempts=self._retry_attempts,
                base_delay=self._retry_base_delay,
                sleep=self._sleep,
                still_wanted=lambda: exchange == self._exchange,
            )
        except ExternalApiFailure as error:
            logger.error("Companion %s unavailable: %s", self.companion_name, error)
            return ConversationReply(response=APOLOGY_RESPONSE, degraded=True, reason="unavailable")
        return parse_conversation_reply(reply)

    async def send_user_message(self, text: str) -> SendResult:
        trimmed = (text or "").strip()
        if not trimmed:
            return SendResult(ok=False, error=ErrorCode.INVALID_INPUT, message="Message is empty")
        if self.state is ConversationState.SENDING:
            return SendResult(ok=False, error=ErrorCode.INVALID_INPUT, message="A message is already being sent")

        prior = self.history()
        user_message = ConversationMessage(id=new_record_id(), role="user", text=trimmed, timestamp=self._clock())
        storage_error = self._persist([*prior, user_message])

        self._exchange += 1
        exchange = self._exchange
        self.state = ConversationState.SENDING
        try:
            request = self.build_request(prior, trimmed)
            try:
                reply = await self._request_reply(request, exchange)
            except RetryAbandoned:
                return SendResult(ok=False, user_message=user_message, abandoned=True, storage_error=storage_error)
            if exchange != self._exchange:
                logger.info("Dropping reply for abandoned exchange with %s", self.companion_name)
                return SendResult(ok=False, user_message=user_message, abandoned=True, storage_error=storage_error)

            task_result = None
            if not reply.taskUpdates.is_empty():
                task_result = self._tasks.apply_directive(reply.taskUpdates.newTasks, reply.taskUpdates.removeTasks)
                if not task_result.ok:
                    logger.error("Task updates from %s were not applied: %s", self.companion_name, task_result.message)

            assistant_message = ConversationMessage(
                id=new_record_id(),
                role="assistant",
                text=reply.response,
                timestamp=self._clock(),
                taskUpdates=summarize_task_result(task_result),
            )
            messages = self.history()
            if not any(message.id == user_message.id for message in messages) and storage_error:
                messages.append(user_message)
            messages.append(assistant_message)
            storage_error = self._persist(messages) or storage_error
            return SendResult(
                ok=True,
                user_message=user_message,
                assistant_message=assistant_message,
                degraded=reply.degraded,
                task_result=task_result,
                storage_error=storage_error,
            )
        finally:
            if exchange == self._exchange:
                self.state = ConversationState.IDLE

    def abandon(self) -> None:
        """Stop waiting on the in-flight exchange; its reply will be ignored."""
        if self.state is ConversationState.SENDING:
            self._exchange += 1
            self.state = ConversationState.IDLE

    def clear_history(self, confirmed: bool = False) -> bool:
        if not confirmed:
            return False
        try:
            self._store.remove(self.history_key)
        except StorageWriteFailed as error:
            logger.error("Could not clear conversation history for %s: %s", self.companion_name, error)
            return False
        self._bus.publish(self.history_key, None)
        logger.info("Conversation history cleared for %s", self.companion_name)
        return True
