"""Journal entries and their cached summaries."""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

from ..errors import ErrorCode, ExternalApiFailure, MalformedResponse, StorageWriteFailed
from ..schemas.journal import MOODS, JournalEntry, JournalEntryInput, MoodSnapshot
from ..store import keys
from ..store.adapter import PersistedStore, read_json, write_json
from ..store.bus import ChangeBus
from ..utils.clock import Clock, now_iso, parse_iso
from ..utils.nanoid import new_record_id

logger = logging.getLogger(__name__)

SUMMARY_UNAVAILABLE = "Unable to generate summary at this time"
SUMMARY_FAILED = "Summary generation failed"

Summarizer = Callable[[str, str], Awaitable[str]]


@dataclass
class JournalResult:
    ok: bool
    entry: Optional[JournalEntry] = None
    error: Optional[ErrorCode] = None
    message: Optional[str] = None
    summary_failed: bool = False
    created: bool = False


def _sort_key(entry: JournalEntry):
    parsed = parse_iso(entry.date)
    return parsed.timestamp() if parsed else float("-inf")


class JournalRepository:
    def __init__(self, store: PersistedStore, bus: ChangeBus, summarizer: Optional[Summarizer] = None, clock: Clock = now_iso) -> None:
        self._store = store
        self._bus = bus
        self._summarizer = summarizer
        self._clock = clock

    def _load(self) -> List[JournalEntry]:
        raw = read_json(self._store, keys.JOURNAL_ENTRIES, [])
        if not isinstance(raw, list):
            return []
        entries: List[JournalEntry] = []
        for item in raw:
            try:
                entries.append(JournalEntry(**item))
            except (TypeError, ValueError):
                logger.warning("Skipping malformed stored journal entry: %r", item)
        return entries

    def list_entries(self) -> List[JournalEntry]:
        """All entries, most recent first. Call again after a change notification."""
        return sorted(self._load(), key=_sort_key, reverse=True)

    def get_entry(self, entry_id: str) -> Optional[JournalEntry]:
        return next((entry for entry in self._load() if entry.id == entry_id), None)

    def _save(self, entries: List[JournalEntry]) -> None:
        text = write_json(self._store, keys.JOURNAL_ENTRIES, [entry.model_dump(exclude_none=True) for entry in entries])
        self._bus.publish(keys.JOURNAL_ENTRIES, text)

    async def _summarize(self, content: str, mood: str) -> tuple[Optional[str], bool]:
        if self._summarizer is None:
            return None, False
        try:
            return await self._summarizer(content, mood), False
        except MalformedResponse as error:
            logger.warning("Summary response unusable: %s", error)
            return SUMMARY_FAILED, True
        except ExternalApiFailure as error:
            logger.warning("Error generating summary: %s", error)
            return SUMMARY_UNAVAILABLE, True

    async def save_entry(self, data: JournalEntryInput) -> JournalResult:
        title = (data.title or "").strip()
        content = (data.content or "").strip()
        if not title or not content:
            return JournalResult(ok=False, error=ErrorCode.INVALID_INPUT, message="Title and content are required")
        mood = (data.mood or "").strip().lower() or None
        if mood and mood not in MOODS:
            return JournalResult(ok=False, error=ErrorCode.INVALID_INPUT, message=f"Mood must be one of: {', '.join(MOODS)}")

        summary, summary_failed = (None, False)
        if mood:
            summary, summary_failed = await self._summarize(data.content, mood)

        # Re-read after the summary call so edits made meanwhile are kept.
        entries = self._load()
        now = self._clock()
        existing = next((entry for entry in entries if data.id and entry.id == data.id), None)
        if existing:
            mood_changed = mood != existing.mood
            entry = existing.model_copy(
                update={
                    "title": data.title,
                    "content": data.content,
                    "mood": mood,
                    "moodTimestamp": (now if mood else None) if mood_changed else existing.moodTimestamp,
                    "summary": summary or existing.summary,
                    "date": now,
                }
            )
            entries = [entry if item.id == existing.id else item for item in entries]
        else:
            entry = JournalEntry(
                id=new_record_id(),
                title=data.title,
                content=data.content,
                date=now,
                mood=mood,
                moodTimestamp=now if mood else None,
                summary=summary,
            )
            entries = [entry, *entries]

        try:
            self._save(entries)
        except StorageWriteFailed as error:
            logger.error("Could not save journal entry: %s", error)
            return JournalResult(ok=False, entry=entry, error=ErrorCode.STORAGE_WRITE_FAILED, message=str(error), summary_failed=summary_failed)

        if mood:
            self._record_mood(mood, now)
        message = entry.summary if summary_failed else None
        return JournalResult(ok=True, entry=entry, summary_failed=summary_failed, created=existing is None, message=message)

    def _record_mood(self, mood: str, timestamp: str) -> None:
        snapshot = MoodSnapshot(lastMood=mood, lastMoodTimestamp=timestamp)
        try:
            text = write_json(self._store, keys.LAST_MOOD_DATA, snapshot.model_dump())
        except StorageWriteFailed as error:
            logger.error("Could not save mood snapshot: %s", error)
            return
        self._bus.publish(keys.LAST_MOOD_DATA, text)

    def latest_mood(self) -> Optional[MoodSnapshot]:
        raw = read_json(self._store, keys.LAST_MOOD_DATA, None)
        if not isinstance(raw, dict):
            return None
        try:
            return MoodSnapshot(**raw)
        except (TypeError, ValueError):
            return None

    def delete_entry(self, entry_id: str) -> JournalResult:
        entries = self._load()
        target = next((entry for entry in entries if entry.id == entry_id), None)
        if target is None:
            return JournalResult(ok=False, error=ErrorCode.NOT_FOUND, message=f"Entry {entry_id} not found")
        try:
            self._save([entry for entry in entries if entry.id != entry_id])
        except StorageWriteFailed as error:
            logger.error("Could not delete journal entry %s: %s", entry_id, error)
            return JournalResult(ok=False, entry=target, error=ErrorCode.STORAGE_WRITE_FAILED, message=str(error))
        return JournalResult(ok=True, entry=target)
