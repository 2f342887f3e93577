from typing import Optional

from pydantic import BaseModel

MOODS = ("happy", "sad", "anxious", "calm", "tired", "grateful")


class JournalEntry(BaseModel):
    id: str
    title: str
    content: str
    date: str
    mood: Optional[str] = None
    moodTimestamp: Optional[str] = None
    summary: Optional[str] = None


class JournalEntryInput(BaseModel):
    id: Optional[str] = None
    title: str
    content: str
    mood: Optional[str] = None


class MoodSnapshot(BaseModel):
    lastMood: str
    lastMoodTimestamp: str
