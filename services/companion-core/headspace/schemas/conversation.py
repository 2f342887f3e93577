from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from .task import TaskUpdateSummary, TaskUpdates

Role = Literal["user", "assistant"]


class ConversationMessage(BaseModel):
    id: str
    role: Role
    text: str
    timestamp: str
    taskUpdates: Optional[TaskUpdateSummary] = None


class HistoryTurn(BaseModel):
    role: Role
    text: str


class TaskSnapshot(BaseModel):
    id: str
    text: str
    completed: bool


class ConversationRequest(BaseModel):
    summaries: List[str]
    userPersonaText: str
    chatbotPersonaId: str
    questions: List[str]
    conversationHistory: List[HistoryTurn]
    currentTasks: List[TaskSnapshot]


class ConversationReply(BaseModel):
    response: str
    taskUpdates: TaskUpdates = Field(default_factory=TaskUpdates)
    degraded: bool = False
    reason: Optional[str] = None


class SummarizeRequest(BaseModel):
    journalText: str
    moodScale: str
