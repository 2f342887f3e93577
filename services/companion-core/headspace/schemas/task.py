from typing import List, Optional

from pydantic import BaseModel, Field


class Task(BaseModel):
    id: str
    text: str
    completed: bool = False
    createdAt: str
    completedAt: Optional[str] = None


class NewTaskDirective(BaseModel):
    text: str
    reason: Optional[str] = None


class RemoveTaskDirective(BaseModel):
    id: Optional[str] = None
    text: Optional[str] = None
    reason: Optional[str] = None


class TaskUpdates(BaseModel):
    newTasks: List[NewTaskDirective] = Field(default_factory=list)
    removeTasks: List[RemoveTaskDirective] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.newTasks and not self.removeTasks


class RemovedTask(BaseModel):
    task: Task
    reason: Optional[str] = None
    automatic: bool = False


class TaskUpdateSummary(BaseModel):
    """Display copy of the task changes an assistant turn applied."""

    newTasks: List[NewTaskDirective] = Field(default_factory=list)
    removeTasks: List[str] = Field(default_factory=list)
