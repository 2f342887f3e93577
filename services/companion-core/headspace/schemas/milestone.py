from typing import Optional

from pydantic import BaseModel


class MilestoneDefinition(BaseModel):
    threshold: int
    title: str
    description: str
    icon: str


class MilestoneStatus(BaseModel):
    achieved: bool = False
    achievedAt: Optional[str] = None


class Milestone(MilestoneDefinition):
    achieved: bool
    achievedAt: Optional[str] = None


class MilestoneProgress(BaseModel):
    lifetimeCompleted: int
    next: Optional[MilestoneDefinition] = None
    percentage: float
    allAchieved: bool
