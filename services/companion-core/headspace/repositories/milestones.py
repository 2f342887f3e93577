"""Milestone achievement state driven by the lifetime completed counter.

The tracker only ever moves a threshold from unachieved to achieved. It reads
the counter it is given and never lowers stored state, so a stale or smaller
count cannot undo an achievement.
"""

import logging
from typing import Dict, List, Optional

from ..errors import StorageWriteFailed
from ..schemas.milestone import Milestone, MilestoneDefinition, MilestoneProgress, MilestoneStatus
from ..store import keys
from ..store.adapter import PersistedStore, read_json, write_json
from ..store.bus import ChangeBus
from ..utils.clock import Clock, now_iso

logger = logging.getLogger(__name__)

MILESTONES: List[MilestoneDefinition] = [
    MilestoneDefinition(threshold=5, title="First Steps", description="Complete your first 5 tasks", icon="🌱"),
    MilestoneDefinition(threshold=15, title="Getting Momentum", description="Finish 15 tasks total", icon="🚀"),
    MilestoneDefinition(threshold=30, title="Productivity Pro", description="Complete 30 tasks", icon="⭐"),
    MilestoneDefinition(threshold=50, title="Task Master", description="Achieve 50 completed tasks", icon="👑"),
    MilestoneDefinition(threshold=100, title="Century Club", description="Complete 100 tasks!", icon="💎"),
]

MilestoneStates = Dict[int, MilestoneStatus]


def _parse_states(raw: object) -> MilestoneStates:
    if not isinstance(raw, dict):
        return {}
    states: MilestoneStates = {}
    for threshold, value in raw.items():
        try:
            states[int(threshold)] = MilestoneStatus(**value) if isinstance(value, dict) else MilestoneStatus()
        except (TypeError, ValueError):
            continue
    return states


class MilestoneTracker:
    def __init__(self, store: PersistedStore, bus: ChangeBus, clock: Clock = now_iso, definitions: Optional[List[MilestoneDefinition]] = None) -> None:
        self._store = store
        self._bus = bus
        self._clock = clock
        self.definitions = sorted(definitions or MILESTONES, key=lambda item: item.threshold)

    def states(self) -> MilestoneStates:
        return _parse_states(read_json(self._store, keys.MILESTONE_STATES, {}))

    def evaluate(self, lifetime_count: int) -> List[MilestoneDefinition]:
        """Mark every threshold reached by ``lifetime_count``; return the newly achieved ones.

        Raises StorageWriteFailed if a change could not be persisted.
        """
        states = self.states()
        newly_achieved: List[MilestoneDefinition] = []
        for definition in self.definitions:
            current = states.get(definition.threshold)
            if current and current.achieved:
                continue
            if lifetime_count >= definition.threshold:
                states[definition.threshold] = MilestoneStatus(achieved=True, achievedAt=self._clock())
                newly_achieved.append(definition)
                logger.info("Milestone achieved: %s at %s tasks", definition.title, lifetime_count)
            elif current is None:
                states[definition.threshold] = MilestoneStatus(achieved=False)

        if not newly_achieved:
            return []

        payload = {str(threshold): status.model_dump(exclude_none=True) for threshold, status in states.items()}
        try:
            text = write_json(self._store, keys.MILESTONE_STATES, payload)
        except StorageWriteFailed:
            logger.error("Could not persist milestone states for count %s", lifetime_count)
            raise
        self._bus.publish(keys.MILESTONE_STATES, text)
        return newly_achieved

    def milestones(self) -> List[Milestone]:
        states = self.states()
        merged: List[Milestone] = []
        for definition in self.definitions:
            status = states.get(definition.threshold) or MilestoneStatus()
            merged.append(Milestone(**definition.model_dump(), achieved=status.achieved, achievedAt=status.achievedAt))
        return merged

    def progress_to_next(self, lifetime_count: int) -> MilestoneProgress:
        states = self.states()
        for definition in self.definitions:
            status = states.get(definition.threshold)
            if status and status.achieved:
                continue
            if lifetime_count >= definition.threshold:
                # Reached but not yet recorded; evaluate() will catch up.
                continue
            percentage = min(max(lifetime_count, 0) / definition.threshold * 100, 100.0)
            return MilestoneProgress(lifetimeCompleted=lifetime_count, next=definition, percentage=percentage, allAchieved=False)
        return MilestoneProgress(lifetimeCompleted=lifetime_count, next=None, percentage=100.0, allAchieved=True)
