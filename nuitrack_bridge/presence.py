"""
Presence tracking
- Keeps the ordered roster of tracked user ids
- Turns engine appeared / lost notifications into events with the full roster
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Tuple


class PresenceEventKind(Enum):
    APPEARED = "appeared"
    DISAPPEARED = "disappeared"


@dataclass(frozen=True)
class PresenceEvent:
    kind: PresenceEventKind
    key_id: int
    user_ids: Tuple[int, ...]


class PresenceTracker:
    """Single writer of the roster. Insertion ordered, not sorted."""

    def __init__(self, publish: Callable[[PresenceEvent], None]):
        self._publish = publish
        self._roster: List[int] = []

    @property
    def roster(self) -> Tuple[int, ...]:
        return tuple(self._roster)

    def on_appear(self, user_id: int) -> PresenceEvent:
        # the engine never re-announces a live id, so no duplicate check
        self._roster.append(int(user_id))
        event = PresenceEvent(PresenceEventKind.APPEARED, int(user_id), tuple(self._roster))
        self._publish(event)
        return event

    def on_disappear(self, user_id: int) -> Optional[PresenceEvent]:
        """Unknown ids (late or duplicate lost notifications) are dropped without an event"""
        try:
            self._roster.remove(int(user_id))
        except ValueError:
            return None

        event = PresenceEvent(PresenceEventKind.DISAPPEARED, int(user_id), tuple(self._roster))
        self._publish(event)
        return event

    def reset(self):
        self._roster.clear()
