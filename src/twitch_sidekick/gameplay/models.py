"""Gameplay and clip data models."""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class EventType(str, Enum):
    """Kind of gameplay event."""

    KILL = "kill"
    DEATH = "death"
    WIN = "win"
    COMBO = "combo"
    RARE_ACHIEVEMENT = "rare_achievement"
    MANUAL = "manual"  # operator-requested clip, never emitted by an analyzer


@dataclass(frozen=True)
class GameplayEvent:
    """A detected gameplay event. Timestamps are epoch milliseconds."""

    type: EventType
    occurred_at: float
    context: str
    intensity: float

    def __post_init__(self) -> None:
        if not 0.0 <= self.intensity <= 1.0:
            raise ValueError(f"Event intensity must be in [0, 1], got {self.intensity}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "occurred_at": self.occurred_at,
            "context": self.context,
            "intensity": round(self.intensity, 3),
        }


# Which counter each event type increments
STAT_FIELDS: dict[EventType, str] = {
    EventType.KILL: "kills",
    EventType.DEATH: "deaths",
    EventType.WIN: "wins",
    EventType.COMBO: "combos",
    EventType.RARE_ACHIEVEMENT: "rare_achievements",
}


@dataclass
class GameplayStats:
    """Running counters for one observing session."""

    kills: int = 0
    deaths: int = 0
    wins: int = 0
    losses: int = 0
    combos: int = 0
    rare_achievements: int = 0

    def record(self, event_type: EventType) -> None:
        stat = STAT_FIELDS.get(event_type)
        if stat:
            setattr(self, stat, getattr(self, stat) + 1)

    def snapshot(self) -> "GameplayStats":
        return GameplayStats(**asdict(self))

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class CriticalMoment:
    """A clip-worthy gameplay event."""

    id: int
    event: GameplayEvent
    title: str
    created_at: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "event": self.event.to_dict(),
            "title": self.title,
            "created_at": self.created_at,
        }


class ClipState(str, Enum):
    """Lifecycle of a clip request."""

    QUEUED = "queued"
    CREATED = "created"
    SIMULATED = "simulated"
    DISCARDED = "discarded"


@dataclass
class ClipRequest:
    """A queued clip, owned by the clip pipeline."""

    moment: CriticalMoment
    title: str
    enqueued_at: float
    state: ClipState = ClipState.QUEUED

    def to_dict(self) -> dict[str, Any]:
        return {
            "moment_id": self.moment.id,
            "title": self.title,
            "enqueued_at": self.enqueued_at,
            "state": self.state.value,
        }


@dataclass(frozen=True)
class ClipRecord:
    """A finalized clip, real or simulated."""

    id: str
    url: str
    edit_url: str
    title: str
    created_at: str
    simulated: bool
    moment: CriticalMoment = field(repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "edit_url": self.edit_url,
            "title": self.title,
            "created_at": self.created_at,
            "simulated": self.simulated,
            "moment": self.moment.to_dict(),
        }
