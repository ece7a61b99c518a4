"""Gameplay event detection.

The detector polls an analyzer at a fixed cadence, keeps per-session
counters and publishes every event on the bus. The only analyzer shipped
today is a stochastic simulator; a real stream analyzer plugs in through
the ``GameplayAnalyzer`` protocol without touching the policy downstream.
"""

import logging
import random
from dataclasses import dataclass
from typing import Protocol

from twitch_sidekick.config import ObserverConfig, clamp_unit
from twitch_sidekick.core.events import GAMEPLAY_EVENT, GAMEPLAY_RESET, EventBus
from twitch_sidekick.core.logging import get_session_stats
from twitch_sidekick.core.scheduler import Clock, PeriodicTask, Scheduler, system_clock
from twitch_sidekick.gameplay.models import EventType, GameplayEvent, GameplayStats

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EventRule:
    """Fire probability and intensity range [low, high) for one event type."""

    type: EventType
    probability: float
    low: float
    high: float
    context: str


SIMULATION_TABLE: tuple[EventRule, ...] = (
    EventRule(EventType.KILL, 0.10, 0.2, 1.0, "Enemy eliminated"),
    EventRule(EventType.DEATH, 0.05, 0.1, 0.7, "Player eliminated"),
    EventRule(EventType.WIN, 0.02, 0.5, 1.0, "Match won"),
    EventRule(EventType.COMBO, 0.03, 0.3, 1.0, "Spectacular combo"),
    EventRule(EventType.RARE_ACHIEVEMENT, 0.01, 0.7, 1.0, "Rare achievement unlocked"),
)


class GameplayAnalyzer(Protocol):
    """Source of gameplay events for one evaluation step."""

    def evaluate(self, now: float) -> list[GameplayEvent]: ...


class SimulatedAnalyzer:
    """Independent Bernoulli trial per event type, one draw each.

    Zero or more events may fire per evaluation.
    """

    def __init__(
        self,
        rng: random.Random | None = None,
        table: tuple[EventRule, ...] = SIMULATION_TABLE,
    ):
        self._rng = rng or random.Random()
        self._table = table

    def evaluate(self, now: float) -> list[GameplayEvent]:
        events = []
        for rule in self._table:
            if self._rng.random() < rule.probability:
                intensity = rule.low + self._rng.random() * (rule.high - rule.low)
                events.append(
                    GameplayEvent(
                        type=rule.type,
                        occurred_at=now,
                        context=rule.context,
                        intensity=intensity,
                    )
                )
        return events


class GameplayDetector:
    """Polls the analyzer and publishes ``gameplayEvent`` for each result."""

    TASK_NAME = "gameplay-poll"

    def __init__(
        self,
        bus: EventBus,
        config: ObserverConfig,
        scheduler: Scheduler,
        analyzer: GameplayAnalyzer | None = None,
        clock: Clock = system_clock,
    ):
        self._bus = bus
        self._analyzer = analyzer or SimulatedAnalyzer()
        self._clock = clock
        self._sensitivity = clamp_unit(config.sensitivity)
        self._stats = GameplayStats()
        self._task: PeriodicTask = scheduler.add(
            self.TASK_NAME, config.poll_interval_seconds, self.tick
        )

    @property
    def is_observing(self) -> bool:
        return self._task.running

    @property
    def sensitivity(self) -> float:
        return self._sensitivity

    def start(self) -> None:
        if self._task.running:
            logger.info("Gameplay observer already running")
            return
        self._task.start()
        logger.info(f"Gameplay observer started (every {self._task.interval}s)")

    def stop(self) -> None:
        if not self._task.running:
            logger.info("Gameplay observer already stopped")
            return
        self._task.stop()
        logger.info("Gameplay observer stopped")

    async def tick(self) -> list[GameplayEvent]:
        """Run one evaluation and publish what fired."""
        events = self._analyzer.evaluate(self._clock())
        stats = get_session_stats()
        for event in events:
            self._stats.record(event.type)
            stats.increment("gameplay_events")
            logger.info(
                f"GAMEPLAY_EVENT: {event.type.value} - {event.context} "
                f"(intensity={event.intensity:.2f})"
            )
            await self._bus.publish(GAMEPLAY_EVENT, event)
        return events

    def update_sensitivity(self, sensitivity: float) -> float:
        """Clamp and store. Applies from the next evaluation on."""
        self._sensitivity = clamp_unit(sensitivity)
        logger.info(f"Observer sensitivity set to {self._sensitivity:.2f}")
        return self._sensitivity

    def stats(self) -> GameplayStats:
        """Snapshot of the session counters."""
        return self._stats.snapshot()

    async def reset(self) -> None:
        """Zero the counters and clear recorded moments. Cadence is untouched."""
        self._stats = GameplayStats()
        await self._bus.publish(GAMEPLAY_RESET)
        logger.info("Gameplay observer data reset")
