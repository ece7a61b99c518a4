"""Response decision engine: decides whether a generated reply is attempted."""

import asyncio
import logging
import random
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace

from twitch_sidekick.config import ResponseConfig, clamp_unit
from twitch_sidekick.core.logging import get_session_stats
from twitch_sidekick.core.scheduler import Clock, PeriodicTask, Scheduler, system_clock
from twitch_sidekick.gameplay.models import GameplayEvent

logger = logging.getLogger(__name__)

# Ambient chat never responds more often than this
MAX_CHAT_PROBABILITY = 0.1


@dataclass(frozen=True)
class ChatTrigger:
    """An inbound chat message."""

    channel: str
    sender: str
    text: str
    occurred_at: float


@dataclass(frozen=True)
class GameplayTrigger:
    """A gameplay event waiting in the commentary queue."""

    event: GameplayEvent
    enqueued_at: float


Trigger = ChatTrigger | GameplayTrigger

# Produces reply text for an approved trigger, or None
Producer = Callable[[Trigger], Awaitable[str | None]]
# Sends reply text for a trigger
Deliverer = Callable[[Trigger, str], Awaitable[None]]


@dataclass
class EngineState:
    """Mutable decision state. ``last_response_at`` guards the cooldown."""

    last_response_at: float | None
    intensity: float
    min_interval_ms: int
    activated: bool


@dataclass
class GateResult:
    """Result of a gate decision."""

    should_respond: bool
    reason: str
    probability: float = 0.0
    roll: float | None = None

    def __str__(self) -> str:
        status = "PASS" if self.should_respond else "FAIL"
        roll = f", roll={self.roll:.3f}" if self.roll is not None else ""
        return f"Gate[{status}]: {self.reason} P={self.probability:.3f}{roll}"


@dataclass
class ResponseOutcome:
    """What happened to a trigger fed through ``process``."""

    decision: GateResult
    attempted: bool = False
    sent: bool = False
    text: str | None = None


class ResponseDecisionEngine:
    """Owns the cooldown and probability policy for generated replies.

    Policy, in order:
    - inactive engine -> never
    - chat message starting with the command prefix -> never
    - cooldown not elapsed since the last *sent* reply -> never
    - chat message mentioning the bot (case-insensitive) -> always
    - gameplay event -> P = 1 - threshold, threshold = 1 - intensity
    - ambient chat -> P = intensity * 0.1 (0-10%)

    ``process`` serializes the whole decide -> generate -> send sequence
    behind a lock. A trigger arriving while another attempt is in flight
    waits for it and is then gated against the updated cooldown. The
    cooldown advances only after a reply is actually sent; a failed
    generation leaves it untouched.
    """

    TASK_NAME = "response-drain"

    def __init__(
        self,
        config: ResponseConfig,
        bot_name: str,
        scheduler: Scheduler,
        produce: Producer | None = None,
        deliver: Deliverer | None = None,
        clock: Clock = system_clock,
        rng: random.Random | None = None,
    ):
        self._config = config
        self._bot_name = bot_name.lower()
        self._command_prefix = config.command_prefix
        self._produce = produce
        self._deliver = deliver
        self._clock = clock
        self._rng = rng or random.Random()
        self._state = EngineState(
            last_response_at=None,
            intensity=clamp_unit(config.intensity),
            min_interval_ms=config.min_interval_ms,
            activated=False,
        )
        self._lock = asyncio.Lock()
        self._queue: deque[GameplayTrigger] = deque()
        self._task: PeriodicTask = scheduler.add(
            self.TASK_NAME, config.drain_interval_seconds, self.drain_once
        )

    # -- state ---------------------------------------------------------------

    @property
    def state(self) -> EngineState:
        """Snapshot of the engine state."""
        return replace(self._state)

    @property
    def is_active(self) -> bool:
        return self._state.activated

    @property
    def intensity(self) -> float:
        return self._state.intensity

    @property
    def queue_length(self) -> int:
        return len(self._queue)

    def bind(self, produce: Producer, deliver: Deliverer) -> None:
        """Attach the reply producer and sender."""
        self._produce = produce
        self._deliver = deliver

    def update_intensity(self, intensity: float) -> float:
        self._state.intensity = clamp_unit(intensity)
        logger.info(f"Response intensity set to {self._state.intensity:.2f}")
        return self._state.intensity

    def update_min_interval(self, min_interval_ms: int) -> int:
        if min_interval_ms < 0:
            raise ValueError(f"min_interval_ms must be >= 0, got {min_interval_ms}")
        self._state.min_interval_ms = int(min_interval_ms)
        logger.info(f"Response min interval set to {self._state.min_interval_ms}ms")
        return self._state.min_interval_ms

    def activate(self) -> None:
        if self._state.activated:
            logger.info("Response engine already active")
            return
        self._state.activated = True
        self._task.start()
        logger.info("Response engine activated")

    def deactivate(self) -> None:
        """Stop future drains. In-flight replies are discarded on completion."""
        if not self._state.activated:
            logger.info("Response engine already inactive")
            return
        self._state.activated = False
        self._task.stop()
        logger.info("Response engine deactivated")

    def record_response(self, at: float | None = None) -> None:
        """Mark a reply as sent, starting a new cooldown window."""
        self._state.last_response_at = self._clock() if at is None else at

    def cooldown_remaining(self, now: float | None = None) -> float:
        if self._state.last_response_at is None:
            return 0.0
        now = self._clock() if now is None else now
        elapsed = now - self._state.last_response_at
        return max(0.0, self._state.min_interval_ms - elapsed)

    # -- policy --------------------------------------------------------------

    def is_command(self, text: str) -> bool:
        return bool(self._command_prefix) and text.startswith(self._command_prefix)

    def mentions_bot(self, text: str) -> bool:
        return bool(self._bot_name) and self._bot_name in text.lower()

    def should_respond(
        self,
        trigger: Trigger,
        now: float | None = None,
        _roll: float | None = None,  # For testing
    ) -> GateResult:
        """Decide whether a reply should be attempted for a trigger."""
        if trigger is None:
            raise ValueError("trigger is required")

        result = self._evaluate(trigger, now, _roll)

        status = "PASS" if result.should_respond else "FAIL"
        roll = f" roll={result.roll:.3f}" if result.roll is not None else ""
        logger.info(
            f"GATE: {type(trigger).__name__} {result.reason} "
            f"P={result.probability:.3f}{roll} -> {status}"
        )

        stats = get_session_stats()
        if result.should_respond:
            stats.increment("gate_passes")
        else:
            stats.increment("gate_fails")

        return result

    def _evaluate(self, trigger: Trigger, now: float | None, roll: float | None) -> GateResult:
        if not self._state.activated:
            return GateResult(False, "inactive")

        if isinstance(trigger, ChatTrigger) and self.is_command(trigger.text):
            return GateResult(False, "command")

        if self.cooldown_remaining(now) > 0:
            return GateResult(False, "cooldown")

        if isinstance(trigger, ChatTrigger) and self.mentions_bot(trigger.text):
            return GateResult(True, "mention", probability=1.0)

        if isinstance(trigger, GameplayTrigger):
            # Higher configured intensity lowers the bar to react
            threshold = 1.0 - self._state.intensity
            probability = 1.0 - threshold
            reason = "gameplay"
        else:
            probability = min(self._state.intensity * 0.1, MAX_CHAT_PROBABILITY)
            reason = "ambient"

        roll = roll if roll is not None else self._rng.random()
        return GateResult(roll < probability, reason, probability=probability, roll=roll)

    # -- execution -----------------------------------------------------------

    async def process(self, trigger: Trigger, _roll: float | None = None) -> ResponseOutcome:
        """Gate a trigger and, if approved, produce and deliver a reply."""
        if trigger is None:
            raise ValueError("trigger is required")

        # Gate inside the lock so the cooldown reflects the previous attempt
        async with self._lock:
            decision = self.should_respond(trigger, _roll=_roll)
            if not decision.should_respond:
                return ResponseOutcome(decision)

            if self._produce is None or self._deliver is None:
                raise RuntimeError("Response engine has no producer/deliverer bound")

            text = await self._produce(trigger)
            if not text:
                get_session_stats().increment("generation_failures")
                logger.info("RESPONSE: nothing produced, cooldown untouched")
                return ResponseOutcome(decision, attempted=True)

            if not self._state.activated:
                logger.info("RESPONSE: engine deactivated during generation, discarding reply")
                return ResponseOutcome(decision, attempted=True, text=text)

            await self._deliver(trigger, text)
            self.record_response()
            get_session_stats().increment("responses_sent")
            return ResponseOutcome(decision, attempted=True, sent=True, text=text)

    def enqueue_gameplay(self, event: GameplayEvent) -> bool:
        """Queue commentary for a notable gameplay event."""
        if not self._state.activated:
            return False
        if event.intensity <= self._config.gameplay_min_event_intensity:
            return False
        self._queue.append(GameplayTrigger(event=event, enqueued_at=self._clock()))
        logger.debug(f"RESPONSE_QUEUE: {event.type.value} queued ({len(self._queue)} waiting)")
        return True

    async def drain_once(self, _roll: float | None = None) -> ResponseOutcome | None:
        """Process at most one queued gameplay trigger."""
        if not self._state.activated or not self._queue:
            return None

        trigger = self._queue.popleft()
        age = self._clock() - trigger.enqueued_at
        if age > self._config.queue_max_age_ms:
            logger.info(f"RESPONSE_QUEUE: dropped stale {trigger.event.type.value} ({age:.0f}ms old)")
            return None

        return await self.process(trigger, _roll=_roll)

    def stats(self) -> dict:
        return {
            "is_active": self._state.activated,
            "intensity": self._state.intensity,
            "min_interval_ms": self._state.min_interval_ms,
            "queue_length": len(self._queue),
            "cooldown_remaining_ms": self.cooldown_remaining(),
        }

    def reset(self) -> None:
        self._queue.clear()
        self._state.last_response_at = None
        logger.info("Response engine state reset")
