"""Clip path: clip-worthiness policy and the cooldown-guarded clip queue."""

from __future__ import annotations

import asyncio
import itertools
import logging
import random
import threading
from collections import deque
from collections.abc import Callable
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from twitch_sidekick.config import ClipConfig
from twitch_sidekick.core.events import (
    CLIP_CREATED,
    CLIP_REQUEST,
    CRITICAL_MOMENT,
    GAMEPLAY_EVENT,
    GAMEPLAY_RESET,
    EventBus,
)
from twitch_sidekick.core.logging import get_session_stats, log_timing
from twitch_sidekick.core.scheduler import Clock, PeriodicTask, Scheduler, system_clock
from twitch_sidekick.gameplay.models import (
    ClipRecord,
    ClipRequest,
    ClipState,
    CriticalMoment,
    EventType,
    GameplayEvent,
)

if TYPE_CHECKING:
    from twitch_sidekick.providers.clips import ClipProvider

logger = logging.getLogger(__name__)

MIN_COOLDOWN_MS = 30_000

MOMENT_TITLES: dict[EventType, tuple[str, ...]] = {
    EventType.KILL: ("Insane Play!", "What a Shot!", "Clean Elimination"),
    EventType.WIN: ("Victory Royale!", "Match Won!", "GG EZ"),
    EventType.COMBO: ("Combo Master!", "Unstoppable Combo", "Perfect Sequence"),
    EventType.RARE_ACHIEVEMENT: ("Rare Achievement!", "Once in a Lifetime", "Legendary Moment"),
}
DEFAULT_TITLE = "Epic Moment!"


def should_create_clip(event: GameplayEvent, sensitivity: float) -> bool:
    """Static clip-worthiness rule.

    A higher sensitivity makes combos *harder* to qualify.
    """
    if event.type == EventType.RARE_ACHIEVEMENT:
        return True
    if event.type == EventType.WIN:
        return event.intensity > 0.7
    if event.type == EventType.COMBO:
        return event.intensity > sensitivity
    if event.type == EventType.KILL:
        return event.intensity > 0.8
    return False


class CriticalMomentPipeline:
    """Records clip-worthy moments and turns them into clips, one per drain.

    Moments always land in the ring buffer; clip requests are only queued
    while the pipeline is active. Each drain takes the oldest request and
    either discards it (stale), puts it back (cooldown) or calls the clip
    provider. A failed or impossible call yields a simulated clip instead of
    losing the moment. The cooldown only advances on a real clip.
    """

    TASK_NAME = "clip-drain"

    def __init__(
        self,
        config: ClipConfig,
        bus: EventBus,
        scheduler: Scheduler,
        provider: ClipProvider | None,
        broadcaster_ref: str,
        sensitivity: Callable[[], float],
        clock: Clock = system_clock,
        rng: random.Random | None = None,
    ):
        self._config = config
        self._bus = bus
        self._provider = provider
        self._broadcaster_ref = broadcaster_ref
        self._sensitivity = sensitivity
        self._clock = clock
        self._rng = rng or random.Random()
        self._cooldown_ms = config.cooldown_ms
        self._active = False
        self._last_clip_at: float | None = None
        self._ids = itertools.count(1)

        # Guards both ends of the queue and request state transitions
        self._lock = threading.Lock()
        self._queue: deque[ClipRequest] = deque()
        self._moments: deque[CriticalMoment] = deque(maxlen=config.moment_buffer_size)
        self._clips: deque[ClipRecord] = deque(maxlen=config.recent_clips_size)

        self._task: PeriodicTask = scheduler.add(
            self.TASK_NAME, config.drain_interval_seconds, self.drain_once
        )
        bus.subscribe(GAMEPLAY_EVENT, self.handle_gameplay_event)
        bus.subscribe(GAMEPLAY_RESET, self.clear_moments)

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def can_create_real_clips(self) -> bool:
        return self._provider is not None and self._provider.configured

    @property
    def queue_length(self) -> int:
        with self._lock:
            return len(self._queue)

    def activate(self) -> None:
        if self._active:
            logger.info("Clip pipeline already active")
            return
        self._active = True
        self._task.start()
        if not self.can_create_real_clips:
            logger.warning("Twitch clip credentials missing: clips will be simulated")
        logger.info("Clip pipeline activated")

    def deactivate(self) -> None:
        if not self._active:
            logger.info("Clip pipeline already inactive")
            return
        self._active = False
        self._task.stop()
        logger.info("Clip pipeline deactivated")

    def _title_for(self, event: GameplayEvent) -> str:
        options = MOMENT_TITLES.get(event.type, (DEFAULT_TITLE,))
        return self._rng.choice(options)

    def _clip_title(self, moment: CriticalMoment) -> str:
        stamp = datetime.fromtimestamp(self._clock() / 1000).strftime("%H:%M")
        return f"{moment.title} - {stamp}"

    def _record_moment(self, event: GameplayEvent, title: str) -> CriticalMoment:
        moment = CriticalMoment(
            id=next(self._ids),
            event=event,
            title=title,
            created_at=self._clock(),
        )
        with self._lock:
            self._moments.append(moment)
        get_session_stats().increment("critical_moments")
        return moment

    def _enqueue(self, moment: CriticalMoment, title: str | None = None) -> ClipRequest:
        request = ClipRequest(
            moment=moment,
            title=title or self._clip_title(moment),
            enqueued_at=self._clock(),
        )
        with self._lock:
            self._queue.append(request)
            depth = len(self._queue)
        logger.info(f"CLIP_QUEUE: '{request.title}' queued ({depth} waiting)")
        return request

    async def handle_gameplay_event(self, event: GameplayEvent) -> ClipRequest | None:
        """Bus subscriber: record and queue clip-worthy events."""
        if not should_create_clip(event, self._sensitivity()):
            return None

        moment = self._record_moment(event, self._title_for(event))
        logger.info(f"CRITICAL_MOMENT: {moment.title} ({event.type.value}, {event.intensity:.2f})")
        await self._bus.publish(CRITICAL_MOMENT, moment)

        if not self._active:
            return None

        request = self._enqueue(moment)
        await self._bus.publish(CLIP_REQUEST, request)
        return request

    async def create_manual_clip(self, title: str = "Manual Clip") -> ClipRequest:
        """Queue a clip regardless of worthiness or activation."""
        event = GameplayEvent(
            type=EventType.MANUAL,
            occurred_at=self._clock(),
            context=title,
            intensity=1.0,
        )
        moment = self._record_moment(event, title)
        request = self._enqueue(moment, title=title)
        await self._bus.publish(CLIP_REQUEST, request)
        return request

    def cooldown_remaining(self, now: float | None = None) -> float:
        if self._last_clip_at is None:
            return 0.0
        now = self._clock() if now is None else now
        return max(0.0, self._cooldown_ms - (now - self._last_clip_at))

    async def drain_once(self) -> ClipRequest | None:
        """Service at most one queued request.

        Returns:
            The request that was finalized or discarded, or None when the
            queue is empty or the head had to wait for the cooldown
        """
        now = self._clock()
        with self._lock:
            if not self._queue:
                return None
            request = self._queue.popleft()

            age = now - request.enqueued_at
            if age > self._config.max_age_ms:
                request.state = ClipState.DISCARDED
                stale = True
            elif self.cooldown_remaining(now) > 0:
                self._queue.appendleft(request)
                return None
            else:
                stale = False

        if stale:
            get_session_stats().increment("clips_discarded")
            logger.info(f"CLIP_DISCARD: '{request.title}' went stale ({age:.0f}ms old)")
            return request

        record = await self._create(request)
        await self._bus.publish(CLIP_CREATED, record)
        return request

    async def _create(self, request: ClipRequest) -> ClipRecord:
        if self.can_create_real_clips:
            try:
                with log_timing(logger, "Clip request"):
                    handle = await asyncio.wait_for(
                        self._provider.request_clip(self._broadcaster_ref),
                        timeout=self._config.timeout_seconds,
                    )
            except TimeoutError:
                logger.warning(f"Clip request timed out for '{request.title}'")
            except Exception as e:
                logger.error(f"Clip request failed for '{request.title}': {e}")
            else:
                with self._lock:
                    request.state = ClipState.CREATED
                    self._last_clip_at = self._clock()
                record = ClipRecord(
                    id=handle.id,
                    url=handle.url,
                    edit_url=handle.edit_url,
                    title=request.title,
                    created_at=handle.created_at,
                    simulated=False,
                    moment=request.moment,
                )
                get_session_stats().increment("clips_created")
                logger.info(f"CLIP_CREATED: '{record.title}' {record.url}")
                return self._register(record)

        return self._simulate(request)

    def _simulate(self, request: ClipRequest) -> ClipRecord:
        clip_id = f"sim_{request.moment.id}"
        url = f"https://clips.twitch.tv/{clip_id}"
        with self._lock:
            request.state = ClipState.SIMULATED
        record = ClipRecord(
            id=clip_id,
            url=url,
            edit_url=f"{url}/edit",
            title=request.title,
            created_at=datetime.fromtimestamp(self._clock() / 1000, tz=timezone.utc).isoformat(),
            simulated=True,
            moment=request.moment,
        )
        get_session_stats().increment("clips_simulated")
        logger.info(f"CLIP_SIMULATED: '{record.title}' {record.url}")
        return self._register(record)

    def _register(self, record: ClipRecord) -> ClipRecord:
        with self._lock:
            self._clips.append(record)
        return record

    def moments(self, limit: int | None = None) -> list[CriticalMoment]:
        """Recorded moments, oldest first."""
        with self._lock:
            moments = list(self._moments)
        return moments[-limit:] if limit else moments

    def recent_clips(self, limit: int = 10) -> list[ClipRecord]:
        """Finalized clips, newest first."""
        with self._lock:
            clips = list(self._clips)
        return list(reversed(clips))[:limit]

    def queued(self) -> list[ClipRequest]:
        with self._lock:
            return list(self._queue)

    def update_cooldown(self, cooldown_ms: int) -> int:
        self._cooldown_ms = max(MIN_COOLDOWN_MS, int(cooldown_ms))
        logger.info(f"Clip cooldown set to {self._cooldown_ms}ms")
        return self._cooldown_ms

    def clear_moments(self, _payload: Any = None) -> None:
        with self._lock:
            self._moments.clear()

    def reset(self) -> None:
        with self._lock:
            self._queue.clear()
            self._moments.clear()
            self._clips.clear()
            self._last_clip_at = None
        logger.info("Clip pipeline state reset")

    def stats(self) -> dict[str, Any]:
        with self._lock:
            queue_length = len(self._queue)
            recent = len(self._clips)
            moments = len(self._moments)
        return {
            "is_active": self._active,
            "real_clips": self.can_create_real_clips,
            "queue_length": queue_length,
            "moments": moments,
            "recent_clips": recent,
            "last_clip_time": self._last_clip_at,
            "cooldown_ms": self._cooldown_ms,
            "cooldown_remaining_ms": self.cooldown_remaining(),
        }
