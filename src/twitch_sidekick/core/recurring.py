"""Rotating reminder messages posted while chat is quiet."""

import logging
from collections.abc import Awaitable, Callable

from twitch_sidekick.config import RecurringConfig
from twitch_sidekick.core.logging import get_session_stats
from twitch_sidekick.core.scheduler import Clock, PeriodicTask, Scheduler, system_clock

logger = logging.getLogger(__name__)


class RecurringMessages:
    """Posts the configured messages in rotation, one per interval.

    A tick is skipped while chat has been active within the configured
    inactivity window, so reminders never interrupt a conversation.
    """

    TASK_NAME = "recurring-messages"

    def __init__(
        self,
        config: RecurringConfig,
        scheduler: Scheduler,
        send: Callable[[str], Awaitable[None]],
        clock: Clock = system_clock,
    ):
        self._messages = [m for m in config.messages if m.strip()]
        self._min_inactivity_ms = config.min_chat_inactivity_ms
        self._send = send
        self._clock = clock
        self._last_chat_activity = clock()
        self._index = 0
        self._active = False
        self._task: PeriodicTask = scheduler.add(self.TASK_NAME, config.interval_seconds, self.tick)

    @property
    def is_active(self) -> bool:
        return self._active

    def activate(self) -> None:
        if self._active:
            return
        if not self._messages:
            logger.warning("No recurring messages configured, staying inactive")
            return
        self._active = True
        self._task.start()
        logger.info(f"Recurring messages activated ({len(self._messages)} in rotation)")

    def deactivate(self) -> None:
        if not self._active:
            return
        self._active = False
        self._task.stop()
        logger.info("Recurring messages deactivated")

    def note_chat_activity(self, at: float | None = None) -> None:
        self._last_chat_activity = self._clock() if at is None else at

    async def tick(self) -> str | None:
        """Send the next message in rotation, unless chat is busy."""
        if not self._active or not self._messages:
            return None

        quiet_for = self._clock() - self._last_chat_activity
        if quiet_for < self._min_inactivity_ms:
            logger.info(f"RECURRING: chat active {quiet_for:.0f}ms ago, postponing")
            return None

        text = self._messages[self._index]
        self._index = (self._index + 1) % len(self._messages)
        await self._send(text)
        get_session_stats().increment("recurring_sent")
        logger.info(f"RECURRING: sent {text!r}")
        return text

    def stats(self) -> dict:
        return {
            "is_active": self._active,
            "messages": len(self._messages),
            "next_index": self._index,
        }
