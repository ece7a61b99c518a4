"""Logging utilities for twitch-sidekick."""

import json
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Generator

# AI debug mode flag
_ai_debug: bool = False
_ai_debug_lock = Lock()


def set_ai_debug(enabled: bool) -> None:
    """Enable or disable AI debug logging."""
    global _ai_debug
    with _ai_debug_lock:
        _ai_debug = enabled


def is_ai_debug() -> bool:
    """Check if AI debug logging is enabled."""
    with _ai_debug_lock:
        return _ai_debug


# Dedicated logger for AI debug output
_ai_logger = logging.getLogger("twitch_sidekick.ai_debug")


def log_llm_call(
    operation: str,
    model: str,
    system_prompt: str | None = None,
    user_prompt: str | None = None,
    config: dict[str, Any] | None = None,
) -> None:
    """Log the input to a completion call when AI debug is enabled."""
    if not is_ai_debug():
        return

    parts = [
        f"\n{'='*80}",
        f"LLM CALL: {operation}",
        f"Model: {model}",
        f"{'='*80}",
    ]

    if system_prompt:
        parts.append(f"\n--- SYSTEM PROMPT ---\n{system_prompt}")

    if user_prompt:
        parts.append(f"\n--- USER PROMPT ---\n{user_prompt}")

    if config:
        parts.append(f"\n--- CONFIG ---\n{json.dumps(config, indent=2, default=str)}")

    _ai_logger.info("\n".join(parts))


def log_llm_response(
    operation: str,
    response_text: str | None = None,
    filtered_text: str | None = None,
    error: str | None = None,
) -> None:
    """Log the output from a completion call when AI debug is enabled."""
    if not is_ai_debug():
        return

    parts = [
        f"\n{'-'*80}",
        f"LLM RESPONSE: {operation}",
        f"{'-'*80}",
    ]

    if response_text:
        parts.append(f"\n--- RESPONSE TEXT ---\n{response_text}")

    if response_text and filtered_text != response_text:
        parts.append(f"\n--- AFTER FILTER ---\n{filtered_text or '(blocked)'}")

    if error:
        parts.append(f"\n--- ERROR ---\n{error}")

    parts.append(f"{'='*80}\n")

    _ai_logger.info("\n".join(parts))


@dataclass
class SessionStats:
    """Cumulative statistics for a session.

    Thread-safe counters for tracking bot activity metrics.
    """

    messages_received: int = 0
    gate_passes: int = 0
    gate_fails: int = 0
    responses_sent: int = 0
    generation_failures: int = 0
    replies_filtered: int = 0
    gameplay_events: int = 0
    critical_moments: int = 0
    clips_created: int = 0
    clips_simulated: int = 0
    clips_discarded: int = 0
    announcements_sent: int = 0
    commands_handled: int = 0
    recurring_sent: int = 0
    api_calls: dict[str, int] = field(default_factory=dict)
    _lock: Lock = field(default_factory=Lock, repr=False)

    def increment(self, stat: str, amount: int = 1) -> None:
        """Increment a stat counter."""
        with self._lock:
            if hasattr(self, stat) and stat != "_lock":
                current = getattr(self, stat)
                if isinstance(current, int):
                    setattr(self, stat, current + amount)

    def increment_api_call(self, model: str) -> None:
        """Track an API call to a specific model."""
        with self._lock:
            self.api_calls[model] = self.api_calls.get(model, 0) + 1

    def summary(self) -> dict[str, Any]:
        """Return a summary of all stats."""
        with self._lock:
            total_gate = self.gate_passes + self.gate_fails

            return {
                "received": self.messages_received,
                "gate_rate": f"{100 * self.gate_passes / max(1, total_gate):.0f}%",
                "responses_sent": self.responses_sent,
                "generation_failures": self.generation_failures,
                "commands_handled": self.commands_handled,
                "gameplay_events": self.gameplay_events,
                "clips_created": self.clips_created,
                "clips_simulated": self.clips_simulated,
                "clips_discarded": self.clips_discarded,
                "api_calls": dict(self.api_calls),
            }

    def summary_line(self) -> str:
        """Return a single-line summary for logging."""
        with self._lock:
            total_gate = self.gate_passes + self.gate_fails
            gate_pct = 100 * self.gate_passes / max(1, total_gate)

            return (
                f"received={self.messages_received} gate_rate={gate_pct:.0f}% "
                f"sent={self.responses_sent} failed={self.generation_failures} "
                f"gameplay={self.gameplay_events} "
                f"clips={self.clips_created}+{self.clips_simulated}sim"
            )


# Global session stats instance
_session_stats: SessionStats | None = None
_stats_lock = Lock()


def get_session_stats() -> SessionStats:
    """Get the global session stats instance."""
    global _session_stats
    with _stats_lock:
        if _session_stats is None:
            _session_stats = SessionStats()
        return _session_stats


def reset_session_stats() -> None:
    """Reset session stats (mainly for testing)."""
    global _session_stats
    with _stats_lock:
        _session_stats = SessionStats()


# Dedicated logger for completion call summaries (always on)
_llm_logger = logging.getLogger("twitch_sidekick.llm")


def log_llm_round(
    component: str,
    model: str,
    tokens_in: int | None,
    tokens_out: int | None,
    stop_reason: str | None = None,
) -> None:
    """Log a summary of a completion call (always on).

    Args:
        component: Which provider made the call (e.g., "anthropic", "gemini")
        model: Model name used
        tokens_in: Input token count (None if unavailable)
        tokens_out: Output token count (None if unavailable)
        stop_reason: Stop reason reported by the provider
    """
    tokens_str = f"in={tokens_in or '?'} out={tokens_out or '?'}"
    stop_str = f" stop={stop_reason}" if stop_reason else ""

    _llm_logger.info(f"LLM_ROUND [{component}] model={model} {tokens_str}{stop_str}")


@contextmanager
def log_timing(
    logger: logging.Logger, operation: str
) -> Generator[None, None, None]:
    """Context manager for timing operations.

    Logs at DEBUG level on completion.

    Example:
        with log_timing(logger, "Clip request"):
            handle = await provider.request_clip(channel)
        # Logs: "Clip request completed in 1.23ms"
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.debug(f"{operation} completed in {elapsed_ms:.2f}ms")
