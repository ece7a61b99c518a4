"""Outbound text filter applied to every generated reply."""

import logging
import re
from collections.abc import Iterable

logger = logging.getLogger(__name__)

# Twitch rejects chat messages longer than 500 characters
DEFAULT_MAX_LENGTH = 500
ELLIPSIS = "..."

ALLOWED_PUNCTUATION = frozenset(".,!?;:'\"()[]-_@#%&*/+=~<>$…")
ALLOWED_EMOJI = frozenset("🎮🔥🎉🎬⭐🌟💪🎯⚡😂😄😎👏❤🏆💬🔔💻📈")

_WHITESPACE = re.compile(r"\s+")


class ModerationFilter:
    """Pure text filter: deny-list rejection, character allow-list, truncation.

    Holds only its configuration. ``filter`` has no side effects: the same
    input always yields the same output.
    """

    def __init__(
        self,
        denied_words: Iterable[str] = (),
        max_length: int = DEFAULT_MAX_LENGTH,
    ):
        if max_length <= len(ELLIPSIS):
            raise ValueError(f"max_length must exceed {len(ELLIPSIS)}, got {max_length}")
        self._denied = frozenset(w.strip().lower() for w in denied_words if w.strip())
        self._max_length = max_length

    @property
    def denied_words(self) -> frozenset[str]:
        return self._denied

    @property
    def max_length(self) -> int:
        return self._max_length

    def with_denied_words(self, denied_words: Iterable[str]) -> "ModerationFilter":
        """Copy of this filter with a replaced deny-list."""
        return ModerationFilter(denied_words, self._max_length)

    def _is_denied(self, text: str) -> bool:
        lowered = text.lower()
        return any(word in lowered for word in self._denied)

    @staticmethod
    def _allowed(char: str) -> bool:
        return (
            char.isalnum()
            or char.isspace()
            or char in ALLOWED_PUNCTUATION
            or char in ALLOWED_EMOJI
        )

    def filter(self, text: str | None) -> str | None:
        """Return the cleaned text, or None if it is rejected or empty."""
        if not text:
            return None

        if self._is_denied(text):
            logger.info("FILTER: reply blocked by deny-list")
            return None

        cleaned = "".join(c for c in text if self._allowed(c))
        cleaned = _WHITESPACE.sub(" ", cleaned).strip()

        # Stripping characters can join the pieces of a denied word
        if self._is_denied(cleaned):
            logger.info("FILTER: reply blocked by deny-list after cleanup")
            return None

        if len(cleaned) > self._max_length:
            cleaned = cleaned[: self._max_length - len(ELLIPSIS)].rstrip() + ELLIPSIS

        return cleaned or None

    __call__ = filter
