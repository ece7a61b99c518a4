"""Local persistence."""

from .store import ActivityEntry, BotStore

__all__ = ["ActivityEntry", "BotStore"]
