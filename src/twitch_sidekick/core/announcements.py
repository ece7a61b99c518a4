"""Platform notifications (follow, subscribe, cheer) rendered into chat lines."""

import logging
from dataclasses import dataclass
from typing import Literal

from twitch_sidekick.config import MessagesConfig

logger = logging.getLogger(__name__)

PlatformEventKind = Literal["follow", "subscribe", "cheer"]


@dataclass(frozen=True)
class PlatformEvent:
    """A verified, decoded platform notification."""

    kind: PlatformEventKind
    user_name: str
    tier: str | None = None
    bits: int | None = None


class _Defaults(dict):
    """Leaves unknown placeholders untouched instead of raising."""

    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


def render_announcement(event: PlatformEvent, messages: MessagesConfig) -> str | None:
    """Substitute the event into its configured template."""
    template = getattr(messages, event.kind, None)
    if not template:
        logger.warning(f"No message template for platform event '{event.kind}'")
        return None

    values = _Defaults(
        username=event.user_name,
        # Helix reports tiers as 1000/2000/3000
        tier=_tier_label(event.tier),
        bits=event.bits if event.bits is not None else 0,
    )
    return template.format_map(values)


def _tier_label(tier: str | None) -> str:
    if not tier:
        return "1"
    if tier.isdigit() and len(tier) == 4:
        return tier[0]
    return tier
