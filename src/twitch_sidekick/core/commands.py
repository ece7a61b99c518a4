"""Prefix commands answered directly, outside the reply engine."""

import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from twitch_sidekick.core.logging import get_session_stats
from twitch_sidekick.core.scheduler import Clock, system_clock

logger = logging.getLogger(__name__)

UNKNOWN_GAME = "not detected"

# Twitch login names
LOGIN_PATTERN = re.compile(r"^[A-Za-z0-9_]{1,25}$")

ClipRequester = Callable[[str], Awaitable[Any]]


def format_uptime(elapsed_ms: float) -> str:
    total = max(0, int(elapsed_ms // 1000))
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours}h {minutes}m {seconds}s"


@dataclass(frozen=True)
class ParsedCommand:
    """A command name (lowercased) and its whitespace-separated arguments."""

    name: str
    args: tuple[str, ...]


class ChatCommands:
    """Answers ``help``, ``uptime``, ``game``, ``so`` and ``clip``.

    A message is a command only when the prefix is its very first
    character. Unknown commands get no reply. Every reply is addressed
    to the caller except the shoutout.
    """

    def __init__(
        self,
        prefix: str = "!",
        request_clip: ClipRequester | None = None,
        clips_active: Callable[[], bool] | None = None,
        clock: Clock = system_clock,
    ):
        self._prefix = prefix
        self._request_clip = request_clip
        self._clips_active = clips_active
        self._clock = clock
        self._started_at = clock()
        self._active = False
        self.current_game: str | None = None
        self._handlers: dict[str, Callable[[str, tuple[str, ...]], Awaitable[str]]] = {
            "help": self._help,
            "uptime": self._uptime,
            "game": self._game,
            "so": self._shoutout,
            "clip": self._clip,
        }

    @property
    def is_active(self) -> bool:
        return self._active

    def activate(self) -> None:
        self._active = True
        logger.info("Chat commands activated")

    def deactivate(self) -> None:
        self._active = False
        logger.info("Chat commands deactivated")

    def parse(self, text: str) -> ParsedCommand | None:
        if not self._prefix or not text.startswith(self._prefix):
            return None
        parts = text[len(self._prefix) :].split()
        if not parts:
            return None
        return ParsedCommand(parts[0].lower(), tuple(parts[1:]))

    async def handle(self, sender: str, text: str) -> str | None:
        """Reply text for a command message, or None."""
        if not self._active:
            return None
        command = self.parse(text)
        if command is None:
            return None

        handler = self._handlers.get(command.name)
        if handler is None:
            logger.debug(f"COMMAND: unknown {command.name!r} from {sender}")
            return None

        logger.info(f"COMMAND: {command.name} from {sender}")
        get_session_stats().increment("commands_handled")
        return await handler(sender, command.args)

    async def _help(self, sender: str, args: tuple[str, ...]) -> str:
        p = self._prefix
        return f"@{sender} Commands: {p}help, {p}uptime, {p}game, {p}so <user>, {p}clip [title]"

    async def _uptime(self, sender: str, args: tuple[str, ...]) -> str:
        return f"@{sender} Bot online for {format_uptime(self._clock() - self._started_at)}"

    async def _game(self, sender: str, args: tuple[str, ...]) -> str:
        return f"@{sender} Current game: {self.current_game or UNKNOWN_GAME}"

    async def _shoutout(self, sender: str, args: tuple[str, ...]) -> str:
        target = args[0].lstrip("@") if args else ""
        if not LOGIN_PATTERN.match(target):
            return f"@{sender} Usage: {self._prefix}so <username>"
        return (
            f"Go check out @{target}! They make amazing content! "
            f"https://twitch.tv/{target.lower()}"
        )

    async def _clip(self, sender: str, args: tuple[str, ...]) -> str:
        active = self._clips_active() if self._clips_active else self._request_clip is not None
        if self._request_clip is None or not active:
            return f"@{sender} The clipper is not active right now."

        title = " ".join(args).strip() or f"Clip by {sender}"
        try:
            await self._request_clip(title)
        except Exception as e:
            logger.error(f"Manual clip for {sender} failed: {e}")
            return f"@{sender} Something went wrong creating the clip."
        return f'@{sender} Manual clip requested: "{title}"!'
