"""Clip creation through the Twitch Helix API."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol

import aiohttp

from twitch_sidekick.core.logging import get_session_stats

logger = logging.getLogger(__name__)

HELIX_URL = "https://api.twitch.tv/helix"


class ClipProviderError(Exception):
    """The clip could not be created (credentials, network, bad response)."""


@dataclass(frozen=True)
class ClipHandle:
    """A clip created by the platform."""

    id: str
    url: str
    edit_url: str
    created_at: str


@dataclass(frozen=True)
class StreamInfo:
    """What the broadcaster is live with."""

    game_name: str | None
    title: str
    started_at: str


class StreamInfoSource(Protocol):
    """Looks up the live stream of a broadcaster. None while offline."""

    async def stream_info(self, broadcaster_ref: str) -> StreamInfo | None: ...


class ClipProvider(Protocol):
    """Creates a clip of the live broadcast."""

    @property
    def configured(self) -> bool: ...

    async def request_clip(self, broadcaster_ref: str) -> ClipHandle: ...


class TwitchClipProvider:
    """Helix ``POST /clips`` and ``GET /streams`` for a broadcaster login."""

    def __init__(
        self,
        client_id: str | None,
        access_token: str | None,
        session: aiohttp.ClientSession | None = None,
        base_url: str = HELIX_URL,
    ):
        self._client_id = client_id or ""
        self._access_token = access_token or ""
        self._session = session
        self._owns_session = session is None
        self._base_url = base_url
        self._broadcaster_ids: dict[str, str] = {}

    @property
    def configured(self) -> bool:
        return bool(self._client_id and self._access_token)

    def _headers(self) -> dict[str, str]:
        return {
            "Client-Id": self._client_id,
            "Authorization": f"Bearer {self._access_token}",
            "Content-Type": "application/json",
        }

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def _broadcaster_id(self, login: str) -> str:
        login = login.lstrip("#").lower()
        if login in self._broadcaster_ids:
            return self._broadcaster_ids[login]

        session = self._get_session()
        async with session.get(
            f"{self._base_url}/users",
            headers=self._headers(),
            params={"login": login},
        ) as resp:
            if resp.status != 200:
                raise ClipProviderError(f"Users API returned {resp.status} for {login}")
            data = await resp.json()

        users = data.get("data") if isinstance(data, dict) else None
        if not users:
            raise ClipProviderError(f"Channel {login} not found")

        broadcaster_id = str(users[0]["id"])
        self._broadcaster_ids[login] = broadcaster_id
        return broadcaster_id

    async def request_clip(self, broadcaster_ref: str) -> ClipHandle:
        """Create a clip of the broadcaster's stream.

        Args:
            broadcaster_ref: Channel login, with or without '#'

        Raises:
            ClipProviderError: Missing credentials or any API failure
        """
        if not self.configured:
            raise ClipProviderError("Twitch clip credentials are not configured")

        try:
            broadcaster_id = await self._broadcaster_id(broadcaster_ref)
            session = self._get_session()
            async with session.post(
                f"{self._base_url}/clips",
                headers=self._headers(),
                params={"broadcaster_id": broadcaster_id, "has_delay": "false"},
            ) as resp:
                if resp.status not in (200, 202):
                    body = await resp.text()
                    raise ClipProviderError(f"Clips API returned {resp.status}: {body[:200]}")
                data = await resp.json()
        except aiohttp.ClientError as e:
            raise ClipProviderError(f"Clips API request failed: {e}") from e

        get_session_stats().increment_api_call("helix/clips")

        try:
            clip = data["data"][0]
            clip_id = str(clip["id"])
            edit_url = str(clip["edit_url"])
        except (KeyError, IndexError, TypeError) as e:
            raise ClipProviderError(f"Malformed clips response: {data!r}") from e

        return ClipHandle(
            id=clip_id,
            url=f"https://clips.twitch.tv/{clip_id}",
            edit_url=edit_url,
            created_at=datetime.now(timezone.utc).isoformat(),
        )

    async def stream_info(self, broadcaster_ref: str) -> StreamInfo | None:
        """Current stream of a broadcaster, or None while offline.

        Raises:
            ClipProviderError: Missing credentials or any API failure
        """
        if not self.configured:
            raise ClipProviderError("Twitch API credentials are not configured")

        try:
            broadcaster_id = await self._broadcaster_id(broadcaster_ref)
            session = self._get_session()
            async with session.get(
                f"{self._base_url}/streams",
                headers=self._headers(),
                params={"user_id": broadcaster_id},
            ) as resp:
                if resp.status != 200:
                    raise ClipProviderError(f"Streams API returned {resp.status}")
                data = await resp.json()
        except aiohttp.ClientError as e:
            raise ClipProviderError(f"Streams API request failed: {e}") from e

        get_session_stats().increment_api_call("helix/streams")

        streams = data.get("data") if isinstance(data, dict) else None
        if not streams:
            return None
        stream = streams[0]
        return StreamInfo(
            game_name=stream.get("game_name") or None,
            title=str(stream.get("title", "")),
            started_at=str(stream.get("started_at", "")),
        )

    async def close(self) -> None:
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
