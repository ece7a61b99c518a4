"""Twitch chat transport over IRC."""

import asyncio
import logging
import time
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import Any, Protocol

import pydle

from twitch_sidekick.config import TwitchConfig

logger = logging.getLogger(__name__)

# Twitch drops chat messages over 500 characters
MAX_MESSAGE_LENGTH = 500
MESSAGE_SPLIT_DELAY = 0.33  # Delay between split message parts


def split_message(text: str, max_length: int = MAX_MESSAGE_LENGTH) -> list[str]:
    """Split a message into chunks that fit within the chat limit.

    Splits at word boundaries when possible, falling back to hard splits.
    """
    if len(text) <= max_length:
        return [text]

    chunks: list[str] = []
    while text:
        if len(text) <= max_length:
            chunks.append(text)
            break

        split_at = text.rfind(" ", 0, max_length)
        if split_at == -1 or split_at < max_length // 2:
            split_at = max_length

        chunks.append(text[:split_at].rstrip())
        text = text[split_at:].lstrip()

    return chunks


@dataclass(frozen=True)
class ChatMessage:
    """A chat line received in a channel."""

    channel: str
    sender: str
    content: str
    received_at: float

    def __str__(self) -> str:
        return f"<{self.sender}> {self.content}"


MessageHandler = Callable[[ChatMessage], Coroutine[Any, Any, None]]


class ChatTransport(Protocol):
    """Outbound chat. Failures are logged by the transport, never raised."""

    async def send(self, channel: str, text: str) -> None: ...


class TwitchChatClient(pydle.Client):
    """Single Twitch chat connection."""

    def __init__(
        self,
        nickname: str,
        channels: list[str],
        on_message: MessageHandler | None = None,
        **kwargs: Any,
    ):
        super().__init__(nickname.lower(), **kwargs)
        self._channels_to_join = channels
        self._on_message = on_message
        self._ready = asyncio.Event()

    async def on_connect(self) -> None:
        logger.info(f"[{self.nickname}] Connected to Twitch chat")
        for channel in self._channels_to_join:
            await self.join(channel)
            logger.info(f"[{self.nickname}] Joined {channel}")
        self._ready.set()

    async def on_disconnect(self, expected: bool) -> None:
        self._ready.clear()
        if not expected:
            logger.warning(f"[{self.nickname}] Disconnected from Twitch chat")
        await super().on_disconnect(expected)

    async def on_message(self, target: str, source: str, message: str) -> None:
        """Handle incoming channel messages."""
        if source.lower() == self.nickname.lower():
            return

        if not target.startswith("#"):
            return

        msg = ChatMessage(
            channel=target,
            sender=source,
            content=message,
            received_at=time.time() * 1000,
        )
        logger.debug(f"[{self.nickname}] Received: {msg}")

        if self._on_message:
            try:
                await self._on_message(msg)
            except Exception:
                logger.exception(f"[{self.nickname}] Error handling message")

    async def send_message(self, channel: str, content: str) -> None:
        """Send a message to a channel, splitting if too long."""
        await self._ready.wait()
        chunks = split_message(content)
        for i, chunk in enumerate(chunks):
            if i > 0:
                await asyncio.sleep(MESSAGE_SPLIT_DELAY)
            await self.message(channel, chunk)
            logger.info(f"MSG_SENT: [{self.nickname}] -> {channel}: {chunk}")

    @property
    def ready(self) -> bool:
        """Connected and joined; cleared again on disconnect."""
        return self._ready.is_set()

    async def wait_ready(self) -> None:
        await self._ready.wait()


class TwitchChat:
    """Chat transport used by the orchestrator."""

    def __init__(self, config: TwitchConfig, on_message: MessageHandler | None = None):
        self.config = config
        self.on_message = on_message
        self._client: TwitchChatClient | None = None

    @property
    def connected(self) -> bool:
        return self._client is not None and self._client.connected

    async def connect(self) -> None:
        if not self.config.oauth_token:
            raise RuntimeError("Twitch OAuth token is not configured")

        token = self.config.oauth_token.get_secret_value()
        if not token.startswith("oauth:"):
            token = f"oauth:{token}"

        self._client = TwitchChatClient(
            nickname=self.config.username,
            channels=self.config.channels,
            on_message=self.on_message,
        )
        logger.info(f"Connecting to {self.config.server} as {self.config.username}...")
        await self._client.connect(
            hostname=self.config.server,
            port=self.config.port,
            tls=self.config.ssl,
            password=token,
        )
        await self._client.wait_ready()
        logger.info("Chat connected and ready")

    async def send(self, channel: str, text: str) -> None:
        if self._client is None or not self._client.ready:
            logger.warning(f"Chat not connected, dropping message to {channel}")
            return
        try:
            await self._client.send_message(channel, text)
        except Exception as e:
            logger.error(f"Failed to send message to {channel}: {e}")

    async def run_forever(self) -> None:
        """Run until the connection closes."""
        if self._client is None:
            raise RuntimeError("Not connected. Call connect() first.")
        # pydle already runs handle_forever() as a background task
        while self._client.connected:
            await asyncio.sleep(1)

    async def disconnect(self) -> None:
        if self._client is not None and self._client.connected:
            await self._client.disconnect(expected=True)
