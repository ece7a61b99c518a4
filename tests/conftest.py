"""Pytest configuration and fixtures."""

import asyncio
import random
from pathlib import Path

import pytest

from twitch_sidekick.config import (
    ClipConfig,
    Config,
    LLMConfig,
    ObserverConfig,
    PanelConfig,
    ResponseConfig,
    TwitchConfig,
)
from twitch_sidekick.core.events import EventBus
from twitch_sidekick.core.logging import reset_session_stats
from twitch_sidekick.core.scheduler import Scheduler
from twitch_sidekick.providers.clips import ClipHandle, ClipProviderError, StreamInfo
from twitch_sidekick.providers.completion import CompletionError


class ManualClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> float:
        self.now += ms
        return self.now


class ScriptedRandom(random.Random):
    """Returns scripted values from ``random()``, then a fixed fallback."""

    def __init__(self, values: list[float] | None = None, fallback: float = 0.99):
        super().__init__(0)
        self.values = list(values or [])
        self.fallback = fallback

    def random(self) -> float:
        if self.values:
            return self.values.pop(0)
        return self.fallback


class FakeTransport:
    """Chat transport that records what was sent."""

    def __init__(self):
        self.sent: list[tuple[str, str]] = []

    async def send(self, channel: str, text: str) -> None:
        self.sent.append((channel, text))

    def texts(self) -> list[str]:
        return [text for _, text in self.sent]


class FakeCompletion:
    """Completion provider with scripted replies.

    A reply may be a string, an exception instance (raised) or None.
    """

    name = "fake"
    model = "fake-model"

    def __init__(self, replies: list | None = None, default: str | None = "Nice!", delay: float = 0.0):
        self.replies = list(replies or [])
        self.default = default
        self.delay = delay
        self.calls = []

    async def complete(self, payload, timeout: float) -> str:
        self.calls.append(payload)
        if self.delay:
            await asyncio.sleep(self.delay)
        reply = self.replies.pop(0) if self.replies else self.default
        if isinstance(reply, Exception):
            raise reply
        if reply is None:
            raise CompletionError("no reply scripted")
        return reply


class FakeClipProvider:
    """Clip provider that counts calls and can be made to fail."""

    def __init__(self, configured: bool = True, fail: bool = False):
        self._configured = configured
        self.fail = fail
        self.calls: list[str] = []

    @property
    def configured(self) -> bool:
        return self._configured

    async def request_clip(self, broadcaster_ref: str) -> ClipHandle:
        self.calls.append(broadcaster_ref)
        if self.fail:
            raise ClipProviderError("boom")
        clip_id = f"Clip{len(self.calls)}"
        return ClipHandle(
            id=clip_id,
            url=f"https://clips.twitch.tv/{clip_id}",
            edit_url=f"https://clips.twitch.tv/{clip_id}/edit",
            created_at="2024-01-01T00:00:00+00:00",
        )


class FakeStreamSource:
    """Stream lookup returning a fixed game, None (offline) or raising."""

    def __init__(self, game: str | None = "Valorant", fail: bool = False):
        self.game = game
        self.fail = fail
        self.calls: list[str] = []

    async def stream_info(self, broadcaster_ref: str) -> StreamInfo | None:
        self.calls.append(broadcaster_ref)
        if self.fail:
            raise ClipProviderError("streams down")
        if self.game is None:
            return None
        return StreamInfo(game_name=self.game, title="Live!", started_at="2024-01-01T00:00:00Z")


@pytest.fixture(autouse=True)
def fresh_session_stats():
    """Session stats are global; start every test from zero."""
    reset_session_stats()
    yield
    reset_session_stats()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def scheduler() -> Scheduler:
    """Scheduler whose tasks only run when ticked by hand."""
    return Scheduler(manual=True)


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def response_config() -> ResponseConfig:
    return ResponseConfig(intensity=0.5, min_interval_ms=30_000, bot_display_name="Sidekick")


@pytest.fixture
def observer_config() -> ObserverConfig:
    return ObserverConfig(sensitivity=0.5)


@pytest.fixture
def clip_config() -> ClipConfig:
    return ClipConfig()


@pytest.fixture
def default_config() -> Config:
    """Provide a default configuration for testing."""
    return Config()


@pytest.fixture
def bot_config(tmp_path: Path) -> Config:
    """Offline configuration: no LLM, no panel, one channel."""
    return Config(
        twitch=TwitchConfig(username="sidekick", channels=["#test"]),
        llm=LLMConfig(provider="none"),
        response=ResponseConfig(intensity=0.5, min_interval_ms=30_000),
        panel=PanelConfig(enabled=False),
        storage={"db_path": tmp_path / "sidekick.db"},
    )


@pytest.fixture
def temp_config_file(tmp_path: Path) -> Path:
    """Create a temporary config file."""
    config_content = """
twitch:
  username: "TestBot"
  channels:
    - "MyChannel"
    - "#other"

llm:
  provider: "gemini"
  google_api_key: "test-key"

response:
  intensity: 1.7
  min_interval_ms: 45000
  bot_display_name: "Buddy"

observer:
  sensitivity: -0.2

filters:
  denied_words:
    - "spoiler"

persona:
"""
    config_path = tmp_path / "config.yaml"
    config_path.write_text(config_content)
    return config_path
