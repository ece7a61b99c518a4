"""Tests for the control panel app."""

import asyncio

import pytest
from fastapi.testclient import TestClient

from conftest import FakeClipProvider, FakeCompletion, FakeTransport, ManualClock
from twitch_sidekick.config import Config
from twitch_sidekick.core.scheduler import Scheduler
from twitch_sidekick.gameplay.models import EventType, GameplayEvent
from twitch_sidekick.orchestrator import BotOrchestrator
from twitch_sidekick.panel import create_app
from twitch_sidekick.storage.store import BotStore


class TestPanel:
    """Routes over the orchestrator's configuration surface."""

    @pytest.fixture
    def bot(self, bot_config: Config, clock: ManualClock) -> BotOrchestrator:
        return BotOrchestrator(
            bot_config,
            transport=FakeTransport(),
            completion=FakeCompletion(),
            clip_provider=FakeClipProvider(configured=False),
            scheduler=Scheduler(manual=True),
            store=BotStore(":memory:"),
            clock=clock,
        )

    @pytest.fixture
    def client(self, bot: BotOrchestrator) -> TestClient:
        return TestClient(create_app(bot))

    def test_index_page(self, client: TestClient):
        response = client.get("/")
        assert response.status_code == 200
        assert "chat_ai" in response.text
        assert "#test" in response.text

    def test_status(self, client: TestClient):
        data = client.get("/api/status").json()
        assert data["bot_name"] == "sidekick"
        assert data["layers"]["chat_ai"] is False
        assert data["intensity"] == 0.5

    def test_toggle_layer(self, client: TestClient, bot: BotOrchestrator):
        response = client.post("/api/layers/chat_ai/toggle")
        assert response.json() == {"success": True, "layer": "chat_ai", "enabled": True}
        assert bot.engine.is_active is True

        response = client.post("/api/layers/chat_ai/toggle")
        assert response.json()["enabled"] is False

    def test_toggle_unknown_layer(self, client: TestClient):
        response = client.post("/api/layers/warp_drive/toggle")
        assert response.status_code == 400
        assert response.json()["success"] is False

    @pytest.mark.parametrize("value,expected", [(0.3, 0.3), (7.0, 1.0), (-1.0, 0.0)])
    def test_intensity_is_clamped(self, client: TestClient, bot: BotOrchestrator, value, expected):
        response = client.post("/api/ai/intensity", json={"value": value})
        assert response.json() == {"success": True, "intensity": expected}
        assert bot.engine.intensity == expected

    def test_intensity_requires_number(self, client: TestClient):
        response = client.post("/api/ai/intensity", json={"value": "loud"})
        assert response.status_code == 422

    def test_sensitivity(self, client: TestClient, bot: BotOrchestrator):
        response = client.post("/api/observer/sensitivity", json={"value": 0.8})
        assert response.json()["sensitivity"] == 0.8
        assert bot.detector.sensitivity == 0.8
        assert bot.store.get_setting("sensitivity") == 0.8

    def test_min_interval(self, client: TestClient, bot: BotOrchestrator):
        response = client.post("/api/ai/min-interval", json={"value": 12000})
        assert response.json() == {"success": True, "min_interval_ms": 12000}
        assert client.get("/api/ai/stats").json()["min_interval_ms"] == 12000
        assert bot.store.get_setting("min_interval_ms") == 12000

    def test_min_interval_rejects_negative(self, client: TestClient, bot: BotOrchestrator):
        response = client.post("/api/ai/min-interval", json={"value": -5})
        assert response.status_code == 400
        assert response.json()["success"] is False
        assert bot.engine.state.min_interval_ms == 30_000

    @pytest.mark.parametrize("value,expected", [(90_000, 90_000), (1_000, 30_000)])
    def test_clip_cooldown(self, client: TestClient, bot: BotOrchestrator, value, expected):
        response = client.post("/api/clips/cooldown", json={"value": value})
        assert response.json() == {"success": True, "cooldown_ms": expected}
        assert client.get("/api/clips").json()["stats"]["cooldown_ms"] == expected

    def test_filter_words(self, client: TestClient, bot: BotOrchestrator):
        assert client.get("/api/filters/words").json() == {"words": []}

        response = client.post("/api/filters/words", json={"words": ["Spoiler", " leak "]})
        assert response.json()["words"] == ["leak", "spoiler"]
        assert client.get("/api/filters/words").json() == {"words": ["leak", "spoiler"]}
        assert bot.generator.moderation.filter("no spoilers please") is None

    def test_manual_clip(self, client: TestClient, bot: BotOrchestrator):
        response = client.post("/api/clips/manual", json={"title": "Epic"})
        data = response.json()
        assert data["success"] is True
        assert data["request"]["title"] == "Epic"
        assert data["request"]["state"] == "queued"
        assert bot.pipeline.queue_length == 1

        clips = client.get("/api/clips").json()
        assert clips["clips"] == []
        assert clips["stats"]["queue_length"] == 1

    def test_manual_clip_rejects_blank_title(self, client: TestClient, bot: BotOrchestrator):
        response = client.post("/api/clips/manual", json={"title": "   "})
        assert response.status_code == 400
        assert bot.pipeline.queue_length == 0

    def test_moments_and_reset(self, client: TestClient, bot: BotOrchestrator, clock: ManualClock):
        client.post("/api/clips/manual", json={"title": "First"})
        moments = client.get("/api/gameplay/moments").json()["moments"]
        assert [m["title"] for m in moments] == ["First"]
        assert moments[0]["event"]["type"] == EventType.MANUAL.value

        assert client.post("/api/gameplay/reset").json()["success"] is True
        assert client.get("/api/gameplay/moments").json() == {"moments": []}

    def test_gameplay_stats(self, client: TestClient, bot: BotOrchestrator, clock: ManualClock):
        bot.detector._stats.record(EventType.KILL)
        data = client.get("/api/gameplay/stats").json()
        assert data["stats"]["kills"] == 1
        assert data["is_observing"] is False

    def test_activity(self, client: TestClient):
        client.post("/api/clips/manual", json={"title": "Logged"})
        entries = client.get("/api/activity").json()["activity"]
        assert [e["kind"] for e in entries] == ["clip_request"]

        only = client.get("/api/activity", params={"kind": "clip_request"}).json()["activity"]
        assert [e["message"] for e in only] == ["Logged"]

    def test_activity_rejects_bad_limit(self, client: TestClient):
        response = client.get("/api/activity", params={"limit": 0})
        assert response.status_code == 400

    def test_ai_stats(self, client: TestClient):
        data = client.get("/api/ai/stats").json()
        assert data["provider"] == "fake"
        assert data["history_length"] == 0

    def test_index_lists_moments(self, client: TestClient, bot: BotOrchestrator, clock: ManualClock):
        event = GameplayEvent(EventType.RARE_ACHIEVEMENT, clock(), "Ace", 0.95)
        asyncio.run(bot.pipeline.handle_gameplay_event(event))
        response = client.get("/")
        assert response.status_code == 200
        assert "rare_achievement" in response.text
