"""End-to-end tests for the orchestrator wiring."""

from pathlib import Path

import pytest
import pytest_asyncio

from conftest import (
    FakeClipProvider,
    FakeCompletion,
    FakeStreamSource,
    FakeTransport,
    ManualClock,
    ScriptedRandom,
)
from twitch_sidekick.chat.client import ChatMessage
from twitch_sidekick.config import ClipConfig, Config, RecurringConfig
from twitch_sidekick.core.announcements import PlatformEvent
from twitch_sidekick.core.events import GAMEPLAY_EVENT
from twitch_sidekick.core.gate import ResponseDecisionEngine
from twitch_sidekick.core.logging import get_session_stats
from twitch_sidekick.core.recurring import RecurringMessages
from twitch_sidekick.core.scheduler import Scheduler
from twitch_sidekick.gameplay.clipper import CriticalMomentPipeline
from twitch_sidekick.gameplay.models import EventType, GameplayEvent
from twitch_sidekick.orchestrator import STREAM_INFO_TASK, BotOrchestrator
from twitch_sidekick.storage.store import BotStore


@pytest.fixture
def parts(clock: ManualClock):
    return {
        "transport": FakeTransport(),
        "completion": FakeCompletion(default="Nice!"),
        "clips": FakeClipProvider(),
        "rng": ScriptedRandom(),
        "scheduler": Scheduler(manual=True),
        "store": BotStore(":memory:"),
        "clock": clock,
    }


def build(config: Config, parts: dict, **overrides) -> BotOrchestrator:
    kwargs = dict(
        transport=parts["transport"],
        completion=parts["completion"],
        clip_provider=parts["clips"],
        scheduler=parts["scheduler"],
        store=parts["store"],
        clock=parts["clock"],
        rng=parts["rng"],
    )
    kwargs.update(overrides)
    return BotOrchestrator(config, **kwargs)


@pytest_asyncio.fixture
async def bot(bot_config: Config, parts: dict) -> BotOrchestrator:
    orchestrator = build(bot_config, parts)
    await orchestrator.start()
    return orchestrator


def kill(clock: ManualClock, intensity: float = 0.9) -> GameplayEvent:
    return GameplayEvent(EventType.KILL, clock(), "Enemy eliminated", intensity)


def message(clock: ManualClock, text: str, sender: str = "viewer") -> ChatMessage:
    return ChatMessage(channel="#test", sender=sender, content=text, received_at=clock())


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_activates_configured_layers(self, bot: BotOrchestrator):
        assert bot.layer_states() == {
            "chat_ai": True,
            "observer": True,
            "clipper": True,
            "platform_events": True,
            "chat_commands": True,
            "recurring_messages": False,
        }

    @pytest.mark.asyncio
    async def test_stop_deactivates_everything(self, bot: BotOrchestrator):
        await bot.stop()
        assert not any(bot.layer_states()[k] for k in ("chat_ai", "observer", "clipper", "recurring_messages"))
        assert bot.commands.is_active is False

    @pytest.mark.asyncio
    async def test_toggle_layer(self, bot: BotOrchestrator):
        assert bot.toggle_layer("observer") is False
        assert bot.toggle_layer("observer") is True
        with pytest.raises(ValueError):
            bot.toggle_layer("nope")


class TestGameplayReplies:
    @pytest.mark.asyncio
    async def test_kill_reply_then_cooldown(self, bot: BotOrchestrator, parts: dict, clock: ManualClock):
        """Kill at t=0 with roll 0.3 sends "Nice!" once; a kill at t=1000 is held by the cooldown."""
        transport: FakeTransport = parts["transport"]
        parts["rng"].values = [0.3]

        await bot.bus.publish(GAMEPLAY_EVENT, kill(clock))
        await bot.scheduler.tick(ResponseDecisionEngine.TASK_NAME)
        assert transport.sent == [("#test", "Nice!")]

        clock.advance(1_000)
        parts["rng"].values = [0.0]
        await bot.bus.publish(GAMEPLAY_EVENT, kill(clock))
        await bot.scheduler.tick(ResponseDecisionEngine.TASK_NAME)
        assert transport.sent == [("#test", "Nice!")]

    @pytest.mark.asyncio
    async def test_mild_events_not_commented(self, bot: BotOrchestrator, parts: dict, clock: ManualClock):
        parts["rng"].values = [0.0]
        await bot.bus.publish(GAMEPLAY_EVENT, kill(clock, intensity=0.5))
        await bot.scheduler.tick(ResponseDecisionEngine.TASK_NAME)
        assert parts["transport"].sent == []

    @pytest.mark.asyncio
    async def test_gameplay_context_reaches_prompt(self, bot: BotOrchestrator, parts: dict, clock: ManualClock):
        parts["rng"].values = [0.0]
        await bot.bus.publish(GAMEPLAY_EVENT, kill(clock))
        await bot.scheduler.tick(ResponseDecisionEngine.TASK_NAME)
        payload = parts["completion"].calls[0]
        assert "Recent events: kill" in payload.render_user()


class TestChatReplies:
    @pytest.mark.asyncio
    async def test_mention_replies_in_channel(self, bot: BotOrchestrator, parts: dict, clock: ManualClock):
        await bot.handle_chat_message(message(clock, "hey SIDEKICK, how are you?"))
        assert parts["transport"].sent == [("#test", "Nice!")]
        assert get_session_stats().messages_received == 1
        assert bot.generator.history[-1].speaker == "sidekick"
        assert bot.recent_activity(kind="reply")[0].message == "Nice!"

    @pytest.mark.asyncio
    async def test_command_answered_without_engine(self, bot: BotOrchestrator, parts: dict, clock: ManualClock):
        await bot.handle_chat_message(message(clock, "!help something"))
        await bot.handle_chat_message(message(clock, "!help sidekick"))
        texts = parts["transport"].texts()
        assert len(texts) == 2
        assert all(t.startswith("@viewer Commands: !help") for t in texts)
        assert parts["completion"].calls == []
        # Unanswered chat is still context
        assert [t.text for t in bot.generator.history] == ["!help something", "!help sidekick"]

    @pytest.mark.asyncio
    async def test_filtered_reply_keeps_cooldown_open(self, bot: BotOrchestrator, parts: dict, clock: ManualClock):
        bot.set_denied_words(["nice"])
        await bot.handle_chat_message(message(clock, "sidekick?"))
        assert parts["transport"].sent == []
        assert bot.engine.cooldown_remaining() == 0

        parts["completion"].default = "Hello there"
        await bot.handle_chat_message(message(clock, "sidekick??"))
        assert parts["transport"].sent == [("#test", "Hello there")]

    @pytest.mark.asyncio
    async def test_inactive_chat_ai_silent(self, bot: BotOrchestrator, parts: dict, clock: ManualClock):
        bot.set_layer("chat_ai", False)
        await bot.handle_chat_message(message(clock, "sidekick hi"))
        assert parts["transport"].sent == []


class TestClips:
    @pytest.mark.asyncio
    async def test_manual_clip_without_credentials(self, bot_config: Config, parts: dict):
        """No credentials: the manual clip ends up simulated and is not announced."""
        parts["clips"] = FakeClipProvider(configured=False)
        bot = build(bot_config, parts)
        await bot.start()

        await bot.create_manual_clip("Test")
        await bot.scheduler.tick(CriticalMomentPipeline.TASK_NAME)

        clips = bot.recent_clips()
        assert len(clips) == 1
        assert clips[0].simulated is True
        assert clips[0].url.startswith("https://clips.twitch.tv/sim_")
        assert parts["transport"].sent == []
        assert bot.recent_activity(kind="clip_simulated")[0].message == "Test"

    @pytest.mark.asyncio
    async def test_real_clip_announced(self, bot: BotOrchestrator, parts: dict):
        await bot.create_manual_clip("Big play")
        await bot.scheduler.tick(CriticalMomentPipeline.TASK_NAME)
        assert parts["transport"].texts() == ["New clip: Big play https://clips.twitch.tv/Clip1"]
        assert get_session_stats().announcements_sent == 1

    @pytest.mark.asyncio
    async def test_simulated_announced_when_enabled(self, bot_config: Config, parts: dict):
        bot_config.clips = ClipConfig(announce_simulated=True)
        parts["clips"] = FakeClipProvider(configured=False)
        bot = build(bot_config, parts)
        await bot.start()
        await bot.create_manual_clip("Sim")
        await bot.scheduler.tick(CriticalMomentPipeline.TASK_NAME)
        assert len(parts["transport"].sent) == 1

    @pytest.mark.asyncio
    async def test_clip_worthiness_uses_detector_sensitivity(self, bot: BotOrchestrator, clock: ManualClock):
        combo = GameplayEvent(EventType.COMBO, clock(), "combo", 0.5)
        bot.set_sensitivity(0.6)
        await bot.bus.publish(GAMEPLAY_EVENT, combo)
        assert bot.recent_moments() == []

        bot.set_sensitivity(0.4)
        await bot.bus.publish(GAMEPLAY_EVENT, combo)
        assert len(bot.recent_moments()) == 1

    @pytest.mark.asyncio
    async def test_reset_gameplay_clears_moments(self, bot: BotOrchestrator, clock: ManualClock):
        await bot.bus.publish(GAMEPLAY_EVENT, GameplayEvent(EventType.RARE_ACHIEVEMENT, clock(), "x", 0.9))
        assert len(bot.recent_moments()) == 1
        await bot.reset_gameplay()
        assert bot.recent_moments() == []
        assert bot.gameplay_stats()["is_observing"] is True


class TestPlatformEvents:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "event,expected",
        [
            (PlatformEvent("follow", "alice"), "Thanks for the follow, alice! Welcome aboard!"),
            (PlatformEvent("subscribe", "bob", tier="2000"), "bob just subscribed (tier 2)! Thank you!"),
            (PlatformEvent("cheer", "carol", bits=500), "carol cheered 500 bits! Thank you!"),
        ],
    )
    async def test_announced(self, bot: BotOrchestrator, parts: dict, event, expected):
        await bot.handle_platform_event(event)
        assert parts["transport"].texts() == [expected]

    @pytest.mark.asyncio
    async def test_disabled_layer_ignores(self, bot: BotOrchestrator, parts: dict):
        bot.set_layer("platform_events", False)
        await bot.handle_platform_event(PlatformEvent("follow", "alice"))
        assert parts["transport"].sent == []


class TestSettingsPersistence:
    def test_setters_clamp_and_persist(self, bot_config: Config, parts: dict):
        bot = build(bot_config, parts)
        assert bot.set_intensity(5.0) == 1.0
        assert bot.set_sensitivity(-2.0) == 0.0
        assert bot.set_denied_words([" Spoiler ", "rude", ""]) == ["rude", "spoiler"]
        assert parts["store"].get_setting("intensity") == 1.0

    def test_saved_settings_restored(self, bot_config: Config, parts: dict, tmp_path: Path):
        path = tmp_path / "persist.db"
        first = build(bot_config, parts, store=BotStore(path))
        first.set_intensity(0.8)
        first.set_sensitivity(0.3)
        first.set_denied_words(["gg"])
        first.store.close()

        second = build(bot_config, parts, store=BotStore(path), scheduler=Scheduler(manual=True))
        assert second.engine.intensity == 0.8
        assert second.detector.sensitivity == 0.3
        assert second.denied_words == frozenset({"gg"})

    def test_status_shape(self, bot_config: Config, parts: dict):
        bot = build(bot_config, parts)
        status = bot.status()
        assert status["bot_name"] == "sidekick"
        assert status["channels"] == ["#test"]
        assert set(status["layers"]) == {
            "chat_ai",
            "observer",
            "clipper",
            "platform_events",
            "chat_commands",
            "recurring_messages",
        }
        assert "response-drain" in status["tasks"]

    def test_reply_and_clip_intervals_persist(self, bot_config: Config, parts: dict, tmp_path: Path):
        path = tmp_path / "intervals.db"
        first = build(bot_config, parts, store=BotStore(path))
        assert first.set_min_interval(10_000) == 10_000
        assert first.set_clip_cooldown(45_000) == 45_000
        assert first.ai_stats()["min_interval_ms"] == 10_000
        first.store.close()

        second = build(bot_config, parts, store=BotStore(path), scheduler=Scheduler(manual=True))
        assert second.engine.state.min_interval_ms == 10_000
        assert second.pipeline.stats()["cooldown_ms"] == 45_000

    def test_interval_bounds(self, bot_config: Config, parts: dict):
        bot = build(bot_config, parts)
        with pytest.raises(ValueError):
            bot.set_min_interval(-1)
        assert parts["store"].get_setting("min_interval_ms") is None
        # Clip cooldown has a floor instead of rejecting
        assert bot.set_clip_cooldown(1_000) == 30_000


class TestChatCommands:
    @pytest.mark.asyncio
    async def test_clip_command_queues_manual_clip(self, bot: BotOrchestrator, parts: dict, clock: ManualClock):
        await bot.handle_chat_message(message(clock, "!clip Huge clutch", sender="alice"))
        assert parts["transport"].texts() == ['@alice Manual clip requested: "Huge clutch"!']
        assert bot.recent_moments()[0].title == "Huge clutch"
        assert bot.recent_activity(kind="clip_request")[0].message == "Huge clutch"

    @pytest.mark.asyncio
    async def test_clip_command_default_title(self, bot: BotOrchestrator, parts: dict, clock: ManualClock):
        await bot.handle_chat_message(message(clock, "!CLIP", sender="alice"))
        assert parts["transport"].texts() == ['@alice Manual clip requested: "Clip by alice"!']

    @pytest.mark.asyncio
    async def test_clip_command_with_clipper_off(self, bot: BotOrchestrator, parts: dict, clock: ManualClock):
        bot.set_layer("clipper", False)
        await bot.handle_chat_message(message(clock, "!clip nope"))
        assert parts["transport"].texts() == ["@viewer The clipper is not active right now."]
        assert bot.recent_moments() == []

    @pytest.mark.asyncio
    async def test_shoutout(self, bot: BotOrchestrator, parts: dict, clock: ManualClock):
        await bot.handle_chat_message(message(clock, "!so @CoolStreamer"))
        assert parts["transport"].texts() == [
            "Go check out @CoolStreamer! They make amazing content! https://twitch.tv/coolstreamer"
        ]

    @pytest.mark.asyncio
    async def test_commands_layer_off(self, bot: BotOrchestrator, parts: dict, clock: ManualClock):
        bot.set_layer("chat_commands", False)
        await bot.handle_chat_message(message(clock, "!help"))
        assert parts["transport"].sent == []
        assert bot.generator.history[-1].text == "!help"

    @pytest.mark.asyncio
    async def test_leading_space_is_not_a_command(self, bot: BotOrchestrator, parts: dict, clock: ManualClock):
        await bot.handle_chat_message(message(clock, " !help sidekick"))
        # Answered as a mention by the reply engine
        assert parts["transport"].texts() == ["Nice!"]


class TestStreamInfo:
    @pytest.mark.asyncio
    async def test_current_game_feeds_prompt_and_command(self, bot_config: Config, parts: dict, clock: ManualClock):
        source = FakeStreamSource(game="Valorant")
        bot = build(bot_config, parts, stream_source=source)
        await bot.start()

        assert source.calls == ["#test"]
        assert bot.generator.current_game == "Valorant"
        assert bot.status()["current_game"] == "Valorant"
        await bot.handle_chat_message(message(clock, "!game"))
        assert parts["transport"].texts() == ["@viewer Current game: Valorant"]

    @pytest.mark.asyncio
    async def test_lookup_failure_keeps_last_game(self, bot_config: Config, parts: dict, clock: ManualClock):
        source = FakeStreamSource(game="Valorant")
        bot = build(bot_config, parts, stream_source=source)
        await bot.start()

        source.fail = True
        await bot.scheduler.tick(STREAM_INFO_TASK)
        assert bot.generator.current_game == "Valorant"

        source.fail = False
        source.game = None
        await bot.scheduler.tick(STREAM_INFO_TASK)
        assert bot.generator.current_game is None
        await bot.handle_chat_message(message(clock, "!game"))
        assert parts["transport"].texts() == ["@viewer Current game: not detected"]

    @pytest.mark.asyncio
    async def test_no_source_leaves_task_idle(self, bot: BotOrchestrator):
        assert bot.scheduler.status()[STREAM_INFO_TASK]["running"] is False
        assert await bot.refresh_stream_info() is None


class TestRecurringMessages:
    @pytest.mark.asyncio
    async def test_rotation_waits_for_quiet_chat(self, bot_config: Config, parts: dict, clock: ManualClock):
        bot_config.features.recurring_messages = True
        bot_config.recurring = RecurringConfig(
            messages=["Follow the channel!", "Type !help"], min_chat_inactivity_ms=300_000
        )
        bot = build(bot_config, parts)
        await bot.start()
        transport: FakeTransport = parts["transport"]

        # Quiet window starts at construction
        await bot.scheduler.tick(RecurringMessages.TASK_NAME)
        assert transport.sent == []

        clock.advance(300_000)
        await bot.scheduler.tick(RecurringMessages.TASK_NAME)
        await bot.scheduler.tick(RecurringMessages.TASK_NAME)
        assert transport.sent == [("#test", "Follow the channel!"), ("#test", "Type !help")]

        await bot.handle_chat_message(message(clock, "hello all"))
        await bot.scheduler.tick(RecurringMessages.TASK_NAME)
        assert len(transport.sent) == 2

        clock.advance(300_000)
        await bot.scheduler.tick(RecurringMessages.TASK_NAME)
        assert transport.texts()[-1] == "Follow the channel!"
        assert len(bot.recent_activity(kind="recurring")) == 3

    @pytest.mark.asyncio
    async def test_off_by_default(self, bot: BotOrchestrator, parts: dict, clock: ManualClock):
        clock.advance(3_600_000)
        await bot.scheduler.tick(RecurringMessages.TASK_NAME)
        assert parts["transport"].sent == []
