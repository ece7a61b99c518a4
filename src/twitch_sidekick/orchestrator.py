"""Main orchestrator tying all components together."""

import asyncio
import logging
import random
from typing import Any

import uvicorn

from twitch_sidekick.chat.client import ChatMessage, ChatTransport, TwitchChat
from twitch_sidekick.config import Config, get_bot_name
from twitch_sidekick.core.announcements import PlatformEvent, render_announcement
from twitch_sidekick.core.commands import ChatCommands
from twitch_sidekick.core.events import (
    CHEER,
    CLIP_CREATED,
    CRITICAL_MOMENT,
    FOLLOW,
    GAMEPLAY_EVENT,
    MESSAGE,
    SUBSCRIBE,
    EventBus,
)
from twitch_sidekick.core.gate import (
    ChatTrigger,
    GameplayTrigger,
    ResponseDecisionEngine,
    Trigger,
)
from twitch_sidekick.core.logging import get_session_stats
from twitch_sidekick.core.moderation import ModerationFilter
from twitch_sidekick.core.persona import Persona
from twitch_sidekick.core.recurring import RecurringMessages
from twitch_sidekick.core.responder import ResponseGenerator
from twitch_sidekick.core.scheduler import Clock, Scheduler, system_clock
from twitch_sidekick.gameplay.clipper import CriticalMomentPipeline
from twitch_sidekick.gameplay.detector import GameplayAnalyzer, GameplayDetector
from twitch_sidekick.gameplay.models import ClipRecord, ClipRequest, CriticalMoment, GameplayEvent
from twitch_sidekick.panel.server import create_app
from twitch_sidekick.providers.clips import (
    ClipProvider,
    ClipProviderError,
    StreamInfoSource,
    TwitchClipProvider,
)
from twitch_sidekick.providers.completion import CompletionProvider, create_completion_provider
from twitch_sidekick.providers.knowledge import KnowledgeSource, StaticKnowledgeSource
from twitch_sidekick.storage.store import ActivityEntry, BotStore

logger = logging.getLogger(__name__)

# How often to log session stats (every N messages)
STATS_LOG_INTERVAL = 50

LAYERS = (
    "chat_ai",
    "observer",
    "clipper",
    "platform_events",
    "chat_commands",
    "recurring_messages",
)

STREAM_INFO_TASK = "stream-info"

# Persisted setting keys
INTENSITY_KEY = "intensity"
SENSITIVITY_KEY = "sensitivity"
DENIED_WORDS_KEY = "denied_words"
MIN_INTERVAL_KEY = "min_interval_ms"
CLIP_COOLDOWN_KEY = "clip_cooldown_ms"


def _secret(value: Any) -> str | None:
    return value.get_secret_value() if value else None


class BotOrchestrator:
    """Owns every engine and wires them through the event bus.

    Constructed once at startup. Also exposes the configuration surface
    used by the control panel; every setter clamps its input.
    """

    def __init__(
        self,
        config: Config,
        transport: ChatTransport | None = None,
        completion: CompletionProvider | None = None,
        clip_provider: ClipProvider | None = None,
        knowledge: KnowledgeSource | None = None,
        scheduler: Scheduler | None = None,
        store: BotStore | None = None,
        analyzer: GameplayAnalyzer | None = None,
        stream_source: StreamInfoSource | None = None,
        clock: Clock = system_clock,
        rng: random.Random | None = None,
    ):
        """Initialize the orchestrator with all components.

        Args:
            config: Application configuration
            transport: Chat transport (defaults to Twitch chat over IRC)
            completion: Completion provider (defaults to the configured LLM)
            clip_provider: Clip provider (defaults to Twitch Helix)
            knowledge: Knowledge facts (defaults to the configured YAML or built-ins)
            scheduler: Scheduler for the periodic tasks
            store: Settings and activity store (defaults to the configured SQLite file)
            analyzer: Gameplay analyzer (defaults to the simulator)
            stream_source: Live stream lookup for the current game (defaults to
                Twitch Helix when API credentials are configured)
            clock: Millisecond clock shared by every component
            rng: Random source for reply decisions
        """
        self._config = config
        self._clock = clock
        self.bot_name = get_bot_name(config)
        self.channels = list(config.twitch.channels)

        self.bus = EventBus()
        self.scheduler = scheduler or Scheduler()
        self.store = store or BotStore(config.storage.db_path)

        if transport is None:
            transport = TwitchChat(config.twitch, on_message=self._on_transport_message)
        self.transport = transport

        if completion is None:
            completion = create_completion_provider(config.llm)
        if clip_provider is None:
            clip_provider = TwitchClipProvider(
                _secret(config.twitch.client_id), _secret(config.twitch.access_token)
            )
        self._clip_provider = clip_provider
        if stream_source is None and isinstance(clip_provider, TwitchClipProvider):
            if clip_provider.configured:
                stream_source = clip_provider
        self._stream_source = stream_source

        if knowledge is None:
            if config.knowledge.path:
                knowledge = StaticKnowledgeSource.from_file(config.knowledge.path)
            else:
                knowledge = StaticKnowledgeSource()

        # Persisted panel settings win over the config file
        saved = self.store.settings()
        denied = saved.get(DENIED_WORDS_KEY, sorted(config.filters.denied_words))
        self.moderation = ModerationFilter(denied, config.filters.max_length)

        self.detector = GameplayDetector(
            self.bus, config.observer, self.scheduler, analyzer=analyzer, clock=clock
        )
        self.pipeline = CriticalMomentPipeline(
            config.clips,
            self.bus,
            self.scheduler,
            provider=clip_provider,
            broadcaster_ref=self.channels[0] if self.channels else config.twitch.username,
            sensitivity=lambda: self.detector.sensitivity,
            clock=clock,
        )
        self.engine = ResponseDecisionEngine(
            config.response,
            self.bot_name,
            self.scheduler,
            produce=self._produce,
            deliver=self._deliver,
            clock=clock,
            rng=rng,
        )
        self.generator = ResponseGenerator(
            config.response,
            config.llm,
            Persona.from_config(config.persona),
            self.bot_name,
            completion,
            self.moderation,
            knowledge=knowledge,
            clock=clock,
        )

        self.commands = ChatCommands(
            config.response.command_prefix,
            request_clip=self.create_manual_clip,
            clips_active=lambda: self.pipeline.is_active,
            clock=clock,
        )
        self.recurring = RecurringMessages(
            config.recurring, self.scheduler, self._send_recurring, clock=clock
        )
        self._stream_task = self.scheduler.add(
            STREAM_INFO_TASK, config.twitch.stream_info_interval_seconds, self.refresh_stream_info
        )

        if SENSITIVITY_KEY in saved:
            self.detector.update_sensitivity(saved[SENSITIVITY_KEY])
        if INTENSITY_KEY in saved:
            self.engine.update_intensity(saved[INTENSITY_KEY])
        if MIN_INTERVAL_KEY in saved:
            self.engine.update_min_interval(saved[MIN_INTERVAL_KEY])
        if CLIP_COOLDOWN_KEY in saved:
            self.pipeline.update_cooldown(saved[CLIP_COOLDOWN_KEY])

        self._platform_events = False
        self._server: uvicorn.Server | None = None
        self._server_task: asyncio.Task | None = None
        self._pending: set[asyncio.Task] = set()
        self._stopped = asyncio.Event()

        self.bus.subscribe(MESSAGE, self._on_message)
        self.bus.subscribe(GAMEPLAY_EVENT, self._on_gameplay_event)
        self.bus.subscribe(CRITICAL_MOMENT, self._on_critical_moment)
        self.bus.subscribe(CLIP_CREATED, self._on_clip_created)
        for topic in (FOLLOW, SUBSCRIBE, CHEER):
            self.bus.subscribe(topic, self._on_platform_event)

        logger.info("Orchestrator initialized")

    # -- lifecycle -----------------------------------------------------------

    async def start(self) -> None:
        """Start the panel, activate configured layers and connect chat."""
        panel = self._config.panel
        if panel.enabled:
            app = create_app(self)
            server_config = uvicorn.Config(app, host=panel.host, port=panel.port, log_level="warning")
            self._server = uvicorn.Server(server_config)
            self._server_task = asyncio.create_task(self._server.serve())
            logger.info(f"Control panel started on http://{panel.host}:{panel.port}")

        features = self._config.features
        self.set_layer("chat_ai", features.chat_ai)
        self.set_layer("observer", features.observer)
        self.set_layer("clipper", features.clipper)
        self.set_layer("platform_events", features.platform_events)
        self.set_layer("chat_commands", features.chat_commands)
        self.set_layer("recurring_messages", features.recurring_messages)

        if self._stream_source is not None:
            self._stream_task.start()
            await self.refresh_stream_info()

        if isinstance(self.transport, TwitchChat):
            if self._config.twitch.oauth_token:
                await self.transport.connect()
            else:
                logger.warning("Twitch OAuth token not configured: running without chat")

        logger.info(f"Bot {self.bot_name} ready in {', '.join(self.channels) or 'no channels'}")

    async def run(self) -> None:
        """Start, then run until chat disconnects or ``stop`` is called."""
        await self.start()
        if isinstance(self.transport, TwitchChat) and self.transport.connected:
            await self.transport.run_forever()
        else:
            await self._stopped.wait()

    async def stop(self) -> None:
        """Stop every periodic task and close external resources."""
        self.scheduler.stop_all()
        self.engine.deactivate()
        self.pipeline.deactivate()
        self.detector.stop()
        self.recurring.deactivate()
        self.commands.deactivate()

        if isinstance(self.transport, TwitchChat):
            await self.transport.disconnect()
        if isinstance(self._clip_provider, TwitchClipProvider):
            await self._clip_provider.close()
        if self._server is not None:
            self._server.should_exit = True
            if self._server_task is not None:
                await self._server_task

        self.store.close()
        self._stopped.set()
        logger.info(f"SESSION_STATS: {get_session_stats().summary_line()}")

    # -- inbound -------------------------------------------------------------

    async def _on_transport_message(self, message: ChatMessage) -> None:
        # Keep the transport reading while a reply is generated
        task = asyncio.create_task(self.handle_chat_message(message))
        self._pending.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Message handling failed: {task.exception()}")

    async def handle_chat_message(self, message: ChatMessage) -> None:
        """Feed an inbound chat message into the bus."""
        await self.bus.publish(MESSAGE, message)

    async def handle_platform_event(self, event: PlatformEvent) -> None:
        """Feed a verified platform notification into the bus."""
        await self.bus.publish(event.kind, event)

    async def _on_message(self, message: ChatMessage) -> None:
        logger.info(f"MSG_RECEIVED: [{message.channel}] <{message.sender}> {message.content}")

        stats = get_session_stats()
        stats.increment("messages_received")
        if stats.messages_received % STATS_LOG_INTERVAL == 0:
            logger.info(f"SESSION_STATS: {stats.summary_line()}")

        self.recurring.note_chat_activity()
        reply = await self.commands.handle(message.sender, message.content)
        if reply:
            await self._send_command_reply(message, reply)

        trigger = ChatTrigger(
            channel=message.channel,
            sender=message.sender,
            text=message.content,
            occurred_at=message.received_at,
        )
        outcome = await self.engine.process(trigger)
        if not outcome.attempted:
            # Attempted triggers are recorded by the generator itself
            self.generator.record_turn(message.sender, message.content, message.received_at)

    async def _on_gameplay_event(self, event: GameplayEvent) -> None:
        self.generator.observe_gameplay(event)
        self.generator.update_stats(self.detector.stats())
        self.engine.enqueue_gameplay(event)

    async def _on_critical_moment(self, moment: CriticalMoment) -> None:
        self._log_activity(
            "moment",
            f"{moment.title} ({moment.event.type.value})",
            moment.to_dict(),
        )

    async def _on_clip_created(self, record: ClipRecord) -> None:
        kind = "clip_simulated" if record.simulated else "clip"
        self._log_activity(kind, record.title, record.to_dict())

        if record.simulated and not self._config.clips.announce_simulated:
            return
        await self._broadcast(f"New clip: {record.title} {record.url}")

    async def _on_platform_event(self, event: PlatformEvent) -> None:
        if not self._platform_events:
            logger.debug(f"Platform events disabled, ignoring {event.kind}")
            return

        text = render_announcement(event, self._config.messages)
        if not text:
            return
        self._log_activity(event.kind, text, {"user": event.user_name})
        await self._broadcast(text)

    # -- reply path ----------------------------------------------------------

    async def _produce(self, trigger: Trigger) -> str | None:
        return await self.generator.generate(trigger)

    async def _deliver(self, trigger: Trigger, text: str) -> None:
        if isinstance(trigger, GameplayTrigger):
            await self._broadcast(text, announcement=False)
        else:
            await self.transport.send(trigger.channel, text)

        self.generator.record_turn(self.bot_name, text)
        target = "all channels" if isinstance(trigger, GameplayTrigger) else trigger.channel
        self._log_activity("reply", text, {"target": target})

    async def _send_command_reply(self, message: ChatMessage, reply: str) -> None:
        # Shoutouts and clip titles echo viewer input
        text = self.moderation.filter(reply)
        if text is None:
            return
        await self.transport.send(message.channel, text)
        self._log_activity("command", text, {"user": message.sender, "channel": message.channel})

    async def _send_recurring(self, text: str) -> None:
        if not self.channels:
            logger.warning("No channel configured for recurring messages")
            return
        await self.transport.send(self.channels[0], text)
        self._log_activity("recurring", text, {"channel": self.channels[0]})

    async def refresh_stream_info(self) -> str | None:
        """Pull the current game from the platform into prompts and commands."""
        if self._stream_source is None or not self.channels:
            return None
        try:
            info = await asyncio.wait_for(
                self._stream_source.stream_info(self.channels[0]),
                timeout=self._config.clips.timeout_seconds,
            )
        except (ClipProviderError, TimeoutError) as e:
            logger.warning(f"Stream info lookup failed: {e}")
            return self.generator.current_game

        game = info.game_name if info else None
        if game != self.generator.current_game:
            logger.info(f"STREAM: current game -> {game or 'offline'}")
        self.generator.current_game = game
        self.commands.current_game = game
        return game

    async def _broadcast(self, text: str, announcement: bool = True) -> None:
        for channel in self.channels:
            await self.transport.send(channel, text)
        if announcement:
            get_session_stats().increment("announcements_sent")

    def _log_activity(self, kind: str, message: str, data: dict[str, Any] | None = None) -> None:
        self.store.append_activity(kind, message, self._clock(), data)

    # -- configuration surface -------------------------------------------------

    def layer_states(self) -> dict[str, bool]:
        return {
            "chat_ai": self.engine.is_active,
            "observer": self.detector.is_observing,
            "clipper": self.pipeline.is_active,
            "platform_events": self._platform_events,
            "chat_commands": self.commands.is_active,
            "recurring_messages": self.recurring.is_active,
        }

    def set_layer(self, layer: str, enabled: bool) -> bool:
        """Activate or deactivate one sub-engine."""
        if layer not in LAYERS:
            raise ValueError(f"Unknown layer: {layer}")

        if layer == "chat_ai":
            if enabled:
                self.engine.activate()
            else:
                self.engine.deactivate()
        elif layer == "observer":
            if enabled:
                self.detector.start()
            else:
                self.detector.stop()
        elif layer == "clipper":
            if enabled:
                self.pipeline.activate()
            else:
                self.pipeline.deactivate()
        elif layer == "chat_commands":
            if enabled:
                self.commands.activate()
            else:
                self.commands.deactivate()
        elif layer == "recurring_messages":
            if enabled:
                self.recurring.activate()
            else:
                self.recurring.deactivate()
        else:
            self._platform_events = enabled

        logger.info(f"LAYER: {layer} -> {'on' if enabled else 'off'}")
        return self.layer_states()[layer]

    def toggle_layer(self, layer: str) -> bool:
        if layer not in LAYERS:
            raise ValueError(f"Unknown layer: {layer}")
        return self.set_layer(layer, not self.layer_states()[layer])

    def set_intensity(self, value: float) -> float:
        intensity = self.engine.update_intensity(value)
        self.store.set_setting(INTENSITY_KEY, intensity)
        return intensity

    def set_sensitivity(self, value: float) -> float:
        sensitivity = self.detector.update_sensitivity(value)
        self.store.set_setting(SENSITIVITY_KEY, sensitivity)
        return sensitivity

    def set_min_interval(self, value_ms: float) -> int:
        """Minimum time between generated replies. Negative values are rejected."""
        interval = self.engine.update_min_interval(int(value_ms))
        self.store.set_setting(MIN_INTERVAL_KEY, interval)
        return interval

    def set_clip_cooldown(self, value_ms: float) -> int:
        cooldown = self.pipeline.update_cooldown(int(value_ms))
        self.store.set_setting(CLIP_COOLDOWN_KEY, cooldown)
        return cooldown

    @property
    def denied_words(self) -> frozenset[str]:
        return self.moderation.denied_words

    def set_denied_words(self, words: list[str]) -> list[str]:
        self.moderation = self.moderation.with_denied_words(words)
        self.generator.moderation = self.moderation
        stored = sorted(self.moderation.denied_words)
        self.store.set_setting(DENIED_WORDS_KEY, stored)
        logger.info(f"Deny-list updated ({len(stored)} words)")
        return stored

    async def create_manual_clip(self, title: str = "Manual Clip") -> ClipRequest:
        request = await self.pipeline.create_manual_clip(title)
        self._log_activity("clip_request", title, request.to_dict())
        return request

    async def reset_gameplay(self) -> None:
        await self.detector.reset()
        self.generator.update_stats(self.detector.stats())
        self._log_activity("reset", "Gameplay data reset")

    def gameplay_stats(self) -> dict[str, Any]:
        return {
            "is_observing": self.detector.is_observing,
            "sensitivity": self.detector.sensitivity,
            "stats": self.detector.stats().to_dict(),
            "moments": len(self.pipeline.moments()),
        }

    def recent_moments(self, limit: int = 10) -> list[CriticalMoment]:
        """Latest moments, newest first."""
        return list(reversed(self.pipeline.moments(limit=limit)))

    def recent_clips(self, limit: int = 10) -> list[ClipRecord]:
        return self.pipeline.recent_clips(limit=limit)

    def ai_stats(self) -> dict[str, Any]:
        return {**self.engine.stats(), **self.generator.stats()}

    def recent_activity(self, limit: int = 50, kind: str | None = None) -> list[ActivityEntry]:
        return self.store.recent_activity(limit=limit, kind=kind)

    def status(self) -> dict[str, Any]:
        return {
            "bot_name": self.bot_name,
            "channels": self.channels,
            "layers": self.layer_states(),
            "intensity": self.engine.intensity,
            "sensitivity": self.detector.sensitivity,
            "gameplay": self.detector.stats().to_dict(),
            "clips": self.pipeline.stats(),
            "ai": self.engine.stats(),
            "current_game": self.generator.current_game,
            "recurring": self.recurring.stats(),
            "tasks": self.scheduler.status(),
            "session": get_session_stats().summary(),
        }
