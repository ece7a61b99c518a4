"""Reply generation: prompt assembly, completion call, moderation."""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any

from twitch_sidekick.config import LLMConfig, ResponseConfig
from twitch_sidekick.core.gate import ChatTrigger, GameplayTrigger, Trigger
from twitch_sidekick.core.logging import get_session_stats, log_llm_call, log_llm_response
from twitch_sidekick.core.moderation import ModerationFilter
from twitch_sidekick.core.persona import Persona, get_system_prompt
from twitch_sidekick.core.scheduler import Clock, system_clock
from twitch_sidekick.gameplay.models import EventType, GameplayEvent, GameplayStats
from twitch_sidekick.providers.completion import CompletionProvider
from twitch_sidekick.providers.knowledge import KnowledgeSource

logger = logging.getLogger(__name__)

GAMEPLAY_SPEAKER = "[gameplay]"

# Situational guidance per gameplay event type
SITUATIONS: dict[EventType, str] = {
    EventType.KILL: "The streamer just got a kill. Celebrate it briefly.",
    EventType.DEATH: "The streamer just died. Be encouraging, never mocking.",
    EventType.WIN: "The streamer just won the match. Cheer with the chat.",
    EventType.COMBO: "The streamer just pulled off a combo. React with excitement.",
}
GENERAL_GAMEPLAY = "Something notable just happened in the game. Comment on it briefly."
MENTION = "A viewer mentioned you directly. Answer them by name."
GENERAL_CHAT = "Join the chat conversation naturally."


@dataclass(frozen=True)
class ConversationTurn:
    """One line of chat (or a gameplay beat) kept for prompt context."""

    speaker: str
    text: str
    occurred_at: float

    def format(self) -> str:
        return f"<{self.speaker}> {self.text}"


@dataclass
class PromptPayload:
    """Everything a completion provider needs for one call."""

    system: str
    situation: str
    trigger_text: str
    history: list[ConversationTurn] = field(default_factory=list)
    knowledge: str = ""
    game_context: str = ""
    max_tokens: int = 150
    temperature: float = 0.8

    def render_user(self) -> str:
        """Render the user section: context, history, then the trigger itself."""
        sections = [f"Situation: {self.situation}"]
        if self.game_context:
            sections.append(f"Game context:\n{self.game_context}")
        if self.knowledge:
            sections.append(f"Facts about the streamer:\n{self.knowledge}")
        if self.history:
            lines = "\n".join(turn.format() for turn in self.history)
            sections.append(f"Recent chat:\n{lines}")
        sections.append(f"Respond to:\n{self.trigger_text}")
        return "\n\n".join(sections)


class ResponseGenerator:
    """Turns an approved trigger into moderated reply text.

    The conversation window records every trigger handed to ``generate``,
    whether or not the reply is eventually sent. The prompt only sees a
    shorter excerpt of that window.
    """

    def __init__(
        self,
        response_config: ResponseConfig,
        llm_config: LLMConfig,
        persona: Persona,
        bot_name: str,
        completion: CompletionProvider | None,
        moderation: ModerationFilter,
        knowledge: KnowledgeSource | None = None,
        clock: Clock = system_clock,
    ):
        self._persona = persona
        self._bot_name = bot_name
        self._completion = completion
        self.moderation = moderation
        self._knowledge = knowledge
        self._clock = clock
        self._timeout = llm_config.timeout_seconds
        self._max_tokens = persona.max_tokens or llm_config.max_tokens
        self._temperature = (
            persona.temperature if persona.temperature is not None else llm_config.temperature
        )
        self._prompt_history_size = response_config.prompt_history_size
        self._history: deque[ConversationTurn] = deque(maxlen=response_config.history_size)
        self._recent_events: deque[GameplayEvent] = deque(
            maxlen=response_config.recent_events_size
        )
        self._game_stats: GameplayStats | None = None
        self.current_game: str | None = None
        self._generated = 0
        self._failed = 0

        if completion is None:
            logger.debug("Generator has no completion provider, replies disabled")

    @property
    def has_provider(self) -> bool:
        return self._completion is not None

    @property
    def history(self) -> list[ConversationTurn]:
        return list(self._history)

    def record_turn(self, speaker: str, text: str, occurred_at: float | None = None) -> None:
        """Append a line to the conversation window."""
        at = self._clock() if occurred_at is None else occurred_at
        self._history.append(ConversationTurn(speaker, text, at))

    def observe_gameplay(self, event: GameplayEvent) -> None:
        self._recent_events.append(event)

    def update_stats(self, stats: GameplayStats) -> None:
        self._game_stats = stats

    def _game_context(self) -> str:
        lines = []
        if self.current_game:
            lines.append(f"Current game: {self.current_game}")
        if self._recent_events:
            recent = ", ".join(e.type.value for e in self._recent_events)
            lines.append(f"Recent events: {recent}")
        if self._game_stats:
            s = self._game_stats
            lines.append(
                f"Session: {s.kills} kills, {s.deaths} deaths, {s.wins} wins, {s.combos} combos"
            )
        return "\n".join(lines)

    def _knowledge_excerpt(self, topic: str | None) -> str:
        if self._knowledge is None:
            return ""
        try:
            return self._knowledge.lookup(topic)
        except Exception as e:
            logger.warning(f"Knowledge lookup failed: {e}")
            return ""

    def _situation(self, trigger: Trigger) -> str:
        if isinstance(trigger, GameplayTrigger):
            return SITUATIONS.get(trigger.event.type, GENERAL_GAMEPLAY)
        if self._bot_name.lower() in trigger.text.lower():
            return MENTION
        return GENERAL_CHAT

    def build_payload(
        self,
        trigger: Trigger,
        history: list[ConversationTurn],
        context: dict[str, Any] | None = None,
    ) -> PromptPayload:
        """Assemble the prompt for a trigger from the given history excerpt."""
        if isinstance(trigger, ChatTrigger):
            trigger_text = f"<{trigger.sender}> {trigger.text}"
            topic = trigger.text
        else:
            event = trigger.event
            trigger_text = f"{event.type.value}: {event.context} (intensity {event.intensity:.2f})"
            topic = None

        situation = self._situation(trigger)
        if context:
            extra = "; ".join(f"{k}: {v}" for k, v in context.items())
            situation = f"{situation} ({extra})"

        return PromptPayload(
            system=get_system_prompt(self._persona, self._bot_name),
            situation=situation,
            trigger_text=trigger_text,
            history=history,
            knowledge=self._knowledge_excerpt(topic),
            game_context=self._game_context(),
            max_tokens=self._max_tokens,
            temperature=self._temperature,
        )

    async def generate(self, trigger: Trigger, context: dict[str, Any] | None = None) -> str | None:
        """Produce moderated reply text for a trigger.

        Never raises for provider trouble: timeouts, provider errors, empty or
        malformed output and moderation rejections all return None.
        """
        if trigger is None:
            raise ValueError("trigger is required")

        # Excerpt taken before the trigger joins the window
        excerpt = list(self._history)[-self._prompt_history_size :] if self._prompt_history_size else []
        if isinstance(trigger, ChatTrigger):
            self.record_turn(trigger.sender, trigger.text, trigger.occurred_at)
        else:
            self.record_turn(GAMEPLAY_SPEAKER, trigger.event.context, trigger.event.occurred_at)

        if self._completion is None:
            return None

        payload = self.build_payload(trigger, excerpt, context)
        operation = "gameplay" if isinstance(trigger, GameplayTrigger) else "chat"
        log_llm_call(
            operation=operation,
            model=self._completion.model,
            system_prompt=payload.system,
            user_prompt=payload.render_user(),
            config={"max_tokens": payload.max_tokens, "temperature": payload.temperature},
        )

        try:
            raw = await asyncio.wait_for(
                self._completion.complete(payload, self._timeout),
                timeout=self._timeout,
            )
        except TimeoutError:
            self._failed += 1
            logger.warning(f"Completion timed out after {self._timeout}s")
            log_llm_response(operation, error="timeout")
            return None
        except Exception as e:
            self._failed += 1
            logger.error(f"Completion failed: {e}")
            log_llm_response(operation, error=str(e))
            return None

        if not isinstance(raw, str) or not raw.strip():
            self._failed += 1
            logger.warning(f"Malformed completion result: {raw!r}")
            log_llm_response(operation, error="malformed response")
            return None

        text = self.moderation.filter(raw)
        log_llm_response(operation, response_text=raw, filtered_text=text)
        if text is None:
            get_session_stats().increment("replies_filtered")
            return None

        self._generated += 1
        return text

    def reset(self) -> None:
        self._history.clear()
        self._recent_events.clear()
        self._game_stats = None
        logger.info("Conversation history cleared")

    def stats(self) -> dict[str, Any]:
        return {
            "provider": self._completion.name if self._completion else None,
            "model": self._completion.model if self._completion else None,
            "history_length": len(self._history),
            "recent_events": len(self._recent_events),
            "current_game": self.current_game,
            "generated": self._generated,
            "failed": self._failed,
        }
