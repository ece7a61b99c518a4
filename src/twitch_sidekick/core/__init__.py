"""Core bot logic."""

from .announcements import PlatformEvent, render_announcement
from .commands import ChatCommands
from .events import EventBus
from .gate import (
    ChatTrigger,
    EngineState,
    GameplayTrigger,
    GateResult,
    ResponseDecisionEngine,
    ResponseOutcome,
)
from .moderation import ModerationFilter
from .persona import Persona, get_system_prompt
from .recurring import RecurringMessages
from .responder import ConversationTurn, PromptPayload, ResponseGenerator
from .scheduler import PeriodicTask, Scheduler, system_clock

__all__ = [
    "ChatCommands",
    "ChatTrigger",
    "ConversationTurn",
    "EngineState",
    "EventBus",
    "GameplayTrigger",
    "GateResult",
    "ModerationFilter",
    "PeriodicTask",
    "Persona",
    "PlatformEvent",
    "PromptPayload",
    "RecurringMessages",
    "ResponseDecisionEngine",
    "ResponseGenerator",
    "ResponseOutcome",
    "Scheduler",
    "get_system_prompt",
    "render_announcement",
    "system_clock",
]
