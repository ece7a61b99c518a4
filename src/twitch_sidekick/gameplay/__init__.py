"""Gameplay observation and automatic clipping."""

from .clipper import CriticalMomentPipeline, should_create_clip
from .detector import GameplayAnalyzer, GameplayDetector, SimulatedAnalyzer
from .models import (
    ClipRecord,
    ClipRequest,
    ClipState,
    CriticalMoment,
    EventType,
    GameplayEvent,
    GameplayStats,
)

__all__ = [
    "ClipRecord",
    "ClipRequest",
    "ClipState",
    "CriticalMoment",
    "CriticalMomentPipeline",
    "EventType",
    "GameplayAnalyzer",
    "GameplayDetector",
    "GameplayEvent",
    "GameplayStats",
    "SimulatedAnalyzer",
    "should_create_clip",
]
