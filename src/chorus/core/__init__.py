# Dialogue generation and playback scheduling

from .clock import SimulationClock
from .collaborators import (
    AllowAllEligibility,
    CallbackDisplay,
    ChatStreamer,
    Clock,
    ContextBuilder,
    DisplaySink,
    EligibilityPolicy,
    MoodEffect,
    ProximityProvider,
    SimpleContextBuilder,
    StaticProximity,
    StaticStatusProvider,
    StatusProvider,
)
from .gate import GenerationGate, SessionLauncher, SingleFlightGuard
from .history import HistoryLedger
from .mood import MoodEffectApplier, map_emotion_to_mood
from .orchestrator import DialogueOrchestrator
from .registry import AgentRegistry, AgentState
from .scheduler import PlaybackScheduler
from .service import DialogueService

__all__ = [
    "AgentRegistry",
    "AgentState",
    "AllowAllEligibility",
    "CallbackDisplay",
    "ChatStreamer",
    "Clock",
    "ContextBuilder",
    "DialogueOrchestrator",
    "DialogueService",
    "DisplaySink",
    "EligibilityPolicy",
    "GenerationGate",
    "HistoryLedger",
    "MoodEffect",
    "MoodEffectApplier",
    "PlaybackScheduler",
    "ProximityProvider",
    "SessionLauncher",
    "SimpleContextBuilder",
    "SimulationClock",
    "SingleFlightGuard",
    "StaticProximity",
    "StaticStatusProvider",
    "StatusProvider",
    "map_emotion_to_mood",
]
