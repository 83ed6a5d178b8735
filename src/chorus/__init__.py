"""chorus - Dialogue generation and playback scheduling for agent simulations.

chorus decides when agents in a tick-driven simulation may ask an AI for a
new exchange, streams the generated lines into per-agent queues and plays
them back one line per tick, keeping reply chains coherent and letting
urgent dialogue cut the line.
"""

__version__ = "0.1.0"

# Core exports
from .core import (
    AgentRegistry,
    AgentState,
    DialogueOrchestrator,
    DialogueService,
    GenerationGate,
    HistoryLedger,
    PlaybackScheduler,
    SimulationClock,
    SingleFlightGuard,
)
from .schemas import (
    EmotionResult,
    GateDecision,
    SessionResult,
    TalkRequest,
    TalkType,
    TickResult,
    Utterance,
)

__all__ = [
    "AgentRegistry",
    "AgentState",
    "DialogueOrchestrator",
    "DialogueService",
    "EmotionResult",
    "GateDecision",
    "GenerationGate",
    "HistoryLedger",
    "PlaybackScheduler",
    "SessionResult",
    "SimulationClock",
    "SingleFlightGuard",
    "TalkRequest",
    "TalkType",
    "TickResult",
    "Utterance",
]
