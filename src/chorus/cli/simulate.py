"""Scripted dialogue simulation CLI command.

Runs a small three-agent simulation tick by tick: agents take turns
triggering exchanges, one agent levels up half way through, and every
spoken line is printed with the tick it was spoken on.
"""

import argparse
import asyncio
from pathlib import Path

from chorus.adapters.llm import LLMConfig, ScriptedChatStreamer, StreamingChatAdapter
from chorus.config import Config, ConfigError, DialogueConfig, LLMSettings, load_config
from chorus.core import (
    CallbackDisplay,
    ChatStreamer,
    DialogueService,
    SimpleContextBuilder,
    SimulationClock,
    StaticProximity,
    StaticStatusProvider,
)
from chorus.schemas import Utterance
from chorus.utils.telemetry import (
    get_logger,
    setup_logging,
    setup_tracing,
    start_metrics_server,
)

AGENTS = {"ann": "Ann", "bo": "Bo", "cy": "Cy"}

SCRIPT = [
    ("Ann", "Has anyone seen the spare wrench?", {"score": 50, "label": "chat"}),
    ("Bo", "Check the workshop, I left it by the bench.", {"score": 60, "label": "chat"}),
    ("Cy", "You two would lose your heads if they weren't attached.", "insult"),
    ("Ann", "Thanks Bo, you're a lifesaver.", {"score": 85, "label": "praise"}),
]

ACTIVITIES = ["hauling steel", "cooking", "repairing the wall", "resting", "sowing rice"]

logger = get_logger(__name__)


def build_streamer(config: Config) -> ChatStreamer:
    """Use the configured provider, falling back to the built-in script."""
    if config.llm.provider in ("openai", "anthropic"):
        return StreamingChatAdapter(LLMConfig.from_settings(config.llm))
    return ScriptedChatStreamer(SCRIPT)


def default_config() -> Config:
    """Pacing short enough to watch a few exchanges play out."""
    return Config(
        dialogue=DialogueConfig(
            talk_interval_ticks=30,
            reply_interval_ticks=10,
            hazard_reply_interval_ticks=5,
        ),
        llm=LLMSettings(provider="scripted"),
    )


async def run_simulation(
    config: Config,
    ticks: int,
    trigger_every: int,
    hazardous: set[str] | None = None,
    streamer: ChatStreamer | None = None,
) -> list[tuple[int, str, Utterance]]:
    """Run the simulation and return ``(tick, agent_id, utterance)`` per spoken line."""
    clock = SimulationClock()
    statuses = StaticStatusProvider(hazardous=hazardous)
    spoken: list[tuple[int, str, Utterance]] = []

    def show(agent_id: str, utterance: Utterance) -> None:
        tick = clock.current_tick()
        spoken.append((tick, agent_id, utterance))
        marker = "  ↳" if utterance.is_reply() else ""
        print(f"[{tick:>5}]{marker} {utterance.speaker_name}: {utterance.text}")

    service = DialogueService(
        streamer or build_streamer(config),
        config=config,
        clock=clock,
        status_provider=statuses,
        proximity=StaticProximity(
            {agent: [other for other in AGENTS if other != agent] for agent in AGENTS}
        ),
        context_builder=SimpleContextBuilder(AGENTS),
        display=CallbackDisplay(show),
    )
    for agent_id in AGENTS:
        service.register_agent(agent_id)

    agent_ids = list(AGENTS)
    turn = 0

    try:
        for _ in range(ticks):
            tick = clock.advance()

            if trigger_every > 0 and tick % trigger_every == 0:
                initiator = agent_ids[turn % len(agent_ids)]
                statuses.statuses[initiator] = ACTIVITIES[turn % len(ACTIVITIES)]
                service.trigger(initiator, f"{AGENTS[initiator]} starts a conversation.")
                turn += 1

            if tick == ticks // 2:
                service.notify_level_up("bo", "Cooking", 4, 5, "skilled")

            service.on_tick()
            await asyncio.sleep(0)
    finally:
        await service.shutdown()

    return spoken


async def run_simulate_command(args: list[str]) -> int:
    """Run the simulate command with parsed arguments.

    Args:
        args: Command line arguments

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    parser = argparse.ArgumentParser(
        prog="chorus simulate",
        description="Run a scripted multi-agent dialogue simulation",
    )

    parser.add_argument(
        "--ticks",
        type=int,
        default=600,
        help="Number of simulation ticks to run (default: 600)",
    )

    parser.add_argument(
        "--trigger-every",
        type=int,
        default=90,
        help="Ticks between conversation triggers (default: 90)",
    )

    parser.add_argument(
        "--hazard",
        action="append",
        default=[],
        metavar="AGENT",
        help="Mark an agent as in danger (repeatable)",
    )

    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        help="Configuration file (default: short scripted pacing)",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    try:
        parsed_args = parser.parse_args(args)
    except SystemExit as e:
        return int(e.code or 0)

    setup_logging(
        "DEBUG" if parsed_args.verbose else "WARNING",
        enable_pii_redaction=False,
        log_format="text",
    )

    try:
        config = load_config(parsed_args.config) if parsed_args.config else default_config()
    except ConfigError as e:
        print(f"Error loading configuration: {e}")
        return 1

    if config.metrics.enabled and config.features.metrics_export:
        start_metrics_server(config.metrics.port)
    if config.features.tracing:
        setup_tracing("chorus-simulate", config.metrics.otlp_endpoint)

    unknown = set(parsed_args.hazard) - set(AGENTS)
    if unknown:
        print(f"Unknown agents: {', '.join(sorted(unknown))}")
        return 1

    spoken = await run_simulation(
        config,
        parsed_args.ticks,
        parsed_args.trigger_every,
        hazardous=set(parsed_args.hazard),
    )

    logger.info("Simulation finished", ticks=parsed_args.ticks, spoken=len(spoken))
    print(f"\n{len(spoken)} lines spoken in {parsed_args.ticks} ticks")
    return 0
