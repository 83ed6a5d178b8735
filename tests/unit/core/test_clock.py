"""Unit tests for the simulation clock and default collaborators."""

import pytest

from chorus.core.clock import SimulationClock
from chorus.core.collaborators import (
    AllowAllEligibility,
    CallbackDisplay,
    Clock,
    ContextBuilder,
    EligibilityPolicy,
    SimpleContextBuilder,
    StaticProximity,
    StaticStatusProvider,
    StatusProvider,
)
from chorus.core.registry import AgentState
from chorus.schemas.messages import TalkRequest, Utterance


class TestSimulationClock:
    """Test tick counting and interval checks."""

    def test_advance(self):
        clock = SimulationClock()
        assert clock.current_tick() == 0
        assert clock.advance() == 1
        assert clock.advance(9) == 10

    def test_invalid_values(self):
        with pytest.raises(ValueError):
            SimulationClock(start_tick=-1)
        with pytest.raises(ValueError):
            SimulationClock().advance(-1)

    def test_interval_elapsed(self):
        clock = SimulationClock(start_tick=110)
        assert clock.has_interval_elapsed(100, 10)
        assert not clock.has_interval_elapsed(101, 10)
        assert clock.has_interval_elapsed(-1, 10_000)

    def test_satisfies_protocol(self):
        assert isinstance(SimulationClock(), Clock)


class TestDefaultCollaborators:
    """Test the simple collaborator implementations."""

    def test_allow_all_eligibility(self):
        eligibility = AllowAllEligibility()
        state = AgentState("ann")

        assert isinstance(eligibility, EligibilityPolicy)
        assert eligibility.is_talk_eligible("ann")
        assert eligibility.can_generate_talk(state)
        assert eligibility.can_display_talk(state)

        state.is_generating = True
        assert not eligibility.can_generate_talk(state)

    def test_static_status_hazard_from_nearby(self):
        provider = StaticStatusProvider({"ann": "cooking"}, {"bo"})

        text, hazardous = provider.get_status_summary("ann", ["bo"])

        assert isinstance(provider, StatusProvider)
        assert text == "ann (cooking)\nNearby: bo"
        assert hazardous
        assert not provider.is_hazardous("ann")
        assert provider.get_status_summary("cy", []) == ("cy (idle)\nNearby: none", False)

    def test_static_proximity_returns_copy(self):
        proximity = StaticProximity({"ann": ["bo"]})
        nearby = proximity.nearby_agents("ann")
        nearby.append("cy")

        assert proximity.nearby_agents("ann") == ["bo"]
        assert proximity.nearby_agents("zed") == []

    def test_simple_context_builder(self):
        builder = SimpleContextBuilder({"ann": "Ann"})
        request = TalkRequest(initiator_id="ann", prompt="Hi")

        assert isinstance(builder, ContextBuilder)
        assert builder.display_name("ann") == "Ann"
        assert builder.display_name("bo") == "bo"
        assert builder.build_context(["ann", "bo"]) == "Participants: Ann, bo"
        assert builder.decorate_prompt(request, ["ann"], "ok") == "Hi\n[Status]\nok"

    def test_callback_display(self):
        shown = []
        display = CallbackDisplay(lambda agent_id, u: shown.append((agent_id, u.text)))

        display.show_utterance("ann", Utterance(speaker_name="Ann", text="Hey"))

        assert shown == [("ann", "Hey")]
