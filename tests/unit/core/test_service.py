"""Unit tests for the dialogue service facade."""

from unittest.mock import MagicMock

import pytest

from chorus.adapters.llm import ScriptedChatStreamer
from chorus.config import Config, DialogueConfig, FeatureFlags, LLMSettings
from chorus.core.collaborators import AllowAllEligibility, SimpleContextBuilder
from chorus.core.mood import MoodEffectApplier
from chorus.core.service import DialogueService
from chorus.schemas.messages import TalkRequest
from chorus.schemas.types import TalkType

NAMES = {"ann": "Ann", "bo": "Bo"}


class Silenced(AllowAllEligibility):
    def __init__(self, silenced):
        self.silenced = set(silenced)

    def can_generate_talk(self, state) -> bool:
        return state.agent_id not in self.silenced


def make_service(streamer=None, features=None, dialogue=None, provider="scripted", **kwargs):
    config = Config(
        llm=LLMSettings(provider=provider),
        dialogue=dialogue or DialogueConfig(),
        features=features or FeatureFlags(),
    )
    service = DialogueService(
        streamer or ScriptedChatStreamer([("Ann", "Hi Bo"), ("Bo", "Hi Ann")]),
        config=config,
        context_builder=SimpleContextBuilder(NAMES),
        **kwargs,
    )
    for agent_id in NAMES:
        service.register_agent(agent_id)
    return service


class TestRegistration:
    """Test agent lifecycle."""

    def test_register_and_remove(self):
        service = make_service()
        assert service.registry.agent_ids() == ["ann", "bo"]

        service.agent_removed("ann")
        assert "ann" not in service.registry
        service.agent_removed("ann")
        assert len(service.registry) == 1


class TestTriggers:
    """Test trigger handling."""

    @pytest.mark.asyncio
    async def test_trigger_runs_session(self):
        service = make_service()

        assert service.trigger("ann", "Say hi", recipient_id="bo")
        assert service.registry.get("ann").is_generating
        assert service.guard.busy

        results = await service.wait_idle()

        assert len(results) == 1
        assert not service.guard.busy
        assert not service.registry.get("ann").is_generating
        assert [u.text for u in service.registry.get("ann").queued()] == ["Hi Bo"]
        assert [u.text for u in service.registry.get("bo").queued()] == ["Hi Ann"]

    def test_no_provider_rejects(self):
        """With the default provider setting nothing is ever generated."""
        service = make_service(provider="none")
        assert not service.trigger("ann", "Say hi")
        assert not service.guard.busy

    def test_trigger_errors_are_logged_not_raised(self):
        service = make_service()
        service.gate.request_generation = MagicMock(side_effect=ValueError("boom"))

        assert service.on_trigger(TalkRequest(initiator_id="ann", prompt="Hi")) is False

    def test_trigger_registers_unknown_agents(self):
        service = make_service(provider="none")
        service.trigger("cy", "Hi", recipient_id="dee")
        assert "cy" in service.registry
        assert "dee" in service.registry

    def test_trigger_stamps_current_tick(self):
        service = make_service()
        service.clock.advance(7)
        service.gate.request_generation = MagicMock(return_value=False)

        service.trigger("ann", "Hi", talk_type=TalkType.EVENT)

        request = service.gate.request_generation.call_args.args[0]
        assert request.created_tick == 7
        assert request.talk_type == TalkType.EVENT


class TestDeferredRequests:
    """Test queued triggers offered on later ticks."""

    @pytest.mark.asyncio
    async def test_deferred_request_offered_on_tick(self):
        service = make_service()
        service.add_talk_request("ann", "Something happened")

        service.on_tick()

        assert not service.registry.get("ann").pending_requests
        assert service.registry.get("ann").is_generating
        await service.wait_idle()
        assert service.registry.get("ann").queue_size() == 1

    def test_deferred_request_waits_while_busy(self):
        service = make_service()
        service.add_talk_request("ann", "Something happened")
        service.guard.try_acquire("bo")

        service.on_tick()

        assert len(service.registry.get("ann").pending_requests) == 1

    def test_rejected_deferred_request_kept(self):
        service = make_service(provider="none")
        service.add_talk_request("ann", "Something happened")

        service.on_tick()

        assert len(service.registry.get("ann").pending_requests) == 1

    @pytest.mark.asyncio
    async def test_ineligible_agent_does_not_block_others(self):
        """A request rejected for its own agent lets the next agent's through."""
        service = make_service(
            streamer=ScriptedChatStreamer([("Bo", "My turn")]),
            eligibility=Silenced(["ann"]),
        )
        service.add_talk_request("ann", "Something happened")
        service.add_talk_request("bo", "Something else happened")

        service.on_tick()

        assert len(service.registry.get("ann").pending_requests) == 1
        assert not service.registry.get("bo").pending_requests
        assert service.registry.get("bo").is_generating
        await service.wait_idle()
        assert service.registry.get("bo").queue_size() == 1

    def test_global_rejection_stops_offering(self):
        service = make_service(provider="none")
        service.gate.submit = MagicMock(wraps=service.gate.submit)
        service.add_talk_request("ann", "Something happened")
        service.add_talk_request("bo", "Something else happened")

        service.on_tick()

        service.gate.submit.assert_called_once()
        assert len(service.registry.get("bo").pending_requests) == 1

    def test_expired_requests_dropped(self):
        service = make_service(dialogue=DialogueConfig(request_ttl_ticks=10))
        service.add_talk_request("ann", "Old news")
        service.guard.try_acquire("bo")

        service.clock.advance(10)
        service.on_tick()
        assert len(service.registry.get("ann").pending_requests) == 1

        service.clock.advance(1)
        service.on_tick()
        assert not service.registry.get("ann").pending_requests

    def test_feature_flag_disables_offering(self):
        service = make_service(features=FeatureFlags(deferred_requests=False))
        service.add_talk_request("ann", "Something happened")

        service.on_tick()

        assert len(service.registry.get("ann").pending_requests) == 1

    def test_pending_limit(self):
        service = make_service(dialogue=DialogueConfig(max_pending_requests=2))
        for prompt in ("one", "two", "three"):
            service.add_talk_request("ann", prompt)

        prompts = [r.prompt for r in service.registry.get("ann").pending_requests]
        assert prompts == ["two", "three"]


class TestLevelUp:
    """Test level-up notifications."""

    def test_level_up_queues_request(self):
        service = make_service()

        request = service.notify_level_up("bo", "Cooking", 4, 5, "skilled")

        assert request.talk_type == TalkType.LEVEL_UP
        assert request.prompt == "Bo leveled up Cooking from 4 to 5 (skilled)"
        assert list(service.registry.get("bo").pending_requests) == [request]

    @pytest.mark.parametrize("old_level,new_level", [(5, 5), (6, 5)])
    def test_no_increase_ignored(self, old_level, new_level):
        service = make_service()
        assert service.notify_level_up("bo", "Cooking", old_level, new_level, "x") is None
        assert not service.registry.get("bo").pending_requests


class TestTicks:
    """Test the per-tick entry point."""

    def test_tick_errors_are_logged_not_raised(self):
        service = make_service()
        service.scheduler.tick = MagicMock(side_effect=RuntimeError("display gone"))
        assert service.on_tick() is None

    def test_mood_effect_follows_feature_flag(self):
        mood = MoodEffectApplier(lambda agent_id, mood: None)

        enabled = make_service(mood=mood)
        disabled = make_service(mood=mood, features=FeatureFlags(mood_effects=False))

        assert enabled.scheduler.mood is mood
        assert disabled.scheduler.mood is None

    @pytest.mark.asyncio
    async def test_shutdown_cancels_sessions(self):
        service = make_service(
            streamer=ScriptedChatStreamer([("Ann", "Hi")], delay_seconds=10)
        )
        assert service.trigger("ann", "Hi")

        await service.shutdown()

        assert not service.guard.busy
        assert not service.registry.get("ann").is_generating
