"""
Consensus Synthesizer Tests
===========================

Gate, preconditions, provider failure handling and post-processing of the
provider's JSON.
"""

import json
import logging

import pytest

from verdict_service.errors import InsufficientVerdicts, SynthesisFailed, SynthesisTimeout
from verdict_service.llm.consensus import ConsensusSynthesizer, should_synthesize
from verdict_service.tests.helpers import FakeProvider, consensus_payload, verdict


THREE_VERDICTS = [verdict(8, tone="encouraging"), verdict(None), verdict(4, tone="constructive")]


class TestShouldSynthesize:

    def test_pro_needs_two_verdicts(self):
        assert should_synthesize("pro", 1) is False
        assert should_synthesize("pro", 2) is True
        assert should_synthesize("pro", 7) is True

    def test_other_tiers_never_qualify(self):
        assert should_synthesize("community", 5) is False
        assert should_synthesize("standard", 5) is False
        assert should_synthesize(None, 5) is False


class TestSynthesize:

    @pytest.mark.asyncio
    async def test_returns_result_with_breakdown_per_verdict(self):
        provider = FakeProvider()
        synthesizer = ConsensusSynthesizer(provider, timeout=5)

        result = await synthesizer.synthesize(THREE_VERDICTS, "Cover letter for design job", "writing")

        assert len(result.expert_breakdown) == 3
        assert result.agreement_level == "medium"
        assert synthesizer.get_stats()["calls"] == 1
        assert synthesizer.last_tokens == 200

    @pytest.mark.asyncio
    async def test_prompt_lists_each_verdict(self):
        provider = FakeProvider()
        synthesizer = ConsensusSynthesizer(provider, timeout=5)

        await synthesizer.synthesize(THREE_VERDICTS, "Cover letter for design job", "writing")

        system_prompt, user_prompt = provider.calls[0]
        assert "writing decisions" in system_prompt
        assert "**Expert 3**" in user_prompt
        assert "Rating: 8/10" in user_prompt
        assert "Rating: N/A/10" in user_prompt
        assert "Tone: constructive" in user_prompt
        assert "Cover letter for design job" in user_prompt

    @pytest.mark.asyncio
    async def test_fewer_than_two_verdicts(self):
        provider = FakeProvider()
        synthesizer = ConsensusSynthesizer(provider)

        with pytest.raises(InsufficientVerdicts):
            await synthesizer.synthesize([verdict()], "ctx", "writing")
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_provider_failure(self):
        synthesizer = ConsensusSynthesizer(FakeProvider(success=False))

        with pytest.raises(SynthesisFailed):
            await synthesizer.synthesize(THREE_VERDICTS, "ctx", "writing")
        assert synthesizer.get_stats()["failures"] == 1

    @pytest.mark.asyncio
    async def test_provider_exception(self):
        synthesizer = ConsensusSynthesizer(FakeProvider(raises=ConnectionError("reset")))

        with pytest.raises(SynthesisFailed) as exc_info:
            await synthesizer.synthesize(THREE_VERDICTS, "ctx", "writing")
        assert isinstance(exc_info.value.__cause__, ConnectionError)

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        synthesizer = ConsensusSynthesizer(FakeProvider(content="not json {"))

        with pytest.raises(SynthesisFailed):
            await synthesizer.synthesize(THREE_VERDICTS, "ctx", "writing")

    @pytest.mark.asyncio
    async def test_json_missing_required_fields(self):
        synthesizer = ConsensusSynthesizer(FakeProvider(content=json.dumps({"key_themes": []})))

        with pytest.raises(SynthesisFailed):
            await synthesizer.synthesize(THREE_VERDICTS, "ctx", "writing")

    @pytest.mark.asyncio
    async def test_timeout(self):
        synthesizer = ConsensusSynthesizer(FakeProvider(delay=1.0), timeout=0.01)

        with pytest.raises(SynthesisTimeout):
            await synthesizer.synthesize(THREE_VERDICTS, "ctx", "writing")

    @pytest.mark.asyncio
    async def test_timeout_is_a_synthesis_failure(self):
        synthesizer = ConsensusSynthesizer(FakeProvider(delay=1.0), timeout=0.01)

        with pytest.raises(SynthesisFailed):
            await synthesizer.synthesize(THREE_VERDICTS, "ctx", "writing")


class TestPostProcessing:

    async def _run(self, payload, verdicts=THREE_VERDICTS):
        synthesizer = ConsensusSynthesizer(FakeProvider(payload=payload), timeout=5)
        return await synthesizer.synthesize(verdicts, "ctx", "appearance")

    @pytest.mark.asyncio
    async def test_confidence_clamped_to_one(self):
        result = await self._run(consensus_payload(confidence_score=1.4, agreement_level="high"))
        assert result.confidence_score == 1.0

    @pytest.mark.asyncio
    async def test_confidence_clamped_to_zero(self):
        result = await self._run(consensus_payload(confidence_score=-0.3, agreement_level="low"))
        assert result.confidence_score == 0.0
        assert result.agreement_level == "low"

    @pytest.mark.asyncio
    async def test_low_agreement_upgraded_to_high(self):
        result = await self._run(consensus_payload(confidence_score=0.85, agreement_level="low"))
        assert result.agreement_level == "high"

    @pytest.mark.asyncio
    async def test_low_agreement_upgraded_to_medium(self):
        result = await self._run(consensus_payload(confidence_score=0.65, agreement_level="low"))
        assert result.agreement_level == "medium"

    @pytest.mark.asyncio
    async def test_agreement_never_downgraded(self):
        result = await self._run(consensus_payload(confidence_score=0.3, agreement_level="high"))
        assert result.agreement_level == "high"

    @pytest.mark.asyncio
    async def test_agreement_level_case_normalized(self):
        result = await self._run(consensus_payload(confidence_score=0.7, agreement_level="Medium"))
        assert result.agreement_level == "medium"

    @pytest.mark.asyncio
    async def test_recommendation_values_clamped(self):
        payload = consensus_payload(recommendations=[
            {"action": "A", "confidence": 1.7, "reasoning": "r", "expert_support": 9},
            {"action": "B", "confidence": -1, "reasoning": "r", "expert_support": -2},
        ])

        result = await self._run(payload)

        first, second = result.recommendations
        assert (first.confidence, first.expert_support) == (1.0, 3)
        assert (second.confidence, second.expert_support) == (0.0, 0)

    @pytest.mark.asyncio
    async def test_breakdown_mismatch_only_warns(self, caplog):
        caplog.set_level(logging.WARNING, logger="verdict_service.llm.consensus")
        payload = consensus_payload()
        payload["expert_breakdown"] = payload["expert_breakdown"][:2]

        result = await self._run(payload)

        assert len(result.expert_breakdown) == 2
        assert "doesn't match expert count" in caplog.text


class TestProviderShapeRepair:

    async def _run(self, payload):
        synthesizer = ConsensusSynthesizer(FakeProvider(payload=payload), timeout=5)
        return await synthesizer.synthesize(THREE_VERDICTS, "ctx", "writing")

    def _with_expert(self, **fields):
        payload = consensus_payload()
        payload["expert_breakdown"][0].update(fields)
        return payload

    def _with_recommendation(self, **fields):
        payload = consensus_payload()
        payload["recommendations"][0].update(fields)
        return payload

    @pytest.mark.asyncio
    @pytest.mark.parametrize("stance,expected", [
        ("Positive", "positive"),
        (" NEGATIVE ", "negative"),
        ("mixed", "neutral"),
        (None, "neutral"),
    ])
    async def test_stance_normalized(self, stance, expected):
        result = await self._run(self._with_expert(stance=stance))
        assert result.expert_breakdown[0].stance == expected

    @pytest.mark.asyncio
    async def test_null_expert_confidence_counts_as_zero(self):
        result = await self._run(self._with_expert(confidence=None))
        assert result.expert_breakdown[0].confidence == 0.0

    @pytest.mark.asyncio
    async def test_null_recommendation_confidence_counts_as_zero(self):
        result = await self._run(self._with_recommendation(confidence=None))
        assert result.recommendations[0].confidence == 0.0
        assert result.recommendations[0].action == "Cut the second paragraph"

    @pytest.mark.asyncio
    async def test_fractional_expert_support_rounded(self):
        result = await self._run(self._with_recommendation(expert_support=2.4))
        assert result.recommendations[0].expert_support == 2

    @pytest.mark.asyncio
    async def test_fractional_expert_support_rounded_then_clamped(self):
        result = await self._run(self._with_recommendation(expert_support=7.8))
        assert result.recommendations[0].expert_support == 3

    @pytest.mark.asyncio
    async def test_unknown_agreement_level_follows_confidence(self):
        result = await self._run(consensus_payload(agreement_level="moderate", confidence_score=0.65))
        assert result.agreement_level == "medium"

    @pytest.mark.asyncio
    async def test_null_sections_become_empty(self):
        result = await self._run(consensus_payload(key_themes=None, conflicts=None, recommendations=None))
        assert result.key_themes == []
        assert result.conflicts == []
        assert result.recommendations == []
        assert len(result.expert_breakdown) == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize("missing", ["synthesis", "confidence_score"])
    async def test_missing_core_field_still_fails(self, missing):
        payload = consensus_payload()
        del payload[missing]

        with pytest.raises(SynthesisFailed):
            await self._run(payload)
