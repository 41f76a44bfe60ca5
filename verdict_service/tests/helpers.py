"""
Test helpers: sample verdicts, consensus payloads and a fake provider.
"""

import asyncio
import json
from types import SimpleNamespace

from verdict_service.llm.openrouter_base import LLMCallResult


FEEDBACK = (
    "The opening is strong and specific, but the second paragraph repeats "
    "the first. Cut it down and lead with the portfolio."
)


def verdict(rating=7, feedback=FEEDBACK, tone="honest"):
    return SimpleNamespace(rating=rating, feedback=feedback, tone=tone)


def consensus_payload(**overrides):
    data = {
        "synthesis": "Judges agree the draft is promising but too long.",
        "confidence_score": 0.7,
        "agreement_level": "medium",
        "key_themes": ["length", "portfolio", "tone"],
        "conflicts": [
            {
                "topic": "Opening line",
                "positions": ["Keep it", "Rewrite it"],
                "resolution": "Keep it but shorten",
            }
        ],
        "recommendations": [
            {
                "action": "Cut the second paragraph",
                "confidence": 0.9,
                "reasoning": "Two judges flagged repetition",
                "expert_support": 2,
            }
        ],
        "expert_breakdown": [
            {"expert_title": "Verified Expert", "key_points": ["too long"], "stance": "neutral", "confidence": 0.7},
            {"expert_title": "Verified Expert", "key_points": ["good opening"], "stance": "positive", "confidence": 0.8},
            {"expert_title": "Verified Expert", "key_points": ["repetitive"], "stance": "negative", "confidence": 0.6},
        ],
    }
    data.update(overrides)
    return data


class FakeProvider:
    """In-memory TextSynthesisProvider."""

    model = "fake/consensus-model"

    def __init__(self, payload=None, success=True, delay=0.0, raises=None, content=None):
        self.payload = payload if payload is not None else consensus_payload()
        self.success = success
        self.delay = delay
        self.raises = raises
        self.content = content
        self.calls = []

    async def complete(self, system_prompt, user_prompt):
        self.calls.append((system_prompt, user_prompt))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.raises is not None:
            raise self.raises
        if not self.success:
            return LLMCallResult(content="", model=self.model, success=False, error="HTTP 500: upstream")
        content = self.content if self.content is not None else json.dumps(self.payload)
        return LLMCallResult(content=content, model=self.model, input_tokens=120, output_tokens=80)
