"""
Consensus Synthesizer
=====================

Combines several judge verdicts into one structured analysis by delegating
to a text synthesis provider (OpenRouter in production).

Role:
- Gate: only Pro tier requests with at least 2 verdicts qualify
- Build the prompt from each verdict's rating, feedback and tone
- Parse and sanity-check the JSON answer (clamp scores, align agreement level)
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

from pydantic import ValidationError

from ..config import get_settings
from ..errors import InsufficientVerdicts, SynthesisFailed, SynthesisTimeout
from ..schemas import ConsensusResult
from ..trace import ensure_trace_id
from .openrouter_base import OpenRouterBaseClient, TextSynthesisProvider

logger = logging.getLogger(__name__)

MIN_VERDICTS = 2
HIGH_AGREEMENT_THRESHOLD = 0.8
MEDIUM_AGREEMENT_THRESHOLD = 0.6
DEFAULT_EXPERT_TITLE = "Verified Expert"


CONSENSUS_SYSTEM_PROMPT = """You are a professional consensus analyst specializing in {category} decisions.
Your role is to synthesize multiple expert opinions into clear, actionable insights.

Key responsibilities:
- Identify areas of expert agreement and disagreement
- Extract key themes and actionable recommendations
- Assign confidence scores based on expert consensus
- Maintain objectivity while highlighting the strongest evidence-based positions

Response format: Always respond with valid JSON matching the schema in the request.
Confidence scores: Use 0.0-1.0 scale (1.0 = unanimous expert agreement)
Agreement levels: 'high' (80%+ agreement), 'medium' (60-80%), 'low' (<60%)"""


CONSENSUS_USER_TEMPLATE = """CONSENSUS ANALYSIS REQUEST

**Context:** {context}
**Category:** {category}

**Expert Opinions:**
{experts}

**Analysis Required:**
Provide a consensus analysis as JSON with this structure:

{{
  "synthesis": "Summary combining all expert insights (200-300 words)",
  "confidence_score": 0.85,
  "agreement_level": "high|medium|low",
  "key_themes": ["theme1", "theme2", "theme3"],
  "conflicts": [
    {{"topic": "Area of disagreement", "positions": ["Position 1", "Position 2"], "resolution": "How to reconcile"}}
  ],
  "recommendations": [
    {{"action": "Specific action", "confidence": 0.9, "reasoning": "Why", "expert_support": {expert_count}}}
  ],
  "expert_breakdown": [
    {{"expert_title": "Expert 1 title", "key_points": ["point1"], "stance": "positive|neutral|negative", "confidence": 0.8}}
  ]
}}

Return exactly one expert_breakdown entry per expert ({expert_count} in total)."""


def should_synthesize(tier: Optional[str], verdict_count: int) -> bool:
    """Whether a request qualifies for consensus analysis."""
    settings = get_settings()
    return tier == settings.consensus_tier and verdict_count >= settings.consensus_min_verdicts


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def format_expert_section(verdicts: Sequence[Any]) -> str:
    blocks = []
    for index, verdict in enumerate(verdicts, start=1):
        rating = verdict.rating if verdict.rating is not None else "N/A"
        blocks.append(
            f"**Expert {index}** ({DEFAULT_EXPERT_TITLE})\n"
            f"Rating: {rating}/10\n"
            f"Feedback: {verdict.feedback}\n"
            f"Tone: {verdict.tone}"
        )
    return "\n\n".join(blocks)


def sanitize_result(result: ConsensusResult, expert_count: int, trace_id: Optional[str] = None) -> ConsensusResult:
    """
    Bring provider output in line with the declared scales.

    The agreement level is only ever raised to match the confidence score,
    never lowered.
    """
    result.confidence_score = _clamp(result.confidence_score, 0.0, 1.0)

    if result.confidence_score >= HIGH_AGREEMENT_THRESHOLD and result.agreement_level != "high":
        result.agreement_level = "high"
    elif result.confidence_score >= MEDIUM_AGREEMENT_THRESHOLD and result.agreement_level == "low":
        result.agreement_level = "medium"

    if len(result.expert_breakdown) != expert_count:
        logger.warning(
            "[%s] expert breakdown count (%d) doesn't match expert count (%d)",
            trace_id, len(result.expert_breakdown), expert_count,
        )

    for rec in result.recommendations:
        rec.confidence = _clamp(rec.confidence, 0.0, 1.0)
        rec.expert_support = int(_clamp(rec.expert_support, 0, expert_count))

    for expert in result.expert_breakdown:
        expert.confidence = _clamp(expert.confidence, 0.0, 1.0)

    return result


@dataclass
class SynthesisStats:
    """Statistics for synthesis calls"""
    calls: int = 0
    failures: int = 0
    total_input_tokens: int = 0
    total_output_tokens: int = 0


class ConsensusSynthesizer:
    """
    Consensus synthesis over a TextSynthesisProvider.

    Every failure (provider error, timeout, unparseable output) surfaces as
    SynthesisFailed; nothing is retried here.
    """

    def __init__(self, provider: TextSynthesisProvider, timeout: float = 30.0):
        self.provider = provider
        self.timeout = timeout
        self.stats = SynthesisStats()
        self.last_tokens = 0

    @property
    def model(self) -> str:
        return getattr(self.provider, "model", "unknown")

    def build_prompts(self, verdicts: Sequence[Any], context: str, category: str):
        system_prompt = CONSENSUS_SYSTEM_PROMPT.format(category=category)
        user_prompt = CONSENSUS_USER_TEMPLATE.format(
            context=context,
            category=category,
            experts=format_expert_section(verdicts),
            expert_count=len(verdicts),
        )
        return system_prompt, user_prompt

    async def synthesize(
        self,
        verdicts: Sequence[Any],
        context: str,
        category: str,
        trace_id: Optional[str] = None,
    ) -> ConsensusResult:
        """
        Synthesize verdicts into a ConsensusResult.

        Args:
            verdicts: objects with ``rating``, ``feedback`` and ``tone``
            context: the requester's context text
            category: request category

        Raises:
            InsufficientVerdicts: fewer than 2 verdicts
            SynthesisTimeout: provider did not answer within ``timeout``
            SynthesisFailed: provider error or unusable output
        """
        trace_id = ensure_trace_id(trace_id)
        if len(verdicts) < MIN_VERDICTS:
            raise InsufficientVerdicts(trace_id=trace_id)

        system_prompt, user_prompt = self.build_prompts(verdicts, context, category)
        self.stats.calls += 1
        logger.info("[%s] consensus synthesis over %d verdicts model=%s", trace_id, len(verdicts), self.model)

        try:
            result = await asyncio.wait_for(
                self.provider.complete(system_prompt, user_prompt),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            self.stats.failures += 1
            logger.error("[%s] consensus synthesis timed out after %ss", trace_id, self.timeout)
            raise SynthesisTimeout(trace_id=trace_id) from e
        except Exception as e:
            self.stats.failures += 1
            logger.error("[%s] consensus provider raised: %s", trace_id, e)
            raise SynthesisFailed(trace_id=trace_id) from e

        self.stats.total_input_tokens += result.input_tokens
        self.stats.total_output_tokens += result.output_tokens
        self.last_tokens = result.input_tokens + result.output_tokens

        if not result.success or not result.content:
            self.stats.failures += 1
            logger.error("[%s] consensus provider failed: %s", trace_id, result.error or "empty response")
            raise SynthesisFailed(trace_id=trace_id)

        try:
            data = json.loads(result.content)
            if not isinstance(data, dict):
                raise ValueError("response is not a JSON object")
            parsed = ConsensusResult.model_validate(data)
        except (json.JSONDecodeError, ValidationError, ValueError) as e:
            self.stats.failures += 1
            logger.error("[%s] consensus JSON parse error: %s", trace_id, e)
            raise SynthesisFailed(trace_id=trace_id) from e

        return sanitize_result(parsed, len(verdicts), trace_id=trace_id)

    def get_stats(self) -> Dict[str, Any]:
        """Get synthesis statistics"""
        return {
            "calls": self.stats.calls,
            "failures": self.stats.failures,
            "total_input_tokens": self.stats.total_input_tokens,
            "total_output_tokens": self.stats.total_output_tokens,
        }


# Singleton
_synthesizer: Optional[ConsensusSynthesizer] = None


def get_synthesizer() -> ConsensusSynthesizer:
    """Get singleton synthesizer backed by OpenRouter"""
    global _synthesizer
    if _synthesizer is None:
        settings = get_settings()
        client = OpenRouterBaseClient(
            api_key=settings.openrouter_api_key,
            model=settings.consensus_model,
            base_url=settings.openrouter_base_url,
            timeout=settings.synthesis_timeout,
            temperature=settings.synthesis_temperature,
            max_tokens=settings.synthesis_max_tokens,
        )
        _synthesizer = ConsensusSynthesizer(client, timeout=settings.synthesis_timeout)
        if not settings.openrouter_api_key:
            logger.warning("Consensus synthesis disabled: OPENROUTER_API_KEY not set")
    return _synthesizer
