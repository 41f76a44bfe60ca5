"""
LLM Module
==========

Consensus synthesis over an OpenRouter-backed text synthesis provider.

Environment Variables:
- OPENROUTER_API_KEY: Required for synthesis
- CONSENSUS_MODEL: Model used for synthesis (default: openai/gpt-4o)
- SYNTHESIS_TIMEOUT: Seconds before a synthesis call is abandoned

Usage:
    from verdict_service.llm import get_synthesizer, should_synthesize

    if should_synthesize(request.request_tier, len(verdicts)):
        result = await get_synthesizer().synthesize(verdicts, request.context, request.category)
"""

from .openrouter_base import OpenRouterBaseClient, LLMCallResult, TextSynthesisProvider
from .consensus import (
    ConsensusSynthesizer,
    SynthesisStats,
    get_synthesizer,
    sanitize_result,
    should_synthesize,
)

__all__ = [
    # Base
    "OpenRouterBaseClient",
    "LLMCallResult",
    "TextSynthesisProvider",
    # Consensus
    "ConsensusSynthesizer",
    "SynthesisStats",
    "get_synthesizer",
    "sanitize_result",
    "should_synthesize",
]
