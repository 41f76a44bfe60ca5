"""
Pydantic Schemas for Verdict Service
====================================

Inputs for the domain operations, HTTP request bodies, HTTP responses and
the structured consensus result returned by the synthesizer.
"""

import math
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .config import get_settings
from .db.models import Category, MediaType, RequestedTone, VerdictTone
from .validations import validate_context, validate_feedback, validate_rating


# =============================================================================
# Domain inputs
# =============================================================================

def _default_target() -> int:
    return get_settings().default_target_verdict_count


def _default_credits() -> int:
    return get_settings().default_credits_to_charge


def _default_tier() -> str:
    return get_settings().default_tier


class CreateRequestInput(BaseModel):
    """
    Everything needed to create a verdict request.

    Defaults for target count, price and tier are resolved here, once, from
    settings; the store never re-derives them.
    """
    user_id: str
    category: Category
    subcategory: Optional[str] = None
    media_type: MediaType
    media_url: Optional[str] = None
    text_content: Optional[str] = None
    context: str
    requested_tone: Optional[RequestedTone] = None
    target_verdict_count: int = Field(default_factory=_default_target, gt=0)
    credits_to_charge: int = Field(default_factory=_default_credits, ge=0)
    request_tier: str = Field(default_factory=_default_tier)

    @property
    def uses_media_url(self) -> bool:
        return self.media_type in (MediaType.PHOTO, MediaType.AUDIO)


# =============================================================================
# HTTP request bodies
# =============================================================================

class CreateProfileBody(BaseModel):
    email: Optional[str] = None
    display_name: Optional[str] = Field(None, max_length=255)
    is_judge: bool = False


class CreateRequestBody(BaseModel):
    """POST /api/requests"""
    category: Category
    subcategory: Optional[str] = Field(None, max_length=255)
    media_type: MediaType
    media_url: Optional[str] = None
    text_content: Optional[str] = None
    context: str
    requested_tone: Optional[RequestedTone] = None
    tier: Optional[str] = None

    @field_validator("context")
    @classmethod
    def _check_context(cls, v: str) -> str:
        error = validate_context(v)
        if error:
            raise ValueError(error)
        return v

    @model_validator(mode="after")
    def _check_media(self):
        if self.media_type in (MediaType.PHOTO, MediaType.AUDIO) and not self.media_url:
            raise ValueError(f"Media URL is required for {self.media_type.value} requests")
        if self.media_type == MediaType.TEXT and not self.text_content:
            raise ValueError("Text content is required for text requests")
        return self


class JudgeRespondBody(BaseModel):
    """POST /api/judge/respond"""
    request_id: str
    rating: Optional[int] = None
    feedback: str
    tone: VerdictTone
    voice_url: Optional[str] = None

    @field_validator("rating", mode="before")
    @classmethod
    def _check_rating(cls, v):
        error = validate_rating(v)
        if error:
            raise ValueError(error)
        return v

    @field_validator("feedback")
    @classmethod
    def _check_feedback(cls, v: str) -> str:
        error = validate_feedback(v)
        if error:
            raise ValueError(error)
        return v


# =============================================================================
# HTTP responses
# =============================================================================

class ProfileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    credits: int
    is_judge: bool


class CreditTransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    amount: int
    transaction_type: str
    description: str
    balance_after: int
    request_id: Optional[str] = None
    created_at: datetime


class BalanceResponse(BaseModel):
    credits: int
    transactions: List[CreditTransactionOut] = Field(default_factory=list)


class VerdictRequestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    category: str
    subcategory: Optional[str] = None
    media_type: str
    media_url: Optional[str] = None
    text_content: Optional[str] = None
    context: str
    requested_tone: Optional[str] = None
    request_tier: str
    target_verdict_count: int
    received_verdict_count: int
    status: str
    created_at: datetime
    closed_at: Optional[datetime] = None


class VerdictResponseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    request_id: str
    judge_id: str
    rating: Optional[int] = None
    feedback: str
    tone: str
    voice_url: Optional[str] = None
    created_at: datetime


class RequestListResponse(BaseModel):
    requests: List[VerdictRequestOut]


class RequestDetailResponse(BaseModel):
    request: VerdictRequestOut
    verdicts: List[VerdictResponseOut]


class RecordVerdictResponse(BaseModel):
    verdict: VerdictResponseOut
    request: VerdictRequestOut


class HealthResponse(BaseModel):
    status: str
    version: str
    llm_enabled: bool
    timestamp: datetime


class ErrorResponse(BaseModel):
    error: str
    code: str
    trace_id: Optional[str] = None


# =============================================================================
# Consensus
# =============================================================================
# Provider output is normalised before validation: case and unknown enum
# values, null or fractional numbers and null lists are repaired here and
# clamped later by the synthesizer. Only a missing synthesis or
# confidence_score rejects the result.

AgreementLevel = Literal["high", "medium", "low"]
Stance = Literal["positive", "neutral", "negative"]

AGREEMENT_LEVELS = ("high", "medium", "low")
STANCES = ("positive", "neutral", "negative")


def _lenient_score(value) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        score = float(value)
    except (TypeError, ValueError):
        return 0.0
    return score if math.isfinite(score) else 0.0


def _lenient_choice(value, allowed, fallback: str) -> str:
    if isinstance(value, str) and value.strip().lower() in allowed:
        return value.strip().lower()
    return fallback


def _lenient_str_list(value) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        return [str(value)]
    return [str(item) for item in value if item is not None]


class ConflictArea(BaseModel):
    topic: str = ""
    positions: List[str] = Field(default_factory=list)
    resolution: str = ""

    @field_validator("topic", "resolution", mode="before")
    @classmethod
    def _coerce_text(cls, v):
        return "" if v is None else v

    @field_validator("positions", mode="before")
    @classmethod
    def _coerce_positions(cls, v):
        return _lenient_str_list(v)


class Recommendation(BaseModel):
    action: str = ""
    confidence: float = 0.0
    reasoning: str = ""
    expert_support: int = 0

    @field_validator("action", "reasoning", mode="before")
    @classmethod
    def _coerce_text(cls, v):
        return "" if v is None else v

    @field_validator("confidence", mode="before")
    @classmethod
    def _coerce_confidence(cls, v):
        return _lenient_score(v)

    @field_validator("expert_support", mode="before")
    @classmethod
    def _coerce_support(cls, v):
        return int(round(_lenient_score(v)))


class ExpertSummary(BaseModel):
    expert_title: str = "Verified Expert"
    key_points: List[str] = Field(default_factory=list)
    stance: Stance = "neutral"
    confidence: float = 0.0

    @field_validator("stance", mode="before")
    @classmethod
    def _coerce_stance(cls, v):
        return _lenient_choice(v, STANCES, "neutral")

    @field_validator("confidence", mode="before")
    @classmethod
    def _coerce_confidence(cls, v):
        return _lenient_score(v)

    @field_validator("key_points", mode="before")
    @classmethod
    def _coerce_points(cls, v):
        return _lenient_str_list(v)


class ConsensusResult(BaseModel):
    """Synthesis of several judge verdicts"""
    synthesis: str
    confidence_score: float
    agreement_level: AgreementLevel = "low"
    key_themes: List[str] = Field(default_factory=list)
    conflicts: List[ConflictArea] = Field(default_factory=list)
    recommendations: List[Recommendation] = Field(default_factory=list)
    expert_breakdown: List[ExpertSummary] = Field(default_factory=list)

    @field_validator("agreement_level", mode="before")
    @classmethod
    def _coerce_agreement(cls, v):
        # unknown levels start low; the synthesizer raises them to match confidence
        return _lenient_choice(v, AGREEMENT_LEVELS, "low")

    @field_validator("key_themes", mode="before")
    @classmethod
    def _coerce_themes(cls, v):
        return _lenient_str_list(v)

    @field_validator("conflicts", "recommendations", "expert_breakdown", mode="before")
    @classmethod
    def _coerce_sections(cls, v):
        return [] if v is None else v


class ConsensusOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    request_id: str
    status: str
    expert_count: int
    synthesis: Optional[str] = None
    confidence_score: Optional[float] = None
    agreement_level: Optional[str] = None
    key_themes: List[str] = Field(default_factory=list)
    conflicts: List[ConflictArea] = Field(default_factory=list)
    recommendations: List[Recommendation] = Field(default_factory=list)
    expert_breakdown: List[ExpertSummary] = Field(default_factory=list)
    llm_model: Optional[str] = None
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
