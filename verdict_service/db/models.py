"""
SQLAlchemy Models for Database
==============================

Schema for the verdict lifecycle:
- Profiles with a credit balance and judge flags
- Credit transactions (audit trail for every balance change)
- Verdict requests and judge responses
- Consensus analysis records

Supports both PostgreSQL and SQLite via SQLAlchemy.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Column, String, Text, Integer, Float, Boolean, DateTime, ForeignKey,
    UniqueConstraint, Index, JSON, CheckConstraint
)
from sqlalchemy.orm import relationship, declarative_base

# Use JSON for cross-database compatibility (works with both PostgreSQL and SQLite)
JSONB = JSON

Base = declarative_base()


def generate_uuid():
    return str(uuid.uuid4())


# =============================================================================
# ENUMS
# =============================================================================
# Stored as plain strings so the atomic UPDATE statements can compare and
# assign them without type coercion.

class Category(str, enum.Enum):
    """What the user wants judged"""
    APPEARANCE = "appearance"
    PROFILE = "profile"
    WRITING = "writing"
    DECISION = "decision"


class MediaType(str, enum.Enum):
    PHOTO = "photo"
    TEXT = "text"
    AUDIO = "audio"


class RequestedTone(str, enum.Enum):
    """Tone the requester asks judges to use"""
    ENCOURAGING = "encouraging"
    HONEST = "honest"
    BRUTALLY_HONEST = "brutally_honest"


class VerdictTone(str, enum.Enum):
    """Tone a judge declares for their verdict"""
    HONEST = "honest"
    CONSTRUCTIVE = "constructive"
    ENCOURAGING = "encouraging"


class RequestStatus(str, enum.Enum):
    """Verdict request lifecycle status"""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    CLOSED = "closed"
    CANCELLED = "cancelled"


ACCEPTING_STATUSES = (RequestStatus.OPEN.value, RequestStatus.IN_PROGRESS.value)


class TransactionType(str, enum.Enum):
    DEDUCT = "deduct"
    REFUND = "refund"
    GRANT = "grant"


class ConsensusStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


# =============================================================================
# PROFILES & CREDITS
# =============================================================================

class Profile(Base):
    """One per user; holds the credit balance"""
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String(255), nullable=True)
    display_name = Column(String(255), nullable=True)
    credits = Column(Integer, default=0, nullable=False)
    is_judge = Column(Boolean, default=False, nullable=False)
    judge_qualification_date = Column(DateTime, nullable=True)
    is_admin = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    transactions = relationship("CreditTransaction", back_populates="profile", cascade="all, delete-orphan")
    requests = relationship("VerdictRequest", back_populates="owner")

    __table_args__ = (
        CheckConstraint("credits >= 0", name="ck_profile_credits_non_negative"),
    )


class CreditTransaction(Base):
    """Audit row for a single balance change"""
    __tablename__ = "credit_transactions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    amount = Column(Integer, nullable=False)  # negative for deductions
    transaction_type = Column(String(20), nullable=False)
    description = Column(String(500), nullable=False, default="")
    balance_after = Column(Integer, nullable=False)
    request_id = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    profile = relationship("Profile", back_populates="transactions")

    __table_args__ = (
        Index("ix_credit_tx_user_created", "user_id", "created_at"),
    )


# =============================================================================
# REQUESTS & VERDICTS
# =============================================================================

class VerdictRequest(Base):
    """A unit of work a user wants judged"""
    __tablename__ = "verdict_requests"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    category = Column(String(20), nullable=False)
    subcategory = Column(String(255), nullable=True)
    media_type = Column(String(20), nullable=False)
    media_url = Column(Text, nullable=True)
    text_content = Column(Text, nullable=True)
    context = Column(Text, nullable=False)
    requested_tone = Column(String(20), nullable=True)
    request_tier = Column(String(20), nullable=False, default="community")

    target_verdict_count = Column(Integer, nullable=False, default=3)
    received_verdict_count = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default=RequestStatus.OPEN.value)

    created_at = Column(DateTime, default=datetime.utcnow)
    closed_at = Column(DateTime, nullable=True)

    # Relationships
    owner = relationship("Profile", back_populates="requests")
    responses = relationship(
        "VerdictResponse",
        back_populates="request",
        cascade="all, delete-orphan",
        order_by="VerdictResponse.created_at",
    )
    consensus = relationship("ConsensusAnalysis", back_populates="request", uselist=False)

    __table_args__ = (
        CheckConstraint("target_verdict_count > 0", name="ck_request_target_positive"),
        CheckConstraint("received_verdict_count >= 0", name="ck_request_received_non_negative"),
        CheckConstraint(
            "received_verdict_count <= target_verdict_count",
            name="ck_request_received_within_target",
        ),
        Index("ix_request_user_created", "user_id", "created_at"),
        Index("ix_request_status", "status"),
    )


class VerdictResponse(Base):
    """One judge's verdict on one request"""
    __tablename__ = "verdict_responses"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    request_id = Column(String(36), ForeignKey("verdict_requests.id", ondelete="CASCADE"), nullable=False)
    judge_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    rating = Column(Integer, nullable=True)
    feedback = Column(Text, nullable=False)
    tone = Column(String(20), nullable=False)
    voice_url = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    request = relationship("VerdictRequest", back_populates="responses")

    __table_args__ = (
        UniqueConstraint("request_id", "judge_id", name="uq_verdict_response_request_judge"),
        Index("ix_response_judge", "judge_id"),
    )


# =============================================================================
# CONSENSUS
# =============================================================================

class ConsensusAnalysis(Base):
    """Persisted result of a consensus synthesis run"""
    __tablename__ = "consensus_analysis"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    request_id = Column(String(36), ForeignKey("verdict_requests.id", ondelete="CASCADE"), nullable=False)
    expert_count = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=ConsensusStatus.PENDING.value)

    synthesis = Column(Text, nullable=True)
    confidence_score = Column(Float, nullable=True)
    agreement_level = Column(String(10), nullable=True)
    key_themes = Column(JSONB, default=list)
    conflicts = Column(JSONB, default=list)
    recommendations = Column(JSONB, default=list)
    expert_breakdown = Column(JSONB, default=list)

    llm_model = Column(String(100), nullable=True)
    analysis_tokens = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)

    started_at = Column(DateTime, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)

    request = relationship("VerdictRequest", back_populates="consensus")

    __table_args__ = (
        UniqueConstraint("request_id", name="uq_consensus_request"),
    )
