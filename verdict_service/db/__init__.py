"""
Database Package - SQLAlchemy
=============================

Storage layer for profiles, credits, verdict requests and consensus records.
"""

from .models import (
    Base,
    Profile, CreditTransaction,
    VerdictRequest, VerdictResponse,
    ConsensusAnalysis,
    Category, MediaType, RequestedTone, VerdictTone, RequestStatus,
    TransactionType, ConsensusStatus,
)
from .session import SessionLocal, get_db, init_db, get_engine, reset_engine

__all__ = [
    # Base
    "Base",
    # Credits
    "Profile", "CreditTransaction",
    # Requests
    "VerdictRequest", "VerdictResponse",
    # Consensus
    "ConsensusAnalysis",
    # Enums
    "Category", "MediaType", "RequestedTone", "VerdictTone", "RequestStatus",
    "TransactionType", "ConsensusStatus",
    # Session
    "SessionLocal", "get_db", "init_db", "get_engine", "reset_engine",
]
