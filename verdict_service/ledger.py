"""
Credit ledger helpers.

Each user has a single non-negative integer balance on their profile. Every
mutation is one conditional UPDATE plus an audit row, committed together, so
concurrent deductions for the same user can never overdraw the balance.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import get_settings
from .db.models import CreditTransaction, Profile, TransactionType
from .errors import DatabaseError, InsufficientCredits, ProfileNotFound
from .trace import ensure_trace_id

logger = logging.getLogger(__name__)


@dataclass
class DeductResult:
    previous_balance: int
    new_balance: int


def ensure_profile(db: Session, user_id: str, trace_id: Optional[str] = None) -> Profile:
    """
    Fetch the user's profile.

    A missing profile is an error, not a signal to create one: profiles are
    provisioned at signup, so a missing row points at an upstream bug.
    """
    trace_id = ensure_trace_id(trace_id)
    try:
        profile = db.get(Profile, user_id)
    except SQLAlchemyError as e:
        logger.error("[%s] profile lookup failed for user=%s: %s", trace_id, user_id, e)
        raise DatabaseError(f"Failed to fetch profile: {e}", trace_id=trace_id) from e

    if profile is None:
        logger.warning("[%s] profile not found for user=%s", trace_id, user_id)
        raise ProfileNotFound(trace_id=trace_id)
    return profile


def create_profile(
    db: Session,
    user_id: str,
    email: Optional[str],
    display_name: Optional[str] = None,
    credits: Optional[int] = None,
    is_judge: bool = False,
    trace_id: Optional[str] = None,
) -> Profile:
    """Provision a profile with starter credits (signup path)."""
    trace_id = ensure_trace_id(trace_id)
    if credits is None:
        credits = get_settings().starter_credits

    profile = Profile(
        id=user_id,
        email=email,
        display_name=display_name or (email.split("@")[0] if email else "User"),
        credits=credits,
        is_judge=is_judge,
    )
    try:
        db.add(profile)
        db.flush()
        if credits:
            db.add(CreditTransaction(
                user_id=user_id,
                amount=credits,
                transaction_type=TransactionType.GRANT.value,
                description="starter credits",
                balance_after=credits,
            ))
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("[%s] failed to create profile for user=%s: %s", trace_id, user_id, e)
        raise DatabaseError(f"Failed to create profile: {e}", trace_id=trace_id) from e

    logger.info("[%s] profile created user=%s credits=%d", trace_id, user_id, credits)
    return profile


def _read_balance(db: Session, user_id: str) -> Optional[int]:
    return db.query(Profile.credits).filter(Profile.id == user_id).scalar()


def deduct(
    db: Session,
    user_id: str,
    amount: int,
    reason: str = "request charge",
    request_id: Optional[str] = None,
    trace_id: Optional[str] = None,
) -> DeductResult:
    """
    Atomically take ``amount`` credits from the user.

    The balance guard lives in the UPDATE's WHERE clause; if no row matches,
    nothing changed and we only re-read to tell "missing" from "too poor".
    """
    trace_id = ensure_trace_id(trace_id)
    if amount <= 0:
        raise ValueError("amount must be positive")

    try:
        result = db.execute(
            update(Profile)
            .where(Profile.id == user_id, Profile.credits >= amount)
            .values(credits=Profile.credits - amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            available = _read_balance(db, user_id)
            db.rollback()
            if available is None:
                logger.warning("[%s] deduct on missing profile user=%s", trace_id, user_id)
                raise ProfileNotFound(trace_id=trace_id)
            logger.info(
                "[%s] insufficient credits user=%s required=%d available=%d",
                trace_id, user_id, amount, available,
            )
            raise InsufficientCredits(required=amount, available=available, trace_id=trace_id)

        new_balance = _read_balance(db, user_id)
        db.add(CreditTransaction(
            user_id=user_id,
            amount=-amount,
            transaction_type=TransactionType.DEDUCT.value,
            description=reason,
            balance_after=new_balance,
            request_id=request_id,
        ))
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("[%s] credit deduction failed user=%s: %s", trace_id, user_id, e)
        raise DatabaseError(f"Failed to deduct credits: {e}", trace_id=trace_id) from e

    logger.info(
        "[%s] deducted %d credits user=%s balance=%d",
        trace_id, amount, user_id, new_balance,
    )
    return DeductResult(previous_balance=new_balance + amount, new_balance=new_balance)


def add(
    db: Session,
    user_id: str,
    amount: int,
    reason: str,
    request_id: Optional[str] = None,
    transaction_type: TransactionType = TransactionType.REFUND,
    trace_id: Optional[str] = None,
) -> int:
    """Atomically give ``amount`` credits to the user; returns the new balance."""
    trace_id = ensure_trace_id(trace_id)
    if amount <= 0:
        raise ValueError("amount must be positive")

    try:
        result = db.execute(
            update(Profile)
            .where(Profile.id == user_id)
            .values(credits=Profile.credits + amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            db.rollback()
            raise ProfileNotFound(trace_id=trace_id)

        new_balance = _read_balance(db, user_id)
        db.add(CreditTransaction(
            user_id=user_id,
            amount=amount,
            transaction_type=transaction_type.value,
            description=reason,
            balance_after=new_balance,
            request_id=request_id,
        ))
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("[%s] credit add failed user=%s: %s", trace_id, user_id, e)
        raise DatabaseError(f"Failed to add credits: {e}", trace_id=trace_id) from e

    logger.info(
        "[%s] added %d credits user=%s reason=%r balance=%d",
        trace_id, amount, user_id, reason, new_balance,
    )
    return new_balance


def get_balance(db: Session, user_id: str) -> int:
    balance = _read_balance(db, user_id)
    if balance is None:
        raise ProfileNotFound()
    return balance


def list_transactions(db: Session, user_id: str, limit: int = 20, offset: int = 0) -> List[CreditTransaction]:
    return (
        db.query(CreditTransaction)
        .filter(CreditTransaction.user_id == user_id)
        .order_by(CreditTransaction.created_at.desc())
        .offset(offset)
        .limit(min(limit, 50))
        .all()
    )
