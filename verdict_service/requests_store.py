"""
Verdict request store.

Creating a request is a two-step saga rather than one DB transaction:
credits are deducted (and committed) first, then the request row is
inserted. If the insert fails the credits are refunded and the original
error is raised. ``CreationSaga`` records which step was reached so the
logs show exactly what happened to the user's balance.
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import ledger
from .db.models import RequestStatus, VerdictRequest, VerdictResponse
from .errors import DatabaseError, RequestNotFound
from .schemas import CreateRequestInput
from .trace import ensure_trace_id

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 50


class SagaState(str, enum.Enum):
    STARTED = "started"
    CREDITS_RESERVED = "credits_reserved"
    REQUEST_PERSISTED = "request_persisted"
    REFUNDED = "refunded"


@dataclass
class CreationSaga:
    user_id: str
    credits: int
    trace_id: str
    state: SagaState = SagaState.STARTED
    history: List[SagaState] = field(default_factory=list)

    def advance(self, state: SagaState) -> None:
        self.history.append(self.state)
        self.state = state
        logger.info("[%s] create_request user=%s state=%s", self.trace_id, self.user_id, state.value)

    @property
    def path(self) -> str:
        return " -> ".join(s.value for s in self.history + [self.state])


def _build_request_row(data: CreateRequestInput) -> VerdictRequest:
    """Only the media field matching ``media_type`` is kept."""
    return VerdictRequest(
        user_id=data.user_id,
        category=data.category.value,
        subcategory=data.subcategory or None,
        media_type=data.media_type.value,
        media_url=(data.media_url or None) if data.uses_media_url else None,
        text_content=None if data.uses_media_url else (data.text_content or None),
        context=data.context,
        requested_tone=data.requested_tone.value if data.requested_tone else None,
        request_tier=data.request_tier,
        target_verdict_count=data.target_verdict_count,
        received_verdict_count=0,
        status=RequestStatus.OPEN.value,
    )


def create_request(db: Session, data: CreateRequestInput, trace_id: Optional[str] = None) -> VerdictRequest:
    """
    Charge the user and create an open verdict request.

    Raises:
        ProfileNotFound / DatabaseError: profile lookup failed (nothing charged)
        InsufficientCredits: balance too low (nothing charged, no request)
        DatabaseError: insert failed (credits refunded before raising)
    """
    trace_id = ensure_trace_id(trace_id)
    saga = CreationSaga(user_id=data.user_id, credits=data.credits_to_charge, trace_id=trace_id)

    ledger.ensure_profile(db, data.user_id, trace_id=trace_id)
    if saga.credits:
        ledger.deduct(
            db,
            data.user_id,
            saga.credits,
            reason=f"{data.request_tier} request",
            trace_id=trace_id,
        )
    saga.advance(SagaState.CREDITS_RESERVED)

    try:
        request = _build_request_row(data)
        db.add(request)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error("[%s] request insert failed, refunding %d credits: %s", trace_id, saga.credits, e)
        if saga.credits:
            ledger.add(
                db,
                data.user_id,
                saga.credits,
                reason="refund: request creation failed",
                trace_id=trace_id,
            )
        saga.advance(SagaState.REFUNDED)
        logger.warning("[%s] create_request user=%s path=%s", trace_id, data.user_id, saga.path)
        if isinstance(e, SQLAlchemyError):
            raise DatabaseError(f"Failed to create request: {e}", trace_id=trace_id) from e
        raise

    saga.advance(SagaState.REQUEST_PERSISTED)
    logger.info(
        "[%s] request created id=%s tier=%s target=%d",
        trace_id, request.id, request.request_tier, request.target_verdict_count,
    )
    return request


def get_request(db: Session, request_id: str, trace_id: Optional[str] = None) -> VerdictRequest:
    try:
        request = db.get(VerdictRequest, request_id)
    except SQLAlchemyError as e:
        raise DatabaseError(f"Failed to fetch request: {e}", trace_id=trace_id) from e
    if request is None:
        raise RequestNotFound(trace_id=trace_id)
    return request


def list_requests(db: Session, user_id: str, limit: int = 20, offset: int = 0) -> List[VerdictRequest]:
    """The user's requests, newest first."""
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    offset = max(0, offset)
    return (
        db.query(VerdictRequest)
        .filter(VerdictRequest.user_id == user_id)
        .order_by(VerdictRequest.created_at.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def list_verdicts(db: Session, request_id: str) -> List[VerdictResponse]:
    """Verdicts on a request, oldest first."""
    return (
        db.query(VerdictResponse)
        .filter(VerdictResponse.request_id == request_id)
        .order_by(VerdictResponse.created_at.asc())
        .all()
    )
