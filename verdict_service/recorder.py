"""
Judge verdict recorder.

Records one verdict per (request, judge) and advances the request counter.
Uniqueness is left to the ``uq_verdict_response_request_judge`` constraint and
the counter moves in a single conditional UPDATE, so two judges (or one
judge double-clicking) racing on the same request cannot double count or
leave a full request open. The verdict insert and the counter update commit
together: either both land or neither does.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import case, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .db.models import (
    ACCEPTING_STATUSES,
    RequestStatus,
    VerdictRequest,
    VerdictResponse,
    VerdictTone,
)
from .errors import (
    AlreadyResponded,
    CannotJudgeOwnRequest,
    DatabaseError,
    RequestClosed,
    RequestNotFound,
)
from .trace import ensure_trace_id

logger = logging.getLogger(__name__)


@dataclass
class RecordedVerdict:
    verdict: VerdictResponse
    updated_request: VerdictRequest


def _is_unique_violation(error: IntegrityError) -> bool:
    message = str(error.orig).lower()
    return (
        "uq_verdict_response_request_judge" in message
        or "unique" in message
        or "duplicate" in message
    )


def _increment_and_maybe_close(db: Session, request_id: str) -> int:
    """
    received += 1, closing the request when it reaches target.

    Guarded on status and headroom so a request that a concurrent judge has
    just filled is left untouched (rowcount 0).
    """
    new_count = VerdictRequest.received_verdict_count + 1
    reaches_target = new_count >= VerdictRequest.target_verdict_count
    result = db.execute(
        update(VerdictRequest)
        .where(
            VerdictRequest.id == request_id,
            VerdictRequest.status.in_(ACCEPTING_STATUSES),
            VerdictRequest.received_verdict_count < VerdictRequest.target_verdict_count,
        )
        .values(
            received_verdict_count=new_count,
            status=case((reaches_target, RequestStatus.CLOSED.value), else_=VerdictRequest.status),
            closed_at=case((reaches_target, datetime.utcnow()), else_=VerdictRequest.closed_at),
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def record_verdict(
    db: Session,
    request_id: str,
    judge_id: str,
    rating: Optional[int],
    feedback: str,
    tone: VerdictTone,
    voice_url: Optional[str] = None,
    trace_id: Optional[str] = None,
) -> RecordedVerdict:
    """
    Record a judge's verdict on a request.

    Raises:
        RequestNotFound: no such request
        CannotJudgeOwnRequest: judge is the request owner (any status)
        RequestClosed: request is closed/cancelled, or filled concurrently
        AlreadyResponded: judge already has a verdict on this request
        DatabaseError: storage failure (nothing persisted)
    """
    trace_id = ensure_trace_id(trace_id)

    try:
        request = db.get(VerdictRequest, request_id)
    except SQLAlchemyError as e:
        raise DatabaseError(f"Failed to fetch request: {e}", trace_id=trace_id) from e

    if request is None:
        raise RequestNotFound(trace_id=trace_id)

    if request.user_id == judge_id:
        logger.info("[%s] judge=%s tried to judge own request=%s", trace_id, judge_id, request_id)
        raise CannotJudgeOwnRequest(trace_id=trace_id)

    if request.status not in ACCEPTING_STATUSES:
        raise RequestClosed(trace_id=trace_id)

    verdict = VerdictResponse(
        request_id=request_id,
        judge_id=judge_id,
        rating=rating,
        feedback=feedback,
        tone=VerdictTone(tone).value,
        voice_url=voice_url,
    )

    try:
        db.add(verdict)
        db.flush()
    except IntegrityError as e:
        db.rollback()
        if _is_unique_violation(e):
            logger.info("[%s] judge=%s already responded to request=%s", trace_id, judge_id, request_id)
            raise AlreadyResponded(trace_id=trace_id) from e
        raise DatabaseError(f"Failed to create verdict: {e}", trace_id=trace_id) from e
    except SQLAlchemyError as e:
        db.rollback()
        raise DatabaseError(f"Failed to create verdict: {e}", trace_id=trace_id) from e

    try:
        updated = _increment_and_maybe_close(db, request_id)
        if updated == 0:
            db.rollback()
            logger.info("[%s] request=%s filled before verdict from judge=%s", trace_id, request_id, judge_id)
            raise RequestClosed(trace_id=trace_id)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("[%s] counter update failed for request=%s: %s", trace_id, request_id, e)
        raise DatabaseError(f"Failed to update request after verdict: {e}", trace_id=trace_id) from e

    db.refresh(request)
    logger.info(
        "[%s] verdict recorded request=%s judge=%s count=%d/%d status=%s",
        trace_id, request_id, judge_id,
        request.received_verdict_count, request.target_verdict_count, request.status,
    )
    return RecordedVerdict(verdict=verdict, updated_request=request)
