"""
Consensus analysis records.

One ``ConsensusAnalysis`` row per request tracks a synthesis run through
pending -> completed | failed. A completed analysis is returned as-is on
later calls; a failed one may be regenerated.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .config import get_settings
from .db.models import ConsensusAnalysis, ConsensusStatus, VerdictRequest
from .errors import (
    ConsensusInProgress,
    ConsensusNotAvailable,
    ConsensusNotFound,
    DatabaseError,
    Forbidden,
    InsufficientVerdicts,
)
from .llm.consensus import ConsensusSynthesizer, should_synthesize
from .requests_store import get_request, list_verdicts
from .schemas import ConsensusResult
from .trace import ensure_trace_id

logger = logging.getLogger(__name__)


def _load_owned_request(db: Session, request_id: str, user_id: Optional[str], trace_id: str) -> VerdictRequest:
    request = get_request(db, request_id, trace_id=trace_id)
    if user_id is not None and request.user_id != user_id:
        raise Forbidden(trace_id=trace_id)
    if request.request_tier != get_settings().consensus_tier:
        raise ConsensusNotAvailable(trace_id=trace_id)
    return request


def _find_record(db: Session, request_id: str) -> Optional[ConsensusAnalysis]:
    return (
        db.query(ConsensusAnalysis)
        .filter(ConsensusAnalysis.request_id == request_id)
        .first()
    )


def _store_result(record: ConsensusAnalysis, result: ConsensusResult, synthesizer: ConsensusSynthesizer) -> None:
    record.synthesis = result.synthesis
    record.confidence_score = result.confidence_score
    record.agreement_level = result.agreement_level
    record.key_themes = list(result.key_themes)
    record.conflicts = [c.model_dump() for c in result.conflicts]
    record.recommendations = [r.model_dump() for r in result.recommendations]
    record.expert_breakdown = [x.model_dump() for x in result.expert_breakdown]
    record.llm_model = synthesizer.model
    record.analysis_tokens = synthesizer.last_tokens or None
    record.status = ConsensusStatus.COMPLETED.value
    record.completed_at = datetime.utcnow()


def _mark_failed(db: Session, record: ConsensusAnalysis, error: BaseException, trace_id: str) -> None:
    """
    Move a pending record to failed in a fresh transaction.

    Called after rollback, so the record is reloaded from its committed
    pending state. A failure here is logged and the caller's error wins.
    """
    message = getattr(error, "message", None) or str(error) or type(error).__name__
    try:
        record.status = ConsensusStatus.FAILED.value
        record.error_message = message
        record.completed_at = datetime.utcnow()
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("[%s] could not mark consensus record=%s failed: %s", trace_id, record.id, e)
        return
    logger.warning("[%s] consensus record=%s failed: %s", trace_id, record.id, message)


async def generate_consensus(
    db: Session,
    request_id: str,
    synthesizer: ConsensusSynthesizer,
    user_id: Optional[str] = None,
    trace_id: Optional[str] = None,
) -> ConsensusAnalysis:
    """
    Run (or return the finished) consensus analysis for a request.

    Raises:
        RequestNotFound, Forbidden, ConsensusNotAvailable: request not eligible
        InsufficientVerdicts: fewer verdicts than the gate requires
        ConsensusInProgress: another run is pending
        SynthesisFailed / SynthesisTimeout: provider failed
        DatabaseError: the result could not be saved

    Any error after the pending record is committed, cancellation included,
    leaves the record failed so a later call can retry.
    """
    trace_id = ensure_trace_id(trace_id)
    request = _load_owned_request(db, request_id, user_id, trace_id)

    verdicts = list_verdicts(db, request_id)
    if not should_synthesize(request.request_tier, len(verdicts)):
        raise InsufficientVerdicts(trace_id=trace_id)

    record = _find_record(db, request_id)
    if record is not None and record.status == ConsensusStatus.COMPLETED.value:
        return record
    if record is not None and record.status == ConsensusStatus.PENDING.value:
        raise ConsensusInProgress(trace_id=trace_id)

    if record is None:
        record = ConsensusAnalysis(request_id=request_id, expert_count=len(verdicts))
        db.add(record)
    record.expert_count = len(verdicts)
    record.status = ConsensusStatus.PENDING.value
    record.error_message = None
    record.started_at = datetime.utcnow()
    record.completed_at = None

    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ConsensusInProgress(trace_id=trace_id) from e
    except SQLAlchemyError as e:
        db.rollback()
        raise DatabaseError(f"Failed to initialize consensus analysis: {e}", trace_id=trace_id) from e

    try:
        result = await synthesizer.synthesize(
            verdicts, request.context, request.category, trace_id=trace_id
        )
        _store_result(record, result, synthesizer)
        db.commit()
    except BaseException as e:
        db.rollback()
        _mark_failed(db, record, e, trace_id)
        if isinstance(e, SQLAlchemyError):
            raise DatabaseError(f"Failed to save consensus analysis: {e}", trace_id=trace_id) from e
        raise

    logger.info(
        "[%s] consensus completed request=%s record=%s confidence=%.2f agreement=%s",
        trace_id, request_id, record.id, record.confidence_score, record.agreement_level,
    )
    return record


def get_consensus(
    db: Session,
    request_id: str,
    user_id: Optional[str] = None,
    trace_id: Optional[str] = None,
) -> ConsensusAnalysis:
    trace_id = ensure_trace_id(trace_id)
    _load_owned_request(db, request_id, user_id, trace_id)
    record = _find_record(db, request_id)
    if record is None:
        raise ConsensusNotFound(trace_id=trace_id)
    return record
