"""
Verdict Service API
===================

FastAPI endpoints over the verdict lifecycle.

Endpoints:
- GET  /health                     - Health check
- POST /api/profile                - Create the caller's profile (starter credits)
- GET  /api/credits                - Balance and recent credit transactions
- POST /api/requests               - Create a verdict request (charges credits)
- GET  /api/requests               - List the caller's requests
- GET  /api/requests/{request_id}  - Request with its verdicts
- POST /api/judge/respond          - Submit a verdict as a judge
- POST /api/consensus/{request_id} - Generate consensus analysis (Pro tier)
- GET  /api/consensus/{request_id} - Fetch consensus analysis

The caller is identified by the ``X-User-Id`` header set by the auth proxy.

Run with:
    uvicorn verdict_service.api:app --host 0.0.0.0 --port 8000
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from . import ledger
from .config import get_settings
from .db.models import Profile
from .db.session import get_db, init_db
from .errors import Forbidden, NotAJudge, ProfileExists, Unauthorized, VerdictServiceError
from .llm.consensus import ConsensusSynthesizer, get_synthesizer
from .recorder import record_verdict
from .requests_store import create_request, get_request, list_requests, list_verdicts
from .consensus_store import generate_consensus, get_consensus
from .schemas import (
    BalanceResponse,
    ConsensusOut,
    CreateProfileBody,
    CreateRequestBody,
    CreateRequestInput,
    CreditTransactionOut,
    ErrorResponse,
    HealthResponse,
    JudgeRespondBody,
    ProfileOut,
    RecordVerdictResponse,
    RequestDetailResponse,
    RequestListResponse,
    VerdictRequestOut,
    VerdictResponseOut,
)
from .middleware import RequestTraceMiddleware
from .trace import ensure_trace_id

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Verdict Service",
    description="Feedback requests, judge verdicts, credits and consensus analysis",
    version=get_settings().service_version,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)
app.add_middleware(RequestTraceMiddleware)


# =============================================================================
# Dependencies
# =============================================================================

def get_trace_id(request: Request) -> str:
    return ensure_trace_id(getattr(request.state, "trace_id", None))


def get_current_user_id(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    trace_id: str = Depends(get_trace_id),
) -> str:
    if not x_user_id:
        raise Unauthorized(trace_id=trace_id)
    return x_user_id


# =============================================================================
# Error handling
# =============================================================================

@app.exception_handler(VerdictServiceError)
async def verdict_error_handler(request: Request, exc: VerdictServiceError):
    """Domain errors carry their own status and a user-safe message."""
    if exc.http_status >= 500:
        logger.error("[%s] %s on %s: %s", exc.trace_id, exc.code, request.url.path, exc.message)
    payload = ErrorResponse(error=exc.public_message, code=exc.code, trace_id=exc.trace_id)
    return JSONResponse(status_code=exc.http_status, content=payload.model_dump())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Return the first validation message as a 400, without echoing inputs."""
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        message = str(errors[0].get("msg", message)).removeprefix("Value error, ")
    trace_id = getattr(request.state, "trace_id", None)
    payload = ErrorResponse(error=message, code="INVALID_INPUT", trace_id=trace_id)
    return JSONResponse(status_code=400, content=payload.model_dump())


# =============================================================================
# Health
# =============================================================================

@app.get("/health", response_model=HealthResponse)
def health():
    settings = get_settings()
    return HealthResponse(
        status="healthy",
        version=settings.service_version,
        llm_enabled=bool(settings.openrouter_api_key),
        timestamp=datetime.utcnow(),
    )


# =============================================================================
# Profile & credits
# =============================================================================

@app.post("/api/profile", response_model=ProfileOut, status_code=201)
def create_profile_endpoint(
    body: CreateProfileBody,
    user_id: str = Depends(get_current_user_id),
    trace_id: str = Depends(get_trace_id),
    db: Session = Depends(get_db),
):
    if db.get(Profile, user_id) is not None:
        raise ProfileExists(trace_id=trace_id)
    profile = ledger.create_profile(
        db,
        user_id,
        email=body.email,
        display_name=body.display_name,
        is_judge=body.is_judge,
        trace_id=trace_id,
    )
    return ProfileOut.model_validate(profile)


@app.get("/api/credits", response_model=BalanceResponse)
def get_credits(
    limit: int = Query(20, ge=1, le=50),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    balance = ledger.get_balance(db, user_id)
    transactions = ledger.list_transactions(db, user_id, limit=limit)
    return BalanceResponse(
        credits=balance,
        transactions=[CreditTransactionOut.model_validate(t) for t in transactions],
    )


# =============================================================================
# Requests
# =============================================================================

@app.post("/api/requests", response_model=VerdictRequestOut, status_code=201)
def create_request_endpoint(
    body: CreateRequestBody,
    user_id: str = Depends(get_current_user_id),
    trace_id: str = Depends(get_trace_id),
    db: Session = Depends(get_db),
):
    settings = get_settings()
    tier = body.tier if body.tier in settings.tiers else settings.default_tier
    tier_config = settings.tier_config(tier)

    data = CreateRequestInput(
        user_id=user_id,
        category=body.category,
        subcategory=body.subcategory,
        media_type=body.media_type,
        media_url=body.media_url,
        text_content=body.text_content,
        context=body.context,
        requested_tone=body.requested_tone,
        target_verdict_count=tier_config.verdicts,
        credits_to_charge=tier_config.credits,
        request_tier=tier,
    )
    request = create_request(db, data, trace_id=trace_id)
    return VerdictRequestOut.model_validate(request)


@app.get("/api/requests", response_model=RequestListResponse)
def list_requests_endpoint(
    limit: int = Query(20, ge=1),
    offset: int = Query(0, ge=0),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    requests = list_requests(db, user_id, limit=limit, offset=offset)
    return RequestListResponse(requests=[VerdictRequestOut.model_validate(r) for r in requests])


@app.get("/api/requests/{request_id}", response_model=RequestDetailResponse)
def get_request_endpoint(
    request_id: str,
    user_id: str = Depends(get_current_user_id),
    trace_id: str = Depends(get_trace_id),
    db: Session = Depends(get_db),
):
    request = get_request(db, request_id, trace_id=trace_id)
    if request.user_id != user_id:
        raise Forbidden(trace_id=trace_id)
    verdicts = list_verdicts(db, request_id)
    return RequestDetailResponse(
        request=VerdictRequestOut.model_validate(request),
        verdicts=[VerdictResponseOut.model_validate(v) for v in verdicts],
    )


# =============================================================================
# Judging
# =============================================================================

@app.post("/api/judge/respond", response_model=RecordVerdictResponse, status_code=201)
def judge_respond(
    body: JudgeRespondBody,
    user_id: str = Depends(get_current_user_id),
    trace_id: str = Depends(get_trace_id),
    db: Session = Depends(get_db),
):
    profile = ledger.ensure_profile(db, user_id, trace_id=trace_id)
    if not profile.is_judge:
        raise NotAJudge(trace_id=trace_id)

    recorded = record_verdict(
        db,
        request_id=body.request_id,
        judge_id=user_id,
        rating=body.rating,
        feedback=body.feedback,
        tone=body.tone,
        voice_url=body.voice_url,
        trace_id=trace_id,
    )
    return RecordVerdictResponse(
        verdict=VerdictResponseOut.model_validate(recorded.verdict),
        request=VerdictRequestOut.model_validate(recorded.updated_request),
    )


# =============================================================================
# Consensus
# =============================================================================

@app.post("/api/consensus/{request_id}", response_model=ConsensusOut)
async def generate_consensus_endpoint(
    request_id: str,
    user_id: str = Depends(get_current_user_id),
    trace_id: str = Depends(get_trace_id),
    db: Session = Depends(get_db),
    synthesizer: ConsensusSynthesizer = Depends(get_synthesizer),
):
    record = await generate_consensus(
        db, request_id, synthesizer, user_id=user_id, trace_id=trace_id
    )
    return ConsensusOut.model_validate(record)


@app.get("/api/consensus/{request_id}", response_model=ConsensusOut)
def get_consensus_endpoint(
    request_id: str,
    user_id: str = Depends(get_current_user_id),
    trace_id: str = Depends(get_trace_id),
    db: Session = Depends(get_db),
):
    record = get_consensus(db, request_id, user_id=user_id, trace_id=trace_id)
    return ConsensusOut.model_validate(record)


# =============================================================================
# Lifecycle
# =============================================================================

@app.on_event("startup")
async def startup_event():
    """Initialize on startup"""
    settings = get_settings()
    logger.info(f"Starting Verdict Service v{settings.service_version}")
    for warning in settings.validate_llm_config():
        logger.warning(warning)
    init_db()


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown"""
    client = get_synthesizer().provider
    close = getattr(client, "close", None)
    if close is not None:
        await close()
