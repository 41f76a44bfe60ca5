"""
Error types for the verdict lifecycle.

Every error carries a stable ``code`` for callers to branch on and the HTTP
status the API renders it with. ``trace_id`` ties the error to the log lines
of the call that raised it.
"""

from typing import Optional


class VerdictServiceError(Exception):
    """Base class for all domain errors."""

    code = "INTERNAL_ERROR"
    http_status = 500
    default_message = "Something went wrong, please try again"

    def __init__(self, message: Optional[str] = None, trace_id: Optional[str] = None):
        self.message = message or self.default_message
        self.trace_id = trace_id
        super().__init__(self.message)

    @property
    def public_message(self) -> str:
        """Message safe to show to end users"""
        return self.message


# =============================================================================
# Ledger / infrastructure
# =============================================================================

class DatabaseError(VerdictServiceError):
    """Storage failure. Never shown to users in detail."""
    code = "DATABASE_ERROR"
    http_status = 500
    default_message = "Database operation failed"

    @property
    def public_message(self) -> str:
        return "Something went wrong, please try again"


class ProfileNotFound(VerdictServiceError):
    code = "PROFILE_NOT_FOUND"
    http_status = 404
    default_message = "Profile not found, please refresh and try again"


class ProfileExists(VerdictServiceError):
    code = "PROFILE_EXISTS"
    http_status = 409
    default_message = "Profile already exists"


class InsufficientCredits(VerdictServiceError):
    code = "INSUFFICIENT_CREDITS"
    http_status = 402

    def __init__(self, required: int, available: int, trace_id: Optional[str] = None):
        self.required = required
        self.available = available
        missing = required - available
        super().__init__(
            f"Insufficient credits: need {missing} more credit{'s' if missing != 1 else ''}",
            trace_id=trace_id,
        )


# =============================================================================
# Judging
# =============================================================================

class RequestNotFound(VerdictServiceError):
    code = "REQUEST_NOT_FOUND"
    http_status = 404
    default_message = "Request not found"


class CannotJudgeOwnRequest(VerdictServiceError):
    code = "CANNOT_JUDGE_OWN_REQUEST"
    http_status = 400
    default_message = "You cannot judge your own request"


class RequestClosed(VerdictServiceError):
    code = "REQUEST_CLOSED"
    http_status = 400
    default_message = "Request is no longer accepting verdicts"


class AlreadyResponded(VerdictServiceError):
    code = "ALREADY_RESPONDED"
    http_status = 409
    default_message = "You have already submitted a verdict for this request"


class NotAJudge(VerdictServiceError):
    code = "NOT_A_JUDGE"
    http_status = 403
    default_message = "Must be a judge to submit verdicts"


class Unauthorized(VerdictServiceError):
    code = "UNAUTHORIZED"
    http_status = 401
    default_message = "Unauthorized"


class Forbidden(VerdictServiceError):
    code = "FORBIDDEN"
    http_status = 403
    default_message = "Forbidden"


# =============================================================================
# Consensus
# =============================================================================

class InsufficientVerdicts(VerdictServiceError):
    code = "INSUFFICIENT_VERDICTS"
    http_status = 400
    default_message = "Need at least 2 verdicts for consensus analysis"


class SynthesisFailed(VerdictServiceError):
    code = "SYNTHESIS_FAILED"
    http_status = 502
    default_message = "Failed to generate consensus analysis"


class SynthesisTimeout(SynthesisFailed):
    code = "SYNTHESIS_TIMEOUT"
    http_status = 504
    default_message = "Consensus analysis timed out"


class ConsensusNotAvailable(VerdictServiceError):
    code = "CONSENSUS_NOT_AVAILABLE"
    http_status = 400
    default_message = "Consensus analysis only available for Pro tier requests"


class ConsensusInProgress(VerdictServiceError):
    code = "CONSENSUS_IN_PROGRESS"
    http_status = 202
    default_message = "Consensus analysis already in progress"


class ConsensusNotFound(VerdictServiceError):
    code = "CONSENSUS_NOT_FOUND"
    http_status = 404
    default_message = "Consensus analysis not found"
