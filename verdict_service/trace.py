"""
Request-scoped trace identifiers.

Service calls take an optional ``trace_id``; when the caller does not pass
one a fresh id is generated and threaded through log lines and errors.
"""

import uuid
from typing import Optional


def new_trace_id() -> str:
    return uuid.uuid4().hex[:12]


def ensure_trace_id(trace_id: Optional[str] = None) -> str:
    return trace_id or new_trace_id()
