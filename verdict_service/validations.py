"""
Input validation for user-submitted content
===========================================

Length limits and a coarse content filter for request context and judge
feedback. Each check returns an error message, or None when the value is
acceptable.

Usage:
    from verdict_service.validations import validate_feedback
    error = validate_feedback(text)
"""

import re
from typing import List, Optional

CONTEXT_MIN_LENGTH = 20
CONTEXT_MAX_LENGTH = 500
FEEDBACK_MIN_LENGTH = 50
FEEDBACK_MAX_LENGTH = 500
RATING_MIN = 1
RATING_MAX = 10

# =============================================================================
# Content filter
# =============================================================================

BANNED_PHRASES: List[str] = [
    # Slurs
    "faggot", "retard", "retarded", "tranny", "shemale",
    # Violence / self-harm
    "kill yourself", "go die", "hope you die",
    # Harassment
    "i will find you", "i know where you live",
    # Spam / scams
    "send me money", "wire transfer", "bitcoin wallet",
    "click this link", "free gift card",
]

BANNED_PATTERNS: List[re.Pattern] = [
    re.compile(r'n[i1!]+[g9]{2,}[e3]*r', re.IGNORECASE),   # obfuscated slurs
    re.compile(r'f[a@4]+[g9]+[o0]+t', re.IGNORECASE),
    re.compile(r'\bk+y+s+\b', re.IGNORECASE),
    re.compile(r'(https?://\S+.*){3,}', re.IGNORECASE),    # link spam
    re.compile(r'(.)\1{10,}'),                               # repeated characters
    re.compile(r'[A-Z]{20,}'),                               # shouting
]


def contains_banned_content(text: str) -> bool:
    lowered = text.lower()
    if any(phrase in lowered for phrase in BANNED_PHRASES):
        return True
    return any(pattern.search(text) for pattern in BANNED_PATTERNS)


# =============================================================================
# Field checks
# =============================================================================

def _validate_length(value: Optional[str], label: str, min_len: int, max_len: int) -> Optional[str]:
    if not value or not isinstance(value, str):
        return f"{label} is required"
    if len(value) < min_len:
        return f"{label} must be at least {min_len} characters"
    if len(value) > max_len:
        return f"{label} must be {max_len} characters or less"
    if contains_banned_content(value):
        return "Content contains inappropriate language"
    return None


def validate_context(context: Optional[str]) -> Optional[str]:
    return _validate_length(context, "Context", CONTEXT_MIN_LENGTH, CONTEXT_MAX_LENGTH)


def validate_feedback(feedback: Optional[str]) -> Optional[str]:
    return _validate_length(feedback, "Feedback", FEEDBACK_MIN_LENGTH, FEEDBACK_MAX_LENGTH)


def validate_rating(rating) -> Optional[str]:
    """Rating is optional; when present it must be an integer in 1..10."""
    if rating is None:
        return None
    if isinstance(rating, bool) or not isinstance(rating, int):
        return "Rating must be an integer between 1 and 10"
    if rating < RATING_MIN or rating > RATING_MAX:
        return "Rating must be an integer between 1 and 10"
    return None
