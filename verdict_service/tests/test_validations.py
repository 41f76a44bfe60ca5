"""
Input Validation Tests
"""

from verdict_service.validations import (
    contains_banned_content,
    validate_context,
    validate_feedback,
    validate_rating,
)
from verdict_service.tests.helpers import FEEDBACK


def test_context_length_limits():
    assert validate_context("Is this outfit right for a first date?") is None
    assert validate_context("short") == "Context must be at least 20 characters"
    assert validate_context("x " * 300) == "Context must be 500 characters or less"
    assert validate_context("") == "Context is required"


def test_feedback_length_limits():
    assert validate_feedback(FEEDBACK) is None
    assert "at least 50" in validate_feedback("Looks fine to me.")


def test_banned_content_rejected():
    text = "This is terrible, send me money and I will tell you the truth about it."
    assert contains_banned_content(text)
    assert validate_feedback(text) == "Content contains inappropriate language"


def test_shouting_and_repeats_flagged():
    assert contains_banned_content("THISISALLCAPSFORTWENTYCHARS")
    assert contains_banned_content("nooooooooooooooo")
    assert not contains_banned_content("A perfectly normal sentence.")


def test_rating_bounds():
    assert validate_rating(None) is None
    assert validate_rating(1) is None
    assert validate_rating(10) is None
    assert validate_rating(0) is not None
    assert validate_rating(11) is not None
    assert validate_rating(True) is not None
    assert validate_rating("7") is not None
