"""
Shared fixtures: a fresh SQLite database per test and seeded profiles/requests.
"""

import os
import sys
from pathlib import Path

import pytest

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent))


@pytest.fixture
def sqlalchemy_db(tmp_path):
    """Configure a fresh SQLAlchemy SQLite DB for tests."""
    from verdict_service.db.session import reset_engine, init_db

    old_db_url = os.environ.get("DATABASE_URL")
    db_path = tmp_path / "verdict_test.db"
    os.environ["DATABASE_URL"] = f"sqlite:///{db_path}"
    reset_engine()
    init_db()

    yield

    if old_db_url is not None:
        os.environ["DATABASE_URL"] = old_db_url
    else:
        os.environ.pop("DATABASE_URL", None)
    reset_engine()


@pytest.fixture
def db(sqlalchemy_db):
    """A session from the same dependency the API uses."""
    from verdict_service.db.session import get_db

    sessions = get_db()
    yield next(sessions)
    sessions.close()


@pytest.fixture
def make_profile(db):
    """Create a profile with an exact starting balance."""
    from verdict_service import ledger

    def _make(user_id, credits=3, is_judge=False):
        return ledger.create_profile(
            db,
            user_id,
            email=f"{user_id}@verdict.local",
            credits=credits,
            is_judge=is_judge,
        )

    return _make


@pytest.fixture
def make_request(db, make_profile):
    """Create a profile (if needed) and an open text request owned by it."""
    from verdict_service.db.models import Profile
    from verdict_service.requests_store import create_request
    from verdict_service.schemas import CreateRequestInput

    def _make(owner_id="owner", target=3, tier="community", credits=10):
        if db.get(Profile, owner_id) is None:
            make_profile(owner_id, credits=credits)
        return create_request(db, CreateRequestInput(
            user_id=owner_id,
            category="writing",
            media_type="text",
            text_content="Please read my cover letter draft.",
            context="Applying for a junior designer position next week.",
            target_verdict_count=target,
            credits_to_charge=1,
            request_tier=tier,
        ))

    return _make
