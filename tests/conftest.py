"""Shared pytest fixtures for Tandem tests."""
import itertools
import os
import tempfile

# tandem.database builds its module-level engine at import time
os.environ.setdefault(
    "DATABASE_URL",
    "sqlite+aiosqlite:///" + os.path.join(tempfile.gettempdir(), "tandem_test_default.db"),
)

import pytest
import pytest_asyncio

import tandem.models  # noqa: F401  (registers every table on Base.metadata)
from tandem.database import Base, build_engine, build_session_factory
from tandem.models.connection import Connection, ConnectionStatus
from tandem.models.dismissal import DismissedRecommendation
from tandem.models.profile import Profile
from tandem.models.user import User

HELSINKI = (60.1699, 24.9384)

DEFAULT_WEIGHTS = {
    "analog_passions": 5,
    "digital_delights": 5,
    "collaboration_interests": 5,
    "favorite_food": 5,
    "favorite_music": 5,
    "location": 5,
}


@pytest_asyncio.fixture
async def engine(tmp_path):
    """A fresh SQLite database file per test."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'tandem.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_user(session_factory):
    """Create a user (and by default a complete profile); return the user id.

    Keyword arguments override profile columns, e.g.
    ``await make_user(location_lat=None, location_lon=None)``.
    """
    counter = itertools.count(1)

    async def _make(*, complete: bool = True, with_profile: bool = True, **fields) -> int:
        n = next(counter)
        async with session_factory() as session:
            async with session.begin():
                user = User(email=f"user{n}@example.com", password_hash="!test")
                session.add(user)
                await session.flush()
                if with_profile:
                    values = {
                        "display_name": f"User {n}",
                        "location_city": "Helsinki",
                        "location_lat": HELSINKI[0],
                        "location_lon": HELSINKI[1],
                        "max_radius_km": 0,
                        "analog_passions": [],
                        "digital_delights": [],
                        "match_preferences": dict(DEFAULT_WEIGHTS),
                    }
                    values.update(fields)
                    session.add(Profile(user_id=user.id, is_complete=complete, **values))
            return user.id

    return _make


@pytest.fixture
def add_connection(session_factory):
    """Insert a raw connection row, bypassing the state machine."""

    async def _add(requester_id: int, target_id: int, status: ConnectionStatus) -> int:
        async with session_factory() as session:
            async with session.begin():
                row = Connection(requester_id=requester_id, target_id=target_id, status=status)
                session.add(row)
                await session.flush()
            return row.id

    return _add


@pytest.fixture
def add_dismissal(session_factory):

    async def _add(user_id: int, dismissed_user_id: int) -> None:
        async with session_factory() as session:
            async with session.begin():
                session.add(
                    DismissedRecommendation(user_id=user_id, dismissed_user_id=dismissed_user_id)
                )

    return _add
