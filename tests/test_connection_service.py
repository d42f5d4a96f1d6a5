"""Tests for ConnectionService — the transactional connection state machine."""
import asyncio
from types import SimpleNamespace

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from tandem.errors import (
    AlreadyConnectedError,
    ConflictError,
    IncompleteProfileError,
    InvalidError,
    NotFoundError,
    TransientError,
)
from tandem.models.connection import Connection, ConnectionStatus
from tandem.services.connection_service import (
    ConnectionService,
    ConnectionState,
    RelationshipState,
)
from tandem.services.recommendation_service import RecommendationService


@pytest.fixture
def connection_service(session_factory):
    return ConnectionService(session_factory, lock_timeout_ms=1000)


async def _pair_rows(session_factory, a, b):
    async with session_factory() as session:
        stmt = select(Connection).where(
            ((Connection.requester_id == a) & (Connection.target_id == b))
            | ((Connection.requester_id == b) & (Connection.target_id == a))
        )
        return list((await session.execute(stmt)).scalars().all())


# ──────────────────────────────────────────────────────────────────────────────
# Request
# ──────────────────────────────────────────────────────────────────────────────

class TestRequest:

    @pytest.mark.asyncio
    async def test_creates_pending(self, connection_service, session_factory, make_user):
        a, b = await make_user(), await make_user()

        outcome = await connection_service.request(a, b)

        assert outcome.state is ConnectionState.PENDING
        rows = await _pair_rows(session_factory, a, b)
        assert len(rows) == 1
        assert (rows[0].requester_id, rows[0].target_id) == (a, b)
        assert rows[0].status is ConnectionStatus.PENDING
        assert outcome.connection_id == rows[0].id
        assert await connection_service.relationship(a, b) is RelationshipState.PENDING_OUTGOING
        assert await connection_service.relationship(b, a) is RelationshipState.PENDING_INCOMING

    @pytest.mark.asyncio
    async def test_mutual_request_auto_accepts(self, connection_service, session_factory, make_user):
        a, b = await make_user(), await make_user()

        await connection_service.request(a, b)
        outcome = await connection_service.request(b, a)

        assert outcome.state is ConnectionState.ACCEPTED
        rows = await _pair_rows(session_factory, a, b)
        assert len(rows) == 1
        assert rows[0].status is ConnectionStatus.ACCEPTED
        assert await connection_service.are_connected(a, b)
        assert await connection_service.are_connected(b, a)

    @pytest.mark.asyncio
    async def test_self_request_invalid(self, connection_service, make_user):
        a = await make_user()
        with pytest.raises(InvalidError):
            await connection_service.request(a, a)

    @pytest.mark.asyncio
    async def test_incomplete_requester(self, connection_service, make_user):
        a = await make_user(complete=False)
        b = await make_user()
        with pytest.raises(IncompleteProfileError):
            await connection_service.request(a, b)

    @pytest.mark.asyncio
    async def test_incomplete_or_missing_target(self, connection_service, make_user):
        a = await make_user()
        hidden = await make_user(complete=False)
        with pytest.raises(NotFoundError):
            await connection_service.request(a, hidden)
        with pytest.raises(NotFoundError):
            await connection_service.request(a, 9999)

    @pytest.mark.asyncio
    async def test_dismissed_target_not_found(
        self, connection_service, session_factory, make_user, add_dismissal
    ):
        a, b = await make_user(), await make_user()
        await add_dismissal(a, b)

        with pytest.raises(NotFoundError):
            await connection_service.request(a, b)
        # the dismissed side can still reach out
        outcome = await connection_service.request(b, a)
        assert outcome.state is ConnectionState.PENDING
        assert len(await _pair_rows(session_factory, a, b)) == 1

    @pytest.mark.asyncio
    async def test_target_need_not_be_recommended(
        self, connection_service, session_factory, make_user
    ):
        a = await make_user(analog_passions=["knitting"], match_preferences={"analog_passions": 5})
        b = await make_user(analog_passions=["hiking"])

        async with session_factory() as session:
            assert b not in await RecommendationService().recommended_ids(session, a)

        outcome = await connection_service.request(a, b)
        assert outcome.state is ConnectionState.PENDING

    @pytest.mark.asyncio
    async def test_duplicate_request_conflict(self, connection_service, make_user):
        a, b = await make_user(), await make_user()
        await connection_service.request(a, b)

        with pytest.raises(ConflictError) as exc_info:
            await connection_service.request(a, b)
        assert not isinstance(exc_info.value, AlreadyConnectedError)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("forward", [True, False])
    async def test_already_connected(self, connection_service, make_user, add_connection, forward):
        a, b = await make_user(), await make_user()
        if forward:
            await add_connection(a, b, ConnectionStatus.ACCEPTED)
        else:
            await add_connection(b, a, ConnectionStatus.ACCEPTED)

        with pytest.raises(AlreadyConnectedError) as exc_info:
            await connection_service.request(a, b)
        assert exc_info.value.status_code == 409
        assert exc_info.value.code == "already_connected"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [ConnectionStatus.DISCONNECTED, ConnectionStatus.DISMISSED])
    async def test_terminal_states_conflict(
        self, connection_service, make_user, add_connection, status
    ):
        a, b = await make_user(), await make_user()
        await add_connection(b, a, status)

        with pytest.raises(ConflictError):
            await connection_service.request(a, b)


# ──────────────────────────────────────────────────────────────────────────────
# Accept / Decline / Cancel
# ──────────────────────────────────────────────────────────────────────────────

class TestAccept:

    @pytest.mark.asyncio
    async def test_accept_pending(self, connection_service, session_factory, make_user):
        a, b = await make_user(), await make_user()
        requested = await connection_service.request(a, b)

        outcome = await connection_service.accept(b, a)

        assert outcome.state is ConnectionState.ACCEPTED
        assert outcome.connection_id == requested.connection_id
        rows = await _pair_rows(session_factory, a, b)
        assert [r.status for r in rows] == [ConnectionStatus.ACCEPTED]

    @pytest.mark.asyncio
    async def test_accept_missing_row(self, connection_service, make_user):
        a, b = await make_user(), await make_user()
        with pytest.raises(NotFoundError):
            await connection_service.accept(b, a)

    @pytest.mark.asyncio
    async def test_accept_own_outgoing_request(self, connection_service, make_user):
        a, b = await make_user(), await make_user()
        await connection_service.request(a, b)
        with pytest.raises(NotFoundError):
            await connection_service.accept(a, b)

    @pytest.mark.asyncio
    async def test_second_accept_conflicts(self, connection_service, make_user):
        a, b = await make_user(), await make_user()
        await connection_service.request(a, b)
        await connection_service.accept(b, a)

        with pytest.raises(ConflictError):
            await connection_service.accept(b, a)

    @pytest.mark.asyncio
    async def test_accept_disconnected_conflicts(self, connection_service, make_user, add_connection):
        a, b = await make_user(), await make_user()
        await add_connection(a, b, ConnectionStatus.DISCONNECTED)
        with pytest.raises(ConflictError):
            await connection_service.accept(b, a)


class TestDecline:

    @pytest.mark.asyncio
    async def test_decline_removes_row(self, connection_service, session_factory, make_user):
        a, b = await make_user(), await make_user()
        await connection_service.request(a, b)

        outcome = await connection_service.decline(b, a)

        assert outcome.state is ConnectionState.DECLINED
        assert await _pair_rows(session_factory, a, b) == []
        assert await connection_service.relationship(a, b) is RelationshipState.NONE

    @pytest.mark.asyncio
    async def test_request_again_after_decline(self, connection_service, make_user):
        a, b = await make_user(), await make_user()
        await connection_service.request(a, b)
        await connection_service.decline(b, a)

        outcome = await connection_service.request(a, b)
        assert outcome.state is ConnectionState.PENDING

    @pytest.mark.asyncio
    async def test_decline_wrong_direction(self, connection_service, make_user):
        a, b = await make_user(), await make_user()
        await connection_service.request(a, b)
        with pytest.raises(NotFoundError):
            await connection_service.decline(a, b)

    @pytest.mark.asyncio
    async def test_decline_accepted_conflicts(self, connection_service, make_user, add_connection):
        a, b = await make_user(), await make_user()
        await add_connection(a, b, ConnectionStatus.ACCEPTED)
        with pytest.raises(ConflictError):
            await connection_service.decline(b, a)


class TestCancel:

    @pytest.mark.asyncio
    async def test_cancel_own_request(self, connection_service, session_factory, make_user):
        a, b = await make_user(), await make_user()
        await connection_service.request(a, b)

        outcome = await connection_service.cancel(a, b)

        assert outcome.state is ConnectionState.CANCELLED
        assert await _pair_rows(session_factory, a, b) == []

    @pytest.mark.asyncio
    async def test_cannot_cancel_incoming_request(self, connection_service, make_user):
        a, b = await make_user(), await make_user()
        await connection_service.request(a, b)
        with pytest.raises(NotFoundError):
            await connection_service.cancel(b, a)

    @pytest.mark.asyncio
    async def test_cancel_nothing(self, connection_service, make_user):
        a, b = await make_user(), await make_user()
        with pytest.raises(NotFoundError):
            await connection_service.cancel(a, b)


# ──────────────────────────────────────────────────────────────────────────────
# Disconnect
# ──────────────────────────────────────────────────────────────────────────────

class TestDisconnect:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("by_requester", [True, False])
    async def test_either_party_disconnects(
        self, connection_service, session_factory, make_user, by_requester
    ):
        a, b = await make_user(), await make_user()
        await connection_service.request(a, b)
        await connection_service.accept(b, a)

        if by_requester:
            outcome = await connection_service.disconnect(a, b)
        else:
            outcome = await connection_service.disconnect(b, a)

        assert outcome.state is ConnectionState.DISCONNECTED
        rows = await _pair_rows(session_factory, a, b)
        assert [r.status for r in rows] == [ConnectionStatus.DISCONNECTED]
        assert not await connection_service.are_connected(a, b)
        assert await connection_service.relationship(b, a) is RelationshipState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_disconnect_twice_conflicts(self, connection_service, make_user, add_connection):
        a, b = await make_user(), await make_user()
        await add_connection(a, b, ConnectionStatus.ACCEPTED)
        await connection_service.disconnect(a, b)

        with pytest.raises(ConflictError):
            await connection_service.disconnect(b, a)

    @pytest.mark.asyncio
    async def test_disconnect_is_irreversible(self, connection_service, make_user, add_connection):
        a, b = await make_user(), await make_user()
        await add_connection(a, b, ConnectionStatus.ACCEPTED)
        await connection_service.disconnect(a, b)

        with pytest.raises(ConflictError):
            await connection_service.request(a, b)

    @pytest.mark.asyncio
    async def test_disconnect_pending_conflicts(self, connection_service, make_user):
        a, b = await make_user(), await make_user()
        await connection_service.request(a, b)
        with pytest.raises(ConflictError):
            await connection_service.disconnect(a, b)

    @pytest.mark.asyncio
    async def test_disconnect_without_row(self, connection_service, make_user):
        a, b = await make_user(), await make_user()
        with pytest.raises(NotFoundError):
            await connection_service.disconnect(a, b)


# ──────────────────────────────────────────────────────────────────────────────
# Queries
# ──────────────────────────────────────────────────────────────────────────────

class TestQueries:

    @pytest.mark.asyncio
    async def test_lists(self, connection_service, make_user, add_connection):
        me = await make_user()
        friend_out, friend_in, asker_1, asker_2, asked, gone = [
            await make_user() for _ in range(6)
        ]
        await add_connection(me, friend_out, ConnectionStatus.ACCEPTED)
        await add_connection(friend_in, me, ConnectionStatus.ACCEPTED)
        await add_connection(asker_1, me, ConnectionStatus.PENDING)
        await add_connection(asker_2, me, ConnectionStatus.PENDING)
        await add_connection(me, asked, ConnectionStatus.PENDING)
        await add_connection(me, gone, ConnectionStatus.DISCONNECTED)

        assert sorted(await connection_service.list_connections(me)) == sorted(
            [friend_out, friend_in]
        )
        assert await connection_service.list_incoming_requests(me) == [asker_2, asker_1]
        assert await connection_service.list_outgoing_requests(me) == [asked]

    @pytest.mark.asyncio
    async def test_relationship_none_and_legacy_dismissed(
        self, connection_service, make_user, add_connection
    ):
        a, b, c = await make_user(), await make_user(), await make_user()
        await add_connection(a, c, ConnectionStatus.DISMISSED)

        assert await connection_service.relationship(a, b) is RelationshipState.NONE
        assert await connection_service.relationship(c, a) is RelationshipState.DISMISSED
        assert not await connection_service.are_connected(a, c)


# ──────────────────────────────────────────────────────────────────────────────
# Concurrency & failure translation
# ──────────────────────────────────────────────────────────────────────────────

class TestConcurrency:

    @pytest.mark.asyncio
    async def test_simultaneous_mutual_requests(self, connection_service, session_factory, make_user):
        """Opposite-direction requests racing end with exactly one accepted row."""
        a, b = await make_user(), await make_user()

        outcomes = await asyncio.gather(
            connection_service.request(a, b),
            connection_service.request(b, a),
        )

        assert sorted(o.state.value for o in outcomes) == ["accepted", "pending"]
        rows = await _pair_rows(session_factory, a, b)
        assert len(rows) == 1
        assert rows[0].status is ConnectionStatus.ACCEPTED

    @pytest.mark.asyncio
    async def test_disjoint_pairs_all_succeed(self, connection_service, session_factory, make_user):
        users = [await make_user() for _ in range(8)]
        pairs = list(zip(users[::2], users[1::2]))

        outcomes = await asyncio.gather(
            *(connection_service.request(a, b) for a, b in pairs)
        )

        assert all(o.state is ConnectionState.PENDING for o in outcomes)
        for a, b in pairs:
            assert len(await _pair_rows(session_factory, a, b)) == 1

    @pytest.mark.asyncio
    async def test_lock_contention_is_transient(
        self, connection_service, session_factory, make_user
    ):
        a, b = await make_user(), await make_user()

        async def _locked(session, x, y):
            raise OperationalError("BEGIN IMMEDIATE", {}, Exception("database is locked"))

        connection_service._lock_pair = _locked

        with pytest.raises(TransientError) as exc_info:
            await connection_service.request(a, b)
        assert exc_info.value.status_code == 503
        assert await _pair_rows(session_factory, a, b) == []


class _RecordingSession:
    """Stand-in session that records the statements of the pair lock."""

    def __init__(self, dialect_name):
        self.dialect_name = dialect_name
        self.statements = []

    def get_bind(self):
        return SimpleNamespace(dialect=SimpleNamespace(name=self.dialect_name))

    async def execute(self, statement):
        self.statements.append(statement)


class TestPairLock:

    @pytest.mark.asyncio
    async def test_postgres_takes_ordered_advisory_lock(self):
        service = ConnectionService(session_factory=None, lock_timeout_ms=250)
        session = _RecordingSession("postgresql")

        await service._lock_pair(session, 7, 3)

        set_timeout, advisory = session.statements
        assert str(set_timeout) == "SET LOCAL lock_timeout = 250"
        assert "pg_advisory_xact_lock" in str(advisory)
        assert list(advisory.compile().params.values()) == [3, 7]

    @pytest.mark.asyncio
    async def test_same_lock_for_either_direction(self):
        service = ConnectionService(session_factory=None, lock_timeout_ms=250)
        forward, backward = _RecordingSession("postgresql"), _RecordingSession("postgresql")

        await service._lock_pair(forward, 3, 7)
        await service._lock_pair(backward, 7, 3)

        assert forward.statements[1].compile().params == backward.statements[1].compile().params

    @pytest.mark.asyncio
    async def test_sqlite_relies_on_immediate_transactions(self):
        service = ConnectionService(session_factory=None, lock_timeout_ms=250)
        session = _RecordingSession("sqlite")

        await service._lock_pair(session, 3, 7)

        assert session.statements == []
