"""
Tandem — Connection state machine.

Lifecycle of a directed connection row (requester -> target):

    none ──request──▶ pending ──accept──▶ accepted ──disconnect──▶ disconnected
                        │
                        ├─decline (by target)──▶ none   (row deleted)
                        └─cancel (by requester)─▶ none  (row deleted)

A request from B to A while A -> B is pending is a mutual request and flips
the existing row to ``accepted`` instead of inserting a second row.

Every mutating operation runs in its own transaction that:
  1. takes a lock keyed by the *unordered* pair
     (``pg_advisory_xact_lock(min_id, max_id)`` on PostgreSQL; SQLite
     transactions start with ``BEGIN IMMEDIATE`` and are already serialised),
  2. reads the pair's rows ``FOR UPDATE``,
  3. decides, performs at most one write, and commits.

The lock is taken before the existence check, so two concurrent requesters
cannot both observe "no row".  Operations on different pairs never share a
lock.  Nothing is retried here: lock timeouts and deadlocks surface as
:class:`TransientError`.
"""

from __future__ import annotations

import enum
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

import structlog
from sqlalchemy import and_, func, or_, select, text
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tandem.config import get_settings
from tandem.database import is_transient_error
from tandem.errors import (
    AlreadyConnectedError,
    ConflictError,
    IncompleteProfileError,
    InvalidError,
    NotFoundError,
    TransientError,
)
from tandem.models.connection import Connection, ConnectionStatus
from tandem.models.profile import Profile
from tandem.services.dismissal_service import DismissalService

logger = structlog.get_logger("tandem.connection_service")


class ConnectionState(str, enum.Enum):
    """Result state reported back to the caller of a transition."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    CANCELLED = "cancelled"
    DISCONNECTED = "disconnected"


class RelationshipState(str, enum.Enum):
    """State of a pair as seen from one of its members."""

    NONE = "none"
    PENDING_OUTGOING = "pending_outgoing"
    PENDING_INCOMING = "pending_incoming"
    ACCEPTED = "accepted"
    DISCONNECTED = "disconnected"
    DISMISSED = "dismissed"


@dataclass(frozen=True)
class ConnectionOutcome:
    state: ConnectionState
    connection_id: int | None = None


class ConnectionService:
    """Transactional connection lifecycle operations.

    The service owns its transactions, so it is built from a session factory
    rather than handed a request-scoped session.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        lock_timeout_ms: int | None = None,
        dismissal_service: DismissalService | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.dismissal_service = dismissal_service or DismissalService()
        self.lock_timeout_ms = (
            lock_timeout_ms
            if lock_timeout_ms is not None
            else get_settings().LOCK_TIMEOUT_MS
        )

    # ══════════════════════════════════════════════════════════════════════
    # Transitions
    # ══════════════════════════════════════════════════════════════════════

    async def request(self, requester_id: int, target_id: int) -> ConnectionOutcome:
        """Send a connection request, or auto-accept a mutual one.

        Raises
        ------
        InvalidError
            Self-request.
        IncompleteProfileError
            The requester's profile is not complete.
        NotFoundError
            The target has no complete profile, or was dismissed by the
            requester.
        AlreadyConnectedError
            The pair is already connected.
        ConflictError
            A request is already pending from the requester, or the pair was
            disconnected.
        """
        self._reject_self(requester_id, target_id)
        log = logger.bind(requester_id=requester_id, target_id=target_id)
        log.info("connection_request_start")

        async with self._pair_transaction(requester_id, target_id) as session:
            requester = await session.get(Profile, requester_id)
            if requester is None or not requester.is_complete:
                raise IncompleteProfileError("complete your profile before connecting")

            target = await session.get(Profile, target_id)
            if target is None or not target.is_complete:
                raise NotFoundError(f"user {target_id} not found")

            row = await self._load_pair_for_update(session, requester_id, target_id)

            if row is None:
                if await self.dismissal_service.is_dismissed(session, requester_id, target_id):
                    raise NotFoundError(f"user {target_id} not found")
                row = Connection(
                    requester_id=requester_id,
                    target_id=target_id,
                    status=ConnectionStatus.PENDING,
                )
                session.add(row)
                await session.flush()
                outcome = ConnectionOutcome(ConnectionState.PENDING, row.id)

            elif row.status is ConnectionStatus.PENDING and row.requester_id == target_id:
                row.status = ConnectionStatus.ACCEPTED
                await session.flush()
                outcome = ConnectionOutcome(ConnectionState.ACCEPTED, row.id)
                log.info("connection_request_mutual", connection_id=row.id)

            elif row.status is ConnectionStatus.ACCEPTED:
                raise AlreadyConnectedError(f"already connected with user {target_id}")

            else:
                raise ConflictError(
                    f"cannot request connection while status is {row.status.value}"
                )

        log.info("connection_request_complete", state=outcome.state.value)
        return outcome

    async def accept(self, accepter_id: int, requester_id: int) -> ConnectionOutcome:
        """Accept the pending request ``requester_id -> accepter_id``.

        Accepting an already accepted connection raises
        :class:`AlreadyConnectedError`.
        """
        self._reject_self(accepter_id, requester_id)
        log = logger.bind(accepter_id=accepter_id, requester_id=requester_id)

        async with self._pair_transaction(accepter_id, requester_id) as session:
            row = await self._load_pair_for_update(session, accepter_id, requester_id)
            self._require_incoming_pending(row, accepter_id, requester_id)

            row.status = ConnectionStatus.ACCEPTED
            await session.flush()
            outcome = ConnectionOutcome(ConnectionState.ACCEPTED, row.id)

        log.info("connection_accept_complete", connection_id=outcome.connection_id)
        return outcome

    async def decline(self, accepter_id: int, requester_id: int) -> ConnectionOutcome:
        """Decline the pending request ``requester_id -> accepter_id``.

        The row is deleted, so the requester may ask again later.
        """
        self._reject_self(accepter_id, requester_id)
        log = logger.bind(accepter_id=accepter_id, requester_id=requester_id)

        async with self._pair_transaction(accepter_id, requester_id) as session:
            row = await self._load_pair_for_update(session, accepter_id, requester_id)
            self._require_incoming_pending(row, accepter_id, requester_id)

            connection_id = row.id
            await session.delete(row)
            await session.flush()

        log.info("connection_decline_complete", connection_id=connection_id)
        return ConnectionOutcome(ConnectionState.DECLINED, connection_id)

    async def cancel(self, requester_id: int, target_id: int) -> ConnectionOutcome:
        """Withdraw the caller's own pending request ``requester_id -> target_id``."""
        self._reject_self(requester_id, target_id)
        log = logger.bind(requester_id=requester_id, target_id=target_id)

        async with self._pair_transaction(requester_id, target_id) as session:
            row = await self._load_pair_for_update(session, requester_id, target_id)
            # An outgoing request is an incoming one seen from the target.
            self._require_incoming_pending(row, target_id, requester_id)

            connection_id = row.id
            await session.delete(row)
            await session.flush()

        log.info("connection_cancel_complete", connection_id=connection_id)
        return ConnectionOutcome(ConnectionState.CANCELLED, connection_id)

    async def disconnect(self, user_id: int, peer_id: int) -> ConnectionOutcome:
        """Move an accepted connection (either direction) to ``disconnected``."""
        self._reject_self(user_id, peer_id)
        log = logger.bind(user_id=user_id, peer_id=peer_id)

        async with self._pair_transaction(user_id, peer_id) as session:
            row = await self._load_pair_for_update(session, user_id, peer_id)
            if row is None:
                raise NotFoundError(f"no connection with user {peer_id}")
            if row.status is not ConnectionStatus.ACCEPTED:
                raise ConflictError(
                    f"cannot disconnect while status is {row.status.value}"
                )

            row.status = ConnectionStatus.DISCONNECTED
            await session.flush()
            outcome = ConnectionOutcome(ConnectionState.DISCONNECTED, row.id)

        log.info("connection_disconnect_complete", connection_id=outcome.connection_id)
        return outcome

    # ══════════════════════════════════════════════════════════════════════
    # Queries (read-only, no pair lock)
    # ══════════════════════════════════════════════════════════════════════

    async def list_connections(self, user_id: int) -> list[int]:
        """Ids of every user with an accepted connection to ``user_id``."""
        stmt = (
            select(Connection)
            .where(
                or_(Connection.requester_id == user_id, Connection.target_id == user_id),
                Connection.status == ConnectionStatus.ACCEPTED,
            )
            .order_by(Connection.id)
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [row.peer_of(user_id) for row in rows]

    async def list_incoming_requests(self, user_id: int) -> list[int]:
        """Ids of users with a pending request to ``user_id``, newest first."""
        stmt = (
            select(Connection.requester_id)
            .where(
                Connection.target_id == user_id,
                Connection.status == ConnectionStatus.PENDING,
            )
            .order_by(Connection.created_at.desc(), Connection.id.desc())
        )
        async with self._session_factory() as session:
            return list((await session.execute(stmt)).scalars().all())

    async def list_outgoing_requests(self, user_id: int) -> list[int]:
        stmt = (
            select(Connection.target_id)
            .where(
                Connection.requester_id == user_id,
                Connection.status == ConnectionStatus.PENDING,
            )
            .order_by(Connection.created_at.desc(), Connection.id.desc())
        )
        async with self._session_factory() as session:
            return list((await session.execute(stmt)).scalars().all())

    async def relationship(self, user_id: int, other_id: int) -> RelationshipState:
        """State of the pair as seen by ``user_id``."""
        async with self._session_factory() as session:
            rows = (
                await session.execute(self._pair_query(user_id, other_id))
            ).scalars().all()

        if not rows:
            return RelationshipState.NONE
        row = rows[0]
        if row.status is ConnectionStatus.PENDING:
            if row.requester_id == user_id:
                return RelationshipState.PENDING_OUTGOING
            return RelationshipState.PENDING_INCOMING
        return RelationshipState(row.status.value)

    async def are_connected(self, user_id: int, other_id: int) -> bool:
        """Messaging precondition used by the chat layer."""
        state = await self.relationship(user_id, other_id)
        return state is RelationshipState.ACCEPTED

    # ── Internal helpers ──────────────────────────────────────────────────

    @staticmethod
    def _reject_self(user_id: int, other_id: int) -> None:
        if user_id == other_id:
            raise InvalidError("a connection needs two different users")

    @staticmethod
    def _require_incoming_pending(
        row: Connection | None, recipient_id: int, requester_id: int
    ) -> None:
        """Ensure ``row`` is a pending request ``requester_id -> recipient_id``."""
        if row is None:
            raise NotFoundError("no pending request between these users")
        if row.status is ConnectionStatus.PENDING:
            if row.requester_id != requester_id:
                raise NotFoundError("no pending request between these users")
            return
        if row.status is ConnectionStatus.ACCEPTED:
            raise AlreadyConnectedError("request was already accepted")
        raise ConflictError(f"request is no longer pending ({row.status.value})")

    @staticmethod
    def _pair_query(a: int, b: int):
        return (
            select(Connection)
            .where(
                or_(
                    and_(Connection.requester_id == a, Connection.target_id == b),
                    and_(Connection.requester_id == b, Connection.target_id == a),
                )
            )
            .order_by(Connection.updated_at.desc(), Connection.id.desc())
        )

    async def _load_pair_for_update(
        self, session: AsyncSession, a: int, b: int
    ) -> Connection | None:
        """Lock and return the most recent row between ``a`` and ``b``.

        Seeded data may hold one row per direction; every such row is locked
        and the latest one decides the state.
        """
        rows = (
            await session.execute(self._pair_query(a, b).with_for_update())
        ).scalars().all()
        return rows[0] if rows else None

    async def _lock_pair(self, session: AsyncSession, a: int, b: int) -> None:
        if session.get_bind().dialect.name != "postgresql":
            return
        low, high = sorted((a, b))
        await session.execute(
            text(f"SET LOCAL lock_timeout = {int(self.lock_timeout_ms)}")
        )
        await session.execute(select(func.pg_advisory_xact_lock(low, high)))

    @asynccontextmanager
    async def _pair_transaction(self, a: int, b: int) -> AsyncIterator[AsyncSession]:
        """One transaction holding the lock for the unordered pair ``{a, b}``.

        Commits on normal exit; any exception rolls back every write.
        """
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await self._lock_pair(session, a, b)
                    yield session
        except IntegrityError as exc:
            logger.warning("pair_transaction_integrity_error", user_a=a, user_b=b)
            raise ConflictError("connection changed concurrently") from exc
        except DBAPIError as exc:
            if is_transient_error(exc):
                logger.warning("pair_transaction_transient", user_a=a, user_b=b)
                raise TransientError("pair is busy, retry the request") from exc
            raise
