"""
Tandem — Dismissal ledger.

Append-only record of candidates a user never wants recommended again.
Inserts are idempotent (``ON CONFLICT DO NOTHING``) and rows are never
deleted; the candidate filter excludes them with a ``NOT EXISTS`` join.
"""

from __future__ import annotations

import structlog
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from tandem.database import translate_transient_errors
from tandem.errors import InvalidError, NotFoundError
from tandem.models.dismissal import DismissedRecommendation
from tandem.models.profile import Profile

logger = structlog.get_logger("tandem.dismissal_service")


class DismissalService:

    async def dismiss(
        self,
        db_session: AsyncSession,
        user_id: int,
        dismissed_user_id: int,
    ) -> bool:
        """Suppress ``dismissed_user_id`` from ``user_id``'s recommendations.

        Returns True when a new ledger row was written, False when the pair
        was already dismissed.

        Raises
        ------
        InvalidError
            If a user tries to dismiss themselves.
        NotFoundError
            If the dismissed user has no complete profile.
        TransientError
            If the database is locked by another writer.
        """
        if user_id == dismissed_user_id:
            raise InvalidError("cannot dismiss yourself")

        log = logger.bind(user_id=user_id, dismissed_user_id=dismissed_user_id)

        dialect = db_session.get_bind().dialect.name
        insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
        stmt = (
            insert(DismissedRecommendation)
            .values(user_id=user_id, dismissed_user_id=dismissed_user_id)
            .on_conflict_do_nothing(
                index_elements=["user_id", "dismissed_user_id"]
            )
        )

        with translate_transient_errors():
            target = await db_session.get(Profile, dismissed_user_id)
            if target is None or not target.is_complete:
                log.info("dismiss_target_not_found")
                raise NotFoundError(f"user {dismissed_user_id} not found")

            result = await db_session.execute(stmt)
        created = result.rowcount == 1

        log.info("dismiss_complete", created=created)
        return created

    async def is_dismissed(
        self, db_session: AsyncSession, user_id: int, other_id: int
    ) -> bool:
        row = await db_session.get(DismissedRecommendation, (user_id, other_id))
        return row is not None
