"""
Tandem — Candidate filter.

Selects the pool of profiles eligible to be scored for a requester:

  * profile complete, not the requester
  * no connection row with the requester in either direction (any status)
  * not in the requester's dismissal ledger
  * within the requester's radius when one is set (inclusive)

The connection / dismissal exclusions run in SQL as correlated ``NOT EXISTS``
sub-queries.  The radius is first applied as a latitude/longitude bounding
box and then exactly with the haversine distance.
"""

from __future__ import annotations

from typing import NamedTuple

import structlog
from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from tandem.errors import IncompleteProfileError
from tandem.models.connection import Connection
from tandem.models.dismissal import DismissedRecommendation
from tandem.models.profile import Profile
from tandem.utils.geo import bounding_box, haversine_km

logger = structlog.get_logger("tandem.candidate_service")

# Absorbs float noise so a candidate exactly on the radius stays included.
_RADIUS_EPSILON_KM = 1e-6


class Candidate(NamedTuple):
    profile: Profile
    distance_km: float | None


def distance_between(a: Profile, b: Profile) -> float | None:
    """Haversine distance in km, or None when either side has no location."""
    if not (a.has_location and b.has_location):
        return None
    return haversine_km(a.location_lat, a.location_lon, b.location_lat, b.location_lon)


class CandidateService:
    """Queries the profile store for a requester's eligible candidates."""

    async def load_requester(self, db_session: AsyncSession, user_id: int) -> Profile:
        """Return the requester's profile or raise :class:`IncompleteProfileError`.

        A missing profile is treated the same as an incomplete one.
        """
        profile = await db_session.get(Profile, user_id)
        if profile is None or not profile.is_complete:
            logger.info("requester_profile_incomplete", user_id=user_id)
            raise IncompleteProfileError("complete your profile to get recommendations")
        return profile

    async def find_candidates(
        self,
        db_session: AsyncSession,
        requester: Profile,
    ) -> list[Candidate]:
        """Return eligible candidates ordered by user id.

        Parameters
        ----------
        db_session:
            Active SQLAlchemy async session (read-only use).
        requester:
            The requester's complete profile.

        Raises
        ------
        IncompleteProfileError
            If ``requester`` is not complete; no query is issued.
        """
        if not requester.is_complete:
            raise IncompleteProfileError("complete your profile to get recommendations")

        me = requester.user_id
        radius = requester.radius_km
        log = logger.bind(user_id=me, radius_km=radius)

        stmt = (
            select(Profile)
            .where(
                Profile.is_complete.is_(True),
                Profile.user_id != me,
                ~self._connection_exists(me),
                ~self._dismissal_exists(me),
            )
            .order_by(Profile.user_id)
        )

        if radius > 0:
            if not requester.has_location:
                log.info("candidate_filter_no_requester_location")
                return []
            stmt = stmt.where(*self._bounding_box_clauses(requester, radius))

        result = await db_session.execute(stmt)
        profiles = result.scalars().all()

        candidates: list[Candidate] = []
        for profile in profiles:
            distance = distance_between(requester, profile)
            if radius > 0 and (distance is None or distance > radius + _RADIUS_EPSILON_KM):
                continue
            candidates.append(Candidate(profile=profile, distance_km=distance))

        log.info(
            "candidate_filter_complete",
            fetched=len(profiles),
            candidates=len(candidates),
        )
        return candidates

    # ── Query fragments ───────────────────────────────────────────────────

    @staticmethod
    def _connection_exists(user_id: int):
        return (
            select(Connection.id)
            .where(
                or_(
                    and_(
                        Connection.requester_id == user_id,
                        Connection.target_id == Profile.user_id,
                    ),
                    and_(
                        Connection.requester_id == Profile.user_id,
                        Connection.target_id == user_id,
                    ),
                )
            )
            .exists()
        )

    @staticmethod
    def _dismissal_exists(user_id: int):
        return (
            select(DismissedRecommendation.dismissed_user_id)
            .where(
                DismissedRecommendation.user_id == user_id,
                DismissedRecommendation.dismissed_user_id == Profile.user_id,
            )
            .exists()
        )

    @staticmethod
    def _bounding_box_clauses(requester: Profile, radius_km: int) -> list:
        min_lat, max_lat, min_lon, max_lon = bounding_box(
            requester.location_lat, requester.location_lon, radius_km + _RADIUS_EPSILON_KM
        )
        clauses = [
            Profile.location_lat.is_not(None),
            Profile.location_lon.is_not(None),
            Profile.location_lat.between(min_lat, max_lat),
        ]
        if min_lon is not None and max_lon is not None:
            clauses.append(Profile.location_lon.between(min_lon, max_lon))
        return clauses
