"""
Tandem — Profiles API

The caller's own profile (read / upsert) and the public view of other
members' complete profiles.

Another member's profile is only visible to users with a pending or accepted
connection to them, or who currently have them among their recommendations.
Everyone else gets the same 404 as for a user that does not exist.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tandem.api.deps import (
    get_connection_service,
    get_current_user_id,
    get_profile_service,
    get_recommendation_service,
)
from tandem.database import get_db
from tandem.errors import IncompleteProfileError, NotFoundError
from tandem.models.profile import Profile
from tandem.schemas.profile import ProfileResponse, ProfileUpsert, PublicProfileResponse
from tandem.services.connection_service import ConnectionService, RelationshipState
from tandem.services.profile_service import ProfileService
from tandem.services.recommendation_service import RecommendationService

logger = structlog.get_logger("tandem.api.profiles")

router = APIRouter()

_VISIBLE_STATES = frozenset({
    RelationshipState.PENDING_OUTGOING,
    RelationshipState.PENDING_INCOMING,
    RelationshipState.ACCEPTED,
})


@router.get(
    "/me",
    response_model=ProfileResponse,
    summary="Get the caller's profile",
)
async def get_my_profile(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    service: ProfileService = Depends(get_profile_service),
) -> Profile:
    return await service.get_profile(db, user_id)


@router.put(
    "/me",
    response_model=ProfileResponse,
    summary="Create or replace the caller's profile",
)
async def upsert_my_profile(
    payload: ProfileUpsert,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    service: ProfileService = Depends(get_profile_service),
) -> Profile:
    """Validate every facet and weight, save, and mark the profile complete."""
    return await service.upsert_profile(db, user_id, payload.model_dump())


@router.get(
    "/{other_id}",
    response_model=PublicProfileResponse,
    summary="Get another member's public profile",
)
async def get_profile(
    other_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    service: ProfileService = Depends(get_profile_service),
    connection_service: ConnectionService = Depends(get_connection_service),
    recommendation_service: RecommendationService = Depends(get_recommendation_service),
) -> Profile:
    log = logger.bind(user_id=user_id, other_id=other_id)
    log.info("get_profile")

    # The connection lookup opens its own session, so it runs before ``db``
    # starts a transaction.
    state = await connection_service.relationship(user_id, other_id)
    if state not in _VISIBLE_STATES and not await _is_recommended(
        db, recommendation_service, user_id, other_id
    ):
        log.info("get_profile_hidden", relationship=state.value)
        raise NotFoundError(f"user {other_id} not found")

    return await service.get_profile(db, other_id, require_complete=True)


async def _is_recommended(
    db: AsyncSession,
    recommendation_service: RecommendationService,
    user_id: int,
    other_id: int,
) -> bool:
    try:
        recommended = await recommendation_service.recommended_ids(db, user_id)
    except IncompleteProfileError:
        return False
    return other_id in recommended
