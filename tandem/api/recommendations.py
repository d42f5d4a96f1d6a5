"""
Tandem — Recommendations API

Ranked compatibility recommendations for the caller, and the dismissal
action that removes a candidate from the caller's pool for good.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from tandem.api.deps import (
    get_current_user_id,
    get_dismissal_service,
    get_recommendation_service,
)
from tandem.database import get_db
from tandem.schemas.recommendation import (
    DismissResponse,
    RecommendationDetailedResponse,
    RecommendationIdsResponse,
    RecommendationItem,
)
from tandem.services.dismissal_service import DismissalService
from tandem.services.recommendation_service import RecommendationService

logger = structlog.get_logger("tandem.api.recommendations")

router = APIRouter()


# ──────────────────────────────────────────────────────────────────────────────
# GET / - Recommended user ids
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "",
    response_model=RecommendationIdsResponse,
    summary="List recommended user ids",
)
async def list_recommendations(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    service: RecommendationService = Depends(get_recommendation_service),
) -> RecommendationIdsResponse:
    """Return up to ten recommended user ids, best match first."""
    ids = await service.recommended_ids(db, user_id)
    return RecommendationIdsResponse(recommendations=ids)


# ──────────────────────────────────────────────────────────────────────────────
# GET /detailed - Recommendations with scores
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/detailed",
    response_model=RecommendationDetailedResponse,
    summary="List recommendations with scores and distance",
)
async def list_recommendations_detailed(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    service: RecommendationService = Depends(get_recommendation_service),
) -> RecommendationDetailedResponse:
    results = await service.recommend(db, user_id)
    return RecommendationDetailedResponse(
        recommendations=[
            RecommendationItem(
                user_id=r.user_id,
                score=round(r.score, 4),
                score_percentage=round(r.score_percentage, 2),
                distance_km=round(r.distance_km, 3) if r.distance_km is not None else None,
            )
            for r in results
        ]
    )


# ──────────────────────────────────────────────────────────────────────────────
# POST /{target_id}/dismiss - Never recommend this user again
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/{target_id}/dismiss",
    response_model=DismissResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Dismiss a recommended user",
)
async def dismiss_recommendation(
    target_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    service: DismissalService = Depends(get_dismissal_service),
) -> DismissResponse:
    """Add ``target_id`` to the caller's dismissal ledger.

    Idempotent: dismissing the same user again succeeds without a second row.
    """
    created = await service.dismiss(db, user_id, target_id)
    return DismissResponse(dismissed=True, created=created)
