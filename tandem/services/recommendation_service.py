"""
Tandem — Recommendation orchestrator.

Runs one recommendation request end to end:

  1. Load the requester's profile (IncompleteProfile short-circuits here)
  2. Resolve the requester's dimension weights
  3. Fetch the filtered candidate pool
  4. Score, threshold, sort and truncate

Results are ephemeral; nothing is persisted.
"""

from __future__ import annotations

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from tandem.services.candidate_service import CandidateService
from tandem.services.scoring_service import RecommendationResult, ScoringService
from tandem.services.weight_service import WeightService

logger = structlog.get_logger("tandem.recommendation_service")


class RecommendationService:

    def __init__(
        self,
        candidate_service: CandidateService | None = None,
        weight_service: WeightService | None = None,
        scoring_service: ScoringService | None = None,
    ) -> None:
        self.candidate_service = candidate_service or CandidateService()
        self.weight_service = weight_service or WeightService()
        self.scoring_service = scoring_service or ScoringService()

    async def recommend(
        self, db_session: AsyncSession, user_id: int
    ) -> list[RecommendationResult]:
        """Return at most ten ranked recommendations for ``user_id``."""
        log = logger.bind(user_id=user_id)
        log.info("recommendations_start")

        requester = await self.candidate_service.load_requester(db_session, user_id)
        weights = self.weight_service.resolve(requester.match_preferences)

        if weights.total == 0:
            # every percentage would be 0, below the cutoff
            log.info("recommendations_complete", returned=0, reason="all_weights_zero")
            return []

        candidates = await self.candidate_service.find_candidates(db_session, requester)
        ranked = self.scoring_service.rank(requester, weights, candidates)

        log.info(
            "recommendations_complete",
            candidates=len(candidates),
            returned=len(ranked),
        )
        return ranked

    async def recommended_ids(self, db_session: AsyncSession, user_id: int) -> list[int]:
        results = await self.recommend(db_session, user_id)
        return [r.user_id for r in results]
