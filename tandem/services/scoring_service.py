"""
Tandem — Compatibility scoring engine.

Scores every filtered candidate against the requester along six dimensions,
weights each sub-score by the requester's 0–10 importance weight, and ranks
the survivors.

Per-candidate calculation:
  1. Dimension base score (always computed as if the weight were neutral).
  2. Weighted contribution:  base × weight / N   (N is per dimension:
     interests 3, collaboration 15, food 10, music 10).
  3. Location contributes  proximity × uplift × weight  directly.
  4. raw_score         = Σ contributions
     score_percentage  = raw_score / Σ weights × 100   (clamped to 100;
     0 when every weight is 0)

Ranking drops candidates under 25 %, sorts by raw score descending (ties by
smaller user id) and keeps the top 10.

All taxonomy tables are immutable and built once at import.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping

import structlog

from tandem.models.profile import Profile
from tandem.services.candidate_service import Candidate
from tandem.services.weight_service import MatchWeights

logger = structlog.get_logger("tandem.scoring_service")


def _frozen_table(table: dict[str, tuple[str, ...]]) -> Mapping[str, frozenset[str]]:
    return MappingProxyType({name: frozenset(words) for name, words in table.items()})


# ──────────────────────────────────────────────────────────────────────────────
# Taxonomy tables
# ──────────────────────────────────────────────────────────────────────────────

INTEREST_GROUPS = _frozen_table({
    "music": ("music", "singing", "piano", "guitar", "drums", "composition", "recording"),
    "visual-arts": ("art", "painting", "drawing", "photography", "design", "graphics"),
    "tech": ("programming", "coding", "software", "hardware", "electronics", "robotics"),
    "crafts": ("knitting", "sewing", "woodworking", "pottery", "jewelry", "crafting"),
    "games": ("gaming", "boardgames", "videogames", "rpg", "strategy", "puzzle"),
    "outdoor": ("hiking", "cycling", "running", "camping", "climbing", "nature"),
    "food": ("cooking", "baking", "brewing", "wine", "coffee", "culinary"),
    "fitness": ("yoga", "martial arts", "gym", "sports", "dance", "fitness"),
})

COLLABORATION_KEYWORDS: frozenset[str] = frozenset(
    {"d&d", "teaching", "learning", "collaborative"}
)

COMPLEMENTARY_PAIRS = _frozen_table({
    "teach": ("learn", "student", "beginner"),
    "mentor": ("mentee", "guidance", "help"),
    "code": ("programming", "development", "software"),
    "design": ("ui", "ux", "graphic", "visual"),
    "music": ("band", "jam", "collaborate", "duet"),
    "art": ("paint", "draw", "create", "studio"),
    "craft": ("handmade", "diy", "workshop", "build"),
    "gaming": ("multiplayer", "coop", "guild", "team"),
})

COLLABORATION_CATEGORIES = _frozen_table({
    "creative": ("art", "design", "music", "writing", "craft", "creative"),
    "technical": ("code", "programming", "tech", "computer", "digital"),
    "social": ("group", "team", "community", "meetup", "social"),
    "educational": ("teach", "learn", "study", "workshop", "class"),
    "gaming": ("game", "gaming", "play", "rpg", "board"),
})

CUISINE_FAMILIES = _frozen_table({
    "asian": ("chinese", "japanese", "thai", "korean", "vietnamese", "indian"),
    "european": ("italian", "french", "german", "spanish", "greek"),
    "healthy": ("vegan", "vegetarian", "organic", "salad"),
})

GENRE_FAMILIES = _frozen_table({
    "rock": ("rock", "metal", "punk", "alternative", "grunge"),
    "electronic": ("techno", "house", "edm", "ambient", "synth"),
    "jazz": ("jazz", "blues", "swing", "bebop"),
})

# (max distance km, multiplicative uplift); first match wins
PROXIMITY_UPLIFTS: tuple[tuple[float, float], ...] = (
    (2.0, 1.30),
    (5.0, 1.20),
    (10.0, 1.10),
)


@dataclass(frozen=True)
class RecommendationResult:
    user_id: int
    score: float
    score_percentage: float
    distance_km: float | None = None
    breakdown: Mapping[str, float] = field(default_factory=dict, compare=False)


class ScoringService:
    """Weighted multi-dimension compatibility scorer.

    Stateless; the constants are class attributes so tests can introspect
    them.
    """

    # ── Constants ─────────────────────────────────────────────────────────

    EXACT_INTEREST_POINTS: int = 3
    SEMANTIC_INTEREST_POINTS: int = 1
    HIGH_OVERLAP_BONUS: int = 5
    HIGH_OVERLAP_RATIO: float = 0.5

    KEYWORD_POINTS: int = 15
    COMPLEMENTARY_POINTS: int = 10
    CATEGORY_POINTS: int = 5

    EXACT_TASTE_POINTS: int = 10
    FAMILY_TASTE_POINTS: int = 6

    INTEREST_NORMALIZER: float = 3.0
    COLLABORATION_NORMALIZER: float = 15.0
    TASTE_NORMALIZER: float = 10.0

    UNLIMITED_RADIUS_FACTOR: float = 0.5

    MIN_SCORE_PERCENTAGE: float = 25.0
    MAX_RESULTS: int = 10

    # ══════════════════════════════════════════════════════════════════════
    # Ranking
    # ══════════════════════════════════════════════════════════════════════

    def rank(
        self,
        requester: Profile,
        weights: MatchWeights,
        candidates: Iterable[Candidate],
    ) -> list[RecommendationResult]:
        """Score, threshold, sort and truncate a candidate pool."""
        scored: list[RecommendationResult] = []
        evaluated = 0
        for candidate in candidates:
            evaluated += 1
            result = self.score_candidate(
                requester, candidate.profile, weights, candidate.distance_km
            )
            if result.score_percentage >= self.MIN_SCORE_PERCENTAGE:
                scored.append(result)

        scored.sort(key=lambda r: (-r.score, r.user_id))
        ranked = scored[: self.MAX_RESULTS]

        logger.info(
            "rank_complete",
            requester_id=requester.user_id,
            evaluated=evaluated,
            above_threshold=len(scored),
            returned=len(ranked),
        )
        return ranked

    def score_candidate(
        self,
        requester: Profile,
        candidate: Profile,
        weights: MatchWeights,
        distance_km: float | None,
    ) -> RecommendationResult:
        """Compute raw score, percentage and per-dimension breakdown."""
        breakdown = {
            "analog_passions": self.interest_score(
                requester.analog_passions, candidate.analog_passions
            ) * weights.analog_passions / self.INTEREST_NORMALIZER,
            "digital_delights": self.interest_score(
                requester.digital_delights, candidate.digital_delights
            ) * weights.digital_delights / self.INTEREST_NORMALIZER,
            "collaboration_interests": self.collaboration_score(
                requester.collaboration_interests, candidate.collaboration_interests
            ) * weights.collaboration_interests / self.COLLABORATION_NORMALIZER,
            "favorite_food": self.food_score(
                requester.favorite_food, candidate.favorite_food
            ) * weights.favorite_food / self.TASTE_NORMALIZER,
            "favorite_music": self.music_score(
                requester.favorite_music, candidate.favorite_music
            ) * weights.favorite_music / self.TASTE_NORMALIZER,
            "location": self.location_score(
                distance_km, requester.radius_km, weights.location
            ),
        }

        raw_score = sum(breakdown.values())
        return RecommendationResult(
            user_id=candidate.user_id,
            score=raw_score,
            score_percentage=self.percentage(raw_score, weights),
            distance_km=distance_km,
            breakdown=MappingProxyType(breakdown),
        )

    @staticmethod
    def percentage(raw_score: float, weights: MatchWeights) -> float:
        total = weights.total
        if total == 0:
            return 0.0
        return min(raw_score / total * 100.0, 100.0)

    # ══════════════════════════════════════════════════════════════════════
    # Dimension base scores
    # ══════════════════════════════════════════════════════════════════════

    def interest_score(
        self,
        requester_items: Iterable[str] | None,
        candidate_items: Iterable[str] | None,
    ) -> int:
        """Score two interest lists (analog passions or digital delights).

        Exact matches earn 3 each.  Every (requester, candidate) pair of
        different items sharing a semantic group earns 1, so an item that
        matched exactly can still pair with other items.  A Jaccard overlap
        of exact matches above 50 % adds a flat 5.
        """
        mine = _normalise_items(requester_items)
        theirs = _normalise_items(candidate_items)
        if not mine or not theirs:
            return 0

        exact = mine & theirs
        score = self.EXACT_INTEREST_POINTS * len(exact)

        their_groups = {item: _groups_of(item, INTEREST_GROUPS) for item in theirs}
        for mine_item in mine:
            mine_groups = _groups_of(mine_item, INTEREST_GROUPS)
            if not mine_groups:
                continue
            for their_item, groups in their_groups.items():
                if their_item != mine_item and mine_groups & groups:
                    score += self.SEMANTIC_INTEREST_POINTS

        if len(exact) / len(mine | theirs) > self.HIGH_OVERLAP_RATIO:
            score += self.HIGH_OVERLAP_BONUS

        return score

    def collaboration_score(self, requester_text: str | None, candidate_text: str | None) -> int:
        """Score two free-text collaboration descriptions."""
        a = (requester_text or "").strip().lower()
        b = (candidate_text or "").strip().lower()
        if not a or not b:
            return 0

        score = 0
        for keyword in COLLABORATION_KEYWORDS:
            if keyword in a and keyword in b:
                score += self.KEYWORD_POINTS

        for primary, related in COMPLEMENTARY_PAIRS.items():
            if primary in a:
                score += self.COMPLEMENTARY_POINTS * sum(1 for rel in related if rel in b)
            if primary in b:
                score += self.COMPLEMENTARY_POINTS * sum(1 for rel in related if rel in a)

        shared_categories = _groups_of(a, COLLABORATION_CATEGORIES) & _groups_of(
            b, COLLABORATION_CATEGORIES
        )
        score += self.CATEGORY_POINTS * len(shared_categories)

        return score

    def food_score(self, requester_food: str | None, candidate_food: str | None) -> int:
        return self._taste_score(requester_food, candidate_food, CUISINE_FAMILIES)

    def music_score(self, requester_music: str | None, candidate_music: str | None) -> int:
        return self._taste_score(requester_music, candidate_music, GENRE_FAMILIES)

    def location_score(
        self, distance_km: float | None, radius_km: int, weight: int
    ) -> float:
        """Weighted proximity contribution.

        Weight 0 contributes nothing.  An unlimited radius gives a flat
        half-weight for any distance.  Otherwise the squared remaining
        fraction of the radius is uplifted for very close candidates.
        """
        if weight == 0:
            return 0.0
        if radius_km <= 0:
            return self.UNLIMITED_RADIUS_FACTOR * weight
        if distance_km is None:
            return 0.0

        proximity = min(max(1.0 - distance_km / radius_km, 0.0), 1.0) ** 2
        return proximity * self.proximity_uplift(distance_km) * weight

    @staticmethod
    def proximity_uplift(distance_km: float) -> float:
        for limit_km, uplift in PROXIMITY_UPLIFTS:
            if distance_km <= limit_km:
                return uplift
        return 1.0

    # ── Internal helpers ──────────────────────────────────────────────────

    def _taste_score(
        self,
        a: str | None,
        b: str | None,
        families: Mapping[str, frozenset[str]],
    ) -> int:
        a = (a or "").strip().lower()
        b = (b or "").strip().lower()
        if not a or not b:
            return 0
        if a == b:
            return self.EXACT_TASTE_POINTS
        if _groups_of(a, families) & _groups_of(b, families):
            return self.FAMILY_TASTE_POINTS
        return 0


def _normalise_items(items: Iterable[str] | None) -> set[str]:
    if not items:
        return set()
    return {str(item).strip().lower() for item in items if str(item).strip()}


def _groups_of(text: str, table: Mapping[str, frozenset[str]]) -> set[str]:
    """Names of the groups with at least one keyword contained in ``text``."""
    return {name for name, words in table.items() if any(w in text for w in words)}
