"""
Tandem — Scoring Weight Resolver

Reads a profile's ``match_preferences`` JSON (one 0–10 importance weight per
scoring dimension) and turns it into an immutable :class:`MatchWeights`
value the scorer can consume.  Missing dimensions count as 0; anything that
is not an integer in range is rejected with :class:`InvalidError`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

import structlog

from tandem.errors import InvalidError

logger = structlog.get_logger("tandem.weight_service")

DIMENSIONS: tuple[str, ...] = (
    "analog_passions",
    "digital_delights",
    "collaboration_interests",
    "favorite_food",
    "favorite_music",
    "location",
)

MIN_WEIGHT = 0
MAX_WEIGHT = 10


@dataclass(frozen=True)
class MatchWeights:
    analog_passions: int = 0
    digital_delights: int = 0
    collaboration_interests: int = 0
    favorite_food: int = 0
    favorite_music: int = 0
    location: int = 0

    @property
    def total(self) -> int:
        """Sum of all six weights: the denominator of ``score_percentage``."""
        return sum(self.as_dict().values())

    def as_dict(self) -> dict[str, int]:
        return {dim: getattr(self, dim) for dim in DIMENSIONS}


class WeightService:
    """Validates and normalises per-user dimension weights."""

    def resolve(self, preferences: Mapping[str, Any] | None) -> MatchWeights:
        """Return the :class:`MatchWeights` for a raw preferences mapping.

        Unknown keys are ignored so that older profiles carrying retired
        dimensions still resolve.
        """
        if preferences is None:
            return MatchWeights()
        if not isinstance(preferences, Mapping):
            raise InvalidError("match_preferences must be an object")

        values: dict[str, int] = {}
        for dim in DIMENSIONS:
            raw = preferences.get(dim, 0)
            values[dim] = self._validate_weight(dim, raw)

        unknown = set(preferences) - set(DIMENSIONS)
        if unknown:
            logger.debug("unknown_preference_keys_ignored", keys=sorted(unknown))

        return MatchWeights(**values)

    @staticmethod
    def _validate_weight(dimension: str, raw: Any) -> int:
        # bool is an int subclass; reject it explicitly
        if isinstance(raw, bool):
            raise InvalidError(f"weight for {dimension} must be an integer")
        if isinstance(raw, float) and raw.is_integer():
            raw = int(raw)
        if not isinstance(raw, int):
            raise InvalidError(f"weight for {dimension} must be an integer")
        if not MIN_WEIGHT <= raw <= MAX_WEIGHT:
            raise InvalidError(
                f"weight for {dimension} must be between {MIN_WEIGHT} and "
                f"{MAX_WEIGHT}, got {raw}"
            )
        return raw
