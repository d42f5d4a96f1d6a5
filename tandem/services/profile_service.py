"""
Tandem — Profile upsert and lookup.

A profile becomes *complete* (and therefore visible to the recommender and
the connection state machine) the first time it is saved through
``upsert_profile``.  Every save validates the location, radius, interest
lists and match weights before touching the database.
"""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from tandem.database import translate_transient_errors
from tandem.errors import InvalidError, NotFoundError
from tandem.models.profile import Profile
from tandem.models.user import User
from tandem.services.weight_service import WeightService

logger = structlog.get_logger("tandem.profile_service")

_LIST_FACETS = ("analog_passions", "digital_delights")
_TEXT_FACETS = (
    "about_me",
    "location_city",
    "collaboration_interests",
    "favorite_food",
    "favorite_music",
)


class ProfileService:
    """Validates and persists profile facets."""

    MAX_DISPLAY_NAME_LENGTH: int = 100
    MAX_SHORT_TEXT_LENGTH: int = 100
    MAX_LIST_ITEMS: int = 50

    def __init__(self, weight_service: WeightService | None = None) -> None:
        self.weight_service = weight_service or WeightService()

    async def upsert_profile(
        self,
        db_session: AsyncSession,
        user_id: int,
        data: dict[str, Any],
    ) -> Profile:
        """Create or replace ``user_id``'s profile and mark it complete.

        Raises
        ------
        NotFoundError
            If the user does not exist.
        InvalidError
            If any facet fails validation.
        TransientError
            If the database is locked by another writer.
        """
        log = logger.bind(user_id=user_id)
        log.info("upsert_profile_start")

        values = self.validate(data)

        with translate_transient_errors():
            user = await db_session.get(User, user_id)
            if user is None:
                log.warning("upsert_profile_user_not_found")
                raise NotFoundError(f"user {user_id} not found")

            profile = await db_session.get(Profile, user_id)
            created = profile is None
            if created:
                profile = Profile(user_id=user_id)
                db_session.add(profile)

            for field, value in values.items():
                setattr(profile, field, value)
            profile.is_complete = True

            await db_session.flush()
        log.info("upsert_profile_complete", created=created)
        return profile

    async def get_profile(
        self,
        db_session: AsyncSession,
        user_id: int,
        *,
        require_complete: bool = False,
    ) -> Profile:
        profile = await db_session.get(Profile, user_id)
        if profile is None or (require_complete and not profile.is_complete):
            raise NotFoundError(f"profile for user {user_id} not found")
        return profile

    # ── Validation ────────────────────────────────────────────────────────

    def validate(self, data: dict[str, Any]) -> dict[str, Any]:
        """Return the normalised column values for a profile payload."""
        display_name = (data.get("display_name") or "").strip()
        if not display_name:
            raise InvalidError("display_name is required")
        if len(display_name) > self.MAX_DISPLAY_NAME_LENGTH:
            raise InvalidError(
                f"display_name must be at most {self.MAX_DISPLAY_NAME_LENGTH} characters"
            )

        values: dict[str, Any] = {"display_name": display_name}

        for field in _TEXT_FACETS:
            text = data.get(field)
            if text is not None:
                text = str(text).strip() or None
            if (
                text is not None
                and field in ("location_city", "favorite_food", "favorite_music")
                and len(text) > self.MAX_SHORT_TEXT_LENGTH
            ):
                raise InvalidError(
                    f"{field} must be at most {self.MAX_SHORT_TEXT_LENGTH} characters"
                )
            values[field] = text

        for field in _LIST_FACETS:
            values[field] = self._validate_items(field, data.get(field))

        lat, lon = data.get("location_lat"), data.get("location_lon")
        if (lat is None) != (lon is None):
            raise InvalidError("location_lat and location_lon must be given together")
        if lat is not None:
            if not -90.0 <= lat <= 90.0:
                raise InvalidError(f"location_lat must be within [-90, 90], got {lat}")
            if not -180.0 <= lon <= 180.0:
                raise InvalidError(f"location_lon must be within [-180, 180], got {lon}")
        values["location_lat"] = lat
        values["location_lon"] = lon

        radius = data.get("max_radius_km")
        if radius is not None and (isinstance(radius, bool) or radius < 0):
            raise InvalidError(f"max_radius_km must be 0 or positive, got {radius}")
        values["max_radius_km"] = radius

        preferences = data.get("match_preferences")
        weights = self.weight_service.resolve(preferences)
        values["match_preferences"] = weights.as_dict()

        return values

    def _validate_items(self, field: str, items: Any) -> list[str]:
        if items is None:
            return []
        if not isinstance(items, (list, tuple)):
            raise InvalidError(f"{field} must be a list of strings")
        if len(items) > self.MAX_LIST_ITEMS:
            raise InvalidError(f"{field} accepts at most {self.MAX_LIST_ITEMS} items")

        cleaned: list[str] = []
        for item in items:
            if not isinstance(item, str):
                raise InvalidError(f"{field} must be a list of strings")
            item = item.strip()
            if item and item not in cleaned:
                cleaned.append(item)
        return cleaned
