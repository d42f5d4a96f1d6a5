"""
Tandem — Shared API dependencies.

Caller identity comes from the upstream auth gateway, which forwards the
authenticated user id in a trusted header (``AUTH_USER_HEADER``).  Service
instances are process-wide singletons so tests can swap them through
``app.dependency_overrides``.
"""

from __future__ import annotations

import structlog
from fastapi import HTTPException, Request, status

from tandem.config import get_settings
from tandem.database import async_session_factory
from tandem.services.connection_service import ConnectionService
from tandem.services.dismissal_service import DismissalService
from tandem.services.profile_service import ProfileService
from tandem.services.recommendation_service import RecommendationService

logger = structlog.get_logger("tandem.api.deps")


async def get_current_user_id(request: Request) -> int:
    """Return the authenticated caller's id or reject with 401."""
    header = get_settings().AUTH_USER_HEADER
    raw = request.headers.get(header)
    if not raw:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing {header} header.",
        )
    try:
        user_id = int(raw)
    except ValueError:
        user_id = 0
    if user_id <= 0:
        logger.warning("auth_header_invalid", header=header)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid {header} header.",
        )
    return user_id


# ── Service singletons ────────────────────────────────────────────────────────

_connection_service: ConnectionService | None = None
_recommendation_service: RecommendationService | None = None
_dismissal_service: DismissalService | None = None
_profile_service: ProfileService | None = None


def get_connection_service() -> ConnectionService:
    global _connection_service
    if _connection_service is None:
        _connection_service = ConnectionService(async_session_factory)
    return _connection_service


def get_recommendation_service() -> RecommendationService:
    global _recommendation_service
    if _recommendation_service is None:
        _recommendation_service = RecommendationService()
    return _recommendation_service


def get_dismissal_service() -> DismissalService:
    global _dismissal_service
    if _dismissal_service is None:
        _dismissal_service = DismissalService()
    return _dismissal_service


def get_profile_service() -> ProfileService:
    global _profile_service
    if _profile_service is None:
        _profile_service = ProfileService()
    return _profile_service
