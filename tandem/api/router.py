"""
Tandem — Main API Router

Aggregates all sub-routers under a single prefix so that ``tandem.main``
can mount the entire API surface with one ``include_router`` call.
"""

from fastapi import APIRouter

from tandem.api import connections, profiles, recommendations

router = APIRouter()

router.include_router(recommendations.router, prefix="/recommendations", tags=["Recommendations"])
router.include_router(connections.router, prefix="/connections", tags=["Connections"])
router.include_router(profiles.router, prefix="/profiles", tags=["Profiles"])
