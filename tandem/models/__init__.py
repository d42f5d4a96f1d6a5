"""
Tandem — ORM model registry.

Importing every model here ensures that Alembic (and any other tool that
inspects ``Base.metadata``) discovers all tables automatically.
"""

from tandem.models.user import User
from tandem.models.profile import Profile
from tandem.models.connection import Connection, ConnectionStatus
from tandem.models.dismissal import DismissedRecommendation

__all__ = [
    "User",
    "Profile",
    "Connection",
    "ConnectionStatus",
    "DismissedRecommendation",
]
