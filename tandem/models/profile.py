"""
Tandem — Profile model (bio facets, location and match preferences).
"""

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    false,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tandem.database import Base

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite dev/test databases).
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Profile(Base):
    __tablename__ = "profiles"
    __table_args__ = (
        CheckConstraint("display_name <> ''", name="ck_profiles_display_name"),
        CheckConstraint(
            "location_lat BETWEEN -90 AND 90", name="ck_profiles_location_lat"
        ),
        CheckConstraint(
            "location_lon BETWEEN -180 AND 180", name="ck_profiles_location_lon"
        ),
        CheckConstraint("max_radius_km >= 0", name="ck_profiles_max_radius"),
        Index("idx_profiles_location", "location_lat", "location_lon"),
    )

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    about_me: Mapped[str | None] = mapped_column(Text, nullable=True)
    location_city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    location_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    location_lon: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_radius_km: Mapped[int | None] = mapped_column(
        Integer, nullable=True, comment="0 or NULL = unlimited"
    )
    analog_passions: Mapped[list | None] = mapped_column(
        JSONType, nullable=True, comment="Array of strings"
    )
    digital_delights: Mapped[list | None] = mapped_column(
        JSONType, nullable=True, comment="Array of strings"
    )
    collaboration_interests: Mapped[str | None] = mapped_column(Text, nullable=True)
    favorite_food: Mapped[str | None] = mapped_column(String(100), nullable=True)
    favorite_music: Mapped[str | None] = mapped_column(String(100), nullable=True)
    match_preferences: Mapped[dict | None] = mapped_column(
        JSONType, nullable=True, comment="Dimension -> weight 0..10"
    )
    is_complete: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=false(), nullable=False
    )

    # ── Relationships ──────────────────────────────────────────────
    user: Mapped["User"] = relationship("User", back_populates="profile")

    @property
    def has_location(self) -> bool:
        return self.location_lat is not None and self.location_lon is not None

    @property
    def radius_km(self) -> int:
        """Search radius with NULL folded into 0 (unlimited)."""
        return self.max_radius_km or 0

    def __repr__(self) -> str:
        return (
            f"<Profile user={self.user_id} complete={self.is_complete} "
            f"radius={self.radius_km}>"
        )
