"""Initial schema — users, profiles, connections, dismissed recommendations.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


connection_status = postgresql.ENUM(
    "pending",
    "accepted",
    "dismissed",
    "disconnected",
    name="connection_status",
    create_type=False,
)


def upgrade() -> None:
    # ── 1. users ────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), unique=True, index=True, nullable=False),
        sa.Column("password_hash", sa.String(60), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("last_online", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("email <> ''", name="ck_users_email_not_empty"),
    )

    # ── 2. profiles (1:1 with users) ────────────────────────────────
    op.create_table(
        "profiles",
        sa.Column(
            "user_id",
            sa.Integer,
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("display_name", sa.String(100), nullable=False),
        sa.Column("about_me", sa.Text, nullable=True),
        sa.Column("location_city", sa.String(100), nullable=True),
        sa.Column("location_lat", sa.Float, nullable=True),
        sa.Column("location_lon", sa.Float, nullable=True),
        sa.Column(
            "max_radius_km",
            sa.Integer,
            nullable=True,
            comment="0 or NULL = unlimited",
        ),
        sa.Column(
            "analog_passions",
            postgresql.JSONB,
            nullable=True,
            comment="Array of strings",
        ),
        sa.Column(
            "digital_delights",
            postgresql.JSONB,
            nullable=True,
            comment="Array of strings",
        ),
        sa.Column("collaboration_interests", sa.Text, nullable=True),
        sa.Column("favorite_food", sa.String(100), nullable=True),
        sa.Column("favorite_music", sa.String(100), nullable=True),
        sa.Column(
            "match_preferences",
            postgresql.JSONB,
            nullable=True,
            comment="Dimension -> weight 0..10",
        ),
        sa.Column(
            "is_complete",
            sa.Boolean,
            server_default="false",
            nullable=False,
        ),
        sa.CheckConstraint("display_name <> ''", name="ck_profiles_display_name"),
        sa.CheckConstraint(
            "location_lat BETWEEN -90 AND 90", name="ck_profiles_location_lat"
        ),
        sa.CheckConstraint(
            "location_lon BETWEEN -180 AND 180", name="ck_profiles_location_lon"
        ),
        sa.CheckConstraint("max_radius_km >= 0", name="ck_profiles_max_radius"),
    )
    op.create_index(
        "idx_profiles_location",
        "profiles",
        ["location_lat", "location_lon"],
    )

    # ── 3. connections ──────────────────────────────────────────────
    connection_status.create(op.get_bind(), checkfirst=True)
    op.create_table(
        "connections",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "requester_id",
            sa.Integer,
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            index=True,
            nullable=False,
        ),
        sa.Column(
            "target_id",
            sa.Integer,
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            index=True,
            nullable=False,
        ),
        sa.Column("status", connection_status, index=True, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint("requester_id", "target_id", name="uq_connection_pair"),
        sa.CheckConstraint("requester_id <> target_id", name="ck_connection_not_self"),
    )
    # Incoming-request listing: WHERE target_id = ? AND status = 'pending'
    op.create_index(
        "ix_connections_target_status",
        "connections",
        ["target_id", "status"],
    )

    # ── 4. dismissed_recommendations ────────────────────────────────
    op.create_table(
        "dismissed_recommendations",
        sa.Column(
            "user_id",
            sa.Integer,
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "dismissed_user_id",
            sa.Integer,
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "dismissed_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.CheckConstraint(
            "user_id <> dismissed_user_id", name="ck_dismissal_not_self"
        ),
    )


def downgrade() -> None:
    # Drop in reverse order (children / dependents first).
    op.drop_table("dismissed_recommendations")

    op.drop_index("ix_connections_target_status", table_name="connections")
    op.drop_table("connections")
    connection_status.drop(op.get_bind(), checkfirst=True)

    op.drop_index("idx_profiles_location", table_name="profiles")
    op.drop_table("profiles")
    op.drop_table("users")
