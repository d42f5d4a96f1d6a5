"""
Tandem — Connection model and its lifecycle status.
"""

import enum
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from tandem.database import Base


class ConnectionStatus(str, enum.Enum):
    """Stored status of a directed connection row."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    # Legacy terminal value; not written by the state machine.
    DISMISSED = "dismissed"
    DISCONNECTED = "disconnected"


class Connection(Base):
    __tablename__ = "connections"
    __table_args__ = (
        UniqueConstraint("requester_id", "target_id", name="uq_connection_pair"),
        CheckConstraint("requester_id <> target_id", name="ck_connection_not_self"),
        Index("ix_connections_target_status", "target_id", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    requester_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    target_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    status: Mapped[ConnectionStatus] = mapped_column(
        Enum(
            ConnectionStatus,
            name="connection_status",
            values_callable=lambda e: [m.value for m in e],
        ),
        index=True,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def peer_of(self, user_id: int) -> int:
        return self.target_id if self.requester_id == user_id else self.requester_id

    def __repr__(self) -> str:
        return (
            f"<Connection {self.requester_id} -> {self.target_id} "
            f"status={self.status.value!r}>"
        )
