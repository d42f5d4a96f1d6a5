"""
Tandem — DismissedRecommendation model (append-only suppression ledger).
"""

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, func
from sqlalchemy.orm import Mapped, mapped_column

from tandem.database import Base


class DismissedRecommendation(Base):
    __tablename__ = "dismissed_recommendations"
    __table_args__ = (
        CheckConstraint(
            "user_id <> dismissed_user_id", name="ck_dismissal_not_self"
        ),
    )

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    dismissed_user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    dismissed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<DismissedRecommendation {self.user_id} x {self.dismissed_user_id}>"
