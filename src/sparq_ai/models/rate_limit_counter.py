"""RateLimitCounter SQLAlchemy model."""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from sparq_ai.db.base import Base


class RateLimitCounter(Base):
    """Request count for one caller and action within one fixed window.

    Used when the distributed cache is unavailable. Rows are keyed by
    ``"{action}:{caller}"`` plus the window start, so each window gets its own
    row and old windows can be deleted independently.
    """

    __tablename__ = "rate_limit_counters"

    key: Mapped[str] = mapped_column(String(512), primary_key=True)

    window_start: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        primary_key=True,
        index=True,
    )

    count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
