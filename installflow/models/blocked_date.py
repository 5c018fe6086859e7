"""Calendar exclusions for a client (rejected offers) or an engineer (time off)."""

from __future__ import annotations

from datetime import date

from sqlalchemy import String, Date, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from installflow.models.base import Base, ULIDMixin


class BlockedDate(Base, ULIDMixin):
    __tablename__ = "blocked_dates"

    scope: Mapped[str] = mapped_column(String(20))  # client | engineer
    client_id: Mapped[str | None] = mapped_column(
        String(26), ForeignKey("clients.id"), nullable=True, default=None, index=True
    )
    engineer_id: Mapped[str | None] = mapped_column(
        String(26), ForeignKey("engineers.id"), nullable=True, default=None, index=True
    )
    start_date: Mapped[date] = mapped_column(Date)
    end_date: Mapped[date] = mapped_column(Date)
    reason: Mapped[str] = mapped_column(String(500), default="")
