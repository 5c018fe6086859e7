"""Per engineer-day version counter used to serialize capacity reservations."""

from __future__ import annotations

from datetime import date

from sqlalchemy import String, Integer, Date, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from installflow.models.base import Base, ULIDMixin


class EngineerDayLedger(Base, ULIDMixin):
    __tablename__ = "engineer_day_ledger"
    __table_args__ = (UniqueConstraint("engineer_id", "day"),)

    engineer_id: Mapped[str] = mapped_column(String(26), ForeignKey("engineers.id"))
    day: Mapped[date] = mapped_column(Date)
    version: Mapped[int] = mapped_column(Integer, default=0)
