"""Engineer model and weekly working hours."""

from __future__ import annotations

from datetime import time

from sqlalchemy import String, Boolean, Integer, Time, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from installflow.models.base import Base, ULIDMixin


class Engineer(Base, ULIDMixin):
    __tablename__ = "engineers"

    name: Mapped[str] = mapped_column(String(200))
    email: Mapped[str] = mapped_column(String(255), default="")
    phone: Mapped[str] = mapped_column(String(50), default="")
    region: Mapped[str] = mapped_column(String(100), default="")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    # None falls back to scheduling.max_jobs_per_day
    max_jobs_per_day: Mapped[int | None] = mapped_column(Integer, nullable=True, default=None)

    working_hours = relationship(
        "EngineerWorkingHours",
        back_populates="engineer",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="EngineerWorkingHours.day_of_week",
    )


class EngineerWorkingHours(Base, ULIDMixin):
    __tablename__ = "engineer_working_hours"
    __table_args__ = (UniqueConstraint("engineer_id", "day_of_week"),)

    engineer_id: Mapped[str] = mapped_column(String(26), ForeignKey("engineers.id"))
    day_of_week: Mapped[int] = mapped_column(Integer)  # 0 = Monday ... 6 = Sunday
    start_time: Mapped[time] = mapped_column(Time)
    end_time: Mapped[time] = mapped_column(Time)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True)

    engineer = relationship("Engineer", back_populates="working_hours")
