"""Order model: one installation job moving through the scheduling pipeline."""

from __future__ import annotations

from datetime import date

from sqlalchemy import String, Float, Date, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from installflow.models.base import Base, ULIDMixin, UpdatedAtMixin


class Order(Base, ULIDMixin, UpdatedAtMixin):
    __tablename__ = "orders"

    order_number: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    client_id: Mapped[str] = mapped_column(String(26), ForeignKey("clients.id"))
    engineer_id: Mapped[str | None] = mapped_column(
        String(26), ForeignKey("engineers.id"), nullable=True, default=None, index=True
    )
    scheduled_install_date: Mapped[date | None] = mapped_column(Date, nullable=True, default=None, index=True)
    time_window: Mapped[str | None] = mapped_column(String(100), nullable=True, default=None)
    estimated_duration_hours: Mapped[float | None] = mapped_column(Float, nullable=True, default=None)
    job_type: Mapped[str] = mapped_column(String(30), default="installation")  # installation | assessment | service_call
    status_enhanced: Mapped[str] = mapped_column(String(30), default="needs_scheduling", index=True)

    client = relationship("Client", lazy="selectin")
    engineer = relationship("Engineer", lazy="selectin")
