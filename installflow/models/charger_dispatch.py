"""Charger dispatch record: shipment of a physical unit for an order."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import String, DateTime, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from installflow.models.base import Base, ULIDMixin


class ChargerDispatch(Base, ULIDMixin):
    __tablename__ = "charger_dispatches"

    order_id: Mapped[str] = mapped_column(String(26), ForeignKey("orders.id"), unique=True)
    status: Mapped[str] = mapped_column(String(30), default="pending_dispatch")  # pending_dispatch | dispatched | delivered | issue
    tracking_number: Mapped[str] = mapped_column(String(100), default="")
    notes: Mapped[str] = mapped_column(Text, default="")
    dispatched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, default=None)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, default=None)

    order = relationship("Order")
