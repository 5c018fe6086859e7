"""Per-order audit trail."""

from __future__ import annotations

from sqlalchemy import String, ForeignKey, JSON, Text
from sqlalchemy.orm import Mapped, mapped_column

from installflow.models.base import Base, ULIDMixin


class OrderActivity(Base, ULIDMixin):
    __tablename__ = "order_activities"

    order_id: Mapped[str] = mapped_column(String(26), ForeignKey("orders.id"), index=True)
    activity_type: Mapped[str] = mapped_column(String(50))  # offer_sent | offer_accepted | status_changed | ...
    description: Mapped[str] = mapped_column(Text, default="")
    details: Mapped[dict] = mapped_column(JSON, default=dict)
