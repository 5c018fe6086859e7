"""Job offer: a time-limited, token-addressable date proposal sent to a client."""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import String, Date, DateTime, ForeignKey, JSON, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from installflow.models.base import Base, ULIDMixin


class JobOffer(Base, ULIDMixin):
    __tablename__ = "job_offers"

    order_id: Mapped[str] = mapped_column(String(26), ForeignKey("orders.id"), index=True)
    engineer_id: Mapped[str] = mapped_column(String(26), ForeignKey("engineers.id"), index=True)
    offered_date: Mapped[date] = mapped_column(Date, index=True)
    time_window: Mapped[str | None] = mapped_column(String(100), nullable=True, default=None)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    client_token: Mapped[str] = mapped_column(String(96), unique=True, index=True)
    status: Mapped[str] = mapped_column(String(20), default="pending")  # pending | accepted | rejected | expired
    delivery_channel: Mapped[str] = mapped_column(String(20), default="email")  # email | sms | whatsapp
    delivery_details: Mapped[dict] = mapped_column(JSON, default=dict)
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, default=None)
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, default=None)
    expired_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, default=None)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)

    order = relationship("Order", lazy="selectin")
    engineer = relationship("Engineer", lazy="selectin")
