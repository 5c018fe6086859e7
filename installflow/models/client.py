"""Client model: the customer an installation is booked for."""

from __future__ import annotations

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from installflow.models.base import Base, ULIDMixin


class Client(Base, ULIDMixin):
    __tablename__ = "clients"

    full_name: Mapped[str] = mapped_column(String(200))
    email: Mapped[str] = mapped_column(String(255), default="")
    phone: Mapped[str] = mapped_column(String(50), default="")
