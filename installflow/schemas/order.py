from __future__ import annotations
from datetime import date, datetime
from typing import Any, Literal
from pydantic import BaseModel, Field


class OrderCreate(BaseModel):
    order_number: str
    client_id: str
    estimated_duration_hours: float | None = Field(default=None, ge=0)
    job_type: Literal["installation", "assessment", "service_call"] = "installation"


class OrderRead(BaseModel):
    id: str
    order_number: str
    client_id: str
    engineer_id: str | None = None
    scheduled_install_date: date | None = None
    time_window: str | None = None
    estimated_duration_hours: float | None = None
    job_type: str
    status_enhanced: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class StatusChange(BaseModel):
    status: str
    expected_status: str | None = None  # rejects the move if someone else changed the order first
    engineer_id: str | None = None
    scheduled_date: date | None = None
    time_window: str | None = None


class BookingRequest(BaseModel):
    engineer_id: str
    install_date: date
    time_window: str | None = None
    force: bool = False


class ActivityRead(BaseModel):
    id: str
    order_id: str
    activity_type: str
    description: str = ""
    details: dict[str, Any] = {}
    created_at: datetime

    model_config = {"from_attributes": True}


class BlockedDateRead(BaseModel):
    id: str
    scope: str
    client_id: str | None = None
    engineer_id: str | None = None
    start_date: date
    end_date: date
    reason: str = ""

    model_config = {"from_attributes": True}
