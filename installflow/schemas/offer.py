from __future__ import annotations
from datetime import date, datetime
from typing import Any, Literal
from pydantic import BaseModel, model_validator


class OfferCreate(BaseModel):
    engineer_id: str
    offered_date: date
    time_window: str | None = None
    delivery_channel: Literal["email", "sms", "whatsapp"] = "email"
    custom_message: str | None = None
    replace_existing: bool = False


class OfferRead(BaseModel):
    id: str
    order_id: str
    engineer_id: str
    offered_date: date
    time_window: str | None = None
    expires_at: datetime
    status: str
    delivery_channel: str
    delivery_details: dict[str, Any] = {}
    accepted_at: datetime | None = None
    rejected_at: datetime | None = None
    expired_at: datetime | None = None
    rejection_reason: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class DateRange(BaseModel):
    start_date: date
    end_date: date

    @model_validator(mode="after")
    def _ordered(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class OfferResponse(BaseModel):
    response: Literal["accept", "reject"]
    rejection_reason: str = ""
    block_this_date: bool = False
    block_date_ranges: list[DateRange] = []
