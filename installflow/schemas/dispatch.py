from __future__ import annotations
from datetime import datetime
from pydantic import BaseModel


class MarkDispatched(BaseModel):
    courier: str
    tracking_number: str = ""
    sent_from: str = "warehouse"
    notes: str = ""
    dispatched_at: datetime | None = None


class MarkDelivered(BaseModel):
    delivered_at: datetime | None = None


class FlagIssue(BaseModel):
    notes: str
