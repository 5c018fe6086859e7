from __future__ import annotations
from datetime import date
from pydantic import BaseModel, Field


class VirtualOrder(BaseModel):
    id: str = ""
    estimated_duration_hours: float | None = Field(default=None, ge=0)


class CapacityCheckRequest(BaseModel):
    order_id: str
    engineer_id: str
    offered_date: date
    virtual_orders: list[VirtualOrder] = []


class RecommendationRead(BaseModel):
    engineer_id: str
    engineer_name: str
    available_date: date
    committed_jobs: int
    remaining_minutes: int

    model_config = {"from_attributes": True}
