from __future__ import annotations
from datetime import date, datetime, time
from pydantic import BaseModel, Field, model_validator


class WorkingHoursEntry(BaseModel):
    day_of_week: int = Field(ge=0, le=6)  # 0 = Monday
    start_time: time
    end_time: time
    is_available: bool = True

    @model_validator(mode="after")
    def _end_after_start(self):
        if self.is_available and self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class WorkingHoursRead(BaseModel):
    day_of_week: int
    start_time: time
    end_time: time
    is_available: bool

    model_config = {"from_attributes": True}


class EngineerCreate(BaseModel):
    name: str
    email: str = ""
    phone: str = ""
    region: str = ""
    max_jobs_per_day: int | None = Field(default=None, ge=1)
    working_hours: list[WorkingHoursEntry] = []


class EngineerUpdate(BaseModel):
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    region: str | None = None
    is_active: bool | None = None
    max_jobs_per_day: int | None = Field(default=None, ge=1)


class EngineerRead(BaseModel):
    id: str
    name: str
    email: str = ""
    phone: str = ""
    region: str = ""
    is_active: bool
    max_jobs_per_day: int | None = None
    working_hours: list[WorkingHoursRead] = []
    created_at: datetime

    model_config = {"from_attributes": True}


class TimeOffCreate(BaseModel):
    start_date: date
    end_date: date | None = None
    reason: str = ""

    @model_validator(mode="after")
    def _ordered(self):
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self
