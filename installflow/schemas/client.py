from __future__ import annotations
from datetime import datetime
from pydantic import BaseModel


class ClientCreate(BaseModel):
    full_name: str
    email: str = ""
    phone: str = ""  # E.164 for SMS/WhatsApp offers


class ClientRead(BaseModel):
    id: str
    full_name: str
    email: str = ""
    phone: str = ""
    created_at: datetime

    model_config = {"from_attributes": True}
