from __future__ import annotations
from pydantic import BaseModel


class WSMessage(BaseModel):
    event: str  # invalidate
    table: str  # orders | job_offers | charger_dispatches | blocked_dates
