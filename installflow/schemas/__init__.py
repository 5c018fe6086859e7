"""Pydantic request/response schemas."""

from installflow.schemas.client import ClientCreate, ClientRead
from installflow.schemas.engineer import (
    EngineerCreate, EngineerUpdate, EngineerRead, WorkingHoursEntry, WorkingHoursRead, TimeOffCreate,
)
from installflow.schemas.order import (
    OrderCreate, OrderRead, StatusChange, BookingRequest, ActivityRead, BlockedDateRead,
)
from installflow.schemas.offer import OfferCreate, OfferRead, OfferResponse, DateRange
from installflow.schemas.capacity import CapacityCheckRequest, VirtualOrder, RecommendationRead
from installflow.schemas.dispatch import MarkDispatched, MarkDelivered, FlagIssue
from installflow.schemas.ws_messages import WSMessage

__all__ = [
    "ClientCreate", "ClientRead",
    "EngineerCreate", "EngineerUpdate", "EngineerRead", "WorkingHoursEntry", "WorkingHoursRead", "TimeOffCreate",
    "OrderCreate", "OrderRead", "StatusChange", "BookingRequest", "ActivityRead", "BlockedDateRead",
    "OfferCreate", "OfferRead", "OfferResponse", "DateRange",
    "CapacityCheckRequest", "VirtualOrder", "RecommendationRead",
    "MarkDispatched", "MarkDelivered", "FlagIssue",
    "WSMessage",
]
