"""SQLAlchemy ORM models."""

from installflow.models.base import Base
from installflow.models.client import Client
from installflow.models.engineer import Engineer, EngineerWorkingHours
from installflow.models.order import Order
from installflow.models.job_offer import JobOffer
from installflow.models.blocked_date import BlockedDate
from installflow.models.activity import OrderActivity
from installflow.models.ledger import EngineerDayLedger
from installflow.models.charger_dispatch import ChargerDispatch

__all__ = [
    "Base", "Client", "Engineer", "EngineerWorkingHours", "Order",
    "JobOffer", "BlockedDate", "OrderActivity", "EngineerDayLedger",
    "ChargerDispatch",
]
