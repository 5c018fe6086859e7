"""Exception hierarchy for the scheduling core.

Expected negative outcomes (capacity exceeded, illegal transition, expired
offer) are returned as result objects; these exceptions cover the cases the
caller cannot branch around.
"""

from __future__ import annotations

from typing import Any


class SchedulingError(Exception):
    """Base class for scheduling failures."""

    status_code = 500

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details


class InvalidInputError(SchedulingError):
    """Malformed identifiers or missing required fields."""

    status_code = 400


class NotFoundError(SchedulingError):
    status_code = 404

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} not found", entity=entity, id=entity_id)
        self.entity = entity
        self.entity_id = entity_id


class OfferConflictError(SchedulingError):
    """The order already has a pending offer, or moved while we were writing."""

    status_code = 409


class CapacityUnavailableError(SchedulingError):
    status_code = 409

    def __init__(self, result):
        super().__init__(result.message, reason=result.reason.value, **result.details)
        self.result = result


class NotificationDeliveryError(SchedulingError):
    """No channel delivered the offer. The offer row is already persisted."""

    status_code = 502

    def __init__(self, message: str, offer_id: str, attempts: list[dict]):
        super().__init__(message, offer_id=offer_id, attempts=attempts)
        self.offer_id = offer_id
        self.attempts = attempts
