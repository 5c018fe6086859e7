"""Job offer lifecycle: send, public lookup, client response, expiry.

An offer puts a soft hold on the engineer-day from the moment it is sent
until it is accepted, rejected or expires. Sending runs the capacity check
and the offer insert under the engineer-day reservation so two admins
cannot both fill the last slot.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum

from jinja2.sandbox import SandboxedEnvironment
from sqlalchemy.ext.asyncio import AsyncSession

from installflow.config import Settings
from installflow.db import crud
from installflow.errors import (
    InvalidInputError, NotFoundError, NotificationDeliveryError, OfferConflictError,
)
from installflow.services import capacity, pipeline
from installflow.services.clock import Clock, TokenFactory, as_utc, generate_client_token, utcnow
from installflow.services.notifications import CHANNELS, NotificationRouter
from installflow.services.pipeline import OrderStatus, TransitionResult
from installflow.services.validation import require_date, require_id

logger = logging.getLogger(__name__)

_templates = SandboxedEnvironment(autoescape=False)

TIME_WINDOW_TBC = "To be confirmed"


class OfferDecision(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"


class OfferOutcome(str, Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"
    ALREADY_RESPONDED = "already_responded"
    CONFLICT = "conflict"


@dataclass
class RejectionDetails:
    """What the client told us when turning an offer down."""
    reason: str = ""
    block_this_date: bool = False
    blocked_ranges: list[tuple[date, date]] = field(default_factory=list)


@dataclass
class OfferResponseResult:
    outcome: OfferOutcome
    message: str
    offer_id: str
    order_id: str
    blocked_days: int = 0
    transition: TransitionResult | None = None

    def to_dict(self) -> dict:
        data = {
            "outcome": self.outcome.value,
            "message": self.message,
            "offer_id": self.offer_id,
            "order_id": self.order_id,
            "blocked_days": self.blocked_days,
        }
        if self.transition is not None:
            data["transition"] = self.transition.to_dict()
        return data


class _Aborted(Exception):
    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


def parse_decision(value: str | OfferDecision) -> OfferDecision:
    try:
        return OfferDecision(value)
    except ValueError:
        raise InvalidInputError(f"Invalid response: {value}", field="response", value=value)


def offer_url(base_url: str, token: str) -> str:
    return f"{base_url.rstrip('/')}/offers/{token}"


def format_offer_date(day: date) -> str:
    return day.strftime("%A %d %B %Y")


def offer_is_live(expires_at: datetime, now: datetime) -> bool:
    """An offer answers up to and including its expiry instant."""
    return now <= as_utc(expires_at)


def render_offer_message(template: str, **context) -> str:
    return _templates.from_string(template).render(**context).strip()


class OfferManager:
    """Sends job offers and applies client responses.

    Notification channels, clock and token source are injected so tests
    can run without providers or wall time.
    """

    def __init__(
        self,
        settings: Settings,
        notifier: NotificationRouter,
        clock: Clock = utcnow,
        token_factory: TokenFactory = generate_client_token,
    ):
        self.settings = settings
        self.notifier = notifier
        self.clock = clock
        self.token_factory = token_factory

    # ── Send ──────────────────────────────────────────────

    async def send_offer(
        self,
        db: AsyncSession,
        order_id: str,
        engineer_id: str,
        offered_date: date | str,
        time_window: str | None = None,
        channel: str = "email",
        *,
        custom_message: str | None = None,
        replace_existing: bool = False,
    ):
        """Create a pending offer, move the order to date_offered and notify the client.

        Raises CapacityUnavailableError when the engineer-day is full and
        NotificationDeliveryError when every channel failed. In the latter
        case the offer is already persisted and can be re-sent or withdrawn.
        """
        require_id(order_id, "order_id")
        require_id(engineer_id, "engineer_id")
        day = require_date(offered_date, "offered_date")
        if channel not in CHANNELS:
            raise InvalidInputError(f"Unsupported delivery channel: {channel}", field="channel", value=channel)
        now = self.clock()
        if day < now.date():
            raise InvalidInputError("Offered date is in the past", field="offered_date", value=day.isoformat())

        order = await crud.get_order(db, order_id)
        if order is None:
            raise NotFoundError("Order", order_id)
        client = await crud.get_client(db, order.client_id)
        if client is None:
            raise NotFoundError("Client", order.client_id)
        engineer = await crud.get_engineer(db, engineer_id)
        if engineer is None:
            raise NotFoundError("Engineer", engineer_id)

        if not pipeline.can_transition(order.status_enhanced, OrderStatus.DATE_OFFERED):
            raise OfferConflictError(
                f"Cannot offer a date for an order in status {order.status_enhanced}",
                order_id=order_id, status=order.status_enhanced,
            )

        live = [
            o for o in await crud.list_pending_offers_for_order(db, order_id)
            if offer_is_live(o.expires_at, now)
        ]
        if live and not replace_existing:
            raise OfferConflictError(
                "Order already has a pending offer",
                order_id=order_id, offer_id=live[0].id,
            )

        ttl = timedelta(hours=self.settings.offers.default_ttl_hours)
        token = self.token_factory()
        expires_at = now + ttl
        order_number = order.order_number
        client_id = client.id
        client_name = client.full_name
        engineer_name = engineer.name

        async def check():
            return await capacity.preflight(
                db, order_id, engineer_id, day,
                settings=self.settings.scheduling, now=now,
            )

        async def apply() -> str:
            await pipeline.withdraw_pending_offers(db, order_id, now, "replaced by a new offer")
            offer = await crud.add_job_offer(
                db, order_id, engineer_id, day, time_window,
                expires_at, token, channel,
                {"requested_channel": channel, "custom_message": bool(custom_message)},
            )
            moved = await pipeline.transition_order(
                db, order_id, OrderStatus.DATE_OFFERED,
                source="offer", now=now, commit=False,
            )
            if not moved.ok:
                raise _Aborted(moved.reason)
            await crud.add_activity(
                db, order_id, "offer_sent",
                f"Installation date {day.isoformat()} offered with {engineer_name} via {channel}",
                {
                    "offer_id": offer.id, "engineer_id": engineer_id,
                    "offered_date": day.isoformat(), "time_window": time_window,
                    "expires_at": expires_at.isoformat(), "channel": channel,
                },
            )
            return offer.id

        try:
            offer_id = await capacity.reserve_and_apply(
                db, engineer_id, day, check, apply,
                retries=self.settings.scheduling.reservation_retries,
            )
        except _Aborted as exc:
            await db.rollback()
            raise OfferConflictError(exc.reason, order_id=order_id)

        logger.info("Offer %s created for order %s (%s, %s)", offer_id, order_number, engineer_name, day)

        context = {
            "order_number": order_number,
            "offered_date": format_offer_date(day),
            "engineer_name": engineer_name,
            "offer_url": offer_url(self.settings.offers.base_url, token),
            "time_window": time_window or TIME_WINDOW_TBC,
            "expires_at": expires_at.strftime("%d %B %Y %H:%M UTC"),
            "client_name": client_name,
        }
        subject = render_offer_message(self.settings.offers.subject_template, **context)
        body = render_offer_message(custom_message or self.settings.offers.message_template, **context)

        client = await crud.get_client(db, client_id)
        report = await self.notifier.deliver(
            client, channel, subject, body, fallback=self.settings.offers.fallback_channel,
        )

        offer = await crud.get_offer(db, offer_id)
        offer.delivery_details = {
            **(offer.delivery_details or {}),
            "attempts": report.attempts,
            "delivered_via": report.delivered_via,
            "sent_at": self.clock().isoformat(),
        }
        if report.delivered_via:
            offer.delivery_channel = report.delivered_via
        else:
            await crud.add_activity(
                db, order_id, "offer_delivery_failed",
                f"Offer for {day.isoformat()} could not be delivered",
                {"offer_id": offer_id, "attempts": report.attempts},
            )
        await db.commit()
        await db.refresh(offer)

        if not report.delivered:
            logger.error("Offer %s for order %s was not delivered on any channel", offer_id, order_number)
            raise NotificationDeliveryError(
                "Offer saved but could not be delivered to the client",
                offer_id=offer_id, attempts=report.attempts,
            )
        return offer

    # ── Public lookup ─────────────────────────────────────

    async def lookup_offer(self, db: AsyncSession, token: str) -> dict:
        """Public view of an offer. Reads only; an expired offer is flagged, not updated."""
        if not token:
            raise InvalidInputError("Missing required parameter: token", field="token")
        offer = await crud.get_offer_by_token(db, token)
        if offer is None:
            raise NotFoundError("Offer", token)

        order = await crud.get_order(db, offer.order_id)
        client = await crud.get_client(db, order.client_id)
        engineer = await crud.get_engineer(db, offer.engineer_id)
        now = self.clock()
        expired = offer.status == "expired" or (
            offer.status == "pending" and not offer_is_live(offer.expires_at, now)
        )
        return {
            "id": offer.id,
            "status": offer.status,
            "order_number": order.order_number,
            "client_name": client.full_name if client else "",
            "engineer_name": engineer.name if engineer else "",
            "offered_date": offer.offered_date.isoformat(),
            "offered_date_display": format_offer_date(offer.offered_date),
            "time_window": offer.time_window or TIME_WINDOW_TBC,
            "expires_at": as_utc(offer.expires_at).isoformat(),
            "expired": expired,
            "already_responded": offer.status in ("accepted", "rejected"),
        }

    # ── Client response ───────────────────────────────────

    async def respond_to_offer(
        self,
        db: AsyncSession,
        token: str,
        decision: str | OfferDecision,
        rejection: RejectionDetails | None = None,
    ) -> OfferResponseResult:
        """Apply the client's accept or reject.

        An offer past its expiry is reported as expired and nothing is
        written, whether or not the sweeper has caught up with it yet.
        """
        if not token:
            raise InvalidInputError("Missing required parameter: token", field="token")
        decision = parse_decision(decision)
        rejection = rejection or RejectionDetails()
        for start, end in rejection.blocked_ranges:
            if end < start:
                raise InvalidInputError(
                    "Blocked range ends before it starts",
                    field="blocked_ranges", value=[start.isoformat(), end.isoformat()],
                )

        offer = await crud.get_offer_by_token(db, token)
        if offer is None:
            raise NotFoundError("Offer", token)

        now = self.clock()
        offer_id, order_id = offer.id, offer.order_id

        def result(outcome: OfferOutcome, message: str, **kw) -> OfferResponseResult:
            return OfferResponseResult(outcome, message, offer_id, order_id, **kw)

        if offer.status == "expired" or not offer_is_live(offer.expires_at, now):
            return result(OfferOutcome.EXPIRED, "This offer has expired")
        if offer.status != "pending":
            return result(OfferOutcome.ALREADY_RESPONDED, f"This offer has already been {offer.status}")

        if decision == OfferDecision.ACCEPT:
            return await self._accept(db, offer, now, result)
        return await self._reject(db, offer, now, rejection, result)

    async def _accept(self, db, offer, now, result) -> OfferResponseResult:
        offer_id, order_id = offer.id, offer.order_id
        engineer_id, day, window = offer.engineer_id, offer.offered_date, offer.time_window

        if not await crud.compare_and_set_offer(db, offer_id, "pending", {"status": "accepted", "accepted_at": now}):
            await db.rollback()
            return result(OfferOutcome.ALREADY_RESPONDED, "This offer has already been answered")

        moved = await pipeline.transition_order(
            db, order_id, OrderStatus.DATE_ACCEPTED,
            engineer_id=engineer_id, scheduled_date=day, time_window=window,
            expected_status=OrderStatus.DATE_OFFERED.value,
            source="offer_response", now=now, commit=False,
        )
        if not moved.ok:
            await db.rollback()
            logger.warning("Offer %s accepted but order %s could not move: %s", offer_id, order_id, moved.reason)
            return result(OfferOutcome.CONFLICT, moved.reason, transition=moved)

        await crud.add_activity(
            db, order_id, "offer_accepted",
            f"Client accepted installation date {day.isoformat()}",
            {"offer_id": offer_id, "engineer_id": engineer_id, "offered_date": day.isoformat()},
        )

        if self.settings.offers.auto_book_on_accept:
            booked = await pipeline.transition_order(
                db, order_id, OrderStatus.SCHEDULED,
                engineer_id=engineer_id, scheduled_date=day, time_window=window,
                expected_status=OrderStatus.DATE_ACCEPTED.value,
                source="offer_response", now=now, commit=False,
            )
            if not booked.ok:
                await db.rollback()
                return result(OfferOutcome.CONFLICT, booked.reason, transition=booked)
            moved = booked

        await db.commit()
        logger.info("Offer %s accepted, order %s now %s", offer_id, order_id, moved.to_status)
        return result(OfferOutcome.ACCEPTED, "Installation date confirmed", transition=moved)

    async def _reject(self, db, offer, now, rejection: RejectionDetails, result) -> OfferResponseResult:
        offer_id, order_id = offer.id, offer.order_id
        day = offer.offered_date
        client_id = (await crud.get_order(db, order_id)).client_id
        reason = rejection.reason.strip() or "No reason provided"

        if not await crud.compare_and_set_offer(db, offer_id, "pending", {
            "status": "rejected", "rejected_at": now, "rejection_reason": reason,
        }):
            await db.rollback()
            return result(OfferOutcome.ALREADY_RESPONDED, "This offer has already been answered")

        moved = await pipeline.transition_order(
            db, order_id, OrderStatus.DATE_REJECTED,
            expected_status=OrderStatus.DATE_OFFERED.value,
            source="offer_response", now=now, commit=False,
        )
        if not moved.ok:
            await db.rollback()
            logger.warning("Offer %s rejected but order %s could not move: %s", offer_id, order_id, moved.reason)
            return result(OfferOutcome.CONFLICT, moved.reason, transition=moved)
        await crud.compare_and_set_order(
            db, order_id, OrderStatus.DATE_REJECTED.value, {"engineer_id": None},
        )

        ranges = list(rejection.blocked_ranges)
        if rejection.block_this_date:
            ranges.insert(0, (day, day))
        blocked_days = await self._block_client_days(db, client_id, ranges, reason)

        await crud.add_activity(
            db, order_id, "offer_rejected",
            f"Client rejected installation date {day.isoformat()}: {reason}",
            {
                "offer_id": offer_id, "offered_date": day.isoformat(), "reason": reason,
                "blocked_ranges": [[s.isoformat(), e.isoformat()] for s, e in ranges],
            },
        )
        await db.commit()
        logger.info("Offer %s rejected for order %s, %d day(s) blocked", offer_id, order_id, blocked_days)
        return result(OfferOutcome.REJECTED, "Response recorded", blocked_days=blocked_days, transition=moved)

    async def _block_client_days(self, db, client_id: str, ranges, reason: str) -> int:
        """Record client unavailability, skipping ranges already on file. Returns distinct days covered."""
        if not ranges:
            return 0
        existing = {
            (b.start_date, b.end_date)
            for b in await crud.list_blocked_dates(db, client_id=client_id)
        }
        days: set[date] = set()
        for start, end in ranges:
            span = (end - start).days
            days.update(start + timedelta(days=i) for i in range(span + 1))
            if (start, end) in existing:
                continue
            existing.add((start, end))
            await crud.create_blocked_date(
                db, "client", start, end, f"Client unavailable: {reason}",
                client_id=client_id, commit=False,
            )
        return len(days)

    # ── Expiry ────────────────────────────────────────────

    async def expire_stale_offers(self, db: AsyncSession) -> list[str]:
        """Mark pending offers past expiry as expired. Safe to run repeatedly."""
        now = self.clock()
        expired: list[str] = []
        for offer in await crud.get_stale_pending_offers(db, now):
            offer_id, order_id = offer.id, offer.order_id
            if not await crud.compare_and_set_offer(db, offer_id, "pending", {"status": "expired", "expired_at": now}):
                continue
            expired.append(offer_id)
            await crud.add_activity(
                db, order_id, "offer_expired",
                f"Offer for {offer.offered_date.isoformat()} expired without a response",
                {"offer_id": offer_id, "expires_at": as_utc(offer.expires_at).isoformat()},
            )

            still_pending = [
                o for o in await crud.list_pending_offers_for_order(db, order_id)
                if offer_is_live(o.expires_at, now)
            ]
            if still_pending:
                continue
            await pipeline.transition_order(
                db, order_id, OrderStatus.OFFER_EXPIRED,
                expected_status=OrderStatus.DATE_OFFERED.value,
                source="expiry_sweep", now=now, commit=False,
            )

        if expired:
            await db.commit()
            logger.info("Expired %d stale offer(s)", len(expired))
        return expired
