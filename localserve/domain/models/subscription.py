"""Subscription aggregate and its lifecycle state machine."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import FrozenSet, List, Optional

from ..billing import next_billing_date
from ..exceptions import IllegalTransitionError, ValidationError

PLAN_TYPES = ("basic", "premium", "enterprise", "custom")
PLAN_INTERVALS = ("weekly", "bi-weekly", "monthly", "quarterly", "yearly")
SUBSCRIPTION_STATUSES = ("pending", "active", "paused", "cancelled", "expired")
VISIT_STATUSES = ("scheduled", "completed", "cancelled", "no-show")
CANCELLED_BY = ("customer", "provider", "admin")
REFUND_STATUSES = ("pending", "processed", "rejected")
WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

MAX_TEXT_LENGTH = 500
DEFAULT_DISCOUNT_PERCENTAGE = 10

_TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")

# Statuses in which a subscription is included in each denormalized counter.
CUSTOMER_COUNTED: FrozenSet[str] = frozenset({"pending", "active"})
SERVICE_COUNTED: FrozenSet[str] = frozenset({"pending", "active", "paused"})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class Plan:
    price: float
    type: str = "basic"
    name: Optional[str] = None
    interval: str = "monthly"
    visits_per_interval: int = 1


@dataclass(slots=True)
class Billing:
    amount: float
    currency: str = "USD"
    payment_method_id: Optional[str] = None
    last_payment_date: Optional[datetime] = None
    last_payment_amount: Optional[float] = None
    next_payment_amount: Optional[float] = None


@dataclass(slots=True)
class Schedule:
    preferred_days: List[str] = field(default_factory=list)
    preferred_time: Optional[str] = None
    flexible_scheduling: bool = False


@dataclass(slots=True)
class Visit:
    date: datetime
    status: str
    notes: str = ""
    completed_at: Optional[datetime] = None
    rating: Optional[int] = None


@dataclass(slots=True)
class PauseRecord:
    paused_at: datetime
    reason: Optional[str] = None
    resumed_at: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.resumed_at is None


@dataclass(slots=True)
class Cancellation:
    cancelled_at: datetime
    reason: str
    cancelled_by: str
    refund_amount: Optional[float] = None
    refund_status: Optional[str] = None


@dataclass(slots=True)
class Discount:
    code: str
    percentage: Optional[float] = None
    amount: Optional[float] = None


@dataclass(slots=True)
class SubscriptionStatistics:
    total_visits: int = 0
    completed_visits: int = 0
    cancelled_visits: int = 0
    total_spent: float = 0.0


@dataclass(frozen=True, slots=True)
class CounterDelta:
    """Change to apply to the owning Customer and Service counters."""

    customer: int = 0
    service: int = 0

    @property
    def is_empty(self) -> bool:
        return self.customer == 0 and self.service == 0


def counter_delta(old_status: Optional[str], new_status: str) -> CounterDelta:
    """Counter change implied by moving from ``old_status`` (None when new) to ``new_status``."""

    def weight(counted: FrozenSet[str], status: Optional[str]) -> int:
        return 1 if status in counted else 0

    return CounterDelta(
        customer=weight(CUSTOMER_COUNTED, new_status) - weight(CUSTOMER_COUNTED, old_status),
        service=weight(SERVICE_COUNTED, new_status) - weight(SERVICE_COUNTED, old_status),
    )


@dataclass(slots=True)
class Subscription:
    """
    Recurring service agreement between a customer and a provider.

    Status changes only through the transition methods below; each of them
    returns the CounterDelta the caller must persist together with the
    subscription.

    Attributes:
        id: Storage identifier, None until first saved
        customer_id: Owning Customer profile
        service_id: Subscribed Service
        provider_id: ServiceProvider delivering the service
        plan: Plan type, price and billing interval
        start_date: First day of the subscription
        next_billing_date: Derived from start/last billing plus the interval
        service_history: Append-only visit log
        pause_history: Pause/resume log, at most one open entry
        version: Optimistic concurrency counter maintained by persistence
    """

    customer_id: int
    service_id: int
    provider_id: int
    plan: Plan
    billing: Billing
    start_date: datetime
    next_billing_date: datetime
    id: Optional[int] = None
    status: str = "pending"
    end_date: Optional[datetime] = None
    next_service_date: Optional[datetime] = None
    auto_renew: bool = True
    schedule: Schedule = field(default_factory=Schedule)
    service_history: List[Visit] = field(default_factory=list)
    special_instructions: Optional[str] = None
    discount: Optional[Discount] = None
    statistics: SubscriptionStatistics = field(default_factory=SubscriptionStatistics)
    pause_history: List[PauseRecord] = field(default_factory=list)
    cancellation: Optional[Cancellation] = None
    version: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def open(
        cls,
        *,
        customer_id: int,
        service_id: int,
        provider_id: int,
        plan: Plan,
        start_date: datetime,
        schedule: Optional[Schedule] = None,
        payment_method_id: Optional[str] = None,
        special_instructions: Optional[str] = None,
    ) -> "Subscription":
        """Build a new pending subscription with billing derived from the plan."""
        _validate_plan(plan)
        if schedule is not None:
            _validate_schedule(schedule)
        _validate_text("special_instructions", special_instructions)
        return cls(
            customer_id=customer_id,
            service_id=service_id,
            provider_id=provider_id,
            plan=plan,
            billing=Billing(
                amount=plan.price,
                payment_method_id=payment_method_id,
                next_payment_amount=plan.price,
            ),
            start_date=start_date,
            next_billing_date=next_billing_date(plan.interval, start_date),
            next_service_date=start_date,
            schedule=schedule or Schedule(),
            special_instructions=special_instructions,
        )

    # Queries -----------------------------------------------------------
    def is_active(self) -> bool:
        return self.status == "active"

    def is_terminal(self) -> bool:
        return self.status in ("cancelled", "expired")

    @property
    def open_pause(self) -> Optional[PauseRecord]:
        if self.pause_history and self.pause_history[-1].is_open:
            return self.pause_history[-1]
        return None

    # State machine -------------------------------------------------------
    def activate(self) -> CounterDelta:
        self._require_status("activate", ("pending",))
        return self._move_to("active")

    def pause(self, reason: Optional[str] = None, *, now: Optional[datetime] = None) -> CounterDelta:
        self._require_status(
            "pause", ("active",), message="Only active subscriptions can be paused"
        )
        _validate_text("reason", reason)
        self.pause_history.append(PauseRecord(paused_at=now or utcnow(), reason=reason))
        return self._move_to("paused")

    def resume(self, *, now: Optional[datetime] = None) -> CounterDelta:
        self._require_status(
            "resume", ("paused",), message="Only paused subscriptions can be resumed"
        )
        self._close_open_pause(now or utcnow())
        return self._move_to("active")

    def cancel(
        self,
        reason: str,
        cancelled_by: str = "customer",
        *,
        request_refund: bool = False,
        now: Optional[datetime] = None,
    ) -> CounterDelta:
        """
        Cancel the subscription.

        Re-cancelling a cancelled subscription changes nothing and returns an
        empty delta. Expired subscriptions cannot be cancelled.
        """
        if self.status == "cancelled":
            return CounterDelta()
        self._require_status("cancel", ("pending", "active", "paused"))
        if not reason or not reason.strip():
            raise ValidationError.for_field("reason", "Cancellation reason is required")
        _validate_text("reason", reason)
        if cancelled_by not in CANCELLED_BY:
            raise ValidationError.for_field("cancelled_by", f"Invalid canceller: {cancelled_by}")

        timestamp = now or utcnow()
        self._close_open_pause(timestamp)
        self.cancellation = Cancellation(
            cancelled_at=timestamp,
            reason=reason.strip(),
            cancelled_by=cancelled_by,
        )
        if request_refund:
            self.cancellation.refund_amount = self.billing.amount
            self.cancellation.refund_status = "pending"
        return self._move_to("cancelled")

    def renew(self, *, now: Optional[datetime] = None) -> CounterDelta:
        self._require_status(
            "renew", ("expired",), message="Only expired subscriptions can be renewed"
        )
        self.next_billing_date = next_billing_date(self.plan.interval, now or utcnow())
        self.end_date = None
        return self._move_to("active")

    def expire(self, *, now: Optional[datetime] = None) -> CounterDelta:
        self._require_status("expire", ("active", "paused"))
        timestamp = now or utcnow()
        self._close_open_pause(timestamp)
        self.end_date = timestamp
        return self._move_to("expired")

    # Visits --------------------------------------------------------------
    def record_visit(
        self,
        status: str,
        notes: str = "",
        *,
        rating: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Visit:
        if status not in VISIT_STATUSES:
            raise ValidationError.for_field("status", f"Invalid visit status: {status}")
        if rating is not None and not 1 <= rating <= 5:
            raise ValidationError.for_field("rating", "Rating must be between 1 and 5")

        timestamp = now or utcnow()
        visit = Visit(
            date=timestamp,
            status=status,
            notes=notes or "",
            completed_at=timestamp if status == "completed" else None,
            rating=rating,
        )
        self.service_history.append(visit)

        self.statistics.total_visits += 1
        if status == "completed":
            self.statistics.completed_visits += 1
        elif status == "cancelled":
            self.statistics.cancelled_visits += 1
        return visit

    # Billing ---------------------------------------------------------------
    def record_payment(self, amount: float, *, now: Optional[datetime] = None) -> None:
        """Book a captured payment and advance the billing date by one interval."""
        self._require_status("record a payment for", ("active",))
        if amount <= 0:
            raise ValidationError.for_field("amount", "Payment amount must be positive")
        self.billing.last_payment_date = now or utcnow()
        self.billing.last_payment_amount = amount
        self.statistics.total_spent += amount
        self.next_billing_date = next_billing_date(self.plan.interval, self.next_billing_date)

    def update_payment_method(self, payment_method_id: str) -> None:
        if not payment_method_id or not payment_method_id.strip():
            raise ValidationError.for_field("payment_method_id", "Payment method ID is required")
        self.billing.payment_method_id = payment_method_id.strip()

    # Discounts -------------------------------------------------------------
    def apply_discount(self, code: str) -> Discount:
        # Codes are not checked against a catalog and never feed into billing.
        if not code or not code.strip():
            raise ValidationError.for_field("code", "Discount code is required")
        self.discount = Discount(code=code.strip(), percentage=DEFAULT_DISCOUNT_PERCENTAGE)
        return self.discount

    def remove_discount(self) -> None:
        self.discount = None

    # Details ---------------------------------------------------------------
    def update_details(
        self,
        *,
        plan_type: Optional[str] = None,
        plan_interval: Optional[str] = None,
        auto_renew: Optional[bool] = None,
        special_instructions: Optional[str] = None,
    ) -> None:
        """Change plan type/interval and preferences; the billing date is left as is."""
        if plan_type is not None and plan_type not in PLAN_TYPES:
            raise ValidationError.for_field("plan.type", f"Invalid plan type: {plan_type}")
        if plan_interval is not None and plan_interval not in PLAN_INTERVALS:
            raise ValidationError.for_field("plan.interval", f"Invalid interval: {plan_interval}")
        _validate_text("special_instructions", special_instructions)

        if plan_type is not None:
            self.plan.type = plan_type
        if plan_interval is not None:
            self.plan.interval = plan_interval
        if auto_renew is not None:
            self.auto_renew = auto_renew
        if special_instructions is not None:
            self.special_instructions = special_instructions

    def update_schedule(
        self,
        *,
        preferred_days: Optional[List[str]] = None,
        preferred_time: Optional[str] = None,
        flexible_scheduling: Optional[bool] = None,
    ) -> Schedule:
        candidate = Schedule(
            preferred_days=list(preferred_days) if preferred_days is not None else list(self.schedule.preferred_days),
            preferred_time=preferred_time if preferred_time is not None else self.schedule.preferred_time,
            flexible_scheduling=(
                flexible_scheduling if flexible_scheduling is not None else self.schedule.flexible_scheduling
            ),
        )
        _validate_schedule(candidate)
        self.schedule = candidate
        return candidate

    def reschedule(self, new_date: datetime) -> None:
        if self.is_terminal():
            raise IllegalTransitionError("reschedule", self.status)
        self.next_service_date = new_date

    # Internals -------------------------------------------------------------
    def _require_status(self, operation: str, allowed: tuple, message: Optional[str] = None) -> None:
        if self.status not in allowed:
            raise IllegalTransitionError(operation, self.status, message)

    def _move_to(self, new_status: str) -> CounterDelta:
        delta = counter_delta(self.status, new_status)
        self.status = new_status
        return delta

    def _close_open_pause(self, timestamp: datetime) -> None:
        pause = self.open_pause
        if pause is not None:
            pause.resumed_at = timestamp

    def __repr__(self) -> str:
        return f"<Subscription id={self.id} customer_id={self.customer_id} status={self.status}>"


def _validate_plan(plan: Plan) -> None:
    if plan.type not in PLAN_TYPES:
        raise ValidationError.for_field("plan.type", f"Invalid plan type: {plan.type}")
    if plan.interval not in PLAN_INTERVALS:
        raise ValidationError.for_field("plan.interval", f"Invalid interval: {plan.interval}")
    if plan.price < 0:
        raise ValidationError.for_field("plan.price", "Price must be a positive number")
    if plan.visits_per_interval < 1:
        raise ValidationError.for_field(
            "plan.visits_per_interval", "At least one visit per interval is required"
        )


def _validate_schedule(schedule: Schedule) -> None:
    for day in schedule.preferred_days:
        if day not in WEEKDAYS:
            raise ValidationError.for_field("schedule.preferred_days", f"Invalid weekday: {day}")
    if schedule.preferred_time is not None and not _TIME_PATTERN.match(schedule.preferred_time):
        raise ValidationError.for_field("schedule.preferred_time", "Invalid time format")


def _validate_text(field_name: str, value: Optional[str]) -> None:
    if value is not None and len(value) > MAX_TEXT_LENGTH:
        raise ValidationError.for_field(
            field_name, f"{field_name} must be at most {MAX_TEXT_LENGTH} characters"
        )
