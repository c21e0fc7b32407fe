from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple

from ...domain.exceptions import NotFoundError, ValidationError
from ...domain.models import CounterDelta, Payment, Plan, Schedule, Subscription, Visit
from ...domain.models.subscription import counter_delta, utcnow
from ...domain.ports.persistence import PersistenceGateway
from ...services.email_service import EmailService
from .access_guard import Caller, require_access, require_role

logger = logging.getLogger(__name__)

Mutation = Callable[[Subscription], Optional[CounterDelta]]


def ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SubscriptionService:
    """Runs subscription lifecycle operations on behalf of an authenticated caller.

    Each operation loads the subscription, checks ownership, applies one
    domain transition and persists the subscription together with the
    counter delta the transition produced.
    """

    def __init__(
        self,
        persistence: PersistenceGateway,
        email_service: EmailService,
        *,
        max_page_size: int = 100,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._persistence = persistence
        self._email = email_service
        self._max_page_size = max_page_size
        self._clock = clock

    # Queries ----------------------------------------------------------------
    def list_subscriptions(
        self,
        caller: Caller,
        *,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[Subscription], int]:
        customer_id, provider_id = self._scope(caller)
        limit = max(1, min(limit, self._max_page_size))
        page = max(1, page)
        items = self._persistence.list_subscriptions(
            customer_id=customer_id,
            provider_id=provider_id,
            status=status,
            limit=limit,
            offset=(page - 1) * limit,
        )
        total = self._persistence.count_subscriptions(
            customer_id=customer_id, provider_id=provider_id, status=status
        )
        return items, total

    def get_subscription(self, caller: Caller, subscription_id: int) -> Subscription:
        subscription = self._persistence.get_subscription(subscription_id)
        if subscription is None:
            raise NotFoundError("Subscription not found")
        require_access(caller, subscription)
        return subscription

    def get_history(
        self,
        caller: Caller,
        subscription_id: int,
        *,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[Visit], int]:
        subscription = self.get_subscription(caller, subscription_id)
        limit = max(1, min(limit, self._max_page_size))
        start = (max(1, page) - 1) * limit
        history = subscription.service_history
        return history[start:start + limit], len(history)

    def get_payment_history(self, caller: Caller, subscription_id: int) -> List[Payment]:
        """Ledger rows for the subscription, newest first."""
        subscription = self.get_subscription(caller, subscription_id)
        return self._persistence.list_payments(subscription.id)

    def upcoming_services(self, caller: Caller, days: int = 7) -> List[Subscription]:
        require_role(caller, "customer")
        customer_id, _ = self._scope(caller)
        now = self._clock()
        horizon = now + timedelta(days=days)
        subscriptions = self._persistence.list_subscriptions(customer_id=customer_id, status="active")
        upcoming = [
            item
            for item in subscriptions
            if item.next_service_date is not None and now <= item.next_service_date <= horizon
        ]
        return sorted(upcoming, key=lambda item: item.next_service_date)

    def expiring_subscriptions(self, caller: Caller, days: int = 7) -> List[Subscription]:
        """Active subscriptions without auto-renew whose billing date falls within ``days``."""
        customer_id, provider_id = self._scope(caller)
        horizon = self._clock() + timedelta(days=days)
        subscriptions = self._persistence.list_subscriptions(
            customer_id=customer_id, provider_id=provider_id, status="active"
        )
        expiring = [
            item for item in subscriptions if not item.auto_renew and item.next_billing_date <= horizon
        ]
        return sorted(expiring, key=lambda item: item.next_billing_date)

    # Creation -----------------------------------------------------------------
    def create_subscription(
        self,
        caller: Caller,
        *,
        service_id: int,
        plan_type: str = "basic",
        plan_interval: str = "monthly",
        plan_price: Optional[float] = None,
        plan_name: Optional[str] = None,
        visits_per_interval: int = 1,
        start_date: Optional[datetime] = None,
        schedule: Optional[Schedule] = None,
        payment_method_id: Optional[str] = None,
        special_instructions: Optional[str] = None,
    ) -> Subscription:
        require_role(caller, "customer")
        customer_id, _ = self._scope(caller)

        service = self._persistence.get_service(service_id)
        if service is None or not service.is_active:
            raise NotFoundError("Service not found or inactive")

        plan = Plan(
            type=plan_type,
            name=plan_name or service.name,
            price=plan_price if plan_price is not None else service.base_price,
            interval=plan_interval,
            visits_per_interval=visits_per_interval,
        )
        subscription = Subscription.open(
            customer_id=customer_id,
            service_id=service.id,
            provider_id=service.provider_id,
            plan=plan,
            start_date=ensure_utc(start_date) if start_date else self._clock(),
            schedule=schedule,
            payment_method_id=payment_method_id,
            special_instructions=special_instructions,
        )
        created = self._persistence.create_subscription(
            subscription, counter_delta(None, subscription.status)
        )
        logger.info("Subscription %s created for customer %s", created.id, customer_id)
        return created

    # Lifecycle ------------------------------------------------------------------
    def activate(self, caller: Caller, subscription_id: int) -> Subscription:
        return self._mutate(caller, subscription_id, "activated", lambda sub: sub.activate())

    def pause(self, caller: Caller, subscription_id: int, reason: Optional[str] = None) -> Subscription:
        now = self._clock()
        return self._mutate(caller, subscription_id, "paused", lambda sub: sub.pause(reason, now=now))

    def resume(self, caller: Caller, subscription_id: int) -> Subscription:
        now = self._clock()
        return self._mutate(caller, subscription_id, "resumed", lambda sub: sub.resume(now=now))

    def cancel(
        self,
        caller: Caller,
        subscription_id: int,
        reason: str,
        *,
        request_refund: bool = False,
    ) -> Subscription:
        subscription = self.get_subscription(caller, subscription_id)
        if subscription.status == "cancelled":
            logger.info("Subscription %s already cancelled; nothing to do", subscription_id)
            return subscription

        delta = subscription.cancel(
            reason, caller.role, request_refund=request_refund, now=self._clock()
        )
        saved = self._persistence.save_subscription(subscription, delta)
        logger.info("Subscription %s cancelled by %s %s", saved.id, caller.role, caller.user_id)
        self._notify_cancellation(saved)
        return saved

    def renew(self, caller: Caller, subscription_id: int) -> Subscription:
        now = self._clock()
        return self._mutate(caller, subscription_id, "renewed", lambda sub: sub.renew(now=now))

    def expire(self, caller: Caller, subscription_id: int) -> Subscription:
        require_role(caller, "admin")
        now = self._clock()
        return self._mutate(caller, subscription_id, "expired", lambda sub: sub.expire(now=now))

    # Visits ---------------------------------------------------------------------
    def record_visit(
        self,
        caller: Caller,
        subscription_id: int,
        status: str,
        notes: str = "",
        rating: Optional[int] = None,
    ) -> Subscription:
        require_role(caller, "provider", "admin")
        now = self._clock()

        def mutation(subscription: Subscription) -> None:
            subscription.record_visit(status, notes, rating=rating, now=now)

        return self._mutate(caller, subscription_id, f"visit recorded ({status})", mutation)

    # Details --------------------------------------------------------------------
    def update_subscription(
        self,
        caller: Caller,
        subscription_id: int,
        *,
        plan_type: Optional[str] = None,
        plan_interval: Optional[str] = None,
        preferred_days: Optional[List[str]] = None,
        preferred_time: Optional[str] = None,
        flexible_scheduling: Optional[bool] = None,
        auto_renew: Optional[bool] = None,
        special_instructions: Optional[str] = None,
    ) -> Subscription:
        require_role(caller, "customer", "admin")

        def mutation(subscription: Subscription) -> None:
            subscription.update_details(
                plan_type=plan_type,
                plan_interval=plan_interval,
                auto_renew=auto_renew,
                special_instructions=special_instructions,
            )
            if any(value is not None for value in (preferred_days, preferred_time, flexible_scheduling)):
                subscription.update_schedule(
                    preferred_days=preferred_days,
                    preferred_time=preferred_time,
                    flexible_scheduling=flexible_scheduling,
                )

        return self._mutate(caller, subscription_id, "updated", mutation)

    def update_schedule(
        self,
        caller: Caller,
        subscription_id: int,
        *,
        preferred_days: Optional[List[str]] = None,
        preferred_time: Optional[str] = None,
        flexible_scheduling: Optional[bool] = None,
    ) -> Subscription:
        def mutation(subscription: Subscription) -> None:
            subscription.update_schedule(
                preferred_days=preferred_days,
                preferred_time=preferred_time,
                flexible_scheduling=flexible_scheduling,
            )

        return self._mutate(caller, subscription_id, "schedule updated", mutation)

    def reschedule(
        self,
        caller: Caller,
        subscription_id: int,
        new_date: datetime,
        reason: Optional[str] = None,
    ) -> Subscription:
        target = ensure_utc(new_date)
        description = f"rescheduled to {target.isoformat()}"
        if reason:
            description += f" ({reason})"
        return self._mutate(
            caller,
            subscription_id,
            description,
            lambda sub: sub.reschedule(target),
        )

    def update_payment_method(self, caller: Caller, subscription_id: int, payment_method_id: str) -> Subscription:
        return self._mutate(
            caller,
            subscription_id,
            "payment method updated",
            lambda sub: sub.update_payment_method(payment_method_id),
        )

    def apply_discount(self, caller: Caller, subscription_id: int, code: str) -> Subscription:
        def mutation(subscription: Subscription) -> None:
            subscription.apply_discount(code)

        return self._mutate(caller, subscription_id, "discount applied", mutation)

    def remove_discount(self, caller: Caller, subscription_id: int) -> Subscription:
        return self._mutate(caller, subscription_id, "discount removed", lambda sub: sub.remove_discount())

    # Internals ------------------------------------------------------------------
    def _mutate(
        self,
        caller: Caller,
        subscription_id: int,
        description: str,
        mutation: Mutation,
    ) -> Subscription:
        subscription = self.get_subscription(caller, subscription_id)
        delta = mutation(subscription) or CounterDelta()
        saved = self._persistence.save_subscription(subscription, delta)
        logger.info("Subscription %s %s by %s %s", saved.id, description, caller.role, caller.user_id)
        return saved

    def _scope(self, caller: Caller) -> Tuple[Optional[int], Optional[int]]:
        """Restrict queries to the caller's own profile; admins are unrestricted."""
        if caller.role == "customer":
            if caller.customer_id is None:
                raise NotFoundError("Customer profile not found")
            return caller.customer_id, None
        if caller.role == "provider":
            if caller.provider_id is None:
                raise NotFoundError("Provider profile not found")
            return None, caller.provider_id
        if caller.role == "admin":
            return None, None
        raise ValidationError.for_field("role", f"Unknown role: {caller.role}")

    def _notify_cancellation(self, subscription: Subscription) -> None:
        customer = self._persistence.get_customer(subscription.customer_id)
        if customer is None:
            logger.warning("Customer %s missing; cancellation notice skipped", subscription.customer_id)
            return
        if not customer.email_notifications:
            return
        if not self._email.send_cancellation_notice(customer, subscription):
            logger.warning("Cancellation notice for subscription %s was not delivered", subscription.id)
