from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from ...domain.exceptions import ConflictError, NotFoundError, PartialUpdateError, ValidationError
from ...domain.models import Payment, ServiceProvider, Subscription
from ...domain.models.provider import DEFAULT_PLATFORM_FEE
from ...domain.models.subscription import utcnow
from ...domain.ports.persistence import PersistenceGateway
from .access_guard import Caller, require_role

logger = logging.getLogger(__name__)


class EarningsService:
    """Books captured subscription payments and provider payouts."""

    def __init__(
        self,
        persistence: PersistenceGateway,
        *,
        platform_fee: float = DEFAULT_PLATFORM_FEE,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if not 0 <= platform_fee < 1:
            raise ValueError("Platform fee must be between 0 and 1.")
        self._persistence = persistence
        self._platform_fee = platform_fee
        self._clock = clock

    def record_payment(self, caller: Caller, subscription_id: int, amount: float) -> Subscription:
        """
        Record a payment captured outside the platform.

        Updates the subscription billing fields, the customer's spend and
        loyalty points and the provider's earnings, and appends a ledger row,
        all in one transaction.
        """
        require_role(caller, "admin")
        subscription = self._persistence.get_subscription(subscription_id)
        if subscription is None:
            raise NotFoundError("Subscription not found")
        customer = self._persistence.get_customer(subscription.customer_id)
        provider = self._persistence.get_provider(subscription.provider_id)
        if customer is None or provider is None:
            raise PartialUpdateError(
                f"Subscription {subscription_id} references a missing customer or provider"
            )

        paid_at = self._clock()
        subscription.record_payment(amount, now=paid_at)
        customer.record_payment(amount)
        credited = provider.record_earning(amount, self._platform_fee)
        payment = Payment(
            subscription_id=subscription.id,
            customer_id=customer.id,
            provider_id=provider.id,
            service_id=subscription.service_id,
            amount=amount,
            platform_fee=amount - credited,
            provider_amount=credited,
            paid_at=paid_at,
            currency=subscription.billing.currency,
            payment_method_id=subscription.billing.payment_method_id,
        )
        saved = self._persistence.save_payment(subscription, customer, provider, payment)
        logger.info(
            "Payment of %.2f booked for subscription %s; provider %s credited %.2f",
            amount,
            saved.id,
            provider.id,
            credited,
        )
        return saved

    def process_payout(self, caller: Caller, provider_id: int, amount: float) -> ServiceProvider:
        require_role(caller, "admin")
        if amount <= 0:
            raise ValidationError.for_field("amount", "Payout amount must be positive")
        provider = self._persistence.get_provider(provider_id)
        if provider is None:
            raise NotFoundError("Provider not found")
        if not provider.process_payout(amount):
            raise ConflictError("Payout exceeds pending earnings")
        saved = self._persistence.save_provider_balances(provider)
        logger.info("Payout of %.2f released for provider %s", amount, provider_id)
        return saved
