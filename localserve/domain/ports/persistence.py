from __future__ import annotations

from typing import Dict, List, Optional, Protocol, Tuple

from ..models import Customer, CounterDelta, Payment, Service, ServiceProvider, Subscription


class CustomerRepository(Protocol):
    """Abstract storage for customer profiles."""

    def create_customer(
        self,
        user_id: int,
        full_name: str,
        email: str,
        email_notifications: bool = True,
    ) -> Customer:
        ...

    def get_customer(self, customer_id: int) -> Optional[Customer]:
        ...

    def get_customer_by_user_id(self, user_id: int) -> Optional[Customer]:
        ...


class ProviderRepository(Protocol):
    """Abstract storage for service provider profiles."""

    def create_provider(
        self,
        user_id: int,
        business_name: str,
        email: Optional[str] = None,
    ) -> ServiceProvider:
        ...

    def get_provider(self, provider_id: int) -> Optional[ServiceProvider]:
        ...

    def get_provider_by_user_id(self, user_id: int) -> Optional[ServiceProvider]:
        ...

    def save_provider_balances(self, provider: ServiceProvider) -> ServiceProvider:
        ...


class ServiceRepository(Protocol):
    """Abstract storage for the service catalog."""

    def create_service(
        self,
        provider_id: int,
        name: str,
        base_price: float,
        is_active: bool = True,
    ) -> Service:
        ...

    def get_service(self, service_id: int) -> Optional[Service]:
        ...


class SubscriptionRepository(Protocol):
    """
    Persistence for subscriptions.

    Every write applies its counter delta to the owning Customer and Service
    in the same transaction as the subscription row.
    """

    def create_subscription(self, subscription: Subscription, delta: CounterDelta) -> Subscription:
        ...

    def get_subscription(self, subscription_id: int) -> Optional[Subscription]:
        ...

    def list_subscriptions(
        self,
        *,
        customer_id: Optional[int] = None,
        provider_id: Optional[int] = None,
        status: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Subscription]:
        ...

    def count_subscriptions(
        self,
        *,
        customer_id: Optional[int] = None,
        provider_id: Optional[int] = None,
        status: Optional[str] = None,
    ) -> int:
        ...

    def save_subscription(self, subscription: Subscription, delta: CounterDelta) -> Subscription:
        ...

    def save_payment(
        self,
        subscription: Subscription,
        customer: Customer,
        provider: ServiceProvider,
        payment: Payment,
    ) -> Subscription:
        """Persist a booked payment and its ledger row in one transaction."""
        ...

    def list_payments(self, subscription_id: int) -> List[Payment]:
        ...

    def subscription_statuses(self) -> List[Tuple[int, int, str]]:
        ...

    def replace_counters(self, customer_counts: Dict[int, int], service_counts: Dict[int, int]) -> None:
        ...


class PersistenceGateway(
    CustomerRepository,
    ProviderRepository,
    ServiceRepository,
    SubscriptionRepository,
    Protocol,
):
    """Composite gateway combining every persistence concern used by the app."""

    pass
