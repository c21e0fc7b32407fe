"""Domain models for the LocalServe subscription core."""

from .customer import Customer
from .payment import Payment
from .provider import ServiceProvider
from .service import Service
from .subscription import (
    Billing,
    Cancellation,
    CounterDelta,
    Discount,
    PauseRecord,
    Plan,
    Schedule,
    Subscription,
    SubscriptionStatistics,
    Visit,
)

__all__ = [
    "Billing",
    "Cancellation",
    "CounterDelta",
    "Customer",
    "Discount",
    "PauseRecord",
    "Payment",
    "Plan",
    "Schedule",
    "Service",
    "ServiceProvider",
    "Subscription",
    "SubscriptionStatistics",
    "Visit",
]
