"""Payment ledger domain model."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(slots=True)
class Payment:
    """
    One captured subscription charge and how it was split.

    Attributes:
        id: Storage identifier, None until first saved
        subscription_id: Subscription the charge belongs to
        amount: Amount charged to the customer
        platform_fee: Share kept by the platform
        provider_amount: Share credited to the provider
        paid_at: When the charge was captured
    """

    subscription_id: int
    customer_id: int
    provider_id: int
    service_id: int
    amount: float
    platform_fee: float
    provider_amount: float
    paid_at: datetime
    currency: str = "USD"
    payment_method_id: Optional[str] = None
    id: Optional[int] = None
