"""Service provider domain model."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

DEFAULT_PLATFORM_FEE = 0.10


@dataclass(slots=True)
class ServiceProvider:
    """
    Business delivering services to subscribed customers.

    Attributes:
        id: Unique identifier
        user_id: Authenticated account the profile belongs to
        business_name: Public business name
        email: Contact address
        total_earnings: Lifetime earnings after platform fees
        pending_payouts: Earnings not yet released
        available_balance: Earnings released and ready for withdrawal
    """

    id: int
    user_id: int
    business_name: str
    email: Optional[str] = None
    total_earnings: float = 0.0
    pending_payouts: float = 0.0
    available_balance: float = 0.0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def record_earning(self, amount: float, platform_fee: float = DEFAULT_PLATFORM_FEE) -> float:
        """Credit ``amount`` minus the platform fee and return the credited share."""
        provider_amount = amount * (1 - platform_fee)
        self.total_earnings += provider_amount
        self.pending_payouts += provider_amount
        return provider_amount

    def process_payout(self, amount: float) -> bool:
        if self.pending_payouts >= amount:
            self.pending_payouts -= amount
            self.available_balance += amount
            return True
        return False
