"""Customer profile domain model."""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

LOYALTY_POINTS_PER_DOLLAR = 10


@dataclass(slots=True)
class Customer:
    """
    Customer profile owning subscriptions by reference.

    Attributes:
        id: Unique identifier
        user_id: Authenticated account the profile belongs to
        full_name: Display name used in notifications
        email: Notification address
        email_notifications: Whether the customer accepts notification emails
        total_spent: Sum of captured payments
        loyalty_points: Points earned on captured payments
        active_subscriptions: Denormalized count of pending/active subscriptions
    """

    id: int
    user_id: int
    full_name: str
    email: str
    email_notifications: bool = True
    total_spent: float = 0.0
    loyalty_points: int = 0
    active_subscriptions: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def add_loyalty_points(self, amount: float) -> int:
        points = math.floor(amount * LOYALTY_POINTS_PER_DOLLAR)
        self.loyalty_points += points
        return points

    def record_payment(self, amount: float) -> None:
        self.total_spent += amount
        self.add_loyalty_points(amount)
