"""Service catalog entry domain model."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(slots=True)
class Service:
    id: int
    provider_id: int
    name: str
    base_price: float
    is_active: bool = True
    active_subscriptions: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
