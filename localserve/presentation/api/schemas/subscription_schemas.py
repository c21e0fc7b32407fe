"""Pydantic schemas for subscription API endpoints."""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

PlanType = Literal["basic", "premium", "enterprise", "custom"]
PlanInterval = Literal["weekly", "bi-weekly", "monthly", "quarterly", "yearly"]
SubscriptionStatus = Literal["pending", "active", "paused", "cancelled", "expired"]
VisitStatus = Literal["scheduled", "completed", "cancelled", "no-show"]
Weekday = Literal["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

TIME_PATTERN = r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$"


class PlanPayload(BaseModel):
    """Plan requested at creation; price and name default to the service's."""

    type: PlanType = "basic"
    interval: PlanInterval = "monthly"
    price: Optional[float] = Field(default=None, ge=0)
    name: Optional[str] = Field(default=None, max_length=120)
    visits_per_interval: int = Field(default=1, ge=1)


class PlanUpdatePayload(BaseModel):
    type: Optional[PlanType] = None
    interval: Optional[PlanInterval] = None


class SchedulePayload(BaseModel):
    preferred_days: Optional[List[Weekday]] = None
    preferred_time: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    flexible_scheduling: Optional[bool] = None


class CreateSubscriptionRequest(BaseModel):
    """Request schema for creating a subscription."""

    service_id: int
    plan: PlanPayload
    start_date: Optional[datetime] = None
    schedule: Optional[SchedulePayload] = None
    payment_method_id: Optional[str] = Field(default=None, min_length=1)
    special_instructions: Optional[str] = Field(default=None, max_length=500)


class UpdateSubscriptionRequest(BaseModel):
    plan: Optional[PlanUpdatePayload] = None
    schedule: Optional[SchedulePayload] = None
    auto_renew: Optional[bool] = None
    special_instructions: Optional[str] = Field(default=None, max_length=500)


class PauseSubscriptionRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class CancelSubscriptionRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)
    request_refund: bool = False


class RecordVisitRequest(BaseModel):
    """A visit, optionally rated in the same request."""

    status: VisitStatus
    notes: str = Field(default="", max_length=1000)
    rating: Optional[int] = Field(default=None, ge=1, le=5)


class RescheduleRequest(BaseModel):
    new_date: datetime
    reason: Optional[str] = Field(default=None, max_length=500)


class PaymentMethodRequest(BaseModel):
    payment_method_id: str = Field(..., min_length=1)


class ApplyDiscountRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)


class RecordPaymentRequest(BaseModel):
    amount: float = Field(..., gt=0)


class PayoutRequest(BaseModel):
    amount: float = Field(..., gt=0)
