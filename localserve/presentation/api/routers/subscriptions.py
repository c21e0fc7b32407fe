"""API router for subscription lifecycle management."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status

from ....application.services.access_guard import Caller
from ....application.services.subscription_service import SubscriptionService
from ....core.dependencies import get_subscription_service
from ....domain.models import Schedule
from ...api.dependencies import get_current_caller
from ...api.envelope import pagination, serialize_subscription, success
from ...api.schemas.subscription_schemas import (
    ApplyDiscountRequest,
    CancelSubscriptionRequest,
    CreateSubscriptionRequest,
    PauseSubscriptionRequest,
    PaymentMethodRequest,
    RecordVisitRequest,
    RescheduleRequest,
    SchedulePayload,
    SubscriptionStatus,
    UpdateSubscriptionRequest,
)

router = APIRouter(prefix="/api/subscriptions", tags=["subscriptions"])


@router.get("")
async def list_subscriptions(
    status_filter: Optional[SubscriptionStatus] = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    caller: Caller = Depends(get_current_caller),
    service: SubscriptionService = Depends(get_subscription_service),
) -> Dict[str, Any]:
    items, total = service.list_subscriptions(caller, status=status_filter, page=page, limit=limit)
    return success(
        "Subscriptions retrieved",
        [serialize_subscription(item) for item in items],
        pagination=pagination(page, limit, total),
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_subscription(
    payload: CreateSubscriptionRequest,
    caller: Caller = Depends(get_current_caller),
    service: SubscriptionService = Depends(get_subscription_service),
) -> Dict[str, Any]:
    schedule = None
    if payload.schedule is not None:
        schedule = Schedule(
            preferred_days=list(payload.schedule.preferred_days or []),
            preferred_time=payload.schedule.preferred_time,
            flexible_scheduling=bool(payload.schedule.flexible_scheduling),
        )
    subscription = service.create_subscription(
        caller,
        service_id=payload.service_id,
        plan_type=payload.plan.type,
        plan_interval=payload.plan.interval,
        plan_price=payload.plan.price,
        plan_name=payload.plan.name,
        visits_per_interval=payload.plan.visits_per_interval,
        start_date=payload.start_date,
        schedule=schedule,
        payment_method_id=payload.payment_method_id,
        special_instructions=payload.special_instructions,
    )
    return success("Subscription created successfully", serialize_subscription(subscription))


@router.get("/upcoming")
async def upcoming_services(
    days: int = Query(default=7, ge=1, le=90),
    caller: Caller = Depends(get_current_caller),
    service: SubscriptionService = Depends(get_subscription_service),
) -> Dict[str, Any]:
    items = service.upcoming_services(caller, days)
    return success("Upcoming services retrieved", [serialize_subscription(item) for item in items])


@router.get("/expiring")
async def expiring_subscriptions(
    days: int = Query(default=7, ge=1, le=90),
    caller: Caller = Depends(get_current_caller),
    service: SubscriptionService = Depends(get_subscription_service),
) -> Dict[str, Any]:
    items = service.expiring_subscriptions(caller, days)
    return success("Expiring subscriptions retrieved", [serialize_subscription(item) for item in items])


@router.get("/{subscription_id}")
async def get_subscription(
    subscription_id: int,
    caller: Caller = Depends(get_current_caller),
    service: SubscriptionService = Depends(get_subscription_service),
) -> Dict[str, Any]:
    subscription = service.get_subscription(caller, subscription_id)
    return success("Subscription retrieved", serialize_subscription(subscription))


@router.put("/{subscription_id}")
async def update_subscription(
    subscription_id: int,
    payload: UpdateSubscriptionRequest,
    caller: Caller = Depends(get_current_caller),
    service: SubscriptionService = Depends(get_subscription_service),
) -> Dict[str, Any]:
    schedule = payload.schedule or SchedulePayload()
    subscription = service.update_subscription(
        caller,
        subscription_id,
        plan_type=payload.plan.type if payload.plan else None,
        plan_interval=payload.plan.interval if payload.plan else None,
        preferred_days=schedule.preferred_days,
        preferred_time=schedule.preferred_time,
        flexible_scheduling=schedule.flexible_scheduling,
        auto_renew=payload.auto_renew,
        special_instructions=payload.special_instructions,
    )
    return success("Subscription updated successfully", serialize_subscription(subscription))


@router.post("/{subscription_id}/activate")
async def activate_subscription(
    subscription_id: int,
    caller: Caller = Depends(get_current_caller),
    service: SubscriptionService = Depends(get_subscription_service),
) -> Dict[str, Any]:
    subscription = service.activate(caller, subscription_id)
    return success("Subscription activated successfully", serialize_subscription(subscription))


@router.post("/{subscription_id}/pause")
async def pause_subscription(
    subscription_id: int,
    payload: Optional[PauseSubscriptionRequest] = None,
    caller: Caller = Depends(get_current_caller),
    service: SubscriptionService = Depends(get_subscription_service),
) -> Dict[str, Any]:
    reason = payload.reason if payload else None
    subscription = service.pause(caller, subscription_id, reason)
    return success("Subscription paused successfully", serialize_subscription(subscription))


@router.post("/{subscription_id}/resume")
async def resume_subscription(
    subscription_id: int,
    caller: Caller = Depends(get_current_caller),
    service: SubscriptionService = Depends(get_subscription_service),
) -> Dict[str, Any]:
    subscription = service.resume(caller, subscription_id)
    return success("Subscription resumed successfully", serialize_subscription(subscription))


@router.post("/{subscription_id}/cancel")
async def cancel_subscription(
    subscription_id: int,
    payload: CancelSubscriptionRequest,
    caller: Caller = Depends(get_current_caller),
    service: SubscriptionService = Depends(get_subscription_service),
) -> Dict[str, Any]:
    subscription = service.cancel(
        caller, subscription_id, payload.reason, request_refund=payload.request_refund
    )
    return success("Subscription cancelled successfully", serialize_subscription(subscription))


@router.post("/{subscription_id}/renew")
async def renew_subscription(
    subscription_id: int,
    caller: Caller = Depends(get_current_caller),
    service: SubscriptionService = Depends(get_subscription_service),
) -> Dict[str, Any]:
    subscription = service.renew(caller, subscription_id)
    return success("Subscription renewed successfully", serialize_subscription(subscription))


@router.get("/{subscription_id}/history")
async def subscription_history(
    subscription_id: int,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    caller: Caller = Depends(get_current_caller),
    service: SubscriptionService = Depends(get_subscription_service),
) -> Dict[str, Any]:
    history, total = service.get_history(caller, subscription_id, page=page, limit=limit)
    return success(
        "Service history retrieved",
        {"history": history, "total": total, "pagination": pagination(page, limit, total)},
    )


@router.get("/{subscription_id}/payment-history")
async def payment_history(
    subscription_id: int,
    caller: Caller = Depends(get_current_caller),
    service: SubscriptionService = Depends(get_subscription_service),
) -> Dict[str, Any]:
    payments = service.get_payment_history(caller, subscription_id)
    return success("Payment history retrieved", payments)


@router.post("/{subscription_id}/record-visit")
async def record_visit(
    subscription_id: int,
    payload: RecordVisitRequest,
    caller: Caller = Depends(get_current_caller),
    service: SubscriptionService = Depends(get_subscription_service),
) -> Dict[str, Any]:
    subscription = service.record_visit(
        caller, subscription_id, payload.status, payload.notes, payload.rating
    )
    return success("Service visit recorded successfully", serialize_subscription(subscription))


@router.put("/{subscription_id}/schedule")
async def update_schedule(
    subscription_id: int,
    payload: SchedulePayload,
    caller: Caller = Depends(get_current_caller),
    service: SubscriptionService = Depends(get_subscription_service),
) -> Dict[str, Any]:
    subscription = service.update_schedule(
        caller,
        subscription_id,
        preferred_days=payload.preferred_days,
        preferred_time=payload.preferred_time,
        flexible_scheduling=payload.flexible_scheduling,
    )
    return success("Schedule updated successfully", serialize_subscription(subscription))


@router.post("/{subscription_id}/reschedule")
async def reschedule_service(
    subscription_id: int,
    payload: RescheduleRequest,
    caller: Caller = Depends(get_current_caller),
    service: SubscriptionService = Depends(get_subscription_service),
) -> Dict[str, Any]:
    subscription = service.reschedule(caller, subscription_id, payload.new_date, payload.reason)
    return success("Service rescheduled successfully", serialize_subscription(subscription))


@router.put("/{subscription_id}/payment-method")
async def update_payment_method(
    subscription_id: int,
    payload: PaymentMethodRequest,
    caller: Caller = Depends(get_current_caller),
    service: SubscriptionService = Depends(get_subscription_service),
) -> Dict[str, Any]:
    subscription = service.update_payment_method(caller, subscription_id, payload.payment_method_id)
    return success("Payment method updated successfully", serialize_subscription(subscription))


@router.post("/{subscription_id}/apply-discount")
async def apply_discount(
    subscription_id: int,
    payload: ApplyDiscountRequest,
    caller: Caller = Depends(get_current_caller),
    service: SubscriptionService = Depends(get_subscription_service),
) -> Dict[str, Any]:
    subscription = service.apply_discount(caller, subscription_id, payload.code)
    return success("Discount applied successfully", serialize_subscription(subscription))


@router.delete("/{subscription_id}/discount")
async def remove_discount(
    subscription_id: int,
    caller: Caller = Depends(get_current_caller),
    service: SubscriptionService = Depends(get_subscription_service),
) -> Dict[str, Any]:
    subscription = service.remove_discount(caller, subscription_id)
    return success("Discount removed successfully", serialize_subscription(subscription))
