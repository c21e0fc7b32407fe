from dataclasses import asdict

from fastapi import APIRouter, Depends

from ....application.services.access_guard import Caller
from ....application.services.earnings_service import EarningsService
from ....application.services.reconciliation_service import CounterReconciliationService
from ....application.services.subscription_service import SubscriptionService
from ....core.dependencies import (
    get_earnings_service,
    get_reconciliation_service,
    get_subscription_service,
)
from ....domain.models import ServiceProvider
from ...api.dependencies import require_admin
from ...api.envelope import serialize_subscription, success
from ...api.schemas.subscription_schemas import PayoutRequest, RecordPaymentRequest

router = APIRouter(prefix="/api/admin", tags=["Administration"])


@router.post("/subscriptions/{subscription_id}/expire")
def expire_subscription(
    subscription_id: int,
    admin: Caller = Depends(require_admin),
    service: SubscriptionService = Depends(get_subscription_service),
) -> dict:
    subscription = service.expire(admin, subscription_id)
    return success("Subscription expired", serialize_subscription(subscription))


@router.post("/subscriptions/{subscription_id}/payments")
def record_payment(
    subscription_id: int,
    payload: RecordPaymentRequest,
    admin: Caller = Depends(require_admin),
    earnings: EarningsService = Depends(get_earnings_service),
) -> dict:
    subscription = earnings.record_payment(admin, subscription_id, payload.amount)
    return success("Payment recorded", serialize_subscription(subscription))


@router.post("/providers/{provider_id}/payouts")
def process_payout(
    provider_id: int,
    payload: PayoutRequest,
    admin: Caller = Depends(require_admin),
    earnings: EarningsService = Depends(get_earnings_service),
) -> dict:
    provider = earnings.process_payout(admin, provider_id, payload.amount)
    return success("Payout processed", _serialize_provider(provider))


@router.post("/counters/reconcile")
def reconcile_counters(
    _: Caller = Depends(require_admin),
    reconciliation: CounterReconciliationService = Depends(get_reconciliation_service),
) -> dict:
    """Rebuild the active-subscription counters from the stored statuses."""
    report = reconciliation.reconcile()
    return success("Counters reconciled", asdict(report))


def _serialize_provider(provider: ServiceProvider) -> dict:
    return {
        "id": provider.id,
        "business_name": provider.business_name,
        "total_earnings": round(provider.total_earnings, 2),
        "pending_payouts": round(provider.pending_payouts, 2),
        "available_balance": round(provider.available_balance, 2),
    }
