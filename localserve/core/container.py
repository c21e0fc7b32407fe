from dataclasses import dataclass

from ..application.services.earnings_service import EarningsService
from ..application.services.reconciliation_service import CounterReconciliationService
from ..application.services.subscription_service import SubscriptionService
from .config import Settings
from ..domain.ports.persistence import PersistenceGateway
from ..services.email_service import EmailService
from ..services.token_service import TokenService


@dataclass(slots=True)
class ApplicationContainer:
    """Dependency registry shared across the FastAPI application lifecycle."""

    settings: Settings
    persistence: PersistenceGateway
    token_service: TokenService
    email_service: EmailService
    subscription_service: SubscriptionService
    earnings_service: EarningsService
    reconciliation_service: CounterReconciliationService
