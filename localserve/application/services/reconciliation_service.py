from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict

from ...domain.models.subscription import CUSTOMER_COUNTED, SERVICE_COUNTED
from ...domain.ports.persistence import PersistenceGateway

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ReconciliationReport:
    customer_counts: Dict[int, int] = field(default_factory=dict)
    service_counts: Dict[int, int] = field(default_factory=dict)
    subscriptions_scanned: int = 0


class CounterReconciliationService:
    """Recomputes the denormalized active-subscription counters from subscription statuses."""

    def __init__(self, persistence: PersistenceGateway) -> None:
        self._persistence = persistence

    def compute(self) -> ReconciliationReport:
        customer_counts: Counter = Counter()
        service_counts: Counter = Counter()
        rows = self._persistence.subscription_statuses()
        for customer_id, service_id, status in rows:
            if status in CUSTOMER_COUNTED:
                customer_counts[customer_id] += 1
            if status in SERVICE_COUNTED:
                service_counts[service_id] += 1
        return ReconciliationReport(
            customer_counts=dict(customer_counts),
            service_counts=dict(service_counts),
            subscriptions_scanned=len(rows),
        )

    def reconcile(self) -> ReconciliationReport:
        report = self.compute()
        self._persistence.replace_counters(report.customer_counts, report.service_counts)
        logger.info(
            "Counters reconciled from %s subscriptions (%s customers, %s services)",
            report.subscriptions_scanned,
            len(report.customer_counts),
            len(report.service_counts),
        )
        return report
