import json
import sqlite3
import threading
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from ...domain.exceptions import ConcurrentModificationError, NotFoundError, PartialUpdateError
from ...domain.models import (
    Billing,
    Cancellation,
    CounterDelta,
    Customer,
    Discount,
    PauseRecord,
    Payment,
    Plan,
    Schedule,
    Service,
    ServiceProvider,
    Subscription,
    SubscriptionStatistics,
    Visit,
)
from ...domain.ports.persistence import PersistenceGateway


class SQLitePersistence(PersistenceGateway):
    """SQLite-backed implementation of the persistence gateway.

    Subscriptions are stored one row per document; nested structures
    (plan, billing, histories, ...) live in JSON columns.
    """

    def __init__(self, path: Path) -> None:
        if str(path) != ":memory:":
            path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._initialize()

    def _initialize(self) -> None:
        with self._conn:
            self._conn.executescript(
                """
                PRAGMA foreign_keys = ON;

                CREATE TABLE IF NOT EXISTS customers (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL UNIQUE,
                    full_name TEXT NOT NULL,
                    email TEXT NOT NULL,
                    email_notifications INTEGER NOT NULL DEFAULT 1,
                    total_spent REAL NOT NULL DEFAULT 0,
                    loyalty_points INTEGER NOT NULL DEFAULT 0,
                    active_subscriptions INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS providers (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL UNIQUE,
                    business_name TEXT NOT NULL,
                    email TEXT,
                    total_earnings REAL NOT NULL DEFAULT 0,
                    pending_payouts REAL NOT NULL DEFAULT 0,
                    available_balance REAL NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS services (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    provider_id INTEGER NOT NULL,
                    name TEXT NOT NULL,
                    base_price REAL NOT NULL,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    active_subscriptions INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    FOREIGN KEY(provider_id) REFERENCES providers(id)
                );

                CREATE TABLE IF NOT EXISTS subscriptions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    customer_id INTEGER NOT NULL,
                    service_id INTEGER NOT NULL,
                    provider_id INTEGER NOT NULL,
                    status TEXT NOT NULL,
                    plan TEXT NOT NULL,
                    start_date TEXT NOT NULL,
                    end_date TEXT,
                    next_billing_date TEXT NOT NULL,
                    next_service_date TEXT,
                    auto_renew INTEGER NOT NULL DEFAULT 1,
                    billing TEXT NOT NULL,
                    schedule TEXT NOT NULL,
                    service_history TEXT NOT NULL,
                    special_instructions TEXT,
                    discount TEXT,
                    statistics TEXT NOT NULL,
                    pause_history TEXT NOT NULL,
                    cancellation TEXT,
                    version INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    FOREIGN KEY(customer_id) REFERENCES customers(id),
                    FOREIGN KEY(service_id) REFERENCES services(id),
                    FOREIGN KEY(provider_id) REFERENCES providers(id)
                );

                CREATE TABLE IF NOT EXISTS payments (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    subscription_id INTEGER NOT NULL,
                    customer_id INTEGER NOT NULL,
                    provider_id INTEGER NOT NULL,
                    service_id INTEGER NOT NULL,
                    amount REAL NOT NULL,
                    platform_fee REAL NOT NULL,
                    provider_amount REAL NOT NULL,
                    currency TEXT NOT NULL,
                    payment_method_id TEXT,
                    paid_at TEXT NOT NULL,
                    FOREIGN KEY(subscription_id) REFERENCES subscriptions(id)
                );

                CREATE INDEX IF NOT EXISTS idx_subscriptions_customer_status
                    ON subscriptions(customer_id, status);
                CREATE INDEX IF NOT EXISTS idx_subscriptions_provider_status
                    ON subscriptions(provider_id, status);
                CREATE INDEX IF NOT EXISTS idx_subscriptions_service
                    ON subscriptions(service_id);
                CREATE INDEX IF NOT EXISTS idx_subscriptions_next_billing
                    ON subscriptions(next_billing_date);
                CREATE INDEX IF NOT EXISTS idx_payments_subscription
                    ON payments(subscription_id, paid_at);
                """
            )

    def close(self) -> None:
        self._conn.close()

    # CustomerRepository API -------------------------------------------------
    def create_customer(
        self,
        user_id: int,
        full_name: str,
        email: str,
        email_notifications: bool = True,
    ) -> Customer:
        now = self._now()
        with self._lock, self._conn:
            cur = self._conn.execute(
                """
                INSERT INTO customers (
                    user_id, full_name, email, email_notifications, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (user_id, full_name, email.lower(), int(email_notifications), now, now),
            )
            cur = self._conn.execute("SELECT * FROM customers WHERE id = ?", (cur.lastrowid,))
            row = cur.fetchone()
        if not row:
            raise RuntimeError("Failed to persist customer.")
        return self._row_to_customer(row)

    def get_customer(self, customer_id: int) -> Optional[Customer]:
        with self._lock:
            cur = self._conn.execute("SELECT * FROM customers WHERE id = ?", (customer_id,))
            row = cur.fetchone()
        return self._row_to_customer(row) if row else None

    def get_customer_by_user_id(self, user_id: int) -> Optional[Customer]:
        with self._lock:
            cur = self._conn.execute("SELECT * FROM customers WHERE user_id = ?", (user_id,))
            row = cur.fetchone()
        return self._row_to_customer(row) if row else None

    # ProviderRepository API -------------------------------------------------
    def create_provider(
        self,
        user_id: int,
        business_name: str,
        email: Optional[str] = None,
    ) -> ServiceProvider:
        now = self._now()
        with self._lock, self._conn:
            cur = self._conn.execute(
                """
                INSERT INTO providers (user_id, business_name, email, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (user_id, business_name, email.lower() if email else None, now, now),
            )
            cur = self._conn.execute("SELECT * FROM providers WHERE id = ?", (cur.lastrowid,))
            row = cur.fetchone()
        if not row:
            raise RuntimeError("Failed to persist provider.")
        return self._row_to_provider(row)

    def get_provider(self, provider_id: int) -> Optional[ServiceProvider]:
        with self._lock:
            cur = self._conn.execute("SELECT * FROM providers WHERE id = ?", (provider_id,))
            row = cur.fetchone()
        return self._row_to_provider(row) if row else None

    def get_provider_by_user_id(self, user_id: int) -> Optional[ServiceProvider]:
        with self._lock:
            cur = self._conn.execute("SELECT * FROM providers WHERE user_id = ?", (user_id,))
            row = cur.fetchone()
        return self._row_to_provider(row) if row else None

    def save_provider_balances(self, provider: ServiceProvider) -> ServiceProvider:
        with self._lock, self._conn:
            self._update_provider_locked(provider)
            cur = self._conn.execute("SELECT * FROM providers WHERE id = ?", (provider.id,))
            row = cur.fetchone()
        return self._row_to_provider(row)

    # ServiceRepository API --------------------------------------------------
    def create_service(
        self,
        provider_id: int,
        name: str,
        base_price: float,
        is_active: bool = True,
    ) -> Service:
        now = self._now()
        with self._lock, self._conn:
            cur = self._conn.execute(
                """
                INSERT INTO services (provider_id, name, base_price, is_active, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (provider_id, name, base_price, int(is_active), now, now),
            )
            cur = self._conn.execute("SELECT * FROM services WHERE id = ?", (cur.lastrowid,))
            row = cur.fetchone()
        if not row:
            raise RuntimeError("Failed to persist service.")
        return self._row_to_service(row)

    def get_service(self, service_id: int) -> Optional[Service]:
        with self._lock:
            cur = self._conn.execute("SELECT * FROM services WHERE id = ?", (service_id,))
            row = cur.fetchone()
        return self._row_to_service(row) if row else None

    # SubscriptionRepository API ---------------------------------------------
    def create_subscription(self, subscription: Subscription, delta: CounterDelta) -> Subscription:
        now = self._now()
        values = self._subscription_values(subscription)
        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        with self._lock, self._conn:
            cur = self._conn.execute(
                f"INSERT INTO subscriptions ({columns}, version, created_at, updated_at) "
                f"VALUES ({placeholders}, 0, ?, ?)",
                (*values.values(), now, now),
            )
            subscription_id = cur.lastrowid
            self._apply_delta_locked(subscription.customer_id, subscription.service_id, delta, now)
            cur = self._conn.execute("SELECT * FROM subscriptions WHERE id = ?", (subscription_id,))
            row = cur.fetchone()
        if not row:
            raise RuntimeError("Failed to persist subscription.")
        return self._row_to_subscription(row)

    def get_subscription(self, subscription_id: int) -> Optional[Subscription]:
        with self._lock:
            cur = self._conn.execute("SELECT * FROM subscriptions WHERE id = ?", (subscription_id,))
            row = cur.fetchone()
        return self._row_to_subscription(row) if row else None

    def list_subscriptions(
        self,
        *,
        customer_id: Optional[int] = None,
        provider_id: Optional[int] = None,
        status: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Subscription]:
        where, params = self._subscription_filters(customer_id, provider_id, status)
        query = f"SELECT * FROM subscriptions{where} ORDER BY created_at DESC, id DESC"
        if limit is not None:
            query += " LIMIT ? OFFSET ?"
            params.extend([limit, offset])
        with self._lock:
            cur = self._conn.execute(query, params)
            rows = cur.fetchall()
        return [self._row_to_subscription(row) for row in rows]

    def count_subscriptions(
        self,
        *,
        customer_id: Optional[int] = None,
        provider_id: Optional[int] = None,
        status: Optional[str] = None,
    ) -> int:
        where, params = self._subscription_filters(customer_id, provider_id, status)
        with self._lock:
            cur = self._conn.execute(f"SELECT COUNT(*) AS total FROM subscriptions{where}", params)
            row = cur.fetchone()
        return int(row["total"])

    def save_subscription(self, subscription: Subscription, delta: CounterDelta) -> Subscription:
        now = self._now()
        with self._lock, self._conn:
            self._update_subscription_locked(subscription, now)
            self._apply_delta_locked(subscription.customer_id, subscription.service_id, delta, now)
            cur = self._conn.execute("SELECT * FROM subscriptions WHERE id = ?", (subscription.id,))
            row = cur.fetchone()
        return self._row_to_subscription(row)

    def save_payment(
        self,
        subscription: Subscription,
        customer: Customer,
        provider: ServiceProvider,
        payment: Payment,
    ) -> Subscription:
        now = self._now()
        with self._lock, self._conn:
            self._update_subscription_locked(subscription, now)
            cur = self._conn.execute(
                "UPDATE customers SET total_spent = ?, loyalty_points = ?, updated_at = ? WHERE id = ?",
                (customer.total_spent, customer.loyalty_points, now, customer.id),
            )
            if cur.rowcount == 0:
                raise PartialUpdateError(f"Customer {customer.id} disappeared during payment booking")
            self._update_provider_locked(provider)
            cur = self._conn.execute(
                """
                INSERT INTO payments (
                    subscription_id, customer_id, provider_id, service_id, amount, platform_fee,
                    provider_amount, currency, payment_method_id, paid_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    payment.subscription_id,
                    payment.customer_id,
                    payment.provider_id,
                    payment.service_id,
                    payment.amount,
                    payment.platform_fee,
                    payment.provider_amount,
                    payment.currency,
                    payment.payment_method_id,
                    self._format_datetime(payment.paid_at),
                ),
            )
            payment.id = cur.lastrowid
            cur = self._conn.execute("SELECT * FROM subscriptions WHERE id = ?", (subscription.id,))
            row = cur.fetchone()
        return self._row_to_subscription(row)

    def list_payments(self, subscription_id: int) -> List[Payment]:
        with self._lock:
            cur = self._conn.execute(
                "SELECT * FROM payments WHERE subscription_id = ? ORDER BY paid_at DESC, id DESC",
                (subscription_id,),
            )
            rows = cur.fetchall()
        return [self._row_to_payment(row) for row in rows]

    def subscription_statuses(self) -> List[Tuple[int, int, str]]:
        with self._lock:
            cur = self._conn.execute("SELECT customer_id, service_id, status FROM subscriptions")
            rows = cur.fetchall()
        return [(row["customer_id"], row["service_id"], row["status"]) for row in rows]

    def replace_counters(self, customer_counts: Dict[int, int], service_counts: Dict[int, int]) -> None:
        now = self._now()
        with self._lock, self._conn:
            self._conn.execute("UPDATE customers SET active_subscriptions = 0, updated_at = ?", (now,))
            self._conn.execute("UPDATE services SET active_subscriptions = 0, updated_at = ?", (now,))
            self._conn.executemany(
                "UPDATE customers SET active_subscriptions = ? WHERE id = ?",
                [(count, customer_id) for customer_id, count in customer_counts.items()],
            )
            self._conn.executemany(
                "UPDATE services SET active_subscriptions = ? WHERE id = ?",
                [(count, service_id) for service_id, count in service_counts.items()],
            )

    # Locked helpers ---------------------------------------------------------
    def _update_subscription_locked(self, subscription: Subscription, now: str) -> None:
        values = self._subscription_values(subscription)
        assignments = ", ".join(f"{column} = ?" for column in values)
        cur = self._conn.execute(
            f"UPDATE subscriptions SET {assignments}, version = version + 1, updated_at = ? "
            "WHERE id = ? AND version = ?",
            (*values.values(), now, subscription.id, subscription.version),
        )
        if cur.rowcount == 0:
            exists = self._conn.execute(
                "SELECT 1 FROM subscriptions WHERE id = ?", (subscription.id,)
            ).fetchone()
            if exists:
                raise ConcurrentModificationError(subscription.id)
            raise NotFoundError(f"Subscription {subscription.id} not found")

    def _apply_delta_locked(self, customer_id: int, service_id: int, delta: CounterDelta, now: str) -> None:
        if delta.customer:
            cur = self._conn.execute(
                "UPDATE customers SET active_subscriptions = active_subscriptions + ?, updated_at = ? "
                "WHERE id = ?",
                (delta.customer, now, customer_id),
            )
            if cur.rowcount == 0:
                raise PartialUpdateError(f"Customer {customer_id} counter could not be updated")
        if delta.service:
            cur = self._conn.execute(
                "UPDATE services SET active_subscriptions = active_subscriptions + ?, updated_at = ? "
                "WHERE id = ?",
                (delta.service, now, service_id),
            )
            if cur.rowcount == 0:
                raise PartialUpdateError(f"Service {service_id} counter could not be updated")

    def _update_provider_locked(self, provider: ServiceProvider) -> None:
        cur = self._conn.execute(
            """
            UPDATE providers
            SET total_earnings = ?, pending_payouts = ?, available_balance = ?, updated_at = ?
            WHERE id = ?
            """,
            (
                provider.total_earnings,
                provider.pending_payouts,
                provider.available_balance,
                self._now(),
                provider.id,
            ),
        )
        if cur.rowcount == 0:
            raise PartialUpdateError(f"Provider {provider.id} balances could not be updated")

    # Helpers ----------------------------------------------------------------
    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    @staticmethod
    def _format_datetime(value: Optional[datetime]) -> Optional[str]:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()

    @staticmethod
    def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
        if not value:
            return None
        result = datetime.fromisoformat(value)
        if result.tzinfo is None:
            return result.replace(tzinfo=timezone.utc)
        return result.astimezone(timezone.utc)

    @classmethod
    def _dump(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, list):
            data: Any = [asdict(item) for item in value]
        else:
            data = asdict(value)
        return json.dumps(
            data,
            default=lambda item: cls._format_datetime(item) if isinstance(item, datetime) else str(item),
            ensure_ascii=False,
        )

    @staticmethod
    def _subscription_filters(
        customer_id: Optional[int],
        provider_id: Optional[int],
        status: Optional[str],
    ) -> Tuple[str, List[Any]]:
        clauses: List[str] = []
        params: List[Any] = []
        if customer_id is not None:
            clauses.append("customer_id = ?")
            params.append(customer_id)
        if provider_id is not None:
            clauses.append("provider_id = ?")
            params.append(provider_id)
        if status:
            clauses.append("status = ?")
            params.append(status)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, params

    def _subscription_values(self, subscription: Subscription) -> Dict[str, Any]:
        return {
            "customer_id": subscription.customer_id,
            "service_id": subscription.service_id,
            "provider_id": subscription.provider_id,
            "status": subscription.status,
            "plan": self._dump(subscription.plan),
            "start_date": self._format_datetime(subscription.start_date),
            "end_date": self._format_datetime(subscription.end_date),
            "next_billing_date": self._format_datetime(subscription.next_billing_date),
            "next_service_date": self._format_datetime(subscription.next_service_date),
            "auto_renew": int(subscription.auto_renew),
            "billing": self._dump(subscription.billing),
            "schedule": self._dump(subscription.schedule),
            "service_history": self._dump(subscription.service_history),
            "special_instructions": subscription.special_instructions,
            "discount": self._dump(subscription.discount),
            "statistics": self._dump(subscription.statistics),
            "pause_history": self._dump(subscription.pause_history),
            "cancellation": self._dump(subscription.cancellation),
        }

    def _row_to_subscription(self, row: sqlite3.Row) -> Subscription:
        parse = self._parse_datetime
        billing = json.loads(row["billing"])
        billing["last_payment_date"] = parse(billing.get("last_payment_date"))
        visits = [
            Visit(
                date=parse(item["date"]),
                status=item["status"],
                notes=item.get("notes") or "",
                completed_at=parse(item.get("completed_at")),
                rating=item.get("rating"),
            )
            for item in json.loads(row["service_history"])
        ]
        pauses = [
            PauseRecord(
                paused_at=parse(item["paused_at"]),
                reason=item.get("reason"),
                resumed_at=parse(item.get("resumed_at")),
            )
            for item in json.loads(row["pause_history"])
        ]
        cancellation = None
        if row["cancellation"]:
            data = json.loads(row["cancellation"])
            data["cancelled_at"] = parse(data["cancelled_at"])
            cancellation = Cancellation(**data)
        discount = Discount(**json.loads(row["discount"])) if row["discount"] else None
        return Subscription(
            id=row["id"],
            customer_id=row["customer_id"],
            service_id=row["service_id"],
            provider_id=row["provider_id"],
            status=row["status"],
            plan=Plan(**json.loads(row["plan"])),
            billing=Billing(**billing),
            start_date=parse(row["start_date"]),
            end_date=parse(row["end_date"]),
            next_billing_date=parse(row["next_billing_date"]),
            next_service_date=parse(row["next_service_date"]),
            auto_renew=bool(row["auto_renew"]),
            schedule=Schedule(**json.loads(row["schedule"])),
            service_history=visits,
            special_instructions=row["special_instructions"],
            discount=discount,
            statistics=SubscriptionStatistics(**json.loads(row["statistics"])),
            pause_history=pauses,
            cancellation=cancellation,
            version=row["version"],
            created_at=parse(row["created_at"]),
            updated_at=parse(row["updated_at"]),
        )

    def _row_to_customer(self, row: sqlite3.Row) -> Customer:
        return Customer(
            id=row["id"],
            user_id=row["user_id"],
            full_name=row["full_name"],
            email=row["email"],
            email_notifications=bool(row["email_notifications"]),
            total_spent=row["total_spent"],
            loyalty_points=row["loyalty_points"],
            active_subscriptions=row["active_subscriptions"],
            created_at=self._parse_datetime(row["created_at"]),
            updated_at=self._parse_datetime(row["updated_at"]),
        )

    def _row_to_provider(self, row: sqlite3.Row) -> ServiceProvider:
        return ServiceProvider(
            id=row["id"],
            user_id=row["user_id"],
            business_name=row["business_name"],
            email=row["email"],
            total_earnings=row["total_earnings"],
            pending_payouts=row["pending_payouts"],
            available_balance=row["available_balance"],
            created_at=self._parse_datetime(row["created_at"]),
            updated_at=self._parse_datetime(row["updated_at"]),
        )

    def _row_to_payment(self, row: sqlite3.Row) -> Payment:
        return Payment(
            id=row["id"],
            subscription_id=row["subscription_id"],
            customer_id=row["customer_id"],
            provider_id=row["provider_id"],
            service_id=row["service_id"],
            amount=row["amount"],
            platform_fee=row["platform_fee"],
            provider_amount=row["provider_amount"],
            currency=row["currency"],
            payment_method_id=row["payment_method_id"],
            paid_at=self._parse_datetime(row["paid_at"]),
        )

    def _row_to_service(self, row: sqlite3.Row) -> Service:
        return Service(
            id=row["id"],
            provider_id=row["provider_id"],
            name=row["name"],
            base_price=row["base_price"],
            is_active=bool(row["is_active"]),
            active_subscriptions=row["active_subscriptions"],
            created_at=self._parse_datetime(row["created_at"]),
            updated_at=self._parse_datetime(row["updated_at"]),
        )
