import logging
from datetime import timedelta

import pytest

from localserve.application.services.access_guard import Caller
from localserve.domain.exceptions import AccessDeniedError, IllegalTransitionError, NotFoundError
from localserve.domain.models import Schedule


def counters(persistence, seeded):
    customer = persistence.get_customer(seeded.customer.id)
    service = persistence.get_service(seeded.service.id)
    return customer.active_subscriptions, service.active_subscriptions


@pytest.fixture
def subscription(subscription_service, callers, seeded):
    return subscription_service.create_subscription(
        callers.customer,
        service_id=seeded.service.id,
        plan_interval="weekly",
        schedule=Schedule(preferred_days=["tuesday"], preferred_time="10:00"),
    )


def test_create_defaults_plan_from_service(subscription, persistence, seeded, clock):
    assert subscription.id is not None
    assert subscription.status == "pending"
    assert subscription.provider_id == seeded.provider.id
    assert subscription.plan.price == 50.0
    assert subscription.plan.name == "Lawn care"
    assert subscription.start_date == clock.now
    assert subscription.next_billing_date == clock.now + timedelta(days=7)
    assert subscription.schedule.preferred_days == ["tuesday"]
    assert counters(persistence, seeded) == (1, 1)


def test_create_requires_customer_role(subscription_service, callers, seeded):
    with pytest.raises(AccessDeniedError):
        subscription_service.create_subscription(callers.provider, service_id=seeded.service.id)


def test_create_rejects_inactive_or_unknown_service(subscription_service, callers, seeded):
    with pytest.raises(NotFoundError):
        subscription_service.create_subscription(callers.customer, service_id=seeded.inactive_service.id)
    with pytest.raises(NotFoundError):
        subscription_service.create_subscription(callers.customer, service_id=9999)


def test_get_enforces_ownership(subscription_service, subscription, callers):
    assert subscription_service.get_subscription(callers.provider, subscription.id).id == subscription.id
    assert subscription_service.get_subscription(callers.admin, subscription.id).id == subscription.id
    with pytest.raises(AccessDeniedError):
        subscription_service.get_subscription(callers.other_customer, subscription.id)
    with pytest.raises(AccessDeniedError):
        subscription_service.get_subscription(callers.other_provider, subscription.id)
    with pytest.raises(NotFoundError):
        subscription_service.get_subscription(callers.admin, 4242)


def test_list_is_scoped_and_paginated(subscription_service, callers, seeded):
    for _ in range(3):
        subscription_service.create_subscription(callers.customer, service_id=seeded.service.id)

    items, total = subscription_service.list_subscriptions(callers.customer, page=2, limit=2)
    assert total == 3
    assert len(items) == 1

    assert subscription_service.list_subscriptions(callers.other_customer) == ([], 0)
    assert subscription_service.list_subscriptions(callers.other_provider) == ([], 0)
    assert subscription_service.list_subscriptions(callers.provider)[1] == 3
    assert subscription_service.list_subscriptions(callers.admin, status="active") == ([], 0)


def test_lifecycle_keeps_counters_in_step(subscription_service, subscription, callers, persistence, seeded):
    subscription_service.activate(callers.provider, subscription.id)
    assert counters(persistence, seeded) == (1, 1)

    paused = subscription_service.pause(callers.customer, subscription.id, "Vacation")
    assert paused.status == "paused"
    assert counters(persistence, seeded) == (0, 1)

    subscription_service.resume(callers.customer, subscription.id)
    assert counters(persistence, seeded) == (1, 1)

    subscription_service.expire(callers.admin, subscription.id)
    assert counters(persistence, seeded) == (0, 0)

    renewed = subscription_service.renew(callers.customer, subscription.id)
    assert renewed.status == "active"
    assert counters(persistence, seeded) == (1, 1)


def test_failed_transition_persists_nothing(subscription_service, subscription, callers, persistence, seeded):
    with pytest.raises(IllegalTransitionError):
        subscription_service.resume(callers.customer, subscription.id)

    stored = persistence.get_subscription(subscription.id)
    assert stored.status == "pending"
    assert stored.version == subscription.version
    assert counters(persistence, seeded) == (1, 1)


def test_expire_requires_admin(subscription_service, subscription, callers):
    subscription_service.activate(callers.provider, subscription.id)
    with pytest.raises(AccessDeniedError):
        subscription_service.expire(callers.customer, subscription.id)


def test_cancel_notifies_customer_once(subscription_service, subscription, callers, email_service, persistence, seeded):
    cancelled = subscription_service.cancel(
        callers.customer, subscription.id, "Moving away", request_refund=True
    )

    assert cancelled.status == "cancelled"
    assert cancelled.cancellation.cancelled_by == "customer"
    assert cancelled.cancellation.refund_amount == 50.0
    assert counters(persistence, seeded) == (0, 0)
    assert len(email_service.sent) == 1
    to_email, subject, message = email_service.sent[0]
    assert to_email == "dana@example.com"
    assert "Moving away" in message
    assert "refund" in message

    again = subscription_service.cancel(callers.admin, subscription.id, "Duplicate request")
    assert again.version == cancelled.version
    assert again.cancellation.reason == "Moving away"
    assert len(email_service.sent) == 1
    assert counters(persistence, seeded) == (0, 0)


def test_cancel_respects_notification_opt_out(subscription_service, persistence, seeded, email_service):
    quiet = persistence.create_customer(
        user_id=12, full_name="Quiet Customer", email="quiet@example.com", email_notifications=False
    )
    caller = Caller(user_id=12, role="customer", customer_id=quiet.id)
    created = subscription_service.create_subscription(caller, service_id=seeded.service.id)

    subscription_service.cancel(caller, created.id, "No longer needed")

    assert email_service.sent == []


def test_record_visit_roles(subscription_service, subscription, callers):
    with pytest.raises(AccessDeniedError):
        subscription_service.record_visit(callers.customer, subscription.id, "completed")
    with pytest.raises(AccessDeniedError):
        subscription_service.record_visit(callers.other_provider, subscription.id, "completed")

    updated = subscription_service.record_visit(
        callers.provider, subscription.id, "completed", "All done", rating=4
    )
    assert updated.statistics.completed_visits == 1
    assert updated.service_history[0].rating == 4


def test_history_pagination(subscription_service, subscription, callers, clock):
    for _ in range(5):
        clock.advance(days=1)
        subscription_service.record_visit(callers.provider, subscription.id, "completed")

    history, total = subscription_service.get_history(callers.customer, subscription.id, page=2, limit=2)

    assert total == 5
    assert [visit.date for visit in history] == [
        subscription.start_date + timedelta(days=3),
        subscription.start_date + timedelta(days=4),
    ]


def test_update_subscription_merges_schedule(subscription_service, subscription, callers):
    updated = subscription_service.update_subscription(
        callers.customer,
        subscription.id,
        plan_type="premium",
        flexible_scheduling=True,
        auto_renew=False,
    )

    assert updated.plan.type == "premium"
    assert updated.auto_renew is False
    assert updated.schedule.preferred_days == ["tuesday"]
    assert updated.schedule.preferred_time == "10:00"
    assert updated.schedule.flexible_scheduling is True
    assert updated.next_billing_date == subscription.next_billing_date

    with pytest.raises(AccessDeniedError):
        subscription_service.update_subscription(callers.provider, subscription.id, auto_renew=True)


def test_discount_does_not_change_billing(subscription_service, subscription, callers):
    updated = subscription_service.apply_discount(callers.customer, subscription.id, "WELCOME")

    assert updated.discount.code == "WELCOME"
    assert updated.discount.percentage == 10
    assert updated.billing.amount == 50.0

    cleared = subscription_service.remove_discount(callers.customer, subscription.id)
    assert cleared.discount is None


def test_reschedule_and_payment_method(subscription_service, subscription, callers, clock):
    new_date = (clock.now + timedelta(days=2)).replace(tzinfo=None)

    updated = subscription_service.reschedule(callers.provider, subscription.id, new_date)
    assert updated.next_service_date == clock.now + timedelta(days=2)

    updated = subscription_service.update_payment_method(callers.customer, subscription.id, "pm_card_visa")
    assert updated.billing.payment_method_id == "pm_card_visa"


def test_upcoming_services(subscription_service, subscription, callers, clock, seeded):
    later = subscription_service.create_subscription(
        callers.customer,
        service_id=seeded.service.id,
        start_date=clock.now + timedelta(days=20),
    )
    subscription_service.activate(callers.admin, subscription.id)
    subscription_service.activate(callers.admin, later.id)
    subscription_service.reschedule(callers.customer, subscription.id, clock.now + timedelta(days=2))

    upcoming = subscription_service.upcoming_services(callers.customer, days=7)

    assert [item.id for item in upcoming] == [subscription.id]
    with pytest.raises(AccessDeniedError):
        subscription_service.upcoming_services(callers.provider)


def test_expiring_subscriptions(subscription_service, subscription, callers):
    subscription_service.activate(callers.admin, subscription.id)
    assert subscription_service.expiring_subscriptions(callers.customer, days=7) == []

    subscription_service.update_subscription(callers.customer, subscription.id, auto_renew=False)

    expiring = subscription_service.expiring_subscriptions(callers.provider, days=7)
    assert [item.id for item in expiring] == [subscription.id]
    assert subscription_service.expiring_subscriptions(callers.other_provider, days=7) == []
    assert subscription_service.expiring_subscriptions(callers.customer, days=6) == []


def test_reschedule_reason_is_logged(subscription_service, subscription, callers, clock, caplog):
    caplog.set_level(logging.INFO, logger="localserve.application.services.subscription_service")

    subscription_service.reschedule(
        callers.customer, subscription.id, clock.now + timedelta(days=1), "Gardener is sick"
    )

    assert "(Gardener is sick)" in caplog.text
    assert f"Subscription {subscription.id} rescheduled to" in caplog.text
