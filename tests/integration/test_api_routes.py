import jwt


def create_subscription(client, headers, service_id, **overrides):
    payload = {
        "service_id": service_id,
        "plan": {"type": "basic", "interval": "monthly"},
        "schedule": {"preferred_days": ["monday"], "preferred_time": "09:30"},
    }
    payload.update(overrides)
    return client.post("/api/subscriptions", json=payload, headers=headers)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"ok": True}


def test_missing_token_is_unauthorized(client):
    response = client.get("/api/subscriptions")
    assert response.status_code == 401
    assert response.json() == {
        "success": False,
        "message": "Not authorized to access this route. Please login.",
    }


def test_invalid_token_is_unauthorized(client):
    response = client.get("/api/subscriptions", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid or expired token"


def test_create_and_fetch_subscription(client, api_seeded, auth_headers):
    customer = auth_headers(10, "customer")

    response = create_subscription(client, customer, api_seeded.service.id)

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Subscription created successfully"
    data = body["data"]
    assert data["status"] == "pending"
    assert data["is_active"] is False
    assert data["billing"]["amount"] == 50.0
    assert data["schedule"]["preferred_days"] == ["monday"]

    fetched = client.get(f"/api/subscriptions/{data['id']}", headers=customer)
    assert fetched.status_code == 200
    assert fetched.json()["data"]["id"] == data["id"]


def test_request_validation_uses_envelope(client, api_seeded, auth_headers):
    response = create_subscription(
        client,
        auth_headers(10, "customer"),
        api_seeded.service.id,
        plan={"type": "basic", "interval": "daily"},
    )

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Validation failed"
    assert any(error["field"] == "plan.interval" for error in body["errors"])


def test_ownership_and_not_found(client, api_seeded, auth_headers):
    created = create_subscription(client, auth_headers(10, "customer"), api_seeded.service.id).json()["data"]

    denied = client.get(f"/api/subscriptions/{created['id']}", headers=auth_headers(11, "customer"))
    assert denied.status_code == 403
    assert denied.json() == {"success": False, "message": "Access denied"}

    missing = client.get("/api/subscriptions/9999", headers=auth_headers(10, "customer"))
    assert missing.status_code == 404
    assert missing.json()["message"] == "Subscription not found"


def test_illegal_transition_is_bad_request(client, api_seeded, auth_headers):
    customer = auth_headers(10, "customer")
    created = create_subscription(client, customer, api_seeded.service.id).json()["data"]

    response = client.post(f"/api/subscriptions/{created['id']}/pause", json={"reason": "Trip"}, headers=customer)

    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "Only active subscriptions can be paused"}


def test_full_lifecycle_over_http(client, api_seeded, auth_headers):
    customer = auth_headers(10, "customer")
    provider = auth_headers(20, "provider")
    subscription_id = create_subscription(client, customer, api_seeded.service.id).json()["data"]["id"]
    base = f"/api/subscriptions/{subscription_id}"

    assert client.post(f"{base}/activate", headers=provider).json()["data"]["status"] == "active"
    assert client.post(f"{base}/pause", headers=customer).json()["data"]["status"] == "paused"
    assert client.post(f"{base}/resume", headers=customer).json()["data"]["status"] == "active"

    visit = client.post(
        f"{base}/record-visit",
        json={"status": "completed", "notes": "Hedges trimmed", "rating": 5},
        headers=provider,
    )
    assert visit.status_code == 200
    assert visit.json()["data"]["statistics"]["completed_visits"] == 1

    history = client.get(f"{base}/history", headers=customer).json()["data"]
    assert history["total"] == 1
    assert history["history"][0]["rating"] == 5
    assert history["pagination"]["total_pages"] == 1

    discount = client.post(f"{base}/apply-discount", json={"code": "WELCOME"}, headers=customer).json()["data"]
    assert discount["discount"]["percentage"] == 10
    assert discount["billing"]["amount"] == 50.0

    cancelled = client.post(
        f"{base}/cancel", json={"reason": "Moving", "request_refund": True}, headers=customer
    ).json()["data"]
    assert cancelled["status"] == "cancelled"
    assert cancelled["cancellation"]["refund_status"] == "pending"

    again = client.post(f"{base}/cancel", json={"reason": "Again"}, headers=customer)
    assert again.status_code == 200
    assert again.json()["data"]["cancellation"]["reason"] == "Moving"


def test_cancel_requires_reason(client, api_seeded, auth_headers):
    customer = auth_headers(10, "customer")
    subscription_id = create_subscription(client, customer, api_seeded.service.id).json()["data"]["id"]

    response = client.post(f"/api/subscriptions/{subscription_id}/cancel", json={}, headers=customer)

    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "reason"


def test_list_with_pagination(client, api_seeded, auth_headers):
    customer = auth_headers(10, "customer")
    for _ in range(3):
        create_subscription(client, customer, api_seeded.service.id)

    body = client.get("/api/subscriptions", params={"page": 1, "limit": 2}, headers=customer).json()

    assert len(body["data"]) == 2
    assert body["pagination"] == {"current_page": 1, "total_pages": 2, "total_results": 3}
    assert client.get("/api/subscriptions", headers=auth_headers(11, "customer")).json()["data"] == []


def test_upcoming_and_expiring_routes(client, api_seeded, auth_headers):
    customer = auth_headers(10, "customer")

    upcoming = client.get("/api/subscriptions/upcoming", params={"days": 14}, headers=customer)
    expiring = client.get("/api/subscriptions/expiring", headers=auth_headers(20, "provider"))

    assert upcoming.status_code == 200
    assert upcoming.json()["data"] == []
    assert expiring.status_code == 200
    assert client.get("/api/subscriptions/upcoming", headers=auth_headers(20, "provider")).status_code == 403


def test_update_subscription_and_schedule(client, api_seeded, auth_headers):
    customer = auth_headers(10, "customer")
    subscription_id = create_subscription(client, customer, api_seeded.service.id).json()["data"]["id"]

    updated = client.put(
        f"/api/subscriptions/{subscription_id}",
        json={"plan": {"type": "premium"}, "auto_renew": False, "schedule": {"flexible_scheduling": True}},
        headers=customer,
    ).json()["data"]
    assert updated["plan"]["type"] == "premium"
    assert updated["auto_renew"] is False
    assert updated["schedule"] == {
        "preferred_days": ["monday"],
        "preferred_time": "09:30",
        "flexible_scheduling": True,
    }

    bad_time = client.put(
        f"/api/subscriptions/{subscription_id}/schedule", json={"preferred_time": "9pm"}, headers=customer
    )
    assert bad_time.status_code == 400

    payment = client.put(
        f"/api/subscriptions/{subscription_id}/payment-method",
        json={"payment_method_id": "pm_123"},
        headers=customer,
    )
    assert payment.json()["data"]["billing"]["payment_method_id"] == "pm_123"


def test_admin_routes_require_admin(client, api_seeded, auth_headers):
    response = client.post("/api/admin/counters/reconcile", headers=auth_headers(10, "customer"))
    assert response.status_code == 403
    assert response.json()["message"] == "Admin access required"


def test_admin_operations(client, api_seeded, auth_headers):
    admin = auth_headers(99, "admin")
    subscription_id = create_subscription(
        client, auth_headers(10, "customer"), api_seeded.service.id
    ).json()["data"]["id"]
    client.post(f"/api/subscriptions/{subscription_id}/activate", headers=admin)

    payment = client.post(
        f"/api/admin/subscriptions/{subscription_id}/payments", json={"amount": 50}, headers=admin
    )
    assert payment.status_code == 200
    assert payment.json()["data"]["billing"]["last_payment_amount"] == 50

    payout = client.post(
        f"/api/admin/providers/{api_seeded.provider.id}/payouts", json={"amount": 20}, headers=admin
    ).json()["data"]
    assert payout["pending_payouts"] == 25.0
    assert payout["available_balance"] == 20.0

    history = client.get(
        f"/api/subscriptions/{subscription_id}/payment-history", headers=auth_headers(10, "customer")
    )
    assert history.status_code == 200
    assert [item["amount"] for item in history.json()["data"]] == [50]
    assert history.json()["data"][0]["provider_amount"] == 45.0

    expired = client.post(f"/api/admin/subscriptions/{subscription_id}/expire", headers=admin).json()
    assert expired["data"]["status"] == "expired"

    report = client.post("/api/admin/counters/reconcile", headers=admin).json()["data"]
    assert report["subscriptions_scanned"] == 1
    assert report["customer_counts"] == {}
    assert report["service_counts"] == {}


def test_payment_history_for_new_subscription_is_empty(client, api_seeded, auth_headers):
    customer = auth_headers(10, "customer")
    subscription_id = create_subscription(client, customer, api_seeded.service.id).json()["data"]["id"]

    response = client.get(f"/api/subscriptions/{subscription_id}/payment-history", headers=customer)

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Payment history retrieved", "data": []}
    denied = client.get(
        f"/api/subscriptions/{subscription_id}/payment-history", headers=auth_headers(11, "customer")
    )
    assert denied.status_code == 403


def test_token_with_non_numeric_user_id_is_unauthorized(client, api_seeded):
    secret = client.app.state.container.settings.jwt_secret
    token = jwt.encode({"user_id": "dana", "role": "customer"}, secret, algorithm="HS256")
    response = client.get("/api/subscriptions", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.json()["message"] == "Invalid or expired token"
