"""Tests for the push notification HTTP endpoints."""

from conftest import user_headers

E1 = "https://fcm.googleapis.com/fcm/send/abc123"

SUBSCRIPTION = {
    "endpoint": E1,
    "keys": {"p256dh": "BNcRdreALRFXTkOOUHK1EtK2wtaz5Ry4YfYCA", "auth": "tBHItJI5svbpez7KI4CCXg"},
    "expirationTime": None,
    "userAgent": "Mozilla/5.0 (Linux; Android 14)",
    "platform": {"isAndroid": True, "isChrome": True, "isPWA": True, "browserName": "Chrome", "osName": "Android"},
}


def test_health(api):
    response = api.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "push_configured": True}
    assert "X-Request-ID" in response.headers


def test_vapid_public_key(api):
    """The public key is returned when push is configured."""
    response = api.get("/api/notifications/vapid-public-key", headers=user_headers())

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["vapidPublicKey"].startswith("B")
    assert len(body["vapidPublicKey"]) == 87


def test_vapid_public_key_not_configured(unconfigured_api):
    response = unconfigured_api.get("/api/notifications/vapid-public-key", headers=user_headers())

    assert response.status_code == 500
    assert response.json() == {
        "success": False,
        "error": "Push notifications not configured on server",
    }


def test_requires_identity(api):
    response = api.get("/api/notifications/subscriptions")

    assert response.status_code == 401
    assert response.json()["success"] is False


def test_subscribe_and_list(api):
    response = api.post("/api/notifications/subscription", json=SUBSCRIPTION, headers=user_headers())

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["subscriptionId"] == 1

    response = api.get("/api/notifications/subscriptions", headers=user_headers())
    body = response.json()
    assert body["count"] == 1
    entry = body["subscriptions"][0]
    assert entry["endpoint"] == E1
    assert "keys" not in entry
    assert entry["platform"]["is_android"] is True
    assert entry["platform"]["is_pwa"] is True

    rows = api.rows()
    assert len(rows) == 1
    assert rows[0].school_id == "school-1"
    assert rows[0].browser_name == "Chrome"


def test_resubscribe_updates_keys(api):
    api.post("/api/notifications/subscription", json=SUBSCRIPTION, headers=user_headers())
    updated = {**SUBSCRIPTION, "keys": {"p256dh": "new-p256dh", "auth": "new-auth"}}

    response = api.post("/api/notifications/subscription", json=updated, headers=user_headers())

    assert response.status_code == 200
    rows = api.rows()
    assert len(rows) == 1
    assert rows[0].p256dh_key == "new-p256dh"
    assert rows[0].auth_key == "new-auth"


def test_subscribe_without_endpoint(api):
    payload = {key: value for key, value in SUBSCRIPTION.items() if key != "endpoint"}

    response = api.post("/api/notifications/subscription", json=payload, headers=user_headers())

    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "error": "Invalid subscription data. Missing endpoint or keys.",
    }
    assert api.rows() == []


def test_subscribe_missing_auth_key(api):
    payload = {**SUBSCRIPTION, "keys": {"p256dh": "only-p256dh"}}

    response = api.post("/api/notifications/subscription", json=payload, headers=user_headers())

    assert response.status_code == 400
    assert api.rows() == []


def test_endpoint_registered_by_other_user(api):
    api.post("/api/notifications/subscription", json=SUBSCRIPTION, headers=user_headers("user-1"))

    response = api.post("/api/notifications/subscription", json=SUBSCRIPTION, headers=user_headers("user-2"))

    assert response.status_code == 409
    assert response.json()["error"] == "Push subscription already exists for this endpoint"
    assert len(api.rows()) == 1


def test_unsubscribe_twice(api):
    api.post("/api/notifications/subscription", json=SUBSCRIPTION, headers=user_headers())

    response = api.request("DELETE", "/api/notifications/subscription", json={"endpoint": E1}, headers=user_headers())
    assert response.status_code == 200
    assert response.json()["success"] is True

    response = api.request("DELETE", "/api/notifications/subscription", json={"endpoint": E1}, headers=user_headers())
    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Subscription not found"}


def test_unsubscribe_requires_endpoint(api):
    response = api.request("DELETE", "/api/notifications/subscription", json={}, headers=user_headers())

    assert response.status_code == 400
    assert response.json()["error"] == "Endpoint is required"


def test_send_test_notification(api, transport):
    api.post("/api/notifications/subscription", json=SUBSCRIPTION, headers=user_headers())

    response = api.post("/api/notifications/test", json={"title": "Hello"}, headers=user_headers())

    assert response.status_code == 200
    assert response.json()["results"] == {"total": 1, "successful": 1, "failed": 0, "expired": 0}
    assert transport.calls[0]["ttl"] == 300
    assert '"title": "Hello"' in transport.calls[0]["data"]


def test_send_test_expired_subscription(api, transport):
    transport.outcomes[E1] = 410
    api.post("/api/notifications/subscription", json=SUBSCRIPTION, headers=user_headers())

    response = api.post("/api/notifications/test", headers=user_headers())

    assert response.status_code == 200
    assert response.json()["results"] == {"total": 1, "successful": 0, "failed": 1, "expired": 1}
    assert api.rows()[0].is_active is False

    # Deactivated rows are no longer targeted
    response = api.post("/api/notifications/test", headers=user_headers())
    assert response.status_code == 404
    assert response.json()["error"] == "No active push subscriptions found"


def test_send_test_not_configured(unconfigured_api, transport):
    unconfigured_api.post("/api/notifications/subscription", json=SUBSCRIPTION, headers=user_headers())

    response = unconfigured_api.post("/api/notifications/test", headers=user_headers())

    assert response.status_code == 500
    assert transport.calls == []


def test_stats_require_admin(api):
    response = api.get("/api/notifications/push-stats", headers=user_headers())

    assert response.status_code == 403


def test_stats_for_school_admin(api):
    api.post("/api/notifications/subscription", json=SUBSCRIPTION, headers=user_headers("user-1", "school-1"))
    other = {**SUBSCRIPTION, "endpoint": "https://push.example/other"}
    api.post("/api/notifications/subscription", json=other, headers=user_headers("user-2", "school-2"))

    response = api.get("/api/notifications/push-stats", headers=user_headers("admin-1", "school-1", role="admin"))

    assert response.status_code == 200
    stats = response.json()["stats"]
    assert stats["total_subscriptions"] == 1
    assert stats["android_subscriptions"] == 1

    response = api.get("/api/notifications/push-stats", headers=user_headers("root", None, role="superadmin"))
    assert response.json()["stats"]["total_subscriptions"] == 2


def test_stats_admin_without_school_forbidden(api):
    api.post("/api/notifications/subscription", json=SUBSCRIPTION, headers=user_headers("user-1", "school-1"))
    other = {**SUBSCRIPTION, "endpoint": "https://push.example/other"}
    api.post("/api/notifications/subscription", json=other, headers=user_headers("user-2", "school-2"))

    response = api.get("/api/notifications/push-stats", headers=user_headers("admin-1", None, role="admin"))

    assert response.status_code == 403
    assert response.json() == {"success": False, "error": "School admin access requires a school"}


def test_cleanup_expired(api):
    expired = {**SUBSCRIPTION, "expirationTime": "2020-01-01T00:00:00Z"}
    api.post("/api/notifications/subscription", json=expired, headers=user_headers())

    response = api.post("/api/notifications/cleanup-expired", headers=user_headers("admin-1", role="admin"))
    assert response.json() == {"success": True, "deactivated": 1}

    response = api.post("/api/notifications/cleanup-expired", headers=user_headers("admin-1", role="admin"))
    assert response.json() == {"success": True, "deactivated": 0}
    assert api.rows()[0].is_active is False
