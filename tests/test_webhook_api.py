"""Tests for the webhook and status HTTP endpoints."""

import pytest
from conftest import FakeVaultClient, GatedVaultClient
from fastapi.testclient import TestClient

from secretcache.api import create_app
from secretcache.errors import BootstrapError, TransientFetchError
from secretcache.mirror import VaultMirror

VALIDATION_PAYLOAD = [
    {
        "id": "2d1781af-3a4c-4d7c-bd0c-e34b19da4e66",
        "topic": "/subscriptions/xxx/resourceGroups/rg/providers/Microsoft.KeyVault/vaults/kv",
        "subject": "",
        "eventType": "Microsoft.EventGrid.SubscriptionValidationEvent",
        "eventTime": "2026-10-19T18:41:00.9584103Z",
        "data": {"validationCode": "abc123"},
        "dataVersion": "1",
    }
]

NOTIFICATION_PAYLOAD = [
    {
        "id": "7b0f8e36-5a5e-4ef6-9f1b-1c2d3e4f5a6b",
        "topic": "/subscriptions/xxx/resourceGroups/rg/providers/Microsoft.KeyVault/vaults/kv",
        "subject": "db-password",
        "eventType": "Microsoft.KeyVault.SecretNewVersionCreated",
        "eventTime": "2026-10-19T18:42:00Z",
        "data": {"objectName": "db-password", "VaultName": "kv", "ObjectType": "Secret"},
        "dataVersion": "1",
    }
]


@pytest.fixture
def client(ready_mirror):
    """Create FastAPI test client over a bootstrapped mirror."""
    with TestClient(create_app(mirror=ready_mirror)) as test_client:
        yield test_client


class TestHandshake:
    """Test the subscription validation handshake."""

    @pytest.mark.parametrize("path", ["/api/updates", "/hook"])
    def test_validation_handshake(self, client, path):
        """The validation code is echoed back exactly."""
        response = client.post(
            path,
            json=VALIDATION_PAYLOAD,
            headers={"Aeg-Event-Type": "SubscriptionValidation"},
        )
        assert response.status_code == 200
        assert response.json() == {"validationResponse": "abc123"}

    def test_header_name_is_case_insensitive(self, client):
        """HTTP header names are matched case-insensitively."""
        response = client.post(
            "/api/updates",
            json=VALIDATION_PAYLOAD,
            headers={"aeg-event-type": "SubscriptionValidation"},
        )
        assert response.json() == {"validationResponse": "abc123"}

    def test_rejected_validation(self, client):
        """A validation delivery without a code is rejected."""
        payload = [dict(VALIDATION_PAYLOAD[0], data={})]
        response = client.post(
            "/api/updates",
            json=payload,
            headers={"Aeg-Event-Type": "SubscriptionValidation"},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "validation_rejected"


class TestNotifications:
    """Test secret change notifications."""

    def test_notification_refreshes_secret(self, client, ready_mirror, fake_vault):
        """A new secret version is fetched exactly once."""
        fake_vault.secrets["db-password"] = "rotated"
        fake_vault.get_calls.clear()

        response = client.post(
            "/api/updates",
            json=NOTIFICATION_PAYLOAD,
            headers={"Aeg-Event-Type": "Notification"},
        )

        assert response.status_code == 200
        assert response.json()["dispatched"] == 1
        assert ready_mirror.wait_for_refreshes(timeout=5)
        assert fake_vault.get_calls == ["db-password"]
        assert ready_mirror.get("db-password") == "rotated"

    def test_acknowledges_before_fetch_completes(self):
        """The response does not wait for the vault."""
        vault = GatedVaultClient({"db-password": "hunter2"})
        vault.gate.set()
        mirror = VaultMirror(vault)
        try:
            mirror.bootstrap()
            vault.gate.clear()
            vault.fetch_started.clear()
            vault.secrets["db-password"] = "rotated"

            with TestClient(create_app(mirror=mirror)) as client:
                response = client.post(
                    "/hook",
                    json=NOTIFICATION_PAYLOAD,
                    headers={"Aeg-Event-Type": "Notification"},
                )

                assert response.status_code == 200
                assert mirror.get("db-password") == "hunter2"

                vault.gate.set()
                assert mirror.wait_for_refreshes(timeout=5)
                assert mirror.get("db-password") == "rotated"
        finally:
            vault.gate.set()
            mirror.close()

    def test_refresh_failure_is_still_acknowledged(self, client, ready_mirror, fake_vault):
        """Vault errors during refresh do not turn into HTTP errors."""
        fake_vault.failures["db-password"] = [
            TransientFetchError("db-password", "down") for _ in range(3)
        ]

        response = client.post(
            "/api/updates",
            json=NOTIFICATION_PAYLOAD,
            headers={"Aeg-Event-Type": "Notification"},
        )

        assert response.status_code == 200
        assert ready_mirror.wait_for_refreshes(timeout=5)
        assert ready_mirror.get("db-password") == "hunter2"

    def test_notifications_for_unknown_secrets_leave_no_state(self, client, ready_mirror):
        """Notifications naming secrets the vault lacks do not accumulate state."""
        for i in range(100):
            payload = [dict(NOTIFICATION_PAYLOAD[0], data={"ObjectName": f"bogus-{i}"})]
            response = client.post(
                "/api/updates", json=payload, headers={"Aeg-Event-Type": "Notification"}
            )
            assert response.status_code == 200

        assert ready_mirror.wait_for_refreshes(timeout=5)
        assert ready_mirror.secret_count == 3
        assert ready_mirror._key_locks == {}

    def test_unknown_event_type_is_ignored(self, client, ready_mirror, fake_vault):
        """Unhandled event types are acknowledged without cache action."""
        fake_vault.get_calls.clear()
        payload = [dict(NOTIFICATION_PAYLOAD[0], eventType="Microsoft.KeyVault.SecretExpired")]

        response = client.post(
            "/api/updates", json=payload, headers={"Aeg-Event-Type": "Notification"}
        )

        assert response.status_code == 200
        assert response.json()["ignored"] == 1
        assert fake_vault.get_calls == []


class TestMalformedDeliveries:
    """Test that malformed deliveries are contained."""

    @pytest.mark.parametrize(
        "content",
        [
            b"",
            b"{not json",
            b'[{"eventType": "Microsoft.KeyVault.SecretNewVersionCreated"}]',
        ],
        ids=["empty", "invalid-json", "missing-data"],
    )
    def test_malformed_body(self, client, ready_mirror, fake_vault, content):
        """Malformed bodies get a 400 and never reach the vault."""
        before = dict(ready_mirror.snapshot())
        fake_vault.get_calls.clear()

        response = client.post(
            "/api/updates",
            content=content,
            headers={"Aeg-Event-Type": "Notification", "Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "malformed_payload"
        assert fake_vault.get_calls == []
        assert dict(ready_mirror.snapshot()) == before

    def test_service_keeps_working_after_malformed_delivery(self, client):
        """A malformed delivery does not affect later deliveries."""
        client.post("/api/updates", content=b"garbage")

        response = client.post(
            "/api/updates",
            json=VALIDATION_PAYLOAD,
            headers={"Aeg-Event-Type": "SubscriptionValidation"},
        )
        assert response.status_code == 200


class TestLifespan:
    """Test bootstrap at application startup."""

    def test_startup_bootstraps_mirror(self, mirror):
        """The lifespan bootstraps a mirror that is not ready yet."""
        assert not mirror.is_ready

        with TestClient(create_app(mirror=mirror)) as client:
            assert mirror.is_ready
            response = client.get("/v1/status")

        assert response.status_code == 200
        assert response.json()["ready"] is True
        assert response.json()["secret_count"] == 3

    def test_startup_fails_when_bootstrap_fails(self):
        """A failed bootstrap aborts startup."""
        vault = FakeVaultClient({"db-password": "hunter2"})
        vault.failures["db-password"] = [TransientFetchError("db-password", "down")]
        mirror = VaultMirror(vault)
        try:
            with pytest.raises(BootstrapError):
                with TestClient(create_app(mirror=mirror)):
                    pass
            assert not mirror.is_ready
        finally:
            mirror.close()

    def test_shutdown_closes_owned_mirror(self, fake_vault):
        """A mirror handed over with close_mirror=True is closed on shutdown."""
        mirror = VaultMirror(fake_vault)

        with TestClient(create_app(mirror=mirror, close_mirror=True)):
            pass

        assert fake_vault.closed is True

    def test_shutdown_leaves_injected_mirror_open(self, ready_mirror, fake_vault):
        """An injected mirror stays open by default."""
        with TestClient(create_app(mirror=ready_mirror)):
            pass

        assert fake_vault.closed is False


class TestStatus:
    """Test health and readiness endpoints."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_status_before_bootstrap(self, mirror):
        """Readiness is reported as 503 until bootstrap completes."""
        # No context manager: the lifespan (and bootstrap) does not run
        client = TestClient(create_app(mirror=mirror))

        response = client.get("/v1/status")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "starting"
        assert data["ready"] is False

    def test_status_does_not_expose_secrets(self, client):
        response = client.get("/v1/status")

        assert response.status_code == 200
        assert "hunter2" not in response.text
        assert "db-password" not in response.text

    def test_status_reports_metrics(self, client, ready_mirror):
        client.post(
            "/api/updates",
            json=NOTIFICATION_PAYLOAD,
            headers={"Aeg-Event-Type": "Notification"},
        )
        ready_mirror.wait_for_refreshes(timeout=5)

        metrics = client.get("/v1/status").json()["metrics"]

        assert metrics["dispatch_counts"] == {"dispatch": 1}
        assert metrics["refresh_outcomes"] == {"ok": 1}
        assert metrics["bootstrap"]["secret_count"] == 3

    def test_webhook_without_mirror(self):
        """Deliveries before a mirror exists are answered with 503."""
        client = TestClient(create_app(mirror=None, settings=None))

        response = client.post("/api/updates", json=VALIDATION_PAYLOAD)

        assert response.status_code == 503
        assert response.json()["error"] == "http_error"
