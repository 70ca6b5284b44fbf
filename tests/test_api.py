"""End-to-end tests of the HTTP surface against the in-memory store."""

import hashlib
import hmac
import time
from datetime import datetime, timedelta
from unittest.mock import AsyncMock
from uuid import UUID, uuid4

import orjson
import pytest
from fastapi.testclient import TestClient

from dripcourse.payments.gateway import CheckoutSession


ADMIN_HEADERS = {"X-API-Key": "test-master-key"}
WEBHOOK_SECRET = "whsec_test_dripcourse"


def access_token_for(client: TestClient, enrollment_id: str) -> str:
    """Read the issued token straight from the in-memory store."""
    store = client.app.state.access_gate.store
    return store._enrollments[UUID(enrollment_id)].access_token


def signed_webhook(payload: dict) -> tuple[bytes, dict[str, str]]:
    body = orjson.dumps(payload)
    timestamp = int(time.time())
    signature = hmac.new(
        WEBHOOK_SECRET.encode(), f"{timestamp}.{body.decode()}".encode(), hashlib.sha256
    ).hexdigest()
    return body, {
        "Stripe-Signature": f"t={timestamp},v1={signature}",
        "Content-Type": "application/json",
    }


@pytest.fixture
def checkout_client(client: TestClient) -> TestClient:
    """Client whose Stripe gateway returns a canned checkout session."""
    client.app.state.payment_gateway.create_checkout_session = AsyncMock(
        return_value=CheckoutSession(
            session_id="cs_test_1", url="https://checkout.stripe.com/cs_test_1"
        )
    )
    return client


def start_checkout(client: TestClient, email: str = "ana@example.com") -> str:
    response = client.post(
        "/v1/checkout/sessions", json={"email": email, "plan": "individual"}
    )
    assert response.status_code == 201
    return response.json()["enrollment_id"]


def activate(client: TestClient, enrollment_id: str) -> dict:
    response = client.post(
        f"/v1/admin/enrollments/{enrollment_id}/activate", headers=ADMIN_HEADERS
    )
    assert response.status_code == 200
    return response.json()


class TestCheckout:
    """Tests for POST /v1/checkout/sessions."""

    def test_creates_pending_enrollment_and_session(self, checkout_client) -> None:
        response = checkout_client.post(
            "/v1/checkout/sessions",
            json={"email": "ana@example.com", "plan": "coaching"},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["session_id"] == "cs_test_1"
        assert data["url"] == "https://checkout.stripe.com/cs_test_1"
        UUID(data["enrollment_id"])

    def test_repeat_checkout_reuses_enrollment(self, checkout_client) -> None:
        first = start_checkout(checkout_client)
        second = start_checkout(checkout_client, "ANA@example.com")

        assert first == second

    def test_unknown_plan(self, checkout_client) -> None:
        response = checkout_client.post(
            "/v1/checkout/sessions", json={"email": "ana@example.com", "plan": "gold"}
        )

        assert response.status_code == 422
        assert response.json()["message"] == "Validation error"

    def test_malformed_email(self, checkout_client) -> None:
        response = checkout_client.post(
            "/v1/checkout/sessions", json={"email": "not-an-email", "plan": "individual"}
        )

        assert response.status_code == 422

    def test_already_paid_email(self, checkout_client) -> None:
        activate(checkout_client, start_checkout(checkout_client))

        response = checkout_client.post(
            "/v1/checkout/sessions",
            json={"email": "ana@example.com", "plan": "individual"},
        )

        assert response.status_code == 409
        assert response.json()["code"] == "invalid_state"


class TestWebhook:
    """Tests for POST /v1/payments/webhook."""

    def test_checkout_completed_activates(self, checkout_client) -> None:
        enrollment_id = start_checkout(checkout_client)
        body, headers = signed_webhook(
            {
                "id": "evt_1",
                "type": "checkout.session.completed",
                "data": {
                    "object": {
                        "id": "cs_test_1",
                        "customer": "cus_1",
                        "metadata": {"enrollment_id": enrollment_id},
                    }
                },
            }
        )

        response = checkout_client.post(
            "/v1/payments/webhook", content=body, headers=headers
        )

        assert response.status_code == 200
        assert response.json() == {"received": True, "outcome": "activated"}
        token = access_token_for(checkout_client, enrollment_id)
        assert token

        # Redelivery is acknowledged without issuing a new token
        response = checkout_client.post(
            "/v1/payments/webhook", content=body, headers=headers
        )
        assert response.json()["outcome"] == "already_active"
        assert access_token_for(checkout_client, enrollment_id) == token

    def test_invalid_signature(self, client) -> None:
        response = client.post(
            "/v1/payments/webhook",
            content=b'{"type": "checkout.session.completed"}',
            headers={"Stripe-Signature": "t=1,v1=deadbeef"},
        )

        assert response.status_code == 400
        assert response.json()["code"] == "invalid_webhook"

    def test_non_utf8_body_is_rejected(self, client) -> None:
        response = client.post(
            "/v1/payments/webhook",
            content=b"\xff\xfe",
            headers={"Stripe-Signature": "t=1,v1=deadbeef"},
        )

        assert response.status_code == 400
        assert response.json()["code"] == "invalid_webhook"

    def test_unhandled_event_is_acknowledged(self, client) -> None:
        body, headers = signed_webhook({"id": "evt_2", "type": "customer.created"})

        response = client.post("/v1/payments/webhook", content=body, headers=headers)

        assert response.status_code == 200
        assert response.json()["outcome"] == "ignored"


class TestAccess:
    """Tests for /v1/access endpoints."""

    def test_verify_with_bearer_token(self, checkout_client) -> None:
        enrollment_id = start_checkout(checkout_client)
        activate(checkout_client, enrollment_id)
        token = access_token_for(checkout_client, enrollment_id)

        response = checkout_client.get(
            "/v1/access/verify", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["email"] == "ana@example.com"
        assert data["current_week"] == 1
        assert len(data["week_schedule"]) == 6
        assert "access_token" not in data
        assert token not in response.text

    def test_verify_with_query_token(self, checkout_client) -> None:
        enrollment_id = start_checkout(checkout_client)
        activate(checkout_client, enrollment_id)
        token = access_token_for(checkout_client, enrollment_id)

        response = checkout_client.get("/v1/access/verify", params={"token": token})

        assert response.status_code == 200

    @pytest.mark.parametrize(
        "headers",
        [{}, {"Authorization": "Bearer wrong-token"}, {"Authorization": "Basic abc"}],
    )
    def test_invalid_tokens_are_unauthorized(self, client, headers) -> None:
        for path in ("/v1/access/verify", "/v1/access/progress"):
            response = client.get(path, headers=headers)

            assert response.status_code == 401
            data = response.json()
            assert data["code"] == "unauthorized"
            assert data["request_id"]

    def test_progress_follows_unlocks(self, checkout_client) -> None:
        enrollment_id = start_checkout(checkout_client)
        enrollment = activate(checkout_client, enrollment_id)
        token = access_token_for(checkout_client, enrollment_id)
        headers = {"Authorization": f"Bearer {token}"}

        progress = checkout_client.get("/v1/access/progress", headers=headers).json()
        assert progress["completed_weeks"] == 0
        assert progress["total_sessions"] == 0
        assert progress["progress_percentage"] == 0

        enrollment_date = datetime.fromisoformat(enrollment["enrollment_date"])
        response = checkout_client.post(
            "/v1/admin/unlocks/run",
            headers=ADMIN_HEADERS,
            json={"now": (enrollment_date + timedelta(days=15)).isoformat()},
        )
        assert response.status_code == 200
        assert response.json()["count"] == 2
        assert [u["week"] for u in response.json()["unlocked"]] == [2, 3]

        progress = checkout_client.get("/v1/access/progress", headers=headers).json()
        assert progress["current_week"] == 3
        assert progress["completed_weeks"] == 2
        assert progress["total_sessions"] == 6
        assert progress["progress_percentage"] == 33


class TestAdmin:
    """Tests for /v1/admin endpoints."""

    def test_requires_api_key(self, client) -> None:
        response = client.post("/v1/admin/unlocks/run")

        assert response.status_code == 401

    def test_rejects_wrong_api_key(self, client) -> None:
        response = client.post("/v1/admin/unlocks/run", headers={"X-API-Key": "nope"})

        assert response.status_code == 403

    def test_activate_unknown_enrollment(self, client) -> None:
        response = client.post(
            f"/v1/admin/enrollments/{uuid4()}/activate", headers=ADMIN_HEADERS
        )

        assert response.status_code == 404
        assert response.json()["code"] == "not_found"

    def test_activate_twice(self, checkout_client) -> None:
        enrollment_id = start_checkout(checkout_client)
        data = activate(checkout_client, enrollment_id)
        assert data["status"] == "active"
        assert "access_token" not in data

        response = checkout_client.post(
            f"/v1/admin/enrollments/{enrollment_id}/activate", headers=ADMIN_HEADERS
        )

        assert response.status_code == 409

    def test_run_unlocks_with_nothing_due(self, client) -> None:
        response = client.post("/v1/admin/unlocks/run", headers=ADMIN_HEADERS)

        assert response.status_code == 200
        assert response.json() == {"unlocked": [], "count": 0}
