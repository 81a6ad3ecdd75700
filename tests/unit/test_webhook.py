"""
Unit tests for Stripe webhook handler.
"""

import json
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from aiohttp import test_utils
from aiohttp.test_utils import make_mocked_request
from stripe import SignatureVerificationError

import webhook
from config import settings
from models.payment import Payment
from server import create_app


@pytest.fixture(autouse=True)
def reset_webhook_state(monkeypatch):
    webhook._processed_event_ids.clear()
    monkeypatch.setattr(settings, "stripe_webhook_secret", "whsec_test_123")
    monkeypatch.setattr(settings, "stripe_secret_key", "sk_test_123")
    yield
    webhook._processed_event_ids.clear()


@pytest.fixture
def app(store, notifier):
    return create_app(db=store, notifier=notifier)


@pytest.fixture
def confirmed_appointment(store):
    appointment_id = store.add_appointment("2030-01-10", "11:00", status="confirmed")
    store.payments.append(
        Payment(
            id=1,
            user_id=1,
            appointment_id=appointment_id,
            amount=Decimal("45.00"),
            payment_intent_id="pi_test_123",
            status="requires_action",
        )
    )
    return appointment_id


def _event(appointment_id, event_id="evt_test_123", event_type="payment_intent.succeeded"):
    return {
        "id": event_id,
        "type": event_type,
        "data": {
            "object": {
                "id": "pi_test_123",
                "status": "succeeded",
                "metadata": {"appointment_id": str(appointment_id), "user_id": "1"},
            }
        },
    }


def _client(app) -> test_utils.TestClient:
    return test_utils.TestClient(test_utils.TestServer(app))


async def _post(client, event, signature="t=1234567890,v1=test_signature"):
    headers = {"Stripe-Signature": signature} if signature else {}
    return await client.post("/webhook/stripe", data=json.dumps(event), headers=headers)


class TestStripeWebhookSignature:
    """Test Stripe webhook signature verification."""

    def test_verify_signature_success(self):
        event = _event(7)
        with patch("webhook.stripe.Webhook.construct_event", return_value=event) as mock_construct:
            result = webhook._verify_webhook_signature(b"{}", "t=1,v1=sig")

        assert result == event
        mock_construct.assert_called_once_with(b"{}", "t=1,v1=sig", "whsec_test_123")

    def test_missing_signature(self):
        with pytest.raises(webhook.WebhookVerificationError):
            webhook._verify_webhook_signature(b"{}", None)

    def test_invalid_signature(self):
        error = SignatureVerificationError("No signatures found", "t=1,v1=bad")
        with patch("webhook.stripe.Webhook.construct_event", side_effect=error):
            with pytest.raises(webhook.WebhookVerificationError):
                webhook._verify_webhook_signature(b"{}", "t=1,v1=bad")

    def test_no_secret_in_test_mode_parses_payload(self, monkeypatch):
        monkeypatch.setattr(settings, "stripe_webhook_secret", None)

        assert webhook._verify_webhook_signature(b'{"id": "evt_1"}', None) == {"id": "evt_1"}

    def test_no_secret_in_live_mode_rejected(self, monkeypatch):
        monkeypatch.setattr(settings, "stripe_webhook_secret", None)
        monkeypatch.setattr(settings, "stripe_secret_key", "sk_live_123")

        with pytest.raises(webhook.ValidationError):
            webhook._verify_webhook_signature(b"{}", None)


@pytest.mark.parametrize(
    "payload",
    [
        [],
        {"type": "payment_intent.succeeded", "data": {}},
        {"id": "evt_1", "data": {}},
        {"id": "evt_1", "type": "payment_intent.succeeded", "data": "x"},
    ],
)
def test_validate_payload_rejects(payload):
    with pytest.raises(webhook.ValidationError):
        webhook._validate_webhook_payload(payload)


class TestWebhookEndpoint:
    @pytest.mark.asyncio
    async def test_payment_succeeded_marks_paid(self, app, store, confirmed_appointment):
        event = _event(confirmed_appointment)

        async with _client(app) as client:
            with patch("webhook.stripe.Webhook.construct_event", return_value=event):
                resp = await _post(client, event)
                body = await resp.json()

        assert resp.status == 200
        assert body["status"] == "success"
        assert body["result"] == {"status": "success", "appointment_id": confirmed_appointment}
        assert store.appointments[confirmed_appointment]["status"] == "paid"
        assert store.payments[0].status == "succeeded"
        assert resp.headers["Allow"] == "POST"

    @pytest.mark.asyncio
    async def test_duplicate_event_not_reprocessed(self, app, confirmed_appointment):
        event = _event(confirmed_appointment, event_id="evt_dup")

        async with _client(app) as client:
            with patch("webhook.stripe.Webhook.construct_event", return_value=event), patch(
                "webhook.handle_webhook", AsyncMock(return_value={"status": "success"})
            ) as mock_handle:
                first = await _post(client, event)
                second = await _post(client, event)
                second_body = await second.json()

        assert first.status == 200
        assert second.status == 200
        assert second_body["message"] == "Event already processed"
        mock_handle.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_signature_rejected(self, app, confirmed_appointment):
        async with _client(app) as client:
            resp = await _post(client, _event(confirmed_appointment), signature=None)
            body = await resp.json()

        assert resp.status == 401
        assert body["error"] == "verification_failed"

    @pytest.mark.asyncio
    async def test_empty_body(self, app):
        async with _client(app) as client:
            resp = await client.post(
                "/webhook/stripe", data=b"", headers={"Stripe-Signature": "t=1,v1=x"}
            )

        assert resp.status == 400

    @pytest.mark.asyncio
    async def test_invalid_payload(self, app):
        event = {"id": "evt_bad", "data": {}}

        async with _client(app) as client:
            with patch("webhook.stripe.Webhook.construct_event", return_value=event):
                resp = await _post(client, event)
                body = await resp.json()

        assert resp.status == 400
        assert body["error"] == "validation_failed"

    @pytest.mark.asyncio
    async def test_processing_failure_allows_retry(self, app, store, confirmed_appointment):
        event = _event(confirmed_appointment, event_id="evt_retry")
        store_confirm = store.confirm_payment
        store.confirm_payment = AsyncMock(side_effect=RuntimeError("db down"))

        async with _client(app) as client:
            with patch("webhook.stripe.Webhook.construct_event", return_value=event):
                failed = await _post(client, event)
                store.confirm_payment = store_confirm
                retried = await _post(client, event)

        assert failed.status == 500
        assert retried.status == 200
        assert store.appointments[confirmed_appointment]["status"] == "paid"


@pytest.mark.asyncio
async def test_health_check():
    request = make_mocked_request("GET", "/health")
    response = await webhook.health_check(request)

    assert response.status == 200
    data = json.loads(response.text)
    assert data["status"] == "ok"
    assert "pending_notifications" in data
    assert data["configuration"]["webhook_secret_configured"] is True
