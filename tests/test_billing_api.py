"""
Integration tests for payment intents and webhook fulfillment
"""
import asyncio
import json
import threading
import time
from datetime import datetime
from types import SimpleNamespace
from unittest.mock import patch

import pytest
import stripe
from sqlalchemy import select

from auth_utils import create_jwt
from config.settings import settings
from database_models import Subscription
from tests.conftest import (
    JWT_SECRET,
    WEBHOOK_SECRET,
    TestAsyncSessionLocal,
    add_plan,
    payment_succeeded_event,
    sign_payload,
)


@pytest.fixture
def webhook_secret():
    with patch.object(settings, "stripe_webhook_secret", WEBHOOK_SECRET):
        yield WEBHOOK_SECRET


@pytest.fixture
def billing_keys():
    with patch.object(settings, "stripe_secret_key", "sk_test_123"), \
            patch.object(settings, "jwt_secret_key", JWT_SECRET):
        yield


async def _subscriptions():
    async with TestAsyncSessionLocal() as session:
        result = await session.execute(select(Subscription))
        return list(result.scalars().all())


async def _post_event(client, payload: str, signature: str = None):
    headers = {"Content-Type": "application/json"}
    if signature is not None:
        headers["Stripe-Signature"] = signature
    return await client.post("/webhook", content=payload, headers=headers)


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_get_plan(async_client):
    await add_plan()

    response = await async_client.get("/plans/0002")

    assert response.status_code == 200
    assert response.json() == {"planId": "0002", "title": "Pro Monthly", "period": "1 month", "price": 9.99}


@pytest.mark.asyncio
async def test_get_unknown_plan(async_client):
    response = await async_client.get("/plans/9999")

    assert response.status_code == 404
    assert response.json()["message"] == "Plan not found"


# ---------------------------------------------------------------------------
# Webhook
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_webhook_fulfills_payment(async_client, sheet_logger, webhook_secret):
    await add_plan(period="1 month")
    payload = payment_succeeded_event()

    response = await _post_event(async_client, payload, sign_payload(payload))

    assert response.status_code == 200
    body = response.json()
    assert body["received"] is True
    assert body["fulfilled"] is True
    assert body["duplicate"] is False
    assert body["transactionID"] == "pi_123"

    records = await _subscriptions()
    assert len(records) == 1
    record = records[0]
    assert record.transaction_id == "pi_123"
    assert record.amount == 999
    assert record.email == "buyer@example.com"
    assert record.plan_id == "0002"
    assert record.title == "Pro Monthly"
    assert record.status == "active"
    assert datetime.fromisoformat(record.expire_date) > datetime.fromisoformat(record.buying_date)

    await sheet_logger.drain()
    assert [r["transactionID"] for r in sheet_logger.records] == ["pi_123"]


@pytest.mark.asyncio
async def test_webhook_redelivery_is_a_noop(async_client, sheet_logger, webhook_secret):
    await add_plan()
    payload = payment_succeeded_event()

    first = await _post_event(async_client, payload, sign_payload(payload))
    second = await _post_event(async_client, payload, sign_payload(payload))

    assert first.status_code == 200
    assert second.status_code == 200
    assert second.json()["duplicate"] is True
    assert len(await _subscriptions()) == 1

    await sheet_logger.drain()
    assert len(sheet_logger.records) == 1


@pytest.mark.asyncio
async def test_webhook_rejects_bad_signature(async_client, webhook_secret):
    await add_plan()
    payload = payment_succeeded_event()

    response = await _post_event(async_client, payload, sign_payload(payload, secret="whsec_wrong"))

    assert response.status_code == 400
    assert response.json()["received"] is False
    assert await _subscriptions() == []


@pytest.mark.asyncio
async def test_webhook_rejects_tampered_body(async_client, webhook_secret):
    await add_plan()
    signature = sign_payload(payment_succeeded_event(amount=999))
    tampered = payment_succeeded_event(amount=1)

    response = await _post_event(async_client, tampered, signature)

    assert response.status_code == 400
    assert await _subscriptions() == []


@pytest.mark.asyncio
async def test_webhook_rejects_missing_signature(async_client, webhook_secret):
    await add_plan()

    response = await _post_event(async_client, payment_succeeded_event())

    assert response.status_code == 400
    assert response.json()["message"] == "Missing signature header"


@pytest.mark.asyncio
async def test_webhook_without_secret_accepts_unsigned_events(async_client):
    await add_plan()

    with patch.object(settings, "stripe_webhook_secret", None):
        response = await _post_event(async_client, payment_succeeded_event())

    assert response.status_code == 200
    assert response.json()["fulfilled"] is True
    assert len(await _subscriptions()) == 1


@pytest.mark.asyncio
async def test_webhook_ignores_other_event_types(async_client, webhook_secret):
    payload = json.dumps({"id": "evt_2", "type": "charge.refunded", "data": {"object": {"id": "ch_1"}}})

    response = await _post_event(async_client, payload, sign_payload(payload))

    assert response.status_code == 200
    body = response.json()
    assert body["received"] is True
    assert body["ignored"] is True
    assert body["event_type"] == "charge.refunded"
    assert await _subscriptions() == []


@pytest.mark.asyncio
async def test_webhook_unknown_plan_is_acknowledged_without_fulfillment(async_client, sheet_logger, webhook_secret):
    payload = payment_succeeded_event(plan_id="gone")

    response = await _post_event(async_client, payload, sign_payload(payload))

    assert response.status_code == 200
    body = response.json()
    assert body["received"] is True
    assert body["fulfilled"] is False
    assert "not found" in body["error"]
    assert await _subscriptions() == []
    assert sheet_logger.records == []


@pytest.mark.asyncio
async def test_webhook_paid_free_plan_conflict_is_not_reported_as_duplicate(async_client, sheet_logger):
    await add_plan(plan_id="0001", title="Free", price=4.99)
    free = await async_client.post("/free", json={
        "email": "buyer@example.com",
        "title": "Free",
        "planId": "0001",
        "period": "1 month",
        "buyingDate": "2024-01-01T00:00:00+00:00",
        "expireDate": "2024-02-01T00:00:00+00:00",
    })
    assert free.status_code == 200

    with patch.object(settings, "stripe_webhook_secret", None):
        response = await _post_event(async_client, payment_succeeded_event(intent_id="pi_paid", plan_id="0001"))

    assert response.status_code == 200
    body = response.json()
    assert body["fulfilled"] is False
    assert "duplicate" not in body
    assert "pi_paid" in body["error"]
    assert [s.transaction_id for s in await _subscriptions()] == ["N/A"]


@pytest.mark.asyncio
async def test_webhook_transient_failure_asks_for_redelivery(async_client, webhook_secret):
    await add_plan()
    payload = payment_succeeded_event()

    with patch(
        "services.subscription_service.SubscriptionRepository.get_by_transaction_id",
        side_effect=RuntimeError("database unavailable"),
    ):
        response = await _post_event(async_client, payload, sign_payload(payload))

    assert response.status_code == 500
    assert await _subscriptions() == []

    retry = await _post_event(async_client, payload, sign_payload(payload))
    assert retry.status_code == 200
    assert len(await _subscriptions()) == 1


@pytest.mark.asyncio
async def test_webhook_sink_failure_does_not_fail_fulfillment(async_client, sheet_logger, webhook_secret):
    await add_plan()
    sheet_logger.fail = True
    payload = payment_succeeded_event()

    response = await _post_event(async_client, payload, sign_payload(payload))

    assert response.status_code == 200
    assert response.json()["fulfilled"] is True
    await sheet_logger.drain()
    assert len(await _subscriptions()) == 1


# ---------------------------------------------------------------------------
# Payment intents
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_payment_intent(async_client, billing_keys):
    await add_plan(price=19.995)
    token = create_jwt("buyer@example.com")
    intent = SimpleNamespace(id="pi_new", client_secret="pi_new_secret_abc")

    with patch("stripe.PaymentIntent.create", return_value=intent) as create:
        response = await async_client.post(
            "/api/create-payment-intent",
            json={"planId": "0002"},
            headers={"Authorization": f"Bearer {token}"},
        )

    assert response.status_code == 200
    assert response.json() == {"clientSecret": "pi_new_secret_abc"}
    kwargs = create.call_args.kwargs
    assert kwargs["amount"] == 2000
    assert kwargs["currency"] == "usd"
    assert kwargs["metadata"] == {"userEmail": "buyer@example.com", "planId": "0002"}


@pytest.mark.asyncio
async def test_create_payment_intent_requires_token(async_client, billing_keys):
    await add_plan()

    response = await async_client.post("/api/create-payment-intent", json={"planId": "0002"})

    assert response.status_code == 401
    assert response.json()["message"] == "Missing authentication token"


@pytest.mark.asyncio
async def test_create_payment_intent_rejects_invalid_token(async_client, billing_keys):
    response = await async_client.post(
        "/api/create-payment-intent",
        json={"planId": "0002"},
        headers={"Authorization": "Bearer not-a-token"},
    )

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_create_payment_intent_unknown_plan(async_client, billing_keys):
    token = create_jwt("buyer@example.com")

    with patch("stripe.PaymentIntent.create") as create:
        response = await async_client.post(
            "/api/create-payment-intent",
            json={"planId": "nope"},
            headers={"Authorization": f"Bearer {token}"},
        )

    assert response.status_code == 400
    assert response.json()["message"] == "Invalid plan"
    create.assert_not_called()


@pytest.mark.asyncio
async def test_create_payment_intent_provider_error(async_client, billing_keys):
    await add_plan()
    token = create_jwt("buyer@example.com")

    with patch("stripe.PaymentIntent.create", side_effect=stripe.APIConnectionError("down")):
        response = await async_client.post(
            "/api/create-payment-intent",
            json={"planId": "0002"},
            headers={"Authorization": f"Bearer {token}"},
        )

    assert response.status_code == 502


@pytest.mark.asyncio
async def test_slow_payment_provider_does_not_block_other_requests(async_client, billing_keys):
    await add_plan()
    token = create_jwt("buyer@example.com")
    started = threading.Event()

    def slow_create(**kwargs):
        started.set()
        time.sleep(0.5)
        return SimpleNamespace(id="pi_slow", client_secret="pi_slow_secret")

    with patch("stripe.PaymentIntent.create", side_effect=slow_create):
        payment = asyncio.create_task(async_client.post(
            "/api/create-payment-intent",
            json={"planId": "0002"},
            headers={"Authorization": f"Bearer {token}"},
        ))
        while not started.is_set():
            await asyncio.sleep(0.01)

        began = time.monotonic()
        liveness = await async_client.get("/")
        elapsed = time.monotonic() - began

        response = await payment

    assert liveness.status_code == 200
    assert elapsed < 0.25
    assert response.status_code == 200
    assert response.json() == {"clientSecret": "pi_slow_secret"}
