"""Integration tests for token purchase and Stripe callback endpoints."""

import hashlib
import hmac
import json
import time
from types import SimpleNamespace
from unittest.mock import patch

import stripe

WEBHOOK_SECRET = "whsec_test_secret"


def _signed(event: dict, secret: str = WEBHOOK_SECRET) -> tuple[bytes, dict]:
    payload = json.dumps(event).encode()
    ts = str(int(time.time()))
    sig = hmac.new(secret.encode(), f"{ts}.".encode() + payload, hashlib.sha256).hexdigest()
    return payload, {"Stripe-Signature": f"t={ts},v1={sig}", "Content-Type": "application/json"}


def _purchase_event(user_id="user-1", token_amount="500", intent_id="pi_abc") -> dict:
    return {
        "type": "payment_intent.succeeded",
        "data": {"object": {
            "id": intent_id,
            "metadata": {
                "userId": user_id,
                "tokenAmount": token_amount,
                "purchaseType": "token_purchase",
            },
        }},
    }


class TestPurchase:
    async def test_requires_auth(self, client):
        resp = await client.post("/tokens/purchase", json={"amount": 5, "tokenAmount": 500})
        assert resp.status_code == 401

    async def test_creates_intent(self, client, user_headers):
        intent = SimpleNamespace(id="pi_abc", client_secret="pi_abc_secret_xyz")
        with patch.object(stripe.PaymentIntent, "create", return_value=intent) as create:
            resp = await client.post(
                "/tokens/purchase", json={"amount": 5, "tokenAmount": 500}, headers=user_headers,
            )
        assert resp.status_code == 200
        assert resp.json() == {
            "client_secret": "pi_abc_secret_xyz",
            "payment_intent_id": "pi_abc",
            "amount": 5,
            "token_amount": 500,
        }
        assert create.call_args.kwargs["metadata"]["userId"] == "user-1"

    async def test_purchase_does_not_credit(self, client, user_headers):
        await client.get("/tokens", headers=user_headers)
        intent = SimpleNamespace(id="pi_abc", client_secret="secret")
        with patch.object(stripe.PaymentIntent, "create", return_value=intent):
            await client.post(
                "/tokens/purchase", json={"amount": 5, "tokenAmount": 500}, headers=user_headers,
            )
        balance = await client.get("/tokens", headers=user_headers)
        assert balance.json()["tokens_balance"] == 10

    async def test_rate_mismatch(self, client, user_headers):
        resp = await client.post(
            "/tokens/purchase", json={"amount": 5, "tokenAmount": 99999}, headers=user_headers,
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "INVALID_PURCHASE"

    async def test_stripe_failure(self, client, user_headers):
        with patch.object(
            stripe.PaymentIntent, "create", side_effect=stripe.StripeError("down"),
        ):
            resp = await client.post(
                "/tokens/purchase", json={"amount": 5, "tokenAmount": 500}, headers=user_headers,
            )
        assert resp.status_code == 502


class TestStripeWebhook:
    async def test_top_up_new_account(self, client, user_headers):
        payload, headers = _signed(_purchase_event())
        resp = await client.post("/webhooks/stripe", content=payload, headers=headers)

        assert resp.status_code == 200
        assert resp.json() == {"received": True, "processed": True, "error": None}

        balance = await client.get("/tokens", headers=user_headers)
        assert balance.json() == {"tokens_balance": 500, "total_generations_used": 0}

    async def test_replay_is_ignored(self, client, user_headers):
        payload, headers = _signed(_purchase_event())
        await client.post("/webhooks/stripe", content=payload, headers=headers)
        resp = await client.post("/webhooks/stripe", content=payload, headers=headers)

        assert resp.json()["processed"] is False
        balance = await client.get("/tokens", headers=user_headers)
        assert balance.json()["tokens_balance"] == 500

    async def test_bad_signature_still_200(self, client, admin_headers):
        payload, headers = _signed(_purchase_event(), secret="forged")
        resp = await client.post("/webhooks/stripe", content=payload, headers=headers)

        assert resp.status_code == 200
        assert resp.json()["error"] == "Invalid signature"
        admin = await client.get("/admin/tokens/user-1", headers=admin_headers)
        assert admin.status_code == 404

    async def test_missing_signature(self, client):
        resp = await client.post("/webhooks/stripe", content=b"{}")
        assert resp.status_code == 200
        assert resp.json()["error"] == "Invalid signature"

    async def test_other_events_acknowledged(self, client):
        payload, headers = _signed({"type": "customer.created", "data": {"object": {}}})
        resp = await client.post("/webhooks/stripe", content=payload, headers=headers)
        assert resp.json() == {"received": True, "processed": False, "error": None}
