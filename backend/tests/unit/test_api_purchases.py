"""Tests for the purchase endpoints.

- POST /api/v1/restore-purchases
- POST /api/v1/webhooks/revenuecat
"""

import hashlib
import hmac
import json

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from credit_ledger.api.v1.purchases import verify_webhook_request
from credit_ledger.repositories.credit_repository import CreditRepository
from tests.conftest import TEST_DEVICE_ID

_URL_RESTORE = "/api/v1/restore-purchases"
_URL_WEBHOOK = "/api/v1/webhooks/revenuecat"


def _webhook_body(**event_overrides) -> bytes:
    event = {
        "id": "evt_1",
        "type": "INITIAL_PURCHASE",
        "app_user_id": TEST_DEVICE_ID,
        "product_id": "buildsight_credit_pack10",
        "transaction_id": "store_txn_1",
        "store": "APP_STORE",
    }
    event.update(event_overrides)
    return json.dumps({"api_version": "1.0", "event": event}).encode()


def _sign(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


# =============================================================================
# Restore purchases
# =============================================================================


class TestRestorePurchases:
    async def test_unknown_device_not_found(self, client: AsyncClient):
        response = await client.post(_URL_RESTORE)

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    async def test_returns_wallet_truth_and_subscriber(
        self,
        client: AsyncClient,
        seed,
        session_factory: async_sessionmaker[AsyncSession],
    ):
        user_id = await seed.user(
            credits_balance=10, payment_customer_id=TEST_DEVICE_ID
        )
        async with session_factory() as db:
            await CreditRepository.create(
                db,
                user_id=user_id,
                amount=10,
                transaction_type="purchase",
                reference_id="store_txn_1",
            )
            await db.commit()

        response = await client.post(_URL_RESTORE)

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Purchases restored successfully"
        assert data["userId"] == str(user_id)
        assert (data["creditsBalance"], data["lifetimeCredits"]) == (10, 10)
        assert (data["totalPurchases"], data["totalUsage"]) == (1, 0)
        assert data["transactions"][0]["referenceId"] == "store_txn_1"
        assert data["revenuecatSubscriber"]["original_app_user_id"] == TEST_DEVICE_ID

    async def test_repeated_restore_changes_nothing(self, client: AsyncClient, seed):
        user_id = await seed.user(credits_balance=4)

        first = await client.post(_URL_RESTORE)
        second = await client.post(_URL_RESTORE)

        assert first.json() == second.json()
        wallet = await seed.wallet(user_id)
        assert wallet.credits_balance == 4


# =============================================================================
# Webhook
# =============================================================================


class TestWebhookGrants:
    async def test_purchase_grants_credits(self, client: AsyncClient, seed):
        user_id = await seed.user()

        response = await client.post(_URL_WEBHOOK, content=_webhook_body())

        assert response.status_code == 200
        assert response.json() == {
            "ok": True,
            "eventType": "INITIAL_PURCHASE",
            "applied": True,
        }
        wallet = await seed.wallet(user_id)
        assert (wallet.credits_balance, wallet.lifetime_credits) == (10, 10)

    async def test_replay_applied_once(self, client: AsyncClient, seed):
        user_id = await seed.user()
        await client.post(_URL_WEBHOOK, content=_webhook_body())

        response = await client.post(
            _URL_WEBHOOK, content=_webhook_body(id="evt_redelivered")
        )

        assert response.status_code == 200
        assert response.json()["applied"] is False
        wallet = await seed.wallet(user_id)
        assert wallet.credits_balance == 10

    async def test_granted_credit_can_be_reserved(self, client: AsyncClient, seed):
        await seed.user()
        await client.post(
            _URL_WEBHOOK,
            content=_webhook_body(
                type="NON_RENEWING_PURCHASE",
                product_id="buildsight_credit_single_eur",
            ),
        )

        response = await client.post("/api/v1/reserve")

        assert response.status_code == 200
        assert response.json()["creditsBalance"] == 0

    async def test_unknown_user_acknowledged(self, client: AsyncClient):
        response = await client.post(
            _URL_WEBHOOK, content=_webhook_body(app_user_id="ios_never_seen")
        )

        assert response.status_code == 200
        assert response.json()["applied"] is False

    async def test_missing_event_acknowledged(self, client: AsyncClient):
        response = await client.post(_URL_WEBHOOK, json={"api_version": "1.0"})

        assert response.status_code == 200
        assert response.json() == {"ok": True, "eventType": None, "applied": False}

    async def test_invalid_json_rejected(self, client: AsyncClient):
        response = await client.post(_URL_WEBHOOK, content=b"{not json")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_event_without_user_rejected(self, client: AsyncClient):
        response = await client.post(
            _URL_WEBHOOK, json={"event": {"type": "RENEWAL"}}
        )

        assert response.status_code == 400
        details = response.json()["error"]["details"]
        assert details[0]["field"] == "event.app_user_id"

    async def test_does_not_need_device_header(self, client: AsyncClient, seed):
        await seed.user()

        response = await client.post(
            _URL_WEBHOOK, content=_webhook_body(), headers={"x-device-id": ""}
        )

        assert response.status_code == 200


class TestWebhookAuthentication:
    async def test_bearer_secret_accepted(
        self, client: AsyncClient, seed, webhook_secret
    ):
        await seed.user()

        response = await client.post(
            _URL_WEBHOOK,
            content=_webhook_body(),
            headers={"Authorization": f"Bearer {webhook_secret}"},
        )

        assert response.status_code == 200
        assert response.json()["applied"] is True

    async def test_hmac_signature_accepted(
        self, client: AsyncClient, seed, webhook_secret
    ):
        await seed.user()
        body = _webhook_body()

        response = await client.post(
            _URL_WEBHOOK,
            content=body,
            headers={"x-revenuecat-signature": _sign(body, webhook_secret)},
        )

        assert response.status_code == 200

    async def test_missing_credentials_rejected(
        self, client: AsyncClient, seed, webhook_secret
    ):
        user_id = await seed.user()

        response = await client.post(_URL_WEBHOOK, content=_webhook_body())

        assert response.status_code == 401
        assert response.json()["error"] == {
            "code": "UNAUTHORIZED",
            "message": "Invalid webhook signature",
            "details": None,
        }
        wallet = await seed.wallet(user_id)
        assert wallet.credits_balance == 0

    async def test_signature_over_other_body_rejected(
        self, client: AsyncClient, webhook_secret
    ):
        signature = _sign(_webhook_body(product_id="other"), webhook_secret)

        response = await client.post(
            _URL_WEBHOOK,
            content=_webhook_body(),
            headers={"x-revenuecat-signature": signature},
        )

        assert response.status_code == 401

    async def test_wrong_bearer_rejected(self, client: AsyncClient, webhook_secret):
        response = await client.post(
            _URL_WEBHOOK,
            content=_webhook_body(),
            headers={"Authorization": "Bearer not-the-secret"},
        )

        assert response.status_code == 401


class TestVerifyWebhookRequest:
    @pytest.mark.parametrize(
        ("authorization", "signature", "expected"),
        [
            ("Bearer s3cret", None, True),
            ("s3cret", None, False),
            (None, None, False),
            (None, "deadbeef", False),
        ],
    )
    def test_credentials(self, authorization, signature, expected):
        assert (
            verify_webhook_request(b"{}", authorization, signature, "s3cret")
            is expected
        )

    def test_signature_case_insensitive(self):
        signature = _sign(b"{}", "s3cret").upper()
        assert verify_webhook_request(b"{}", None, signature, "s3cret") is True

    def test_no_secret_configured_accepts_all(self):
        assert verify_webhook_request(b"{}", None, None, "") is True
