import pytest
import os
import sys
from unittest.mock import MagicMock, AsyncMock
from fastapi.testclient import TestClient

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app import create_app
from tools.config import Settings
from tools.hubspot import HubSpotError
from tools.idempotency import Idem
from tools.owners import OwnerResolver


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


PURCHASE = {
    "data": {
        "buyer": {"email": "a@x.com"},
        "product": {"name": "Course"},
        "purchase": {"status": "APPROVED"}
    },
    "id": "evt1"
}


class TestHotmartWebhook:
    """End-to-end tests of the /hotmart endpoint."""

    def setup_method(self):
        self.hubspot = MagicMock()
        self.hubspot.list_owners = AsyncMock(return_value=[{"id": "77", "email": "owner@x.com"}])
        self.hubspot.upsert_contact = AsyncMock(return_value={"id": "101", "properties": {}})
        self.notifier = MagicMock()
        self.clock = FakeClock()

    def make_client(self, secret=None, owner_email=None):
        settings = Settings(_env_file=None, hubspot_token="pat-123", hotmart_secret=secret, owner_email=owner_email)
        app = create_app(
            settings=settings,
            idem=Idem(clock=self.clock),
            hubspot=self.hubspot,
            owners=OwnerResolver(self.hubspot, clock=self.clock),
            notifier=self.notifier
        )
        return TestClient(app)

    def test_purchase_is_synced(self):
        client = self.make_client()

        response = client.post("/hotmart", json=PURCHASE)

        assert response.status_code == 200
        assert response.text == "ok"
        self.hubspot.upsert_contact.assert_awaited_once_with(
            email="a@x.com", product="Course", status="approved", owner_id=None
        )

    def test_repeated_event_is_duplicate(self):
        client = self.make_client()

        client.post("/hotmart", json=PURCHASE)
        response = client.post("/hotmart", json=PURCHASE)

        assert response.status_code == 200
        assert response.text == "duplicate"
        assert self.hubspot.upsert_contact.await_count == 1

    def test_event_is_novel_again_after_an_hour(self):
        client = self.make_client()

        client.post("/hotmart", json=PURCHASE)
        self.clock.now += 3600
        response = client.post("/hotmart", json=PURCHASE)

        assert response.text == "ok"
        assert self.hubspot.upsert_contact.await_count == 2

    def test_anonymous_events_are_never_duplicates(self):
        client = self.make_client()
        payload = {"email": "anon@x.com", "status": "approved"}

        assert client.post("/hotmart", json=payload).text == "ok"
        assert client.post("/hotmart", json=payload).text == "ok"
        assert self.hubspot.upsert_contact.await_count == 2

    def test_payload_without_email(self):
        client = self.make_client()

        response = client.post("/hotmart", json={"id": "evt2", "data": {"product": {"name": "Course"}}})

        assert response.status_code == 200
        assert response.text == "no-email"
        self.hubspot.upsert_contact.assert_not_awaited()

    def test_missing_secret_is_unauthorized(self):
        client = self.make_client(secret="s3cr3t")

        response = client.post("/hotmart", json=PURCHASE)

        assert response.status_code == 401
        assert response.text == "Unauthorized"
        self.hubspot.upsert_contact.assert_not_awaited()
        self.hubspot.list_owners.assert_not_awaited()

    def test_wrong_secret_is_unauthorized(self):
        client = self.make_client(secret="s3cr3t")

        response = client.post("/hotmart", json=PURCHASE, headers={"X-Hotmart-Secret": "guess"})

        assert response.status_code == 401
        self.hubspot.upsert_contact.assert_not_awaited()

    @pytest.mark.parametrize("kwargs", [
        {"headers": {"X-Hotmart-Secret": "s3cr3t"}},
        {"headers": {"X-Hotmart-Signature": "s3cr3t"}},
        {"headers": {"X-Hottok": "s3cr3t"}},
        {"params": {"secret": "s3cr3t"}},
        {"params": {"hottok": "s3cr3t"}},
    ])
    def test_secret_in_headers_or_query(self, kwargs):
        client = self.make_client(secret="s3cr3t")

        response = client.post("/hotmart", json=PURCHASE, **kwargs)

        assert response.status_code == 200
        assert response.text == "ok"

    @pytest.mark.parametrize("field", ["secret", "hottok"])
    def test_secret_in_json_body(self, field):
        client = self.make_client(secret="s3cr3t")

        response = client.post("/hotmart", json={**PURCHASE, field: "s3cr3t"})

        assert response.text == "ok"

    def test_form_encoded_payload(self):
        client = self.make_client(secret="s3cr3t")

        response = client.post("/hotmart", data={
            "hottok": "s3cr3t",
            "id": "evt-form",
            "data[buyer][email]": "form@x.com",
            "data[product][name]": "Workshop",
            "status": "purchase_refunded"
        })

        assert response.text == "ok"
        self.hubspot.upsert_contact.assert_awaited_once_with(
            email="form@x.com", product="Workshop", status="refunded", owner_id=None
        )

    def test_owner_is_assigned_and_cached(self):
        client = self.make_client(owner_email="Owner@X.com")

        client.post("/hotmart", json=PURCHASE)
        client.post("/hotmart", json={**PURCHASE, "id": "evt2"})

        assert self.hubspot.upsert_contact.await_args.kwargs["owner_id"] == "77"
        assert self.hubspot.list_owners.await_count == 1

    def test_upsert_failure_is_acknowledged(self):
        self.hubspot.upsert_contact.side_effect = HubSpotError("401 Unauthorized")
        client = self.make_client()

        response = client.post("/hotmart", json=PURCHASE)

        assert response.status_code == 200
        assert response.text == "received"
        self.notifier.send_sync_failure_alert.assert_called_once()
        alert_state, error = self.notifier.send_sync_failure_alert.call_args.args
        assert alert_state["event_id"] == "evt1"
        assert alert_state["normalized"]["email"] == "a@x.com"
        assert isinstance(error, HubSpotError)

    def test_unreadable_body(self):
        client = self.make_client()

        response = client.post("/hotmart", content=b"{not json", headers={"Content-Type": "application/json"})

        assert response.status_code == 200
        assert response.text == "no-email"

    def test_non_post_is_informational(self):
        client = self.make_client(secret="s3cr3t")

        response = client.get("/hotmart")

        assert response.status_code == 200
        assert "online" in response.text
        self.hubspot.upsert_contact.assert_not_awaited()

    @pytest.mark.parametrize("method", ["HEAD", "OPTIONS", "PUT", "DELETE"])
    def test_other_methods_are_informational(self, method):
        client = self.make_client(secret="s3cr3t")

        response = client.request(method, "/hotmart")

        assert response.status_code == 200
        self.hubspot.upsert_contact.assert_not_awaited()
        self.hubspot.list_owners.assert_not_awaited()

    def test_health(self):
        client = self.make_client(secret="s3cr3t", owner_email="owner@x.com")

        data = client.get("/health").json()

        assert data["status"] == "healthy"
        assert data["services"]["idempotency"] == "memory"
        assert data["services"]["auth"] == "secret"
        assert data["services"]["owner_assignment"] is True


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
