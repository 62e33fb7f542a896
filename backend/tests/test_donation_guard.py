import pytest
from fastapi import Request, status
from fastapi.testclient import TestClient

from churchsite.donation_guard import DonationAmountError, validate_donation_amount
from churchsite.main import create_app

CLIENT_IP = {"x-forwarded-for": "1.2.3.4"}


@pytest.fixture
def donation_app(make_settings, clock):
    app = create_app(make_settings(webhook_rate_limit_per_minute=2), clock=clock)

    @app.post("/api/donations")
    async def create_donation(request: Request):
        return {"received": await request.json()}

    @app.post("/api/webhooks/stripe")
    async def stripe_webhook():
        return {"received": True}

    return app


@pytest.fixture
def donation_client(donation_app) -> TestClient:
    return TestClient(donation_app)


class TestValidateDonationAmount:
    def test_accepts_amount_within_bounds(self):
        assert validate_donation_amount({"amount": 2500}, min_cents=100, max_cents=10_000_000) == 2500

    @pytest.mark.parametrize(
        "payload, message",
        [
            ({"amount": 99}, "Donation amount must be at least $1.00"),
            ({"amount": 10_000_001}, "Donation amount exceeds the maximum limit"),
            ({"amount": "50"}, "Invalid request format"),
            ({"amount": True}, "Invalid request format"),
            ({}, "Invalid request format"),
            ([2500], "Invalid request format"),
        ],
    )
    def test_rejections(self, payload, message):
        with pytest.raises(DonationAmountError, match=message.replace("$", r"\$")):
            validate_donation_amount(payload, min_cents=100, max_cents=10_000_000)


class TestDonationGuardMiddleware:
    def test_valid_donation_reaches_handler_with_body(self, donation_client):
        response = donation_client.post("/api/donations", json={"amount": 5000, "fund": "missions"}, headers=CLIENT_IP)

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"received": {"amount": 5000, "fund": "missions"}}

    def test_amount_below_minimum_is_rejected(self, donation_client):
        response = donation_client.post("/api/donations", json={"amount": 50}, headers=CLIENT_IP)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json() == {"error": "Donation amount must be at least $1.00"}

    def test_amount_above_maximum_is_rejected(self, donation_client):
        response = donation_client.post("/api/donations", json={"amount": 20_000_000}, headers=CLIENT_IP)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json() == {"error": "Donation amount exceeds the maximum limit"}

    def test_malformed_body_is_rejected(self, donation_client):
        response = donation_client.post(
            "/api/donations",
            content=b"amount=5000",
            headers={**CLIENT_IP, "content-type": "application/json"},
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json() == {"error": "Invalid request format"}

    def test_donation_routes_are_throttled_per_minute(self, donation_client, clock):
        for _ in range(10):
            assert donation_client.get("/api/donations/designations", headers=CLIENT_IP).status_code == 404

        limited = donation_client.get("/api/donations/designations", headers=CLIENT_IP)
        assert limited.status_code == status.HTTP_429_TOO_MANY_REQUESTS
        assert limited.json() == {"error": "Too many requests"}
        assert limited.headers["retry-after"] == "60"

        clock.advance(60)
        assert donation_client.get("/api/donations/designations", headers=CLIENT_IP).status_code == 404

    def test_webhooks_use_their_own_counter(self, donation_client):
        for _ in range(10):
            donation_client.get("/api/donations/designations", headers=CLIENT_IP)

        assert donation_client.post("/api/webhooks/stripe", headers=CLIENT_IP).status_code == 200
        assert donation_client.post("/api/webhooks/stripe", headers=CLIENT_IP).status_code == 200
        assert donation_client.post("/api/webhooks/stripe", headers=CLIENT_IP).status_code == 429

    def test_other_routes_are_not_throttled(self, donation_client, donation_app):
        for _ in range(15):
            donation_client.get("/health", headers=CLIENT_IP)

        assert len(donation_app.state.donation_guard.donation_limiter) == 0
        assert len(donation_app.state.donation_guard.webhook_limiter) == 0
