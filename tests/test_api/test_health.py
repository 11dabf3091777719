"""Tests for the health, banner and config endpoints."""

from __future__ import annotations


def test_health_check(client):
    """GET /health returns 200 with status=healthy."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["provider"] == "Maviance SmobilPay"
    assert "timestamp" in data
    assert data["uptime"] >= 0


def test_index_lists_endpoints(client):
    response = client.get("/")
    assert response.status_code == 200
    endpoints = response.json()["endpoints"]
    assert endpoints["webhook"] == "POST /api/payments/webhook/maviance"


def test_unknown_route_returns_json_404(client):
    response = client.get("/api/payments/nope")
    assert response.status_code == 404
    data = response.json()
    assert data["success"] is False
    assert data["path"] == "/api/payments/nope"
    assert data["method"] == "GET"


def test_config_has_no_secrets(client, test_settings):
    test_settings.maviance_public_key = "pub-very-secret-value"
    test_settings.maviance_secret_key = "sec-very-secret-value"

    response = client.get("/api/payments/config")

    assert response.status_code == 200
    config = response.json()["config"]
    assert config["provider"] == "Maviance SmobilPay"
    assert config["supported_methods"] == ["mtn", "orange", "express-union"]
    assert config["webhook_url"] == (
        "https://payments.example.test/api/payments/webhook/maviance"
    )
    assert "pub-very" not in response.text
    assert "sec-very" not in response.text


def test_payment_usage_page(client):
    response = client.get("/test-payment")
    assert response.status_code == 200
    data = response.json()
    assert len(data["steps"]) == 3
    assert data["example_body"]["payment_method"] == "mtn"
    assert client.get("/").json()["endpoints"]["test_payment"] == "GET /test-payment"
