"""Tests for the assembled FastAPI application."""

from __future__ import annotations

import importlib

import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def app_env(monkeypatch: pytest.MonkeyPatch, ed25519_private_key_pem: str) -> None:
    monkeypatch.setenv("LINKPAY_SENDING_WALLET_ADDRESS_URL", "https://wallet.example/alice")
    monkeypatch.setenv("LINKPAY_RECEIVING_WALLET_ADDRESS_URL", "https://wallet.example/shop")
    monkeypatch.setenv("LINKPAY_SENDING_KEY_ID", "key-1")
    monkeypatch.setenv("LINKPAY_SENDING_PRIVATE_KEY_PEM", ed25519_private_key_pem)
    monkeypatch.setenv("LINKPAY_VERIFY_WALLETS_ON_STARTUP", "false")
    monkeypatch.setenv("LINKPAY_APP_NAME", "LinkPay")


def test_app_mounts_flow_routes(app_env: None) -> None:
    app_module = importlib.reload(importlib.import_module("linkpay.api.app"))

    paths = {route.path for route in app_module.app.routes}

    assert {
        "/",
        "/health",
        "/linkpay",
        "/pay/callback",
        "/api/v1/quotes",
        "/api/v1/payments",
    } <= paths


def test_health_endpoint(app_env: None) -> None:
    app_module = importlib.reload(importlib.import_module("linkpay.api.app"))

    with TestClient(app_module.app) as client:
        response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["service"] == "LinkPay"
