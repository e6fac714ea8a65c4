"""Shared pytest fixtures for payment flow tests."""

from __future__ import annotations

import os
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from linkpay.application.use_cases.payment_flow import PaymentOrchestrator
from linkpay.application.use_cases.redirect_resume import RedirectResumeHandler
from linkpay.infrastructure.database import DatabaseClient
from linkpay.infrastructure.session_repository_impl import FlowSessionRepositoryImpl
from linkpay.infrastructure.storage import InMemoryKeyValueStore, RedisKeyValueStore
from tests.fixtures import RECEIVER_URL, SENDER_URL, FakeOpenPaymentsClient

BASE_URL = "http://localhost:5500"


@pytest.fixture
def ed25519_private_key() -> Ed25519PrivateKey:
    """Generate a client signing key for testing."""
    return Ed25519PrivateKey.generate()


@pytest.fixture
def ed25519_private_key_pem(ed25519_private_key: Ed25519PrivateKey) -> str:
    """Get the client signing key as PEM string."""
    pem = ed25519_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return pem.decode("utf-8")


@pytest.fixture
def fake_client() -> FakeOpenPaymentsClient:
    return FakeOpenPaymentsClient()


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def sessions(store: InMemoryKeyValueStore) -> FlowSessionRepositoryImpl:
    return FlowSessionRepositoryImpl(store, "pay_session", ttl_seconds=900)


@pytest.fixture
def pending_grants(store: InMemoryKeyValueStore) -> FlowSessionRepositoryImpl:
    return FlowSessionRepositoryImpl(store, "pending_grant", ttl_seconds=900)


@pytest.fixture
def orchestrator(
    fake_client: FakeOpenPaymentsClient,
    sessions: FlowSessionRepositoryImpl,
    pending_grants: FlowSessionRepositoryImpl,
) -> PaymentOrchestrator:
    tokens = iter(f"flow-token-{i}" for i in range(1, 1000))
    return PaymentOrchestrator(
        lambda: fake_client,
        sessions,
        pending_grants,
        sending_wallet_address_url=SENDER_URL,
        receiving_wallet_address_url=RECEIVER_URL,
        base_url=BASE_URL,
        token_factory=lambda: next(tokens),
    )


@pytest.fixture
def resume_handler(
    orchestrator: PaymentOrchestrator, sessions: FlowSessionRepositoryImpl
) -> RedirectResumeHandler:
    return RedirectResumeHandler(orchestrator, sessions)


class TestDatabaseSettings:
    """Test settings for Redis connection."""

    __test__ = False

    def __init__(self, database_url: str) -> None:
        self.database_url = database_url


@pytest_asyncio.fixture
async def redis_db_client() -> AsyncGenerator[DatabaseClient, None]:
    """Create a Redis database client for testing.

    Uses database 15 by default, or TEST_REDIS_URL if set.
    Skips when Redis is not reachable.
    """
    test_redis_url = os.getenv("TEST_REDIS_URL", "redis://localhost:6379/15")
    settings = TestDatabaseSettings(database_url=test_redis_url)
    client = DatabaseClient(settings)

    try:
        await client.ping()
    except Exception as e:
        await client.aclose()
        pytest.skip(f"Redis not available: {e}")

    yield client

    # Cleanup: flush test database
    async with client.get_connection() as conn:
        await conn.flushdb()
    await client.aclose()


@pytest_asyncio.fixture
async def redis_store(redis_db_client: DatabaseClient) -> RedisKeyValueStore:
    """Create a Redis-backed key-value store for testing."""
    return RedisKeyValueStore(redis_db_client)
