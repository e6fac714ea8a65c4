"""FastAPI dependencies for the payment flow API."""

from __future__ import annotations

from typing import Optional

from fastapi import Depends

from ..application.use_cases.payment_flow import PaymentOrchestrator
from ..application.use_cases.redirect_resume import RedirectResumeHandler
from ..domain.session_repository import FlowSessionRepository
from ..domain.shared import OpenPaymentsClientFactory, OpenPaymentsClientProtocol
from ..envs.linkpay_env import Settings, get_settings
from ..infrastructure.database import get_database_client
from ..infrastructure.open_payments.client import OpenPaymentsClient
from ..infrastructure.session_repository_impl import FlowSessionRepositoryImpl
from ..infrastructure.storage import (
    InMemoryKeyValueStore,
    KeyValueStore,
    RedisKeyValueStore,
)

SESSION_NAMESPACE = "pay_session"
PENDING_GRANT_NAMESPACE = "pending_grant"

# Process-wide in-memory store; sessions must outlive a single request
_memory_store: Optional[InMemoryKeyValueStore] = None


def get_key_value_store(settings: Settings = Depends(get_settings)) -> KeyValueStore:
    """Get key-value store."""
    global _memory_store
    if settings.store_backend == "redis":
        return RedisKeyValueStore(get_database_client(settings))
    if _memory_store is None:
        _memory_store = InMemoryKeyValueStore()
    return _memory_store


def get_session_repository(
    store: KeyValueStore = Depends(get_key_value_store),
    settings: Settings = Depends(get_settings),
) -> FlowSessionRepository:
    """Get the flow token keyed session repository."""
    return FlowSessionRepositoryImpl(
        store, SESSION_NAMESPACE, ttl_seconds=settings.session_ttl_seconds
    )


def get_pending_grant_repository(
    store: KeyValueStore = Depends(get_key_value_store),
    settings: Settings = Depends(get_settings),
) -> FlowSessionRepository:
    """Get the incoming payment keyed pending grant repository."""
    return FlowSessionRepositoryImpl(
        store, PENDING_GRANT_NAMESPACE, ttl_seconds=settings.session_ttl_seconds
    )


def build_client_factory(settings: Settings) -> OpenPaymentsClientFactory:
    def factory() -> OpenPaymentsClientProtocol:
        return OpenPaymentsClient(
            settings.sending_wallet_address_url,
            settings.sending_private_key_pem,
            settings.sending_key_id,
            timeout=settings.http_timeout,
        )

    return factory


def get_client_factory(
    settings: Settings = Depends(get_settings),
) -> OpenPaymentsClientFactory:
    """Get Open Payments client factory."""
    return build_client_factory(settings)


def get_payment_orchestrator(
    client_factory: OpenPaymentsClientFactory = Depends(get_client_factory),
    sessions: FlowSessionRepository = Depends(get_session_repository),
    pending_grants: FlowSessionRepository = Depends(get_pending_grant_repository),
    settings: Settings = Depends(get_settings),
) -> PaymentOrchestrator:
    """Get payment orchestrator."""
    return PaymentOrchestrator(
        client_factory,
        sessions,
        pending_grants,
        sending_wallet_address_url=settings.sending_wallet_address_url,
        receiving_wallet_address_url=settings.receiving_wallet_address_url,
        base_url=settings.base_url,
    )


def get_redirect_resume_handler(
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
    sessions: FlowSessionRepository = Depends(get_session_repository),
) -> RedirectResumeHandler:
    """Get redirect resume handler."""
    return RedirectResumeHandler(orchestrator, sessions)
