"""Test fixtures for in-memory implementations."""

from .fake_open_payments_client import (
    CONSENT_REDIRECT,
    CONTINUE_URI,
    RECEIVER_URL,
    SENDER_URL,
    FakeOpenPaymentsClient,
    finalized_grant,
    pending_grant,
)

__all__ = [
    "CONSENT_REDIRECT",
    "CONTINUE_URI",
    "FakeOpenPaymentsClient",
    "RECEIVER_URL",
    "SENDER_URL",
    "finalized_grant",
    "pending_grant",
]
