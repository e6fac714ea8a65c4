"""Domain-specific exceptions."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class FlowStep(str, Enum):
    """Remote steps of a payment flow, used to tag upstream failures."""

    WALLET_ADDRESS = "wallet-address"
    INCOMING_PAYMENT_GRANT = "incoming-payment-grant"
    INCOMING_PAYMENT = "incoming-payment"
    QUOTE_GRANT = "quote-grant"
    QUOTE = "quote"
    OUTGOING_PAYMENT_GRANT = "outgoing-payment-grant"
    GRANT_CONTINUATION = "grant-continuation"
    OUTGOING_PAYMENT = "outgoing-payment"


class PaymentFlowError(Exception):
    """Base class for every outcome a payment flow reports to its caller."""


class InvalidAmountError(PaymentFlowError, ValueError):
    """Raised when an amount is not a finite, strictly positive decimal."""


class UpstreamProtocolError(PaymentFlowError):
    """Raised when a remote Open Payments call fails during a flow step."""

    def __init__(
        self,
        step: FlowStep,
        *,
        status: Optional[int] = None,
        code: Optional[str] = None,
        description: Optional[str] = None,
    ) -> None:
        self.step = step
        self.status = status
        self.code = code
        self.description = description
        detail = description or code or "request failed"
        if status is not None:
            detail = f"{detail} (status {status})"
        super().__init__(f"{step.value} failed: {detail}")


class SessionNotFoundError(PaymentFlowError):
    """Raised when a flow token is unknown, already consumed or expired."""

    def __init__(self, message: str = "Payment session not found or expired") -> None:
        super().__init__(message)


class ConsentIncompleteError(PaymentFlowError):
    """Raised when a grant continuation did not return a finalized grant."""

    def __init__(
        self,
        message: str = "Grant not finalized; the payment was not authorized in the wallet",
    ) -> None:
        super().__init__(message)


class NoPendingGrantError(PaymentFlowError):
    """Raised when no pending grant is registered for an incoming payment."""

    def __init__(self, incoming_payment_id: str) -> None:
        self.incoming_payment_id = incoming_payment_id
        super().__init__(f"No pending grant for incoming payment {incoming_payment_id}")


class OpenPaymentsClientError(Exception):
    """Raised by the Open Payments client on transport or protocol errors."""

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        code: Optional[str] = None,
        description: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.code = code
        self.description = description
