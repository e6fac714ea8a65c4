"""Data Transfer Objects for the payment flow application layer."""

from __future__ import annotations

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from ..domain.entities import Amount, OutgoingPayment


class QuoteRequestDTO(BaseModel):
    """DTO for starting a quote-then-pay flow."""

    model_config = ConfigDict(json_schema_extra={"example": {"amount": "100.00"}})

    amount: Union[int, float, str]


class QuoteResponseDTO(BaseModel):
    """DTO returned once the quote exists and the spend grant is pending."""

    incoming_payment_id: str
    quote_id: str
    debit_amount: Amount
    interact_redirect: Optional[str] = None


class ExecutePaymentDTO(BaseModel):
    """DTO for completing a quote-then-pay flow."""

    incoming_payment_id: str = Field(..., min_length=1)
    interact_ref: Optional[str] = None


class PaymentStartedDTO(BaseModel):
    """Result of running a flow up to the spend grant request."""

    incoming_payment_id: str
    quote_id: str
    debit_amount: Amount
    redirect_url: Optional[str] = None


class LinkPaymentStartedDTO(BaseModel):
    redirect_url: str


class OutgoingPaymentDTO(BaseModel):
    """DTO for returning a created outgoing payment."""

    id: str
    wallet_address: str
    quote_id: Optional[str] = None
    debit_amount: Optional[Amount] = None

    @classmethod
    def from_entity(cls, payment: OutgoingPayment) -> "OutgoingPaymentDTO":
        return cls(
            id=payment.id,
            wallet_address=payment.wallet_address,
            quote_id=payment.quote_id,
            debit_amount=payment.debit_amount,
        )
