"""Quote-then-pay routes."""

from __future__ import annotations

import logging
import time

from fastapi import APIRouter, Depends, HTTPException, status
from prometheus_client import Counter, Histogram

from ...application.dtos import (
    ExecutePaymentDTO,
    OutgoingPaymentDTO,
    QuoteRequestDTO,
    QuoteResponseDTO,
)
from ...application.use_cases.payment_flow import PaymentOrchestrator
from ...domain.errors import (
    ConsentIncompleteError,
    InvalidAmountError,
    NoPendingGrantError,
    UpstreamProtocolError,
)
from ..dependencies import get_payment_orchestrator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["quotes"])


quote_flow_requests_total = Counter(
    "quote_flow_requests_total",
    "Total quote-then-pay requests processed",
    ["route", "status"],
)

quote_flow_request_duration_seconds = Histogram(
    "quote_flow_request_duration_seconds",
    "Wall time to process a quote-then-pay request",
    ["route", "status"],
)


def _observe(route: str, outcome: str, start_time: float) -> None:
    quote_flow_requests_total.labels(route=route, status=outcome).inc()
    quote_flow_request_duration_seconds.labels(route=route, status=outcome).observe(
        time.perf_counter() - start_time
    )


@router.post(
    "/quotes",
    response_model=QuoteResponseDTO,
    status_code=status.HTTP_201_CREATED,
)
async def create_quote(
    payload: QuoteRequestDTO,
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
) -> QuoteResponseDTO:
    """Create the incoming payment and quote, and request the spend grant."""
    start_time = time.perf_counter()
    try:
        result = await orchestrator.create_quote(payload.amount)
    except InvalidAmountError as e:
        _observe("quotes", "client_error", start_time)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except UpstreamProtocolError as e:
        _observe("quotes", "upstream_error", start_time)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    except Exception as e:
        _observe("quotes", "server_error", start_time)
        logger.exception("Failed to create quote")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to create quote: {str(e)}",
        )
    _observe("quotes", "success", start_time)
    return result


@router.post(
    "/payments",
    response_model=OutgoingPaymentDTO,
    status_code=status.HTTP_201_CREATED,
)
async def execute_payment(
    payload: ExecutePaymentDTO,
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
) -> OutgoingPaymentDTO:
    """Finalize the pending grant of a quote and create the outgoing payment."""
    start_time = time.perf_counter()
    try:
        result = await orchestrator.execute_payment(
            payload.incoming_payment_id, payload.interact_ref
        )
    except NoPendingGrantError as e:
        _observe("payments", "client_error", start_time)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ConsentIncompleteError as e:
        _observe("payments", "consent_incomplete", start_time)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except UpstreamProtocolError as e:
        _observe("payments", "upstream_error", start_time)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    except Exception as e:
        _observe("payments", "server_error", start_time)
        logger.exception("Failed to execute payment")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to execute payment: {str(e)}",
        )
    _observe("payments", "success", start_time)
    return result
