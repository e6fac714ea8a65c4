"""Pay-by-link routes: start a flow and receive the wallet's consent callback."""

from __future__ import annotations

import html
import logging
import time
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from prometheus_client import Counter, Histogram

from ...application.shared.amounts import from_minor_units
from ...application.use_cases.payment_flow import PaymentOrchestrator
from ...application.use_cases.redirect_resume import RedirectResumeHandler
from ...domain.errors import (
    ConsentIncompleteError,
    InvalidAmountError,
    SessionNotFoundError,
    UpstreamProtocolError,
)
from ..dependencies import get_payment_orchestrator, get_redirect_resume_handler

logger = logging.getLogger(__name__)

router = APIRouter(tags=["link-payments"])


link_payment_requests_total = Counter(
    "link_payment_requests_total",
    "Total pay-by-link requests processed",
    ["route", "status"],
)

link_payment_request_duration_seconds = Histogram(
    "link_payment_request_duration_seconds",
    "Wall time to process a pay-by-link request",
    ["route", "status"],
)


def _observe(route: str, outcome: str, start_time: float) -> None:
    link_payment_requests_total.labels(route=route, status=outcome).inc()
    link_payment_request_duration_seconds.labels(route=route, status=outcome).observe(
        time.perf_counter() - start_time
    )


def _page(title: str, body: str, status_code: int) -> HTMLResponse:
    return HTMLResponse(
        content=(
            "<html>"
            f'<head><meta charset="utf-8"><title>{html.escape(title)}</title></head>'
            f'<body style="font-family: sans-serif;">{body}'
            '<p><a href="/">Back to the store</a></p></body>'
            "</html>"
        ),
        status_code=status_code,
    )


@router.get("/linkpay", response_class=RedirectResponse)
async def start_link_payment(
    amount: str = Query(..., description="Amount in major units, e.g. 100.00"),
    orchestrator: PaymentOrchestrator = Depends(get_payment_orchestrator),
) -> Response:
    """Start a pay-by-link flow and redirect the user to their wallet."""
    start_time = time.perf_counter()
    try:
        started = await orchestrator.start_link_payment(amount)
    except InvalidAmountError as e:
        _observe("linkpay", "client_error", start_time)
        return Response(
            content=str(e),
            media_type="text/plain",
            status_code=status.HTTP_400_BAD_REQUEST,
        )
    except UpstreamProtocolError as e:
        _observe("linkpay", "upstream_error", start_time)
        logger.warning("Pay-by-link flow failed at %s: %s", e.step.value, e)
        return Response(
            content=f"Could not start the payment: {e}",
            media_type="text/plain",
            status_code=status.HTTP_502_BAD_GATEWAY,
        )
    except Exception:
        _observe("linkpay", "server_error", start_time)
        logger.exception("Failed to start pay-by-link flow")
        return Response(
            content="Could not start the payment.",
            media_type="text/plain",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
    _observe("linkpay", "success", start_time)
    return RedirectResponse(
        started.redirect_url, status_code=status.HTTP_307_TEMPORARY_REDIRECT
    )


@router.get("/pay/callback", response_class=HTMLResponse)
async def pay_callback(
    state: Optional[str] = Query(None, description="Flow token"),
    interact_ref: Optional[str] = Query(None, description="Interaction reference"),
    handler: RedirectResumeHandler = Depends(get_redirect_resume_handler),
) -> HTMLResponse:
    """Finalize the grant after the user approved the payment in their wallet."""
    start_time = time.perf_counter()
    try:
        payment = await handler.resume(state, interact_ref)
    except SessionNotFoundError as e:
        _observe("callback", "client_error", start_time)
        return _page("Payment session", f"<h2>{html.escape(str(e))}</h2>", 400)
    except ConsentIncompleteError as e:
        _observe("callback", "consent_incomplete", start_time)
        return _page(
            "Authorization pending",
            f"<h2>{html.escape(str(e))}</h2>"
            "<p>Did you accept the permission in your wallet?</p>",
            400,
        )
    except UpstreamProtocolError as e:
        _observe("callback", "upstream_error", start_time)
        logger.warning("Payment callback failed at %s: %s", e.step.value, e)
        return _page(
            "Error",
            "<h2>There was a problem processing the payment</h2>"
            f"<pre>{html.escape(str(e))}</pre>",
            502,
        )
    except Exception:
        _observe("callback", "server_error", start_time)
        logger.exception("Failed to resume pay-by-link flow")
        return _page(
            "Error", "<h2>There was a problem processing the payment</h2>", 500
        )
    _observe("callback", "success", start_time)
    body = f"<h2>Payment sent</h2><p>Payment ID: {html.escape(payment.id)}</p>"
    if payment.debit_amount is not None:
        debited = from_minor_units(
            payment.debit_amount.value, payment.debit_amount.asset_scale
        )
        body += (
            f"<p>Amount: {debited} {html.escape(payment.debit_amount.asset_code)}</p>"
        )
    return _page("Payment completed", body, 200)
