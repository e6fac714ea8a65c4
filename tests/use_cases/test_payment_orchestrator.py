"""Use case tests for PaymentOrchestrator using an in-memory Open Payments fake."""

from __future__ import annotations

from urllib.parse import parse_qs, urlparse

import pytest

from linkpay.application.use_cases.payment_flow import ConsentMode, PaymentOrchestrator
from linkpay.domain.entities import FlowSession
from linkpay.domain.errors import (
    ConsentIncompleteError,
    FlowStep,
    InvalidAmountError,
    NoPendingGrantError,
    UpstreamProtocolError,
)
from linkpay.infrastructure.session_repository_impl import FlowSessionRepositoryImpl
from tests.fixtures import (
    CONSENT_REDIRECT,
    CONTINUE_URI,
    RECEIVER_URL,
    SENDER_URL,
    FakeOpenPaymentsClient,
    finalized_grant,
    pending_grant,
)


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [-5, "0", "nan", "inf", "ten"])
async def test_invalid_amount_makes_no_remote_calls(
    orchestrator: PaymentOrchestrator,
    fake_client: FakeOpenPaymentsClient,
    amount: object,
) -> None:
    with pytest.raises(InvalidAmountError):
        await orchestrator.start_link_payment(amount)  # type: ignore[arg-type]
    with pytest.raises(InvalidAmountError):
        await orchestrator.create_quote(amount)  # type: ignore[arg-type]

    assert fake_client.calls == []


@pytest.mark.asyncio
async def test_start_runs_steps_in_order(
    orchestrator: PaymentOrchestrator, fake_client: FakeOpenPaymentsClient
) -> None:
    await orchestrator.start_link_payment("100.00")

    methods = [name for name, _ in fake_client.calls]
    assert methods == [
        "get_wallet_address",
        "get_wallet_address",
        "request_grant",
        "create_incoming_payment",
        "request_grant",
        "create_quote",
        "request_grant",
    ]
    assert {c["url"] for c in fake_client.calls_to("get_wallet_address")} == {
        SENDER_URL,
        RECEIVER_URL,
    }


@pytest.mark.asyncio
async def test_incoming_payment_uses_receiver_scale_and_grant(
    orchestrator: PaymentOrchestrator, fake_client: FakeOpenPaymentsClient
) -> None:
    await orchestrator.start_link_payment("100.00")

    grant_calls = fake_client.calls_to("request_grant")
    assert grant_calls[0]["auth_server"] == "https://auth.shop.example"
    assert grant_calls[0]["access"] == [
        {"type": "incoming-payment", "actions": ["read", "create", "complete"]}
    ]
    assert grant_calls[0]["interact"] is None

    incoming = fake_client.calls_to("create_incoming_payment")[0]
    assert incoming["access_token"] == "incoming-payment-token"
    assert incoming["wallet_address"] == RECEIVER_URL
    assert incoming["incoming_amount"].value == "10000"
    assert incoming["incoming_amount"].asset_code == "MXN"
    assert incoming["incoming_amount"].asset_scale == 2


@pytest.mark.asyncio
async def test_high_scale_receiver_gets_exact_minor_units(
    sessions: FlowSessionRepositoryImpl, pending_grants: FlowSessionRepositoryImpl
) -> None:
    client = FakeOpenPaymentsClient(receiver_scale=9, receiver_asset="XRP")
    orchestrator = PaymentOrchestrator(
        lambda: client,
        sessions,
        pending_grants,
        sending_wallet_address_url=SENDER_URL,
        receiving_wallet_address_url=RECEIVER_URL,
        base_url="http://localhost:5500",
    )

    await orchestrator.create_quote(0.1)

    incoming = client.calls_to("create_incoming_payment")[0]
    assert incoming["incoming_amount"].value == "100000000"


@pytest.mark.asyncio
async def test_quote_references_incoming_payment(
    orchestrator: PaymentOrchestrator, fake_client: FakeOpenPaymentsClient
) -> None:
    await orchestrator.start_link_payment("100.00")

    quote_grant = fake_client.calls_to("request_grant")[1]
    assert quote_grant["auth_server"] == "https://auth.wallet.example"
    assert quote_grant["access"] == [{"type": "quote", "actions": ["create", "read"]}]

    quote = fake_client.calls_to("create_quote")[0]
    assert quote["access_token"] == "quote-token"
    assert quote["wallet_address"] == SENDER_URL
    assert quote["receiver"] == "https://shop.example/incoming-payments/ip-1"
    assert quote["method"] == "ilp"


@pytest.mark.asyncio
async def test_link_payment_requests_redirect_grant_and_stores_session(
    orchestrator: PaymentOrchestrator,
    fake_client: FakeOpenPaymentsClient,
    sessions: FlowSessionRepositoryImpl,
    pending_grants: FlowSessionRepositoryImpl,
) -> None:
    started = await orchestrator.start_link_payment("100.00")

    assert started.redirect_url == CONSENT_REDIRECT

    outgoing_grant = fake_client.calls_to("request_grant")[2]
    access = outgoing_grant["access"][0]
    assert access["type"] == "outgoing-payment"
    assert access["actions"] == ["read", "create"]
    assert access["identifier"] == SENDER_URL
    assert access["limits"] == {
        "debitAmount": {"value": "10150", "assetCode": "MXN", "assetScale": 2}
    }

    interact = outgoing_grant["interact"]
    assert interact["start"] == ["redirect"]
    assert interact["finish"]["method"] == "redirect"
    assert interact["finish"]["nonce"]
    finish_uri = urlparse(interact["finish"]["uri"])
    assert finish_uri.path == "/pay/callback"
    assert parse_qs(finish_uri.query) == {"state": ["flow-token-1"]}

    session = await sessions.get("flow-token-1")
    assert session is not None
    assert session.continue_uri == CONTINUE_URI
    assert session.continue_access_token == "cont-1"
    assert session.quote_id == "https://wallet.example/quotes/q-1"
    assert session.nonce == interact["finish"]["nonce"]
    assert await pending_grants.get("https://shop.example/incoming-payments/ip-1") is None


@pytest.mark.asyncio
async def test_each_flow_gets_a_fresh_token_and_nonce(
    orchestrator: PaymentOrchestrator, fake_client: FakeOpenPaymentsClient
) -> None:
    await orchestrator.start_link_payment("1")
    await orchestrator.start_link_payment("2")

    finishes = [
        c["interact"]["finish"]
        for c in fake_client.calls_to("request_grant")
        if c["interact"] is not None
    ]
    assert finishes[0]["uri"] != finishes[1]["uri"]
    assert finishes[0]["nonce"] != finishes[1]["nonce"]


@pytest.mark.asyncio
async def test_link_payment_without_redirect_is_upstream_error(
    orchestrator: PaymentOrchestrator,
    fake_client: FakeOpenPaymentsClient,
    sessions: FlowSessionRepositoryImpl,
) -> None:
    fake_client.outgoing_grant = pending_grant(redirect=None)

    with pytest.raises(UpstreamProtocolError) as exc_info:
        await orchestrator.start_link_payment("10")

    assert exc_info.value.step is FlowStep.OUTGOING_PAYMENT_GRANT
    assert await sessions.get("flow-token-1") is None


@pytest.mark.asyncio
async def test_preauthorized_link_payment_redirects_to_callback(
    orchestrator: PaymentOrchestrator,
    fake_client: FakeOpenPaymentsClient,
    sessions: FlowSessionRepositoryImpl,
) -> None:
    fake_client.outgoing_grant = finalized_grant("op-token")

    started = await orchestrator.start_link_payment("10")

    assert started.redirect_url == "http://localhost:5500/pay/callback?state=flow-token-1"
    session = await sessions.get("flow-token-1")
    assert session is not None and session.access_token == "op-token"


@pytest.mark.asyncio
async def test_create_quote_registers_pending_grant(
    orchestrator: PaymentOrchestrator,
    fake_client: FakeOpenPaymentsClient,
    sessions: FlowSessionRepositoryImpl,
    pending_grants: FlowSessionRepositoryImpl,
) -> None:
    result = await orchestrator.create_quote("100.00")

    assert result.incoming_payment_id == "https://shop.example/incoming-payments/ip-1"
    assert result.debit_amount.value == "10150"
    assert result.interact_redirect == CONSENT_REDIRECT

    interact = fake_client.calls_to("request_grant")[2]["interact"]
    assert interact == {"start": ["redirect"]}

    pending = await pending_grants.get(result.incoming_payment_id)
    assert pending is not None
    assert pending.quote_id == result.quote_id
    assert pending.nonce is None
    assert await sessions.get("flow-token-1") is None


@pytest.mark.asyncio
async def test_execute_payment_creates_outgoing_payment(
    orchestrator: PaymentOrchestrator,
    fake_client: FakeOpenPaymentsClient,
    pending_grants: FlowSessionRepositoryImpl,
) -> None:
    quote = await orchestrator.create_quote("100.00")

    payment = await orchestrator.execute_payment(quote.incoming_payment_id)

    continue_call = fake_client.calls_to("continue_grant")[0]
    assert continue_call == {
        "uri": CONTINUE_URI,
        "access_token": "cont-1",
        "interact_ref": None,
    }
    created = fake_client.calls_to("create_outgoing_payment")[0]
    assert created["access_token"] == "outgoing-payment-token"
    assert created["quote_id"] == quote.quote_id
    assert created["wallet_address"] == SENDER_URL
    assert payment.id == "https://wallet.example/outgoing-payments/op-1"
    assert await pending_grants.get(quote.incoming_payment_id) is None


@pytest.mark.asyncio
async def test_execute_payment_passes_interact_ref_when_given(
    orchestrator: PaymentOrchestrator, fake_client: FakeOpenPaymentsClient
) -> None:
    quote = await orchestrator.create_quote("5")

    await orchestrator.execute_payment(quote.incoming_payment_id, "ref-9")

    assert fake_client.calls_to("continue_grant")[0]["interact_ref"] == "ref-9"


@pytest.mark.asyncio
async def test_execute_payment_with_preauthorized_grant_skips_continuation(
    orchestrator: PaymentOrchestrator, fake_client: FakeOpenPaymentsClient
) -> None:
    fake_client.outgoing_grant = finalized_grant("op-token")
    quote = await orchestrator.create_quote("5")

    assert quote.interact_redirect is None
    await orchestrator.execute_payment(quote.incoming_payment_id)

    assert fake_client.calls_to("continue_grant") == []
    assert fake_client.calls_to("create_outgoing_payment")[0]["access_token"] == "op-token"


@pytest.mark.asyncio
async def test_execute_payment_without_pending_grant(
    orchestrator: PaymentOrchestrator, fake_client: FakeOpenPaymentsClient
) -> None:
    with pytest.raises(NoPendingGrantError):
        await orchestrator.execute_payment("https://shop.example/incoming-payments/x")

    assert fake_client.calls == []


@pytest.mark.asyncio
async def test_execute_payment_consent_incomplete_keeps_pending_grant(
    orchestrator: PaymentOrchestrator,
    fake_client: FakeOpenPaymentsClient,
    pending_grants: FlowSessionRepositoryImpl,
) -> None:
    quote = await orchestrator.create_quote("5")
    fake_client.queue_continue_result(pending_grant())

    with pytest.raises(ConsentIncompleteError):
        await orchestrator.execute_payment(quote.incoming_payment_id)

    assert fake_client.calls_to("create_outgoing_payment") == []
    assert await pending_grants.get(quote.incoming_payment_id) is not None

    payment = await orchestrator.execute_payment(quote.incoming_payment_id)
    assert payment.quote_id == quote.quote_id


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "method, step",
    [
        ("create_incoming_payment", FlowStep.INCOMING_PAYMENT),
        ("create_quote", FlowStep.QUOTE),
        ("get_wallet_address", FlowStep.WALLET_ADDRESS),
    ],
)
async def test_upstream_failures_are_tagged_with_step(
    orchestrator: PaymentOrchestrator,
    fake_client: FakeOpenPaymentsClient,
    sessions: FlowSessionRepositoryImpl,
    method: str,
    step: FlowStep,
) -> None:
    fake_client.set_upstream_error(method, status=403, code="forbidden")

    with pytest.raises(UpstreamProtocolError) as exc_info:
        await orchestrator.start_link_payment("10")

    assert exc_info.value.step is step
    assert exc_info.value.status == 403
    assert exc_info.value.code == "forbidden"
    assert step.value in str(exc_info.value)
    assert await sessions.get("flow-token-1") is None


@pytest.mark.asyncio
async def test_grant_request_failures_name_the_grant(
    orchestrator: PaymentOrchestrator, fake_client: FakeOpenPaymentsClient
) -> None:
    fake_client.set_upstream_error("request_grant", status=400, code="invalid_request")

    with pytest.raises(UpstreamProtocolError) as exc_info:
        await orchestrator.create_quote("10")

    assert exc_info.value.step is FlowStep.INCOMING_PAYMENT_GRANT
    assert fake_client.calls_to("create_incoming_payment") == []


@pytest.mark.asyncio
async def test_outgoing_payment_failure_after_finalize_drops_session(
    orchestrator: PaymentOrchestrator,
    fake_client: FakeOpenPaymentsClient,
    pending_grants: FlowSessionRepositoryImpl,
) -> None:
    quote = await orchestrator.create_quote("10")
    fake_client.set_upstream_error("create_outgoing_payment", status=500)

    with pytest.raises(UpstreamProtocolError) as exc_info:
        await orchestrator.execute_payment(quote.incoming_payment_id)

    assert exc_info.value.step is FlowStep.OUTGOING_PAYMENT
    assert await pending_grants.get(quote.incoming_payment_id) is None


@pytest.mark.asyncio
async def test_continuation_failure_keeps_session_for_retry(
    orchestrator: PaymentOrchestrator,
    fake_client: FakeOpenPaymentsClient,
    pending_grants: FlowSessionRepositoryImpl,
) -> None:
    quote = await orchestrator.create_quote("10")
    fake_client.set_upstream_error("continue_grant", status=502)

    with pytest.raises(UpstreamProtocolError) as exc_info:
        await orchestrator.execute_payment(quote.incoming_payment_id)

    assert exc_info.value.step is FlowStep.GRANT_CONTINUATION
    assert await pending_grants.get(quote.incoming_payment_id) is not None


@pytest.mark.asyncio
async def test_start_payment_consent_modes_share_steps(
    orchestrator: PaymentOrchestrator, fake_client: FakeOpenPaymentsClient
) -> None:
    redirect = await orchestrator.start_payment("10", ConsentMode.REDIRECT)
    deferred = await orchestrator.start_payment("10", ConsentMode.DEFERRED)

    assert redirect.quote_id == deferred.quote_id
    assert redirect.debit_amount == deferred.debit_amount
    assert fake_client.closed == 2


@pytest.mark.asyncio
async def test_session_without_continuation_handle_is_upstream_error(
    orchestrator: PaymentOrchestrator,
    fake_client: FakeOpenPaymentsClient,
    pending_grants: FlowSessionRepositoryImpl,
) -> None:
    await pending_grants.put(
        "https://shop.example/incoming-payments/ip-9",
        FlowSession(quote_id="https://wallet.example/quotes/q-9"),
    )

    with pytest.raises(UpstreamProtocolError) as exc_info:
        await orchestrator.execute_payment("https://shop.example/incoming-payments/ip-9")

    assert exc_info.value.step is FlowStep.GRANT_CONTINUATION
    assert fake_client.calls_to("continue_grant") == []
    assert fake_client.calls_to("create_outgoing_payment") == []
