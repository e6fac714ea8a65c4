"""Use cases driving the Open Payments grant, quote and payment sequence."""

from __future__ import annotations

import asyncio
import logging
import secrets
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Iterator, Optional
from urllib.parse import urlencode
from uuid import uuid4

from ...domain.entities import (
    Amount,
    FlowSession,
    Grant,
    IncomingPayment,
    Quote,
    WalletAddress,
)
from ...domain.errors import (
    ConsentIncompleteError,
    FlowStep,
    NoPendingGrantError,
    OpenPaymentsClientError,
    PaymentFlowError,
    UpstreamProtocolError,
)
from ...domain.session_repository import FlowSessionRepository
from ...domain.shared import OpenPaymentsClientFactory, OpenPaymentsClientProtocol
from ..dtos import (
    LinkPaymentStartedDTO,
    OutgoingPaymentDTO,
    PaymentStartedDTO,
    QuoteResponseDTO,
)
from ..shared.amounts import (
    AmountInput,
    from_minor_units,
    parse_amount,
    to_minor_units,
)

logger = logging.getLogger(__name__)

PAYMENT_METHOD = "ilp"
CALLBACK_PATH = "/pay/callback"


class ConsentMode(str, Enum):
    """How the spend grant obtains the sender's consent.

    REDIRECT: the wallet redirects the user back to our callback with the
    flow token; the session is keyed by that token.
    DEFERRED: no finish callback; the caller completes the flow later with
    the incoming payment id, which keys the session.
    """

    REDIRECT = "redirect"
    DEFERRED = "deferred"


@dataclass(frozen=True)
class PreparedPayment:
    sender: WalletAddress
    receiver: WalletAddress
    incoming_payment: IncomingPayment
    quote: Quote


@contextmanager
def upstream_step(step: FlowStep) -> Iterator[None]:
    """Translate client failures inside the block into UpstreamProtocolError."""
    try:
        yield
    except OpenPaymentsClientError as e:
        logger.warning("Open Payments step %s failed: %s", step.value, e)
        raise UpstreamProtocolError(
            step,
            status=e.status,
            code=e.code,
            description=e.description or str(e),
        ) from e


def _new_flow_token() -> str:
    return secrets.token_urlsafe(32)


class PaymentOrchestrator:
    """Runs payment flows from a sending wallet to a receiving wallet.

    Flows stop after requesting the spend grant and store a FlowSession;
    ``complete`` resumes them from an unrelated later request.
    """

    def __init__(
        self,
        client_factory: OpenPaymentsClientFactory,
        sessions: FlowSessionRepository,
        pending_grants: FlowSessionRepository,
        *,
        sending_wallet_address_url: str,
        receiving_wallet_address_url: str,
        base_url: str,
        token_factory: Callable[[], str] = _new_flow_token,
    ):
        self.client_factory = client_factory
        self.sessions = sessions
        self.pending_grants = pending_grants
        self.sending_wallet_address_url = sending_wallet_address_url
        self.receiving_wallet_address_url = receiving_wallet_address_url
        self.base_url = base_url.rstrip("/")
        self.token_factory = token_factory

    def callback_uri(self, flow_token: str) -> str:
        return f"{self.base_url}{CALLBACK_PATH}?{urlencode({'state': flow_token})}"

    async def _resolve_wallets(
        self, client: OpenPaymentsClientProtocol
    ) -> tuple[WalletAddress, WalletAddress]:
        with upstream_step(FlowStep.WALLET_ADDRESS):
            sender, receiver = await asyncio.gather(
                client.get_wallet_address(self.sending_wallet_address_url),
                client.get_wallet_address(self.receiving_wallet_address_url),
            )
        return sender, receiver

    async def _prepare(
        self, client: OpenPaymentsClientProtocol, amount_major: Decimal
    ) -> PreparedPayment:
        """Steps 1-4: wallets, incoming payment and quote."""
        sender, receiver = await self._resolve_wallets(client)

        incoming_amount = Amount(
            value=to_minor_units(amount_major, receiver.asset_scale),
            asset_code=receiver.asset_code,
            asset_scale=receiver.asset_scale,
        )

        with upstream_step(FlowStep.INCOMING_PAYMENT_GRANT):
            incoming_grant = await client.request_grant(
                receiver.auth_server,
                [
                    {
                        "type": "incoming-payment",
                        "actions": ["read", "create", "complete"],
                    }
                ],
            )
        incoming_token = self._require_token(
            incoming_grant, FlowStep.INCOMING_PAYMENT_GRANT
        )

        with upstream_step(FlowStep.INCOMING_PAYMENT):
            incoming_payment = await client.create_incoming_payment(
                receiver.resource_server,
                incoming_token,
                wallet_address=receiver.id,
                incoming_amount=incoming_amount,
            )
        logger.info(
            "Created incoming payment %s for %s %s (scale %s)",
            incoming_payment.id,
            incoming_amount.value,
            incoming_amount.asset_code,
            incoming_amount.asset_scale,
        )

        with upstream_step(FlowStep.QUOTE_GRANT):
            quote_grant = await client.request_grant(
                sender.auth_server,
                [{"type": "quote", "actions": ["create", "read"]}],
            )
        quote_token = self._require_token(quote_grant, FlowStep.QUOTE_GRANT)

        with upstream_step(FlowStep.QUOTE):
            quote = await client.create_quote(
                sender.resource_server,
                quote_token,
                wallet_address=sender.id,
                receiver=incoming_payment.id,
                method=PAYMENT_METHOD,
            )
        logger.info(
            "Created quote %s debiting %s %s",
            quote.id,
            from_minor_units(quote.debit_amount.value, quote.debit_amount.asset_scale),
            quote.debit_amount.asset_code,
        )

        return PreparedPayment(
            sender=sender,
            receiver=receiver,
            incoming_payment=incoming_payment,
            quote=quote,
        )

    @staticmethod
    def _require_token(grant: Grant, step: FlowStep) -> str:
        if grant.access_token is None:
            raise UpstreamProtocolError(
                step, description="expected a non-interactive grant with an access token"
            )
        return grant.access_token.value

    @staticmethod
    def _session_from_grant(grant: Grant, quote: Quote) -> FlowSession:
        if grant.is_finalized:
            assert grant.access_token is not None
            return FlowSession(
                quote_id=quote.id,
                access_token=grant.access_token.value,
                continue_uri=grant.continuation.uri if grant.continuation else None,
                continue_access_token=(
                    grant.continuation.access_token.value
                    if grant.continuation
                    else None
                ),
            )
        if grant.continuation is None:
            raise UpstreamProtocolError(
                FlowStep.OUTGOING_PAYMENT_GRANT,
                description="pending grant has no continuation",
            )
        return FlowSession(
            quote_id=quote.id,
            continue_uri=grant.continuation.uri,
            continue_access_token=grant.continuation.access_token.value,
        )

    async def start_payment(
        self, amount: AmountInput, consent_mode: ConsentMode
    ) -> PaymentStartedDTO:
        """Run steps 1-5 and suspend the flow until its grant is finalized."""
        # Validate before opening a client so bad input never reaches the network
        amount_major = parse_amount(amount)

        flow_token: Optional[str] = None
        nonce: Optional[str] = None
        async with self.client_factory() as client:
            prepared = await self._prepare(client, amount_major)
            sender, quote = prepared.sender, prepared.quote

            interact: dict[str, Any] = {"start": ["redirect"]}
            if consent_mode is ConsentMode.REDIRECT:
                flow_token = self.token_factory()
                nonce = str(uuid4())
                interact["finish"] = {
                    "method": "redirect",
                    "uri": self.callback_uri(flow_token),
                    "nonce": nonce,
                }

            with upstream_step(FlowStep.OUTGOING_PAYMENT_GRANT):
                grant = await client.request_grant(
                    sender.auth_server,
                    [
                        {
                            "type": "outgoing-payment",
                            "actions": ["read", "create"],
                            "limits": {
                                "debitAmount": quote.debit_amount.model_dump(
                                    by_alias=True
                                )
                            },
                            "identifier": sender.id,
                        }
                    ],
                    interact=interact,
                )

        session = self._session_from_grant(grant, quote).model_copy(
            update={"nonce": nonce}
        )
        redirect_url = grant.interaction.redirect if grant.interaction else None

        if consent_mode is ConsentMode.REDIRECT:
            assert flow_token is not None
            if redirect_url is None:
                if not grant.is_finalized:
                    raise UpstreamProtocolError(
                        FlowStep.OUTGOING_PAYMENT_GRANT,
                        description="interactive grant returned no redirect",
                    )
                # Already authorized: send the user straight to our callback
                redirect_url = self.callback_uri(flow_token)
            await self.sessions.put(flow_token, session)
        else:
            await self.pending_grants.put(prepared.incoming_payment.id, session)

        logger.info(
            "Outgoing payment grant for quote %s is %s (%s)",
            quote.id,
            "finalized" if grant.is_finalized else "pending consent",
            consent_mode.value,
        )
        return PaymentStartedDTO(
            incoming_payment_id=prepared.incoming_payment.id,
            quote_id=quote.id,
            debit_amount=quote.debit_amount,
            redirect_url=redirect_url,
        )

    async def start_link_payment(self, amount: AmountInput) -> LinkPaymentStartedDTO:
        """Start a pay-by-link flow and return where to send the user."""
        started = await self.start_payment(amount, ConsentMode.REDIRECT)
        assert started.redirect_url is not None
        return LinkPaymentStartedDTO(redirect_url=started.redirect_url)

    async def create_quote(self, amount: AmountInput) -> QuoteResponseDTO:
        """Start a quote-then-pay flow; ``execute_payment`` finishes it."""
        started = await self.start_payment(amount, ConsentMode.DEFERRED)
        return QuoteResponseDTO(
            incoming_payment_id=started.incoming_payment_id,
            quote_id=started.quote_id,
            debit_amount=started.debit_amount,
            interact_redirect=started.redirect_url,
        )

    async def execute_payment(
        self, incoming_payment_id: str, interact_ref: Optional[str] = None
    ) -> OutgoingPaymentDTO:
        return await self.complete(
            self.pending_grants,
            incoming_payment_id,
            interact_ref=interact_ref,
            missing_error=NoPendingGrantError(incoming_payment_id),
        )

    async def _finalize_grant(
        self,
        client: OpenPaymentsClientProtocol,
        session: FlowSession,
        interact_ref: Optional[str],
    ) -> str:
        if session.access_token is not None:
            return session.access_token
        if not session.continue_uri or not session.continue_access_token:
            raise UpstreamProtocolError(
                FlowStep.GRANT_CONTINUATION,
                description="stored session has no continuation handle",
            )
        with upstream_step(FlowStep.GRANT_CONTINUATION):
            grant = await client.continue_grant(
                session.continue_uri,
                session.continue_access_token,
                interact_ref=interact_ref,
            )
        if not grant.is_finalized:
            raise ConsentIncompleteError()
        assert grant.access_token is not None
        return grant.access_token.value

    async def complete(
        self,
        repository: FlowSessionRepository,
        key: str,
        *,
        interact_ref: Optional[str],
        missing_error: PaymentFlowError,
    ) -> OutgoingPaymentDTO:
        """Step 6: finalize the stored grant and create the outgoing payment.

        The session is claimed atomically, so concurrent completions of one key
        yield a single payment. It is put back if the grant could not be
        finalized, letting the user retry; once finalized it stays deleted.
        """
        session = await repository.take(key)
        if session is None:
            raise missing_error

        async with self.client_factory() as client:
            try:
                with upstream_step(FlowStep.WALLET_ADDRESS):
                    sender = await client.get_wallet_address(
                        self.sending_wallet_address_url
                    )
                access_token = await self._finalize_grant(client, session, interact_ref)
            except BaseException:
                # Includes cancellation; the grant is still unfinalized
                await repository.put(key, session)
                raise

            with upstream_step(FlowStep.OUTGOING_PAYMENT):
                payment = await client.create_outgoing_payment(
                    sender.resource_server,
                    access_token,
                    wallet_address=sender.id,
                    quote_id=session.quote_id,
                )

        logger.info("Created outgoing payment %s for quote %s", payment.id, session.quote_id)
        return OutgoingPaymentDTO.from_entity(payment)
