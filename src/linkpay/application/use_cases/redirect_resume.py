"""Use case for the wallet's consent callback."""

from __future__ import annotations

import logging
from typing import Optional

from ...domain.errors import SessionNotFoundError
from ...domain.session_repository import FlowSessionRepository
from ..dtos import OutgoingPaymentDTO
from .payment_flow import PaymentOrchestrator

logger = logging.getLogger(__name__)


class RedirectResumeHandler:
    """Resumes pay-by-link flows when the wallet redirects the user back."""

    def __init__(
        self, orchestrator: PaymentOrchestrator, sessions: FlowSessionRepository
    ):
        self.orchestrator = orchestrator
        self.sessions = sessions

    async def resume(
        self, flow_token: Optional[str], interact_ref: Optional[str]
    ) -> OutgoingPaymentDTO:
        """
        Finalize the grant stored under ``flow_token`` and pay the quote.

        Unknown, consumed and expired tokens all raise SessionNotFoundError.
        """
        if not flow_token:
            raise SessionNotFoundError()
        payment = await self.orchestrator.complete(
            self.sessions,
            flow_token,
            interact_ref=interact_ref,
            missing_error=SessionNotFoundError(),
        )
        logger.info("Resumed redirect flow into outgoing payment %s", payment.id)
        return payment
