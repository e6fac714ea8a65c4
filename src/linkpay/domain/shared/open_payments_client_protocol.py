"""Protocol interface for Open Payments client implementations.

This protocol defines the contract the payment orchestrator consumes. It
enables dependency injection and makes services testable by allowing fake
implementations.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, Optional, Protocol, Sequence, Type
from types import TracebackType

from ..entities import (
    Amount,
    Grant,
    IncomingPayment,
    OutgoingPayment,
    Quote,
    WalletAddress,
)


class OpenPaymentsClientProtocol(Protocol):
    """Protocol defining the interface for Open Payments clients.

    Every method raises ``OpenPaymentsClientError`` on transport or protocol
    failures.
    """

    # Wallet addresses

    async def get_wallet_address(self, url: str) -> WalletAddress:
        """Resolve a wallet address document.

        Args:
            url: Wallet address URL

        Returns:
            Wallet address with asset and server details
        """
        ...

    # Grants

    async def request_grant(
        self,
        auth_server: str,
        access: Sequence[Mapping[str, Any]],
        *,
        interact: Optional[Mapping[str, Any]] = None,
    ) -> Grant:
        """Request a grant from an authorization server.

        Args:
            auth_server: Authorization server URL of the wallet
            access: GNAP access rights requested for the token
            interact: Optional interaction request (start modes, finish)

        Returns:
            Either a finalized grant or a pending one with continuation
        """
        ...

    async def continue_grant(
        self,
        uri: str,
        access_token: str,
        *,
        interact_ref: Optional[str] = None,
    ) -> Grant:
        """Continue a pending grant.

        Args:
            uri: Continuation URI from the pending grant
            access_token: Continuation access token
            interact_ref: Interaction reference returned by the redirect

        Returns:
            The grant as seen by the authorization server; callers must
            check ``is_finalized``
        """
        ...

    # Resources

    async def create_incoming_payment(
        self,
        resource_server: str,
        access_token: str,
        *,
        wallet_address: str,
        incoming_amount: Amount,
    ) -> IncomingPayment: ...

    async def create_quote(
        self,
        resource_server: str,
        access_token: str,
        *,
        wallet_address: str,
        receiver: str,
        method: str = "ilp",
    ) -> Quote: ...

    async def create_outgoing_payment(
        self,
        resource_server: str,
        access_token: str,
        *,
        wallet_address: str,
        quote_id: str,
    ) -> OutgoingPayment: ...

    # Context Manager Support

    async def aclose(self) -> None: ...

    async def __aenter__(
        self: "OpenPaymentsClientProtocol",
    ) -> "OpenPaymentsClientProtocol": ...

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None: ...


# Factory type for creating Open Payments clients
OpenPaymentsClientFactory = Callable[[], OpenPaymentsClientProtocol]
