"""Payment flow domain entities.

Resource server documents (wallet addresses, incoming payments, quotes,
outgoing payments) use camelCase on the wire; grant documents follow GNAP's
snake_case. Models accept both their field names and wire aliases.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ResourceModel(BaseModel):
    """Base for camelCase resource server documents."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class WalletAddress(ResourceModel):
    """Resolved metadata of a sending or receiving wallet."""

    id: str
    public_name: Optional[str] = None
    asset_code: str
    asset_scale: int = Field(2, ge=0)
    auth_server: str
    resource_server: str


class Amount(ResourceModel):
    """Monetary amount expressed as an integer string of minor units."""

    value: str = Field(..., pattern=r"^[0-9]+$")
    asset_code: str
    asset_scale: int = Field(..., ge=0)


class IncomingPayment(ResourceModel):
    id: str
    wallet_address: str
    incoming_amount: Optional[Amount] = None
    completed: bool = False


class Quote(ResourceModel):
    """Priced, immutable commitment to pay an incoming payment."""

    id: str
    wallet_address: str
    receiver: str
    debit_amount: Amount
    receive_amount: Optional[Amount] = None
    method: str = "ilp"


class OutgoingPayment(ResourceModel):
    id: str
    wallet_address: str
    quote_id: Optional[str] = None
    debit_amount: Optional[Amount] = None
    failed: bool = False


class AccessToken(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: str
    manage: Optional[str] = None
    expires_in: Optional[int] = None


class GrantContinuation(BaseModel):
    model_config = ConfigDict(frozen=True)

    uri: str
    access_token: AccessToken
    wait: Optional[int] = None


class GrantInteraction(BaseModel):
    model_config = ConfigDict(frozen=True)

    redirect: str
    finish: Optional[str] = None


class Grant(BaseModel):
    """Grant returned by an authorization server.

    A grant is finalized once it carries an access token. A pending grant
    only carries ``continuation`` and, when user consent is needed,
    ``interaction``.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    access_token: Optional[AccessToken] = None
    continuation: Optional[GrantContinuation] = Field(None, alias="continue")
    interaction: Optional[GrantInteraction] = Field(None, alias="interact")

    @property
    def is_finalized(self) -> bool:
        return self.access_token is not None


class FlowSession(BaseModel):
    """Suspended state of a payment flow waiting for its spend grant.

    A session holds the continuation handle of a pending grant, or the access
    token of a grant that was finalized without user interaction.
    """

    quote_id: str
    continue_uri: Optional[str] = None
    continue_access_token: Optional[str] = None
    access_token: Optional[str] = None
    nonce: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def is_expired(
        self, ttl_seconds: Optional[float], *, now: Optional[datetime] = None
    ) -> bool:
        if ttl_seconds is None:
            return False
        moment = now or datetime.now(timezone.utc)
        return moment - self.created_at >= timedelta(seconds=ttl_seconds)
