"""Asynchronous Open Payments client over httpx."""

from __future__ import annotations

import json
from typing import Any, Mapping, Optional, Sequence, Type
from types import TracebackType

import httpx
from pydantic import BaseModel, ValidationError

from ...domain.entities import (
    Amount,
    Grant,
    IncomingPayment,
    OutgoingPayment,
    Quote,
    WalletAddress,
)
from ...domain.errors import OpenPaymentsClientError
from ..http.http_client import AsyncHttpClient, HttpRequestError, HttpResponseError
from .signatures import load_private_key_from_pem, sign_request


def normalize_wallet_address_url(url: str) -> str:
    """Expand a ``$host/path`` payment pointer into its https URL."""
    url = url.strip()
    if url.startswith("$"):
        return f"https://{url[1:]}"
    return url


def _error_details(response: httpx.Response) -> tuple[Optional[str], Optional[str]]:
    try:
        body = response.json()
    except ValueError:
        return None, response.text or None
    if not isinstance(body, dict):
        return None, None
    error = body.get("error")
    if isinstance(error, dict):
        return error.get("code"), error.get("description")
    if isinstance(error, str):
        return error, body.get("error_description") or body.get("message")
    return None, body.get("message")


class OpenPaymentsClient:
    """Client acting on behalf of one wallet address (the sending wallet).

    Grant requests identify the client by ``wallet_address_url`` and every
    grant or resource request is signed with the wallet's registered key.
    """

    def __init__(
        self,
        wallet_address_url: str,
        private_key_pem: str,
        key_id: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.wallet_address_url = normalize_wallet_address_url(wallet_address_url)
        self.key_id = key_id
        self._private_key = load_private_key_from_pem(private_key_pem)
        self._http = AsyncHttpClient(timeout=timeout, transport=transport)

    async def _send(
        self,
        method: str,
        url: str,
        *,
        payload: Optional[Mapping[str, Any]] = None,
        access_token: Optional[str] = None,
        signed: bool = True,
    ) -> Any:
        url = str(httpx.URL(url))
        body = (
            json.dumps(payload, separators=(",", ":")).encode("utf-8")
            if payload is not None
            else None
        )
        authorization = f"GNAP {access_token}" if access_token else None
        if signed:
            headers = sign_request(
                method,
                url,
                private_key=self._private_key,
                key_id=self.key_id,
                body=body,
                authorization=authorization,
            )
        else:
            headers = {}
            if authorization:
                headers["authorization"] = authorization
        headers["accept"] = "application/json"

        try:
            resp = await self._http.request(method, url, content=body, headers=headers)
        except HttpResponseError as e:
            code, description = _error_details(e.response)
            raise OpenPaymentsClientError(
                str(e),
                status=e.response.status_code,
                code=code,
                description=description,
            ) from e
        except HttpRequestError as e:
            raise OpenPaymentsClientError(str(e), description=str(e)) from e

        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as e:
            raise OpenPaymentsClientError(
                f"{method} {url} returned a non-JSON body",
                status=resp.status_code,
                description="invalid JSON response",
            ) from e

    @staticmethod
    def _parse(model: Type[BaseModel], data: Any, url: str) -> Any:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise OpenPaymentsClientError(
                f"Unexpected {model.__name__} document from {url}",
                description=str(e),
            ) from e

    async def get_wallet_address(self, url: str) -> WalletAddress:
        url = normalize_wallet_address_url(url)
        data = await self._send("GET", url, signed=False)
        return self._parse(WalletAddress, data, url)

    async def request_grant(
        self,
        auth_server: str,
        access: Sequence[Mapping[str, Any]],
        *,
        interact: Optional[Mapping[str, Any]] = None,
    ) -> Grant:
        payload: dict[str, Any] = {
            "access_token": {"access": list(access)},
            "client": self.wallet_address_url,
        }
        if interact is not None:
            payload["interact"] = dict(interact)
        data = await self._send("POST", auth_server, payload=payload)
        return self._parse(Grant, data, auth_server)

    async def continue_grant(
        self,
        uri: str,
        access_token: str,
        *,
        interact_ref: Optional[str] = None,
    ) -> Grant:
        payload = {"interact_ref": interact_ref} if interact_ref else {}
        data = await self._send("POST", uri, payload=payload, access_token=access_token)
        return self._parse(Grant, data, uri)

    async def create_incoming_payment(
        self,
        resource_server: str,
        access_token: str,
        *,
        wallet_address: str,
        incoming_amount: Amount,
    ) -> IncomingPayment:
        url = f"{resource_server.rstrip('/')}/incoming-payments"
        payload = {
            "walletAddress": wallet_address,
            "incomingAmount": incoming_amount.model_dump(by_alias=True),
        }
        data = await self._send("POST", url, payload=payload, access_token=access_token)
        return self._parse(IncomingPayment, data, url)

    async def create_quote(
        self,
        resource_server: str,
        access_token: str,
        *,
        wallet_address: str,
        receiver: str,
        method: str = "ilp",
    ) -> Quote:
        url = f"{resource_server.rstrip('/')}/quotes"
        payload = {"walletAddress": wallet_address, "receiver": receiver, "method": method}
        data = await self._send("POST", url, payload=payload, access_token=access_token)
        return self._parse(Quote, data, url)

    async def create_outgoing_payment(
        self,
        resource_server: str,
        access_token: str,
        *,
        wallet_address: str,
        quote_id: str,
    ) -> OutgoingPayment:
        url = f"{resource_server.rstrip('/')}/outgoing-payments"
        payload = {"walletAddress": wallet_address, "quoteId": quote_id}
        data = await self._send("POST", url, payload=payload, access_token=access_token)
        return self._parse(OutgoingPayment, data, url)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "OpenPaymentsClient":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        await self.aclose()
