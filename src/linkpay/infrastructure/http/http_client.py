from __future__ import annotations

from typing import Any, Mapping, Optional, Type
from types import TracebackType

import httpx


class HttpError(Exception):
    """Base error for HTTP client failures."""


class HttpRequestError(HttpError):
    """Raised when the request could not be sent or no response arrived."""

    def __init__(self, message: str, *, url: str) -> None:
        super().__init__(message)
        self.url = url


class HttpResponseError(HttpError):
    """Raised for non-successful HTTP responses."""

    def __init__(self, response: httpx.Response) -> None:
        super().__init__(
            f"{response.request.method} {response.request.url} "
            f"returned {response.status_code}"
        )
        self.response = response


class AsyncHttpClient:
    """Thin asynchronous HTTP client wrapper around httpx.AsyncClient.

    - Works with absolute URLs; Open Payments servers live on many hosts.
    - Applies a default timeout.
    - Raises HttpResponseError / HttpRequestError instead of httpx errors.
    """

    def __init__(
        self,
        timeout: float = 10.0,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def request(
        self,
        method: str,
        url: str,
        *,
        content: Optional[bytes] = None,
        headers: Optional[Mapping[str, str]] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        try:
            resp = await self._client.request(
                method, url, content=content, headers=headers, **kwargs
            )
        except httpx.RequestError as e:
            raise HttpRequestError(f"{method} {url} failed: {e}", url=url) from e
        if resp.is_error:
            raise HttpResponseError(resp)
        return resp

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "AsyncHttpClient":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_value: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        await self.aclose()
