"""HTTP message signatures for Open Payments requests.

Grant and resource requests are signed with the client's Ed25519 key. The
signature covers the request method and target URI, plus the authorization
and body headers when present.
"""

from __future__ import annotations

import base64
import hashlib
import time
from typing import Mapping, Optional

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

SIGNATURE_LABEL = "sig1"


def load_private_key_from_pem(private_key_pem: str) -> Ed25519PrivateKey:
    private_key = serialization.load_pem_private_key(
        private_key_pem.encode(),
        password=None,
    )
    if not isinstance(private_key, Ed25519PrivateKey):
        raise ValueError("Open Payments client keys must be Ed25519")
    return private_key


def content_digest(body: bytes) -> str:
    digest = base64.b64encode(hashlib.sha512(body).digest()).decode("ascii")
    return f"sha-512=:{digest}:"


def _covered_components(headers: Mapping[str, str]) -> list[str]:
    components = ["@method", "@target-uri"]
    if "authorization" in headers:
        components.append("authorization")
    if "content-digest" in headers:
        components.extend(["content-digest", "content-length", "content-type"])
    return components


def signature_base(
    method: str,
    url: str,
    headers: Mapping[str, str],
    signature_params: str,
) -> bytes:
    lines = []
    for component in _covered_components(headers):
        if component == "@method":
            value = method.upper()
        elif component == "@target-uri":
            value = url
        else:
            value = headers[component]
        lines.append(f'"{component}": {value}')
    lines.append(f'"@signature-params": {signature_params}')
    return "\n".join(lines).encode("utf-8")


def sign_request(
    method: str,
    url: str,
    *,
    private_key: Ed25519PrivateKey,
    key_id: str,
    body: Optional[bytes] = None,
    authorization: Optional[str] = None,
    created: Optional[int] = None,
) -> dict[str, str]:
    """Return the headers needed to send a signed request.

    The result includes the body headers and ``Authorization`` (when given)
    alongside ``Signature-Input`` and ``Signature``.
    """
    headers: dict[str, str] = {}
    if authorization is not None:
        headers["authorization"] = authorization
    if body is not None:
        headers["content-type"] = "application/json"
        headers["content-length"] = str(len(body))
        headers["content-digest"] = content_digest(body)

    components = " ".join(f'"{c}"' for c in _covered_components(headers))
    created_at = int(time.time()) if created is None else created
    signature_params = f'({components});keyid="{key_id}";created={created_at}'

    base = signature_base(method, url, headers, signature_params)
    signature = base64.b64encode(private_key.sign(base)).decode("ascii")

    headers["signature-input"] = f"{SIGNATURE_LABEL}={signature_params}"
    headers["signature"] = f"{SIGNATURE_LABEL}=:{signature}:"
    return headers
