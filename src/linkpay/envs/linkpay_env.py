from __future__ import annotations

import os
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, field_validator
from cryptography.hazmat.primitives import serialization


class Settings(BaseModel):
    """Typed application settings built from environment variables."""

    base_url: str = "http://localhost:5500"

    api_host: str = "0.0.0.0"
    api_port: int = 5500
    api_debug: bool = False
    api_workers: int = 1
    api_cors_origins: list[str] = ["*"]

    app_name: str = "LinkPay"
    app_version: str = "1.0.0"

    sending_wallet_address_url: str
    sending_key_id: str
    sending_private_key_pem: str
    receiving_wallet_address_url: str

    store_backend: Literal["memory", "redis"] = "memory"
    database_url: str = "redis://localhost:6379/0"
    session_ttl_seconds: Optional[int] = 900

    http_timeout: float = 10.0
    verify_wallets_on_startup: bool = True

    @field_validator("sending_private_key_pem")
    @classmethod
    def validate_sending_private_key_pem(cls, v: str) -> str:
        if not v:
            raise ValueError("Sending wallet private key cannot be empty")
        try:
            serialization.load_pem_private_key(
                v.encode(),
                password=None,
            )
        except Exception as e:
            raise ValueError(f"Invalid sending wallet private key PEM: {e}") from e
        return v

    @field_validator("base_url")
    @classmethod
    def strip_base_url(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("session_ttl_seconds")
    @classmethod
    def validate_session_ttl(cls, v: Optional[int]) -> Optional[int]:
        # 0 disables expiry
        if v is not None and v <= 0:
            return None
        return v


def _read_private_key_pem() -> str:
    pem = os.environ.get("LINKPAY_SENDING_PRIVATE_KEY_PEM")
    if pem:
        return pem
    path = os.environ.get("LINKPAY_SENDING_PRIVATE_KEY_PATH")
    if path:
        return Path(path).read_text(encoding="utf-8")
    return ""


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() == "true"


def get_settings() -> Settings:
    """Return typed settings instance sourced from env vars."""
    api_port = int(os.environ.get("LINKPAY_API_PORT", "5500"))
    return Settings(
        base_url=os.environ.get("LINKPAY_BASE_URL", f"http://localhost:{api_port}"),
        api_host=os.environ.get("LINKPAY_API_HOST", "0.0.0.0"),
        api_port=api_port,
        api_debug=_env_bool("LINKPAY_API_DEBUG", "false"),
        api_workers=int(os.environ.get("LINKPAY_API_WORKERS", "1")),
        api_cors_origins=os.environ.get("LINKPAY_API_CORS_ORIGINS", "*").split(","),
        app_name=os.environ.get("LINKPAY_APP_NAME", "LinkPay"),
        app_version=os.environ.get("LINKPAY_APP_VERSION", "1.0.0"),
        sending_wallet_address_url=os.environ.get(
            "LINKPAY_SENDING_WALLET_ADDRESS_URL", ""
        ),
        sending_key_id=os.environ.get("LINKPAY_SENDING_KEY_ID", ""),
        sending_private_key_pem=_read_private_key_pem(),
        receiving_wallet_address_url=os.environ.get(
            "LINKPAY_RECEIVING_WALLET_ADDRESS_URL", ""
        ),
        store_backend=os.environ.get("LINKPAY_STORE_BACKEND", "memory"),
        database_url=os.environ.get("LINKPAY_DATABASE_URL", "redis://localhost:6379/0"),
        session_ttl_seconds=int(os.environ.get("LINKPAY_SESSION_TTL_SECONDS", "900")),
        http_timeout=float(os.environ.get("LINKPAY_HTTP_TIMEOUT", "10")),
        verify_wallets_on_startup=_env_bool(
            "LINKPAY_VERIFY_WALLETS_ON_STARTUP", "true"
        ),
    )
