"""Command line entry point: serve the payment flow API with uvicorn."""

from __future__ import annotations

import asyncio
import os
import sys
import uvicorn

from .envs.linkpay_env import Settings, get_settings


def _install_uvloop() -> None:
    # uvloop ships with uvicorn[standard] on Linux/macOS
    if sys.platform == "win32":
        return
    try:
        import uvloop
    except ImportError:
        return
    asyncio.set_event_loop_policy(uvloop.EventLoopPolicy())


def _reset_prometheus_multiproc_dir() -> None:
    """Empty PROMETHEUS_MULTIPROC_DIR so workers start from zeroed metrics."""
    prom_dir = os.environ.get("PROMETHEUS_MULTIPROC_DIR")
    if not prom_dir:
        return

    os.makedirs(prom_dir, exist_ok=True)
    for entry in os.scandir(prom_dir):
        if entry.is_file():
            os.remove(entry.path)


def worker_count(settings: Settings) -> int:
    """Number of uvicorn workers to run.

    In-memory sessions are private to one process, so only the Redis backend
    can serve a callback from a different worker than the one that started
    the flow. Reload mode is single-process as well.
    """
    if settings.api_debug or settings.store_backend == "memory":
        return 1
    return max(1, settings.api_workers)


def main() -> None:
    _install_uvloop()
    settings = get_settings()

    print(f"{settings.app_name} v{settings.app_version}")
    print(f"Sessions: {settings.store_backend} (ttl {settings.session_ttl_seconds}s)")
    print(f"Paying from {settings.sending_wallet_address_url}")
    print(f"Paying to {settings.receiving_wallet_address_url}")
    print(f"Try it: {settings.base_url}/linkpay?amount=10.00")

    _reset_prometheus_multiproc_dir()

    uvicorn.run(
        "linkpay.api.app:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_debug,
        workers=worker_count(settings),
        log_level="info",
    )


if __name__ == "__main__":
    main()
