"""Shared domain utilities.

This package is domain-accessible and should not depend on application code.
"""

from .open_payments_client_protocol import (
    OpenPaymentsClientFactory,
    OpenPaymentsClientProtocol,
)

__all__ = ["OpenPaymentsClientFactory", "OpenPaymentsClientProtocol"]
