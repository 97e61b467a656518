"""Logging setup and per-operation log context."""

from hostplane.logging.setup import (
    OperationContextFilter,
    StructuredFormatter,
    TextFormatter,
    configure_logging,
    operation_context,
)

__all__ = [
    "OperationContextFilter",
    "StructuredFormatter",
    "TextFormatter",
    "configure_logging",
    "operation_context",
]
