"""Error taxonomy for deepseek-gateway.

Each error carries the HTTP status its entry point maps it to. Only the
message is ever surfaced to clients.
"""
from typing import Optional


class GatewayError(Exception):
    """Base class for errors that reach a handler boundary."""

    status_code = 400

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def __str__(self) -> str:
        return self.message


class ValidationError(GatewayError):
    """Inbound chat request has the wrong shape."""


class ConfigurationError(GatewayError):
    """Required configuration, such as the API key, is missing."""


class UpstreamError(GatewayError):
    """The completion API answered with a non-success status or was unreachable."""

    def __init__(self, message: str, upstream_status: Optional[int] = None):
        super().__init__(message)
        self.upstream_status = upstream_status


class StorageError(GatewayError):
    """The key-value store failed."""

    status_code = 500


class StorageNotConfiguredError(StorageError):
    status_code = 503

    def __init__(self, message: str = "KV storage not configured"):
        super().__init__(message)
