"""Custom exceptions raised by the h2fetch transport."""

from __future__ import annotations

from typing import Any


class H2FetchError(Exception):
    """Base error for all request failures."""

    def __init__(self, message: str, *, context: Any | None = None) -> None:
        super().__init__(message)
        self.context = context


class InvalidURLError(H2FetchError):
    """Raised when the target URL cannot be used."""


class ConfigError(H2FetchError):
    """Raised when the proxy configuration is incomplete. No I/O is attempted."""


class AuthFormatError(H2FetchError):
    """Raised when proxy credentials are not in ``username:password`` form."""


class ProxyConnectError(H2FetchError):
    """Raised when the proxy cannot be reached or the CONNECT exchange breaks."""


class ProxyAuthError(H2FetchError):
    """Raised when the proxy answers CONNECT with 407."""


class TunnelError(H2FetchError):
    """Raised when the proxy refuses the tunnel with any other non-200 status."""

    def __init__(self, message: str, *, status_code: int | None = None, context: Any | None = None) -> None:
        super().__init__(message, context=context)
        self.status_code = status_code


class TLSError(H2FetchError):
    """Raised when the TLS handshake fails."""


class RequestError(H2FetchError):
    """Raised for transport failures while sending or receiving."""


class DecompressionError(H2FetchError):
    """Raised when the response body cannot be decoded."""


class JSONParseError(H2FetchError):
    """Raised when the response body is not valid JSON."""


class TimeoutError(H2FetchError):
    """Raised when a request is cancelled or runs past its deadline."""


class ProxyTimeoutError(ProxyConnectError, TimeoutError):
    """Raised when the CONNECT round-trip exceeds the proxy timeout."""


__all__ = [
    "AuthFormatError",
    "ConfigError",
    "DecompressionError",
    "H2FetchError",
    "InvalidURLError",
    "JSONParseError",
    "ProxyAuthError",
    "ProxyConnectError",
    "ProxyTimeoutError",
    "RequestError",
    "TLSError",
    "TimeoutError",
    "TunnelError",
]
