"""Public surface for the h2fetch transport."""

from .client import ClientOptions, H2FetchClient, fetch
from .errors import (
    AuthFormatError,
    ConfigError,
    DecompressionError,
    H2FetchError,
    InvalidURLError,
    JSONParseError,
    ProxyAuthError,
    ProxyConnectError,
    ProxyTimeoutError,
    RequestError,
    TimeoutError,
    TLSError,
    TunnelError,
)
from .executor import RequestExecutor, RequestState, request
from .response import Response
from .types import NegotiatedProtocol, ProxyConfig, RawResponse, TargetURL
from .version import __version__

__all__ = [
    "__version__",
    "AuthFormatError",
    "ClientOptions",
    "ConfigError",
    "DecompressionError",
    "H2FetchClient",
    "H2FetchError",
    "InvalidURLError",
    "JSONParseError",
    "NegotiatedProtocol",
    "ProxyAuthError",
    "ProxyConfig",
    "ProxyConnectError",
    "ProxyTimeoutError",
    "RawResponse",
    "RequestError",
    "RequestExecutor",
    "RequestState",
    "Response",
    "TLSError",
    "TargetURL",
    "TimeoutError",
    "TunnelError",
    "fetch",
    "request",
]
