"""Transport layers exposed to users."""

from .base import Connection, OutgoingRequest, ResponseHead, Session
from .connect import acquire_connection
from .http1 import HTTP1Request
from .http2 import HTTP2Session
from .session import open_session, wrap_session
from .tls import ALPN_PROTOCOLS, create_ssl_context, negotiate

__all__ = [
    "ALPN_PROTOCOLS",
    "Connection",
    "HTTP1Request",
    "HTTP2Session",
    "OutgoingRequest",
    "ResponseHead",
    "Session",
    "acquire_connection",
    "create_ssl_context",
    "negotiate",
    "open_session",
    "wrap_session",
]
