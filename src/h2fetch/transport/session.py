"""Session establishment: socket, TLS and protocol-specific wrapper."""

from __future__ import annotations

import ssl

from ..logger import BoundLogger, create_logger
from ..types import NegotiatedProtocol, ProxyConfig, TargetURL
from .base import Connection, Session
from .connect import acquire_connection
from .http1 import HTTP1Request
from .http2 import HTTP2Session
from .tls import negotiate


def wrap_session(
    connection: Connection,
    protocol: NegotiatedProtocol,
    *,
    logger: BoundLogger | None = None,
) -> Session:
    if protocol is NegotiatedProtocol.H2:
        return HTTP2Session(connection, logger=logger)
    return HTTP1Request(connection, logger=logger)


async def open_session(
    target: TargetURL,
    proxy: ProxyConfig | None = None,
    *,
    ssl_context: ssl.SSLContext | None = None,
    logger: BoundLogger | None = None,
) -> Session:
    log = logger or create_logger()
    connection = await acquire_connection(target, proxy, logger=log)
    protocol = await negotiate(connection, target, ssl_context=ssl_context, logger=log)
    return wrap_session(connection, protocol, logger=log)


__all__ = ["open_session", "wrap_session"]
