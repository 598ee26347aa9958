"""TLS handshake with ALPN protocol selection."""

from __future__ import annotations

import ssl

from ..errors import TLSError
from ..logger import BoundLogger, create_logger
from ..types import NegotiatedProtocol, TargetURL
from .base import Connection

ALPN_PROTOCOLS = ("h2", "http/1.1")


def create_ssl_context() -> ssl.SSLContext:
    context = ssl.create_default_context()
    context.set_alpn_protocols(list(ALPN_PROTOCOLS))
    return context


async def negotiate(
    connection: Connection,
    target: TargetURL,
    *,
    ssl_context: ssl.SSLContext | None = None,
    logger: BoundLogger | None = None,
) -> NegotiatedProtocol:
    """Upgrade ``connection`` to TLS in place and report the negotiated protocol.

    A caller-supplied context keeps its verification settings, but its ALPN
    list is overwritten in place with ``ALPN_PROTOCOLS``. Pass a context that
    is not shared with clients expecting a different ALPN offer.
    """
    log = (logger or create_logger()).child("tls")
    if ssl_context is None:
        context = create_ssl_context()
    else:
        context = ssl_context
        context.set_alpn_protocols(list(ALPN_PROTOCOLS))

    log.debug("TLS handshake with %s (alpn=%s)", target.host, ",".join(ALPN_PROTOCOLS))
    try:
        await connection.writer.start_tls(context, server_hostname=target.host)
    except (ssl.SSLError, ssl.CertificateError, OSError, EOFError) as exc:
        connection.abort()
        raise TLSError(f"TLS handshake failed: {exc}", context={"host": target.host}) from exc
    except BaseException:
        connection.abort()
        raise

    ssl_object = connection.writer.get_extra_info("ssl_object")
    selected = ssl_object.selected_alpn_protocol() if ssl_object is not None else None
    protocol = NegotiatedProtocol.from_alpn(selected)
    log.debug("ALPN selected %r, using %s", selected, protocol.value)
    return protocol


__all__ = ["ALPN_PROTOCOLS", "create_ssl_context", "negotiate"]
