"""Socket acquisition: direct TCP or an HTTP/1 CONNECT tunnel through a proxy."""

from __future__ import annotations

import asyncio

import h11

from ..errors import ProxyAuthError, ProxyConnectError, ProxyTimeoutError, RequestError, TunnelError
from ..logger import BoundLogger, create_logger
from ..types import ProxyConfig, TargetURL
from .base import Connection

MAX_CONNECT_RESPONSE_HEAD = 64 * 1024


async def acquire_connection(
    target: TargetURL,
    proxy: ProxyConfig | None = None,
    *,
    logger: BoundLogger | None = None,
) -> Connection:
    """Open an unencrypted connection to the next hop for ``target``."""
    log = (logger or create_logger()).child("connect")
    if proxy is None:
        return await _connect_direct(target, log)
    return await _connect_via_proxy(target, proxy, log)


async def _connect_direct(target: TargetURL, log: BoundLogger) -> Connection:
    log.info("Connecting to %s:%s", target.host, target.port)
    try:
        reader, writer = await asyncio.open_connection(target.host, target.port)
    except OSError as exc:
        raise RequestError(f"Request failed: cannot connect to {target.connect_target}: {exc}") from exc
    return Connection(reader, writer, remote_address=_peer_host(writer))


async def _connect_via_proxy(target: TargetURL, proxy: ProxyConfig, log: BoundLogger) -> Connection:
    # Both checks must fail before any socket is opened.
    proxy.validate()
    authorization = proxy.authorization_header()

    headers = [("Host", target.connect_target)]
    if authorization:
        headers.append(("Proxy-Authorization", authorization))
        headers.append(("Proxy-Connection", "Keep-Alive"))

    log.info("Opening CONNECT tunnel to %s via proxy %s", target.connect_target, proxy.address)
    writer: asyncio.StreamWriter | None = None
    try:
        async with asyncio.timeout(proxy.connect_timeout):
            reader, writer = await asyncio.open_connection(proxy.host, proxy.port)
            status = await _exchange_connect(reader, writer, target, headers, log)
    except asyncio.TimeoutError as exc:
        _abort(writer)
        raise ProxyTimeoutError(
            f"Proxy connection failed to {proxy.address}: CONNECT timed out after {proxy.connect_timeout * 1000:.0f}ms",
            context={"proxy": proxy.address},
        ) from exc
    except (OSError, OverflowError, ValueError, EOFError, asyncio.LimitOverrunError, h11.ProtocolError) as exc:
        _abort(writer)
        raise ProxyConnectError(
            f"Proxy connection failed to {proxy.address}: {exc}",
            context={"proxy": proxy.address},
        ) from exc
    except BaseException:
        _abort(writer)
        raise

    log.debug("CONNECT %s answered with status %s", target.connect_target, status)
    if status != 200:
        _abort(writer)
        if status == 407:
            raise ProxyAuthError("Proxy authentication failed", context={"proxy": proxy.address})
        raise TunnelError(
            f"Tunnel establishment failed with status code {status}",
            status_code=status,
            context={"proxy": proxy.address},
        )

    return Connection(reader, writer, remote_address=_peer_host(writer))


async def _exchange_connect(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    target: TargetURL,
    headers: list[tuple[str, str]],
    log: BoundLogger,
) -> int:
    conn = h11.Connection(our_role=h11.CLIENT, max_incomplete_event_size=MAX_CONNECT_RESPONSE_HEAD)
    payload = conn.send(h11.Request(method="CONNECT", target=target.connect_target, headers=headers))
    payload += conn.send(h11.EndOfMessage())
    log.trace("CONNECT request bytes=%d", len(payload))
    writer.write(payload)
    await writer.drain()

    while True:
        # Read exactly one response head so no tunneled bytes are consumed.
        head = await reader.readuntil(b"\r\n\r\n")
        conn.receive_data(head)
        event = conn.next_event()
        if isinstance(event, h11.InformationalResponse):
            continue
        if isinstance(event, h11.Response):
            return event.status_code
        raise ProxyConnectError(f"Unexpected CONNECT response event {type(event).__name__}")


def _peer_host(writer: asyncio.StreamWriter) -> str | None:
    peer = writer.get_extra_info("peername")
    if isinstance(peer, (tuple, list)) and peer:
        return str(peer[0])
    return None


def _abort(writer: asyncio.StreamWriter | None) -> None:
    if writer is None:
        return
    transport = writer.transport
    if transport is not None and not transport.is_closing():
        transport.abort()


__all__ = ["acquire_connection"]
