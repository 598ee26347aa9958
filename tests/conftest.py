import asyncio
import ssl
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable

import h11
import h2.config
import h2.connection
import h2.events
import pytest
import trustme

from h2fetch.transport.base import Connection

Handler = Callable[[asyncio.StreamReader, asyncio.StreamWriter], Awaitable[None]]


@asynccontextmanager
async def _serve(handler: Handler) -> AsyncIterator[int]:
    server = await asyncio.start_server(handler, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    try:
        yield port
    finally:
        server.close()
        await server.wait_closed()


async def _open(port: int) -> Connection:
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    return Connection(reader, writer, remote_address="127.0.0.1")


class H2Peer:
    """Server side of an HTTP/2 exchange; records what the client sent."""

    def __init__(self, status: int = 200, headers=None, body: bytes = b"", delay: float = 0.0) -> None:
        self.status = status
        self.headers = list(headers or [])
        self.body = body
        self.delay = delay
        self.request_headers: list[tuple[str, str]] = []
        self.request_body = b""

    async def __call__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        config = h2.config.H2Configuration(client_side=False, header_encoding="utf-8")
        conn = h2.connection.H2Connection(config=config)
        conn.initiate_connection()
        writer.write(conn.data_to_send())
        await writer.drain()
        try:
            while True:
                data = await reader.read(65535)
                if not data:
                    break
                for event in conn.receive_data(data):
                    if isinstance(event, h2.events.RequestReceived):
                        self.request_headers = list(event.headers)
                    elif isinstance(event, h2.events.DataReceived):
                        self.request_body += event.data
                        conn.acknowledge_received_data(event.flow_controlled_length, event.stream_id)
                    elif isinstance(event, h2.events.StreamEnded):
                        if self.delay:
                            await asyncio.sleep(self.delay)
                        response_headers = [(":status", str(self.status))] + self.headers
                        conn.send_headers(event.stream_id, response_headers, end_stream=not self.body)
                        if self.body:
                            conn.send_data(event.stream_id, self.body, end_stream=True)
                writer.write(conn.data_to_send())
                await writer.drain()
        except (ConnectionError, OSError):
            pass
        finally:
            writer.close()


class H11Peer:
    """Server side of an HTTP/1.1 exchange; records the request it received."""

    def __init__(self, status: int = 200, headers=None, body: bytes = b"") -> None:
        self.status = status
        self.headers = list(headers or [])
        self.body = body
        self.request: h11.Request | None = None
        self.request_body = b""

    async def __call__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        conn = h11.Connection(our_role=h11.SERVER)
        try:
            while True:
                event = conn.next_event()
                if event is h11.NEED_DATA:
                    conn.receive_data(await reader.read(65536))
                    continue
                if isinstance(event, h11.Request):
                    self.request = event
                elif isinstance(event, h11.Data):
                    self.request_body += event.data
                elif isinstance(event, h11.EndOfMessage):
                    break
                else:
                    return
            headers = list(self.headers)
            if self.status not in (204, 304):
                headers.append(("Content-Length", str(len(self.body))))
            writer.write(conn.send(h11.Response(status_code=self.status, headers=headers)))
            if self.body:
                writer.write(conn.send(h11.Data(data=self.body)))
            writer.write(conn.send(h11.EndOfMessage()))
            await writer.drain()
        except (h11.RemoteProtocolError, ConnectionError, OSError):
            pass
        finally:
            writer.close()


class FakeProxy:
    """Answers a CONNECT with a canned status line and records the request head."""

    def __init__(self, status_line: bytes | None = b"HTTP/1.1 200 Connection established") -> None:
        self.status_line = status_line
        self.request_heads: list[bytes] = []

    async def __call__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            head = await reader.readuntil(b"\r\n\r\n")
            self.request_heads.append(head)
            if self.status_line is not None:
                extra = b"" if self.status_line.split()[1] == b"200" else b"Content-Length: 0\r\n"
                writer.write(self.status_line + b"\r\n" + extra + b"\r\n")
                await writer.drain()
            # Hold the tunnel open until the client hangs up.
            await reader.read()
        except (asyncio.IncompleteReadError, ConnectionError, OSError):
            pass
        finally:
            writer.close()


@pytest.fixture
def serve():
    return _serve


@pytest.fixture
def open_loopback():
    return _open


class TunnelProxy:
    """Accepts a CONNECT, dials the upstream port and pipes bytes both ways."""

    def __init__(self, upstream_port: int) -> None:
        self.upstream_port = upstream_port
        self.request_heads: list[bytes] = []

    async def __call__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        upstream_writer: asyncio.StreamWriter | None = None
        try:
            self.request_heads.append(await reader.readuntil(b"\r\n\r\n"))
            upstream_reader, upstream_writer = await asyncio.open_connection("127.0.0.1", self.upstream_port)
            writer.write(b"HTTP/1.1 200 Connection established\r\n\r\n")
            await writer.drain()
            await asyncio.gather(_pipe(reader, upstream_writer), _pipe(upstream_reader, writer))
        except (asyncio.IncompleteReadError, ConnectionError, OSError):
            pass
        finally:
            if upstream_writer is not None:
                upstream_writer.close()
            writer.close()


async def _pipe(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
    try:
        while True:
            data = await reader.read(65536)
            if not data:
                break
            writer.write(data)
            await writer.drain()
    except (ConnectionError, OSError):
        pass
    finally:
        writer.close()


def alpn_dispatcher(h2_peer: H2Peer, h11_peer: H11Peer) -> Handler:
    """Route a TLS connection to the peer matching the ALPN protocol the server picked."""

    async def handler(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        ssl_object = writer.get_extra_info("ssl_object")
        if ssl_object.selected_alpn_protocol() == "h2":
            await h2_peer(reader, writer)
        else:
            await h11_peer(reader, writer)

    return handler


@asynccontextmanager
async def _serve_tls(handler: Handler, ssl_context: ssl.SSLContext) -> AsyncIterator[int]:
    server = await asyncio.start_server(handler, "127.0.0.1", 0, ssl=ssl_context)
    port = server.sockets[0].getsockname()[1]
    try:
        yield port
    finally:
        server.close()
        await server.wait_closed()


@pytest.fixture(scope="session")
def tls_ca() -> trustme.CA:
    return trustme.CA()


@pytest.fixture
def serve_tls():
    return _serve_tls
