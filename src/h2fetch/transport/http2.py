"""HTTP/2 session built on the h2 state machine."""

from __future__ import annotations

import asyncio
from collections import deque
from typing import AsyncIterator

import h2.config
import h2.connection
import h2.events
import h2.exceptions
import h2.settings

from ..errors import RequestError
from ..logger import BoundLogger, create_logger
from ..types import NegotiatedProtocol, parse_status
from .base import Connection, OutgoingRequest, ResponseHead

READ_SIZE = 65535
CLOSE_TIMEOUT = 2.0

# Header names that are meaningful only on an HTTP/1 connection; h2 rejects them.
CONNECTION_SPECIFIC_HEADERS = frozenset(
    {"connection", "host", "keep-alive", "proxy-connection", "transfer-encoding", "upgrade"}
)


def build_h2_headers(request: OutgoingRequest) -> list[tuple[str, str]]:
    """Pseudo-headers first, then caller headers that cannot shadow them."""
    target = request.target
    headers = [
        (":method", request.method),
        (":path", target.path),
        (":scheme", target.scheme),
        (":authority", target.authority),
    ]
    seen = set()
    for name, value in request.headers.items():
        lowered = name.lower()
        if lowered.startswith(":") or lowered in CONNECTION_SPECIFIC_HEADERS:
            continue
        seen.add(lowered)
        headers.append((lowered, value))
    if request.body and "content-length" not in seen:
        headers.append(("content-length", str(len(request.body))))
    return headers


class HTTP2Session:
    kind = NegotiatedProtocol.H2

    def __init__(self, connection: Connection, *, logger: BoundLogger | None = None) -> None:
        self._connection = connection
        self._logger = (logger or create_logger()).child("http2")
        config = h2.config.H2Configuration(
            client_side=True,
            header_encoding="utf-8",
            validate_inbound_headers=False,
        )
        self._conn = h2.connection.H2Connection(config=config)
        self._stream_id: int | None = None
        self._head: ResponseHead | None = None
        self._chunks: deque[bytes] = deque()
        self._ended = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def remote_address(self) -> str | None:
        return self._connection.remote_address

    async def send(self, request: OutgoingRequest) -> None:
        if self._stream_id is not None:
            raise RequestError("Request failed: HTTP/2 session already carried a request")

        self._conn.initiate_connection()
        # Disable server push.
        self._conn.update_settings({h2.settings.SettingCodes.ENABLE_PUSH: 0})
        stream_id = self._conn.get_next_available_stream_id()
        self._stream_id = stream_id

        headers = build_h2_headers(request)
        self._logger.debug("HTTP/2 request headers (pseudo-headers): %s", headers)
        body = request.body or b""
        try:
            self._conn.send_headers(stream_id, headers, end_stream=not body)
        except h2.exceptions.ProtocolError as exc:
            raise RequestError(f"Request failed: {exc}") from exc
        await self._flush()
        if body:
            await self._send_body(stream_id, body)

    async def receive_head(self) -> ResponseHead:
        if self._stream_id is None:
            raise RequestError("Request failed: no request was sent on this session")
        while self._head is None:
            await self._receive()
        return self._head

    async def stream_body(self) -> AsyncIterator[bytes]:
        while True:
            while self._chunks:
                yield self._chunks.popleft()
            if self._ended:
                return
            await self._receive()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        writer = self._connection.writer
        try:
            self._conn.close_connection()
            writer.write(self._conn.data_to_send())
        except Exception:
            pass
        try:
            writer.close()
            await asyncio.wait_for(writer.wait_closed(), timeout=CLOSE_TIMEOUT)
        except Exception:
            pass
        self._logger.trace("HTTP/2 session closed")

    async def _send_body(self, stream_id: int, body: bytes) -> None:
        offset = 0
        while offset < len(body):
            window = min(
                self._conn.local_flow_control_window(stream_id),
                self._conn.max_outbound_frame_size,
            )
            if window <= 0:
                await self._receive()
                continue
            chunk = body[offset : offset + window]
            self._conn.send_data(stream_id, chunk)
            offset += len(chunk)
            await self._flush()
        self._conn.end_stream(stream_id)
        await self._flush()

    async def _flush(self) -> None:
        data = self._conn.data_to_send()
        if not data:
            return
        try:
            self._connection.writer.write(data)
            await self._connection.writer.drain()
        except OSError as exc:
            raise RequestError(f"Request failed: {exc}") from exc

    async def _receive(self) -> None:
        try:
            data = await self._connection.reader.read(READ_SIZE)
        except OSError as exc:
            raise RequestError(f"Request failed: {exc}") from exc
        if not data:
            raise RequestError("Request failed: connection closed before the response completed")
        try:
            events = self._conn.receive_data(data)
        except h2.exceptions.ProtocolError as exc:
            raise RequestError(f"Request failed: {exc}") from exc
        for event in events:
            self._handle_event(event)
        await self._flush()

    def _handle_event(self, event: h2.events.Event) -> None:
        if isinstance(event, h2.events.ResponseReceived):
            headers = [(str(name), str(value)) for name, value in event.headers]
            status = parse_status(dict(headers).get(":status"))
            self._head = ResponseHead(status=status, headers=headers)
            self._logger.trace("HTTP/2 response headers: %s", headers)
        elif isinstance(event, h2.events.DataReceived):
            if event.data:
                self._chunks.append(event.data)
            self._conn.acknowledge_received_data(event.flow_controlled_length, event.stream_id)
        elif isinstance(event, h2.events.StreamEnded):
            self._ended = True
        elif isinstance(event, h2.events.StreamReset):
            raise RequestError(f"Request failed: stream reset by peer (error code {event.error_code})")
        elif isinstance(event, h2.events.ConnectionTerminated) and not self._ended:
            raise RequestError(f"Request failed: connection terminated (error code {event.error_code})")


__all__ = ["HTTP2Session", "build_h2_headers"]
