"""HTTP/1.1 fallback: a single request bound to one TLS connection."""

from __future__ import annotations

from typing import AsyncIterator

import h11

from ..errors import RequestError
from ..logger import BoundLogger, create_logger
from ..types import NegotiatedProtocol
from .base import Connection, OutgoingRequest, ResponseHead

READ_SIZE = 65536


def build_h1_headers(request: OutgoingRequest) -> list[tuple[str, str]]:
    headers = [("Host", request.target.authority)]
    seen = set()
    for name, value in request.headers.items():
        lowered = name.lower()
        if lowered == "host" or lowered.startswith(":"):
            continue
        seen.add(lowered)
        headers.append((name, value))
    if request.body and "content-length" not in seen and "transfer-encoding" not in seen:
        headers.append(("Content-Length", str(len(request.body))))
    return headers


class HTTP1Request:
    kind = NegotiatedProtocol.HTTP1_1

    def __init__(self, connection: Connection, *, logger: BoundLogger | None = None) -> None:
        self._connection = connection
        self._logger = (logger or create_logger()).child("http1")
        self._h11 = h11.Connection(our_role=h11.CLIENT)
        self._sent = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def remote_address(self) -> str | None:
        return self._connection.remote_address

    async def send(self, request: OutgoingRequest) -> None:
        if self._sent:
            raise RequestError("Request failed: HTTP/1.1 channel already carried a request")
        self._sent = True

        headers = build_h1_headers(request)
        self._logger.debug("HTTP/1.1 request headers: %s", headers)
        try:
            payload = self._h11.send(h11.Request(method=request.method, target=request.target.path, headers=headers))
            if request.body:
                payload += self._h11.send(h11.Data(data=request.body))
            payload += self._h11.send(h11.EndOfMessage())
        except h11.LocalProtocolError as exc:
            raise RequestError(f"Request failed: {exc}") from exc

        try:
            self._connection.writer.write(payload)
            await self._connection.writer.drain()
        except OSError as exc:
            raise RequestError(f"Request failed: {exc}") from exc

    async def receive_head(self) -> ResponseHead:
        if not self._sent:
            raise RequestError("Request failed: no request was sent on this channel")
        while True:
            event = await self._next_event()
            if isinstance(event, h11.InformationalResponse):
                continue
            if isinstance(event, h11.Response):
                headers = [
                    (name.decode("latin-1"), value.decode("latin-1"))
                    for name, value in event.headers.raw_items()
                ]
                self._logger.trace("HTTP/1.1 response status=%s headers=%s", event.status_code, headers)
                return ResponseHead(status=event.status_code, headers=headers)
            raise RequestError(f"Request failed: unexpected {type(event).__name__} before response")

    async def stream_body(self) -> AsyncIterator[bytes]:
        while True:
            event = await self._next_event()
            if isinstance(event, h11.Data):
                yield bytes(event.data)
            elif isinstance(event, (h11.EndOfMessage, h11.ConnectionClosed)):
                return

    async def close(self) -> None:
        """Abort the underlying request; calling it again is a no-op."""
        if self._closed:
            return
        self._closed = True
        self._connection.abort()
        self._logger.trace("HTTP/1.1 request aborted")

    async def _next_event(self) -> h11.Event:
        while True:
            try:
                event = self._h11.next_event()
            except h11.RemoteProtocolError as exc:
                raise RequestError(f"Request failed: {exc}") from exc
            if event is not h11.NEED_DATA:
                return event
            try:
                data = await self._connection.reader.read(READ_SIZE)
            except OSError as exc:
                raise RequestError(f"Request failed: {exc}") from exc
            self._h11.receive_data(data)


__all__ = ["HTTP1Request", "build_h1_headers"]
