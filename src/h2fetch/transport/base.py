"""Common transport abstractions."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import AsyncIterator, Mapping, Protocol, runtime_checkable

from ..types import NegotiatedProtocol, TargetURL


@dataclass
class Connection:
    """A connected stream pair plus the peer address observed while connecting."""

    reader: asyncio.StreamReader
    writer: asyncio.StreamWriter
    remote_address: str | None = None

    def abort(self) -> None:
        transport = self.writer.transport
        if transport is not None and not transport.is_closing():
            transport.abort()


@dataclass
class OutgoingRequest:
    method: str
    target: TargetURL
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes | None = None


@dataclass
class ResponseHead:
    status: int | None
    headers: list[tuple[str, str]]


@runtime_checkable
class Session(Protocol):
    """One request, one close. Implemented by HTTP2Session and HTTP1Request."""

    @property
    def kind(self) -> NegotiatedProtocol: ...

    @property
    def closed(self) -> bool: ...

    @property
    def remote_address(self) -> str | None: ...

    async def send(self, request: OutgoingRequest) -> None: ...

    async def receive_head(self) -> ResponseHead: ...

    def stream_body(self) -> AsyncIterator[bytes]: ...

    async def close(self) -> None: ...


def encode_body(body: bytes | str | None) -> bytes | None:
    if body is None:
        return None
    if isinstance(body, str):
        return body.encode("utf-8")
    return bytes(body)


__all__ = ["Connection", "OutgoingRequest", "ResponseHead", "Session", "encode_body"]
