"""Response assembly: header normalisation and memoized body decoding."""

from __future__ import annotations

import gzip
import json
import zlib
from typing import Any, Callable, Mapping

import brotli
import httpx

from .errors import DecompressionError, JSONParseError
from .types import NegotiatedProtocol, RawResponse

Decoder = Callable[[bytes], bytes]


def _inflate(data: bytes) -> bytes:
    # zlib-wrapped deflate is what the encoding means; some servers send raw deflate.
    try:
        return zlib.decompress(data)
    except zlib.error:
        return zlib.decompress(data, -zlib.MAX_WBITS)


DEFAULT_DECODERS: Mapping[str, Decoder] = {
    "gzip": gzip.decompress,
    "deflate": _inflate,
    "br": brotli.decompress,
}


class Response:
    """Fetch-style view over a fully received :class:`RawResponse`.

    ``headers`` only carries conventional headers. HTTP/2 pseudo-headers
    such as ``:status`` stay reachable through ``pseudo_headers`` under
    their literal names.
    """

    def __init__(self, raw: RawResponse, *, decoders: Mapping[str, Decoder] | None = None) -> None:
        self._raw = raw
        self._decoders = DEFAULT_DECODERS if decoders is None else decoders
        self.status = raw.status
        self.headers = httpx.Headers(list(raw.headers))
        self.pseudo_headers = dict(raw.pseudo_headers)
        self.remote_address = raw.remote_address
        self.protocol: NegotiatedProtocol | None = raw.protocol
        self._body: bytes | None = None
        self._text: str | None = None

    def __repr__(self) -> str:
        return f"<Response [{self.status if self.status is not None else 'unknown'}]>"

    @property
    def ok(self) -> bool:
        return self.status is not None and 200 <= self.status < 300

    @property
    def raw_body(self) -> bytes:
        return self._raw.raw_body

    @property
    def content_encoding(self) -> str | None:
        return self.headers.get("content-encoding")

    def header_map(self) -> dict[str, str | list[str]]:
        return self._raw.header_map()

    def array_buffer(self) -> bytes:
        return self._decompressed()

    def text(self) -> str:
        if self._text is None:
            self._text = self._decompressed().decode("utf-8", errors="replace")
        return self._text

    def json(self) -> Any:
        text = self.text()
        try:
            return json.loads(text)
        except ValueError as exc:
            raise JSONParseError(f"JSON parsing failed: {exc}") from exc

    def _decompressed(self) -> bytes:
        if self._body is not None:
            return self._body
        raw_body = self._raw.raw_body
        decoder = self._decoders.get(self.content_encoding or "")
        if decoder is None:
            self._body = raw_body
            return self._body
        try:
            self._body = decoder(raw_body)
        except Exception as exc:
            raise DecompressionError(
                f"Decompression failed: {exc}",
                context={"content-encoding": self.content_encoding},
            ) from exc
        return self._body


__all__ = ["DEFAULT_DECODERS", "Decoder", "Response"]
