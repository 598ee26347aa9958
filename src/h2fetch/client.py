"""Fetch-style entry points layered over the request executor."""

from __future__ import annotations

import asyncio
import ssl
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Union

import httpx

from .errors import H2FetchError, RequestError
from .executor import request
from .logger import LogLevel, create_logger
from .response import Response
from .types import ProxyConfig

HeaderInput = Union[Mapping[str, str], Iterable[tuple[str, str]], httpx.Headers, None]


def normalize_headers(headers: HeaderInput) -> dict[str, str]:
    if not headers:
        return {}
    return dict(httpx.Headers(headers).items())


def coerce_body(body: Any) -> bytes | str | None:
    if body is None or body == b"" or body == "":
        return None
    if isinstance(body, (bytes, bytearray, memoryview)):
        return bytes(body)
    if isinstance(body, str):
        return body
    return str(body)


async def fetch(
    url: str,
    *,
    method: str = "GET",
    headers: HeaderInput = None,
    body: Any = None,
    proxy: ProxyConfig | None = None,
    timeout: int | None = None,
    signal: asyncio.Event | None = None,
    debug: bool = False,
    ssl_context: ssl.SSLContext | None = None,
    logger: Any | None = None,
) -> Response:
    """Fetch ``url`` with fetch-like options; ``timeout`` is in milliseconds."""
    try:
        return await request(
            url,
            method or "GET",
            normalize_headers(headers),
            coerce_body(body),
            proxy=proxy,
            signal=signal,
            timeout_ms=timeout,
            debug=debug,
            ssl_context=ssl_context,
            logger=logger,
        )
    except H2FetchError:
        raise
    except Exception as exc:
        raise RequestError(f"HTTP/2 request failed: {exc}") from exc


@dataclass
class ClientOptions:
    proxy: ProxyConfig | None = None
    default_headers: Mapping[str, str] | None = None
    timeout: int | None = None
    ssl_context: ssl.SSLContext | None = None
    logger: object | None = None
    log_level: LogLevel = "info"


class H2FetchClient:
    """Holds per-application defaults; every call still opens its own session."""

    def __init__(
        self,
        *,
        proxy: ProxyConfig | None = None,
        default_headers: Mapping[str, str] | None = None,
        timeout: int | None = None,
        ssl_context: ssl.SSLContext | None = None,
        logger: object | None = None,
        log_level: LogLevel = "info",
    ) -> None:
        options = ClientOptions(
            proxy=proxy,
            default_headers=default_headers,
            timeout=timeout,
            ssl_context=ssl_context,
            logger=logger,
            log_level=log_level,
        )
        if options.proxy is not None:
            options.proxy.validate()
        self.options = options
        self._logger = create_logger(logger=options.logger, level=options.log_level)
        self._default_headers = normalize_headers(options.default_headers)

    async def fetch(
        self,
        url: str,
        *,
        method: str = "GET",
        headers: HeaderInput = None,
        body: Any = None,
        timeout: int | None = None,
        signal: asyncio.Event | None = None,
        debug: bool = False,
    ) -> Response:
        merged = dict(self._default_headers)
        merged.update(normalize_headers(headers))
        return await fetch(
            url,
            method=method,
            headers=merged,
            body=body,
            proxy=self.options.proxy,
            timeout=timeout if timeout is not None else self.options.timeout,
            signal=signal,
            debug=debug,
            ssl_context=self.options.ssl_context,
            logger=self._logger,
        )


__all__ = ["ClientOptions", "H2FetchClient", "coerce_body", "fetch", "normalize_headers"]
