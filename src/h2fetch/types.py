"""Shared data model: proxy settings, target URLs and raw responses."""

from __future__ import annotations

import base64
import enum
import os
from dataclasses import dataclass, field
from typing import Mapping

import httpx

from .errors import AuthFormatError, ConfigError, InvalidURLError

DEFAULT_HTTPS_PORT = 443
DEFAULT_CONNECT_TIMEOUT_MS = 30000
MAX_PORT = 65535

HeaderList = tuple[tuple[str, str], ...]


class NegotiatedProtocol(str, enum.Enum):
    H2 = "h2"
    HTTP1_1 = "http/1.1"

    @classmethod
    def from_alpn(cls, selected: str | None) -> "NegotiatedProtocol":
        # Anything other than h2, including no ALPN at all, degrades to HTTP/1.1.
        return cls.H2 if selected == "h2" else cls.HTTP1_1


@dataclass(frozen=True)
class TargetURL:
    scheme: str
    host: str
    port: int
    path: str

    @classmethod
    def parse(cls, url: str) -> "TargetURL":
        try:
            parsed = httpx.URL(url)
        except (httpx.InvalidURL, TypeError) as exc:
            raise InvalidURLError(f"Invalid URL {url!r}: {exc}") from exc

        if not parsed.is_absolute_url or not parsed.raw_host:
            raise InvalidURLError(f"Invalid URL {url!r}: expected an absolute https URL")
        if parsed.scheme != "https":
            raise InvalidURLError(f"Invalid URL {url!r}: unsupported scheme {parsed.scheme!r}")

        if parsed.port is not None and not 0 < parsed.port <= MAX_PORT:
            raise InvalidURLError(f"Invalid URL {url!r}: port {parsed.port} out of range")

        path = parsed.raw_path.decode("ascii") or "/"
        return cls(
            scheme=parsed.scheme,
            host=parsed.raw_host.decode("ascii"),
            port=DEFAULT_HTTPS_PORT if parsed.port is None else parsed.port,
            path=path,
        )

    @property
    def host_literal(self) -> str:
        return f"[{self.host}]" if ":" in self.host else self.host

    @property
    def authority(self) -> str:
        if self.port == DEFAULT_HTTPS_PORT:
            return self.host_literal
        return f"{self.host_literal}:{self.port}"

    @property
    def connect_target(self) -> str:
        """``host:port`` form used as the CONNECT request target."""
        return f"{self.host_literal}:{self.port}"


@dataclass(frozen=True)
class ProxyConfig:
    host: str
    port: int
    auth: str | None = None
    timeout: int | None = None

    def validate(self) -> None:
        if not self.host or not self.port or not 0 < self.port <= MAX_PORT:
            raise ConfigError(
                "Proxy configuration is incomplete",
                context={"host": self.host, "port": self.port},
            )

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def connect_timeout(self) -> float:
        """CONNECT round-trip bound in seconds; ``timeout`` itself is in milliseconds."""
        timeout_ms = self.timeout if self.timeout is not None else DEFAULT_CONNECT_TIMEOUT_MS
        return timeout_ms / 1000

    def credentials(self) -> tuple[str, str] | None:
        if self.auth is None:
            return None
        username, _, password = self.auth.partition(":")
        if not username or not password:
            raise AuthFormatError('Invalid proxy authentication format. Expected "username:password"')
        return username, password

    def authorization_header(self) -> str | None:
        credentials = self.credentials()
        if credentials is None:
            return None
        token = base64.b64encode(f"{credentials[0]}:{credentials[1]}".encode("utf-8")).decode("ascii")
        return f"Basic {token}"

    @classmethod
    def from_url(cls, proxy_url: str, *, timeout: int | None = None) -> "ProxyConfig":
        try:
            parsed = httpx.URL(proxy_url)
        except httpx.InvalidURL as exc:
            raise ConfigError(f"Proxy configuration is incomplete: {exc}") from exc
        port = parsed.port or (443 if parsed.scheme == "https" else 80)
        auth = None
        if parsed.username:
            auth = f"{parsed.username}:{parsed.password}"
        config = cls(host=parsed.host, port=port, auth=auth, timeout=timeout)
        config.validate()
        return config

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ProxyConfig | None":
        env = os.environ if environ is None else environ
        proxy_url = env.get("HTTPS_PROXY") or env.get("https_proxy")
        if not proxy_url:
            return None
        return cls.from_url(proxy_url)


@dataclass(frozen=True)
class RawResponse:
    status: int | None
    headers: HeaderList
    pseudo_headers: Mapping[str, str] = field(default_factory=dict)
    raw_body: bytes = b""
    remote_address: str | None = None
    protocol: NegotiatedProtocol | None = None

    def header_map(self) -> dict[str, str | list[str]]:
        """Group headers by name; repeated names collapse into a list."""
        grouped: dict[str, str | list[str]] = {}
        for name, value in self.headers:
            existing = grouped.get(name)
            if existing is None:
                grouped[name] = value
            elif isinstance(existing, list):
                existing.append(value)
            else:
                grouped[name] = [existing, value]
        return grouped


def split_pseudo_headers(headers: list[tuple[str, str]]) -> tuple[HeaderList, dict[str, str]]:
    conventional = tuple((name, value) for name, value in headers if not name.startswith(":"))
    pseudo = {name: value for name, value in headers if name.startswith(":")}
    return conventional, pseudo


def parse_status(value: str | int | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


__all__ = [
    "DEFAULT_CONNECT_TIMEOUT_MS",
    "DEFAULT_HTTPS_PORT",
    "HeaderList",
    "NegotiatedProtocol",
    "ProxyConfig",
    "RawResponse",
    "TargetURL",
    "parse_status",
    "split_pseudo_headers",
]
