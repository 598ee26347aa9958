"""Fetch a URL over HTTP/2, optionally through the proxy named in HTTPS_PROXY."""

from __future__ import annotations

import asyncio
import os
import sys

from h2fetch import H2FetchClient, H2FetchError, ProxyConfig

TARGET_URL = os.getenv("H2FETCH_DEMO_URL", "https://example.com/")
TIMEOUT_MS = int(os.getenv("H2FETCH_DEMO_TIMEOUT_MS", "10000"))


def log_section(title: str) -> None:
    print("\n" + "=" * 80)
    print(title)
    print("=" * 80)


async def main(url: str) -> int:
    proxy = ProxyConfig.from_env()
    client = H2FetchClient(proxy=proxy, default_headers={"User-Agent": "h2fetch-demo"}, timeout=TIMEOUT_MS)

    log_section(f"GET {url} ({'via ' + proxy.address if proxy else 'direct'})")
    try:
        response = await client.fetch(url, headers={"Accept-Encoding": "gzip, deflate, br"}, debug=True)
    except H2FetchError as exc:
        print(f"  request failed: {exc}")
        return 1

    print(f"  status:   {response.status}")
    print(f"  protocol: {response.protocol.value if response.protocol else 'unknown'}")
    print(f"  remote:   {response.remote_address}")
    for name, value in response.headers.items():
        print(f"  {name}: {value}")
    log_section("Body (first 500 characters)")
    print(response.text()[:500])
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else TARGET_URL)))
