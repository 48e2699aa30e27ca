"""aiohttp sessions for embedding endpoints, verified against the certifi CA bundle."""

from __future__ import annotations

import ssl

import aiohttp
import certifi


def embedding_ssl(verify: bool = True) -> ssl.SSLContext | bool:
    """certifi-backed context, or False when ``embedding.verify_ssl`` is off (local proxies)."""
    if not verify:
        return False
    return ssl.create_default_context(cafile=certifi.where())


def embedding_session(timeout: float, verify_ssl: bool = True) -> aiohttp.ClientSession:
    """One short-lived session per request; the caller closes it with ``async with``."""
    return aiohttp.ClientSession(
        connector=aiohttp.TCPConnector(ssl=embedding_ssl(verify_ssl)),
        timeout=aiohttp.ClientTimeout(total=timeout),
    )
