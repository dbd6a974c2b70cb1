"""
HTTP helpers.

This module centralizes the HTTP client logic used by ingestion clients.

Design goals:
- Small surface area (POST JSON).
- Deterministic defaults (timeout + User-Agent).
- Raise on non-2xx so callers can decide how to fail (the notification gate fails closed).
"""

from __future__ import annotations

from typing import Any

import httpx


DEFAULT_USER_AGENT = "credify/0.1.0 (+https://local)"


async def post_json(
    url: str,
    *,
    json: Any,
    headers: dict[str, str] | None = None,
    timeout_seconds: float = 10,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Any:
    """POST `json` and return the decoded JSON response.

    `transport` lets tests plug in `httpx.MockTransport`.

    Raises:
        httpx.HTTPError: On transport errors or non-2xx status codes.
        ValueError: If the response body is not valid JSON.
    """
    request_headers = {"User-Agent": DEFAULT_USER_AGENT}
    if headers:
        request_headers.update(headers)

    async with httpx.AsyncClient(timeout=timeout_seconds, transport=transport) as client:
        resp = await client.post(url, json=json, headers=request_headers)
        resp.raise_for_status()
        return resp.json()
