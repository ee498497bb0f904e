"""Minimal JSON-over-HTTP helper shared by the local providers."""

from __future__ import annotations

import json
from typing import Any, Mapping
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen


def post_json(
    url: str,
    payload: Mapping[str, Any],
    *,
    label: str,
    timeout_s: float,
    headers: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    body = json.dumps(payload).encode("utf-8")
    request_headers = {"Content-Type": "application/json"}
    if headers:
        request_headers.update(headers)
    req = Request(url, data=body, headers=request_headers, method="POST")
    try:
        with urlopen(req, timeout=timeout_s) as response:
            raw = response.read().decode("utf-8")
    except HTTPError as exc:
        detail = exc.read().decode("utf-8", errors="replace") if exc.fp else str(exc)
        raise RuntimeError(f"{label} returned {exc.code}: {detail}") from exc
    except URLError as exc:
        raise RuntimeError(f"{label} API error: {exc}") from exc
    try:
        payload_json = json.loads(raw)
    except ValueError as exc:
        raise RuntimeError(f"failed to decode {label} response: {exc}") from exc
    if not isinstance(payload_json, dict):
        raise RuntimeError(f"unexpected {label} response: {raw[:200]}")
    return payload_json
