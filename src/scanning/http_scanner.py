# src/scanning/http_scanner.py — v1
"""HTTP page scanner: delegates each scan to a remote scan service.

Request:  POST {endpoint} {"url", "viewport", "width", "height"}
Response: {"scanReference", "violationCount"?, "violations": [...]} on 2xx.

Transport and HTTP errors are mapped onto the failure reasons understood
by the retry classifier (TIMEOUT, NETWORK_ERROR, RATE_LIMITED, ...).
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from a11ybatch.core.models import Viewport, Violation
from a11ybatch.scanning.base_scanner import VIEWPORT_SIZES, BasePageScanner
from a11ybatch.scanning.models import ScanFailure, ScanOutcome, ScanSuccess

logger = logging.getLogger(__name__)

_STATUS_REASONS: dict[int, str] = {
    401: "ACCESS_DENIED",
    403: "ACCESS_DENIED",
    404: "PAGE_NOT_FOUND",
    410: "PAGE_NOT_FOUND",
    408: "TIMEOUT",
    422: "INVALID_CONTENT",
    429: "RATE_LIMITED",
    504: "TIMEOUT",
}


def reason_for_status(status_code: int) -> str:
    """Failure reason code for a non-2xx scan service response."""
    if status_code in _STATUS_REASONS:
        return _STATUS_REASONS[status_code]
    if status_code >= 500:
        return "BROWSER_SERVICE_ERROR"
    return "SCAN_REJECTED"


class HttpPageScanner(BasePageScanner):
    """Scanner backed by an HTTP scan service."""

    def __init__(
        self,
        endpoint: str,
        timeout_s: float = 55.0,
        api_key: str = "",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._endpoint = endpoint
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_s, headers=headers)

    async def scan(self, url: str, viewport: Viewport) -> ScanOutcome:
        width, height = VIEWPORT_SIZES[viewport]
        payload = {"url": url, "viewport": viewport, "width": width, "height": height}
        try:
            response = await self._client.post(self._endpoint, json=payload)
        except httpx.TimeoutException as e:
            return ScanFailure(reason=f"TIMEOUT: {type(e).__name__}")
        except httpx.TransportError as e:
            return ScanFailure(reason=f"NETWORK_ERROR: {e}")

        if response.status_code >= 400:
            detail = _error_detail(response)
            reason = reason_for_status(response.status_code)
            logger.debug("Scan service returned %d for %s", response.status_code, url)
            return ScanFailure(reason=f"{reason}: HTTP {response.status_code} {detail}".strip())

        try:
            body = response.json()
        except ValueError:
            return ScanFailure(reason="INVALID_CONTENT: scan service returned non-JSON body")
        if not isinstance(body, dict):
            return ScanFailure(reason="INVALID_CONTENT: unexpected scan response shape")

        if body.get("success") is False:
            return ScanFailure(reason=str(body.get("reason") or body.get("error") or "Unknown error"))

        try:
            violations = [Violation(**_violation_fields(v)) for v in body.get("violations") or []]
            return ScanSuccess(
                violation_count=body.get("violationCount", -1),
                scan_reference=body.get("scanReference") or body.get("scanSessionId"),
                violations=violations,
            )
        except (ValidationError, TypeError) as e:
            return ScanFailure(reason=f"INVALID_CONTENT: {e.__class__.__name__}")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def _violation_fields(raw: dict[str, Any]) -> dict[str, Any]:
    return {
        "rule_id": raw.get("ruleId") or raw.get("id") or raw.get("rule_id"),
        "impact": raw.get("impact"),
        "description": raw.get("description") or raw.get("help") or "",
        "selector": raw.get("selector"),
        "html": raw.get("html"),
    }


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("error") or body.get("message") or "")[:200]
    return ""
