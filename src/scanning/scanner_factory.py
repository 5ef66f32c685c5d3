# src/scanning/scanner_factory.py — v1
"""Factory for page scanner instantiation."""

from __future__ import annotations

from a11ybatch.config.settings import Settings
from a11ybatch.scanning.base_scanner import BasePageScanner


def create_page_scanner(settings: Settings | None = None) -> BasePageScanner:
    """Instantiate the configured page scanner."""
    settings = settings or Settings()
    backend = settings.scanner_backend

    if backend == "http":
        from a11ybatch.scanning.http_scanner import HttpPageScanner
        return HttpPageScanner(
            endpoint=settings.scanner_endpoint,
            timeout_s=settings.scanner_timeout_s,
            api_key=settings.scanner_api_key,
        )

    raise ValueError(f"Unsupported scanner backend: {backend!r}")
