# src/scanning/base_scanner.py — v1
"""Abstract page scanner interface.

A scanner performs exactly one scan per call and never retries on its
own; the page processor owns the retry policy. Failures are returned as
ScanFailure values rather than raised.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from a11ybatch.core.models import Viewport
from a11ybatch.scanning.models import ScanOutcome

VIEWPORT_SIZES: dict[str, tuple[int, int]] = {
    "mobile": (375, 812),
    "desktop": (1920, 1080),
}


class BasePageScanner(ABC):
    """Unified interface for page scan collaborators."""

    @abstractmethod
    async def scan(self, url: str, viewport: Viewport) -> ScanOutcome:
        """Scan one URL with the given viewport."""

    async def aclose(self) -> None:  # noqa: B027
        """Release network resources."""
