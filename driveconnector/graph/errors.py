"""
Upstream repository exceptions.
"""

from __future__ import annotations

from typing import Any, Optional


class UpstreamError(RuntimeError):
    """Base class for failures talking to the document repository."""

    def __init__(
        self,
        detail: str,
        *,
        status_code: Optional[int] = None,
        path: Optional[str] = None,
        payload: Optional[Any] = None,
    ) -> None:
        self.detail = detail
        self.status_code = status_code
        self.path = path
        self.payload = payload
        super().__init__(detail)


class UpstreamAuthError(UpstreamError):
    """Raised when the client-credentials token exchange is rejected."""


class UpstreamConnectionError(UpstreamError):
    """Raised when the repository stays unreachable after every attempt."""


class UpstreamRequestError(UpstreamError):
    """Raised when the repository answers a resource call with a non-2xx status."""


class UpstreamRateLimited(UpstreamRequestError):
    """Raised when 429 responses outlast the retry ceiling."""


class UpstreamServerError(UpstreamRequestError):
    """Raised when 5xx responses outlast the retry ceiling."""
