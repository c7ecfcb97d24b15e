"""
Client-credentials token cache for the upstream repository.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

import httpx

from driveconnector.core.config import GraphConfig
from driveconnector.graph.errors import UpstreamAuthError, UpstreamConnectionError

logger = logging.getLogger("DriveConnector.graph.credentials")

DEFAULT_TOKEN_LIFETIME_SECONDS = 3600
REFRESH_MARGIN_SECONDS = 60


@dataclass(frozen=True)
class Credential:
    token: str
    expires_at: float

    def is_fresh(self, now: float, margin: float = REFRESH_MARGIN_SECONDS) -> bool:
        return self.expires_at - now > margin


class CredentialCache:
    """
    Holds one bearer token and refreshes it through a client-credentials exchange.

    Refresh is compare-and-refresh without a lock: two concurrent callers that
    both observe a stale token each perform one exchange and the later write
    wins. Both tokens are valid, so the duplicate exchange is harmless.
    """

    def __init__(
        self,
        config: GraphConfig,
        http_client: httpx.AsyncClient,
        *,
        now_fn: Callable[[], float] = time.time,
        refresh_margin_seconds: float = REFRESH_MARGIN_SECONDS,
    ) -> None:
        self._config = config
        self._client = http_client
        self._now_fn = now_fn
        self._margin = refresh_margin_seconds
        self._credential: Optional[Credential] = None
        self.exchange_count = 0

    @property
    def credential(self) -> Optional[Credential]:
        return self._credential

    async def get_token(self) -> str:
        cached = self._credential
        if cached is not None and cached.is_fresh(self._now_fn(), self._margin):
            return cached.token
        credential = await self._exchange()
        self._credential = credential
        return credential.token

    async def _exchange(self) -> Credential:
        form = {
            "client_id": self._config.client_id,
            "client_secret": self._config.client_secret,
            "scope": self._config.scope,
            "grant_type": "client_credentials",
        }
        self.exchange_count += 1
        try:
            resp = await self._client.post(
                self._config.token_url,
                data=form,
                headers={"content-type": "application/x-www-form-urlencoded"},
                timeout=self._config.timeout_seconds,
            )
        except httpx.HTTPError as exc:
            raise UpstreamConnectionError(
                f"Token endpoint unreachable: {exc}", path=self._config.token_url
            ) from exc

        if not resp.is_success:
            raise UpstreamAuthError(
                f"Token error: {resp.status_code} {resp.text}",
                status_code=resp.status_code,
                path=self._config.token_url,
                payload=resp.text,
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise UpstreamAuthError(
                "Token error: response was not JSON",
                status_code=resp.status_code,
                path=self._config.token_url,
                payload=resp.text,
            ) from exc

        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            raise UpstreamAuthError(
                "Token error: response did not include access_token",
                status_code=resp.status_code,
                path=self._config.token_url,
                payload=data,
            )

        lifetime = data.get("expires_in") or DEFAULT_TOKEN_LIFETIME_SECONDS
        try:
            lifetime = int(lifetime)
        except (TypeError, ValueError):
            lifetime = DEFAULT_TOKEN_LIFETIME_SECONDS
        expires_at = int(self._now_fn()) + lifetime
        logger.info("Obtained upstream access token (expires in %ds)", lifetime)
        return Credential(token=token, expires_at=expires_at)
