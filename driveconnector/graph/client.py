"""
Resilient client for the upstream document repository (Microsoft Graph drives).

Every call attaches a bearer token from the credential cache and runs under a
single RetryPolicy: 429 and 5xx responses (and transport failures) are retried
with Retry-After or capped exponential backoff, everything else fails fast.
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import quote

import httpx

from driveconnector.core.config import GraphConfig
from driveconnector.graph.credentials import CredentialCache
from driveconnector.graph.errors import (
    UpstreamConnectionError,
    UpstreamRateLimited,
    UpstreamRequestError,
    UpstreamServerError,
)
from driveconnector.graph.models import DriveItem
from driveconnector.graph.retry import RetryPolicy

logger = logging.getLogger("DriveConnector.graph.client")


def _odata_quote(value: str) -> str:
    # OData string literals escape a single quote by doubling it.
    return quote(value.replace("'", "''"), safe="")


def _error_body(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text


class GraphClient:
    """
    Async client for one drive.

    Usage:
        async with httpx.AsyncClient(follow_redirects=True) as http:
            creds = CredentialCache(config.graph, http)
            graph = GraphClient(config.graph, creds, http)
            items = await graph.search_items("budget", top=10)
    """

    def __init__(
        self,
        config: GraphConfig,
        credentials: CredentialCache,
        http_client: httpx.AsyncClient,
        *,
        retry_policy: Optional[RetryPolicy] = None,
        sleep_fn: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._credentials = credentials
        self._client = http_client
        self._policy = retry_policy or RetryPolicy()
        self._sleep_fn = sleep_fn
        self.base_url = config.api_base_url.rstrip("/")

    @property
    def drive_id(self) -> str:
        return self._config.drive_id

    @property
    def folder_item_id(self) -> Optional[str]:
        return self._config.folder_item_id

    def _url(self, path: str) -> str:
        if path.startswith(self.base_url):
            return path
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{self.base_url}{path}"

    def content_url(self, item_id: str) -> str:
        return f"{self.base_url}/drives/{self.drive_id}/items/{quote(item_id, safe='')}/content"

    async def call(
        self,
        path: str,
        *,
        method: str = "GET",
        raw: bool = False,
        stream: bool = False,
        max_retries: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
        json_body: Optional[Any] = None,
    ) -> Any:
        """
        Issue one logical request against the repository API.

        Returns the decoded JSON body, or the ``httpx.Response`` itself when
        ``raw`` is set (used for content downloads). With ``stream`` the
        successful response is returned unread; the caller must close it.
        """
        policy = self._policy
        if max_retries is not None:
            policy = dataclasses.replace(policy, max_retries=max_retries)
        url = self._url(path)
        attempt = 0

        while True:
            token = await self._credentials.get_token()
            request_headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}
            if headers:
                request_headers.update(headers)

            logger.debug("[Graph] %s %s (attempt %d)", method, url, attempt + 1)
            try:
                request = self._client.build_request(
                    method,
                    url,
                    headers=request_headers,
                    json=json_body,
                    timeout=self._config.timeout_seconds,
                )
                resp = await self._client.send(request, stream=stream)
            except httpx.TransportError as exc:
                if policy.attempts_remain(attempt):
                    delay = policy.delay_seconds(attempt)
                    logger.warning(
                        "[Graph] %s %s failed (%s); retrying in %.2fs (attempt %d/%d)",
                        method, path, exc, delay, attempt + 1, policy.max_retries,
                    )
                    await self._sleep_fn(delay)
                    attempt += 1
                    continue
                raise UpstreamConnectionError(
                    f"Graph unreachable after {attempt + 1} attempt(s): {exc}", path=path
                ) from exc

            if resp.is_success:
                if raw or stream:
                    return resp
                if not resp.content:
                    return {}
                return resp.json()

            if stream:
                # Error bodies are small; read them so the connection is released.
                await resp.aread()

            if policy.should_retry(resp.status_code, attempt):
                delay = policy.delay_seconds(attempt, resp.headers)
                logger.warning(
                    "[Graph] %s %s returned %d; retrying in %.2fs (attempt %d/%d)",
                    method, path, resp.status_code, delay, attempt + 1, policy.max_retries,
                )
                await self._sleep_fn(delay)
                attempt += 1
                continue

            raise self._request_error(resp, path, policy)

    def _request_error(self, resp: httpx.Response, path: str, policy: RetryPolicy) -> UpstreamRequestError:
        body = _error_body(resp)
        rendered = body if isinstance(body, str) else json.dumps(body)
        detail = f"Graph {resp.status_code} {resp.reason_phrase}: {rendered}"
        error_cls = UpstreamRequestError
        if policy.retry_on(resp.status_code):
            error_cls = UpstreamRateLimited if resp.status_code == 429 else UpstreamServerError
        return error_cls(detail, status_code=resp.status_code, path=path, payload=body)

    # ------------------------------------------------------------------
    # Repository wrappers
    # ------------------------------------------------------------------

    def search_path(self, query: str, top: int) -> str:
        encoded = _odata_quote(query)
        if self.folder_item_id:
            base = f"/drives/{self.drive_id}/items/{quote(self.folder_item_id, safe='')}/search(q='{encoded}')"
        else:
            base = f"/drives/{self.drive_id}/root/search(q='{encoded}')"
        return f"{base}?$top={top}"

    async def search_items(self, query: str, top: int = 20) -> List[DriveItem]:
        """Search the configured scope, following nextLink pages until ``top`` items are collected."""
        path: Optional[str] = self.search_path(query, top)
        items: List[DriveItem] = []
        while path and len(items) < top:
            page = await self.call(path)
            for raw_item in page.get("value") or []:
                if isinstance(raw_item, dict):
                    items.append(DriveItem.from_graph(raw_item))
            next_link = page.get("@odata.nextLink")
            if next_link and not next_link.startswith(self.base_url):
                logger.warning("[Graph] Ignoring nextLink outside API base: %s", next_link)
                next_link = None
            path = next_link
        return items[:top]

    async def get_item(self, item_id: str) -> DriveItem:
        payload = await self.call(f"/drives/{self.drive_id}/items/{quote(item_id, safe='')}")
        return DriveItem.from_graph(payload)

    async def download(self, item_id: str) -> httpx.Response:
        return await self.call(
            f"/drives/{self.drive_id}/items/{quote(item_id, safe='')}/content",
            raw=True,
        )

    async def open_download(self, item_id: str) -> httpx.Response:
        """Start a streamed content download; close the returned response when done."""
        return await self.call(
            f"/drives/{self.drive_id}/items/{quote(item_id, safe='')}/content",
            stream=True,
        )
