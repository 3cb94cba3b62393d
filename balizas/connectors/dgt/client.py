"""Balizas V16 — DGT Feed Client.

Fetches the public DATEX2 SituationPublication (unauthenticated XML) or the
DGT 3.0 REST endpoint (bearer token). Handles retry and rate limiting.
"""

import asyncio
from typing import Any, Dict, Optional

import httpx

from balizas.config import settings
from balizas.connectors.dgt.datex2 import parse_datex2_xml
from balizas.core.exceptions import FeedConfigurationError, FeedSourceError
from balizas.core.logging import get_logger

logger = get_logger("dgt.client")

MAX_RETRIES = 3
RETRY_BASE_DELAY = 2  # seconds

XML_HEADERS = {"Accept": "application/xml, text/xml, */*"}


class DGTClient:
    """Async HTTP client for the DGT traffic feeds."""

    def __init__(
        self,
        datex2_url: str | None = None,
        api_url: str | None = None,
        api_token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_base_delay: float = RETRY_BASE_DELAY,
    ):
        self.datex2_url = datex2_url or settings.datex2_url
        self.api_url = api_url or settings.dgt_api_url
        self.api_token = api_token or settings.dgt_api_token
        self.timeout = timeout or settings.request_timeout
        self.retry_base_delay = retry_base_delay
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    # ── Core Request Method ──

    async def _request(
        self,
        url: str,
        source: str,
        headers: Dict[str, str] | None = None,
    ) -> httpx.Response:
        """GET with retry on 429 / 5xx / transport errors."""
        client = await self._get_client()

        for attempt in range(1, MAX_RETRIES + 1):
            try:
                resp = await client.get(url, headers=headers or {})

                # Rate limited
                if resp.status_code == 429 and attempt < MAX_RETRIES:
                    wait = self.retry_base_delay * (2 ** (attempt - 1))
                    logger.warning(
                        f"Rate limited (429). Retrying in {wait}s (attempt {attempt}/{MAX_RETRIES})",
                        extra={"source": source},
                    )
                    await asyncio.sleep(wait)
                    continue

                resp.raise_for_status()
                return resp

            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                if attempt < MAX_RETRIES and status >= 500:
                    wait = self.retry_base_delay * (2 ** (attempt - 1))
                    logger.warning(
                        f"Server error {status}. Retrying in {wait}s",
                        extra={"source": source},
                    )
                    await asyncio.sleep(wait)
                    continue

                raise FeedSourceError(
                    f"{source} feed error: {status} {e.response.reason_phrase}",
                    status_code=status,
                    source=source,
                ) from e

            except httpx.RequestError as e:
                if attempt < MAX_RETRIES:
                    wait = self.retry_base_delay * (2 ** (attempt - 1))
                    logger.warning(
                        f"Request error: {e}. Retrying in {wait}s", extra={"source": source}
                    )
                    await asyncio.sleep(wait)
                    continue
                raise FeedSourceError(
                    f"Connection failed after {MAX_RETRIES} retries: {e}", source=source
                ) from e

        raise FeedSourceError("Max retries exhausted", source=source)

    # ── DATEX2 ──

    async def fetch_datex2(self) -> Dict[str, Any]:
        """Fetch the DATEX2 XML feed and decode it into a dict tree."""
        logger.info("Fetching DATEX2 feed", extra={"source": "datex2"})
        resp = await self._request(self.datex2_url, "datex2", XML_HEADERS)
        return parse_datex2_xml(resp.content)

    # ── DGT 3.0 REST ──

    async def fetch_rest(self) -> Any:
        """Fetch the DGT 3.0 REST endpoint. Requires URL and bearer token."""
        if not self.api_url or not self.api_token:
            raise FeedConfigurationError(
                "DGT 3.0 not configured: DGT_API_URL or DGT_API_TOKEN missing",
                source="rest",
            )
        logger.info("Fetching DGT 3.0 REST feed", extra={"source": "rest"})
        resp = await self._request(
            self.api_url,
            "rest",
            {
                "Authorization": f"Bearer {self.api_token}",
                "Accept": "application/json",
            },
        )
        try:
            return resp.json()
        except ValueError as e:
            raise FeedSourceError(f"Invalid JSON from DGT 3.0: {e}", source="rest") from e
