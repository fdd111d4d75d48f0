from __future__ import annotations

import logging

import httpx

from failcat.data_models import Vin
from failcat.errors import DocumentFetchFailed

logger = logging.getLogger(__name__)

_BROWSER_HEADERS = {
    "Cache-Control": "no-cache",
    "Upgrade-Insecure-Requests": "1",
    "User-Agent": (
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/90.0.4430.93 Safari/537.36"
    ),
    "Accept": (
        "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,"
        "image/apng,*/*;q=0.8,application/signed-exchange;v=b3;q=0.9"
    ),
    "Sec-GPC": "1",
    "Sec-Fetch-Site": "none",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-User": "?1",
    "Sec-Fetch-Dest": "document",
    "Accept-Language": "en-US,en;q=0.9",
    "Origin": "https://www.kia.com",
    "Referer": "https://www.kia.com",
    "DNT": "1",
}


class StickerClient:
    """Fetches window-sticker PDFs from the manufacturer sticker service.

    The body is returned untouched, including the plain-text payload the
    service answers with once its quota is spent.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = dict(_BROWSER_HEADERS)
        if self.api_key:
            headers["kiaws-api-key"] = self.api_key
        return headers

    async def fetch(self, vin: Vin) -> bytes:
        url = f"{self.base_url}/{vin}"
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds,
                headers=self._headers(),
                transport=self._transport,
            ) as client:
                resp = await client.get(url)
                resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning("Sticker lookup for %s returned %s", vin, exc.response.status_code)
            raise DocumentFetchFailed(vin, f"status {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            logger.warning("Sticker lookup for %s failed: %s", vin, exc)
            raise DocumentFetchFailed(vin, str(exc) or type(exc).__name__) from exc

        logger.debug("Fetched %d bytes for %s", len(resp.content), vin)
        return resp.content
