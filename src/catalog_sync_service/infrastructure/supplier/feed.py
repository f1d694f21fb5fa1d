"""Paginated supplier catalog fetcher."""

from typing import Any

import httpx
import structlog

from catalog_sync_service.config import Settings, get_settings
from shared.constants import SUPPLIER_CATEGORY_IDS

logger = structlog.get_logger()


class SupplierFeedFetcher:
    """Pages through the supplier product API and returns every record.

    The first request carries the include/filter/category payload; each later
    request carries only the continuation token from the previous page. Any
    HTTP or auth failure propagates to the caller.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.settings = settings or get_settings()
        self._http = http_client

    def initial_payload(self) -> dict[str, Any]:
        return {
            "Include": ["All"],
            "Filter": ["Finished"],
            "CategoryIds": list(SUPPLIER_CATEGORY_IDS),
        }

    async def fetch_all(self) -> list[dict[str, Any]]:
        """Fetch every page of the feed."""
        if self._http is not None:
            return await self._fetch_pages(self._http)
        async with httpx.AsyncClient(timeout=self.settings.supplier_api_timeout) as client:
            return await self._fetch_pages(client)

    async def _fetch_pages(self, client: httpx.AsyncClient) -> list[dict[str, Any]]:
        auth = httpx.BasicAuth(self.settings.supplier_user, self.settings.supplier_password)
        products: list[dict[str, Any]] = []
        payload: dict[str, Any] = self.initial_payload()
        pages = 0

        while True:
            response = await client.post(
                self.settings.supplier_api_url,
                json=payload,
                auth=auth,
                headers={"Content-Type": "application/json"},
            )
            response.raise_for_status()
            body = response.json()

            products.extend(body.get("Products") or [])
            pages += 1

            next_page = body.get("NextPage")
            if not next_page:
                break
            payload = {"NextPage": next_page}

        logger.info("Supplier feed fetched", pages=pages, products=len(products))
        return products
