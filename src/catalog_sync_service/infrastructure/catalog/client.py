"""Async GraphQL client for the remote catalog.

``execute`` never raises: every outcome is folded into a ``CatalogResponse``
envelope and callers branch on ``success``. Throttled requests (HTTP 429 or a
``THROTTLED`` GraphQL error) are retried with exponential backoff; all other
failures are returned immediately.
"""

import re
from dataclasses import dataclass
from typing import Any

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from catalog_sync_service.config import Settings, get_settings

logger = structlog.get_logger()

_OPERATION_NAME = re.compile(r"^\s*(?:query|mutation)\s+(\w+)", re.MULTILINE)


def operation_name(document: str) -> str:
    """Return the operation name declared in a GraphQL document."""
    match = _OPERATION_NAME.search(document)
    return match.group(1) if match else "anonymous"


@dataclass
class CatalogResponse:
    """Normalized result of a remote call."""

    success: bool
    data: dict[str, Any] | None = None
    error: Any = None


class _Throttled(Exception):
    def __init__(self, detail: Any):
        super().__init__("remote catalog throttled the request")
        self.detail = detail


def _is_throttled(errors: Any) -> bool:
    if not isinstance(errors, list):
        return False
    return any(
        isinstance(err, dict) and (err.get("extensions") or {}).get("code") == "THROTTLED"
        for err in errors
    )


class RemoteCatalogClient:
    """Thin wrapper around the remote catalog GraphQL endpoint."""

    def __init__(
        self,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.settings = settings or get_settings()
        self._http = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.settings.catalog_api_timeout)
        )

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-Shopify-Access-Token": self.settings.catalog_access_token,
        }

    async def execute(
        self, document: str, variables: dict[str, Any] | None = None
    ) -> CatalogResponse:
        """Run a named query or mutation and return the envelope."""
        name = operation_name(document)
        try:
            payload = await self._post_with_backoff(document, variables or {})
        except _Throttled as exc:
            logger.warning("Remote catalog throttle retries exhausted", operation=name)
            return CatalogResponse(success=False, error=exc.detail)
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Remote catalog request failed", operation=name, error=str(exc))
            return CatalogResponse(success=False, error=str(exc) or type(exc).__name__)

        errors = payload.get("errors")
        if errors:
            logger.warning("Remote catalog returned errors", operation=name, errors=errors)
            return CatalogResponse(success=False, data=payload.get("data"), error=errors)

        return CatalogResponse(success=True, data=payload.get("data") or {})

    async def upload(
        self,
        url: str,
        parameters: list[dict[str, str]],
        filename: str,
        content: bytes,
        content_type: str,
    ) -> CatalogResponse:
        """POST a file as multipart form data to a staged upload target."""
        form = {param["name"]: param["value"] for param in parameters}
        try:
            response = await self._http.post(
                url,
                data=form,
                files={"file": (filename, content, content_type)},
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Staged upload failed", filename=filename, error=str(exc))
            return CatalogResponse(success=False, error=str(exc) or type(exc).__name__)
        return CatalogResponse(success=True, data={})

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _post_with_backoff(
        self, document: str, variables: dict[str, Any]
    ) -> dict[str, Any]:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(1, self.settings.catalog_throttle_max_attempts)),
            wait=wait_exponential(
                min=self.settings.catalog_throttle_backoff_min,
                max=self.settings.catalog_throttle_backoff_max,
            ),
            retry=retry_if_exception_type(_Throttled),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._post(document, variables)
        raise RuntimeError("unreachable")

    async def _post(self, document: str, variables: dict[str, Any]) -> dict[str, Any]:
        response = await self._http.post(
            self.settings.catalog_graphql_url,
            json={"query": document, "variables": variables},
            headers=self._headers,
        )
        if response.status_code == 429:
            raise _Throttled({"status": 429})
        response.raise_for_status()

        payload = response.json()
        if _is_throttled(payload.get("errors")):
            raise _Throttled(payload["errors"])
        return payload
