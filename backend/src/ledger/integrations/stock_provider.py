"""Fulfillment provider client for stock-media metadata, order status and downloads."""
import math
from typing import Any

import httpx
import structlog

from ledger.config import settings
from ledger.exceptions import UnavailableError, UpstreamFailureError
from ledger.metrics import stock_provider_errors_total

logger = structlog.get_logger(__name__)

_PREVIEW_KEYS = ("preview", "thumb", "thumb_lg", "image", "cover")
_DOWNLOAD_KEYS = ("downloadLink", "download_url", "url", "link")


def _first_record(payload: Any) -> dict:
    if not payload:
        raise UpstreamFailureError("Stock metadata response was empty.")

    data = payload.get("data", payload) if isinstance(payload, dict) else payload
    if data is None:
        data = payload

    if isinstance(data, list):
        if not data:
            raise UpstreamFailureError("Stock file could not be located.", upstream_status=404)
        data = data[0]

    if not isinstance(data, dict):
        raise UpstreamFailureError("Unexpected stock metadata format.")
    return data


def _text(value: Any) -> str | None:
    return str(value) if value not in (None, "") else None


def _file_size(value: Any) -> int | str | None:
    # Providers send bytes as a number or a string, or a display size like "12.4 MB"
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if math.isfinite(value) and value >= 0 else None
    text = str(value).strip()
    if not text:
        return None
    return int(text) if text.isdigit() else text


def normalize_stock_info(payload: Any, site: str, stock_id: str, source_url: str | None = None) -> dict:
    """
    Reduce a provider metadata response to the fields stored on orders.

    The cost is rounded up to whole points.

    Args:
        payload: Decoded provider response (object, ``{"data": ...}`` or a list)
        site: Canonical site key, used when the provider omits it
        stock_id: Asset id, used when the provider omits it
        source_url: Link the user ordered from

    Returns:
        Dict with site, id, cost, preview and optional descriptive fields

    Raises:
        UpstreamFailureError: If the asset id or preview is missing or the cost is invalid
    """
    record = _first_record(payload)

    if not record.get("id"):
        raise UpstreamFailureError("Stock metadata did not include an asset identifier.")

    preview = next((record[key] for key in _PREVIEW_KEYS if record.get(key)), None)
    if not preview:
        raise UpstreamFailureError("Stock metadata did not include a preview image.")

    raw_cost = record.get("cost", record.get("price"))
    try:
        cost = float(raw_cost)
    except (TypeError, ValueError):
        cost = math.nan
    if math.isnan(cost) or cost < 0:
        raise UpstreamFailureError("The remote API returned an invalid price for this asset.")

    return {
        "site": str(record.get("site") or site),
        "id": str(record.get("id") or stock_id),
        "cost": math.ceil(cost),
        "preview": str(preview),
        "title": _text(record.get("title") or record.get("name")),
        "name": _text(record.get("name")),
        "author": _text(record.get("author")),
        "ext": _text(record.get("ext")),
        "size": _file_size(record.get("size")),
        "source_url": source_url,
    }


def extract_download_url(payload: Any) -> str | None:
    """Find the download link in the provider's (inconsistently shaped) response."""
    if not isinstance(payload, dict):
        return None
    for container in (payload, payload.get("data")):
        if isinstance(container, dict):
            for key in _DOWNLOAD_KEYS:
                if container.get(key):
                    return str(container[key])
    return None


class StockProvider:
    """
    HTTP client for the stock fulfillment provider.

    Errors from the provider are raised as UpstreamFailureError carrying the
    provider's status code when it is an HTTP error status.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the provider client.

        Args:
            api_key: Provider API key (defaults to settings.stock_api_key)
            base_url: Provider base URL (defaults to settings.stock_api_base_url)
            timeout: Request timeout in seconds
            transport: Optional httpx transport, used by tests
        """
        self.api_key = api_key if api_key is not None else settings.stock_api_key
        self.base_url = (base_url or settings.stock_api_base_url).rstrip("/")
        self.timeout = timeout or settings.stock_api_timeout_seconds
        self.transport = transport

    async def _get(self, operation: str, path: str, params: dict | None = None, headers: dict | None = None) -> Any:
        if not self.api_key:
            raise UnavailableError("Server configuration error: STOCK_API_KEY is missing.")

        request_headers = {"X-Api-Key": self.api_key, **(headers or {})}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(f"{self.base_url}{path}", params=params, headers=request_headers)
        except httpx.TimeoutException as exc:
            stock_provider_errors_total.labels(operation=operation).inc()
            logger.warning("stock_provider_timeout", operation=operation, path=path)
            raise UpstreamFailureError(f"Stock provider timed out after {self.timeout}s", upstream_status=504) from exc
        except httpx.HTTPError as exc:
            stock_provider_errors_total.labels(operation=operation).inc()
            logger.error("stock_provider_http_error", operation=operation, path=path, error=str(exc))
            raise UpstreamFailureError(f"Stock provider request failed: {exc}") from exc

        if response.is_error:
            stock_provider_errors_total.labels(operation=operation).inc()
            logger.warning("stock_provider_error", operation=operation, path=path, status_code=response.status_code)
            raise UpstreamFailureError(
                f"Stock provider returned {response.status_code}: {response.text or response.reason_phrase}",
                upstream_status=response.status_code,
            )

        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamFailureError("Stock provider returned a non-JSON response.") from exc

    async def get_stock_info(self, site: str, stock_id: str) -> Any:
        """Raw metadata for one asset."""
        return await self._get("stockinfo", f"/stockinfo/{site}/{stock_id}")

    async def get_metadata(self, site: str, stock_id: str, source_url: str | None = None) -> dict:
        """
        Normalized metadata for one asset.

        Returns:
            Dict as produced by ``normalize_stock_info``
        """
        payload = await self.get_stock_info(site, stock_id)
        return normalize_stock_info(payload, site, stock_id, source_url)

    async def get_order_status(self, task_id: str) -> Any:
        """Provider-side status of an order."""
        return await self._get("status", f"/order/{task_id}/status")

    async def get_download_link(self, task_id: str, actor: dict | None = None) -> Any:
        """
        Ask the provider to generate a download link.

        Args:
            task_id: Provider job id
            actor: Optional caller identity forwarded for the provider's audit trail

        Returns:
            Decoded provider response
        """
        headers = {}
        if actor:
            headers["X-Actor-Id"] = str(actor.get("sub", ""))
            headers["X-Actor-Email"] = actor.get("email") or ""
        return await self._get("download", f"/v2/order/{task_id}/download", headers=headers)
