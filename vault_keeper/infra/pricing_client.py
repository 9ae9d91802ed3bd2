"""
Minimal async HTTP client for the Fossil pricing service.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx

from vault_keeper.core.errors import PricingServiceError, PricingServiceUnavailable
from vault_keeper.core.models import LatestBlock, PricingRequest


class FossilPricingClient:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        # A shared client passed in is not closed by close(); otherwise we own it.
        if client is not None:
            self.client = client
            self._owns_client = False
        else:
            self.client = httpx.AsyncClient(base_url=self.base_url, http2=True, timeout=timeout)
            self._owns_client = True

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def latest_block(self) -> LatestBlock:
        """GET /latest_block -> data horizon of the pricing service."""
        data = await self._request("GET", "/latest_block")
        try:
            return LatestBlock(
                block_number=int(data["latest_block_number"]),
                block_timestamp=int(data["block_timestamp"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise PricingServiceError(f"Malformed /latest_block response: {data!r}") from exc

    async def submit_pricing_request(self, request: PricingRequest) -> str:
        """POST /pricing_data. Returns the job id; the job itself is not awaited."""
        data = await self._request(
            "POST",
            "/pricing_data",
            json=request.to_payload(),
            headers={"Content-Type": "application/json", "x-api-key": self._api_key},
        )
        try:
            return str(data["job_id"])
        except (KeyError, TypeError) as exc:
            raise PricingServiceError(f"Malformed /pricing_data response: {data!r}") from exc

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self.base_url}{path}"
        try:
            resp = await self.client.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            raise PricingServiceUnavailable(f"{method} {path} failed: {exc}") from exc
        try:
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise PricingServiceError(
                f"{method} {path} returned HTTP {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            ) from exc
        try:
            return resp.json()
        except ValueError as exc:
            raise PricingServiceError(f"{method} {path} returned non-JSON body") from exc
