from __future__ import annotations

import logging

import httpx

from tracker.config import IPDATA_BASE_URL

logger = logging.getLogger(__name__)


class UpstreamError(Exception):
    """The enrichment service was unreachable or returned unusable data."""


def _build_url(address: str, base_url: str = IPDATA_BASE_URL) -> str:
    return f"{base_url}/{address}"


async def lookup(
    client: httpx.AsyncClient,
    address: str,
    api_key: str,
    base_url: str = IPDATA_BASE_URL,
) -> dict:
    """Fetch geo/network metadata for an address from ipdata.co.

    Single round trip, no retry. Any transport failure, non-2xx status or
    payload that is not a JSON object raises UpstreamError.
    """
    try:
        resp = await client.get(_build_url(address, base_url), params={"api-key": api_key})
        resp.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise UpstreamError(f"ipdata returned HTTP {exc.response.status_code} for {address}") from exc
    except httpx.HTTPError as exc:
        raise UpstreamError(f"ipdata request failed for {address}: {exc}") from exc

    try:
        data = resp.json()
    except ValueError as exc:
        raise UpstreamError(f"ipdata returned invalid JSON for {address}") from exc
    if not isinstance(data, dict):
        raise UpstreamError(f"ipdata returned {type(data).__name__} instead of an object for {address}")

    logger.debug("ipdata ASN for %s: %s", address, data.get("asn"))
    return data
