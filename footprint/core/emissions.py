from __future__ import annotations

import logging
import time
from typing import Any, Optional

import aiohttp

from footprint.core.config import extract_domain, normalize_url
from footprint.core.errors import ValidationError
from footprint.core.models import GreenHostingResult

logger = logging.getLogger("footprint.emissions")

GREENCHECK_BASE_URL = "https://api.thegreenwebfoundation.org"

# Sustainable Web Design model v4, kWh per GB transferred.
OPERATIONAL_KWH_PER_GB = {"datacenter": 0.055, "network": 0.059, "device": 0.080}
EMBODIED_KWH_PER_GB = {"datacenter": 0.012, "network": 0.013, "device": 0.081}
GLOBAL_GRID_INTENSITY = 494.0
RENEWABLES_GRID_INTENSITY = 50.0
BYTES_PER_GB = 1000**3


def segment_co2e(total_bytes: int, green: bool = False) -> dict[str, float]:
    if total_bytes < 0:
        raise ValidationError(f"Invalid bytes value provided: {total_bytes}", field="bytes")
    gigabytes = total_bytes / BYTES_PER_GB
    segments: dict[str, float] = {}
    for segment, kwh in OPERATIONAL_KWH_PER_GB.items():
        intensity = RENEWABLES_GRID_INTENSITY if green and segment == "datacenter" else GLOBAL_GRID_INTENSITY
        segments[f"operational_{segment}"] = gigabytes * kwh * intensity
    for segment, kwh in EMBODIED_KWH_PER_GB.items():
        segments[f"embodied_{segment}"] = gigabytes * kwh * GLOBAL_GRID_INTENSITY
    return segments


def bytes_to_co2e(total_bytes: int, green: bool = False) -> float:
    """Grams of CO2e for ``total_bytes`` transferred."""
    return sum(segment_co2e(total_bytes, green).values())


class GreenHostingClient:
    """Green Web Foundation greencheck lookups. Any failure reads as not green."""

    def __init__(
        self,
        base_url: str = GREENCHECK_BASE_URL,
        timeout_s: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout_s)
        self._session = session

    async def _fetch(self, domain: str) -> dict[str, Any]:
        url = f"{self._base_url}/api/v3/greencheck/{domain}"
        if self._session is not None:
            async with self._session.get(url, timeout=self._timeout) as resp:
                resp.raise_for_status()
                return await resp.json()
        async with aiohttp.ClientSession(timeout=self._timeout) as session:
            async with session.get(url) as resp:
                resp.raise_for_status()
                return await resp.json()

    async def check(self, url: str) -> GreenHostingResult:
        started = time.perf_counter()
        normalized = normalize_url(url)
        domain = extract_domain(normalized)
        try:
            data = await self._fetch(domain)
        except Exception as exc:
            logger.warning(f"[Green] Green hosting check failed for {domain}: {exc}")
            return GreenHostingResult(
                url=normalized,
                green=False,
                duration_ms=int((time.perf_counter() - started) * 1000),
            )
        green = bool(data.get("green", False))
        logger.debug(f"[Green] {domain} green={green} hosted_by={data.get('hosted_by')}")
        return GreenHostingResult(
            url=normalized,
            green=green,
            hosted_by=data.get("hosted_by"),
            duration_ms=int((time.perf_counter() - started) * 1000),
        )
