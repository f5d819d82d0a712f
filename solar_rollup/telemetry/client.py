"""
HTTPS client for the Solplanet end-user cloud API.

Pulls the plant overview (current power and energy counters) and the
per-day interval output used by backfill. Every request carries the plant
API key as the ``key`` query parameter and uses a fixed timeout with TLS
certificate verification always on. The vendor's request-signing scheme
is not implemented here; pass an ``httpx.Auth`` that adds the signature
headers if the deployment needs them.

Failures fail closed:
- connect errors, timeouts, and non-200 responses raise
  :class:`~solar_rollup.errors.SourceUnavailableError`;
- bodies that are not a JSON object, or that carry a vendor error code,
  raise :class:`~solar_rollup.errors.MalformedResponseError`.

CHANGELOG:
- 2026-10-13: Add fetch_day_output for backfill (STORY-009)
- 2026-10-12: Initial creation (STORY-004)

TODO:
- None
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Protocol

import httpx

from solar_rollup.errors import MalformedResponseError, SourceUnavailableError

logger = logging.getLogger(__name__)

_OK_CODES = {0, 200, "0", "200"}


class TelemetrySource(Protocol):
    """Anything that can return raw overview and day-output payloads."""

    async def fetch_overview(self) -> dict[str, Any]: ...

    async def fetch_day_output(self, day: date) -> dict[str, Any]: ...


class SolplanetClient:
    """Async client for the plant-level Solplanet endpoints.

    Args:
        base_url: API base URL. Must start with ``https://``.
        api_key: Plant API key, sent as the ``key`` query parameter.
        serial_number: Inverter serial number, sent as ``sn``.
        timeout_s: Timeout applied to connect and read of every call.
        auth: Optional httpx auth flow (e.g. request signing).

    Raises:
        ValueError: If *base_url* does not start with ``https://``.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        serial_number: str,
        timeout_s: float = 15.0,
        auth: httpx.Auth | None = None,
    ) -> None:
        if not base_url.lower().startswith("https://"):
            raise ValueError(f"Solplanet base URL must use HTTPS (got: '{base_url}')")
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._serial_number = serial_number
        self._timeout_s = timeout_s
        self._auth = auth

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def fetch_overview(self) -> dict[str, Any]:
        """Return the raw ``getPlantOverview`` body."""
        return await self._get("/getPlantOverview", {})

    async def fetch_day_output(self, day: date) -> dict[str, Any]:
        """Return the raw ``getPlantOutput`` body for one local day.

        Args:
            day: Local calendar date to fetch interval samples for.
        """
        return await self._get(
            "/getPlantOutput",
            {"period": "bydays", "date": day.isoformat()},
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _get(self, path: str, params: dict[str, str]) -> dict[str, Any]:
        query = {"key": self._api_key, **params}
        if self._serial_number:
            query["sn"] = self._serial_number
        url = f"{self._base_url}{path}"

        try:
            async with httpx.AsyncClient(
                verify=True, timeout=self._timeout_s, auth=self._auth
            ) as client:
                response = await client.get(url, params=query)
        except httpx.HTTPError as exc:
            raise SourceUnavailableError(f"GET {path} failed: {exc}") from exc

        if response.status_code != 200:
            raise SourceUnavailableError(
                f"GET {path} returned HTTP {response.status_code}"
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise MalformedResponseError(f"GET {path} returned non-JSON body") from exc

        if not isinstance(body, dict):
            raise MalformedResponseError(
                f"GET {path} returned {type(body).__name__}, expected an object"
            )

        code = body.get("code")
        if code is not None and code not in _OK_CODES:
            raise MalformedResponseError(
                f"GET {path} returned vendor error code {code!r}: {body.get('msg', '')}"
            )

        logger.debug("GET %s succeeded", path)
        return body
