"""AUR RPC (v5) client.

Only the `info` query is used. One request is made per call; retrying is the
fetcher's job. Failures are mapped onto the fetch error taxonomy:

- timeouts, connection errors, HTTP 429 and 5xx  -> FetchUnavailable (transient)
- other HTTP errors, redirect loops, undecodable or unexpected bodies
  -> FetchProtocolError
- HTTP 404 -> no results (the package is unknown upstream)
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .. import __version__
from ..errors import FetchProtocolError, FetchUnavailable

logger = logging.getLogger(__name__)

USER_AGENT = f"aur-trust/{__version__}"
RPC_VERSION = "5"


def make_http_client(
    *,
    timeout: float = 10.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create the shared async HTTP client used for all RPC calls."""
    return httpx.AsyncClient(
        timeout=timeout,
        transport=transport,
        headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
        follow_redirects=True,
    )


class AurRpcClient:
    """Minimal AUR RPC client bound to one repository endpoint."""

    def __init__(self, http: httpx.AsyncClient, base_url: str) -> None:
        self._http = http
        self.base_url = base_url

    async def info(self, names: list[str]) -> dict[str, dict[str, Any]]:
        """Get raw package records for `names`, keyed by package name.

        Packages unknown upstream are simply absent from the result.
        """
        params = [("v", RPC_VERSION), ("type", "info")]
        params += [("arg[]", name) for name in names]
        context = {"url": self.base_url, "packages": ", ".join(names)}

        logger.debug("GET %s info %s", self.base_url, names)
        try:
            response = await self._http.get(self.base_url, params=params)
        except httpx.TimeoutException as exc:
            raise FetchUnavailable("AUR RPC request timed out.", context=context) from exc
        except httpx.TransportError as exc:
            raise FetchUnavailable(f"AUR RPC connection error: {exc}", context=context) from exc
        except httpx.HTTPError as exc:
            # Redirect loops, undecodable content encodings and the like
            raise FetchProtocolError(f"AUR RPC request failed: {exc}", context=context) from exc

        status = response.status_code
        if status == 404:
            return {}
        if status == 429 or status >= 500:
            raise FetchUnavailable(f"AUR RPC HTTP error {status}.", context=context)
        if status >= 400:
            raise FetchProtocolError(f"AUR RPC HTTP error {status}.", context=context)

        try:
            payload = response.json()
        except ValueError as exc:
            raise FetchProtocolError("AUR RPC response is not valid JSON.", context=context) from exc

        return _parse_info(payload, context)


def _parse_info(payload: Any, context: dict[str, str]) -> dict[str, dict[str, Any]]:
    if not isinstance(payload, dict):
        raise FetchProtocolError("AUR RPC response is not an object.", context=context)

    if payload.get("type") == "error":
        raise FetchProtocolError(
            f"AUR RPC returned an error: {payload.get('error', 'unknown error')}",
            context=context,
        )

    results = payload.get("results")
    if not isinstance(results, list):
        raise FetchProtocolError("AUR RPC response has no results list.", context=context)

    resultcount = payload.get("resultcount")
    if resultcount != len(results):
        logger.warning(
            "Inconsistent AUR info response: resultcount %s != len(results) %d",
            resultcount,
            len(results),
        )

    records: dict[str, dict[str, Any]] = {}
    for item in results:
        if not isinstance(item, dict) or not isinstance(item.get("Name"), str):
            raise FetchProtocolError("AUR RPC result without a package Name.", context=context)
        records[item["Name"]] = item
    return records
