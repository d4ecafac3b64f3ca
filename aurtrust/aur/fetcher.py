"""
Concurrent upstream fetcher.

fetch_all() fans out one RPC request per identity over a shared HTTP client,
bounded by a semaphore, and fans the outcomes back into a single mapping.
Every identity gets exactly one outcome: an UpstreamSnapshot, or the error
that prevented one. One package failing never affects the others.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterable, Mapping

import httpx

from ..config import FetchSettings, Settings
from ..errors import AurTrustError, FetchProtocolError, FetchUnavailable, MalformedMetadata
from ..trust.fingerprint import Fingerprint, PackageIdentity, UpstreamSnapshot
from .rpc import AurRpcClient, make_http_client

logger = logging.getLogger(__name__)

FetchResult = UpstreamSnapshot | AurTrustError


def snapshot_from_record(identity: PackageIdentity, record: Mapping[str, Any] | None) -> UpstreamSnapshot:
    """Turn a raw RPC record into a snapshot. None means gone upstream."""
    if record is None:
        return UpstreamSnapshot(identity=identity, fingerprint=None)

    package = str(identity)
    fingerprint = Fingerprint.from_upstream(record, package=package)

    maintainer = record.get("Maintainer")
    if maintainer is not None and not isinstance(maintainer, str):
        raise MalformedMetadata("Upstream Maintainer is not a string.", context={"package": package})

    co_maintainers = record.get("CoMaintainers", [])
    if not isinstance(co_maintainers, list) or not all(isinstance(m, str) for m in co_maintainers):
        raise MalformedMetadata("Upstream CoMaintainers is not a list of names.", context={"package": package})

    package_base = record.get("PackageBase")
    if package_base is not None and not isinstance(package_base, str):
        raise MalformedMetadata("Upstream PackageBase is not a string.", context={"package": package})

    out_of_date = record.get("OutOfDate")
    if out_of_date is not None and (isinstance(out_of_date, bool) or not isinstance(out_of_date, int)):
        raise MalformedMetadata("Upstream OutOfDate is not a timestamp.", context={"package": package})

    return UpstreamSnapshot(
        identity=identity,
        fingerprint=fingerprint,
        package_base=package_base,
        maintainer=maintainer,
        co_maintainers=tuple(co_maintainers),
        out_of_date=out_of_date,
    )


class UpstreamFetcher:
    """Fetch current upstream state for many packages at once."""

    def __init__(
        self,
        settings: FetchSettings,
        repositories: Mapping[str, str],
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self.repositories = dict(repositories)
        self._transport = transport
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "UpstreamFetcher":
        return cls(settings.fetch, settings.repositories, **kwargs)

    def backoff_delay(self, attempt: int) -> float:
        return min(self.settings.backoff_base * (2 ** attempt), self.settings.backoff_max)

    async def fetch_all(self, identities: Iterable[PackageIdentity]) -> dict[PackageIdentity, FetchResult]:
        """Fetch every identity; each gets a snapshot or its own error."""
        ordered = sorted(set(identities))
        results: dict[PackageIdentity, FetchResult] = {}
        if not ordered:
            return results

        semaphore = asyncio.Semaphore(self.settings.concurrency)
        batch_timeout = self.settings.batch_timeout if self.settings.batch_timeout > 0 else None

        async with make_http_client(timeout=self.settings.timeout, transport=self._transport) as http:
            clients = {repo: AurRpcClient(http, url) for repo, url in self.repositories.items()}
            tasks = {
                asyncio.create_task(self._fetch_isolated(clients, semaphore, identity)): identity
                for identity in ordered
            }
            done, pending = await asyncio.wait(tasks, timeout=batch_timeout)

            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
                logger.warning("Batch timeout after %ss; abandoned %d fetches", batch_timeout, len(pending))

            for task, identity in tasks.items():
                if task in done:
                    results[identity] = task.result()
                else:
                    results[identity] = FetchUnavailable(
                        "Fetch abandoned: batch timeout reached.",
                        context={"package": str(identity), "batch_timeout": str(batch_timeout)},
                    )

        return results

    def run(self, identities: Iterable[PackageIdentity]) -> dict[PackageIdentity, FetchResult]:
        """Blocking entry point for the synchronous control flow."""
        return asyncio.run(self.fetch_all(identities))

    async def _fetch_isolated(
        self,
        clients: Mapping[str, AurRpcClient],
        semaphore: asyncio.Semaphore,
        identity: PackageIdentity,
    ) -> FetchResult:
        client = clients.get(identity.repository)
        if client is None:
            return FetchProtocolError(
                "No upstream endpoint configured for repository.",
                hint="Add it under [repositories] in the config file.",
                context={"package": str(identity), "repository": identity.repository},
            )
        try:
            return await self._fetch_with_retry(client, semaphore, identity)
        except MalformedMetadata as exc:
            logger.warning("Malformed upstream metadata for %s: %s", identity, exc.message)
            return exc
        except AurTrustError as exc:
            logger.warning("Fetching %s failed: %s", identity, exc.message)
            return exc

    async def _fetch_with_retry(
        self,
        client: AurRpcClient,
        semaphore: asyncio.Semaphore,
        identity: PackageIdentity,
    ) -> UpstreamSnapshot:
        attempt = 0
        while True:
            try:
                async with semaphore:
                    records = await client.info([identity.name])
            except FetchUnavailable as exc:
                if attempt >= self.settings.retries:
                    raise FetchUnavailable(
                        f"{exc.message} Giving up after {attempt + 1} attempts.",
                        context=exc.context,
                    ) from exc
                delay = self.backoff_delay(attempt)
                attempt += 1
                logger.info(
                    "Retrying %s in %.2fs (attempt %d of %d): %s",
                    identity, delay, attempt, self.settings.retries, exc.message,
                )
                await self._sleep(delay)
                continue
            return snapshot_from_record(identity, records.get(identity.name))
