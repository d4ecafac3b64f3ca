"""Pytest configuration and fixtures."""

from __future__ import annotations

import asyncio
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import httpx
import pytest

from aurtrust.aur.fetcher import UpstreamFetcher
from aurtrust.config import FetchSettings, Settings

RPC_URL = "https://aur.test/rpc/"
APPROVED_AT = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def aur_record(name: str, version: str, last_modified: Any, **extra: Any) -> dict[str, Any]:
    """A package record shaped like an AUR RPC v5 info result."""
    record = {
        "ID": 1,
        "Name": name,
        "PackageBase": name,
        "Version": version,
        "LastModified": last_modified,
        "Maintainer": "jdoe",
        "CoMaintainers": [],
        "OutOfDate": None,
    }
    record.update(extra)
    return record


class FakeAur:
    """In-memory AUR RPC endpoint served through httpx.MockTransport.

    `failures[name]` is a queue of canned failures returned before the real
    answer: an HTTP status code, "timeout", "connect", "garbage",
    "decoding" or "redirects".
    Names in `slow` never answer.
    """

    def __init__(self) -> None:
        self.packages: dict[str, dict[str, Any]] = {}
        self.failures: dict[str, list[Any]] = {}
        self.slow: set[str] = set()
        self.calls: Counter[str] = Counter()

    def add(self, name: str, version: str, last_modified: Any, **extra: Any) -> None:
        self.packages[name] = aur_record(name, version, last_modified, **extra)

    async def handler(self, request: httpx.Request) -> httpx.Response:
        names = request.url.params.get_list("arg[]")
        for name in names:
            self.calls[name] += 1

        for name in names:
            if name in self.slow:
                await asyncio.sleep(3600)
            queue = self.failures.get(name)
            if queue:
                failure = queue.pop(0)
                if failure == "timeout":
                    raise httpx.ReadTimeout("timed out", request=request)
                if failure == "connect":
                    raise httpx.ConnectError("connection refused", request=request)
                if failure == "decoding":
                    raise httpx.DecodingError("invalid gzip body", request=request)
                if failure == "redirects":
                    raise httpx.TooManyRedirects("exceeded redirect limit", request=request)
                if failure == "garbage":
                    return httpx.Response(200, content=b"<html>oops</html>")
                return httpx.Response(failure, json={"error": "nope"})

        results = [self.packages[n] for n in names if n in self.packages]
        return httpx.Response(
            200,
            json={"version": 5, "type": "multiinfo", "resultcount": len(results), "results": results},
        )

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class RecordingSleep:
    """Stand-in for asyncio.sleep that records backoff delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def fake_aur() -> FakeAur:
    return FakeAur()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def fetch_settings() -> FetchSettings:
    return FetchSettings(concurrency=4, retries=2, backoff_base=0.5, backoff_max=8.0, timeout=5.0, batch_timeout=5.0)


@pytest.fixture
def fetcher(fake_aur: FakeAur, fetch_settings: FetchSettings, recording_sleep: RecordingSleep) -> UpstreamFetcher:
    return UpstreamFetcher(
        fetch_settings,
        {"aur": RPC_URL},
        transport=fake_aur.transport(),
        sleep=recording_sleep,
    )


@pytest.fixture
def settings(tmp_path: Path, fetch_settings: FetchSettings) -> Settings:
    return Settings(
        ledger_path=tmp_path / "data" / "ledger.json",
        repositories={"aur": RPC_URL},
        fetch=fetch_settings,
    )
