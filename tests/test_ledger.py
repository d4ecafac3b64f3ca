"""Tests for the trust ledger store: load, approve, remove and atomic save."""

from __future__ import annotations

import json
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from aurtrust.errors import CorruptLedger, PersistenceError
from aurtrust.trust.fingerprint import Fingerprint, PackageIdentity
from aurtrust.trust.ledger import TrustLedger, TrustRecord

from conftest import APPROVED_AT

FOO = PackageIdentity("aur", "foo")
BAR = PackageIdentity("aur", "bar")


def _write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def test_load_absent_is_empty(tmp_path: Path) -> None:
    ledger = TrustLedger.load(tmp_path / "missing.json")
    assert len(ledger) == 0
    assert not ledger.dirty


def test_approve_marks_dirty_without_writing(tmp_path: Path) -> None:
    path = tmp_path / "ledger.json"
    ledger = TrustLedger.load(path)

    record = ledger.approve(FOO, Fingerprint("1.0", "100"), APPROVED_AT)

    assert ledger.dirty
    assert ledger.get(FOO) == record
    assert not path.exists()


def test_approve_overwrites_single_record() -> None:
    ledger = TrustLedger()
    ledger.approve(FOO, Fingerprint("1.0", "100"), APPROVED_AT)
    later = APPROVED_AT + timedelta(days=1)
    ledger.approve(FOO, Fingerprint("1.1", "110"), later)

    assert len(ledger) == 1
    record = ledger.get(FOO)
    assert record is not None
    assert record.approved_fingerprint == Fingerprint("1.1", "110")
    assert record.approved_at == later


def test_remove_is_idempotent() -> None:
    ledger = TrustLedger()
    assert ledger.remove(FOO) is False
    assert not ledger.dirty

    ledger.approve(FOO, Fingerprint("1.0", "100"), APPROVED_AT)
    assert ledger.remove(FOO) is True
    assert ledger.remove(FOO) is False
    assert FOO not in ledger


def test_save_load_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "ledger.json"
    ledger = TrustLedger()
    ledger.approve(FOO, Fingerprint("1.0", "100"), APPROVED_AT)
    ledger.approve(BAR, Fingerprint("2.0", "5"), APPROVED_AT + timedelta(hours=3))
    ledger.approve(PackageIdentity("other", "baz"), Fingerprint("0.1", "r42"), APPROVED_AT)

    ledger.save(path)
    assert not ledger.dirty

    loaded = TrustLedger.load(path)
    assert loaded.records() == ledger.records()
    for record in ledger.records():
        assert loaded.get(record.identity) == record


def test_saved_document_is_sorted_by_identity(tmp_path: Path) -> None:
    path = tmp_path / "ledger.json"
    ledger = TrustLedger()
    ledger.approve(FOO, Fingerprint("1.0", "100"), APPROVED_AT)
    ledger.approve(BAR, Fingerprint("2.0", "5"), APPROVED_AT)
    ledger.save(path)

    doc = json.loads(path.read_text(encoding="utf-8"))
    assert doc["version"] == 1
    assert [p["identity"]["name"] for p in doc["packages"]] == ["bar", "foo"]
    assert doc["packages"][0] == {
        "identity": {"repo": "aur", "name": "bar"},
        "approved_fingerprint": {"version": "2.0", "content_marker": "5"},
        "approved_at": "2024-01-01T12:00:00+00:00",
    }


def test_save_leaves_no_temp_files(tmp_path: Path) -> None:
    path = tmp_path / "ledger.json"
    ledger = TrustLedger()
    ledger.approve(FOO, Fingerprint("1.0", "100"), APPROVED_AT)
    ledger.save(path)
    assert sorted(p.name for p in tmp_path.iterdir()) == ["ledger.json"]


def test_save_keeps_existing_file_mode(tmp_path: Path) -> None:
    path = tmp_path / "ledger.json"
    ledger = TrustLedger()
    ledger.approve(FOO, Fingerprint("1.0", "100"), APPROVED_AT)
    ledger.save(path)
    path.chmod(0o644)

    ledger.approve(BAR, Fingerprint("2.0", "5"), APPROVED_AT)
    ledger.save(path)

    assert path.stat().st_mode & 0o777 == 0o644
    assert [r.identity for r in TrustLedger.load(path)] == [BAR, FOO]


def test_failed_save_keeps_previous_ledger(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "ledger.json"
    ledger = TrustLedger()
    ledger.approve(FOO, Fingerprint("1.0", "100"), APPROVED_AT)
    ledger.save(path)
    before = path.read_text(encoding="utf-8")

    ledger.approve(BAR, Fingerprint("2.0", "5"), APPROVED_AT)

    def broken_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(os, "replace", broken_replace)

    with pytest.raises(PersistenceError):
        ledger.save(path)

    assert path.read_text(encoding="utf-8") == before
    assert ledger.dirty
    assert sorted(p.name for p in tmp_path.iterdir()) == ["ledger.json"]


@pytest.mark.parametrize(
    "text",
    [
        "not json",
        "[]",
        '{"version": 2, "packages": []}',
        '{"version": 1}',
        '{"version": 1, "packages": [42]}',
        '{"version": 1, "packages": [{"identity": {"repo": "aur"}, '
        '"approved_fingerprint": {"version": "1", "content_marker": "1"}, "approved_at": "2024-01-01T00:00:00+00:00"}]}',
        '{"version": 1, "packages": [{"identity": {"repo": "aur", "name": "foo"}, '
        '"approved_fingerprint": {"version": "1"}, "approved_at": "2024-01-01T00:00:00+00:00"}]}',
        '{"version": 1, "packages": [{"identity": {"repo": "aur", "name": "foo"}, '
        '"approved_fingerprint": {"version": "1", "content_marker": "1"}, "approved_at": "yesterday"}]}',
    ],
)
def test_load_corrupt_ledger(tmp_path: Path, text: str) -> None:
    path = tmp_path / "ledger.json"
    _write(path, text)
    with pytest.raises(CorruptLedger):
        TrustLedger.load(path)


def test_load_non_utf8_ledger(tmp_path: Path) -> None:
    path = tmp_path / "ledger.json"
    path.write_bytes(b'{"version": 1, "packages": []}\xff\n')
    with pytest.raises(CorruptLedger, match="UTF-8"):
        TrustLedger.load(path)


def test_load_rejects_duplicate_identity(tmp_path: Path) -> None:
    entry = TrustRecord(FOO, Fingerprint("1.0", "100"), APPROVED_AT).to_dict()
    path = tmp_path / "ledger.json"
    _write(path, json.dumps({"version": 1, "packages": [entry, entry]}))
    with pytest.raises(CorruptLedger, match="duplicate"):
        TrustLedger.load(path)


def test_record_timestamps_keep_timezone() -> None:
    record = TrustRecord(FOO, Fingerprint("1.0", "100"), datetime(2024, 5, 1, 8, 30, tzinfo=timezone.utc))
    assert TrustRecord.from_dict(record.to_dict()) == record
