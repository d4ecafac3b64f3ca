"""
Trust ledger.

Maps each PackageIdentity to the fingerprint the user last approved. The
ledger is loaded at the start of a run, mutated only through approve() and
remove(), and written back with save(), which replaces the file atomically.

Storage format: a single JSON document, packages sorted by identity so the
file diffs cleanly under version control:

    {
      "version": 1,
      "packages": [
        {
          "identity": {"repo": "aur", "name": "foo"},
          "approved_fingerprint": {"version": "1.0-1", "content_marker": "1700000000"},
          "approved_at": "2024-01-01T12:00:00+00:00"
        }
      ]
    }
"""

from __future__ import annotations

import json
import logging
import os
import stat
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator

from ..errors import CorruptLedger, PersistenceError
from .fingerprint import Fingerprint, PackageIdentity

logger = logging.getLogger(__name__)

LEDGER_FORMAT_VERSION = 1


@dataclass(frozen=True)
class TrustRecord:
    """One approval: what was approved, under which fingerprint, and when."""

    identity: PackageIdentity
    approved_fingerprint: Fingerprint
    approved_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "identity": self.identity.to_dict(),
            "approved_fingerprint": self.approved_fingerprint.to_dict(),
            "approved_at": self.approved_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "TrustRecord":
        """Parse one ledger entry. Raises CorruptLedger on any mismatch."""
        if not isinstance(data, dict):
            raise CorruptLedger("Ledger entry is not an object.", context={"entry": repr(data)})

        identity_raw = _required_dict(data, "identity")
        fingerprint_raw = _required_dict(data, "approved_fingerprint")

        try:
            identity = PackageIdentity(
                repository=_required_str(identity_raw, "repo"),
                name=_required_str(identity_raw, "name"),
            )
        except ValueError as exc:
            raise CorruptLedger("Ledger entry has an invalid identity.", hint=str(exc)) from exc

        fingerprint = Fingerprint(
            version=_required_str(fingerprint_raw, "version"),
            content_marker=_required_str(fingerprint_raw, "content_marker"),
        )

        approved_at_raw = _required_str(data, "approved_at")
        try:
            approved_at = datetime.fromisoformat(approved_at_raw)
        except ValueError as exc:
            raise CorruptLedger(
                "Ledger entry has an invalid approved_at timestamp.",
                context={"identity": str(identity), "approved_at": approved_at_raw},
            ) from exc

        return cls(identity=identity, approved_fingerprint=fingerprint, approved_at=approved_at)


class TrustLedger:
    """In-memory ledger with batched, atomic persistence.

    All mutation goes through approve() and remove(). Neither writes to disk;
    they mark the ledger dirty so that a single save() persists the whole
    batch.
    """

    def __init__(self, records: dict[PackageIdentity, TrustRecord] | None = None):
        self._records: dict[PackageIdentity, TrustRecord] = dict(records or {})
        self._dirty = False

    # --- Persistence ---

    @classmethod
    def load(cls, path: Path) -> "TrustLedger":
        """Load a ledger from `path`.

        A missing file is a first run and yields an empty ledger. Anything
        that does not parse raises CorruptLedger; trust history is never
        silently discarded.
        """
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug("No ledger at %s, starting empty", path)
            return cls()
        except OSError as exc:
            raise PersistenceError(
                "Cannot read ledger.", context={"path": str(path), "reason": str(exc)}
            ) from exc
        except UnicodeDecodeError as exc:
            raise CorruptLedger("Ledger is not valid UTF-8.", context={"path": str(path)}) from exc

        ledger = cls.from_json(raw, source=str(path))
        logger.debug("Loaded %d trust records from %s", len(ledger), path)
        return ledger

    @classmethod
    def from_json(cls, raw: str, *, source: str = "<string>") -> "TrustLedger":
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise CorruptLedger("Ledger is not valid JSON.", hint=str(exc), context={"path": source}) from exc

        if not isinstance(payload, dict):
            raise CorruptLedger("Ledger document is not an object.", context={"path": source})

        version = payload.get("version")
        if version != LEDGER_FORMAT_VERSION:
            raise CorruptLedger(
                "Unsupported ledger format version.",
                context={"path": source, "version": repr(version)},
            )

        packages = payload.get("packages")
        if not isinstance(packages, list):
            raise CorruptLedger("Ledger `packages` is not a list.", context={"path": source})

        records: dict[PackageIdentity, TrustRecord] = {}
        for entry in packages:
            record = TrustRecord.from_dict(entry)
            if record.identity in records:
                raise CorruptLedger(
                    "Ledger contains a duplicate identity.",
                    context={"path": source, "identity": str(record.identity)},
                )
            records[record.identity] = record
        return cls(records)

    def to_json(self) -> str:
        payload = {
            "version": LEDGER_FORMAT_VERSION,
            "packages": [record.to_dict() for record in self.records()],
        }
        return json.dumps(payload, indent=2) + "\n"

    def save(self, path: Path) -> None:
        """Write the whole ledger to `path` atomically.

        The document is written to a temporary file in the destination
        directory, synced, then renamed over `path`. On failure the previous
        file is left as it was and PersistenceError is raised.
        """
        serialized = self.to_json()
        tmp_name: str | None = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=path.parent,
                prefix=f".{path.name}.",
                suffix=".tmp",
                delete=False,
            ) as f:
                tmp_name = f.name
                f.write(serialized)
                f.flush()
                os.fsync(f.fileno())
            if path.exists():
                # Temp files are created 0600; keep the permissions of the file being replaced
                os.chmod(tmp_name, stat.S_IMODE(path.stat().st_mode))
            os.replace(tmp_name, path)
        except OSError as exc:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            raise PersistenceError(
                "Cannot write ledger.",
                hint="The previous ledger file was not modified.",
                context={"path": str(path), "reason": str(exc)},
            ) from exc

        self._dirty = False
        logger.debug("Saved %d trust records to %s", len(self), path)

    # --- Queries ---

    def get(self, identity: PackageIdentity) -> TrustRecord | None:
        return self._records.get(identity)

    def records(self) -> list[TrustRecord]:
        """All records, sorted by identity."""
        return [self._records[i] for i in sorted(self._records)]

    def identities(self) -> list[PackageIdentity]:
        return sorted(self._records)

    @property
    def dirty(self) -> bool:
        """True if there are approvals or removals not yet saved."""
        return self._dirty

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, identity: object) -> bool:
        return identity in self._records

    def __iter__(self) -> Iterator[TrustRecord]:
        return iter(self.records())

    # --- Mutation ---

    def approve(self, identity: PackageIdentity, fingerprint: Fingerprint, now: datetime) -> TrustRecord:
        """Record `fingerprint` as the approved revision of `identity`."""
        record = TrustRecord(identity=identity, approved_fingerprint=fingerprint, approved_at=now)
        self._records[identity] = record
        self._dirty = True
        return record

    def remove(self, identity: PackageIdentity) -> bool:
        """Stop tracking `identity`. Removing an absent identity is a no-op."""
        if self._records.pop(identity, None) is None:
            return False
        self._dirty = True
        return True


def _required_dict(payload: dict[str, Any], key: str) -> dict[str, Any]:
    value = payload.get(key)
    if not isinstance(value, dict):
        raise CorruptLedger(f"Ledger entry `{key}` is missing or not an object.")
    return value


def _required_str(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value:
        raise CorruptLedger(f"Ledger entry `{key}` is missing or not a string.")
    return value
