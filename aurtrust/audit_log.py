"""
Approval history.

Every approve and remove is appended to a JSON Lines file next to the ledger,
so the ledger's current state can always be traced back to the decisions
that produced it. The history is append-only and never rewritten.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal

from .errors import CorruptLedger, PersistenceError
from .trust.fingerprint import Fingerprint, PackageIdentity

Operation = Literal["approve", "remove"]


@dataclass(frozen=True)
class HistoryEntry:
    """A single approval history entry."""

    timestamp: str
    operation: str
    identity: str
    fingerprint: dict[str, str] | None = None
    previous: dict[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "operation": self.operation,
            "identity": self.identity,
            "fingerprint": self.fingerprint,
            "previous": self.previous,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HistoryEntry":
        return cls(
            timestamp=data["timestamp"],
            operation=data["operation"],
            identity=data["identity"],
            fingerprint=data.get("fingerprint"),
            previous=data.get("previous"),
        )


def log_operation(
    history_path: Path,
    operation: Operation,
    identity: PackageIdentity,
    *,
    fingerprint: Fingerprint | None = None,
    previous: Fingerprint | None = None,
    timestamp: datetime | None = None,
) -> HistoryEntry:
    """
    Append one operation to the history.

    Args:
        history_path: JSON Lines file next to the ledger
        operation: "approve" or "remove"
        identity: Package the operation applied to
        fingerprint: Newly approved fingerprint (approve only)
        previous: Fingerprint that was approved before, if any
        timestamp: Defaults to now (UTC)

    Returns:
        The appended entry
    """
    entry = HistoryEntry(
        timestamp=(timestamp or datetime.now(timezone.utc)).isoformat(),
        operation=operation,
        identity=str(identity),
        fingerprint=fingerprint.to_dict() if fingerprint else None,
        previous=previous.to_dict() if previous else None,
    )

    try:
        history_path.parent.mkdir(parents=True, exist_ok=True)
        with history_path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(entry.to_dict(), sort_keys=True) + "\n")
    except OSError as exc:
        raise PersistenceError(
            "Cannot append to approval history.",
            context={"path": str(history_path), "reason": str(exc)},
        ) from exc

    return entry


def read_history(history_path: Path, last_n: int | None = None) -> list[HistoryEntry]:
    """
    Read the approval history, oldest first.

    A malformed line raises CorruptLedger; the history is part of the audit
    trail and is not skipped over.
    """
    if not history_path.exists():
        return []

    try:
        lines = history_path.read_text(encoding="utf-8").splitlines()
    except OSError as exc:
        raise PersistenceError(
            "Cannot read approval history.",
            context={"path": str(history_path), "reason": str(exc)},
        ) from exc
    except UnicodeDecodeError as exc:
        raise CorruptLedger(
            "Approval history is not valid UTF-8.", context={"path": str(history_path)}
        ) from exc

    entries: list[HistoryEntry] = []
    for lineno, line in enumerate(lines, start=1):
        line = line.strip()
        if not line:
            continue
        try:
            entries.append(HistoryEntry.from_dict(json.loads(line)))
        except (json.JSONDecodeError, KeyError, TypeError) as exc:
            raise CorruptLedger(
                "Malformed approval history entry.",
                context={"path": str(history_path), "line": str(lineno)},
            ) from exc

    if last_n is not None:
        return entries[-last_n:] if last_n > 0 else []
    return entries


def format_history_entry(entry: HistoryEntry) -> str:
    """Format an entry for human-readable display."""
    line = f"[{entry.timestamp}] {entry.operation} {entry.identity}"
    if entry.fingerprint:
        line += f" -> {entry.fingerprint['version']} ({entry.fingerprint['content_marker']})"
    if entry.previous:
        line += f" (was {entry.previous['version']} ({entry.previous['content_marker']}))"
    return line
