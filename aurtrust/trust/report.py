"""
Reconciliation report.

reconcile() is a pure function of the ledger and the fetch results: no I/O,
no clock, no mutation. Entries are sorted by identity so the output is the
same regardless of the order in which fetches completed.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Iterable, Mapping

from ..errors import AurTrustError
from .classifier import (
    Classification,
    FetchOutcome,
    MaintainerVerdict,
    Trust,
    TrustState,
    check_maintainers,
    classify,
    combined_trust,
)
from .fingerprint import PackageIdentity, UpstreamSnapshot
from .ledger import TrustLedger, TrustRecord


@dataclass(frozen=True)
class ReportEntry:
    identity: PackageIdentity
    classification: Classification
    record: TrustRecord | None = None
    snapshot: UpstreamSnapshot | None = None
    maintainers: MaintainerVerdict | None = None

    @property
    def state(self) -> TrustState:
        return self.classification.state

    def to_dict(self) -> dict[str, Any]:
        return {
            "identity": self.identity.to_dict(),
            "classification": self.classification.to_dict(),
            "approved_at": self.record.approved_at.isoformat() if self.record else None,
            "upstream": self.snapshot.to_dict() if self.snapshot else None,
            "maintainers": self.maintainers.to_dict() if self.maintainers else None,
        }


@dataclass(frozen=True)
class TrustReport:
    """Ordered, serializable result of one reconciliation pass."""

    entries: tuple[ReportEntry, ...]

    def __iter__(self):
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def get(self, identity: PackageIdentity) -> ReportEntry | None:
        for entry in self.entries:
            if entry.identity == identity:
                return entry
        return None

    def by_state(self, state: TrustState) -> list[ReportEntry]:
        return [e for e in self.entries if e.state is state]

    def counts(self) -> dict[str, int]:
        """Entries per state; every state is present, zero if absent."""
        counts = {state.value: 0 for state in TrustState}
        for entry in self.entries:
            counts[entry.state.value] += 1
        return counts

    @property
    def needs_attention(self) -> bool:
        return any(e.classification.needs_attention for e in self.entries)

    @property
    def exit_code(self) -> int:
        return 1 if self.needs_attention else 0

    @property
    def overall(self) -> Trust:
        return combined_trust(e.classification for e in self.entries)

    def to_dict(self) -> dict[str, Any]:
        return {
            "overall": self.overall.name.lower(),
            "needs_attention": self.needs_attention,
            "counts": self.counts(),
            "packages": [e.to_dict() for e in self.entries],
        }


def reconcile(
    ledger: TrustLedger,
    snapshots: Mapping[PackageIdentity, UpstreamSnapshot | AurTrustError],
    requested: Iterable[PackageIdentity] = (),
    *,
    trusted_maintainers: Iterable[str] = (),
) -> TrustReport:
    """Classify every identity in the ledger, the fetch results, or `requested`.

    With `trusted_maintainers`, packages that exist upstream also get a
    maintainer verdict whose reasons are appended to the classification's.
    """
    trusted_maintainers = frozenset(trusted_maintainers)
    identities = set(ledger.identities()) | set(snapshots) | set(requested)

    entries: list[ReportEntry] = []
    for identity in sorted(identities):
        record = ledger.get(identity)
        outcome: FetchOutcome = snapshots.get(identity)
        classification = classify(record, outcome)
        if classification is None:
            continue

        snapshot = outcome if isinstance(outcome, UpstreamSnapshot) else None
        maintainers = None
        if trusted_maintainers and snapshot is not None and snapshot.exists:
            maintainers = check_maintainers(trusted_maintainers, snapshot.maintainers)
            classification = replace(classification, reasons=classification.reasons + maintainers.reasons)

        entries.append(
            ReportEntry(
                identity=identity,
                classification=classification,
                record=record,
                snapshot=snapshot,
                maintainers=maintainers,
            )
        )
    return TrustReport(entries=tuple(entries))
