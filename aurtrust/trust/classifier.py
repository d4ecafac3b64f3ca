"""
Trust classification.

Joins the ledger's record for a package with its fresh upstream state and
decides one of:

    record   upstream            result
    ------   --------            ------
    absent   exists              UNKNOWN
    absent   gone                (excluded)
    old      exists, same        TRUSTED
    old      exists, different   CHANGED(old, new)
    old      gone                REMOVED_UPSTREAM(old)
    any      fetch failed        INDETERMINATE (record preserved)

A failed fetch never downgrades a trusted package to UNKNOWN or CHANGED.
Nothing here mutates the ledger; approval is always explicit.

check_maintainers() is advisory: it rates who maintains a package upstream
against the configured trusted maintainers, and its reasons are shown next to
the classification. It never changes a package's state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Iterable, Union

from ..errors import AurTrustError, MalformedMetadata
from .fingerprint import Comparison, Fingerprint, UpstreamSnapshot, compare
from .ledger import TrustRecord

# What the fetcher produced for one identity (None: not fetched at all)
FetchOutcome = Union[UpstreamSnapshot, AurTrustError, None]


class TrustState(str, Enum):
    TRUSTED = "trusted"
    CHANGED = "changed"
    UNKNOWN = "unknown"
    REMOVED_UPSTREAM = "removed_upstream"
    INDETERMINATE = "indeterminate"


class Trust(IntEnum):
    """Trust lattice: untrusted < indeterminate < trusted."""

    UNTRUSTED = 0
    INDETERMINATE = 1
    TRUSTED = 2

    def meet(self, other: "Trust") -> "Trust":
        return min(self, other)

    def join(self, other: "Trust") -> "Trust":
        return max(self, other)


_STATE_TRUST = {
    TrustState.TRUSTED: Trust.TRUSTED,
    TrustState.UNKNOWN: Trust.INDETERMINATE,
    TrustState.INDETERMINATE: Trust.INDETERMINATE,
    TrustState.CHANGED: Trust.UNTRUSTED,
    TrustState.REMOVED_UPSTREAM: Trust.UNTRUSTED,
}

# States that make `check` fail
ATTENTION_STATES = frozenset({
    TrustState.CHANGED,
    TrustState.REMOVED_UPSTREAM,
    TrustState.INDETERMINATE,
})


@dataclass(frozen=True)
class Classification:
    """Derived trust state of one package. Never persisted."""

    state: TrustState
    old: Fingerprint | None = None
    new: Fingerprint | None = None
    error: str | None = None
    reasons: tuple[str, ...] = field(default_factory=tuple)

    @property
    def trust(self) -> Trust:
        return _STATE_TRUST[self.state]

    @property
    def needs_attention(self) -> bool:
        return self.state in ATTENTION_STATES

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "old": self.old.to_dict() if self.old else None,
            "new": self.new.to_dict() if self.new else None,
            "error": self.error,
            "reasons": list(self.reasons),
        }

    # --- Constructors ---

    @classmethod
    def trusted(cls, fingerprint: Fingerprint) -> "Classification":
        return cls(
            TrustState.TRUSTED,
            old=fingerprint,
            new=fingerprint,
            reasons=(f"Upstream still at approved revision {fingerprint}",),
        )

    @classmethod
    def changed(cls, old: Fingerprint, new: Fingerprint) -> "Classification":
        reasons = []
        if old.version != new.version:
            reasons.append(f"Version changed from {old.version} to {new.version}")
        if old.content_marker != new.content_marker:
            reasons.append(f"Content marker changed from {old.content_marker} to {new.content_marker}")
        return cls(TrustState.CHANGED, old=old, new=new, reasons=tuple(reasons))

    @classmethod
    def unknown(cls, new: Fingerprint) -> "Classification":
        return cls(TrustState.UNKNOWN, new=new, reasons=(f"Not yet approved; upstream at {new}",))

    @classmethod
    def removed_upstream(cls, old: Fingerprint) -> "Classification":
        return cls(
            TrustState.REMOVED_UPSTREAM,
            old=old,
            reasons=(f"Package no longer exists upstream (approved {old})",),
        )

    @classmethod
    def indeterminate(cls, previous: Fingerprint | None, error: str) -> "Classification":
        reason = "Trust neither confirmed nor invalidated this run"
        if previous is None:
            reason = "Upstream state unknown this run"
        return cls(TrustState.INDETERMINATE, old=previous, error=error, reasons=(reason, error))


def classify(record: TrustRecord | None, outcome: FetchOutcome) -> Classification | None:
    """Classify one package. Returns None if it has nothing to report."""
    previous = record.approved_fingerprint if record else None

    if outcome is None:
        return Classification.indeterminate(previous, "Package was not fetched")

    if isinstance(outcome, MalformedMetadata) and record is None:
        # Unusable metadata for an untracked package: nothing to decide.
        return None

    if isinstance(outcome, AurTrustError):
        return Classification.indeterminate(previous, outcome.message)

    current = outcome.fingerprint
    if record is None:
        return None if current is None else Classification.unknown(current)

    if current is None:
        return Classification.removed_upstream(record.approved_fingerprint)

    if compare(record.approved_fingerprint, current) is Comparison.SAME:
        return Classification.trusted(current)
    return Classification.changed(record.approved_fingerprint, current)


@dataclass(frozen=True)
class MaintainerVerdict:
    trust: Trust
    reasons: tuple[str, ...]

    def to_dict(self) -> dict:
        return {"trust": self.trust.name.lower(), "reasons": list(self.reasons)}


def check_maintainers(trusted: Iterable[str], maintainers: Iterable[str]) -> MaintainerVerdict:
    """Rate the upstream maintainers of a package.

    TRUSTED only if there is at least one maintainer and every one of them is
    in `trusted`. Otherwise INDETERMINATE; this check never yields UNTRUSTED.
    """
    maintainers = set(maintainers)
    if not maintainers:
        return MaintainerVerdict(Trust.INDETERMINATE, ("Maintainers unknown",))

    untrusted = sorted(maintainers - set(trusted))
    if not untrusted:
        return MaintainerVerdict(Trust.TRUSTED, ("All maintainers trusted",))
    return MaintainerVerdict(
        Trust.INDETERMINATE,
        tuple(f"Maintainer {m} is not trusted" for m in untrusted),
    )


def combined_trust(classifications: Iterable[Classification]) -> Trust:
    """Meet of all trusts; an empty set is trusted."""
    result = Trust.TRUSTED
    for c in classifications:
        result = result.meet(c.trust)
    return result
