"""
Trust ledger and change detection.

Components:
- fingerprint: PackageIdentity, Fingerprint, UpstreamSnapshot and compare()
- ledger: TrustLedger with atomic JSON persistence
- classifier: per-package trust state decision, advisory maintainer check
- report: reconcile() over a whole ledger plus fetch results

Design principles:
- Explicit: nothing becomes trusted without an approve() call
- Conservative: a failed fetch never changes what was trusted
- Deterministic: reports are ordered by identity
"""

from .classifier import Classification, MaintainerVerdict, Trust, TrustState, check_maintainers, classify
from .fingerprint import Comparison, Fingerprint, PackageIdentity, UpstreamSnapshot, compare
from .ledger import TrustLedger, TrustRecord
from .report import ReportEntry, TrustReport, reconcile

__all__ = [
    "Classification",
    "Comparison",
    "Fingerprint",
    "MaintainerVerdict",
    "PackageIdentity",
    "ReportEntry",
    "Trust",
    "TrustLedger",
    "TrustRecord",
    "TrustReport",
    "TrustState",
    "UpstreamSnapshot",
    "check_maintainers",
    "classify",
    "compare",
    "reconcile",
]
