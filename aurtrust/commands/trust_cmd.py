"""Trust ledger CLI commands: check, approve, remove, list, history."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Callable, Iterable

from rich.console import Console
from rich.table import Table

from ..audit_log import format_history_entry, log_operation, read_history
from ..aur.fetcher import UpstreamFetcher
from ..config import Settings
from ..errors import AurTrustError, PersistenceError
from ..trust.classifier import Trust, TrustState
from ..trust.fingerprint import Comparison, Fingerprint, PackageIdentity, compare
from ..trust.ledger import TrustLedger
from ..trust.report import TrustReport, reconcile

logger = logging.getLogger(__name__)

STATE_STYLES = {
    TrustState.TRUSTED: "green",
    TrustState.UNKNOWN: "cyan",
    TrustState.CHANGED: "bold yellow",
    TrustState.REMOVED_UPSTREAM: "bold red",
    TrustState.INDETERMINATE: "magenta",
}


def _fetcher(settings: Settings, fetcher: UpstreamFetcher | None) -> UpstreamFetcher:
    return fetcher if fetcher is not None else UpstreamFetcher.from_settings(settings)


def _fp(fingerprint: Fingerprint | None) -> str:
    return str(fingerprint) if fingerprint else ""


def _append_history(
    settings: Settings,
    operations: list[tuple[str, PackageIdentity, Fingerprint | None, Fingerprint | None]],
    timestamp: datetime,
) -> None:
    """Log operations whose ledger change is already saved."""
    try:
        for operation, identity, fingerprint, previous in operations:
            log_operation(
                settings.history_path,
                operation,
                identity,
                fingerprint=fingerprint,
                previous=previous,
                timestamp=timestamp,
            )
    except PersistenceError as exc:
        raise PersistenceError(
            "Ledger saved, but the approval history could not be appended.",
            hint="The ledger is up to date; the history is missing this run's entries.",
            context=exc.context,
        ) from exc


def render_report(report: TrustReport, console: Console) -> None:
    table = Table(title="Package trust")
    table.add_column("package", style="cyan", no_wrap=True)
    table.add_column("state")
    table.add_column("approved")
    table.add_column("upstream")
    table.add_column("maintainer")
    table.add_column("details", style="dim")

    for entry in report:
        c = entry.classification
        if c.state is TrustState.INDETERMINATE:
            upstream = "?"
        elif c.state is TrustState.REMOVED_UPSTREAM:
            upstream = "gone"
        else:
            upstream = _fp(c.new)
        maintainer = ""
        if entry.snapshot is not None and entry.snapshot.exists:
            maintainer = ", ".join(entry.snapshot.maintainers) or "(orphan)"
            if entry.maintainers is not None and entry.maintainers.trust is Trust.TRUSTED:
                maintainer = f"[green]{maintainer}[/]"
        table.add_row(
            str(entry.identity),
            f"[{STATE_STYLES[c.state]}]{c.state.value}[/]",
            _fp(c.old),
            upstream,
            maintainer,
            "; ".join(c.reasons),
        )

    console.print(table)
    counts = ", ".join(f"{n} {state}" for state, n in report.counts().items() if n)
    console.print(f"{len(report)} packages: {counts}" if counts else "No packages to report.")


def run_check(
    settings: Settings,
    requested: Iterable[PackageIdentity] = (),
    *,
    output_json: bool = False,
    fetcher: UpstreamFetcher | None = None,
) -> int:
    """Reconcile the ledger against upstream.

    Returns 0 if every package is trusted or merely unknown, 1 if any package
    changed, vanished upstream, or could not be checked.
    """
    requested = sorted(set(requested))
    ledger = TrustLedger.load(settings.ledger_path)
    identities = set(ledger.identities()) | set(requested)

    results = _fetcher(settings, fetcher).run(identities) if identities else {}
    report = reconcile(ledger, results, requested, trusted_maintainers=settings.trusted_maintainers)

    if output_json:
        print(json.dumps(report.to_dict(), indent=2, sort_keys=True))
    else:
        render_report(report, Console())
    return report.exit_code


def run_approve(
    settings: Settings,
    identities: Iterable[PackageIdentity],
    *,
    fetcher: UpstreamFetcher | None = None,
    confirm: Callable[[str], bool] | None = None,
    now: datetime | None = None,
) -> int:
    """Fetch each package and record its current fingerprint as trusted.

    Packages that are gone upstream or cannot be fetched are refused. If
    `confirm` is given it is asked before every new approval.
    """
    console = Console()
    err = Console(stderr=True)
    identities = sorted(set(identities))
    timestamp = now or datetime.now(timezone.utc)

    ledger = TrustLedger.load(settings.ledger_path)
    results = _fetcher(settings, fetcher).run(identities)

    exit_code = 0
    approved: list[tuple[PackageIdentity, Fingerprint, Fingerprint | None]] = []
    for identity in identities:
        outcome = results[identity]
        if isinstance(outcome, AurTrustError):
            err.print(f"Cannot approve {identity}: {outcome.message}", style="bold red")
            exit_code = 1
            continue
        if outcome.fingerprint is None:
            err.print(f"Cannot approve {identity}: package does not exist upstream", style="bold red")
            exit_code = 1
            continue

        record = ledger.get(identity)
        previous = record.approved_fingerprint if record else None
        if previous is not None and compare(previous, outcome.fingerprint) is Comparison.SAME:
            console.print(f"{identity} already trusted at {outcome.fingerprint}", style="dim")
            continue

        prompt = f"Trust {identity} at {outcome.fingerprint}?"
        if previous is not None:
            prompt = f"Trust {identity} at {outcome.fingerprint} (was {previous})?"
        if confirm is not None and not confirm(prompt):
            console.print(f"Skipped {identity}", style="yellow")
            continue

        ledger.approve(identity, outcome.fingerprint, timestamp)
        approved.append((identity, outcome.fingerprint, previous))
        console.print(f"Approved {identity} at {outcome.fingerprint}", style="green")

    if ledger.dirty:
        ledger.save(settings.ledger_path)
        _append_history(
            settings,
            [("approve", identity, fingerprint, previous) for identity, fingerprint, previous in approved],
            timestamp,
        )
        logger.info("Recorded %d approvals", len(approved))

    return exit_code


def run_remove(
    settings: Settings,
    identities: Iterable[PackageIdentity],
    *,
    now: datetime | None = None,
) -> int:
    """Stop tracking packages. Removing an untracked package is not an error."""
    console = Console()
    timestamp = now or datetime.now(timezone.utc)
    ledger = TrustLedger.load(settings.ledger_path)

    removed = []
    for identity in sorted(set(identities)):
        record = ledger.get(identity)
        if ledger.remove(identity):
            removed.append((identity, record.approved_fingerprint))
            console.print(f"Removed {identity}")
        else:
            console.print(f"{identity} is not tracked", style="dim")

    if ledger.dirty:
        ledger.save(settings.ledger_path)
        _append_history(settings, [("remove", identity, None, previous) for identity, previous in removed], timestamp)
    return 0


def run_list(settings: Settings, *, output_json: bool = False) -> int:
    """Show the ledger contents without contacting upstream."""
    ledger = TrustLedger.load(settings.ledger_path)

    if output_json:
        print(json.dumps([r.to_dict() for r in ledger.records()], indent=2, sort_keys=True))
        return 0

    console = Console()
    if not len(ledger):
        console.print("No packages tracked.", style="dim")
        return 0

    table = Table(title=f"Trusted packages ({settings.ledger_path})")
    table.add_column("package", style="cyan", no_wrap=True)
    table.add_column("version")
    table.add_column("content marker", style="dim")
    table.add_column("approved at")
    for record in ledger.records():
        table.add_row(
            str(record.identity),
            record.approved_fingerprint.version,
            record.approved_fingerprint.content_marker,
            record.approved_at.isoformat(),
        )
    console.print(table)
    return 0


def run_history(settings: Settings, *, last_n: int | None = None) -> int:
    console = Console()
    entries = read_history(settings.history_path, last_n=last_n)
    if not entries:
        console.print("No approval history.", style="dim")
        return 0
    for entry in entries:
        console.print(format_history_entry(entry), highlight=False)
    return 0
