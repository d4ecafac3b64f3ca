"""Error taxonomy for aur-trust.

Per-package errors (MalformedMetadata, FetchError) are isolated and surface
in the report. Ledger-wide errors (CorruptLedger, PersistenceError,
ConfigError) abort the run.
"""

from __future__ import annotations

from collections.abc import Mapping


class AurTrustError(Exception):
    """Base error carrying an optional hint and context."""

    hint: str | None
    context: dict[str, str]

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.context = dict(context or {})

    def __str__(self) -> str:
        parts = [self.message]
        if self.hint:
            parts.append(f"Hint: {self.hint}")
        for k, v in self.context.items():
            if v:
                parts.append(f"  {k}: {v}")
        return "\n".join(parts)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "error": type(self).__name__,
            "message": self.message,
            "context": dict(self.context),
        }
        if self.hint is not None:
            payload["hint"] = self.hint
        return payload


class MalformedMetadata(AurTrustError):
    """Upstream data cannot be turned into a fingerprint."""


class FetchError(AurTrustError):
    """A single package could not be fetched."""


class FetchUnavailable(FetchError):
    """Transient failure (timeout, connection error, 5xx) after retries."""


class FetchProtocolError(FetchError):
    """Permanent failure for this run (undecodable or unexpected response)."""


class CorruptLedger(AurTrustError):
    """The persisted ledger (or its history) cannot be parsed."""


class PersistenceError(AurTrustError):
    """Writing the ledger failed. The previous file is left untouched."""


class ConfigError(AurTrustError):
    """The configuration file is invalid."""
