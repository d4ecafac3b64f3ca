"""
Package identities and fingerprints.

A fingerprint identifies one reviewable revision of a package: the upstream
version string plus a content marker (AUR's LastModified timestamp). Two
fingerprints are the same iff both fields match exactly. Fingerprints have no
ordering; versions are not assumed to be monotonic.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from ..errors import MalformedMetadata

DEFAULT_REPOSITORY = "aur"


@dataclass(frozen=True, order=True)
class PackageIdentity:
    """Repository name plus package name. Case-sensitive."""

    repository: str
    name: str

    def __post_init__(self) -> None:
        if not self.repository or "/" in self.repository:
            raise ValueError(f"Invalid repository name: {self.repository!r}")
        if not self.name or "/" in self.name or self.name != self.name.strip():
            raise ValueError(f"Invalid package name: {self.name!r}")

    def __str__(self) -> str:
        return f"{self.repository}/{self.name}"

    @classmethod
    def parse(cls, text: str, *, default_repository: str = DEFAULT_REPOSITORY) -> "PackageIdentity":
        """Parse `repo/name`, or a bare `name` in the default repository."""
        repository, sep, name = text.partition("/")
        if not sep:
            return cls(default_repository, repository)
        return cls(repository, name)

    def to_dict(self) -> dict[str, str]:
        return {"repo": self.repository, "name": self.name}


class Comparison(str, Enum):
    """Result of comparing a stored fingerprint against a current one."""

    SAME = "same"
    DIFFERENT = "different"


@dataclass(frozen=True)
class Fingerprint:
    """Version plus content marker of an upstream revision."""

    version: str
    content_marker: str

    def __str__(self) -> str:
        return f"{self.version} ({self.content_marker})"

    def to_dict(self) -> dict[str, str]:
        return {"version": self.version, "content_marker": self.content_marker}

    @classmethod
    def from_upstream(cls, record: Mapping[str, Any], *, package: str = "") -> "Fingerprint":
        """Build a fingerprint from a decoded AUR RPC package record.

        Raises MalformedMetadata if the version or the LastModified marker is
        missing or has the wrong type. No default is ever substituted.
        """
        context = {"package": package or str(record.get("Name", ""))}

        version = record.get("Version")
        if not isinstance(version, str) or not version.strip():
            raise MalformedMetadata(
                "Upstream record has no usable Version.",
                context={**context, "value": repr(version)},
            )

        marker = record.get("LastModified")
        # bool is an int subclass; reject it explicitly
        if isinstance(marker, bool) or not isinstance(marker, (int, str)):
            raise MalformedMetadata(
                "Upstream record has no usable LastModified marker.",
                context={**context, "value": repr(marker)},
            )
        if isinstance(marker, str) and not marker.strip():
            raise MalformedMetadata("Upstream record has an empty LastModified marker.", context=context)

        return cls(version=version, content_marker=str(marker))


def compare(stored: Fingerprint, current: Fingerprint) -> Comparison:
    """Structural comparison, no fuzzy version logic."""
    if stored.version == current.version and stored.content_marker == current.content_marker:
        return Comparison.SAME
    return Comparison.DIFFERENT


@dataclass(frozen=True)
class UpstreamSnapshot:
    """Upstream state of one package for a single fetch cycle.

    `fingerprint is None` means the package does not exist upstream (anymore).
    The maintainer fields are informational and never part of the fingerprint.
    """

    identity: PackageIdentity
    fingerprint: Fingerprint | None
    package_base: str | None = None
    maintainer: str | None = None
    co_maintainers: tuple[str, ...] = field(default_factory=tuple)
    out_of_date: int | None = None

    @property
    def exists(self) -> bool:
        return self.fingerprint is not None

    @property
    def maintainers(self) -> tuple[str, ...]:
        """Maintainer first, then co-maintainers; empty for orphans."""
        return tuple(m for m in (self.maintainer, *self.co_maintainers) if m)

    def to_dict(self) -> dict[str, Any]:
        return {
            "identity": self.identity.to_dict(),
            "fingerprint": self.fingerprint.to_dict() if self.fingerprint else None,
            "package_base": self.package_base,
            "maintainer": self.maintainer,
            "co_maintainers": list(self.co_maintainers),
            "out_of_date": self.out_of_date,
        }
