from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from aurtrust.errors import MalformedMetadata
from aurtrust.trust.fingerprint import Comparison, Fingerprint, PackageIdentity, compare

fingerprints = st.builds(
    Fingerprint,
    version=st.sampled_from(["1.0", "1.0-1", "1.1", "2.0"]),
    content_marker=st.sampled_from(["100", "110", "5"]),
)


@given(fingerprints)
def test_compare_reflexive(a: Fingerprint) -> None:
    assert compare(a, a) is Comparison.SAME
    assert a == a


@given(fingerprints, fingerprints)
def test_compare_symmetric(a: Fingerprint, b: Fingerprint) -> None:
    assert compare(a, b) is compare(b, a)


@given(fingerprints, fingerprints, fingerprints)
def test_compare_transitive(a: Fingerprint, b: Fingerprint, c: Fingerprint) -> None:
    if compare(a, b) is Comparison.SAME and compare(b, c) is Comparison.SAME:
        assert compare(a, c) is Comparison.SAME


def test_compare_requires_both_fields() -> None:
    base = Fingerprint("1.0", "100")
    assert compare(base, Fingerprint("1.0", "101")) is Comparison.DIFFERENT
    assert compare(base, Fingerprint("1.0-1", "100")) is Comparison.DIFFERENT


def test_fingerprint_from_upstream() -> None:
    fp = Fingerprint.from_upstream({"Name": "foo", "Version": "1.1-2", "LastModified": 1700000000})
    assert fp == Fingerprint("1.1-2", "1700000000")


@pytest.mark.parametrize(
    "record",
    [
        {"Name": "foo", "LastModified": 100},
        {"Name": "foo", "Version": "", "LastModified": 100},
        {"Name": "foo", "Version": 1.0, "LastModified": 100},
        {"Name": "foo", "Version": "1.0"},
        {"Name": "foo", "Version": "1.0", "LastModified": None},
        {"Name": "foo", "Version": "1.0", "LastModified": True},
        {"Name": "foo", "Version": "1.0", "LastModified": 1.5},
        {"Name": "foo", "Version": "1.0", "LastModified": "  "},
    ],
)
def test_fingerprint_from_malformed_upstream(record: dict) -> None:
    with pytest.raises(MalformedMetadata):
        Fingerprint.from_upstream(record)


def test_identity_parse_and_order() -> None:
    assert PackageIdentity.parse("foo") == PackageIdentity("aur", "foo")
    assert PackageIdentity.parse("custom/foo") == PackageIdentity("custom", "foo")
    assert PackageIdentity.parse("foo", default_repository="mine") == PackageIdentity("mine", "foo")
    assert str(PackageIdentity("aur", "foo")) == "aur/foo"

    ids = [PackageIdentity("aur", "zsh-foo"), PackageIdentity("aur", "Bar"), PackageIdentity("a", "z")]
    assert sorted(ids) == [PackageIdentity("a", "z"), PackageIdentity("aur", "Bar"), PackageIdentity("aur", "zsh-foo")]


def test_identity_is_case_sensitive() -> None:
    assert PackageIdentity("aur", "Foo") != PackageIdentity("aur", "foo")


@pytest.mark.parametrize("text", ["", "aur/", "/foo", "aur/foo/bar", "aur/ foo"])
def test_identity_parse_rejects_invalid(text: str) -> None:
    with pytest.raises(ValueError):
        PackageIdentity.parse(text)
