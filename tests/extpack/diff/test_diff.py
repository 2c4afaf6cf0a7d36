from pathlib import Path

import pytest

from extpack.diff.diff import changedSince, unpublished
from extpack.registry import ExtensionId, Registry, RegistryEntry


def reg(*pairs: tuple[str, str]) -> Registry:
    return Registry(
        (ExtensionId(extensionId), RegistryEntry(path=Path(extensionId), version=version))
        for extensionId, version in pairs
    )


CURRENT = reg(("gamma", "1.0.0"), ("alpha", "0.2.0"), ("beta", "3.1.4"), ("delta", "0.0.1"))


def test_changed_since_itself_is_empty():
    assert changedSince(CURRENT, CURRENT) == []


def test_changed_reports_bumped_and_new_ids_in_current_order():
    baseline = reg(("alpha", "0.1.0"), ("beta", "3.1.4"), ("gamma", "1.0.0"))

    assert changedSince(CURRENT, baseline) == ["alpha", "delta"]


def test_changed_against_empty_baseline_selects_everything():
    assert changedSince(CURRENT, reg()) == ["gamma", "alpha", "beta", "delta"]


def test_ids_removed_from_current_are_not_reported():
    baseline = reg(("gamma", "1.0.0"), ("alpha", "0.2.0"), ("beta", "3.1.4"), ("delta", "0.0.1"), ("gone", "1.0.0"))
    assert changedSince(CURRENT, baseline) == []


def test_version_downgrade_counts_as_change():
    baseline = reg(("gamma", "2.0.0"), ("alpha", "0.2.0"), ("beta", "3.1.4"), ("delta", "0.0.1"))
    assert changedSince(CURRENT, baseline) == ["gamma"]


@pytest.mark.parametrize(
    "baselinePairs, expectEmpty",
    [
        ((("gamma", "1.0.0"), ("alpha", "0.2.0"), ("beta", "3.1.4"), ("delta", "0.0.1")), True),
        ((("delta", "0.0.1"), ("beta", "3.1.4"), ("alpha", "0.2.0"), ("gamma", "1.0.0")), True),
        ((("gamma", "1.0.0"), ("alpha", "0.2.0"), ("beta", "3.1.4")), False),
        ((("gamma", "1.0.0"), ("alpha", "0.2.0"), ("beta", "3.1.5"), ("delta", "0.0.1")), False),
    ],
)
def test_changed_is_empty_exactly_when_every_version_matches(baselinePairs, expectEmpty):
    assert (changedSince(CURRENT, reg(*baselinePairs)) == []) is expectEmpty


def test_unpublished_selects_missing_versions_and_unknown_ids():
    published = {
        ExtensionId("gamma"): {"0.9.0", "1.0.0"},
        ExtensionId("alpha"): {"0.1.0"},
        ExtensionId("beta"): ["3.1.4"],
    }

    assert unpublished(CURRENT, published) == ["alpha", "delta"]


def test_unpublished_with_empty_index_selects_everything():
    assert unpublished(CURRENT, {}) == CURRENT.ids()


def test_unpublished_when_everything_is_published():
    published = {extensionId: {entry.version} for extensionId, entry in CURRENT.items()}
    assert unpublished(CURRENT, published) == []


def test_unpublished_with_empty_version_set_selects_id():
    published = {extensionId: {entry.version} for extensionId, entry in CURRENT.items()}
    published[ExtensionId("beta")] = set()
    assert unpublished(CURRENT, published) == ["beta"]
