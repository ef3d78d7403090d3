"""Tests for storage key builders."""

import pytest

from philter.services import storage_keys as keys


def test_static_keys_are_distinct() -> None:
    assert len(set(keys.STATIC_KEYS)) == len(keys.STATIC_KEYS)


def test_form_data_key() -> None:
    assert keys.form_data("income", "app-42") == "income_app-42"


def test_application_overrides_key() -> None:
    assert keys.application_overrides("app-42") == "application_overrides_app-42"


@pytest.mark.parametrize("section", ["", "Income", "lease_terms", "1profile", "a b"])
def test_form_data_rejects_ambiguous_sections(section: str) -> None:
    with pytest.raises(ValueError):
        keys.form_data(section, "app-1")


@pytest.mark.parametrize("application_id", ["", "a_b", "a/b", "a b"])
def test_builders_reject_unsafe_ids(application_id: str) -> None:
    with pytest.raises(ValueError):
        keys.form_data("profile", application_id)
    with pytest.raises(ValueError):
        keys.application_overrides(application_id)


def test_composed_keys_cannot_collide() -> None:
    # Without the underscore ban both of these would be "lease_terms_1".
    assert keys.form_data("lease-terms", "1") != keys.form_data("lease", "terms-1")


@pytest.mark.parametrize(
    ("key", "valid"),
    [
        ("philter_theme", True),
        ("income_app-1", True),
        ("ns:key.v2", True),
        ("", False),
        ("has space", False),
        ("x" * 201, False),
    ],
)
def test_is_valid_key(key: str, valid: bool) -> None:
    assert keys.is_valid_key(key) is valid


@pytest.mark.parametrize(
    ("section", "application_id"),
    [("philter", "applications"), ("philter", "rfis"), ("philter", "theme"), ("application", "overrides")],
)
def test_form_data_never_lands_in_reserved_namespaces(section: str, application_id: str) -> None:
    with pytest.raises(ValueError):
        keys.form_data(section, application_id)


def test_every_form_section_builds_outside_static_keys() -> None:
    built = {keys.form_data(section, "applications") for section in keys.FORM_SECTIONS}

    assert built.isdisjoint(keys.STATIC_KEYS)
