"""Storage keys and key builders.

Every key written through the storage service comes from this module so
unrelated features cannot collide. Dynamic keys are composed from validated
parts: sections never contain ``_`` and ids are restricted to
``[A-Za-z0-9-]``, so ``{section}_{id}`` splits back unambiguously. The
sections ``philter`` and ``application`` are reserved for the static and
override namespaces.
"""

from __future__ import annotations

import re
from typing import NewType

StorageKey = NewType("StorageKey", str)

APPLICATIONS = StorageKey("philter_applications")
RFIS = StorageKey("philter_rfis")
DECISIONS = StorageKey("philter_decisions")
CURRENT_USER = StorageKey("philter_current_user_id")
THEME = StorageKey("philter_theme")

STATIC_KEYS: tuple[StorageKey, ...] = (APPLICATIONS, RFIS, DECISIONS, CURRENT_USER, THEME)

# Sections whose form data is folded into an application on sync.
FORM_SECTIONS: tuple[str, ...] = ("profile", "income", "financials", "documents", "disclosures")

_SECTION_RE = re.compile(r"^[a-z][a-z0-9-]*$")
_ID_RE = re.compile(r"^[A-Za-z0-9-]+$")
_KEY_RE = re.compile(r"^[A-Za-z0-9_.:-]{1,200}$")

_RESERVED_SECTIONS = frozenset({"philter", "application"})


def _check_id(application_id: str) -> str:
    if not _ID_RE.match(application_id):
        raise ValueError(f"invalid application id: {application_id!r}")
    return application_id


def form_data(section: str, application_id: str) -> StorageKey:
    """Key holding one form section's draft for an application."""
    if not _SECTION_RE.match(section) or section in _RESERVED_SECTIONS:
        raise ValueError(f"invalid form section: {section!r}")
    key = StorageKey(f"{section}_{_check_id(application_id)}")
    if key in STATIC_KEYS:
        raise ValueError(f"form data key {key!r} collides with a static key")
    return key


def application_overrides(application_id: str) -> StorageKey:
    """Key holding locally edited overrides for an application."""
    return StorageKey(f"application_overrides_{_check_id(application_id)}")


def is_valid_key(key: str) -> bool:
    """Whether ``key`` is acceptable from an external caller."""
    return bool(_KEY_RE.match(key))
