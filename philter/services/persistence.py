"""Application, RFI and decision persistence on top of the storage service.

Local edits are stored as partial records and merged over seed data (the
records the caller already has, e.g. from the database) on read, with the
stored fields taking precedence. Records are plain JSON dicts; timestamps are
ISO-8601 strings.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from philter.services import storage_keys as keys
from philter.services.storage_service import StorageService

logger = logging.getLogger(__name__)

Record = dict[str, Any]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ApplicationPersistence:
    """Persistence helpers for board applications and their review trail."""

    def __init__(self, service: StorageService) -> None:
        self._service = service

    # Applications ------------------------------------------------------

    def get_applications(self, seed: list[Record]) -> list[Record]:
        """Return ``seed`` with locally persisted changes merged in."""
        persisted: list[Record] = self._service.get(keys.APPLICATIONS, [])
        if not persisted:
            return seed

        by_id = {record.get("id"): record for record in persisted}
        return [
            {**app, **by_id[app.get("id")]} if app.get("id") in by_id else app
            for app in seed
        ]

    def get_application(self, application_id: str, seed: list[Record]) -> Record | None:
        for app in self.get_applications(seed):
            if app.get("id") == application_id:
                return app
        return None

    def update_application(self, application_id: str, updates: Record) -> None:
        """Merge ``updates`` into the persisted record for ``application_id``."""

        def _apply(apps: list[Record]) -> list[Record]:
            apps = list(apps)
            for index, app in enumerate(apps):
                if app.get("id") == application_id:
                    apps[index] = {**app, **updates, "id": application_id}
                    return apps
            apps.append({**updates, "id": application_id})
            return apps

        self._service.update(keys.APPLICATIONS, [], _apply)

    def update_application_status(self, application_id: str, status: str) -> None:
        self.update_application(
            application_id,
            {"status": status, "lastActivityAt": _now_iso()},
        )

    # RFIs --------------------------------------------------------------

    def get_rfis(self, seed: list[Record]) -> list[Record]:
        """Return seed RFIs overridden by persisted ones, plus new persisted RFIs."""
        persisted: list[Record] = self._service.get(keys.RFIS, [])
        if not persisted:
            return seed

        by_id = {rfi.get("id"): rfi for rfi in persisted}
        seed_ids = {rfi.get("id") for rfi in seed}
        merged = [by_id.get(rfi.get("id"), rfi) for rfi in seed]
        merged.extend(rfi for rfi in persisted if rfi.get("id") not in seed_ids)
        return merged

    def get_rfis_for_application(self, application_id: str, seed: list[Record]) -> list[Record]:
        return [rfi for rfi in self.get_rfis(seed) if rfi.get("applicationId") == application_id]

    def save_rfis(self, rfis: list[Record]) -> None:
        self._service.set(keys.RFIS, rfis)

    def add_rfi(self, rfi: Record, seed: list[Record]) -> None:
        self.save_rfis([*self.get_rfis(seed), rfi])

    def update_rfi(self, rfi_id: str, updates: Record, seed: list[Record]) -> bool:
        """Merge ``updates`` into an RFI; returns False if no RFI has ``rfi_id``."""
        rfis = list(self.get_rfis(seed))
        for index, rfi in enumerate(rfis):
            if rfi.get("id") == rfi_id:
                rfis[index] = {**rfi, **updates}
                self.save_rfis(rfis)
                return True
        return False

    # Decisions ---------------------------------------------------------

    def get_decisions(self) -> list[Record]:
        return list(self._service.get(keys.DECISIONS, []))

    def get_decision_for_application(self, application_id: str) -> Record | None:
        for decision in self.get_decisions():
            if decision.get("applicationId") == application_id:
                return decision
        return None

    def save_decision(self, decision: Record) -> None:
        """Insert or replace the decision for ``decision['applicationId']``."""
        decisions = self.get_decisions()
        for index, existing in enumerate(decisions):
            if existing.get("applicationId") == decision.get("applicationId"):
                decisions[index] = decision
                break
        else:
            decisions.append(decision)
        self._service.set(keys.DECISIONS, decisions)

    # Form data ---------------------------------------------------------

    def sync_form_data_to_application(self, application_id: str) -> bool:
        """Copy drafted form sections into the application's ``sections``.

        Returns:
            True if at least one section had data and the application changed.
        """
        sections: list[Record] = []
        for section in keys.FORM_SECTIONS:
            data = self._service.get(keys.form_data(section, application_id), None)
            if data is None:
                continue
            sections.append(
                {
                    "key": section,
                    "label": section.capitalize(),
                    "isComplete": True,
                    "data": data,
                }
            )

        if not sections:
            return False

        self.update_application(application_id, {"sections": sections})
        logger.info(
            "persistence.form_data_synced",
            extra={"application_id": application_id, "section_count": len(sections)},
        )
        return True

    def clear_all(self) -> None:
        """Remove persisted applications, RFIs and decisions.

        The current user key is kept.
        """
        self._service.batch(
            [
                lambda: self._service.remove(keys.APPLICATIONS),
                lambda: self._service.remove(keys.RFIS),
                lambda: self._service.remove(keys.DECISIONS),
            ]
        )
