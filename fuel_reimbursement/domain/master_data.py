"""Master-data diff between an external personnel source and the registry.

Only name and sector code are compared for existing records; the registry's
group assignment is never diffed or altered by a sync.
An unknown external id whose sector and group are already held by an active
record is reported as a conflict (a probable device swap) instead of a new hire.
"""
from __future__ import annotations

import logging
import math
from typing import Iterable, Mapping, Sequence

from .coercion import parse_external_id, parse_sector_code
from .models import CollaboratorRecord, DiffItem, FieldChange
from .results import DiffResult

logger = logging.getLogger(__name__)

ID_KEYS = ("id_pulsus", "external_id", "id")
NAME_KEYS = ("nome", "name")
SECTOR_KEYS = ("codigo_setor", "sector_code", "setor", "sector")
GROUP_KEYS = ("grupo", "group", "cargo")


def _lookup(row: Mapping[str, object], keys: Sequence[str]) -> object:
    lowered = {str(key).strip().lower(): value for key, value in row.items()}
    for key in keys:
        value = lowered.get(key)
        if value is None:
            continue
        if isinstance(value, float) and math.isnan(value):
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def _text(value: object) -> str:
    return "" if value is None else str(value).strip()


class MasterDataDiff:
    def __init__(self, catch_all_group: str = "Outros", default_groups: Iterable[str] = ("Vendedor", "Promotor")) -> None:
        self._catch_all = catch_all_group
        self._default_groups = tuple(default_groups)

    def known_groups(self, registry: Sequence[CollaboratorRecord]) -> set[str]:
        groups = {c.group for c in registry if c.active and c.group}
        groups.update(self._default_groups)
        return {group.strip().casefold() for group in groups}

    def resolve_group(self, group: str, whitelist: set[str]) -> str:
        if group and group.strip().casefold() in whitelist:
            return group.strip()
        return self._catch_all

    def diff(self, external_rows: Sequence[Mapping[str, object]], registry: Sequence[CollaboratorRecord]) -> DiffResult:
        whitelist = self.known_groups(registry)
        by_external_id = {c.external_id: c for c in registry}
        claimed: set[int] = set()

        new: list[DiffItem] = []
        changed: list[DiffItem] = []
        conflicts: list[DiffItem] = []
        skipped = 0
        seen: set[int] = set()
        for row in external_rows:
            external_id = parse_external_id(_lookup(row, ID_KEYS))
            name = _text(_lookup(row, NAME_KEYS))
            if external_id is None or not name or external_id in seen:
                skipped += 1
                continue
            seen.add(external_id)
            sector_code = parse_sector_code(_lookup(row, SECTOR_KEYS))

            local = by_external_id.get(external_id)
            if local is None:
                group = self.resolve_group(_text(_lookup(row, GROUP_KEYS)), whitelist)
                holder = self._sector_holder(registry, sector_code, group, claimed)
                if holder is not None:
                    claimed.add(holder.collaborator_id)
                    conflicts.append(
                        DiffItem(
                            kind="conflict",
                            external_id=external_id,
                            name=name,
                            sector_code=sector_code,
                            group=holder.group,
                            changes=(
                                FieldChange(field="external_id", old_value=holder.external_id, new_value=external_id),
                            ),
                            collaborator_id=holder.collaborator_id,
                        )
                    )
                    continue
                new.append(
                    DiffItem(kind="new", external_id=external_id, name=name, sector_code=sector_code, group=group)
                )
                continue

            changes = []
            if local.name != name:
                changes.append(FieldChange(field="name", old_value=local.name, new_value=name))
            if local.sector_code != sector_code:
                changes.append(FieldChange(field="sector_code", old_value=local.sector_code, new_value=sector_code))
            if changes:
                changed.append(
                    DiffItem(
                        kind="changed",
                        external_id=external_id,
                        name=name,
                        sector_code=sector_code,
                        group=local.group,
                        changes=tuple(changes),
                        collaborator_id=local.collaborator_id,
                    )
                )

        logger.info(
            "Registry diff: %d external rows, %d new, %d changed, %d conflicts, %d skipped",
            len(external_rows),
            len(new),
            len(changed),
            len(conflicts),
            skipped,
        )
        return DiffResult(
            new=tuple(new),
            changed=tuple(changed),
            total_external=len(external_rows),
            skipped=skipped,
            conflicts=tuple(conflicts),
        )

    @staticmethod
    def _sector_holder(
        registry: Sequence[CollaboratorRecord], sector_code: int, group: str, claimed: set[int]
    ) -> CollaboratorRecord | None:
        # An unknown id landing on an occupied sector and group usually means a device swap.
        if not sector_code:
            return None
        wanted = group.strip().casefold()
        for local in registry:
            if not local.active or local.collaborator_id in claimed:
                continue
            if local.sector_code == sector_code and local.group.strip().casefold() == wanted:
                return local
        return None
