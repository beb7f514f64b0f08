"""Reference (dropdown) data and selected-name display helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping


@dataclass(frozen=True)
class ReferenceItem:
    id: str
    name: str
    code: str = ""
    haz_code: str = ""


@dataclass(frozen=True)
class ReferenceData:
    contract_types: tuple[ReferenceItem, ...] = ()
    waste_types: tuple[ReferenceItem, ...] = ()
    haz_types: tuple[ReferenceItem, ...] = ()

    @classmethod
    def from_definitions(
        cls,
        contract_types: Iterable[Mapping[str, Any]] = (),
        waste_types: Iterable[Mapping[str, Any]] = (),
        haz_types: Iterable[Mapping[str, Any]] = (),
    ) -> ReferenceData:
        """Build from raw definition records.

        Definition payloads nest their attributes under "data"; flat
        records are accepted as well. Entries without an id are dropped.
        """
        return cls(
            contract_types=tuple(_items(contract_types)),
            waste_types=tuple(_items(waste_types)),
            haz_types=tuple(_items(haz_types)),
        )


def _items(raw: Iterable[Mapping[str, Any]]) -> Iterable[ReferenceItem]:
    for rec in raw:
        data = rec.get("data") if isinstance(rec.get("data"), Mapping) else rec
        item_id = str(rec.get("id") or "").strip()
        if not item_id:
            continue
        code = str(data.get("code") or "")
        name = str(data.get("name") or code or "Unknown")
        haz_code = str(data.get("hazCode") or data.get("haz_code") or "")
        yield ReferenceItem(id=item_id, name=name, code=code, haz_code=haz_code)


def _find(items: Iterable[ReferenceItem], item_id: Any) -> ReferenceItem | None:
    if not item_id:
        return None
    wanted = str(item_id)
    for item in items:
        if item.id == wanted:
            return item
    return None


def contract_type_name(data: ReferenceData, contract_type_id: Any) -> str | None:
    item = _find(data.contract_types, contract_type_id)
    return item.name if item else None


def waste_source_name(data: ReferenceData, waste_source_id: Any) -> str | None:
    item = _find(data.waste_types, waste_source_id)
    return (item.name or None) if item else None


def haz_code_name(data: ReferenceData, haz_waste_id: Any) -> str | None:
    """Display name, suffixed with the hazard code when it differs from the name."""
    item = _find(data.haz_types, haz_waste_id)
    if item is None:
        return None
    code = item.haz_code or item.code
    display = item.name or item.code
    if code and code != display:
        return f"{display} ({code})"
    return display
