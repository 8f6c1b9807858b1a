"""Per-item record of the values a line item had before it was edited."""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional

# Stored JSON values are coerced back through these on decode
FIELD_TYPES = {
    "price": lambda value: Decimal(str(value)),
    "quantity": int,
}


@dataclass
class AuditEntry:
    """Prior value of one field plus an optional human-readable note."""

    prior_value: Any
    note: str = ""


@dataclass
class ValueAudit:
    """
    Mapping from field name to its pre-edit value.

    Merge rules:
        - the first recorded prior value wins; later edits never replace it
        - a non-empty note replaces the stored note
    """

    entries: Dict[str, AuditEntry] = field(default_factory=dict)

    @classmethod
    def from_json(cls, blob: Optional[dict]) -> "ValueAudit":
        """Decode the `original_values` column ({field: {"value", "note"}})."""
        entries = {}
        for name, data in (blob or {}).items():
            if not isinstance(data, dict) or "value" not in data:
                continue
            coerce = FIELD_TYPES.get(name, lambda value: value)
            entries[name] = AuditEntry(
                prior_value=coerce(data["value"]),
                note=data.get("note") or "",
            )
        return cls(entries)

    def to_json(self) -> Optional[dict]:
        if not self.entries:
            return None
        blob = {}
        for name, entry in self.entries.items():
            value = entry.prior_value
            if isinstance(value, Decimal):
                value = float(value)
            blob[name] = {"value": value, "note": entry.note}
        return blob

    def record(self, field_name: str, prior_value: Any, note: Optional[str] = None) -> AuditEntry:
        """Record a field's value before an edit, following the merge rules."""
        entry = self.entries.get(field_name)
        if entry is None:
            entry = AuditEntry(prior_value=prior_value, note=note or "")
            self.entries[field_name] = entry
        elif note:
            entry.note = note
        return entry

    def has(self, field_name: str) -> bool:
        return field_name in self.entries

    def prior_value(self, field_name: str, default: Any = None) -> Any:
        entry = self.entries.get(field_name)
        return entry.prior_value if entry else default

    def note(self, field_name: str) -> Optional[str]:
        entry = self.entries.get(field_name)
        return entry.note if entry else None
