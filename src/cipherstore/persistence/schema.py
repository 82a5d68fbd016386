"""Entity declarations that bind fields to transformers by name.

Every declared field is stored as an opaque BLOB column holding the
transformer's ciphertext, never as native typed data.
"""

import re
from dataclasses import dataclass, field

from cipherstore.persistence.transformers import SupportedType

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class SchemaError(Exception):
    """An entity or field is unknown or badly declared."""

    pass


@dataclass(frozen=True)
class FieldSpec:
    """A single encrypted field."""

    kind: SupportedType

    @property
    def transformer_name(self) -> str:
        return self.kind.transformer_name


@dataclass(frozen=True)
class EntitySchema:
    """An entity (table) made of encrypted fields.

    Rows also carry an integer ``id`` assigned by the store.
    """

    name: str
    fields: dict[str, FieldSpec] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not _IDENTIFIER.match(self.name):
            raise SchemaError(f"Invalid entity name: {self.name!r}")
        if not self.fields:
            raise SchemaError(f"Entity '{self.name}' declares no fields")
        for field_name in self.fields:
            if not _IDENTIFIER.match(field_name) or field_name == "id":
                raise SchemaError(f"Invalid field name on '{self.name}': {field_name!r}")

    def check_fields(self, values: dict[str, object]) -> None:
        """Raise SchemaError if ``values`` names a field this entity lacks."""
        unknown = set(values) - set(self.fields)
        if unknown:
            raise SchemaError(f"Unknown fields for '{self.name}': {sorted(unknown)}")

    def create_table_sql(self) -> str:
        columns = ", ".join(f'"{name}" BLOB' for name in self.fields)
        return (
            f'CREATE TABLE IF NOT EXISTS "{self.name}" '
            f"(id INTEGER PRIMARY KEY AUTOINCREMENT, {columns})"
        )
