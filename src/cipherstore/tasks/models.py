"""Task entity stored with every field encrypted."""

import uuid
from dataclasses import dataclass
from datetime import datetime

from cipherstore.persistence.schema import EntitySchema, FieldSpec
from cipherstore.persistence.store import Record
from cipherstore.persistence.transformers import SupportedType

TASK_ENTITY = "Task"

TASK_SCHEMA = EntitySchema(
    name=TASK_ENTITY,
    fields={
        "task_id": FieldSpec(SupportedType.UUID),
        "title": FieldSpec(SupportedType.TEXT),
        "creation_date": FieldSpec(SupportedType.TIMESTAMP),
    },
)


@dataclass
class Task:
    """A to-do item. Fields that could not be decrypted are None."""

    id: int
    task_id: uuid.UUID | None
    title: str | None
    creation_date: datetime | None

    @classmethod
    def from_record(cls, record: Record) -> "Task":
        return cls(
            id=record.id,
            task_id=record.values.get("task_id"),
            title=record.values.get("title"),
            creation_date=record.values.get("creation_date"),
        )
