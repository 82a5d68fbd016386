"""CRUD access to encrypted tasks."""

import uuid
from collections.abc import Callable
from datetime import UTC, datetime

from cipherstore.logging import get_logger
from cipherstore.persistence.store import EncryptedStore
from cipherstore.tasks.models import TASK_ENTITY, Task

log = get_logger("cipherstore.tasks.repository")


class TaskRepository:
    """Creates, reads, updates and deletes tasks.

    Every write commits immediately and returns whether the save succeeded.
    """

    def __init__(self, store: EncryptedStore) -> None:
        self._store = store

    def create_task(self, title: str) -> bool:
        """Store a new task with a fresh identifier and creation date."""
        session = self._store.session()
        session.insert(
            TASK_ENTITY,
            {
                "task_id": uuid.uuid4(),
                "title": title,
                "creation_date": datetime.now(UTC),
            },
        )
        return session.save_changes()

    def read_all_tasks(self) -> list[Task]:
        records = self._store.session().fetch(TASK_ENTITY)
        return [Task.from_record(record) for record in records]

    def read_task(self, predicate: Callable[[Task], bool]) -> Task | None:
        """Return the first task matching ``predicate``, if any."""
        records = self._store.session().fetch(
            TASK_ENTITY,
            predicate=lambda record: predicate(Task.from_record(record)),
            limit=1,
        )
        return Task.from_record(records[0]) if records else None

    def update_task(self, identifier: uuid.UUID, title: str) -> bool:
        """Change a task's title.

        Returns:
            False if no task has ``identifier`` or the save failed.
        """
        task = self.read_task(lambda t: t.task_id == identifier)
        if task is None:
            log.warning("task_not_found", task_id=str(identifier))
            return False

        session = self._store.session()
        session.update(TASK_ENTITY, task.id, {"title": title})
        return session.save_changes()

    def delete(self, identifier: uuid.UUID) -> bool:
        """Delete a task. Deleting a task that does not exist succeeds."""
        task = self.read_task(lambda t: t.task_id == identifier)
        if task is None:
            return True

        session = self._store.session()
        session.delete(TASK_ENTITY, task.id)
        return session.save_changes()

    def delete_all(self) -> bool:
        session = self._store.session()
        session.delete_all(TASK_ENTITY)
        return session.save_changes()
