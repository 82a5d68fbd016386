"""Task list persisted through the encrypted store."""

from cipherstore.tasks.models import TASK_ENTITY, TASK_SCHEMA, Task
from cipherstore.tasks.repository import TaskRepository

__all__ = ["TASK_ENTITY", "TASK_SCHEMA", "Task", "TaskRepository"]
