"""SQLite store whose declared fields are encrypted at rest.

Opening the store fetches the key material, builds the shared cipher,
registers one transformer per supported type, and only then opens the
database file. Reads and writes go through a ``StoreSession``: writes are
staged and committed together by ``save_changes``.

Typical lifecycle::

    store = EncryptedStore.from_settings(get_settings(), [TASK_SCHEMA])
    store.open()

    session = store.session()
    session.insert("Task", {"title": "buy milk"})
    session.save_changes()

    rows = session.fetch("Task")
"""

import sqlite3
from collections.abc import Callable, Generator, Iterable
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from cipherstore.config import Settings
from cipherstore.errors import FatalConfigurationError
from cipherstore.logging import get_logger
from cipherstore.persistence.registry import TransformerRegistry
from cipherstore.persistence.schema import EntitySchema, SchemaError
from cipherstore.persistence.transformers import build_transformers
from cipherstore.security.cipher import build_cipher
from cipherstore.security.keys import KeyManager
from cipherstore.security.keystore import FileKeyStore, SecureKeyStore

log = get_logger("cipherstore.persistence.store")

Completion = Callable[[bool], None]


class StoreOpenError(FatalConfigurationError):
    """The database file could not be opened or initialized."""

    pass


class StoreNotOpenError(RuntimeError):
    """The store was used before ``open()`` or after ``close()``."""

    pass


@dataclass
class Record:
    """A decrypted row. Unreadable fields are None."""

    entity: str
    id: int
    values: dict[str, Any] = field(default_factory=dict)

    def __getitem__(self, name: str) -> Any:
        return self.values[name]


@dataclass
class _Change:
    sql: str
    params: tuple[Any, ...]


class EncryptedStore:
    """Persistence orchestrator for encrypted entities.

    Thread-safe via connection-per-operation pattern once open.
    """

    def __init__(
        self,
        db_path: str | Path,
        key_manager: KeyManager,
        schemas: Iterable[EntitySchema],
        *,
        on_ready: Callable[[], None] | None = None,
    ) -> None:
        """Initialize the store without touching keys or the database.

        Args:
            db_path: Path to the SQLite database file.
            key_manager: Source of the installation's key and IV.
            schemas: Entities this store holds.
            on_ready: Called once the store has been opened.
        """
        self._db_path = Path(db_path)
        self._key_manager = key_manager
        self._schemas = {schema.name: schema for schema in schemas}
        self._registry = TransformerRegistry()
        self._on_ready = on_ready
        self._is_open = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        schemas: Iterable[EntitySchema],
        *,
        key_store: SecureKeyStore | None = None,
        on_ready: Callable[[], None] | None = None,
    ) -> "EncryptedStore":
        """Build a store from settings, using a file key store by default."""
        key_store = key_store or FileKeyStore(settings.keystore_path)
        return cls(
            settings.database_path,
            KeyManager.from_settings(key_store, settings),
            schemas,
            on_ready=on_ready,
        )

    @property
    def is_open(self) -> bool:
        return self._is_open

    @property
    def registry(self) -> TransformerRegistry:
        return self._registry

    def open(self) -> None:
        """Set up encryption and open the database.

        Raises:
            KeyMaterialError: If the key or IV cannot be obtained.
            CipherConfigurationError: If the key material is malformed.
            StoreOpenError: If the database cannot be initialized.
            SchemaError: If a field names a transformer that does not exist.
        """
        if self._is_open:
            return

        if not self._registry.is_registered:
            cipher = build_cipher(self._key_manager)
            self._registry.register_transformers(build_transformers(cipher))

        for schema in self._schemas.values():
            for field_name, spec in schema.fields.items():
                if spec.transformer_name not in self._registry.names():
                    raise SchemaError(
                        f"{schema.name}.{field_name} is bound to unknown transformer "
                        f"'{spec.transformer_name}'"
                    )

        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            with self._get_connection() as conn:
                for schema in self._schemas.values():
                    conn.execute(schema.create_table_sql())
                conn.commit()
        except (OSError, sqlite3.Error) as e:
            log.error("store_open_failed", path=str(self._db_path), error=str(e))
            raise StoreOpenError(f"Could not open store at {self._db_path}: {e}") from e

        self._is_open = True
        log.info("store_opened", path=str(self._db_path), entities=sorted(self._schemas))

        if self._on_ready is not None:
            self._on_ready()

    def close(self) -> None:
        self._is_open = False
        log.info("store_closed", path=str(self._db_path))

    def __enter__(self) -> "EncryptedStore":
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def session(self) -> "StoreSession":
        """Create a unit of work against this store."""
        self._require_open()
        return StoreSession(self)

    # ------------------------------------------------------------------
    # Internal helpers used by StoreSession
    # ------------------------------------------------------------------

    def _require_open(self) -> None:
        if not self._is_open:
            raise StoreNotOpenError("Store is not open")

    def _schema(self, entity: str) -> EntitySchema:
        try:
            return self._schemas[entity]
        except KeyError:
            raise SchemaError(f"Unknown entity: {entity}") from None

    def _encode(self, schema: EntitySchema, values: dict[str, Any]) -> dict[str, bytes | None]:
        schema.check_fields(values)
        return {
            name: self._registry.get(schema.fields[name].transformer_name).forward(value)
            for name, value in values.items()
        }

    def _decode(self, schema: EntitySchema, row: sqlite3.Row) -> Record:
        values = {
            name: self._registry.get(spec.transformer_name).reverse(row[name])
            for name, spec in schema.fields.items()
        }
        return Record(entity=schema.name, id=row["id"], values=values)

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a database connection with row factory."""
        conn = sqlite3.connect(str(self._db_path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()


class StoreSession:
    """Stages writes and reads decrypted records.

    ``fetch`` sees committed data only; staged changes become visible after
    ``save_changes``.
    """

    def __init__(self, store: EncryptedStore) -> None:
        self._store = store
        self._pending: list[_Change] = []

    @property
    def has_changes(self) -> bool:
        return bool(self._pending)

    def insert(self, entity: str, values: dict[str, Any]) -> None:
        """Stage a new row. Fields left out are stored as absent."""
        self._store._require_open()
        schema = self._store._schema(entity)
        encoded = self._store._encode(schema, values)
        if encoded:
            columns = ", ".join(f'"{name}"' for name in encoded)
            placeholders = ", ".join("?" for _ in encoded)
            sql = f'INSERT INTO "{entity}" ({columns}) VALUES ({placeholders})'  # nosec B608
        else:
            sql = f'INSERT INTO "{entity}" DEFAULT VALUES'  # nosec B608
        self._pending.append(_Change(sql, tuple(encoded.values())))

    def update(self, entity: str, row_id: int, values: dict[str, Any]) -> None:
        """Stage new values for the given fields of one row."""
        self._store._require_open()
        schema = self._store._schema(entity)
        encoded = self._store._encode(schema, values)
        if not encoded:
            return
        assignments = ", ".join(f'"{name}" = ?' for name in encoded)
        self._pending.append(
            _Change(
                f'UPDATE "{entity}" SET {assignments} WHERE id = ?',  # nosec B608
                (*encoded.values(), row_id),
            )
        )

    def delete(self, entity: str, row_id: int) -> None:
        self._store._require_open()
        self._store._schema(entity)
        sql = f'DELETE FROM "{entity}" WHERE id = ?'  # nosec B608
        self._pending.append(_Change(sql, (row_id,)))

    def delete_all(self, entity: str) -> None:
        self._store._require_open()
        self._store._schema(entity)
        self._pending.append(_Change(f'DELETE FROM "{entity}"', ()))  # nosec B608

    def rollback(self) -> None:
        """Discard staged changes."""
        self._pending.clear()

    def fetch(
        self,
        entity: str,
        predicate: Callable[[Record], bool] | None = None,
        limit: int | None = None,
    ) -> list[Record]:
        """Read and decrypt rows in insertion order.

        Args:
            entity: Entity name.
            predicate: Optional filter applied to decrypted records.
            limit: Maximum number of records to return.

        Returns:
            Matching records; empty if there are none.
        """
        self._store._require_open()
        schema = self._store._schema(entity)
        with self._store._get_connection() as conn:
            rows = conn.execute(f'SELECT * FROM "{entity}" ORDER BY id').fetchall()  # nosec B608

        records: list[Record] = []
        for row in rows:
            record = self._store._decode(schema, row)
            if predicate is not None and not predicate(record):
                continue
            records.append(record)
            if limit is not None and len(records) >= limit:
                break
        return records

    def save_changes(self, completion: Completion | None = None) -> bool:
        """Commit staged changes in one transaction.

        Failures are logged and reported through the return value and
        ``completion``; staged changes are kept so the caller may retry.
        Saving on a closed store is reported the same way.

        Args:
            completion: Called with the outcome.

        Returns:
            True if everything was committed (or nothing was staged).
        """
        success = True
        if not self._store.is_open:
            log.warning("save_changes_store_closed", count=len(self._pending))
            success = False
        elif self._pending:
            try:
                with self._store._get_connection() as conn:
                    with conn:
                        for change in self._pending:
                            conn.execute(change.sql, change.params)
                log.debug("changes_saved", count=len(self._pending))
                self._pending.clear()
            except (sqlite3.Error, OverflowError):
                # OverflowError: bound int outside SQLite INTEGER range
                log.exception("save_changes_failed", count=len(self._pending))
                success = False

        if completion is not None:
            completion(success)
        return success
