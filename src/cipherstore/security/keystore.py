"""Secure key stores: named hex strings persisted beyond the process.

The key manager only needs ``get`` and ``set``. ``FileKeyStore`` keeps the
entries in a JSON file readable by the owning user only; ``MemoryKeyStore``
is for tests and ephemeral stores.
"""

import json
import os
from pathlib import Path
from typing import Protocol

from cipherstore.errors import KeyStoreError
from cipherstore.logging import get_logger

log = get_logger("cipherstore.security.keystore")

KEYSTORE_FILE_MODE = 0o600


class SecureKeyStore(Protocol):
    """Opaque string store addressed by name.

    Implementations raise ``KeyStoreError`` when the backing storage cannot
    be read or written.
    """

    def get(self, name: str) -> str | None:
        """Return the stored value, or None if the entry does not exist."""
        ...

    def set(self, name: str, value: str) -> None:
        """Persist ``value`` under ``name``."""
        ...


class MemoryKeyStore:
    """In-process key store. Entries die with the instance."""

    def __init__(self, entries: dict[str, str] | None = None) -> None:
        self._entries: dict[str, str] = dict(entries or {})

    def get(self, name: str) -> str | None:
        return self._entries.get(name)

    def set(self, name: str, value: str) -> None:
        self._entries[name] = value

    def __contains__(self, name: object) -> bool:
        return name in self._entries


class FileKeyStore:
    """JSON-file key store.

    The file is rewritten atomically on every ``set`` (write to a sibling
    temp file, then ``os.replace``) and created with mode 0600.
    """

    def __init__(self, path: str | Path) -> None:
        """Initialize the file key store.

        Args:
            path: Location of the JSON file. Created on first ``set``.
        """
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def get(self, name: str) -> str | None:
        """Read a single entry.

        Raises:
            KeyStoreError: If the file exists but cannot be read or parsed.
        """
        value = self._load().get(name)
        if value is not None and not isinstance(value, str):
            raise KeyStoreError(f"Key store entry '{name}' is not a string")
        return value

    def set(self, name: str, value: str) -> None:
        """Write a single entry, keeping all others.

        Raises:
            KeyStoreError: If the file cannot be written.
        """
        entries = self._load()
        entries[name] = value
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, KEYSTORE_FILE_MODE)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(entries, f)
            os.replace(tmp_path, self._path)
        except OSError as e:
            log.error("keystore_write_failed", path=str(self._path), error=str(e))
            raise KeyStoreError(f"Could not write key store {self._path}: {e}") from e
        log.debug("keystore_entry_written", path=str(self._path), name=name)

    def _load(self) -> dict[str, object]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            log.error("keystore_read_failed", path=str(self._path), error=str(e))
            raise KeyStoreError(f"Could not read key store {self._path}: {e}") from e
        if not isinstance(data, dict):
            raise KeyStoreError(f"Key store {self._path} does not contain a JSON object")
        return data
