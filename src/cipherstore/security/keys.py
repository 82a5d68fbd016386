"""Key generation and persistence for field encryption.

The encryption key is derived with PBKDF2-HMAC-SHA256 from 32 random bytes
the first time it is requested, and the *derived* key is written to the
secure key store as hex. Later calls (and later processes) read it back
without deriving again. The IV follows the same get-or-generate pattern
without a derivation step.
"""

import os
from collections.abc import Callable
from dataclasses import dataclass, field

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from cipherstore.config import DEFAULT_KDF_SALT, Settings
from cipherstore.errors import KeyMaterialError, KeyStoreError
from cipherstore.logging import get_logger
from cipherstore.security.keystore import SecureKeyStore

log = get_logger("cipherstore.security.keys")

KEY_SIZE = 32  # AES-256
IV_SIZE = 16  # AES block size
SEED_SIZE = 32
PBKDF2_ITERATIONS = 4096

KEY_ENTRY_NAME = "encryption-key"
IV_ENTRY_NAME = "initialization-vector"


@dataclass(frozen=True)
class KeyMaterial:
    """Key and IV used to parameterize the field cipher."""

    key: bytes = field(repr=False)
    iv: bytes = field(repr=False)


class KeyManager:
    """Provides the installation's encryption key and IV.

    Values are cached after the first successful call. The get-or-generate
    sequence is not locked: perform the first access once at startup before
    fields are read or written concurrently.
    """

    def __init__(
        self,
        key_store: SecureKeyStore,
        *,
        salt: str | bytes = DEFAULT_KDF_SALT,
        iterations: int = PBKDF2_ITERATIONS,
        key_entry_name: str = KEY_ENTRY_NAME,
        iv_entry_name: str = IV_ENTRY_NAME,
    ) -> None:
        """Initialize the key manager.

        Args:
            key_store: Secure store that persists the hex-encoded entries.
            salt: PBKDF2 salt used when a new key is generated.
            iterations: PBKDF2 iteration count.
            key_entry_name: Key store entry for the encryption key.
            iv_entry_name: Key store entry for the IV.
        """
        self._key_store = key_store
        self._salt = salt.encode("utf-8") if isinstance(salt, str) else salt
        self._iterations = iterations
        self._key_entry_name = key_entry_name
        self._iv_entry_name = iv_entry_name
        self._key: bytes | None = None
        self._iv: bytes | None = None

    @classmethod
    def from_settings(cls, key_store: SecureKeyStore, settings: Settings) -> "KeyManager":
        """Build a key manager from application settings."""
        return cls(
            key_store,
            salt=settings.kdf_salt.get_secret_value(),
            iterations=settings.kdf_iterations,
            key_entry_name=settings.key_entry_name,
            iv_entry_name=settings.iv_entry_name,
        )

    def get_encryption_key(self) -> bytes:
        """Return the 256-bit encryption key, generating it on first use.

        Generation may take a noticeable moment because of PBKDF2.

        Raises:
            KeyMaterialError: If the key store fails, derivation fails, or the
                stored entry is not a valid key.
        """
        if self._key is None:
            self._key = self._get_bytes(self._key_entry_name, KEY_SIZE, self._generate_key)
        return self._key

    def get_iv(self) -> bytes:
        """Return the 128-bit initialization vector, generating it on first use.

        Raises:
            KeyMaterialError: If the key store fails or the stored entry is
                not a valid IV.
        """
        if self._iv is None:
            self._iv = self._get_bytes(
                self._iv_entry_name, IV_SIZE, lambda: os.urandom(IV_SIZE)
            )
        return self._iv

    def material(self) -> KeyMaterial:
        """Return key and IV together."""
        return KeyMaterial(key=self.get_encryption_key(), iv=self.get_iv())

    def _get_bytes(self, name: str, size: int, generator: Callable[[], bytes]) -> bytes:
        """Read ``name`` from the key store, or generate and persist it."""
        try:
            stored = self._key_store.get(name)
        except KeyStoreError as e:
            raise KeyMaterialError(f"Key store entry '{name}' is unreadable: {e}") from e

        if stored is not None:
            try:
                payload = bytes.fromhex(stored)
            except ValueError as e:
                raise KeyMaterialError(f"Key store entry '{name}' is not valid hex") from e
            if len(payload) != size:
                # Replacing it would orphan everything encrypted so far
                raise KeyMaterialError(
                    f"Key store entry '{name}' has {len(payload)} bytes, expected {size}"
                )
            log.debug("key_material_loaded", name=name)
            return payload

        log.info("key_material_missing", name=name, action="generating")
        payload = generator()
        try:
            self._key_store.set(name, payload.hex())
        except KeyStoreError as e:
            raise KeyMaterialError(f"Key store entry '{name}' could not be saved: {e}") from e
        log.info("key_material_generated", name=name, size=len(payload))
        return payload

    def _generate_key(self) -> bytes:
        """Derive a fresh key from random seed bytes."""
        seed = os.urandom(SEED_SIZE)
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_SIZE,
            salt=self._salt,
            iterations=self._iterations,
        )
        try:
            return kdf.derive(seed)
        except Exception as e:
            raise KeyMaterialError(f"Key derivation failed: {e}") from e
