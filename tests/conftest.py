"""Pytest fixtures for cipherstore tests."""

import pytest

from cipherstore.persistence.transformers import FieldTransformer, build_transformers
from cipherstore.security.cipher import AESCipher
from cipherstore.security.keys import KeyManager
from cipherstore.security.keystore import MemoryKeyStore

ZERO_KEY = bytes(32)
ZERO_IV = bytes(16)


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Make every test read settings fresh from its own environment."""
    from cipherstore.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def key_store() -> MemoryKeyStore:
    """Empty in-memory key store."""
    return MemoryKeyStore()


@pytest.fixture
def key_manager(key_store: MemoryKeyStore) -> KeyManager:
    """Key manager over the empty in-memory key store."""
    return KeyManager(key_store)


@pytest.fixture
def zero_cipher() -> AESCipher:
    """Cipher with an all-zero key and IV for deterministic tests."""
    return AESCipher(ZERO_KEY, ZERO_IV)


@pytest.fixture
def transformers(zero_cipher: AESCipher) -> dict[str, FieldTransformer]:
    """One transformer per supported type, sharing the zero cipher."""
    return build_transformers(zero_cipher)
