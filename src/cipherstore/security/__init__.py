"""Security module for cipherstore.

Provides key lifecycle management and the AES-256-CBC cipher used to
encrypt individual field values at rest.
"""

from cipherstore.security.cipher import AESCipher, build_cipher
from cipherstore.security.keys import KeyManager, KeyMaterial
from cipherstore.security.keystore import FileKeyStore, MemoryKeyStore, SecureKeyStore

__all__ = [
    "AESCipher",
    "FileKeyStore",
    "KeyManager",
    "KeyMaterial",
    "MemoryKeyStore",
    "SecureKeyStore",
    "build_cipher",
]
