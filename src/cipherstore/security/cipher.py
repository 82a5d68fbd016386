"""AES-256-CBC cipher shared by every field transformer.

Ciphertext layout::

    [AES-256-CBC(PKCS7(plaintext))] [HMAC-SHA256 tag (32 bytes)]

The IV is fixed per installation, so equal plaintexts give equal
ciphertexts. The tag (encrypt-then-MAC, keyed by an HKDF subkey of the
encryption key) is verified before any decryption so tampered blobs are
rejected instead of decrypting to garbage.
"""

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from cipherstore.errors import CipherConfigurationError, DecryptionError
from cipherstore.logging import get_logger
from cipherstore.security.keys import IV_SIZE, KEY_SIZE, KeyManager

log = get_logger("cipherstore.security.cipher")

BLOCK_SIZE = 16
TAG_SIZE = 32
MAC_KEY_INFO = b"cipherstore field mac"


class AESCipher:
    """AES-256-CBC with PKCS7 padding and an HMAC-SHA256 tag.

    Holds no per-call state; a fresh encryptor/decryptor context is created
    for every call, so one instance can serve all threads.
    """

    def __init__(self, key: bytes, iv: bytes) -> None:
        """Initialize the cipher.

        Args:
            key: 256-bit (32-byte) encryption key.
            iv: 128-bit (16-byte) initialization vector.

        Raises:
            CipherConfigurationError: If key or IV has the wrong length.
        """
        if len(key) != KEY_SIZE:
            raise CipherConfigurationError(f"Key must be exactly {KEY_SIZE} bytes, got {len(key)}")
        if len(iv) != IV_SIZE:
            raise CipherConfigurationError(f"IV must be exactly {IV_SIZE} bytes, got {len(iv)}")

        self._cipher = Cipher(algorithms.AES(key), modes.CBC(iv))
        self._mac_key = HKDF(
            algorithm=hashes.SHA256(),
            length=32,
            salt=None,
            info=MAC_KEY_INFO,
        ).derive(key)
        log.info("cipher_initialized", algorithm="AES-256-CBC", mac="HMAC-SHA256")

    def encrypt(self, data: bytes) -> bytes:
        """Encrypt ``data`` and append the authentication tag."""
        padder = padding.PKCS7(BLOCK_SIZE * 8).padder()
        padded = padder.update(data) + padder.finalize()
        encryptor = self._cipher.encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return ciphertext + self._tag(ciphertext)

    def decrypt(self, data: bytes) -> bytes:
        """Verify the tag and decrypt.

        Raises:
            DecryptionError: If the input is truncated, the tag does not match,
                or the padding is invalid.
        """
        ciphertext, tag = data[:-TAG_SIZE], data[-TAG_SIZE:]
        if len(data) < TAG_SIZE + BLOCK_SIZE or len(ciphertext) % BLOCK_SIZE:
            raise DecryptionError(f"Ciphertext has invalid length {len(data)}")

        h = hmac.HMAC(self._mac_key, hashes.SHA256())
        h.update(ciphertext)
        try:
            h.verify(tag)
        except InvalidSignature as e:
            raise DecryptionError("Authentication tag mismatch") from e

        decryptor = self._cipher.decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(BLOCK_SIZE * 8).unpadder()
        try:
            return unpadder.update(padded) + unpadder.finalize()
        except ValueError as e:
            raise DecryptionError("Invalid padding") from e

    def _tag(self, ciphertext: bytes) -> bytes:
        h = hmac.HMAC(self._mac_key, hashes.SHA256())
        h.update(ciphertext)
        return h.finalize()


def build_cipher(key_manager: KeyManager) -> AESCipher:
    """Create the shared cipher from the installation's key material.

    Raises:
        KeyMaterialError: If key material is unavailable.
        CipherConfigurationError: If key material has the wrong length.
    """
    material = key_manager.material()
    return AESCipher(material.key, material.iv)
