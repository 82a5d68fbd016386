"""Transparent per-field encryption for the supported value kinds.

A value is wrapped in a one-element JSON list (so the encoder never sees a
bare scalar), UTF-8 encoded, and encrypted with the shared cipher. Reading
reverses each step. Any failure on either path makes the field absent
(``None``) and is logged with the transformer name; the value itself is
never logged.
"""

import json
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Protocol

from cipherstore.errors import CipherError
from cipherstore.logging import get_logger

log = get_logger("cipherstore.persistence.transformers")


class FieldCipher(Protocol):
    """What a transformer needs from the shared cipher."""

    def encrypt(self, data: bytes) -> bytes: ...

    def decrypt(self, data: bytes) -> bytes: ...


class SupportedType(Enum):
    """Value kinds eligible for transparent encryption."""

    TEXT = "Text"
    INTEGER = "Integer"
    FLOAT = "Float"
    BOOLEAN = "Boolean"
    TIMESTAMP = "Timestamp"
    UUID = "UUID"

    @property
    def transformer_name(self) -> str:
        """Name the schema uses to bind a field to this kind's transformer."""
        return f"{self.value}Transformer"


def _is_exactly(python_type: type) -> Callable[[Any], bool]:
    # bool subclasses int, so isinstance alone would let True through as an int
    def check(value: Any) -> bool:
        return isinstance(value, python_type) and not (
            python_type is not bool and isinstance(value, bool)
        )

    return check


def _identity(value: Any) -> Any:
    return value


def _decode_timestamp(raw: Any) -> datetime:
    if not isinstance(raw, str):
        raise TypeError(f"expected ISO 8601 string, got {type(raw).__name__}")
    return datetime.fromisoformat(raw)


def _decode_uuid(raw: Any) -> uuid.UUID:
    if not isinstance(raw, str):
        raise TypeError(f"expected UUID string, got {type(raw).__name__}")
    return uuid.UUID(raw)


@dataclass(frozen=True)
class _Codec:
    accepts: Callable[[Any], bool]
    encode: Callable[[Any], Any]
    decode: Callable[[Any], Any]


def _plain_codec(python_type: type) -> _Codec:
    accepts = _is_exactly(python_type)

    def decode(raw: Any) -> Any:
        if not accepts(raw):
            raise TypeError(f"expected {python_type.__name__}, got {type(raw).__name__}")
        return raw

    return _Codec(accepts=accepts, encode=_identity, decode=decode)


_CODECS: dict[SupportedType, _Codec] = {
    SupportedType.TEXT: _plain_codec(str),
    SupportedType.INTEGER: _plain_codec(int),
    SupportedType.FLOAT: _plain_codec(float),
    SupportedType.BOOLEAN: _plain_codec(bool),
    SupportedType.TIMESTAMP: _Codec(
        accepts=_is_exactly(datetime),
        encode=lambda value: value.isoformat(),
        decode=_decode_timestamp,
    ),
    SupportedType.UUID: _Codec(
        accepts=_is_exactly(uuid.UUID),
        encode=str,
        decode=_decode_uuid,
    ),
}


@dataclass(frozen=True)
class TransformResult:
    """Outcome of one forward or reverse transform."""

    ok: bool
    value: Any = None
    reason: str = ""

    @classmethod
    def success(cls, value: Any) -> "TransformResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, reason: str) -> "TransformResult":
        return cls(ok=False, reason=reason)


class FieldTransformer:
    """Encrypts and decrypts values of one SupportedType.

    Instances are immutable and share the cipher they were built with.
    """

    def __init__(self, kind: SupportedType, cipher: FieldCipher) -> None:
        self._kind = kind
        self._codec = _CODECS[kind]
        self._cipher = cipher

    @property
    def kind(self) -> SupportedType:
        return self._kind

    @property
    def name(self) -> str:
        return self._kind.transformer_name

    def __repr__(self) -> str:
        return f"FieldTransformer({self.name})"

    def forward_result(self, value: Any) -> TransformResult:
        """Serialize and encrypt ``value``."""
        if value is None:
            return TransformResult.success(None)
        if not self._codec.accepts(value):
            return TransformResult.failure(
                f"expected {self._kind.value} value, got {type(value).__name__}"
            )
        try:
            # Default ASCII escaping keeps lone surrogates encodable
            payload = json.dumps([self._codec.encode(value)], separators=(",", ":"))
            return TransformResult.success(self._cipher.encrypt(payload.encode("ascii")))
        except (TypeError, ValueError, CipherError) as e:
            return TransformResult.failure(f"{type(e).__name__}: {e}")

    def reverse_result(self, data: Any) -> TransformResult:
        """Decrypt and deserialize ``data``."""
        if data is None:
            return TransformResult.success(None)
        if not isinstance(data, (bytes, bytearray, memoryview)):
            return TransformResult.failure(f"expected bytes, got {type(data).__name__}")
        try:
            plaintext = self._cipher.decrypt(bytes(data))
            container = json.loads(plaintext.decode("utf-8"))
            if not isinstance(container, list) or len(container) != 1:
                return TransformResult.failure("payload is not a single-element list")
            return TransformResult.success(self._codec.decode(container[0]))
        except (TypeError, ValueError, CipherError) as e:
            # UnicodeDecodeError and JSONDecodeError are ValueErrors
            return TransformResult.failure(f"{type(e).__name__}: {e}")

    def forward(self, value: Any) -> bytes | None:
        """Return ciphertext for ``value``, or None if it cannot be encrypted."""
        result = self.forward_result(value)
        if not result.ok:
            log.warning("transformer_forward_failed", transformer=self.name, reason=result.reason)
            return None
        return result.value

    def reverse(self, data: Any) -> Any:
        """Return the value stored in ``data``, or None if it is unreadable."""
        result = self.reverse_result(data)
        if not result.ok:
            log.warning("transformer_reverse_failed", transformer=self.name, reason=result.reason)
            return None
        return result.value


def build_transformers(cipher: FieldCipher) -> dict[str, FieldTransformer]:
    """Create one transformer per SupportedType, keyed by name."""
    transformers = [FieldTransformer(kind, cipher) for kind in SupportedType]
    return {t.name: t for t in transformers}
