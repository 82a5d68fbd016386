"""Unit tests for the per-type field transformers."""

import json
import math
import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest

from cipherstore.errors import CipherError
from cipherstore.persistence.transformers import (
    FieldTransformer,
    SupportedType,
    TransformResult,
    build_transformers,
)
from cipherstore.security.cipher import TAG_SIZE, AESCipher

ROUNDTRIP_CASES = [
    (SupportedType.TEXT, ""),
    (SupportedType.TEXT, "buy milk"),
    (SupportedType.TEXT, "Hello 世界! 🌍 \"quoted\" \\ back\nslash"),
    (SupportedType.TEXT, "A" * 10000),
    (SupportedType.TEXT, "a\ud800b"),
    (SupportedType.TEXT, "\udfff"),
    (SupportedType.INTEGER, 0),
    (SupportedType.INTEGER, -1),
    (SupportedType.INTEGER, 2**63 - 1),
    (SupportedType.INTEGER, -(2**63)),
    (SupportedType.INTEGER, 10**40),
    (SupportedType.FLOAT, 0.0),
    (SupportedType.FLOAT, -0.5),
    (SupportedType.FLOAT, 3.141592653589793),
    (SupportedType.FLOAT, 1e-300),
    (SupportedType.FLOAT, -1.7976931348623157e308),
    (SupportedType.FLOAT, math.inf),
    (SupportedType.BOOLEAN, True),
    (SupportedType.BOOLEAN, False),
    (SupportedType.TIMESTAMP, datetime.min),
    (SupportedType.TIMESTAMP, datetime.max),
    (SupportedType.TIMESTAMP, datetime(2021, 5, 6, 12, 30, 15, 123456)),
    (SupportedType.TIMESTAMP, datetime(2021, 5, 6, 12, 30, tzinfo=timezone.utc)),
    (
        SupportedType.TIMESTAMP,
        datetime(1999, 12, 31, 23, 59, tzinfo=timezone(timedelta(hours=-5, minutes=-30))),
    ),
    (SupportedType.UUID, uuid.UUID(int=0)),
    (SupportedType.UUID, uuid.UUID("12345678-1234-5678-1234-567812345678")),
    (SupportedType.UUID, uuid.uuid4()),
]


def _transformer(transformers: dict[str, FieldTransformer], kind: SupportedType):
    return transformers[kind.transformer_name]


class TestNaming:
    """Tests for deterministic transformer names."""

    def test_names(self) -> None:
        assert [kind.transformer_name for kind in SupportedType] == [
            "TextTransformer",
            "IntegerTransformer",
            "FloatTransformer",
            "BooleanTransformer",
            "TimestampTransformer",
            "UUIDTransformer",
        ]

    def test_build_transformers_one_per_kind(self, zero_cipher: AESCipher) -> None:
        transformers = build_transformers(zero_cipher)

        assert len(transformers) == len(SupportedType)
        for name, transformer in transformers.items():
            assert transformer.name == name
            assert transformer.kind.transformer_name == name

    def test_name_is_stable_across_builds(self, zero_cipher: AESCipher) -> None:
        assert list(build_transformers(zero_cipher)) == list(build_transformers(zero_cipher))


class TestRoundTrip:
    """reverse(forward(v)) == v for every supported kind."""

    @pytest.mark.parametrize(("kind", "value"), ROUNDTRIP_CASES)
    def test_roundtrip(
        self, transformers: dict[str, FieldTransformer], kind: SupportedType, value: object
    ) -> None:
        transformer = _transformer(transformers, kind)
        encrypted = transformer.forward(value)

        assert isinstance(encrypted, bytes)
        decrypted = transformer.reverse(encrypted)
        assert decrypted == value
        assert type(decrypted) is type(value)

    def test_ciphertext_is_not_plaintext(self, transformers: dict[str, FieldTransformer]) -> None:
        encrypted = _transformer(transformers, SupportedType.TEXT).forward("buy milk")
        assert b"buy milk" not in encrypted

    def test_payload_is_single_element_list(self, zero_cipher: AESCipher) -> None:
        transformer = FieldTransformer(SupportedType.INTEGER, zero_cipher)
        payload = zero_cipher.decrypt(transformer.forward(42))
        assert json.loads(payload) == [42]

    def test_payload_escapes_non_ascii(self, zero_cipher: AESCipher) -> None:
        transformer = FieldTransformer(SupportedType.TEXT, zero_cipher)
        payload = zero_cipher.decrypt(transformer.forward("caf\u00e9 \ud800"))
        assert payload == b'["caf\\u00e9 \\ud800"]'

    def test_none_stays_absent(self, transformers: dict[str, FieldTransformer]) -> None:
        transformer = _transformer(transformers, SupportedType.TEXT)
        with patch("cipherstore.persistence.transformers.log") as mock_log:
            assert transformer.forward(None) is None
            assert transformer.reverse(None) is None
        mock_log.warning.assert_not_called()

    def test_accepts_bytearray_and_memoryview(
        self, transformers: dict[str, FieldTransformer]
    ) -> None:
        transformer = _transformer(transformers, SupportedType.INTEGER)
        encrypted = transformer.forward(7)

        assert transformer.reverse(bytearray(encrypted)) == 7
        assert transformer.reverse(memoryview(encrypted)) == 7


class TestEndToEnd:
    """Fixed zero key and IV."""

    def test_buy_milk(self, zero_cipher: AESCipher) -> None:
        transformer = FieldTransformer(SupportedType.TEXT, zero_cipher)
        assert transformer.reverse(transformer.forward("buy milk")) == "buy milk"

    def test_different_plaintexts_different_ciphertexts(self, zero_cipher: AESCipher) -> None:
        transformer = FieldTransformer(SupportedType.TEXT, zero_cipher)
        assert transformer.forward("buy milk") != transformer.forward("buy bread")

    def test_fresh_cipher_with_same_material_decrypts(self, zero_cipher: AESCipher) -> None:
        encrypted = FieldTransformer(SupportedType.TEXT, zero_cipher).forward("buy milk")
        reopened = FieldTransformer(SupportedType.TEXT, AESCipher(bytes(32), bytes(16)))
        assert reopened.reverse(encrypted) == "buy milk"


class TestTamperDetection:
    """Modified ciphertext reads back as absent."""

    @pytest.mark.parametrize("position", [0, 1, 15, 16, -TAG_SIZE - 1, -TAG_SIZE, -1])
    def test_flipped_byte_is_absent(
        self, transformers: dict[str, FieldTransformer], position: int
    ) -> None:
        transformer = _transformer(transformers, SupportedType.TEXT)
        data = bytearray(transformer.forward("a longer value covering two blocks"))
        data[position] ^= 0xFF

        assert transformer.reverse(bytes(data)) is None

    def test_wrong_key_is_absent(self, zero_cipher: AESCipher) -> None:
        encrypted = FieldTransformer(SupportedType.TEXT, zero_cipher).forward("secret")
        other = FieldTransformer(SupportedType.TEXT, AESCipher(b"\x01" * 32, bytes(16)))
        assert other.reverse(encrypted) is None

    def test_garbage_is_absent(self, transformers: dict[str, FieldTransformer]) -> None:
        transformer = _transformer(transformers, SupportedType.UUID)
        assert transformer.reverse(b"") is None
        assert transformer.reverse(b"\x00" * 64) is None

    def test_failure_is_logged(self, transformers: dict[str, FieldTransformer]) -> None:
        transformer = _transformer(transformers, SupportedType.TEXT)
        with patch("cipherstore.persistence.transformers.log") as mock_log:
            transformer.reverse(b"\x00" * 64)

        mock_log.warning.assert_called_once()
        args, kwargs = mock_log.warning.call_args
        assert args == ("transformer_reverse_failed",)
        assert kwargs["transformer"] == "TextTransformer"
        assert "DecryptionError" in kwargs["reason"]


class TestTypeIsolation:
    """A transformer only accepts and produces its own kind."""

    @pytest.mark.parametrize(
        ("kind", "value"),
        [
            (SupportedType.TEXT, 42),
            (SupportedType.TEXT, b"bytes"),
            (SupportedType.INTEGER, "42"),
            (SupportedType.INTEGER, True),
            (SupportedType.INTEGER, 4.0),
            (SupportedType.FLOAT, 4),
            (SupportedType.FLOAT, "4.0"),
            (SupportedType.BOOLEAN, 1),
            (SupportedType.BOOLEAN, "true"),
            (SupportedType.TIMESTAMP, "2021-05-06T00:00:00"),
            (SupportedType.TIMESTAMP, datetime(2021, 5, 6).date()),
            (SupportedType.UUID, "12345678-1234-5678-1234-567812345678"),
            (SupportedType.UUID, 0),
        ],
    )
    def test_forward_rejects_other_types(
        self, transformers: dict[str, FieldTransformer], kind: SupportedType, value: object
    ) -> None:
        transformer = _transformer(transformers, kind)
        with patch("cipherstore.persistence.transformers.log") as mock_log:
            assert transformer.forward(value) is None

        args, kwargs = mock_log.warning.call_args
        assert args == ("transformer_forward_failed",)
        assert kwargs["transformer"] == kind.transformer_name

    @pytest.mark.parametrize(
        ("written_as", "value", "read_as"),
        [
            (SupportedType.TEXT, "hello", SupportedType.INTEGER),
            (SupportedType.INTEGER, 1, SupportedType.BOOLEAN),
            (SupportedType.BOOLEAN, True, SupportedType.INTEGER),
            (SupportedType.INTEGER, 3, SupportedType.FLOAT),
            (SupportedType.FLOAT, 3.5, SupportedType.TEXT),
            (SupportedType.TEXT, "not a date", SupportedType.TIMESTAMP),
            (SupportedType.TEXT, "not a uuid", SupportedType.UUID),
            (SupportedType.INTEGER, 5, SupportedType.TIMESTAMP),
            (SupportedType.BOOLEAN, False, SupportedType.UUID),
        ],
    )
    def test_reverse_rejects_other_payloads(
        self,
        transformers: dict[str, FieldTransformer],
        written_as: SupportedType,
        value: object,
        read_as: SupportedType,
    ) -> None:
        encrypted = _transformer(transformers, written_as).forward(value)
        assert _transformer(transformers, read_as).reverse(encrypted) is None

    @pytest.mark.parametrize("payload", [b"[]", b"[1,2]", b"1", b'{"a":1}', b"\xff\xfe", b"[1"])
    def test_reverse_rejects_malformed_containers(
        self, zero_cipher: AESCipher, payload: bytes
    ) -> None:
        transformer = FieldTransformer(SupportedType.INTEGER, zero_cipher)
        assert transformer.reverse(zero_cipher.encrypt(payload)) is None

    def test_reverse_rejects_non_bytes(self, transformers: dict[str, FieldTransformer]) -> None:
        transformer = _transformer(transformers, SupportedType.TEXT)
        assert transformer.reverse("not bytes") is None
        assert transformer.reverse(12) is None


class TestResults:
    """Tests for the TransformResult API."""

    def test_forward_result_success(self, transformers: dict[str, FieldTransformer]) -> None:
        result = _transformer(transformers, SupportedType.BOOLEAN).forward_result(True)
        assert result.ok
        assert isinstance(result.value, bytes)
        assert result.reason == ""

    def test_forward_result_failure_reason(
        self, transformers: dict[str, FieldTransformer]
    ) -> None:
        result = _transformer(transformers, SupportedType.BOOLEAN).forward_result("yes")
        assert result == TransformResult(ok=False, reason="expected Boolean value, got str")

    def test_reverse_result_failure_does_not_log(
        self, transformers: dict[str, FieldTransformer]
    ) -> None:
        transformer = _transformer(transformers, SupportedType.TEXT)
        with patch("cipherstore.persistence.transformers.log") as mock_log:
            result = transformer.reverse_result(b"garbage")

        assert not result.ok
        assert result.value is None
        mock_log.warning.assert_not_called()

    def test_encryption_failure_is_absent(self) -> None:
        cipher = MagicMock()
        cipher.encrypt.side_effect = CipherError("boom")
        transformer = FieldTransformer(SupportedType.TEXT, cipher)

        result = transformer.forward_result("value")
        assert not result.ok
        assert result.reason == "CipherError: boom"
        assert transformer.forward("value") is None

    def test_failure_reason_never_contains_value(
        self, transformers: dict[str, FieldTransformer]
    ) -> None:
        result = _transformer(transformers, SupportedType.INTEGER).forward_result("top secret")
        assert "top secret" not in result.reason
