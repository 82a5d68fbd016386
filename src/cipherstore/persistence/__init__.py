"""Encrypted persistence: transformers, registry, schema binding and store."""

from cipherstore.persistence.registry import TransformerRegistry
from cipherstore.persistence.schema import EntitySchema, FieldSpec, SchemaError
from cipherstore.persistence.store import EncryptedStore, Record, StoreSession
from cipherstore.persistence.transformers import (
    FieldTransformer,
    SupportedType,
    TransformResult,
    build_transformers,
)

__all__ = [
    "EncryptedStore",
    "EntitySchema",
    "FieldSpec",
    "FieldTransformer",
    "Record",
    "SchemaError",
    "StoreSession",
    "SupportedType",
    "TransformResult",
    "TransformerRegistry",
    "build_transformers",
]
