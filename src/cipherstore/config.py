"""Configuration management for cipherstore."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Shared by every installation; kept so existing key stores keep deriving
# the same way. The 32-byte random seed carries the entropy, not the salt.
DEFAULT_KDF_SALT = "MyF$?.L(]6y7vg9RPy"  # nosec B105 - KDF salt, not a password


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_parse_none_str="",
    )

    # Application
    environment: str = Field(default="production", description="Environment name")
    log_level: str = Field(default="INFO", description="Logging level")

    # Logging Configuration
    log_to_file: bool = Field(default=False, description="Enable file-based logging")
    log_directory: str = Field(default="logs", description="Directory for log files")
    log_file_max_bytes: int = Field(
        default=10485760,  # 10MB
        description="Max size per log file before rotation",
    )
    log_file_backup_count: int = Field(
        default=5, description="Number of rotated log files to keep"
    )
    log_file_prefix: str = Field(default="cipherstore", description="Prefix for log file names")

    # Key storage
    keystore_path: str = Field(
        default="data/keystore.json",
        description="Path of the file-backed secure key store",
    )
    key_entry_name: str = Field(
        default="encryption-key", description="Key store entry holding the encryption key"
    )
    iv_entry_name: str = Field(
        default="initialization-vector",
        description="Key store entry holding the initialization vector",
    )

    # Key derivation
    kdf_salt: SecretStr = Field(
        default=SecretStr(DEFAULT_KDF_SALT),
        description="PBKDF2 salt applied when a new encryption key is generated",
    )
    kdf_iterations: int = Field(default=4096, description="PBKDF2 iteration count")

    # Persistence
    database_path: str = Field(
        default="data/DataModel.sqlite", description="Path to the encrypted SQLite store"
    )

    @field_validator("kdf_iterations")
    @classmethod
    def validate_kdf_iterations(cls, v: int) -> int:
        """Validate the PBKDF2 iteration count is positive."""
        if v < 1:
            raise ValueError(f"kdf_iterations must be positive, got: {v}")
        return v

    @field_validator("key_entry_name", "iv_entry_name")
    @classmethod
    def validate_entry_name(cls, v: str) -> str:
        """Validate key store entry names are not blank."""
        if not v.strip():
            raise ValueError("key store entry names must not be empty")
        return v

    @property
    def log_file_path(self) -> str:
        """Get the full log file path."""
        return f"{self.log_directory}/{self.log_file_prefix}.log"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
