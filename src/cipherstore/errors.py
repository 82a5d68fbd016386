"""Exception types shared across cipherstore."""


class FatalConfigurationError(Exception):
    """The store cannot operate safely and startup must stop."""

    pass


class KeyStoreError(FatalConfigurationError):
    """The secure key store could not be read or written."""

    pass


class KeyMaterialError(FatalConfigurationError):
    """Key material could not be generated, derived, or loaded."""

    pass


class CipherConfigurationError(FatalConfigurationError):
    """Key or IV length is invalid for AES-256-CBC."""

    pass


class CipherError(Exception):
    """Base exception for per-operation cipher failures."""

    pass


class DecryptionError(CipherError):
    """Ciphertext failed authentication, padding, or length checks."""

    pass
