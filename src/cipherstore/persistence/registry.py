"""Name-addressed transformer registry used by the store's schema binding."""

from collections.abc import Mapping

from cipherstore.logging import get_logger
from cipherstore.persistence.transformers import FieldTransformer

log = get_logger("cipherstore.persistence.registry")


class RegistrationError(Exception):
    """Transformers were registered more than once or under a wrong name."""

    pass


class UnknownTransformerError(KeyError):
    """No transformer is registered under the requested name."""

    pass


class TransformerRegistry:
    """Holds the transformers a store binds its fields to.

    ``register_transformers`` is accepted exactly once, before the store
    opens its database.
    """

    def __init__(self) -> None:
        self._transformers: dict[str, FieldTransformer] = {}
        self._registered = False

    @property
    def is_registered(self) -> bool:
        return self._registered

    def register_transformers(self, transformers: Mapping[str, FieldTransformer]) -> None:
        """Register the name -> transformer map.

        Raises:
            RegistrationError: If called a second time, or if a key does not
                match its transformer's name.
        """
        if self._registered:
            raise RegistrationError("Transformers are already registered")
        for name, transformer in transformers.items():
            if name != transformer.name:
                raise RegistrationError(
                    f"Transformer registered as '{name}' is named '{transformer.name}'"
                )

        self._transformers = dict(transformers)
        self._registered = True
        for name in self._transformers:
            log.info("transformer_registered", name=name)

    def get(self, name: str) -> FieldTransformer:
        """Return the transformer registered under ``name``.

        Raises:
            UnknownTransformerError: If nothing is registered under ``name``.
        """
        try:
            return self._transformers[name]
        except KeyError:
            raise UnknownTransformerError(name) from None

    def names(self) -> list[str]:
        return sorted(self._transformers)
