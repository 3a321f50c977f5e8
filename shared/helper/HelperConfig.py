"""Environment-backed configuration for the memory engine."""

import logging
import os

from pydantic import ValidationError

from shared.errors import InvalidConfigError
from shared.models.config import EmbeddingConfig

EMBEDDING_CONFIG_PREFIX = "EMBEDDINGS_"

_TRUE_VALUES = ("true", "1", "yes", "on")
_FALSE_VALUES = ("false", "0", "no", "off")


class HelperConfig:
    """Reads settings from environment variables. Keys are case-insensitive and
    an empty variable counts as unset."""

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    @staticmethod
    def _lookup(key: str) -> tuple[str, str | None]:
        key = key.upper()
        raw = os.getenv(key)
        if raw is None or not raw.strip():
            return key, None
        return key, raw.strip()

    @staticmethod
    def _missing(key: str) -> InvalidConfigError:
        return InvalidConfigError(f"Environment variable '{key}' is not set.")

    ##########################################
    ############ TYPED GETTERS ###############
    ##########################################

    def get_string_val(self, key: str, default: str | None = None) -> str:
        """Read a string variable.

        Raises:
            InvalidConfigError: If it is not set and there is no default.
        """
        key, raw = self._lookup(key)
        if raw is not None:
            return raw
        if default is None:
            raise self._missing(key)
        return default

    def get_number_val(self, key: str, default: float | int | None = None) -> float | int:
        """Read an int ("42") or a float ("0.5", "1e-3").

        Raises:
            InvalidConfigError: If it is not set without default, or not a number.
        """
        key, raw = self._lookup(key)
        if raw is None:
            if default is None:
                raise self._missing(key)
            return default
        try:
            return int(raw)
        except ValueError:
            pass
        try:
            return float(raw)
        except ValueError:
            raise InvalidConfigError(f"Environment variable '{key}' is not a valid number: '{raw}'.")

    def get_bool_val(self, key: str, default: bool | None = None) -> bool:
        """Read a flag: true/1/yes/on or false/0/no/off.

        Raises:
            InvalidConfigError: If it is not set without default, or not a recognised flag.
        """
        key, raw = self._lookup(key)
        if raw is None:
            if default is None:
                raise self._missing(key)
            return default
        value = raw.lower()
        if value in _TRUE_VALUES:
            return True
        if value in _FALSE_VALUES:
            return False
        raise InvalidConfigError(f"Environment variable '{key}' is not a valid flag: '{raw}'.")

    def get_list_val(self, key: str, default: list | None = None, separator: str = ",", element_type: type = str) -> list:
        """Read a bracketed list such as "[a,b,c]", casting every element to element_type.

        Raises:
            InvalidConfigError: If it is not set without default, not bracketed, or an element does not cast.
        """
        key, raw = self._lookup(key)
        if raw is None:
            if default is None:
                raise self._missing(key)
            return default
        if not (raw.startswith("[") and raw.endswith("]")):
            raise InvalidConfigError(f"Environment variable '{key}' must look like '[a{separator}b]', got '{raw}'.")
        try:
            return [element_type(item.strip()) for item in raw[1:-1].split(separator) if item.strip()]
        except ValueError as e:
            raise InvalidConfigError(f"Environment variable '{key}' has an element that is not {element_type.__name__}: {e}")

    ##########################################
    ########### ENGINE SETTINGS ##############
    ##########################################

    def get_embedding_config(self) -> EmbeddingConfig:
        """Build the engine settings from EMBEDDINGS_<FIELD> variables.

        Read on every call, so a changed environment applies to the next
        operation without a restart. Unset variables keep the model default.

        Raises:
            InvalidConfigError: If a value does not parse or fails validation.
        """
        overrides: dict = {}
        for name, field in EmbeddingConfig.model_fields.items():
            key = f"{EMBEDDING_CONFIG_PREFIX}{name.upper()}"
            if self._lookup(key)[1] is None:
                continue
            # bool first, it is a subclass of int
            if field.annotation is bool:
                overrides[name] = self.get_bool_val(key)
            elif field.annotation in (int, float):
                overrides[name] = self.get_number_val(key)
            else:
                overrides[name] = self.get_string_val(key).lower()
        try:
            return EmbeddingConfig(**overrides)
        except ValidationError as e:
            raise InvalidConfigError(f"Invalid embedding configuration: {e}") from e

    def get_logger(self) -> logging.Logger:
        return self._logger
