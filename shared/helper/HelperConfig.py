"""Environment-backed configuration for the video RAG bridge."""

import logging
import os
from typing import Any, Callable

_TRUE_VALUES = ("true", "1", "yes", "on")
_FALSE_VALUES = ("false", "0", "no", "off")


class HelperConfig:
    """Typed access to environment variables.

    Keys are case-insensitive. An unset or empty variable counts as missing:
    the getter returns its default, or raises ValueError when there is none.
    """

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    def _read(self, key: str, default: Any, parse: Callable[[str, str], Any]) -> Any:
        name = key.upper()
        raw = (os.getenv(name) or "").strip()
        if not raw:
            if default is None:
                raise ValueError(f"Environment variable '{name}' is not set.")
            return default
        return parse(name, raw)

    ##########################################
    ################ GETTER ##################
    ##########################################

    def get_string_val(self, key: str, default: str | None = None) -> str:
        return self._read(key, default, lambda name, raw: raw)

    def get_number_val(self, key: str, default: float | int | None = None) -> float | int:
        """Integer when the value has no decimal point, float otherwise.

        Raises:
            ValueError: If unset without default or not a number.
        """
        return self._read(key, default, self._parse_number)

    def get_optional_number_val(self, key: str) -> float | int | None:
        """Like get_number_val, but None when the variable is unset."""
        if not (os.getenv(key.upper()) or "").strip():
            return None
        return self.get_number_val(key)

    def get_positive_number_val(self, key: str, default: float | int) -> float | int:
        """Number that must be greater than zero.

        Raises:
            ValueError: If the value is zero, negative or not a number.
        """
        value = self.get_number_val(key, default=default)
        if value <= 0:
            raise ValueError(f"Environment variable '{key.upper()}' must be positive, got {value}.")
        return value

    def get_bool_val(self, key: str, default: bool | None = None) -> bool:
        """Accepts true/1/yes/on and false/0/no/off.

        Raises:
            ValueError: If unset without default or not one of the accepted words.
        """
        return self._read(key, default, self._parse_bool)

    def get_list_val(self, key: str, default: list | None = None, separator: str = ",", element_type: type = str) -> list:
        """Read "[elem1,elem2,...]" into a list of element_type.

        Raises:
            ValueError: If unset without default, missing the brackets, or an
                element cannot be cast.
        """

        def parse(name: str, raw: str) -> list:
            if not (raw.startswith("[") and raw.endswith("]")):
                raise ValueError(f"Environment variable '{name}' must look like '[a{separator}b]', got '{raw}'.")
            elements = [part.strip() for part in raw[1:-1].split(separator) if part.strip()]
            try:
                return [element_type(element) for element in elements]
            except ValueError as e:
                raise ValueError(f"Environment variable '{name}' holds a value that is not {element_type.__name__}: {e}") from e

        return self._read(key, default, parse)

    def get_logger(self) -> logging.Logger:
        return self._logger

    ##########################################
    ################ PARSING #################
    ##########################################

    @staticmethod
    def _parse_number(name: str, raw: str) -> float | int:
        try:
            return float(raw) if any(c in raw for c in ".eE") else int(raw)
        except ValueError as e:
            raise ValueError(f"Environment variable '{name}' is not a valid number: '{raw}'.") from e

    @staticmethod
    def _parse_bool(name: str, raw: str) -> bool:
        lowered = raw.lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ValueError(f"Environment variable '{name}' is not a boolean: '{raw}'.")
