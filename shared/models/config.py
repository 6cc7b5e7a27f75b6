from typing import Literal

from pydantic import BaseModel, field_validator


class EnvConfig(BaseModel):
    """One engine setting, read from <TYPE>_<ENGINE>_<env_key>.

    A default of None makes the setting mandatory.
    """

    env_key: str
    val_type: Literal["string", "number", "bool", "list"] = "string"
    default: str | int | float | bool | list | None = None

    @field_validator("env_key")
    @classmethod
    def _normalize_key(cls, value: str) -> str:
        key = value.strip().upper()
        if not key:
            raise ValueError("env_key must not be empty")
        return key
