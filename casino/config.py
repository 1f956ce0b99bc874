"""Settings loader for the ledger service."""
from __future__ import annotations

import re
from pathlib import Path
from typing import Annotated, List, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .ledger import CorruptionPolicy
from .models import DEFAULT_STARTING_BALANCE


class LedgerSettings(BaseSettings):
    data_path: Path = Field(default=Path("balances.json"))
    journal_path: Optional[Path] = Field(default=None)
    starting_balance: int = Field(default=DEFAULT_STARTING_BALANCE)
    corruption_policy: CorruptionPolicy = Field(default=CorruptionPolicy.RESET)

    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(
        default=3000,
        validation_alias=AliasChoices("CASINO_API_PORT", "PORT"),
    )
    api_root_path: str = Field(default="")
    api_admin_token: Optional[str] = Field(default=None)

    cors_origins: Annotated[List[str], NoDecode] = Field(default_factory=lambda: ["*"])
    static_dir: Optional[Path] = Field(default=Path("public"))

    model_config = SettingsConfigDict(
        env_prefix="CASINO_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("starting_balance")
    @classmethod
    def validate_starting_balance(cls, value: int) -> int:
        if value < 0:
            raise ValueError("starting_balance must be non-negative")
        return value

    @field_validator("api_port")
    @classmethod
    def validate_positive_int(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Value must be positive")
        return value

    @field_validator("api_admin_token", "journal_path", "static_dir", mode="before")
    @classmethod
    def blank_is_unset(cls, value):  # type: ignore[override]
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, value):  # type: ignore[override]
        if value is None:
            return []
        if isinstance(value, str):
            parts = re.split(r"[\s,]+", value.strip())
            return [part for part in parts if part]
        return value


settings = LedgerSettings()
