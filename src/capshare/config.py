"""capshare configuration.

A single validated :class:`CapShareConfig` instance is built at process
start and handed to :meth:`capshare.service.ShareService.from_config`.
Every field has a development default, so ``CapShareConfig()`` is enough
to run locally. Fields are also read from ``CAPSHARE_*`` environment
variables; ``CAPSHARE_BASE_URL`` sets :attr:`CapShareConfig.base_url`.
"""
from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PREFIX = "CAPSHARE_"

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]


class CapShareConfig(BaseSettings):
    """Configuration for a capshare service instance.

    Keyword arguments take precedence over environment variables.
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_ignore_empty=True,
        extra="forbid",
        frozen=True,
    )

    issuer_key_path: Optional[Path] = Field(
        default=None,
        description=(
            "File holding the hex-encoded Ed25519 issuer key. A fresh key is "
            "generated per process when unset, which invalidates proofs on restart."
        ),
    )
    default_ttl_days: int = Field(
        default=30,
        ge=1,
        description="Delegation lifetime used when a share request gives none.",
    )
    base_url: str = Field(
        default="http://localhost:5173",
        min_length=1,
        description="Public base URL used to build share links.",
    )
    audit_log_path: Optional[Path] = Field(
        default=None,
        description="JSONL audit log file. Recent events are kept in memory when unset.",
    )
    audit_buffer_size: int = Field(
        default=1000,
        ge=1,
        description="Audit events retained in memory when no audit log file is set.",
    )
    storage_dir: Optional[Path] = Field(
        default=None,
        description="Directory for the filesystem blob store. In-memory when unset.",
    )
    max_upload_bytes: int = Field(
        default=10 * 1024 * 1024,  # 10 MiB
        ge=1,
        description="Largest accepted upload in bytes.",
    )
    log_level: LogLevel = Field(
        default="INFO",
        description="Level passed to logging.basicConfig by the entry points.",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value: object) -> object:
        return value.upper() if isinstance(value, str) else value


__all__ = ["CapShareConfig", "ENV_PREFIX"]
