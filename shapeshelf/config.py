"""
config.py — Settings for the shape library.

Uses pydantic-settings for type-safe environment variable handling.
Every option can be set through a ``SHAPESHELF_``-prefixed environment
variable or a ``.env`` file in the working directory.
"""

import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CATEGORIES: tuple[str, ...] = ("basic", "arrows", "flowchart", "callouts")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="SHAPESHELF_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Cache
    enable_cache: bool = Field(default=True, description="Cache shape definitions for faster loading")

    # Temp file cleanup
    auto_cleanup: bool = Field(default=True, description="Delete temporary documents after a delay")
    cleanup_delay_seconds: float = Field(default=60.0, ge=0)

    # Library location
    library_path: str | None = Field(
        default=None,
        description="Folder for shapes JSON, previews and native files. Empty uses app data.",
    )

    # Capture / insert behaviour
    auto_save_after_capture: bool = False
    force_exact_shapes: bool = Field(
        default=False,
        description="Block open/insert when there is no native file (100% fidelity)",
    )
    use_library_deck: bool = Field(
        default=False,
        description="Mirror native files into a single deck and insert from it",
    )
    skip_native_save: bool = Field(
        default=False,
        description="Skip saving a native file at capture (faster, lower fidelity)",
    )

    # Browsing
    default_category: str = "all"
    categories: list[str] = Field(default_factory=lambda: list(DEFAULT_CATEGORIES))

    # External tools
    bridge_timeout_seconds: float = Field(default=10.0, gt=0)
    soffice_path: str | None = None

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    @field_validator("categories")
    @classmethod
    def _categories_not_empty(cls, value: list[str]) -> list[str]:
        cleaned = [c.strip() for c in value if c and c.strip()]
        if not cleaned:
            raise ValueError("At least one category is required")
        return cleaned

    @field_validator("library_path")
    @classmethod
    def _blank_library_path_is_unset(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value

    def is_category(self, category: str) -> bool:
        """Check whether a category key is part of the configured set."""
        return category in self.categories


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def configure_logging(level: str | None = None) -> None:
    """Configure root logging for the CLI and API entry points.

    Args:
        level: Log level name. Defaults to the configured ``log_level``.
    """
    logging.basicConfig(
        level=getattr(logging, level or get_settings().log_level),
        format=LOG_FORMAT,
    )
