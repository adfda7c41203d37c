"""Configuration management for the P&ID tag extractor."""

import logging
from typing import Optional

from pydantic_settings import BaseSettings
from rich.logging import RichHandler


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Project files
    max_project_file_mb: int = 50

    # Optimization
    optimizer_max_pages: int = 3
    auto_optimize_note_connections: bool = True

    # Export
    export_sheet_name: str = "Instrument List"
    include_note_descriptions: bool = False

    # Logging
    log_level: str = "INFO"

    @property
    def max_project_file_bytes(self) -> int:
        """Project size limit in bytes."""
        return self.max_project_file_mb * 1024 * 1024

    class Config:
        env_prefix = "PIDTAG_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()


def configure_logging(level: Optional[str] = None) -> None:
    """Route log records through rich at the configured level."""
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )
