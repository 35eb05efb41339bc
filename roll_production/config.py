"""
Configuration for the roll production service.

Values come from the environment; a ``.env`` file in the working directory
is loaded first so local overrides do not need exporting.

    ROLL_WORKFLOW_DATABASE         SQLite path (default: roll_production.sqlite3)
    ROLL_WORKFLOW_LOG_LEVEL        DEBUG / INFO / WARNING / ERROR (default: INFO)
    ROLL_WORKFLOW_LOG_DIR          directory for rotating log files
    ROLL_WORKFLOW_FILE_LOGGING     "1" to write log files (default: "0")
    ROLL_WORKFLOW_PERCENTAGE_MODE  "mean" (legacy) or "weighted"
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from .aggregation import PercentageMode

ENV_PREFIX = "ROLL_WORKFLOW_"


@dataclass(slots=True)
class WorkflowSettings:
    """Runtime settings for the HTTP wrapper and its logging."""

    database_path: str = "roll_production.sqlite3"
    log_level: int = logging.INFO
    log_dir: Optional[Path] = None
    enable_file_logging: bool = False
    percentage_mode: PercentageMode = PercentageMode.MEAN_OF_RECORDS

    @classmethod
    def from_env(
        cls, environ: Optional[Mapping[str, str]] = None, *, load_env_file: bool = True
    ) -> "WorkflowSettings":
        if environ is None:
            if load_env_file:
                load_dotenv()
            environ = os.environ

        def read(name: str) -> Optional[str]:
            value = environ.get(ENV_PREFIX + name)
            return value.strip() if value and value.strip() else None

        settings = cls()
        database = read("DATABASE")
        if database:
            settings.database_path = database
        level_name = read("LOG_LEVEL")
        if level_name:
            level = logging.getLevelName(level_name.upper())
            if not isinstance(level, int):
                raise ValueError(f"Unknown log level {level_name!r}")
            settings.log_level = level
        log_dir = read("LOG_DIR")
        if log_dir:
            settings.log_dir = Path(log_dir)
        file_logging = read("FILE_LOGGING")
        if file_logging:
            settings.enable_file_logging = file_logging.lower() in {"1", "true", "yes", "on"}
        mode = read("PERCENTAGE_MODE")
        if mode:
            try:
                settings.percentage_mode = PercentageMode(mode.lower())
            except ValueError as exc:
                raise ValueError(f"Unknown percentage mode {mode!r}") from exc
        return settings


__all__ = ["WorkflowSettings", "ENV_PREFIX"]
