# src/shiftwise/dataloader/config_loader.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from shiftwise.dataloader.documents import YAML_SUFFIXES, read_mapping
from shiftwise.errors import ConfigError
from shiftwise.schemas.config import Config

logger = logging.getLogger(__name__)


class ConfigLoader:
    """
    @brief
    Reads config.yaml into a validated `Config`.

    @details
    Missing sections fall back to their defaults; unknown keys are rejected
    by the schema. Every failure surfaces as `ConfigError`.
    """

    def load(self, path: Path | str | None = None) -> Config:
        """
        @brief
        Load configuration, or return defaults when no path is given.

        @raises
            ConfigError
                Missing or unreadable file, bad YAML, or schema mismatch.
        """
        if path is None:
            logger.info("No configuration file given; using defaults")
            return Config()

        data = read_mapping(
            path,
            suffixes=YAML_SUFFIXES,
            error=ConfigError,
            what="Configuration file",
            source="ConfigLoader.load",
        )
        cfg = self._validate(data)
        logger.info("Loaded configuration from %s", path)
        return cfg

    @staticmethod
    def _validate(data: dict[str, Any]) -> Config:
        try:
            return Config.model_validate(data)
        except ValidationError as e:
            raise ConfigError(
                f"Invalid configuration structure: {e}",
                source="ConfigLoader._validate",
                suggested_action=(
                    "Check section names, field types and bounds in config.yaml. "
                    "Unknown keys are rejected."
                ),
            ) from e


__all__ = ["ConfigLoader"]
