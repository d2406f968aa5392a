"""
Environment variable management for settings and credentials.
"""

import logging
import os
from typing import Dict

from pydantic import ValidationError

from ..models.config_models import EmbedPrepSettings
from ..models.errors import ConfigurationError

logger = logging.getLogger(__name__)


ENV_PREFIX = "EMBEDPREP_"


class EnvironmentManager:
    """Manages environment variable integration."""

    def __init__(self, prefix: str = ENV_PREFIX) -> None:
        self.prefix = prefix

    def get_settings_overrides(self) -> Dict[str, str]:
        """Collect EMBEDPREP_* variables keyed by lower-case setting name."""

        overrides = {}
        for field_name in EmbedPrepSettings.model_fields:
            value = os.getenv(f"{self.prefix}{field_name.upper()}")
            if value is not None and value.strip() != "":
                overrides[field_name] = value.strip()

        logger.debug(f"Found {len(overrides)} settings in environment")
        return overrides

    def load_settings(self) -> EmbedPrepSettings:
        """Build validated settings from the environment."""

        try:
            return EmbedPrepSettings(**self.get_settings_overrides())
        except ValidationError as e:
            raise ConfigurationError(f"Invalid {self.prefix}* environment settings: {e}") from e

