"""
Restoration settings.

Extends the base configuration with categorizer thresholds and the
non-interactive switch used by the prompter.
"""

from __future__ import annotations

import pydantic

from make_template.config.base import BaseMakeTemplateSettings, lazy_settings


class RestoreSettings(BaseMakeTemplateSettings):
    """Restoration-specific configuration."""

    # Stored-content thresholds (bytes)
    LARGE_FILE_WARNING_BYTES: int = 1024 * 1024
    MAX_STORED_FILE_BYTES: int = 10 * 1024 * 1024

    # Skip all interactive prompts (MAKE_TEMPLATE_SILENT=1)
    SILENT: bool = False

    @pydantic.model_validator(mode='after')
    def validate_thresholds(self) -> RestoreSettings:
        if self.LARGE_FILE_WARNING_BYTES > self.MAX_STORED_FILE_BYTES:
            raise ValueError('LARGE_FILE_WARNING_BYTES must not exceed MAX_STORED_FILE_BYTES')
        return self


# Module-level singleton (lazy-loaded)
settings = lazy_settings(RestoreSettings)
