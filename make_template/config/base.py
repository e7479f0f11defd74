"""
Base configuration for make-template.

Settings are read from MAKE_TEMPLATE_* environment variables. A project's own
.env is one of the files restoration brings back, so it is never loaded
implicitly. MAKE_TEMPLATE_ENV_FILE names an explicit settings file instead.
"""

from __future__ import annotations

import os
import pathlib
from typing import TypeVar

import lazy_object_proxy
import pydantic
import pydantic_settings

T = TypeVar('T', bound='BaseMakeTemplateSettings')

ENV_FILE_VARIABLE = 'MAKE_TEMPLATE_ENV_FILE'


class BaseMakeTemplateSettings(pydantic_settings.BaseSettings):
    """Settings shared by every make-template command."""

    model_config = pydantic_settings.SettingsConfigDict(
        env_prefix='MAKE_TEMPLATE_',
        env_file=None,
        env_file_encoding='utf-8',
        case_sensitive=True,
        extra='ignore',  # Settings files may be shared with other tools
    )

    APP_NAME: str = 'make-template'
    VERSION: str = '0.1.0'

    # Bare file names, resolved against the project root
    UNDO_LOG_FILENAME: str = '.template-undo.json'
    DEFAULTS_FILENAME: str = '.restore-defaults.json'
    FAILURE_REPORT_FILENAME: str = '.restoration-failure-report.json'

    @pydantic.field_validator('UNDO_LOG_FILENAME', 'DEFAULTS_FILENAME', 'FAILURE_REPORT_FILENAME')
    @classmethod
    def validate_filename(cls, v: str) -> str:
        if not v or '/' in v or '\\' in v:
            raise ValueError(f'{v!r} must be a plain file name')
        return v


def _env_file_from(explicit: str | os.PathLike[str] | None) -> pathlib.Path | None:
    raw = explicit or os.environ.get(ENV_FILE_VARIABLE, '').strip()
    if not raw:
        return None

    path = pathlib.Path(raw).expanduser().resolve()
    if not path.is_file():
        raise FileNotFoundError(f'Settings file not found: {path} (from {ENV_FILE_VARIABLE} or env_file)')
    return path


def get_settings(settings_class: type[T], env_file: str | os.PathLike[str] | None = None) -> T:
    """
    Build a settings instance from the environment and an optional settings file.

    Args:
        settings_class: BaseMakeTemplateSettings subclass to build
        env_file: Settings file to read; takes precedence over MAKE_TEMPLATE_ENV_FILE

    Raises:
        FileNotFoundError: The named settings file does not exist
        pydantic.ValidationError: A value fails validation
    """
    path = _env_file_from(env_file)
    if path is None:
        return settings_class()
    return settings_class(_env_file=path)


def lazy_settings(settings_class: type[T]) -> T:
    """Proxy that builds the settings on first attribute access."""
    return lazy_object_proxy.Proxy(lambda: get_settings(settings_class))
