"""
Shared type definitions for schemas.

Layering:
- This module provides FOUNDATION types (BaseStrictModel, path and datetime aliases)
- schemas/base.py builds the camelCase StrictModel used by every persisted model
"""

from __future__ import annotations

from datetime import datetime
from pathlib import PurePosixPath, PureWindowsPath
from typing import Annotated, TypeAlias

import pydantic

# ==============================================================================
# Base Strict Model (Foundation)
# ==============================================================================


class BaseStrictModel(pydantic.BaseModel):
    """
    Foundation strict model.

    Uses extra='forbid' to reject unknown fields - an undo log carrying a
    field we don't model fails validation instead of being silently trimmed.
    """

    model_config = pydantic.ConfigDict(
        extra='forbid',  # Reject unknown fields (fail-fast)
        strict=True,  # Strict type coercion
        frozen=True,  # Immutable after creation
    )


# ==============================================================================
# Primitive Types
# ==============================================================================

JsonDatetime: TypeAlias = Annotated[datetime, pydantic.Field(strict=False)]
"""Pydantic-enhanced datetime for JSON serialization (allows string->datetime conversion)."""

PathStr: TypeAlias = str
"""A filesystem path (file or directory) as a string."""


def validate_project_path(value: str) -> str:
    """Reject paths that are empty, absolute, or climb out of the project root.

    Both separators are checked because undo logs travel between platforms.
    """
    if not value or not value.strip():
        raise ValueError('path must not be empty')
    if PurePosixPath(value).is_absolute() or PureWindowsPath(value).is_absolute() or PureWindowsPath(value).drive:
        raise ValueError(f'path must be relative to the project root: {value!r}')

    depth = 0
    for part in value.replace('\\', '/').split('/'):
        if part == '..':
            depth -= 1
            if depth < 0:
                raise ValueError(f'path escapes the project root: {value!r}')
        elif part not in ('', '.'):
            depth += 1
    return value


ProjectPath: TypeAlias = Annotated[str, pydantic.AfterValidator(validate_project_path)]
"""A relative path inside the project root (validated, never absolute, never escaping)."""
