"""
Undo log schemas.

The undo log is written once per template conversion and read back when a
project is restored. It records the original value of every placeholder and
every file the conversion touched, in the order it touched them.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Literal, TypeAlias

import pydantic

from make_template.schemas.base import StrictModel
from make_template.schemas.types import JsonDatetime, ProjectPath

UNDO_LOG_FORMAT_VERSION = '1.0.0'
"""
Undo log format version written by this tool.

Logs are readable when they share the major version and are not newer in
minor/patch than this value (see UndoLogManager.check_version_compatibility).
"""

DEFAULT_PLACEHOLDER_FORMAT = '{{PLACEHOLDER_NAME}}'

ProjectType: TypeAlias = Literal['cf-d1', 'cf-turso', 'vite-react', 'generic']
FileOperationType: TypeAlias = Literal['modified', 'deleted', 'created']
FileCategory: TypeAlias = Literal['generated', 'userCreated', 'templateFiles', 'modified']
RestorationAction: TypeAlias = Literal['restore-content', 'regenerate', 'preserve']

FILE_CATEGORIES: tuple[FileCategory, ...] = ('generated', 'userCreated', 'templateFiles', 'modified')

# {{NAME}}, __NAME__ and %NAME% placeholder styles
PLACEHOLDER_MARKERS = ('{{', '__', '%')

SANITIZED_MARKER = '{{SANITIZED_'


def is_sanitized_value(value: str) -> bool:
    """True when a recorded value was redacted by the sanitizer."""
    return SANITIZED_MARKER in value


class PlaceholderReplacement(StrictModel):
    """One text substitution made during conversion: original text -> placeholder."""

    from_: str = pydantic.Field(alias='from')
    to: str


class FileOperation(StrictModel):
    """A single filesystem change made during conversion."""

    type: FileOperationType
    path: ProjectPath
    category: FileCategory
    restoration_action: RestorationAction
    original_content: str | None = None
    file_size: int = pydantic.Field(default=0, ge=0)
    regeneration_command: str | None = None
    # None for logs written before directory tracking
    is_directory: bool | None = None
    placeholder_replacements: Sequence[PlaceholderReplacement] = ()
    warnings: Sequence[str] = ()
    # Always null in practice; backups are made at restore time
    backup_path: str | None = None


class UndoLogMetadata(StrictModel):
    """Conversion context recorded alongside the operations."""

    # Written as makeTemplateVersion by older releases
    tool_version: str = pydantic.Field(
        min_length=1,
        validation_alias=pydantic.AliasChoices('toolVersion', 'makeTemplateVersion', 'tool_version'),
    )
    project_type: ProjectType
    timestamp: JsonDatetime
    placeholder_format: str = pydantic.Field(min_length=1)


class SanitizationReport(StrictModel):
    """What the sanitizer removed (counts only, never the values)."""

    # Older releases add size and per-category breakdowns
    model_config = pydantic.ConfigDict(extra='ignore')

    items_removed: int
    categories_affected: Sequence[str]
    timestamp: JsonDatetime
    recommendations: Sequence[str] = ()


class UndoLog(StrictModel):
    """Persisted record of a template conversion."""

    version: str = pydantic.Field(min_length=1)
    metadata: UndoLogMetadata
    original_values: Mapping[str, str]
    file_operations: Sequence[FileOperation]
    sanitized: bool = False
    sanitization_map: Mapping[str, Sequence[str]] = pydantic.Field(default_factory=dict)
    sanitization_report: SanitizationReport | None = None

    @pydantic.field_validator('sanitization_map', mode='before')
    @classmethod
    def flatten_sanitization_entries(cls, v: object) -> object:
        """Older releases record {original, replacement, description} objects; keep the literal."""
        if not isinstance(v, Mapping):
            return v
        return {
            category: [
                entry['original'] if isinstance(entry, Mapping) and 'original' in entry else entry
                for entry in entries
            ]
            if isinstance(entries, list)
            else entries
            for category, entries in v.items()
        }

    @pydantic.field_validator('original_values')
    @classmethod
    def validate_placeholder_keys(cls, v: Mapping[str, str]) -> Mapping[str, str]:
        invalid = [key for key in v if not any(marker in key for marker in PLACEHOLDER_MARKERS)]
        if invalid:
            raise ValueError(f'invalid placeholder format: {", ".join(invalid)}')
        return v

    @pydantic.model_validator(mode='after')
    def validate_user_content(self) -> UndoLog:
        """Deleted user files must carry content or explain why they don't."""
        for operation in self.file_operations:
            if (
                operation.type == 'deleted'
                and operation.category == 'userCreated'
                and operation.original_content is None
                and not operation.warnings
            ):
                raise ValueError(f'user-created file {operation.path} was deleted without stored content')
        return self


class UndoLogSummary(StrictModel):
    """Counts shown before restoring and by the inspect command."""

    version: str
    project_type: ProjectType
    created_at: JsonDatetime
    sanitized: bool
    placeholder_count: int
    modified_files: int
    deleted_files: int
    created_files: int
    total_size_bytes: int
    sanitization_report: SanitizationReport | None


# ==============================================================================
# Conversion plan (input from the conversion engine)
# ==============================================================================


class PlaceholderInfo(StrictModel):
    """A placeholder found during analysis and the value it stands for."""

    placeholder: str
    value: str


class ConversionAnalysis(StrictModel):
    project_type: ProjectType
    placeholders: Sequence[PlaceholderInfo] = ()


class ConversionAction(StrictModel):
    """One step the conversion engine is about to perform."""

    type: Literal['modify', 'delete', 'create']
    file: str | None = None
    path: str | None = None
    replacements: Sequence[PlaceholderReplacement] = ()
    content: str | None = None

    @property
    def target(self) -> str:
        target = self.file or self.path
        if not target:
            raise ValueError(f'{self.type} action has no file or path')
        return target


class ConversionPlan(StrictModel):
    """What the conversion engine reports before it touches the project."""

    analysis: ConversionAnalysis
    actions: Sequence[ConversionAction]
