"""Builders for undo logs and project trees used across the test suite."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path

from make_template.schemas.undo_log import (
    UNDO_LOG_FORMAT_VERSION,
    FileOperation,
    PlaceholderReplacement,
    ProjectType,
    UndoLog,
    UndoLogMetadata,
)

PACKAGE_JSON_ORIGINAL = '{\n  "name": "acme-app",\n  "version": "1.0.0"\n}\n'
PACKAGE_JSON_TEMPLATE = '{\n  "name": "{{PROJECT_NAME}}",\n  "version": "1.0.0"\n}\n'


def write_files(root: Path, files: dict[str, str]) -> None:
    for relative_path, content in files.items():
        path = root / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding='utf-8')


def replacement(original: str, placeholder: str) -> PlaceholderReplacement:
    return PlaceholderReplacement(from_=original, to=placeholder)


def modified(
    path: str,
    content: str | None,
    replacements: Sequence[PlaceholderReplacement] = (),
) -> FileOperation:
    return FileOperation(
        type='modified',
        path=path,
        category='modified',
        restoration_action='restore-content',
        original_content=content,
        file_size=len(content or ''),
        is_directory=False,
        placeholder_replacements=tuple(replacements),
    )


def deleted_user_file(path: str, content: str) -> FileOperation:
    return FileOperation(
        type='deleted',
        path=path,
        category='userCreated',
        restoration_action='restore-content',
        original_content=content,
        file_size=len(content),
        is_directory=False,
    )


def deleted_generated(path: str, command: str | None, is_directory: bool | None = True) -> FileOperation:
    return FileOperation(
        type='deleted',
        path=path,
        category='generated',
        restoration_action='regenerate',
        regeneration_command=command,
        is_directory=is_directory,
    )


def created_template_file(path: str) -> FileOperation:
    return FileOperation(type='created', path=path, category='templateFiles', restoration_action='preserve')


def make_undo_log(
    operations: Sequence[FileOperation] = (),
    original_values: dict[str, str] | None = None,
    project_type: ProjectType = 'generic',
    sanitized: bool = False,
    version: str = UNDO_LOG_FORMAT_VERSION,
) -> UndoLog:
    return UndoLog(
        version=version,
        metadata=UndoLogMetadata(
            tool_version='0.1.0',
            project_type=project_type,
            timestamp=datetime(2024, 5, 1, 12, 0, tzinfo=UTC),
            placeholder_format='{{PLACEHOLDER_NAME}}',
        ),
        original_values=original_values if original_values is not None else {'{{PROJECT_NAME}}': 'acme-app'},
        file_operations=tuple(operations),
        sanitized=sanitized,
    )
