"""
Undo log service - create, persist, read and validate undo logs.

Reading is strict: anything short of a well-formed, compatible log raises
before restoration touches the filesystem. Check order:
1. File exists (UndoLogNotFoundError)
2. Readable, non-empty JSON object with the required top-level fields
3. Format version compatible with this tool (UndoLogVersionMismatchError)
4. Schema validation of every field (UndoLogCorruptedError)
5. Integrity checks - reported as warnings, never fatal
"""

from __future__ import annotations

import json
from collections import Counter
from datetime import UTC, datetime
from pathlib import Path

import pydantic
from filelock import FileLock
from packaging.version import InvalidVersion, Version

from make_template.config.restore import settings
from make_template.exceptions import UndoLogCorruptedError, UndoLogNotFoundError, UndoLogVersionMismatchError
from make_template.protocols import LoggerProtocol, NullLogger
from make_template.schemas.undo_log import (
    DEFAULT_PLACEHOLDER_FORMAT,
    UNDO_LOG_FORMAT_VERSION,
    ConversionAction,
    ConversionPlan,
    FileOperation,
    UndoLog,
    UndoLogMetadata,
    UndoLogSummary,
)
from make_template.services.categorizer import FileCategorizer
from make_template.services.files import atomic_write_json
from make_template.services.sanitizer import Sanitizer

__all__ = [
    'UndoLogManager',
    'check_version_compatibility',
]

REQUIRED_FIELDS = ('version', 'metadata', 'originalValues', 'fileOperations')


def check_version_compatibility(log_version: str, current_version: str = UNDO_LOG_FORMAT_VERSION) -> bool:
    """Whether a tool reading format current_version can read a log at log_version.

    Incompatible when the majors differ, or the log is newer in minor (or in
    patch at the same minor). Versions that don't parse must match exactly.
    """
    try:
        log = Version(log_version)
        current = Version(current_version)
    except InvalidVersion:
        return log_version == current_version

    if log.major != current.major:
        return False
    if current.minor < log.minor:
        return False
    if current.minor == log.minor and current.micro < log.micro:
        return False
    return True


class UndoLogManager:
    """Builds undo logs from conversion plans and reads them back for restoration."""

    def __init__(
        self,
        project_dir: Path,
        categorizer: FileCategorizer | None = None,
        sanitizer: Sanitizer | None = None,
        logger: LoggerProtocol | None = None,
    ) -> None:
        self.project_dir = project_dir
        self.categorizer = categorizer or FileCategorizer(project_dir)
        self.sanitizer = sanitizer or Sanitizer()
        self.logger = logger or NullLogger()

    # ==========================================================================
    # Creation
    # ==========================================================================

    async def create_undo_log(
        self,
        conversion_plan: ConversionPlan,
        sanitize: bool = False,
        placeholder_format: str = DEFAULT_PLACEHOLDER_FORMAT,
    ) -> UndoLog:
        """Record the pre-conversion state of everything the plan will touch.

        Must run before the conversion modifies or deletes anything. A failure
        on one action is logged and the remaining actions are still recorded.
        """
        operations: list[FileOperation] = []
        for action in conversion_plan.actions:
            try:
                operation = await self._record_action(action)
            except (OSError, UnicodeDecodeError, ValueError) as e:
                await self.logger.warning(f'Failed to record {action.type} of {action.file or action.path}: {e}')
                continue
            if operation is not None:
                operations.append(operation)

        undo_log = UndoLog(
            version=UNDO_LOG_FORMAT_VERSION,
            metadata=UndoLogMetadata(
                tool_version=settings.VERSION,
                project_type=conversion_plan.analysis.project_type,
                timestamp=datetime.now(UTC),
                placeholder_format=placeholder_format,
            ),
            original_values={info.placeholder: info.value for info in conversion_plan.analysis.placeholders},
            file_operations=operations,
        )

        if sanitize:
            undo_log = await self.sanitize_undo_log(undo_log)
        return undo_log

    async def _record_action(self, action: ConversionAction) -> FileOperation | None:
        match action.type:
            case 'modify':
                return await self._record_modified(action)
            case 'delete':
                return await self._record_deleted(action)
            case 'create':
                return FileOperation(
                    type='created',
                    path=action.target,
                    category='templateFiles',
                    restoration_action='preserve',
                    file_size=len(action.content) if action.content else 0,
                )
            case _:
                raise ValueError(f'Unhandled conversion action type: {action.type}')

    async def _record_modified(self, action: ConversionAction) -> FileOperation:
        path = action.target
        content = (self.project_dir / path).read_text(encoding='utf-8')
        try:
            category = (await self.categorizer.categorize(path)).log_category
        except OSError:
            category = 'modified'

        return FileOperation(
            type='modified',
            path=path,
            category=category,
            restoration_action='restore-content',
            original_content=content,
            file_size=len(content),
            is_directory=False,
            placeholder_replacements=action.replacements,
        )

    async def _record_deleted(self, action: ConversionAction) -> FileOperation | None:
        path = action.target
        if not (self.project_dir / path).exists():
            return None

        categorization = await self.categorizer.categorize(path)
        warnings = list(categorization.warnings)
        content: str | None = None

        if categorization.store_content:
            try:
                content = (self.project_dir / path).read_text(encoding='utf-8')
            except (OSError, UnicodeDecodeError) as e:
                await self.logger.warning(f'Could not read content for {path}: {e}')
                warnings.append(f'Content could not be read: {e}')
        elif categorization.log_category == 'userCreated' and not warnings:
            if categorization.is_directory:
                warnings.append('Directory contents are not stored')
            else:
                warnings.append('Content not stored by categorization rules')

        return FileOperation(
            type='deleted',
            path=path,
            category=categorization.log_category,
            restoration_action=categorization.action,
            original_content=content,
            file_size=categorization.file_size,
            regeneration_command=categorization.regeneration_command,
            is_directory=categorization.is_directory,
            warnings=warnings,
        )

    async def sanitize_undo_log(self, undo_log: UndoLog) -> UndoLog:
        sanitized, report = self.sanitizer.sanitize_undo_log(undo_log)
        await self.logger.info(
            f'Sanitized {report.items_removed} item(s) from undo log'
            + (f' ({", ".join(report.categories_affected)})' if report.categories_affected else '')
        )
        return sanitized

    # ==========================================================================
    # Persistence
    # ==========================================================================

    def save_undo_log(self, undo_log: UndoLog, path: Path) -> None:
        """Write the undo log atomically under a file lock."""
        with FileLock(path.with_name(f'{path.name}.lock')):
            atomic_write_json(path, undo_log.to_json_dict())

    async def read_undo_log(self, path: Path) -> UndoLog:
        """Read and fully validate an undo log.

        Raises:
            UndoLogNotFoundError: If path does not exist
            UndoLogCorruptedError: If the file is unreadable or invalid
            UndoLogVersionMismatchError: If the log's format version is incompatible
        """
        if not path.exists():
            raise UndoLogNotFoundError(str(path))

        try:
            text = path.read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as e:
            raise UndoLogCorruptedError(str(path), f'cannot read file: {e}') from e

        if not text.strip():
            raise UndoLogCorruptedError(str(path), 'file is empty')

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise UndoLogCorruptedError(str(path), f'invalid JSON: {e.msg} (line {e.lineno})') from e

        if not isinstance(data, dict):
            raise UndoLogCorruptedError(str(path), 'expected a JSON object')

        for field in REQUIRED_FIELDS:
            if field not in data:
                raise UndoLogCorruptedError(str(path), f'missing required field: {field}')

        version = data['version']
        if not isinstance(version, str):
            raise UndoLogCorruptedError(str(path), 'version must be a string')
        if not check_version_compatibility(version):
            raise UndoLogVersionMismatchError(version, UNDO_LOG_FORMAT_VERSION)

        try:
            undo_log = UndoLog.model_validate(data)
        except pydantic.ValidationError as e:
            raise UndoLogCorruptedError(str(path), _describe_validation_error(e)) from e

        for warning in self.check_integrity(undo_log):
            await self.logger.warning(warning)
        return undo_log

    # ==========================================================================
    # Inspection
    # ==========================================================================

    @staticmethod
    def check_integrity(undo_log: UndoLog) -> list[str]:
        """Soft problems that don't prevent restoration."""
        warnings: list[str] = []
        if not undo_log.original_values:
            warnings.append('Undo log contains no placeholder values')
        if not undo_log.file_operations:
            warnings.append('Undo log contains no file operations')

        missing_content = [
            operation.path
            for operation in undo_log.file_operations
            if operation.type == 'deleted' and operation.category == 'userCreated' and operation.original_content is None
        ]
        if missing_content:
            warnings.append(
                f'{len(missing_content)} user-created file(s) have no stored content: {", ".join(missing_content)}'
            )

        if undo_log.file_operations and not any(
            operation.category == 'templateFiles' for operation in undo_log.file_operations
        ):
            warnings.append('Undo log records no template files')
        return warnings

    @staticmethod
    def summarize(undo_log: UndoLog) -> UndoLogSummary:
        counts = Counter(operation.type for operation in undo_log.file_operations)
        return UndoLogSummary(
            version=undo_log.version,
            project_type=undo_log.metadata.project_type,
            created_at=undo_log.metadata.timestamp,
            sanitized=undo_log.sanitized,
            placeholder_count=len(undo_log.original_values),
            modified_files=counts['modified'],
            deleted_files=counts['deleted'],
            created_files=counts['created'],
            total_size_bytes=sum(operation.file_size for operation in undo_log.file_operations),
            sanitization_report=undo_log.sanitization_report,
        )


def _describe_validation_error(error: pydantic.ValidationError) -> str:
    details = []
    for item in error.errors()[:5]:
        location = '.'.join(str(part) for part in item['loc'])
        details.append(f'{location}: {item["msg"]}' if location else item['msg'])
    if error.error_count() > 5:
        details.append(f'... and {error.error_count() - 5} more')
    return '; '.join(details)
