"""
Shared exceptions for make-template.

Domain-specific exceptions used across services. Every restoration error
carries a stable ``code`` and a list of remediation ``suggestions`` that the
CLI prints below the message.

Exception Hierarchy:
    MakeTemplateError (base)
    ├── RestorationError (restore pipeline failures)
    │   ├── UndoLogNotFoundError (no undo log at the given path)
    │   ├── UndoLogCorruptedError (unreadable or structurally invalid log)
    │   ├── UndoLogVersionMismatchError (log written by a newer tool)
    │   ├── RestorationConflictError (filesystem diverged from the log)
    │   ├── MissingRestorationValuesError (sanitized values left unresolved)
    │   ├── RestorationPartialFailureError (some actions failed)
    │   ├── PlanValidationError (structurally invalid plan, nothing touched)
    │   └── ProcessingError (unexpected failure inside a service)
    ├── DefaultsFileError (invalid .restore-defaults.json)
    │   └── DefaultsFileExistsError (refusing to overwrite without --force)
    └── PromptCancelledError (user closed the interactive prompt)
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from make_template.schemas.execution import ExecutionResult


class MakeTemplateError(Exception):
    """Base exception for all make-template errors."""

    code = 'MAKE_TEMPLATE_ERROR'

    def __init__(self, message: str, suggestions: Sequence[str] = ()) -> None:
        self.suggestions = list(suggestions)
        super().__init__(message)


class RestorationError(MakeTemplateError):
    """Base exception for restoration failures."""

    code = 'RESTORATION_ERROR'


class UndoLogNotFoundError(RestorationError):
    """Raised when the undo log file does not exist."""

    code = 'UNDO_LOG_NOT_FOUND'

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(
            f'Undo log not found: {path}',
            suggestions=[
                'Make sure you are in the directory of a project converted by make-template',
                'Check that .template-undo.json was not deleted or moved',
                'Pass --undo-log with the path to the undo log',
            ],
        )


class UndoLogCorruptedError(RestorationError):
    """Raised when the undo log cannot be read or fails validation."""

    code = 'UNDO_LOG_CORRUPTED'

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(
            f'Undo log is corrupted ({path}): {reason}',
            suggestions=[
                'Restore .template-undo.json from version control if it was committed',
                'Re-run the template conversion to produce a fresh undo log',
                'Inspect the file manually for truncated or hand-edited JSON',
            ],
        )


class UndoLogVersionMismatchError(RestorationError):
    """Raised when the undo log was written by an incompatible tool version."""

    code = 'VERSION_MISMATCH'

    def __init__(self, log_version: str, current_version: str) -> None:
        self.log_version = log_version
        self.current_version = current_version
        super().__init__(
            f'Undo log version {log_version} is not compatible with this tool (format {current_version})',
            suggestions=[
                f'Upgrade make-template to a release that reads undo log format {log_version}',
                'Restore with the same make-template version that created the template',
            ],
        )


class RestorationConflictError(RestorationError):
    """Raised when conflicts must be resolved before restoring."""

    code = 'RESTORATION_CONFLICT'

    def __init__(self, paths: Sequence[str]) -> None:
        self.paths = list(paths)
        super().__init__(
            f'{len(self.paths)} file(s) conflict with the undo log: {", ".join(self.paths)}',
            suggestions=[
                'Run with --dry-run to review the conflicting files',
                'Move or commit the conflicting files, then restore again',
                'Use --force to overwrite existing files (backups are still created)',
            ],
        )


class MissingRestorationValuesError(RestorationError):
    """Raised when sanitized placeholder values could not be resolved."""

    code = 'MISSING_VALUES'

    def __init__(self, placeholders: Sequence[str]) -> None:
        self.placeholders = list(placeholders)
        super().__init__(
            f'Missing values for {len(self.placeholders)} placeholder(s): {", ".join(self.placeholders)}',
            suggestions=[
                'Add the values to .restore-defaults.json (see: make-template init-defaults)',
                'Run without --silent to be prompted for the values',
            ],
        )


class RestorationPartialFailureError(RestorationError):
    """Raised when plan execution finished with one or more failed actions."""

    code = 'PARTIAL_FAILURE'

    def __init__(self, result: ExecutionResult) -> None:
        self.result = result
        failed = sum(1 for action_result in result.action_results if not action_result.success)
        if failed:
            message = f'Restoration failed: {failed} of {len(result.action_results)} action(s) failed'
        else:
            message = 'Restoration failed: ' + ('; '.join(result.errors) or 'unknown error')
        super().__init__(message, suggestions=list(result.cleanup_guidance))


class PlanValidationError(RestorationError):
    """Raised when a restoration plan is structurally invalid."""

    code = 'VALIDATION_ERROR'

    def __init__(self, issues: Sequence[str]) -> None:
        self.issues = list(issues)
        super().__init__(
            'Restoration plan is invalid:\n  ' + '\n  '.join(self.issues),
            suggestions=['The undo log may be corrupted; run make-template inspect to check it'],
        )


class ProcessingError(RestorationError):
    """Raised when a service fails for an unexpected reason."""

    code = 'PROCESSING_ERROR'


class DefaultsFileError(MakeTemplateError):
    """Raised when the defaults file is unreadable or invalid."""

    code = 'DEFAULTS_FILE_ERROR'

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(
            f'Invalid defaults file ({path}): {reason}',
            suggestions=['Regenerate it with: make-template init-defaults --force'],
        )


class DefaultsFileExistsError(DefaultsFileError):
    """Raised when generating a defaults file that already exists without force."""

    code = 'DEFAULTS_FILE_EXISTS'

    def __init__(self, path: str) -> None:
        super().__init__(path, 'file already exists')
        self.suggestions = ['Use --force to overwrite the existing defaults file']


class PromptCancelledError(MakeTemplateError):
    """Raised when the user closes the interactive prompt."""

    code = 'PROMPT_CANCELLED'

    def __init__(self, placeholder: str) -> None:
        self.placeholder = placeholder
        super().__init__(f'Prompt cancelled while asking for {placeholder}')
