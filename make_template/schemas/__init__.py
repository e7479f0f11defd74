"""Pydantic models for undo logs, restoration plans and execution results."""

from make_template.schemas.execution import (
    ActionResult,
    Backup,
    Conflict,
    ExecutionOptions,
    ExecutionResult,
    RestoreOutcome,
    RollbackResult,
)
from make_template.schemas.plan import (
    PreserveFileAction,
    RecreateDirectoryAction,
    RecreateFileAction,
    RestorationAction,
    RestorationPlan,
    RestoreFileAction,
    RestoreOptions,
    RestorePlaceholdersOnlyAction,
    SelectiveNoteAction,
    UseDefaultValueAction,
)
from make_template.schemas.undo_log import (
    UNDO_LOG_FORMAT_VERSION,
    ConversionPlan,
    FileOperation,
    PlaceholderReplacement,
    UndoLog,
    UndoLogMetadata,
    UndoLogSummary,
)

__all__ = [
    'UNDO_LOG_FORMAT_VERSION',
    'ActionResult',
    'Backup',
    'Conflict',
    'ConversionPlan',
    'ExecutionOptions',
    'ExecutionResult',
    'FileOperation',
    'PlaceholderReplacement',
    'PreserveFileAction',
    'RecreateDirectoryAction',
    'RecreateFileAction',
    'RestorationAction',
    'RestorationPlan',
    'RestoreFileAction',
    'RestoreOptions',
    'RestoreOutcome',
    'RestorePlaceholdersOnlyAction',
    'RollbackResult',
    'SelectiveNoteAction',
    'UndoLog',
    'UndoLogMetadata',
    'UndoLogSummary',
    'UseDefaultValueAction',
]
