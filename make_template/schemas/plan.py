"""
Restoration plan schemas.

A plan is built from an undo log in memory, shown or executed, then thrown
away. Actions form a closed union discriminated on ``type``; each one is
idempotent and can be retried on its own.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Annotated, Literal, TypeAlias

import pydantic

from make_template.schemas.base import MutableModel, StrictModel
from make_template.schemas.types import JsonDatetime, PathStr
from make_template.schemas.undo_log import PlaceholderReplacement, UndoLog

RestorationMode: TypeAlias = Literal['full', 'selective', 'sanitized']


# ==============================================================================
# Actions
# ==============================================================================


class RestoreFileAction(StrictModel):
    """Bring a modified file back to its pre-conversion text."""

    type: Literal['restore-file'] = 'restore-file'
    path: PathStr
    content: str | None = None
    # Reversed replacements: placeholder (from) -> original value (to)
    placeholder_replacements: Sequence[PlaceholderReplacement] = ()
    apply_replacements: bool = False
    note: str | None = None


class RecreateFileAction(StrictModel):
    """Recreate a file that conversion deleted."""

    type: Literal['recreate-file'] = 'recreate-file'
    path: PathStr
    content: str | None = None
    note: str | None = None


class RecreateDirectoryAction(StrictModel):
    """Recreate an empty directory whose contents are regenerated by a command."""

    type: Literal['recreate-directory'] = 'recreate-directory'
    path: PathStr
    regeneration_command: str | None = None
    note: str | None = None


class PreserveFileAction(StrictModel):
    """Leave a template file untouched."""

    type: Literal['preserve-file'] = 'preserve-file'
    path: PathStr
    note: str | None = None


class UseDefaultValueAction(StrictModel):
    """Record that a sanitized placeholder was satisfied from defaults or a prompt."""

    type: Literal['use-default-value'] = 'use-default-value'
    placeholder: str
    value: str
    source: Literal['defaults-file', 'user-input']


class RestorePlaceholdersOnlyAction(StrictModel):
    type: Literal['restore-placeholders-only'] = 'restore-placeholders-only'
    placeholders: Sequence[str]
    note: str = 'Only placeholder values will be restored, files remain unchanged'


class SelectiveNoteAction(StrictModel):
    type: Literal['selective-note'] = 'selective-note'
    note: str


RestorationAction = Annotated[
    RestoreFileAction
    | RecreateFileAction
    | RecreateDirectoryAction
    | PreserveFileAction
    | UseDefaultValueAction
    | RestorePlaceholdersOnlyAction
    | SelectiveNoteAction,
    pydantic.Field(discriminator='type'),
]


# ==============================================================================
# Options and plan
# ==============================================================================


class RestoreOptions(StrictModel):
    """Caller choices that shape planning and execution."""

    undo_log_path: PathStr | None = None
    defaults_path: PathStr | None = None
    dry_run: bool = False
    yes: bool = False
    silent: bool = False
    sanitized: bool = False
    # Comma-separated relative paths
    restore_files: str | None = None
    restore_placeholders: bool = False
    create_backups: bool = True
    keep_backups: bool = True
    overwrite_existing: bool = False
    fail_on_conflict: bool = False

    @property
    def requested_files(self) -> list[str]:
        if not self.restore_files:
            return []
        return [path.strip() for path in self.restore_files.split(',') if path.strip()]


class RestorationPlan(MutableModel):
    """Ordered actions derived from one undo log."""

    undo_log: UndoLog
    mode: RestorationMode
    actions: list[RestorationAction] = pydantic.Field(default_factory=list)
    missing_values: list[str] = pydantic.Field(default_factory=list)
    warnings: list[str] = pydantic.Field(default_factory=list)
    resolved_values: dict[str, str] = pydantic.Field(default_factory=dict)
    # Commands the user must run afterwards (npm install, npm run build)
    regeneration_commands: list[str] = pydantic.Field(default_factory=list)
    created_at: JsonDatetime = pydantic.Field(default_factory=lambda: datetime.now(UTC))


class PlanSummary(StrictModel):
    total_actions: int
    file_restorations: int
    file_recreations: int
    directory_recreations: int
    preserved_files: int
    default_values: int
    missing_values: int
    warnings: int
