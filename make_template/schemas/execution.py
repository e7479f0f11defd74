"""
Plan execution schemas.

Results are built up while a plan runs (MutableModel) and handed back to
the caller; nothing here is persisted except the failure report.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Literal, TypeAlias

import pydantic

from make_template.schemas.base import MutableModel, StrictModel
from make_template.schemas.plan import RestorationPlan
from make_template.schemas.types import JsonDatetime, PathStr

ConflictType: TypeAlias = Literal['file-exists', 'content-conflict', 'not-a-file', 'access-error']


class ExecutionOptions(StrictModel):
    """Safety switches for RestorationProcessor.execute_plan_with_safety."""

    create_backups: bool = True
    detect_conflicts: bool = True
    rollback_on_failure: bool = True
    overwrite_existing: bool = False
    # Raise RestorationConflictError instead of reporting diverged targets
    fail_on_conflict: bool = False
    # False removes backups after a successful run
    keep_backups: bool = True


class Conflict(StrictModel):
    """The live filesystem disagrees with what an action expects."""

    type: ConflictType
    path: PathStr
    reason: str
    action: str


class Backup(StrictModel):
    """Copy of a file taken right before it was overwritten."""

    original_path: PathStr
    backup_path: PathStr
    timestamp: JsonDatetime


class ActionResult(StrictModel):
    """Outcome of one plan action."""

    action_index: int
    type: str
    path: PathStr | None
    success: bool
    operation: Literal['written', 'replaced', 'created', 'skipped', 'unchanged', 'noted', 'failed']
    message: str | None = None
    error: str | None = None


class RollbackResult(StrictModel):
    success: bool
    restored_files: Sequence[PathStr]
    errors: Sequence[str]


class ExecutionResult(MutableModel):
    """Everything that happened while a plan ran."""

    success: bool = False
    actions_executed: int = 0
    action_results: list[ActionResult] = pydantic.Field(default_factory=list)
    errors: list[str] = pydantic.Field(default_factory=list)
    warnings: list[str] = pydantic.Field(default_factory=list)
    conflicts: list[Conflict] = pydantic.Field(default_factory=list)
    backups: list[Backup] = pydantic.Field(default_factory=list)
    rollback: RollbackResult | None = None
    partial_failure: bool = False
    cleanup_guidance: list[str] = pydantic.Field(default_factory=list)
    started_at: JsonDatetime | None = None
    finished_at: JsonDatetime | None = None
    duration_ms: float = 0.0


class RestoreOutcome(MutableModel):
    """Final answer of RestorationEngine.restore."""

    success: bool
    dry_run: bool = False
    cancelled: bool = False
    plan: RestorationPlan | None = None
    result: ExecutionResult | None = None
    next_steps: list[str] = pydantic.Field(default_factory=list)


class FailureEntry(StrictModel):
    type: str
    path: PathStr | None
    error: str | None


class FailureReport(StrictModel):
    """Written to .restoration-failure-report.json after a failed run."""

    timestamp: JsonDatetime
    total_actions: int
    succeeded_actions: int
    failed_actions: int
    failures: Sequence[FailureEntry]
    errors: Sequence[str]
    rolled_back: bool
    kept_backups: Sequence[PathStr]
    cleanup_guidance: Sequence[str]
