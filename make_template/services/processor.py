"""
Restoration processor - executes a RestorationPlan against the project directory.

Execution is fail-soft: each action runs in order, a failing action is
recorded and the remaining actions still run. Structural plan validation is
fail-fast and happens before any filesystem access.

Safety features (execute_plan_with_safety):
- Conflict detection before writing (reported, or fatal with fail_on_conflict)
- Backup of every existing file that will be overwritten
- Rollback from backups when any action fails
- Rollback on interruption (KeyboardInterrupt, cancellation), then re-raise

Backups live next to the original: <path>.backup-<timestamp>[.<n>]
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncGenerator, Sequence
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from pathlib import Path, PurePosixPath

from make_template.config.restore import settings
from make_template.exceptions import PlanValidationError, ProcessingError, RestorationConflictError
from make_template.protocols import LoggerProtocol, NullLogger
from make_template.schemas.execution import (
    ActionResult,
    Backup,
    Conflict,
    ExecutionOptions,
    ExecutionResult,
    FailureEntry,
    FailureReport,
    RollbackResult,
)
from make_template.schemas.plan import (
    PreserveFileAction,
    RecreateDirectoryAction,
    RecreateFileAction,
    RestorationAction,
    RestorationPlan,
    RestoreFileAction,
    RestorePlaceholdersOnlyAction,
    SelectiveNoteAction,
    UseDefaultValueAction,
)
from make_template.schemas.types import validate_project_path
from make_template.schemas.undo_log import PlaceholderReplacement
from make_template.services.files import (
    atomic_copy,
    atomic_write_json,
    atomic_write_text,
    read_text,
    resolve_in_project,
)

__all__ = [
    'RestorationProcessor',
    'apply_replacements',
]

logger = logging.getLogger(__name__)

# Files whose restoration means dependencies must be reinstalled
DEPENDENCY_MANIFESTS = frozenset({'package.json', 'wrangler.jsonc'})


def apply_replacements(content: str, replacements: Sequence[PlaceholderReplacement]) -> str:
    """Apply each replacement in order to every occurrence."""
    for replacement in replacements:
        content = content.replace(replacement.from_, replacement.to)
    return content


class RestorationProcessor:
    """Executes restoration plans for one project directory."""

    # Per-action errors that are recorded instead of aborting the run
    EXPECTED_ACTION_ERRORS = (OSError, UnicodeError, ValueError)

    def __init__(self, project_dir: Path, logger: LoggerProtocol | None = None) -> None:
        self.project_dir = project_dir.resolve()
        self.logger = logger or NullLogger()

    # ==========================================================================
    # Validation
    # ==========================================================================

    def validate_plan(self, plan: RestorationPlan) -> None:
        """Check every path-bearing action before anything is touched.

        Raises:
            PlanValidationError: Listing every invalid action
        """
        issues: list[str] = []
        for index, action in enumerate(plan.actions):
            path = _action_path(action)
            if path is None:
                continue
            try:
                validate_project_path(path)
                resolve_in_project(self.project_dir, path)
            except ValueError as e:
                issues.append(f'Action {index} ({action.type}): {e}')
        if issues:
            raise PlanValidationError(issues)

    # ==========================================================================
    # Conflicts and backups
    # ==========================================================================

    async def detect_conflicts(self, plan: RestorationPlan) -> list[Conflict]:
        """Find recreate targets that already exist.

        restore-file targets are expected to exist and never conflict.
        """
        conflicts: list[Conflict] = []
        for action in plan.actions:
            if not isinstance(action, (RecreateFileAction, RecreateDirectoryAction)):
                continue
            conflict = self._check_conflict(action)
            if conflict is not None:
                conflicts.append(conflict)
                await self.logger.warning(f'Conflict ({conflict.type}): {conflict.path} - {conflict.reason}')
        return conflicts

    def _check_conflict(self, action: RecreateFileAction | RecreateDirectoryAction) -> Conflict | None:
        target = self.project_dir / action.path
        try:
            if not target.exists():
                return None
            if isinstance(action, RecreateDirectoryAction):
                if target.is_dir():
                    return Conflict(
                        type='file-exists', path=action.path, reason='Directory already exists', action=action.type
                    )
                return Conflict(
                    type='not-a-file',
                    path=action.path,
                    reason='A file exists where a directory will be recreated',
                    action=action.type,
                )
            if not target.is_file():
                return Conflict(
                    type='not-a-file', path=action.path, reason='Target exists but is not a file', action=action.type
                )
            if action.content is not None and read_text(target) != action.content:
                return Conflict(
                    type='content-conflict',
                    path=action.path,
                    reason='File exists with different content',
                    action=action.type,
                )
            return Conflict(type='file-exists', path=action.path, reason='File already exists', action=action.type)
        except (OSError, UnicodeError) as e:
            return Conflict(type='access-error', path=action.path, reason=str(e), action=action.type)

    async def create_backups(self, plan: RestorationPlan) -> list[Backup]:
        """Copy every existing regular file that restore-file or recreate-file will write.

        Raises:
            OSError: If a backup cannot be written (backups made so far are removed)
        """
        timestamp = datetime.now(UTC)
        suffix = f'.backup-{timestamp.strftime("%Y%m%d-%H%M%S")}'
        backups: list[Backup] = []
        seen: set[Path] = set()

        try:
            for action in plan.actions:
                if not isinstance(action, (RestoreFileAction, RecreateFileAction)):
                    continue
                target = self.project_dir / action.path
                if target in seen or not target.is_file():
                    continue
                seen.add(target)

                backup_path = target.with_name(f'{target.name}{suffix}')
                counter = 1
                while backup_path.exists():
                    backup_path = target.with_name(f'{target.name}{suffix}.{counter}')
                    counter += 1

                atomic_copy(target, backup_path)
                backups.append(
                    Backup(original_path=str(target), backup_path=str(backup_path), timestamp=timestamp)
                )
                await self.logger.info(f'Created backup: {action.path} -> {backup_path.name}')
        except OSError:
            self._remove_backups(backups)
            raise
        return backups

    async def rollback(self, backups: Sequence[Backup]) -> RollbackResult:
        """Copy each backup over its original, removing backups that were restored.

        Files created by the run (nothing to back up) are left in place.
        """
        restored: list[str] = []
        errors: list[str] = []
        for backup in backups:
            try:
                atomic_copy(Path(backup.backup_path), Path(backup.original_path))
                Path(backup.backup_path).unlink()
            except OSError as e:
                errors.append(f'Failed to restore {backup.original_path}: {e}')
                logger.error(f'Rollback failed for {backup.original_path}: {e}')
                continue
            restored.append(backup.original_path)
            await self.logger.info(f'Rolled back {backup.original_path}')
        return RollbackResult(success=not errors, restored_files=restored, errors=errors)

    @staticmethod
    def _remove_backups(backups: Sequence[Backup]) -> None:
        for backup in backups:
            Path(backup.backup_path).unlink(missing_ok=True)

    @asynccontextmanager
    async def _rollback_on_interrupt(self, backups: Sequence[Backup]) -> AsyncGenerator[None]:
        """
        Error boundary for the execution loop.

        Action failures are recorded, not raised, so anything reaching here is
        an interruption or a bug. Backups are restored, then the exception
        propagates with notes describing the rollback.
        """
        try:
            yield
        except (asyncio.CancelledError, KeyboardInterrupt) as original_exc:
            logger.warning(f'Restoration interrupted, rolling back {len(backups)} file(s)...')
            rollback = await self.rollback(backups)
            original_exc.add_note(
                'Rollback completed successfully' if rollback.success else f'Rollback failed: {rollback.errors}'
            )
            raise
        except BaseException as original_exc:
            logger.error(f'Restoration failed unexpectedly: {original_exc}, rolling back...')
            rollback = await self.rollback(backups)
            if not rollback.success:
                original_exc.add_note(f'Rollback failed: {"; ".join(rollback.errors)}')
                original_exc.add_note('Backups were kept next to the original files')
            else:
                original_exc.add_note('Rollback completed successfully')
            raise

    # ==========================================================================
    # Execution
    # ==========================================================================

    async def execute_plan(self, plan: RestorationPlan, overwrite_existing: bool = False) -> ExecutionResult:
        """Validate and execute the plan without conflict detection, backups or rollback."""
        self.validate_plan(plan)
        result = ExecutionResult(started_at=datetime.now(UTC))
        start = time.perf_counter()
        await self._execute_actions(plan, result, overwrite_existing)
        self._finish(plan, result, start)
        return result

    async def execute_plan_with_safety(
        self,
        plan: RestorationPlan,
        options: ExecutionOptions | None = None,
    ) -> ExecutionResult:
        """Validate, detect conflicts, back up, execute, and roll back on failure.

        Raises:
            PlanValidationError: If the plan is structurally invalid (nothing touched)
            RestorationConflictError: If fail_on_conflict is set and a target diverged (nothing touched)
        """
        options = options or ExecutionOptions()
        self.validate_plan(plan)

        result = ExecutionResult(started_at=datetime.now(UTC))
        start = time.perf_counter()

        if options.detect_conflicts:
            result.conflicts = await self.detect_conflicts(plan)
            if options.fail_on_conflict:
                self._raise_on_conflicts(result.conflicts, options)

        if options.create_backups:
            try:
                result.backups = await self.create_backups(plan)
            except OSError as e:
                result.errors.append(f'Could not create backups, nothing was restored: {e}')
                self._finish(plan, result, start)
                return result

        async with self._rollback_on_interrupt(result.backups):
            await self._execute_actions(plan, result, options.overwrite_existing)

        result.success = all(action_result.success for action_result in result.action_results)
        if not result.success:
            result.partial_failure = any(action_result.success for action_result in result.action_results)
            if options.rollback_on_failure and result.backups:
                await self.logger.warning('Restoration failed, rolling back from backups...')
                result.rollback = await self.rollback(result.backups)
                restored = set(result.rollback.restored_files)
                result.backups = [backup for backup in result.backups if backup.original_path not in restored]
        elif not options.keep_backups:
            self._remove_backups(result.backups)
            result.backups = []

        self._finish(plan, result, start)
        return result

    @staticmethod
    def _raise_on_conflicts(conflicts: Sequence[Conflict], options: ExecutionOptions) -> None:
        blocking = [
            conflict.path
            for conflict in conflicts
            if conflict.type != 'file-exists'
            and not (options.overwrite_existing and conflict.type == 'content-conflict')
        ]
        if blocking:
            raise RestorationConflictError(blocking)

    def _finish(self, plan: RestorationPlan, result: ExecutionResult, start: float) -> None:
        result.success = not result.errors and all(
            action_result.success for action_result in result.action_results
        )
        result.cleanup_guidance = self.generate_cleanup_guidance(plan, result)
        result.finished_at = datetime.now(UTC)
        result.duration_ms = (time.perf_counter() - start) * 1000

    async def _execute_actions(self, plan: RestorationPlan, result: ExecutionResult, overwrite_existing: bool) -> None:
        for index, action in enumerate(plan.actions):
            path = _action_path(action)
            try:
                action_result = await self._execute_action(index, action, result, overwrite_existing)
            except self.EXPECTED_ACTION_ERRORS as e:
                action_result = ActionResult(
                    action_index=index,
                    type=action.type,
                    path=path,
                    success=False,
                    operation='failed',
                    error=str(e),
                )

            result.action_results.append(action_result)
            if action_result.success:
                result.actions_executed += 1
                await self.logger.info(f'{action.type}: {path or "-"} ({action_result.operation})')
            else:
                result.errors.append(f'{action.type} {path or ""}: {action_result.error}'.strip())
                await self.logger.error(f'{action.type} failed for {path or "-"}: {action_result.error}')

    async def _execute_action(
        self,
        index: int,
        action: RestorationAction,
        result: ExecutionResult,
        overwrite_existing: bool,
    ) -> ActionResult:
        match action:
            case RestoreFileAction():
                return self._restore_file(index, action)
            case RecreateFileAction():
                action_result = self._recreate_file(index, action, overwrite_existing)
                if action_result.operation == 'skipped':
                    result.warnings.append(f'{action.path} differs from the undo log and was not restored')
                return action_result
            case RecreateDirectoryAction():
                return self._recreate_directory(index, action)
            case PreserveFileAction():
                target = self.project_dir / action.path
                if not target.exists():
                    result.warnings.append(f'Template file {action.path} is missing')
                    return _ok(index, action, 'unchanged', 'Template file missing, nothing to preserve')
                return _ok(index, action, 'unchanged', 'Template file preserved')
            case UseDefaultValueAction() | RestorePlaceholdersOnlyAction() | SelectiveNoteAction():
                return _ok(index, action, 'noted', None)
            case _:
                raise ProcessingError(f'Unhandled action type: {type(action).__name__}')

    def _restore_file(self, index: int, action: RestoreFileAction) -> ActionResult:
        target = resolve_in_project(self.project_dir, action.path)
        if not target.exists():
            return _failed(index, action, f'File not found: {action.path}')
        if not target.is_file():
            return _failed(index, action, f'Not a file: {action.path}')

        if action.content is not None:
            content = action.content
            if action.apply_replacements:
                content = apply_replacements(content, action.placeholder_replacements)
            if read_text(target) == content:
                return _ok(index, action, 'unchanged', 'Already restored')
            atomic_write_text(target, content)
            return _ok(index, action, 'written', 'Original content restored')

        if action.placeholder_replacements:
            current = read_text(target)
            restored = apply_replacements(current, action.placeholder_replacements)
            if restored == current:
                return _ok(index, action, 'unchanged', 'No placeholders left to replace')
            atomic_write_text(target, restored)
            return _ok(index, action, 'replaced', f'Replaced {len(action.placeholder_replacements)} placeholder(s)')

        return _ok(index, action, 'unchanged', 'Nothing to restore')

    def _recreate_file(self, index: int, action: RecreateFileAction, overwrite_existing: bool) -> ActionResult:
        if action.content is None:
            return _failed(index, action, f'No content recorded for {action.path}')

        target = resolve_in_project(self.project_dir, action.path)
        if target.exists():
            if not target.is_file():
                return _failed(index, action, f'Not a file: {action.path}')
            if read_text(target) == action.content:
                return _ok(index, action, 'unchanged', 'File already has the recorded content')
            if not overwrite_existing:
                return _ok(index, action, 'skipped', 'File exists with different content (use --force to overwrite)')
            atomic_write_text(target, action.content)
            return _ok(index, action, 'written', 'Existing file overwritten')

        atomic_write_text(target, action.content)
        return _ok(index, action, 'created', 'File recreated')

    def _recreate_directory(self, index: int, action: RecreateDirectoryAction) -> ActionResult:
        target = resolve_in_project(self.project_dir, action.path)
        if target.is_dir():
            return _ok(index, action, 'skipped', 'Directory already exists')
        if target.exists():
            return _failed(index, action, f'Not a directory: {action.path}')
        target.mkdir(parents=True)
        return _ok(index, action, 'created', action.note)

    # ==========================================================================
    # Guidance and reporting
    # ==========================================================================

    def generate_cleanup_guidance(self, plan: RestorationPlan, result: ExecutionResult) -> list[str]:
        guidance: list[str] = []
        failed = [action_result for action_result in result.action_results if not action_result.success]
        succeeded = [action_result for action_result in result.action_results if action_result.success]

        failed_files = [r for r in failed if r.type in ('restore-file', 'recreate-file')]
        if failed_files:
            guidance.append(f'{len(failed_files)} file restoration(s) failed - check file permissions and disk space')
        kept = [r.path for r in succeeded if r.type == 'recreate-file' and r.operation == 'skipped' and r.path]
        if kept:
            guidance.append(
                f'{len(kept)} file(s) differ from the undo log and were left as they are - '
                f'review them or rerun with --force: {", ".join(kept)}'
            )
        errors = [(r.error or '').lower() for r in failed] + [error.lower() for error in result.errors]
        if any('permission' in error or 'errno 13' in error for error in errors):
            guidance.append('Some failures appear to be permission-related - check file/directory permissions')
        if any('no space' in error or 'enospc' in error or 'disk' in error for error in errors):
            guidance.append('Some failures appear to be disk space-related - check available disk space')

        if any(
            r.type == 'restore-file' and r.path and PurePosixPath(r.path).name in DEPENDENCY_MANIFESTS
            for r in succeeded
        ):
            guidance.append('Run "npm install" to regenerate dependencies after package.json restoration')

        commands = ', '.join(plan.regeneration_commands)
        if any(r.type == 'recreate-directory' and r.operation == 'created' for r in succeeded):
            guidance.append(
                'Some directories were recreated empty - run build/install commands to populate them'
                + (f': {commands}' if commands else '')
            )
        elif commands:
            guidance.append(f'Generated files were not restored - run: {commands}')

        if failed or result.errors:
            failed_paths = ','.join(r.path for r in failed_files if r.path)
            guidance.append(
                'Fix the underlying issues and retry restoration for failed operations only'
                + (f' (--restore-files {failed_paths})' if failed_paths else '')
            )
        if result.rollback is not None and not result.rollback.success:
            guidance.append('Rollback could not restore every file - backups were kept next to the originals')
        return guidance

    def write_failure_report(self, result: ExecutionResult, path: Path | None = None) -> Path:
        """Write a JSON report of a failed run for later troubleshooting."""
        report_path = path or self.project_dir / settings.FAILURE_REPORT_FILENAME
        failures = [r for r in result.action_results if not r.success]
        report = FailureReport(
            timestamp=datetime.now(UTC),
            total_actions=len(result.action_results),
            succeeded_actions=len(result.action_results) - len(failures),
            failed_actions=len(failures),
            failures=[FailureEntry(type=r.type, path=r.path, error=r.error) for r in failures],
            errors=result.errors,
            rolled_back=result.rollback is not None and result.rollback.success,
            kept_backups=[backup.backup_path for backup in result.backups],
            cleanup_guidance=result.cleanup_guidance,
        )
        atomic_write_json(report_path, report.to_json_dict())
        return report_path


def _action_path(action: RestorationAction) -> str | None:
    match action:
        case RestoreFileAction() | RecreateFileAction() | RecreateDirectoryAction() | PreserveFileAction():
            return action.path
        case UseDefaultValueAction() | RestorePlaceholdersOnlyAction() | SelectiveNoteAction():
            return None
        case _:
            raise ProcessingError(f'Unhandled action type: {type(action).__name__}')


def _ok(index: int, action: RestorationAction, operation: str, message: str | None) -> ActionResult:
    return ActionResult(
        action_index=index,
        type=action.type,
        path=_action_path(action),
        success=True,
        operation=operation,
        message=message,
    )


def _failed(index: int, action: RestorationAction, error: str) -> ActionResult:
    return ActionResult(
        action_index=index,
        type=action.type,
        path=_action_path(action),
        success=False,
        operation='failed',
        error=error,
    )
