"""
Restoration planner - turns an undo log into an ordered list of actions.

Planning only reads the filesystem. Nothing is written until the plan is
handed to RestorationProcessor.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from collections.abc import Mapping, Sequence
from pathlib import Path

from make_template.protocols import LoggerProtocol, NullLogger
from make_template.schemas.plan import (
    PlanSummary,
    PreserveFileAction,
    RecreateDirectoryAction,
    RecreateFileAction,
    RestorationMode,
    RestorationPlan,
    RestoreFileAction,
    RestoreOptions,
    RestorePlaceholdersOnlyAction,
    SelectiveNoteAction,
    UseDefaultValueAction,
)
from make_template.schemas.undo_log import FileOperation, PlaceholderReplacement, UndoLog, is_sanitized_value
from make_template.services.defaults import DefaultsManager

__all__ = [
    'RestorationPlanner',
    'determine_mode',
]


def determine_mode(undo_log: UndoLog, options: RestoreOptions) -> RestorationMode:
    if options.restore_files or options.restore_placeholders:
        return 'selective'
    if options.sanitized or undo_log.sanitized:
        return 'sanitized'
    return 'full'


def _normalize(path: str) -> str:
    return path.replace('\\', '/').strip().removeprefix('./').rstrip('/')


class RestorationPlanner:
    """Builds RestorationPlans for one project directory."""

    def __init__(
        self,
        project_dir: Path,
        defaults_manager: DefaultsManager | None = None,
        logger: LoggerProtocol | None = None,
    ) -> None:
        self.project_dir = project_dir
        self.defaults_manager = defaults_manager or DefaultsManager.for_project(project_dir)
        self.logger = logger or NullLogger()

    async def create_restoration_plan(
        self,
        undo_log: UndoLog,
        options: RestoreOptions,
        extra_values: Mapping[str, str] | None = None,
    ) -> RestorationPlan:
        """Plan the restoration of undo_log.

        Args:
            undo_log: Validated undo log
            options: Mode and selection options
            extra_values: Values for sanitized placeholders gathered by the caller
                (typically from the interactive prompter); these win over defaults

        Raises:
            DefaultsFileError: If the defaults file exists but is invalid
        """
        plan = RestorationPlan(undo_log=undo_log, mode=determine_mode(undo_log, options))

        self._plan_placeholders(plan, options, extra_values or {})

        for operation in self._select_operations(plan, options):
            self._plan_operation(plan, operation, placeholders_only=options.restore_placeholders)

        requested = options.requested_files
        if requested:
            plan.actions.append(
                SelectiveNoteAction(note=f'Selective restoration: only {len(requested)} files will be restored')
            )

        self._validate(plan)
        self._add_plan_warnings(plan)

        await self.logger.info(
            f'Planned {len(plan.actions)} action(s) in {plan.mode} mode'
            + (f', {len(plan.missing_values)} missing value(s)' if plan.missing_values else '')
        )
        return plan

    # ==========================================================================
    # Placeholders
    # ==========================================================================

    def _plan_placeholders(self, plan: RestorationPlan, options: RestoreOptions, extra_values: Mapping[str, str]) -> None:
        undo_log = plan.undo_log
        sanitized = [
            placeholder for placeholder, value in undo_log.original_values.items() if is_sanitized_value(value)
        ]
        plan.resolved_values = {
            placeholder: value for placeholder, value in undo_log.original_values.items() if placeholder not in sanitized
        }

        if sanitized and (plan.mode == 'sanitized' or undo_log.sanitized):
            needs_defaults = [placeholder for placeholder in sanitized if placeholder not in extra_values]
            defaults = self.defaults_manager.resolve_defaults(needs_defaults).resolved if needs_defaults else {}

            for placeholder in sanitized:
                if placeholder in extra_values:
                    value, source = extra_values[placeholder], 'user-input'
                elif placeholder in defaults:
                    value, source = defaults[placeholder], 'defaults-file'
                else:
                    plan.missing_values.append(placeholder)
                    continue
                plan.resolved_values[placeholder] = value
                plan.actions.append(UseDefaultValueAction(placeholder=placeholder, value=value, source=source))

        if options.restore_placeholders:
            plan.actions.append(RestorePlaceholdersOnlyAction(placeholders=list(undo_log.original_values)))

    def reverse_replacements(
        self,
        replacements: Sequence[PlaceholderReplacement],
        resolved_values: Mapping[str, str],
    ) -> list[PlaceholderReplacement]:
        """Flip conversion replacements to placeholder -> original value.

        Placeholders without a resolvable value are dropped.
        """
        reversed_replacements: list[PlaceholderReplacement] = []
        for replacement in replacements:
            value = resolved_values.get(replacement.to)
            if value is not None:
                reversed_replacements.append(PlaceholderReplacement(from_=replacement.to, to=value))
        return reversed_replacements

    # ==========================================================================
    # File operations
    # ==========================================================================

    def _select_operations(self, plan: RestorationPlan, options: RestoreOptions) -> list[FileOperation]:
        operations = list(plan.undo_log.file_operations)

        requested = options.requested_files
        if requested:
            by_path = {_normalize(operation.path): operation for operation in operations}
            selected: list[FileOperation] = []
            for path in requested:
                operation = by_path.get(_normalize(path))
                if operation is None:
                    plan.warnings.append(f'Requested file {path} not found in undo log')
                else:
                    selected.append(operation)
            operations = selected

        if options.restore_placeholders:
            # Placeholder values live in modified files only
            operations = [operation for operation in operations if operation.type == 'modified']
        return operations

    def _plan_operation(self, plan: RestorationPlan, operation: FileOperation, placeholders_only: bool = False) -> None:
        match operation.type:
            case 'modified':
                self._plan_modified(plan, operation, placeholders_only)
            case 'deleted':
                self._plan_deleted(plan, operation)
            case 'created':
                plan.actions.append(
                    PreserveFileAction(path=operation.path, note='Template file - preserved for template functionality')
                )
            case _:
                plan.warnings.append(f'Unknown file operation type: {operation.type} for {operation.path}')

    def _plan_modified(self, plan: RestorationPlan, operation: FileOperation, placeholders_only: bool) -> None:
        if not (self.project_dir / operation.path).exists():
            plan.warnings.append(f'Modified file {operation.path} no longer exists - cannot restore')
            return

        replacements = self.reverse_replacements(operation.placeholder_replacements, plan.resolved_values)
        content = operation.original_content
        # Sanitized content would write redaction tokens into the project; rebuild
        # from the live file by substituting resolved values instead.
        if placeholders_only or (content is not None and plan.undo_log.sanitized and is_sanitized_value(content)):
            content = None

        apply_replacements = content is None or plan.undo_log.metadata.project_type == 'vite-react'
        plan.actions.append(
            RestoreFileAction(
                path=operation.path,
                content=content,
                placeholder_replacements=replacements,
                apply_replacements=apply_replacements,
                note=(
                    'Restore original content'
                    if content is not None
                    else 'Replace placeholders in the current file with original values'
                ),
            )
        )

    def _plan_deleted(self, plan: RestorationPlan, operation: FileOperation) -> None:
        path = operation.path
        if operation.restoration_action != 'preserve' and (self.project_dir / path).exists():
            plan.warnings.append(f'Deleted item {path} already exists - it will be checked for conflicts')

        match operation.restoration_action:
            case 'restore-content':
                if operation.original_content is None:
                    reason = '; '.join(operation.warnings) or 'content not stored'
                    plan.warnings.append(f'Cannot restore {path} - content not available ({reason})')
                    return
                plan.actions.append(
                    RecreateFileAction(path=path, content=operation.original_content, note='Restore user-created file')
                )
            case 'regenerate':
                command = operation.regeneration_command
                if command and command not in plan.regeneration_commands:
                    plan.regeneration_commands.append(command)
                if operation.is_directory is False:
                    # Generated files (lock files) are never recreated as directories
                    plan.warnings.append(
                        f'Generated file {path} is not recreated'
                        + (f" - run '{command}' to regenerate it" if command else '')
                    )
                    return
                plan.actions.append(
                    RecreateDirectoryAction(
                        path=path,
                        regeneration_command=command,
                        note=(
                            f"Directory will be empty - run '{command}' to regenerate"
                            if command
                            else 'Directory will be recreated empty'
                        ),
                    )
                )
            case 'preserve':
                plan.actions.append(
                    PreserveFileAction(path=path, note='Template file - preserved for template functionality')
                )
            case _:
                plan.warnings.append(f'Unknown restoration action: {operation.restoration_action} for {path}')

    # ==========================================================================
    # Validation and warnings
    # ==========================================================================

    def _validate(self, plan: RestorationPlan) -> None:
        by_path: defaultdict[str, list[str]] = defaultdict(list)
        for action in plan.actions:
            match action:
                case RestoreFileAction() | RecreateFileAction() | RecreateDirectoryAction() | PreserveFileAction():
                    by_path[_normalize(action.path)].append(action.type)
                case UseDefaultValueAction() | RestorePlaceholdersOnlyAction() | SelectiveNoteAction():
                    pass
                case _:
                    raise ValueError(f'Unhandled action type: {type(action).__name__}')

        for path, types in by_path.items():
            writes = [action_type for action_type in types if action_type != 'preserve-file']
            if writes and 'preserve-file' in types:
                plan.warnings.append(f'Conflicting actions for {path}: restore and preserve')
            elif len(writes) > 1:
                plan.warnings.append(f'Conflicting actions for {path}: {", ".join(writes)}')

        for action in plan.actions:
            if isinstance(action, RecreateFileAction) and action.content is None:
                plan.warnings.append(f'Cannot restore {action.path} - content not available')
            elif isinstance(action, RestoreFileAction) and action.content is None and not action.placeholder_replacements:
                plan.warnings.append(f'Nothing to restore for {action.path} - no content or resolvable placeholders')

    def _add_plan_warnings(self, plan: RestorationPlan) -> None:
        if plan.undo_log.sanitized:
            plan.warnings.append('Undo log is sanitized - some original values may not be available')
        if plan.missing_values:
            plan.warnings.append(
                f'{len(plan.missing_values)} placeholder values are missing and will need to be provided'
            )
        if plan.regeneration_commands:
            plan.warnings.append(f'After restoration, run these commands: {", ".join(plan.regeneration_commands)}')
        if plan.mode == 'selective':
            plan.warnings.append('Selective restoration may leave project in inconsistent state')
        if any(isinstance(action, PreserveFileAction) for action in plan.actions):
            plan.warnings.append('Template files will be preserved - project remains usable as template')

    @staticmethod
    def summarize_plan(plan: RestorationPlan) -> PlanSummary:
        counts = Counter(action.type for action in plan.actions)
        return PlanSummary(
            total_actions=len(plan.actions),
            file_restorations=counts['restore-file'],
            file_recreations=counts['recreate-file'],
            directory_recreations=counts['recreate-directory'],
            preserved_files=counts['preserve-file'],
            default_values=counts['use-default-value'],
            missing_values=len(plan.missing_values),
            warnings=len(plan.warnings),
        )
