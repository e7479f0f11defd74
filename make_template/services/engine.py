"""
Restoration engine - the end-to-end restore workflow.

Steps:
1. Read and validate the undo log
2. Plan, prompting for sanitized values that defaults could not resolve
3. Dry run: report the plan and stop
4. Confirm, then execute with conflict detection, backups and rollback
5. Report regeneration commands and next steps
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from typing import TypeAlias
from pathlib import Path

import typer

from make_template.config.restore import settings
from make_template.exceptions import MissingRestorationValuesError, RestorationPartialFailureError
from make_template.protocols import LoggerProtocol, NullLogger
from make_template.schemas.execution import ExecutionOptions, RestoreOutcome
from make_template.schemas.plan import RestorationPlan, RestoreOptions
from make_template.services.defaults import DefaultsManager
from make_template.services.planner import RestorationPlanner
from make_template.services.processor import RestorationProcessor
from make_template.services.prompter import InteractivePrompter, PromptFn, is_non_interactive
from make_template.services.undo_log import UndoLogManager

__all__ = [
    'RestorationEngine',
]

ConfirmFn: TypeAlias = Callable[[str], bool]


def _typer_confirm(text: str) -> bool:
    return typer.confirm(text, default=False)


class RestorationEngine:
    """Restores one converted project from its undo log."""

    def __init__(
        self,
        project_dir: Path,
        logger: LoggerProtocol | None = None,
        prompt_fn: PromptFn | None = None,
        confirm_fn: ConfirmFn | None = None,
    ) -> None:
        self.project_dir = project_dir.resolve()
        self.logger = logger or NullLogger()
        self.prompt_fn = prompt_fn
        self.confirm_fn = confirm_fn or _typer_confirm

    def _resolve(self, path: str | None, default_name: str) -> Path:
        if path is None:
            return self.project_dir / default_name
        candidate = Path(path)
        return candidate if candidate.is_absolute() else self.project_dir / candidate

    async def restore(self, options: RestoreOptions) -> RestoreOutcome:
        """Run a restoration.

        Returns a cancelled outcome when confirmation is declined (including
        silent runs without ``yes``).

        Raises:
            UndoLogNotFoundError, UndoLogCorruptedError, UndoLogVersionMismatchError:
                If the undo log cannot be used (nothing touched)
            DefaultsFileError: If the defaults file is invalid
            MissingRestorationValuesError: If sanitized values remain unresolved
            PromptCancelledError: If the user closes an interactive prompt
            PlanValidationError: If the plan is structurally invalid
            RestorationPartialFailureError: If any action failed
        """
        undo_log_path = self._resolve(options.undo_log_path, settings.UNDO_LOG_FILENAME)
        defaults_manager = DefaultsManager(
            self._resolve(options.defaults_path, settings.DEFAULTS_FILENAME),
            working_dir=self.project_dir,
        )

        manager = UndoLogManager(self.project_dir, logger=self.logger)
        undo_log = await manager.read_undo_log(undo_log_path)

        summary = manager.summarize(undo_log)
        await self.logger.info(
            f'Undo log {summary.version} ({summary.project_type}, created {summary.created_at:%Y-%m-%d %H:%M}): '
            f'{summary.modified_files} modified, {summary.deleted_files} deleted, '
            f'{summary.created_files} created, {summary.placeholder_count} placeholder(s)'
        )

        planner = RestorationPlanner(self.project_dir, defaults_manager=defaults_manager, logger=self.logger)
        plan = await planner.create_restoration_plan(undo_log, options)

        if plan.missing_values and not options.dry_run:
            prompter = InteractivePrompter(
                defaults_manager,
                silent=options.silent,
                prompt_fn=self.prompt_fn,
                logger=self.logger,
            )
            values = await prompter.prompt_with_defaults(plan.missing_values)
            if values:
                plan = await planner.create_restoration_plan(undo_log, options, extra_values=values)

        if options.dry_run:
            await self._log_preview(plan)
            return RestoreOutcome(success=True, dry_run=True, plan=plan)

        if plan.missing_values:
            raise MissingRestorationValuesError(plan.missing_values)

        for warning in plan.warnings:
            await self.logger.warning(warning)

        if not options.yes:
            if is_non_interactive(options.silent):
                await self.logger.info('Restoration requires confirmation; pass --yes to run non-interactively')
                return RestoreOutcome(success=False, cancelled=True, plan=plan)
            summary_line = RestorationPlanner.summarize_plan(plan)
            if not self.confirm_fn(f'Apply {summary_line.total_actions} restoration action(s)?'):
                await self.logger.info('Restoration cancelled')
                return RestoreOutcome(success=False, cancelled=True, plan=plan)

        processor = RestorationProcessor(self.project_dir, logger=self.logger)
        result = await processor.execute_plan_with_safety(
            plan,
            ExecutionOptions(
                create_backups=options.create_backups,
                overwrite_existing=options.overwrite_existing,
                keep_backups=options.keep_backups,
                fail_on_conflict=options.fail_on_conflict,
            ),
        )

        if not result.success:
            report_path = processor.write_failure_report(result)
            await self.logger.error(f'Failure report written to {report_path.name}')
            raise RestorationPartialFailureError(result)

        await self.logger.info(
            f'Restoration completed: {result.actions_executed} action(s) in {result.duration_ms:.0f}ms'
        )
        for warning in result.warnings:
            await self.logger.warning(warning)
        if result.backups:
            await self.logger.info(f'{len(result.backups)} backup(s) kept next to the restored files')

        next_steps = self._next_steps(plan)
        for step in next_steps:
            await self.logger.info(f'Next: {step}')
        return RestoreOutcome(success=True, plan=plan, result=result, next_steps=next_steps)

    async def _log_preview(self, plan: RestorationPlan) -> None:
        await self.logger.info(f'Dry run - {len(plan.actions)} action(s) would be executed ({plan.mode} mode)')

        grouped: defaultdict[str, list[str]] = defaultdict(list)
        for action in plan.actions:
            grouped[action.type].append(getattr(action, 'path', None) or getattr(action, 'placeholder', None) or '-')
        for action_type, targets in grouped.items():
            await self.logger.info(f'{action_type} ({len(targets)}): {", ".join(targets)}')

        for warning in plan.warnings:
            await self.logger.warning(warning)
        if plan.missing_values:
            await self.logger.warning(f'Values needed before restoring: {", ".join(plan.missing_values)}')

    @staticmethod
    def _next_steps(plan: RestorationPlan) -> list[str]:
        steps = [f'Run: {command}' for command in plan.regeneration_commands]
        if plan.mode == 'selective':
            steps.append('Review the project - only part of it was restored')
        steps.append(f'Delete {settings.UNDO_LOG_FILENAME} once you have verified the restored project')
        return steps
