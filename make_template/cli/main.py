#!/usr/bin/env python3
"""
Command-line interface for make-template.

Provides commands to restore a converted project from its undo log, and to
inspect, sanitize and prepare defaults for that restoration.
"""

from __future__ import annotations

import asyncio
import traceback
from pathlib import Path

import typer

from make_template.cli.logger import CLILogger
from make_template.config.restore import settings
from make_template.exceptions import MakeTemplateError
from make_template.schemas.plan import RestoreOptions
from make_template.services.defaults import STARTER_VALUES, DefaultsManager
from make_template.services.engine import RestorationEngine
from make_template.services.planner import RestorationPlanner
from make_template.services.undo_log import UndoLogManager

app = typer.Typer(
    name='make-template',
    help='Restore projects converted into templates',
    add_completion=False,
)


def _project_dir(project: Path | None) -> Path:
    project_dir = (project or Path.cwd()).resolve()
    if not project_dir.is_dir():
        typer.secho(f'Error: Project directory does not exist: {project_dir}', fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    return project_dir


def _undo_log_path(project_dir: Path, undo_log: Path | None) -> Path:
    if undo_log is None:
        return project_dir / settings.UNDO_LOG_FILENAME
    return undo_log if undo_log.is_absolute() else project_dir / undo_log


def _report_error(error: MakeTemplateError) -> None:
    typer.secho(f'Error: {error}', fg=typer.colors.RED, err=True)
    if error.suggestions:
        typer.echo('Suggestions:', err=True)
        for suggestion in error.suggestions:
            typer.echo(f'  - {suggestion}', err=True)


@app.command()
def restore(
    undo_log: Path | None = typer.Option(None, '--undo-log', help='Undo log path (default: .template-undo.json)'),
    project: Path | None = typer.Option(None, '--project', '-p', help='Project directory (default: current)'),
    dry_run: bool = typer.Option(False, '--dry-run', help='Show what would be restored without changing anything'),
    yes: bool = typer.Option(False, '--yes', '-y', help='Skip the confirmation prompt'),
    restore_files: str | None = typer.Option(
        None, '--restore-files', help='Comma-separated relative paths to restore (selective mode)'
    ),
    restore_placeholders: bool = typer.Option(
        False, '--restore-placeholders', help='Only put original values back into modified files'
    ),
    silent: bool = typer.Option(False, '--silent', help='Never prompt; use defaults only'),
    defaults: Path | None = typer.Option(None, '--defaults', help='Defaults file (default: .restore-defaults.json)'),
    no_backup: bool = typer.Option(False, '--no-backup', help='Remove backups after a successful restore'),
    force: bool = typer.Option(False, '--force', help='Overwrite existing files that differ from the undo log'),
    fail_on_conflict: bool = typer.Option(
        False, '--fail-on-conflict', help='Stop before changing anything if existing files conflict with the undo log'
    ),
    verbose: bool = typer.Option(False, '--verbose', '-v', help='Verbose output'),
) -> None:
    """Restore the original project from its undo log."""
    options = RestoreOptions(
        undo_log_path=str(undo_log) if undo_log else None,
        defaults_path=str(defaults) if defaults else None,
        dry_run=dry_run,
        yes=yes,
        silent=silent,
        restore_files=restore_files,
        restore_placeholders=restore_placeholders,
        keep_backups=not no_backup,
        overwrite_existing=force,
        fail_on_conflict=fail_on_conflict,
    )
    asyncio.run(_restore_async(_project_dir(project), options, verbose))


async def _restore_async(project_dir: Path, options: RestoreOptions, verbose: bool) -> None:
    """Async implementation of restore command."""
    logger = CLILogger(verbose=verbose)
    engine = RestorationEngine(project_dir, logger=logger)

    try:
        outcome = await engine.restore(options)
    except MakeTemplateError as e:
        _report_error(e)
        raise typer.Exit(1)
    except Exception as e:
        await logger.error(f'Failed to restore project: {e}')
        if verbose:
            traceback.print_exc()
        raise typer.Exit(1)

    if outcome.cancelled:
        typer.echo('Restoration cancelled - nothing was changed.')
        return

    plan = outcome.plan
    if outcome.dry_run:
        summary = RestorationPlanner.summarize_plan(plan)
        typer.secho('Dry run - no files were changed', fg=typer.colors.CYAN)
        typer.echo(f'  Mode: {plan.mode}')
        typer.echo(f'  Actions: {summary.total_actions}')
        typer.echo(f'    - Files restored: {summary.file_restorations}')
        typer.echo(f'    - Files recreated: {summary.file_recreations}')
        typer.echo(f'    - Directories recreated: {summary.directory_recreations}')
        typer.echo(f'    - Template files preserved: {summary.preserved_files}')
        if plan.missing_values:
            typer.echo(f'  Missing values: {", ".join(plan.missing_values)}')
        return

    result = outcome.result
    typer.secho('✓ Project restored successfully!', fg=typer.colors.GREEN)
    typer.echo(f'  Actions executed: {result.actions_executed}')
    if result.conflicts:
        typer.echo(f'  Conflicts: {len(result.conflicts)}')
        for conflict in result.conflicts:
            typer.echo(f'    - {conflict.path}: {conflict.reason}')
    if result.backups:
        typer.echo(f'  Backups: {len(result.backups)}')
    if result.cleanup_guidance:
        typer.echo()
        typer.echo('Cleanup:')
        for line in result.cleanup_guidance:
            typer.echo(f'  - {line}')
    if outcome.next_steps:
        typer.echo()
        typer.echo('Next steps:')
        for step in outcome.next_steps:
            typer.secho(f'  {step}', fg=typer.colors.CYAN)


@app.command()
def inspect(
    undo_log: Path | None = typer.Option(None, '--undo-log', help='Undo log path (default: .template-undo.json)'),
    project: Path | None = typer.Option(None, '--project', '-p', help='Project directory (default: current)'),
    verbose: bool = typer.Option(False, '--verbose', '-v', help='List every recorded file operation'),
) -> None:
    """Show an undo log summary and integrity warnings."""
    asyncio.run(_inspect_async(_project_dir(project), undo_log, verbose))


async def _inspect_async(project_dir: Path, undo_log: Path | None, verbose: bool) -> None:
    manager = UndoLogManager(project_dir, logger=CLILogger(verbose=verbose))
    try:
        log = await manager.read_undo_log(_undo_log_path(project_dir, undo_log))
    except MakeTemplateError as e:
        _report_error(e)
        raise typer.Exit(1)

    summary = manager.summarize(log)
    typer.echo(f'Undo log version: {summary.version}')
    typer.echo(f'  Project type: {summary.project_type}')
    typer.echo(f'  Created: {summary.created_at.isoformat()}')
    typer.echo(f'  Sanitized: {"yes" if summary.sanitized else "no"}')
    typer.echo(f'  Placeholders: {summary.placeholder_count}')
    typer.echo(
        f'  Files: {summary.modified_files} modified, {summary.deleted_files} deleted, {summary.created_files} created'
    )
    typer.echo(f'  Recorded size: {summary.total_size_bytes:,} bytes')
    if summary.sanitization_report:
        report = summary.sanitization_report
        typer.echo(f'  Sanitized items: {report.items_removed} ({", ".join(report.categories_affected)})')

    if verbose:
        typer.echo()
        for operation in log.file_operations:
            typer.echo(f'  {operation.type:<8} {operation.category:<14} {operation.restoration_action:<15} {operation.path}')


@app.command()
def sanitize(
    undo_log: Path | None = typer.Option(None, '--undo-log', help='Undo log path (default: .template-undo.json)'),
    project: Path | None = typer.Option(None, '--project', '-p', help='Project directory (default: current)'),
    output: Path | None = typer.Option(None, '--output', '-o', help='Write here instead of in place'),
    verbose: bool = typer.Option(False, '--verbose', '-v', help='Verbose output'),
) -> None:
    """Remove sensitive values from an existing undo log."""
    asyncio.run(_sanitize_async(_project_dir(project), undo_log, output, verbose))


async def _sanitize_async(project_dir: Path, undo_log: Path | None, output: Path | None, verbose: bool) -> None:
    manager = UndoLogManager(project_dir, logger=CLILogger(verbose=verbose))
    source = _undo_log_path(project_dir, undo_log)
    try:
        log = await manager.read_undo_log(source)
    except MakeTemplateError as e:
        _report_error(e)
        raise typer.Exit(1)

    sanitized = await manager.sanitize_undo_log(log)
    destination = output or source
    manager.save_undo_log(sanitized, destination)

    report = sanitized.sanitization_report
    typer.secho(f'✓ Sanitized undo log written to {destination}', fg=typer.colors.GREEN)
    if report is not None:
        typer.echo(f'  Items removed: {report.items_removed}')
        if report.categories_affected:
            typer.echo(f'  Categories: {", ".join(report.categories_affected)}')
        for recommendation in report.recommendations:
            typer.echo(f'  - {recommendation}')


@app.command('init-defaults')
def init_defaults(
    undo_log: Path | None = typer.Option(None, '--undo-log', help='Undo log to take placeholders from'),
    project: Path | None = typer.Option(None, '--project', '-p', help='Project directory (default: current)'),
    force: bool = typer.Option(False, '--force', help='Overwrite an existing defaults file'),
) -> None:
    """Create a starter .restore-defaults.json."""
    asyncio.run(_init_defaults_async(_project_dir(project), undo_log, force))


async def _init_defaults_async(project_dir: Path, undo_log: Path | None, force: bool) -> None:
    logger = CLILogger()
    log_path = _undo_log_path(project_dir, undo_log)
    manager = DefaultsManager.for_project(project_dir)

    try:
        if log_path.exists():
            log = await UndoLogManager(project_dir, logger=logger).read_undo_log(log_path)
            placeholders = list(log.original_values)
        else:
            placeholders = list(STARTER_VALUES)
        config = manager.generate_defaults_file(placeholders, force=force)
    except MakeTemplateError as e:
        _report_error(e)
        raise typer.Exit(1)

    typer.secho(f'✓ Created {manager.defaults_path.name}', fg=typer.colors.GREEN)
    typer.echo(f'  Placeholders: {len(config.defaults)}')
    typer.echo('  Values may use ${VAR}, ${VAR:-fallback} and ${PWD##*/}')


if __name__ == '__main__':
    app()
