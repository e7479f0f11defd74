"""End-to-end restoration tests."""

from __future__ import annotations

import json
import shutil
from pathlib import Path

import pytest
import pytest_asyncio

from make_template.exceptions import (
    MissingRestorationValuesError,
    RestorationPartialFailureError,
    UndoLogNotFoundError,
)
from make_template.protocols import MemoryLogger
from make_template.schemas.plan import RestoreOptions
from make_template.schemas.undo_log import ConversionAction, ConversionAnalysis, ConversionPlan, PlaceholderInfo
from make_template.services.engine import RestorationEngine
from make_template.services.undo_log import UndoLogManager
from tests.builders import (
    PACKAGE_JSON_ORIGINAL,
    PACKAGE_JSON_TEMPLATE,
    make_undo_log,
    modified,
    replacement,
    write_files,
)

ORIGINAL_FILES = {
    'package.json': PACKAGE_JSON_ORIGINAL,
    'README.md': '# acme-app\n\nInternal tooling.\n',
    '.env': 'API_TOKEN=abc123\n',
    'node_modules/react/index.js': 'module.exports = {}\n',
    'package-lock.json': '{"lockfileVersion": 3}\n',
}


async def convert(project_dir: Path) -> None:
    """Record an undo log, then apply the conversion it describes."""
    plan = ConversionPlan(
        analysis=ConversionAnalysis(
            project_type='generic',
            placeholders=(PlaceholderInfo(placeholder='{{PROJECT_NAME}}', value='acme-app'),),
        ),
        actions=(
            ConversionAction(
                type='modify', file='package.json', replacements=(replacement('acme-app', '{{PROJECT_NAME}}'),)
            ),
            ConversionAction(
                type='modify', file='README.md', replacements=(replacement('acme-app', '{{PROJECT_NAME}}'),)
            ),
            ConversionAction(type='delete', path='.env'),
            ConversionAction(type='delete', path='node_modules'),
            ConversionAction(type='delete', path='package-lock.json'),
            ConversionAction(type='create', file='_setup.mjs', content='export default {}\n'),
        ),
    )
    manager = UndoLogManager(project_dir)
    undo_log = await manager.create_undo_log(plan)
    manager.save_undo_log(undo_log, project_dir / '.template-undo.json')

    for name in ('package.json', 'README.md'):
        path = project_dir / name
        path.write_text(path.read_text(encoding='utf-8').replace('acme-app', '{{PROJECT_NAME}}'), encoding='utf-8')
    (project_dir / '.env').unlink()
    (project_dir / 'package-lock.json').unlink()
    shutil.rmtree(project_dir / 'node_modules')
    write_files(project_dir, {'_setup.mjs': 'export default {}\n'})


@pytest_asyncio.fixture
async def converted_project(project_dir: Path) -> Path:
    write_files(project_dir, ORIGINAL_FILES)
    await convert(project_dir)
    return project_dir


def never_confirm(text: str) -> bool:
    raise AssertionError(f'unexpected confirmation: {text}')


@pytest.mark.asyncio
async def test_full_round_trip(converted_project: Path, logger: MemoryLogger) -> None:
    engine = RestorationEngine(converted_project, logger=logger, confirm_fn=never_confirm)

    outcome = await engine.restore(RestoreOptions(yes=True))

    assert outcome.success
    for name in ('package.json', 'README.md', '.env'):
        assert (converted_project / name).read_text(encoding='utf-8') == ORIGINAL_FILES[name]
    assert (converted_project / 'node_modules').is_dir()
    assert not (converted_project / 'package-lock.json').exists()
    assert (converted_project / '_setup.mjs').exists()
    assert outcome.next_steps[0] == 'Run: npm install'
    assert outcome.result is not None
    assert len(outcome.result.backups) == 2


@pytest.mark.asyncio
async def test_dry_run_changes_nothing(converted_project: Path, logger: MemoryLogger) -> None:
    before = {path.name: path.read_bytes() for path in converted_project.iterdir() if path.is_file()}
    engine = RestorationEngine(converted_project, logger=logger, confirm_fn=never_confirm)

    outcome = await engine.restore(RestoreOptions(dry_run=True))

    after = {path.name: path.read_bytes() for path in converted_project.iterdir() if path.is_file()}
    assert outcome.success
    assert outcome.dry_run
    assert outcome.result is None
    assert after == before
    assert any(message.startswith('Dry run - ') for message in logger.messages('info'))
    assert 'recreate-file (1): .env' in logger.messages('info')
    assert any('package-lock.json is not recreated' in message for message in logger.messages('warning'))


@pytest.mark.asyncio
async def test_declined_confirmation_cancels(converted_project: Path) -> None:
    prompts: list[str] = []

    def decline(text: str) -> bool:
        prompts.append(text)
        return False

    outcome = await RestorationEngine(converted_project, confirm_fn=decline).restore(RestoreOptions())

    assert outcome.cancelled
    assert not outcome.success
    assert len(prompts) == 1
    assert not (converted_project / '.env').exists()


@pytest.mark.asyncio
async def test_silent_without_yes_declines(converted_project: Path) -> None:
    outcome = await RestorationEngine(converted_project, confirm_fn=never_confirm).restore(RestoreOptions(silent=True))

    assert outcome.cancelled
    assert not (converted_project / '.env').exists()


@pytest.mark.asyncio
async def test_selective_restore(converted_project: Path) -> None:
    outcome = await RestorationEngine(converted_project).restore(RestoreOptions(yes=True, restore_files='.env'))

    assert outcome.success
    assert (converted_project / '.env').read_text(encoding='utf-8') == ORIGINAL_FILES['.env']
    assert '{{PROJECT_NAME}}' in (converted_project / 'package.json').read_text(encoding='utf-8')
    assert 'Review the project - only part of it was restored' in outcome.next_steps


@pytest.mark.asyncio
async def test_missing_undo_log(project_dir: Path) -> None:
    with pytest.raises(UndoLogNotFoundError):
        await RestorationEngine(project_dir).restore(RestoreOptions(yes=True))


# ==============================================================================
# Sanitized logs
# ==============================================================================


def write_sanitized_log(project_dir: Path) -> None:
    log = make_undo_log(
        [
            modified(
                'package.json',
                '{"author": "{{SANITIZED_NAME}}"}\n',
                [replacement('{{SANITIZED_NAME}}', '{{AUTHOR_EMAIL}}')],
            )
        ],
        original_values={'{{AUTHOR_EMAIL}}': '{{SANITIZED_NAME}}'},
        sanitized=True,
    )
    UndoLogManager(project_dir).save_undo_log(log, project_dir / '.template-undo.json')
    write_files(project_dir, {'package.json': '{"author": "{{AUTHOR_EMAIL}}"}\n'})


@pytest.mark.asyncio
async def test_sanitized_values_are_prompted_for(project_dir: Path) -> None:
    write_sanitized_log(project_dir)
    engine = RestorationEngine(project_dir, prompt_fn=lambda text: 'dev@acme.io')

    outcome = await engine.restore(RestoreOptions(yes=True))

    assert outcome.success
    assert (project_dir / 'package.json').read_text(encoding='utf-8') == '{"author": "dev@acme.io"}\n'


@pytest.mark.asyncio
async def test_sanitized_values_from_defaults_file(project_dir: Path) -> None:
    write_sanitized_log(project_dir)
    write_files(
        project_dir,
        {'.restore-defaults.json': json.dumps({'version': '1.0.0', 'defaults': {'{{AUTHOR_EMAIL}}': 'ops@acme.io'}})},
    )

    outcome = await RestorationEngine(project_dir).restore(RestoreOptions(yes=True, silent=True))

    assert outcome.success
    assert (project_dir / 'package.json').read_text(encoding='utf-8') == '{"author": "ops@acme.io"}\n'


@pytest.mark.asyncio
async def test_silent_sanitized_restore_without_values_fails(project_dir: Path) -> None:
    write_sanitized_log(project_dir)

    with pytest.raises(MissingRestorationValuesError) as exc_info:
        await RestorationEngine(project_dir).restore(RestoreOptions(yes=True, silent=True))

    assert exc_info.value.placeholders == ['{{AUTHOR_EMAIL}}']
    assert (project_dir / 'package.json').read_text(encoding='utf-8') == '{"author": "{{AUTHOR_EMAIL}}"}\n'


# ==============================================================================
# Failures
# ==============================================================================


@pytest.mark.asyncio
async def test_failed_restore_writes_report_and_rolls_back(project_dir: Path) -> None:
    log = make_undo_log(
        [
            modified('package.json', PACKAGE_JSON_ORIGINAL, [replacement('acme-app', '{{PROJECT_NAME}}')]),
            modified('README.md', '# acme-app\n'),
        ]
    )
    UndoLogManager(project_dir).save_undo_log(log, project_dir / '.template-undo.json')
    write_files(project_dir, {'package.json': PACKAGE_JSON_TEMPLATE})
    (project_dir / 'README.md').write_bytes(b'\xff\xfe not utf-8')

    with pytest.raises(RestorationPartialFailureError) as exc_info:
        await RestorationEngine(project_dir).restore(RestoreOptions(yes=True))

    result = exc_info.value.result
    assert [r.path for r in result.action_results if not r.success] == ['README.md']
    assert (project_dir / 'package.json').read_text(encoding='utf-8') == PACKAGE_JSON_TEMPLATE
    report = json.loads((project_dir / '.restoration-failure-report.json').read_text(encoding='utf-8'))
    assert report['failedActions'] == 1
    assert report['rolledBack'] is True
