"""Tests for restoration defaults loading and expansion."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from make_template.exceptions import DefaultsFileError, DefaultsFileExistsError
from make_template.services.defaults import DefaultsManager


def write_defaults(path: Path, defaults: dict[str, str], **options: bool) -> None:
    path.write_text(json.dumps({'version': '1.0.0', 'defaults': defaults, **options}), encoding='utf-8')


@pytest.fixture
def manager(project_dir: Path) -> DefaultsManager:
    return DefaultsManager.for_project(project_dir)


def test_missing_file_means_no_defaults(manager: DefaultsManager) -> None:
    resolved = manager.resolve_defaults(['{{PROJECT_NAME}}'])

    assert dict(resolved.resolved) == {}
    assert list(resolved.still_missing) == ['{{PROJECT_NAME}}']
    assert resolved.prompt_for_missing


def test_resolve_defaults_expands_variables(
    manager: DefaultsManager, project_dir: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv('AUTHOR', 'Dana')
    monkeypatch.delenv('UNSET_VARIABLE', raising=False)
    write_defaults(
        manager.defaults_path,
        {
            '{{PROJECT_NAME}}': '${PWD##*/}',
            '{{AUTHOR_NAME}}': '${AUTHOR}',
            '{{AUTHOR_EMAIL}}': '${UNSET_VARIABLE:-dev@example.com}',
            '{{README_TITLE}}': '${UNSET_VARIABLE}',
            '{{BASE_URL}}': 'https://\\${HOST}',
        },
    )

    resolved = manager.resolve_defaults(
        ['{{PROJECT_NAME}}', '{{AUTHOR_NAME}}', '{{AUTHOR_EMAIL}}', '{{README_TITLE}}', '{{BASE_URL}}', '{{OTHER}}']
    )

    assert dict(resolved.resolved) == {
        '{{PROJECT_NAME}}': project_dir.name,
        '{{AUTHOR_NAME}}': 'Dana',
        '{{AUTHOR_EMAIL}}': 'dev@example.com',
        '{{README_TITLE}}': '',
        '{{BASE_URL}}': 'https://${HOST}',
    }
    assert list(resolved.still_missing) == ['{{OTHER}}']


def test_environment_expansion_can_be_disabled(manager: DefaultsManager) -> None:
    write_defaults(manager.defaults_path, {'{{PROJECT_NAME}}': '${PWD##*/}'}, environmentVariables=False)

    resolved = manager.resolve_defaults(['{{PROJECT_NAME}}'])

    assert resolved.resolved['{{PROJECT_NAME}}'] == '${PWD##*/}'


@pytest.mark.parametrize(
    ('content', 'reason'),
    [
        ('{broken', 'invalid JSON'),
        ('"just a string"', 'expected a JSON object'),
        ('{"version": "1.0.0", "defaults": {"PROJECT_NAME": "x"}}', 'invalid placeholder format'),
        ('{"version": "1.0.0", "unknown": true}', 'unknown'),
    ],
)
def test_invalid_defaults_file(manager: DefaultsManager, content: str, reason: str) -> None:
    manager.defaults_path.write_text(content, encoding='utf-8')

    with pytest.raises(DefaultsFileError, match=reason):
        manager.load_defaults()


def test_generate_defaults_file(manager: DefaultsManager) -> None:
    config = manager.generate_defaults_file(['{{PROJECT_NAME}}', '{{WORKER_NAME}}', '__LEGACY__'])

    data = json.loads(manager.defaults_path.read_text(encoding='utf-8'))
    assert data['defaults'] == {'{{PROJECT_NAME}}': '${PWD##*/}', '{{WORKER_NAME}}': 'default-worker_name'}
    assert data['environmentVariables'] is True
    assert data['promptForMissing'] is True
    assert dict(config.defaults) == data['defaults']


def test_generate_defaults_file_refuses_to_overwrite(manager: DefaultsManager) -> None:
    manager.generate_defaults_file(['{{PROJECT_NAME}}'])

    with pytest.raises(DefaultsFileExistsError):
        manager.generate_defaults_file(['{{AUTHOR_NAME}}'])

    manager.generate_defaults_file(['{{AUTHOR_NAME}}'], force=True)
    assert '{{AUTHOR_NAME}}' in manager.load_defaults().defaults
