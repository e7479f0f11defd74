"""Shared fixtures for make-template tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from make_template.protocols import MemoryLogger
from make_template.schemas.undo_log import UndoLog
from tests.builders import PACKAGE_JSON_ORIGINAL, make_undo_log, modified, replacement


@pytest.fixture(autouse=True)
def interactive_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Tests run as if attached to a terminal unless they opt out."""
    monkeypatch.delenv('CI', raising=False)
    monkeypatch.delenv('MAKE_TEMPLATE_SILENT', raising=False)


@pytest.fixture
def logger() -> MemoryLogger:
    return MemoryLogger()


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    project = tmp_path / 'acme-app'
    project.mkdir()
    return project


@pytest.fixture
def package_json_log() -> UndoLog:
    """One modified package.json whose name was replaced by {{PROJECT_NAME}}."""
    return make_undo_log(
        [modified('package.json', PACKAGE_JSON_ORIGINAL, [replacement('acme-app', '{{PROJECT_NAME}}')])],
    )
