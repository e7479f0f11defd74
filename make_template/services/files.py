"""
Filesystem helpers shared by the restoration services.

All content writes go through a sibling temp file followed by os.replace,
so a reader never observes a half-written file.
"""

from __future__ import annotations

import json
import os
import shutil
from pathlib import Path

__all__ = [
    'atomic_copy',
    'atomic_write_json',
    'atomic_write_text',
    'read_text',
    'resolve_in_project',
]


def _temp_path(path: Path) -> Path:
    return path.with_name(f'.{path.name}.tmp~{os.getpid()}')


def read_text(path: Path) -> str:
    """Read UTF-8 text without newline translation."""
    with path.open(encoding='utf-8', newline='') as f:
        return f.read()


def atomic_write_text(path: Path, content: str) -> None:
    """Write text atomically, creating parent directories.

    An existing file keeps its permission bits (executable scripts stay executable).
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = _temp_path(path)
    try:
        # newline='' keeps recorded line endings byte-for-byte
        with tmp_path.open('w', encoding='utf-8', newline='') as f:
            f.write(content)
        if path.is_file():
            shutil.copymode(path, tmp_path)
        os.replace(tmp_path, path)
    finally:
        tmp_path.unlink(missing_ok=True)


def atomic_write_json(path: Path, data: object) -> None:
    """Write JSON atomically with 2-space indentation."""
    atomic_write_text(path, json.dumps(data, indent=2, ensure_ascii=False) + '\n')


def atomic_copy(source: Path, destination: Path) -> None:
    """Copy a file over destination atomically, preserving metadata."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = _temp_path(destination)
    try:
        shutil.copy2(source, tmp_path)
        os.replace(tmp_path, destination)
    finally:
        tmp_path.unlink(missing_ok=True)


def resolve_in_project(project_dir: Path, relative_path: str) -> Path:
    """Join a recorded relative path onto the project root.

    Raises:
        ValueError: If the result would land outside project_dir
    """
    root = project_dir.resolve()
    target = (root / relative_path.replace('\\', '/')).resolve()
    if target != root and root not in target.parents:
        raise ValueError(f'Path escapes the project directory: {relative_path}')
    return target
