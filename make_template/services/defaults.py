"""
Restoration defaults - values for placeholders the undo log can't supply.

.restore-defaults.json maps placeholder tokens to values, with shell-style
environment expansion:
- ${VAR} and ${VAR:-fallback}
- ${PWD##*/} - name of the working directory
- \\${VAR} - kept literally as ${VAR}
"""

from __future__ import annotations

import json
import os
import re
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path

import pydantic

from make_template.config.restore import settings
from make_template.exceptions import DefaultsFileError, DefaultsFileExistsError
from make_template.schemas.base import StrictModel
from make_template.services.files import atomic_write_json

__all__ = [
    'DEFAULTS_FILE_VERSION',
    'DefaultsFile',
    'DefaultsManager',
    'ResolvedDefaults',
]

DEFAULTS_FILE_VERSION = '1.0.0'

PLACEHOLDER_KEY_PATTERN = re.compile(r'^\{\{[A-Z_][A-Z0-9_]*\}\}$')

# Group 1: escaped expression (kept literally), group 2: expression to expand
_VARIABLE_PATTERN = re.compile(r'\\(\$\{[^}]+\})|\$\{([^}]+)\}')

STARTER_VALUES: Mapping[str, str] = {
    '{{PROJECT_NAME}}': '${PWD##*/}',
    '{{AUTHOR_NAME}}': '${USER}',
    '{{AUTHOR_EMAIL}}': 'dev@example.com',
    '{{PROJECT_DESCRIPTION}}': 'A template-restored project',
}


class DefaultsFile(StrictModel):
    """On-disk .restore-defaults.json."""

    version: str = pydantic.Field(min_length=1)
    defaults: Mapping[str, str] = pydantic.Field(default_factory=dict)
    environment_variables: bool = True
    prompt_for_missing: bool = True

    @pydantic.field_validator('defaults')
    @classmethod
    def validate_placeholder_keys(cls, v: Mapping[str, str]) -> Mapping[str, str]:
        invalid = [key for key in v if not PLACEHOLDER_KEY_PATTERN.match(key)]
        if invalid:
            raise ValueError(f'invalid placeholder format (expected {{{{UPPER_NAME}}}}): {", ".join(invalid)}')
        return v


class ResolvedDefaults(StrictModel):
    resolved: Mapping[str, str]
    still_missing: Sequence[str]
    prompt_for_missing: bool


class DefaultsManager:
    """Loads, expands and generates restoration defaults."""

    def __init__(self, defaults_path: Path, working_dir: Path | None = None) -> None:
        """
        Args:
            defaults_path: Location of .restore-defaults.json
            working_dir: Directory ${PWD} refers to (default: $PWD or the process cwd)
        """
        self.defaults_path = defaults_path
        self.working_dir = working_dir

    @classmethod
    def for_project(cls, project_dir: Path) -> DefaultsManager:
        return cls(project_dir / settings.DEFAULTS_FILENAME, working_dir=project_dir)

    def load_defaults(self) -> DefaultsFile:
        """Load the defaults file; a missing file means no defaults.

        Raises:
            DefaultsFileError: If the file is not valid JSON or fails validation
        """
        if not self.defaults_path.exists():
            return DefaultsFile(version=DEFAULTS_FILE_VERSION)

        try:
            data = json.loads(self.defaults_path.read_text(encoding='utf-8'))
        except json.JSONDecodeError as e:
            raise DefaultsFileError(str(self.defaults_path), f'invalid JSON: {e.msg} (line {e.lineno})') from e
        except (OSError, UnicodeDecodeError) as e:
            raise DefaultsFileError(str(self.defaults_path), f'cannot read file: {e}') from e

        if not isinstance(data, dict):
            raise DefaultsFileError(str(self.defaults_path), 'expected a JSON object')
        try:
            return DefaultsFile.model_validate(data)
        except pydantic.ValidationError as e:
            issues = '; '.join(
                f'{".".join(str(part) for part in err["loc"]) or "file"}: {err["msg"]}' for err in e.errors()
            )
            raise DefaultsFileError(str(self.defaults_path), issues) from e

    def substitute_environment_variables(self, defaults: Mapping[str, str]) -> dict[str, str]:
        """Expand ${...} expressions in every value. Never raises."""
        return {placeholder: self.expand(value) for placeholder, value in defaults.items()}

    def expand(self, value: str) -> str:
        return _VARIABLE_PATTERN.sub(self._replace_variable, value)

    def _replace_variable(self, match: re.Match[str]) -> str:
        escaped, expression = match.groups()
        if escaped is not None:
            return escaped

        name, separator, fallback = expression.partition(':-')
        if name == 'PWD##*/':
            return self._pwd().name
        if name.startswith('PWD#'):
            return str(self._pwd())

        env_value = os.environ.get(name)
        if env_value is not None:
            return env_value
        return fallback if separator else ''

    def _pwd(self) -> Path:
        if self.working_dir is not None:
            return self.working_dir.resolve()
        return Path(os.environ.get('PWD') or os.getcwd())

    def resolve_defaults(self, missing: Iterable[str]) -> ResolvedDefaults:
        """Split missing placeholders into those with a default and those without."""
        config = self.load_defaults()
        defaults = dict(config.defaults)
        if config.environment_variables:
            defaults = self.substitute_environment_variables(defaults)

        resolved: dict[str, str] = {}
        still_missing: list[str] = []
        for placeholder in missing:
            if placeholder in defaults:
                resolved[placeholder] = defaults[placeholder]
            else:
                still_missing.append(placeholder)

        return ResolvedDefaults(
            resolved=resolved,
            still_missing=still_missing,
            prompt_for_missing=config.prompt_for_missing,
        )

    def generate_defaults_file(self, placeholders: Iterable[str], force: bool = False) -> DefaultsFile:
        """Write a starter defaults file for the given placeholders.

        Raises:
            DefaultsFileExistsError: If the file exists and force is False
        """
        if self.defaults_path.exists() and not force:
            raise DefaultsFileExistsError(str(self.defaults_path))

        config = DefaultsFile(
            version=DEFAULTS_FILE_VERSION,
            # Only {{UPPER_NAME}} tokens are valid keys; other styles are left out
            defaults={
                placeholder: starter_value(placeholder)
                for placeholder in placeholders
                if PLACEHOLDER_KEY_PATTERN.match(placeholder)
            },
        )
        atomic_write_json(self.defaults_path, config.to_json_dict())
        return config


def starter_value(placeholder: str) -> str:
    """Suggested default for a placeholder in a freshly generated defaults file."""
    if placeholder in STARTER_VALUES:
        return STARTER_VALUES[placeholder]
    return f'default-{placeholder.strip("{}").lower()}'
