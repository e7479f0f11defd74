"""
Interactive prompting for placeholder values that defaults can't supply.

Prompting is skipped entirely in non-interactive runs (--silent,
MAKE_TEMPLATE_SILENT=1, or a CI environment); callers then get only the
values the defaults file resolved.
"""

from __future__ import annotations

import os
import re
from collections.abc import Callable, Mapping, Sequence
from typing import TypeAlias

import typer

from make_template.config.restore import settings
from make_template.exceptions import PromptCancelledError
from make_template.protocols import LoggerProtocol, NullLogger
from make_template.services.defaults import DefaultsManager

__all__ = [
    'InteractivePrompter',
    'PLACEHOLDER_DESCRIPTIONS',
    'default_validator',
    'is_non_interactive',
]

Validator: TypeAlias = Callable[[str], str | None]
"""Returns an error message for invalid input, None when valid."""

PromptFn: TypeAlias = Callable[[str], str]
"""Reads one line; raises EOFError or typer.Abort when input is closed."""

PLACEHOLDER_DESCRIPTIONS: Mapping[str, str] = {
    '{{PROJECT_NAME}}': 'The name of the project',
    '{{AUTHOR_NAME}}': 'The author or maintainer name',
    '{{AUTHOR_EMAIL}}': 'The author email address',
    '{{PROJECT_DESCRIPTION}}': 'A brief description of the project',
    '{{CLOUDFLARE_ACCOUNT_ID}}': 'Your Cloudflare account ID',
    '{{WORKER_NAME}}': 'The Cloudflare Worker name',
    '{{D1_BINDING_0}}': 'The D1 database binding name',
    '{{D1_DATABASE_ID_0}}': 'The D1 database ID',
    '{{BASE_URL}}': 'The base URL for the application',
    '{{HTML_TITLE}}': 'The HTML page title',
    '{{README_TITLE}}': 'The title for the README file',
    '{{REPOSITORY_URL}}': 'The repository URL',
}

_PROJECT_NAME = re.compile(r'^[a-z0-9-]+$')
_EMAIL = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
_ACCOUNT_ID = re.compile(r'^[A-Za-z0-9]{32}$')
_UUID = re.compile(r'^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$', re.IGNORECASE)
_DATABASE_ID_PLACEHOLDER = re.compile(r'^\{\{D1_DATABASE_ID_\d+\}\}$')


def describe(placeholder: str) -> str:
    return PLACEHOLDER_DESCRIPTIONS.get(placeholder, f'Enter value for {placeholder}')


def _validate_project_name(value: str) -> str | None:
    if not value.strip():
        return 'Project name cannot be empty'
    if not _PROJECT_NAME.match(value):
        return 'Project name must contain only lowercase letters, numbers, and hyphens'
    return None


def _validate_email(value: str) -> str | None:
    if not value.strip():
        return 'Email address cannot be empty'
    if not _EMAIL.match(value):
        return 'Please enter a valid email address'
    return None


def _validate_account_id(value: str) -> str | None:
    if not value.strip():
        return 'Cloudflare account ID cannot be empty'
    if not _ACCOUNT_ID.match(value):
        return 'Cloudflare account ID must be exactly 32 letters and numbers'
    return None


def _validate_uuid(value: str) -> str | None:
    if not value.strip():
        return 'D1 database ID cannot be empty'
    if not _UUID.match(value):
        return 'D1 database ID must be in UUID format (e.g., 12345678-90ab-cdef-1234-567890abcdef)'
    return None


def _validate_non_empty(value: str) -> str | None:
    return None if value.strip() else 'Value cannot be empty'


def default_validator(placeholder: str) -> Validator:
    """Built-in validator for a placeholder."""
    if placeholder in ('{{PROJECT_NAME}}', '{{WORKER_NAME}}'):
        return _validate_project_name
    if placeholder == '{{AUTHOR_EMAIL}}':
        return _validate_email
    if placeholder == '{{CLOUDFLARE_ACCOUNT_ID}}':
        return _validate_account_id
    if _DATABASE_ID_PLACEHOLDER.match(placeholder):
        return _validate_uuid
    return _validate_non_empty


def is_non_interactive(silent: bool = False) -> bool:
    return silent or settings.SILENT or bool(os.environ.get('CI'))


def _typer_prompt(text: str) -> str:
    return typer.prompt(text, default='', show_default=False)


class InteractivePrompter:
    """Asks the user for placeholder values, one at a time, until each is valid."""

    def __init__(
        self,
        defaults_manager: DefaultsManager,
        silent: bool = False,
        prompt_fn: PromptFn | None = None,
        logger: LoggerProtocol | None = None,
    ) -> None:
        self.defaults_manager = defaults_manager
        self.silent = is_non_interactive(silent)
        self.prompt_fn = prompt_fn or _typer_prompt
        self.logger = logger or NullLogger()

    async def prompt_for_missing_values(
        self,
        placeholders: Sequence[str],
        validators: Mapping[str, Validator] | None = None,
        defaults: Mapping[str, str] | None = None,
    ) -> dict[str, str]:
        """Prompt for each placeholder in order.

        Raises:
            PromptCancelledError: If input is closed before every value is given
        """
        validators = validators or {}
        defaults = defaults or {}
        values: dict[str, str] = {}
        for placeholder in placeholders:
            values[placeholder] = await self.prompt_for_value(
                placeholder,
                validators.get(placeholder),
                defaults.get(placeholder),
            )
        return values

    async def prompt_for_value(
        self,
        placeholder: str,
        validator: Validator | None = None,
        default: str | None = None,
    ) -> str:
        validate = validator or default_validator(placeholder)
        text = f'{describe(placeholder)} {placeholder}'
        if default:
            text += f' (default: {default})'

        while True:
            try:
                answer = self.prompt_fn(text)
            except (EOFError, typer.Abort) as e:
                raise PromptCancelledError(placeholder) from e

            value = answer.strip() or default or ''
            error = validate(value)
            if error is None:
                return value
            await self.logger.warning(error)

    async def prompt_with_defaults(
        self,
        placeholders: Sequence[str],
        validators: Mapping[str, Validator] | None = None,
    ) -> dict[str, str]:
        """Resolve from the defaults file first, then prompt for the rest.

        In non-interactive mode, or when the defaults file disables prompting,
        only the resolved defaults are returned.
        """
        result = self.defaults_manager.resolve_defaults(placeholders)
        resolved = dict(result.resolved)

        if not result.still_missing:
            return resolved
        if self.silent or not result.prompt_for_missing:
            await self.logger.info(
                f'Skipping prompts for {len(result.still_missing)} value(s): {", ".join(result.still_missing)}'
            )
            return resolved

        await self.logger.info('Some values need to be provided for restoration')
        prompted = await self.prompt_for_missing_values(result.still_missing, validators)
        return {**resolved, **prompted}
