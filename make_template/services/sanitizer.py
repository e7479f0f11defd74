"""
Undo log sanitization - best-effort removal of secrets and personal data.

Sanitization is one-way: every match is replaced by a fixed token such as
{{SANITIZED_API_KEY}} and cannot be reversed. Restoring a sanitized log
requires the real values from a defaults file or the user.

Only known patterns are redacted. This is not a secret scanner.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime

from make_template.schemas.undo_log import FileOperation, SanitizationReport, UndoLog

__all__ = [
    'DEFAULT_SANITIZATION_RULES',
    'SanitizationRule',
    'Sanitizer',
]


@dataclass(frozen=True)
class SanitizationRule:
    """A named group of patterns sharing one replacement token."""

    replacement: str
    description: str
    patterns: tuple[re.Pattern[str], ...] = field(default_factory=tuple)


# Order matters: database URLs embed credentials and emails, so they are
# matched before personalInfo can split them.
DEFAULT_SANITIZATION_RULES: Mapping[str, SanitizationRule] = {
    'apiKeys': SanitizationRule(
        replacement='{{SANITIZED_API_KEY}}',
        description='API keys and authentication tokens',
        patterns=(
            re.compile(r'sk-[a-zA-Z0-9]{48}'),  # OpenAI
            re.compile(r'xoxb-[0-9]+-[0-9]+-[0-9]+-[a-f0-9]{32}'),  # Slack bot
            re.compile(r'gh[pous]_[a-zA-Z0-9]{36}'),  # GitHub
            re.compile(r'glpat-[a-zA-Z0-9_\-]{20}'),  # GitLab
            re.compile(r'AIza[0-9A-Za-z\-_]{35}'),  # Google API
            re.compile(r'ya29\.[0-9A-Za-z\-_]+'),  # Google OAuth2
            re.compile(r'AKIA[0-9A-Z]{16}'),  # AWS access key ID
            re.compile(r'eyJ[A-Za-z0-9\-_=]+\.[A-Za-z0-9\-_=]+\.?[A-Za-z0-9\-_.+/=]*'),  # JWT
        ),
    ),
    'databaseUrls': SanitizationRule(
        replacement='{{SANITIZED_DATABASE_URL}}',
        description='Database connection URLs',
        patterns=(
            re.compile(r'(?:postgres|postgresql|mysql|mongodb(?:\+srv)?)://[^@\s]+@[^/\s]+/[^\s\'"]+'),
            re.compile(r'(?:redis|libsql)://[^@\s]+@[^/\s]+/?[^\s\'"]*'),
        ),
    ),
    'personalInfo': SanitizationRule(
        replacement='{{SANITIZED_NAME}}',
        description='Personal names and email addresses',
        patterns=(
            re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b'),
            re.compile(r'\b[A-Z][a-z]+\s+[A-Z]\.\s+[A-Z][a-z]+\b'),  # First M. Last
            re.compile(r'\b[A-Z][a-z]+ [A-Z][a-z]+\b'),  # First Last
        ),
    ),
    'filePaths': SanitizationRule(
        replacement='{{SANITIZED_PATH}}',
        description='User-specific file paths',
        patterns=(
            re.compile(r'/Users/[^/\s]+'),
            re.compile(r'C:\\Users\\[^\\/\s]+'),
            re.compile(r'/home/[^/\s]+'),
        ),
    ),
    'cloudflareIds': SanitizationRule(
        replacement='{{SANITIZED_ID}}',
        description='Cloudflare account IDs and UUIDs',
        patterns=(
            re.compile(r'[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12}'),
            re.compile(r'\b[a-f0-9]{32}\b'),
        ),
    ),
    'ipAddresses': SanitizationRule(
        replacement='{{SANITIZED_IP}}',
        description='IP addresses',
        patterns=(
            re.compile(r'\b(?:[0-9]{1,3}\.){3}[0-9]{1,3}\b'),
            re.compile(r'\b(?:[0-9a-fA-F]{1,4}:){7}[0-9a-fA-F]{1,4}\b'),
        ),
    ),
}


@dataclass
class _Tally:
    """Mutable bookkeeping for one sanitization pass."""

    sanitization_map: dict[str, list[str]] = field(default_factory=dict)
    items_removed: int = 0
    categories: list[str] = field(default_factory=list)


class Sanitizer:
    """Applies sanitization rules to undo logs."""

    def __init__(
        self,
        custom_rules: Mapping[str, SanitizationRule] | None = None,
        disabled_rules: Sequence[str] = (),
    ) -> None:
        rules = {**DEFAULT_SANITIZATION_RULES, **(custom_rules or {})}
        self.rules = {name: rule for name, rule in rules.items() if name not in disabled_rules}

    def sanitize_value(self, value: str, sanitization_map: dict[str, list[str]] | None = None) -> tuple[str, list[str]]:
        """Redact every rule match in value.

        Returns:
            (sanitized value, names of the rule groups that matched)
        """
        categories: list[str] = []
        for category, rule in self.rules.items():
            matched = False
            for pattern in rule.patterns:
                for match in dict.fromkeys(pattern.findall(value)):
                    if sanitization_map is not None:
                        seen = sanitization_map.setdefault(category, [])
                        if match not in seen:
                            seen.append(match)
                    value = value.replace(match, rule.replacement)
                    matched = True
            if matched:
                categories.append(category)
        return value, categories

    def sanitize_undo_log(self, undo_log: UndoLog) -> tuple[UndoLog, SanitizationReport]:
        """Return a sanitized copy of undo_log plus a report of what was removed."""
        tally = _Tally()

        original_values = {
            placeholder: self._apply(value, tally) for placeholder, value in undo_log.original_values.items()
        }
        operations = [self._sanitize_operation(operation, tally) for operation in undo_log.file_operations]
        metadata = undo_log.metadata.model_copy(
            update={
                'tool_version': self._apply(undo_log.metadata.tool_version, tally),
                'placeholder_format': self._apply(undo_log.metadata.placeholder_format, tally),
            }
        )

        report = SanitizationReport(
            items_removed=tally.items_removed,
            categories_affected=tally.categories,
            timestamp=datetime.now(UTC),
            recommendations=self._recommendations(tally),
        )
        sanitized = undo_log.model_copy(
            update={
                'metadata': metadata,
                'original_values': original_values,
                'file_operations': operations,
                'sanitized': True,
                'sanitization_map': tally.sanitization_map,
                'sanitization_report': report,
            }
        )
        # model_copy skips validation; round-trip so rewritten paths are re-checked
        return UndoLog.model_validate(sanitized.model_dump(by_alias=True)), report

    def preview(self, undo_log: UndoLog) -> SanitizationReport:
        """Report what sanitize_undo_log would remove without keeping the result."""
        _, report = self.sanitize_undo_log(undo_log)
        return report

    def _sanitize_operation(self, operation: FileOperation, tally: _Tally) -> FileOperation:
        update: dict[str, object] = {'path': self._apply(operation.path, tally)}
        if operation.original_content:
            update['original_content'] = self._apply(operation.original_content, tally)
        if operation.regeneration_command:
            update['regeneration_command'] = self._apply(operation.regeneration_command, tally)
        return operation.model_copy(update=update)

    def _apply(self, value: str, tally: _Tally) -> str:
        sanitized, categories = self.sanitize_value(value, tally.sanitization_map)
        if categories:
            tally.items_removed += 1
            for category in categories:
                if category not in tally.categories:
                    tally.categories.append(category)
        return sanitized

    @staticmethod
    def _recommendations(tally: _Tally) -> list[str]:
        if not tally.items_removed:
            return ['No sensitive data detected - undo log appears safe for sharing']
        recommendations = [
            'Review sanitized values before committing to version control',
            'Create .restore-defaults.json for automated restoration',
        ]
        if 'personalInfo' in tally.categories:
            recommendations.append('Consider using generic names in templates')
        if 'apiKeys' in tally.categories:
            recommendations.append('Use environment variables for API keys in templates')
        if 'filePaths' in tally.categories:
            recommendations.append('Use relative paths instead of absolute paths')
        return recommendations
