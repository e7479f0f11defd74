"""
File categorization - decides how each converted file is recorded and restored.

Every path touched by a conversion falls into one category:
- generated: reproducible by a command (node_modules, lock files, build output)
- userCreated: local-only files that only exist in the undo log (.env, .dev.vars)
- templateFiles: files the template itself needs (_setup.mjs, template.json)
- modified: tracked source files that had values replaced by placeholders

Rules are an explicit immutable CategorizationRuleSet passed at construction.
Callers extend it with with_rules(), which returns a new rule set.
"""

from __future__ import annotations

import fnmatch
from collections.abc import Mapping, Sequence
from pathlib import Path, PurePosixPath

import pydantic

from make_template.config.restore import settings
from make_template.schemas.base import StrictModel
from make_template.schemas.undo_log import FILE_CATEGORIES, FileCategory, RestorationAction

__all__ = [
    'DEFAULT_RULES',
    'Categorization',
    'CategorizationRuleSet',
    'CategoryRules',
    'FileCategorizer',
    'format_file_size',
]

# Precedence for overlapping rules; custom categories are consulted after these
CATEGORY_PRECEDENCE: tuple[FileCategory, ...] = ('generated', 'userCreated', 'templateFiles', 'modified')

DEFAULT_ACTIONS: Mapping[str, RestorationAction] = {
    'generated': 'regenerate',
    'userCreated': 'restore-content',
    'templateFiles': 'preserve',
    'modified': 'restore-content',
}

# Undo logs only know the built-in categories; custom ones are recorded by their action
_CATEGORY_FOR_ACTION: Mapping[RestorationAction, FileCategory] = {
    'regenerate': 'generated',
    'restore-content': 'userCreated',
    'preserve': 'templateFiles',
}


class CategoryRules(StrictModel):
    """Matching rules and storage policy for one category."""

    files: tuple[str, ...] = ()
    directories: tuple[str, ...] = ()
    patterns: tuple[str, ...] = ()
    store_content: bool = True
    action: RestorationAction | None = None  # None uses the category default
    regeneration_commands: Mapping[str, str] = pydantic.Field(default_factory=dict)

    def merged(self, other: CategoryRules) -> CategoryRules:
        """Union of both rule lists; other's storage policy and commands win."""
        return CategoryRules(
            files=_dedupe(self.files + other.files),
            directories=_dedupe(self.directories + other.directories),
            patterns=_dedupe(self.patterns + other.patterns),
            store_content=other.store_content,
            action=other.action or self.action,
            regeneration_commands={**self.regeneration_commands, **other.regeneration_commands},
        )


class RuleValidation(StrictModel):
    valid: bool
    issues: Sequence[str]


class CategorizationRuleSet(StrictModel):
    """Ordered category name -> rules mapping."""

    categories: Mapping[str, CategoryRules]

    def with_rules(self, category: str, rules: CategoryRules) -> CategorizationRuleSet:
        """Return a new rule set with rules added to (or creating) category."""
        categories = dict(self.categories)
        existing = categories.get(category)
        categories[category] = existing.merged(rules) if existing else rules
        return CategorizationRuleSet(categories=categories)

    def ordered(self) -> list[tuple[str, CategoryRules]]:
        known = [(name, self.categories[name]) for name in CATEGORY_PRECEDENCE if name in self.categories]
        custom = [(name, rules) for name, rules in self.categories.items() if name not in CATEGORY_PRECEDENCE]
        return known + custom

    def validate(self) -> RuleValidation:
        """Report entries claimed by several categories and categories with no rules."""
        issues: list[str] = []
        owners: dict[str, str] = {}
        for name, rules in self.ordered():
            entries = rules.files + rules.directories + rules.patterns
            if not entries:
                issues.append(f'Category {name} has no files, directories or patterns')
            for entry in entries:
                if not entry.strip():
                    issues.append(f'Category {name} contains an empty rule')
                elif entry in owners and owners[entry] != name:
                    issues.append(f'{entry} is listed in both {owners[entry]} and {name}')
                else:
                    owners.setdefault(entry, name)
        return RuleValidation(valid=not issues, issues=issues)


DEFAULT_RULES = CategorizationRuleSet(
    categories={
        'generated': CategoryRules(
            files=('package-lock.json', 'yarn.lock', 'pnpm-lock.yaml'),
            directories=('node_modules', 'dist', 'build', '.next', '.wrangler', 'coverage', '.turbo', '.cache'),
            patterns=('*.log',),
            store_content=False,
            regeneration_commands={
                'node_modules': 'npm install',
                'package-lock.json': 'npm install',
                'yarn.lock': 'yarn install',
                'pnpm-lock.yaml': 'pnpm install',
                'dist': 'npm run build',
                'build': 'npm run build',
                '.next': 'npm run build',
            },
        ),
        'userCreated': CategoryRules(
            files=('.env', '.env.local', '.env.development', '.env.production', '.dev.vars'),
            patterns=('.env.*',),
        ),
        'templateFiles': CategoryRules(
            files=('template.json', '_setup.mjs', '.template-undo.json', '.restore-defaults.json'),
            store_content=False,
        ),
        'modified': CategoryRules(
            files=('package.json', 'README.md', 'wrangler.jsonc', 'wrangler.toml', 'index.html'),
            patterns=('vite.config.*',),
        ),
    }
)


class Categorization(StrictModel):
    """How one path will be recorded in the undo log."""

    path: str
    category: str
    action: RestorationAction
    store_content: bool
    is_directory: bool
    file_size: int
    regeneration_command: str | None
    matched_pattern: str | None
    warnings: Sequence[str]

    @property
    def log_category(self) -> FileCategory:
        """Category as written to the undo log (custom categories map by action)."""
        for known in FILE_CATEGORIES:
            if known == self.category:
                return known
        return _CATEGORY_FOR_ACTION[self.action]


class FileCategorizer:
    """Categorizes project paths using an explicit rule set."""

    def __init__(
        self,
        project_dir: Path,
        rules: CategorizationRuleSet = DEFAULT_RULES,
        large_file_bytes: int | None = None,
        max_stored_bytes: int | None = None,
    ) -> None:
        self.project_dir = project_dir
        self.rules = rules
        self.large_file_bytes = large_file_bytes if large_file_bytes is not None else settings.LARGE_FILE_WARNING_BYTES
        self.max_stored_bytes = max_stored_bytes if max_stored_bytes is not None else settings.MAX_STORED_FILE_BYTES

    async def categorize(
        self,
        relative_path: str,
        force_store_content: bool = False,
        never_store_content: bool = False,
    ) -> Categorization:
        """Categorize a path that exists under the project directory.

        Raises:
            FileNotFoundError: If the path does not exist
        """
        full_path = self.project_dir / relative_path
        stat = full_path.stat()
        is_directory = full_path.is_dir()
        size = 0 if is_directory else stat.st_size
        return self.classify(
            relative_path,
            size=size,
            is_directory=is_directory,
            force_store_content=force_store_content,
            never_store_content=never_store_content,
        )

    def classify(
        self,
        relative_path: str,
        size: int = 0,
        is_directory: bool = False,
        force_store_content: bool = False,
        never_store_content: bool = False,
    ) -> Categorization:
        """Categorize from known path facts without touching the filesystem."""
        normalized = relative_path.replace('\\', '/').strip('/')
        name = PurePosixPath(normalized).name

        category, rules, pattern = self._match(normalized, name)
        store = self.should_store_content(
            rules,
            size,
            is_directory,
            force_store_content=force_store_content,
            never_store_content=never_store_content,
        )
        command = None
        if rules is not None:
            key = pattern.rstrip('/') if pattern else name
            command = rules.regeneration_commands.get(key) or rules.regeneration_commands.get(name)

        return Categorization(
            path=relative_path,
            category=category,
            action=self.default_action(category, rules),
            store_content=store,
            is_directory=is_directory,
            file_size=size,
            regeneration_command=command,
            matched_pattern=pattern,
            warnings=[] if is_directory else self.get_warnings(size, store),
        )

    def _match(self, relative_path: str, name: str) -> tuple[str, CategoryRules | None, str | None]:
        for category, rules in self.rules.ordered():
            for pattern in (*rules.files, *(f'{d.rstrip("/")}/' for d in rules.directories), *rules.patterns):
                if self.matches_pattern(relative_path, name, pattern):
                    return category, rules, pattern
        # Unknown files are treated as user content so they are kept verbatim
        return 'userCreated', self.rules.categories.get('userCreated'), None

    @staticmethod
    def matches_pattern(relative_path: str, name: str, pattern: str) -> bool:
        """Match exact names, 'dir/' prefixes, and '*' globs.

        Globs are tried against the basename and the full relative path.
        """
        if pattern.endswith('/'):
            directory = pattern.rstrip('/')
            return relative_path == directory or relative_path.startswith(f'{directory}/') or name == directory
        if any(char in pattern for char in '*?['):
            return fnmatch.fnmatchcase(name, pattern) or fnmatch.fnmatchcase(relative_path, pattern)
        return name == pattern or relative_path == pattern

    def should_store_content(
        self,
        rules: CategoryRules | None,
        size: int,
        is_directory: bool,
        force_store_content: bool = False,
        never_store_content: bool = False,
    ) -> bool:
        if is_directory or never_store_content:
            return False
        if force_store_content:
            return True
        if rules is not None and not rules.store_content:
            return False
        return size <= self.max_stored_bytes

    @staticmethod
    def default_action(category: str, rules: CategoryRules | None = None) -> RestorationAction:
        if rules is not None and rules.action is not None:
            return rules.action
        return DEFAULT_ACTIONS.get(category, 'restore-content')

    def get_warnings(self, size: int, will_store: bool) -> list[str]:
        if will_store and size > self.large_file_bytes:
            return [f'Large file ({format_file_size(size)}) stored in undo log']
        if not will_store and size > self.max_stored_bytes:
            return [f'File too large ({format_file_size(size)}) to store; it cannot be recreated from the undo log']
        return []


def format_file_size(size: int) -> str:
    """Human-readable size: '500 B', '1.5 KB', '2.0 MB', '3.0 GB'."""
    if size < 1024:
        return f'{size} B'
    kilobytes = size / 1024
    if kilobytes < 1024:
        return f'{kilobytes:.1f} KB'
    megabytes = kilobytes / 1024
    if megabytes < 1024:
        return f'{megabytes:.1f} MB'
    return f'{megabytes / 1024:.1f} GB'


def _dedupe(items: tuple[str, ...]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(items))
