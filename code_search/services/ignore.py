"""Path filtering policy for project scans.

Default exclusions plus every ignore file found at the project root, compiled
into one gitignore-syntax matcher.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

import pathspec

__all__ = [
    'DEFAULT_IGNORE_PATTERNS',
    'IGNORE_FILE_NAMES',
    'IgnorePolicy',
]

logger = logging.getLogger(__name__)

DEFAULT_IGNORE_PATTERNS: Sequence[str] = (
    '.git',
    'node_modules',
    'dist',
    '.lancedb',
    '.vibescout',
    'package-lock.json',
    'yarn.lock',
    'pnpm-lock.yaml',
    'bun.lockb',
    'tsconfig.tsbuildinfo',
    '.next',
    'coverage',
    '.nyc_output',
    '__pycache__',
    '.venv',
)

# Read from the project root, in this order
IGNORE_FILE_NAMES: Sequence[str] = (
    '.gitignore',
    '.vibeignore',
    '.vibescoutignore',
    '.cursorignore',
    '.cursorindexingignore',
    '.copilotignore',
    '.geminiignore',
    '.aicodeignore',
)


class IgnorePolicy:
    """Decides whether a path under a project root is excluded."""

    def __init__(self, root: Path, patterns: Sequence[str]) -> None:
        self._root = root
        self._spec = pathspec.GitIgnoreSpec.from_lines(patterns)

    @classmethod
    def for_root(cls, root: Path, extra_patterns: Sequence[str] = ()) -> IgnorePolicy:
        """Build the policy for a project root from defaults and its ignore files."""
        patterns = [*DEFAULT_IGNORE_PATTERNS, *extra_patterns]
        for name in IGNORE_FILE_NAMES:
            ignore_file = root / name
            if not ignore_file.is_file():
                continue
            try:
                patterns.extend(ignore_file.read_text(encoding='utf-8', errors='replace').splitlines())
            except OSError as e:
                logger.warning(f'[SCAN] Could not read {ignore_file}: {e}')
        return cls(root, patterns)

    def is_ignored(self, path: Path, *, is_dir: bool = False) -> bool:
        """Check an absolute path. Paths outside the root are never ignored."""
        try:
            relative = path.relative_to(self._root).as_posix()
        except ValueError:
            return False
        if relative == '.':
            return False
        # Directory-only patterns ('build/') match only with a trailing slash
        return self._spec.match_file(f'{relative}/' if is_dir else relative)
