"""Centralized file paths for code search.

All persistent file locations in one place. The MCP server and the watcher
share the watch list through these paths.
"""

from __future__ import annotations

from pathlib import Path

__all__ = [
    'CODE_SEARCH_DIR',
    'CONFIG_PATH',
    'DEBUG_LOG_PATH',
    'SECRETS_DIR',
    'WATCHERS_LOCK_PATH',
    'WATCHERS_STATE_PATH',
]

CODE_SEARCH_DIR = Path.home() / '.code-search'

CONFIG_PATH = CODE_SEARCH_DIR / 'config.json'
SECRETS_DIR = CODE_SEARCH_DIR / 'secrets'

# Persistent watch list
WATCHERS_STATE_PATH = CODE_SEARCH_DIR / 'watchers.json'
WATCHERS_LOCK_PATH = CODE_SEARCH_DIR / 'watchers.lock'

# Debug logging (enable detailed server logs for troubleshooting)
DEBUG_LOG_PATH = CODE_SEARCH_DIR / 'server.log'
