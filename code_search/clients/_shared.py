"""Prompt templates and credential loading shared by provider clients.

Private module.
"""

from __future__ import annotations

import os

from code_search.exceptions import ConfigurationError
from code_search.paths import SECRETS_DIR

__all__ = [
    'BEST_QUESTION_PROMPT',
    'SUMMARIZE_PROMPT',
    'load_api_key',
]

SUMMARIZE_PROMPT = (
    'Summarize what this code or documentation does in one or two sentences, '
    'at most {max_length} characters. Reply with the summary only.\n\n{text}'
)

BEST_QUESTION_PROMPT = (
    'Here is a piece of code and its summary. Write the single most useful question '
    'a developer new to this codebase could ask about it. Reply with the question only.\n\n'
    'Summary: {summary}\n\nCode:\n{code}'
)


def load_api_key(provider: str) -> str:
    """Load an API key from the environment or ~/.code-search/secrets/<provider>_api_key.

    Raises:
        ConfigurationError: If no key is configured.
    """
    env_value = os.environ.get(f'{provider.upper()}_API_KEY')
    if env_value:
        return env_value.strip()

    key_path = SECRETS_DIR / f'{provider}_api_key'
    if not key_path.exists():
        raise ConfigurationError(f'No API key for {provider}: set {provider.upper()}_API_KEY or create {key_path}')
    return key_path.read_text().strip()
