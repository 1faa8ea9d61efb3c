"""
Prompt Management Service.

Grading prompts live in YAML files under ``ujian/prompts`` so they can be
tuned without touching code.
"""
import logging
import os
from functools import lru_cache
from typing import Any, Dict

import yaml

logger = logging.getLogger(__name__)

# Path to prompts directory
PROMPTS_DIR = os.path.join(os.path.dirname(__file__), "..", "prompts")


class _KeepMissing(dict):
    """Leave unknown ``{placeholders}`` in place instead of failing."""

    def __missing__(self, key):
        return "{" + key + "}"


@lru_cache(maxsize=16)
def _load_prompt_file(name: str) -> Dict[str, Any]:
    """Load a prompt from YAML file with caching."""
    file_path = os.path.join(PROMPTS_DIR, f"{name}.yaml")
    with open(file_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    logger.debug("Loaded prompt %s", name)
    return data


def get_prompt(name: str, **kwargs) -> Dict[str, str]:
    """
    Get a prompt by name.

    Args:
        name: Name of the prompt (without .yaml extension)
        **kwargs: Variables to interpolate into the prompt

    Returns:
        Dict with 'system_prompt' and 'human_prompt' keys
    """
    prompt_data = _load_prompt_file(name)
    values = _KeepMissing(kwargs)
    return {
        key: prompt_data.get(key, "").format_map(values)
        for key in ("system_prompt", "human_prompt")
    }


def clear_cache():
    """Clear the prompt cache (useful after updating YAML files)."""
    _load_prompt_file.cache_clear()
