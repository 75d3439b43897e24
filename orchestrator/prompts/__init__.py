"""
Prompt templates

Templates live next to this module as .txt files and use ``{placeholder}``
markers filled with ``render_prompt``.
"""

import re
from functools import lru_cache
from pathlib import Path

PROMPT_DIR = Path(__file__).parent

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


@lru_cache(maxsize=None)
def load_prompt(name: str) -> str:
    """Read a template by name (without extension)"""
    with open(PROMPT_DIR / f"{name}.txt", "r", encoding="utf-8") as f:
        return f.read()


def render_prompt(name: str, **values: str) -> str:
    """
    Fill a template's {placeholders} in one pass.

    Unknown markers are left as-is, and markers inside substituted values are
    never expanded.
    """
    return _PLACEHOLDER.sub(lambda m: values.get(m.group(1), m.group(0)), load_prompt(name))
