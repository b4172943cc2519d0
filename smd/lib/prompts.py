"""
Prompt loader for smd.

Templates live in smd/prompts/*.md and use str.format() placeholders.
HTML comments are stripped before rendering so templates can carry notes
that never reach the agent.
"""

import logging
import re
from functools import lru_cache
from pathlib import Path

logger = logging.getLogger(__name__)

__all__ = ["PromptError", "load_prompt", "render_prompt", "build_worker_prompt", "clear_cache", "PROMPTS_DIR"]

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"

_HTML_COMMENT_PATTERN = re.compile(r'<!--.*?-->\s*', re.DOTALL)


class PromptError(Exception):
    """Raised when prompt loading or rendering fails."""
    pass


@lru_cache(maxsize=16)
def load_prompt(name: str) -> str:
    """Load a template by name, without extension. Cached.

    Raises:
        PromptError: If the template file doesn't exist
    """
    prompt_path = PROMPTS_DIR / f"{name}.md"
    if not prompt_path.exists():
        raise PromptError(f"Prompt template '{name}' not found. Expected file: {prompt_path}")

    logger.debug(f"Loading prompt template: {name}")
    content = _HTML_COMMENT_PATTERN.sub('', prompt_path.read_text())
    return content.lstrip()


def render_prompt(name: str, /, **kwargs) -> str:
    """Load and render a template.

    Raises:
        PromptError: If the template is missing or a variable is not provided
    """
    template = load_prompt(name)
    try:
        return template.format(**kwargs)
    except KeyError as e:
        raise PromptError(
            f"Missing required variable {e} in prompt '{name}'. "
            f"Provided: {list(kwargs.keys())}"
        ) from e


def build_worker_prompt(base_instructions: str, slot_id: int, story_id: str, story_title: str) -> str:
    """Base instructions followed by the per-story focus section."""
    focus = render_prompt(
        "worker_focus",
        slot_id=slot_id,
        story_id=story_id,
        story_title=story_title,
    )
    return f"{base_instructions.rstrip()}\n\n{focus}"


def clear_cache():
    """Clear the template cache."""
    load_prompt.cache_clear()
