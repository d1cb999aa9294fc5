"""Prompt templates loaded from prompts.yaml."""

from pathlib import Path
from typing import Dict, Optional, Union

import yaml

from .logger import get_logger

_log = get_logger(__name__)

__all__ = ["load_prompts", "get_prompt", "build_system_prompt", "DEFAULT_PROMPTS"]

DEFAULT_PROMPTS: Dict[str, str] = {
    "system": (
        "You are smallbot, a personal assistant living in the user's chat app.\n"
        "Answer concisely. Use your tools when they help.\n\n"
        "{tone}\n\n"
        "## Memories about this user\n{memories}\n\n"
        "## Time\nThe user's timezone is {timezone}.\n"
    ),
}

NO_TONE_SECTION = (
    "## Tone and Identity\n"
    "Your tone has not been set yet. Ask the user: \"Who am I and what tone should I use?\" "
    "Once they answer, use the set_tone tool to save their preferences."
)

_cache: Dict[str, Dict[str, str]] = {}


def load_prompts(path: Union[str, Path, None] = None) -> Dict[str, str]:
    """Read prompts.yaml once per path, falling back to the built-in set."""
    target = Path(path or "prompts.yaml")
    key = str(target.resolve())
    if key in _cache:
        return _cache[key]

    prompts = dict(DEFAULT_PROMPTS)
    if target.exists():
        with open(target, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{target} must contain a mapping of prompt names")
        prompts.update({str(k): str(v) for k, v in data.items()})
    else:
        _log.debug("No prompts file at %s, using defaults", target)
    _cache[key] = prompts
    return prompts


def get_prompt(name: str, path: Union[str, Path, None] = None) -> str:
    prompts = load_prompts(path)
    if name not in prompts:
        raise KeyError(f'Prompt "{name}" not found')
    return prompts[name]


def build_system_prompt(tone: Optional[str], memories: Optional[str], timezone: str,
                        path: Union[str, Path, None] = None) -> str:
    tone_section = f"## Tone and Identity\n{tone}" if tone else NO_TONE_SECTION
    return (get_prompt("system", path)
            .replace("{tone}", tone_section)
            .replace("{memories}", memories or "(none)")
            .replace("{timezone}", timezone))
