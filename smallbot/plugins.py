"""Plugin discovery: every ``plugins/*.py`` file can contribute one tool.

A plugin module exposes::

    TOOL = {"name": "...", "description": "...", "params": SomePydanticModel}

    def handler(args: SomePydanticModel) -> str:
        ...

Files whose name starts with ``_`` are skipped, so ``_example.py`` can serve
as a template.
"""

import importlib.util
from pathlib import Path
from types import ModuleType
from typing import List, Optional, Union

from pydantic import BaseModel

from .logger import get_logger
from .tools.registry import Tool

_log = get_logger(__name__)

__all__ = ["load_plugins", "tool_from_module"]


def _import_file(path: Path) -> ModuleType:
    module_name = f"smallbot_plugin_{path.stem}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise ImportError(f"Cannot import {path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def tool_from_module(module: ModuleType) -> Optional[Tool]:
    """Build a Tool from a plugin module, or None if it does not define one."""
    meta = getattr(module, "TOOL", None)
    handler = getattr(module, "handler", None)
    if not isinstance(meta, dict) or not callable(handler):
        return None
    params = meta.get("params")
    if not (isinstance(params, type) and issubclass(params, BaseModel)):
        raise TypeError(f"TOOL['params'] must be a pydantic model, got {params!r}")
    return Tool(
        name=str(meta["name"]),
        description=str(meta.get("description", "")),
        params=params,
        handler=handler,
    )


def load_plugins(directory: Union[str, Path]) -> List[Tool]:
    plugins_dir = Path(directory)
    _log.info("Loading plugins from: %s", plugins_dir)
    if not plugins_dir.is_dir():
        _log.warning("No plugins directory found at %s", plugins_dir)
        return []

    files = sorted(p for p in plugins_dir.glob("*.py") if not p.name.startswith("_"))
    _log.info("Found %d plugin file(s): %s", len(files), ", ".join(p.name for p in files))

    tools: List[Tool] = []
    for path in files:
        try:
            loaded = tool_from_module(_import_file(path))
        except Exception as e:
            _log.error("Failed to load plugin %s: %s", path.name, e, exc_info=True)
            continue
        if loaded is None:
            _log.debug("Skipping %s: no TOOL/handler", path.name)
            continue
        tools.append(loaded)
        _log.info("Loaded plugin: %s", loaded.name)
    return tools
