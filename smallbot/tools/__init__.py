from .registry import NoArgs, Tool, ToolRegistry, tool
from .coding import Workspace, create_coding_tools
from .memory import MemoryStore, create_memory_tools, create_tone_tools

__all__ = [
    "Tool", "ToolRegistry", "tool", "NoArgs",
    "Workspace", "create_coding_tools",
    "MemoryStore", "create_memory_tools", "create_tone_tools",
]
