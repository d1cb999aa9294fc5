"""File-backed user memories and bot tone, plus the tools that edit them."""

import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

from pydantic import BaseModel, Field

from .registry import NoArgs, Tool, tool

__all__ = ["MemoryStore", "create_memory_tools", "create_tone_tools"]


class MemoryStore:
    """Markdown files under ``data_dir``: ``memory/<user>.md`` and ``TONE.md``."""

    def __init__(self, data_dir: Union[str, Path]):
        self.data_dir = Path(data_dir)
        self.memory_dir = self.data_dir / "memory"
        self._write_lock = threading.Lock()

    def _memory_path(self, user_id: int) -> Path:
        return self.memory_dir / f"{user_id}.md"

    @property
    def tone_path(self) -> Path:
        return self.data_dir / "TONE.md"

    def load_memories(self, user_id: int) -> str:
        path = self._memory_path(user_id)
        if not path.exists():
            return ""
        return path.read_text(encoding="utf-8")

    def save_memory(self, user_id: int, content: str) -> None:
        stamp = datetime.now(timezone.utc).isoformat(timespec="seconds")
        entry = f"\n## {stamp}\n{content}\n"
        with self._write_lock:
            self.memory_dir.mkdir(parents=True, exist_ok=True)
            with open(self._memory_path(user_id), "a", encoding="utf-8") as f:
                f.write(entry)

    def load_tone(self) -> Optional[str]:
        if not self.tone_path.exists():
            return None
        return self.tone_path.read_text(encoding="utf-8") or None

    def save_tone(self, content: str) -> None:
        with self._write_lock:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            self.tone_path.write_text(content, encoding="utf-8")


class SaveMemoryArgs(BaseModel):
    content: str = Field(description="The information to remember")


class SetToneArgs(BaseModel):
    content: str = Field(description="The tone and identity instructions to save")


def create_memory_tools(store: MemoryStore, user_id: int) -> List[Tool]:
    @tool("save_memory",
          "Save important information to persistent memory. Use for preferences, facts, "
          "and anything worth remembering across conversations. Don't save trivial conversation.",
          SaveMemoryArgs)
    def save_memory(args: SaveMemoryArgs) -> str:
        store.save_memory(user_id, args.content)
        return "Memory saved."

    @tool("recall_memories", "Retrieve all saved memories for this user.", NoArgs)
    def recall_memories(_args: NoArgs) -> str:
        return store.load_memories(user_id) or "No memories saved yet."

    return [save_memory, recall_memories]


def create_tone_tools(store: MemoryStore) -> List[Tool]:
    @tool("set_tone",
          "Save the bot's identity and tone preferences to TONE.md. Use this after the user "
          "tells you who you are and what tone to use.",
          SetToneArgs)
    def set_tone(args: SetToneArgs) -> str:
        store.save_tone(args.content)
        return "Tone saved."

    return [set_tone]
