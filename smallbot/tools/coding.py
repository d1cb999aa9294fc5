"""Built-in workspace tools: read, write and edit files, run shell commands."""

import subprocess
from pathlib import Path
from typing import List, Optional, Union

from pydantic import BaseModel, Field

from ..errors import ToolError
from ..logger import get_logger
from .registry import Tool, tool

_log = get_logger(__name__)

__all__ = ["Workspace", "create_coding_tools"]

MAX_OUTPUT_CHARS = 30000


class Workspace:
    """File and shell access rooted at one directory."""

    def __init__(self, root: Union[str, Path], command_timeout: int = 30):
        self.root = Path(root).resolve()
        self.command_timeout = command_timeout

    def _resolve(self, path: str) -> Path:
        fp = (self.root / path).resolve()
        if fp != self.root and self.root not in fp.parents:
            raise ToolError("workspace", f"Path outside workspace: {path}")
        return fp

    def read_file(self, path: str, start_line: Optional[int] = None,
                  end_line: Optional[int] = None) -> str:
        fp = self._resolve(path)
        if not fp.is_file():
            raise ToolError("read_file", f"File not found: {path}")
        lines = fp.read_text(encoding="utf-8", errors="replace").splitlines()
        start = max(1, start_line or 1)
        end = min(len(lines), end_line or len(lines))
        numbered = [f"{i:4d} | {lines[i - 1]}" for i in range(start, end + 1)]
        return _clip("\n".join(numbered))

    def write_file(self, path: str, content: str) -> str:
        fp = self._resolve(path)
        fp.parent.mkdir(parents=True, exist_ok=True)
        fp.write_text(content, encoding="utf-8")
        return f"Wrote {len(content)} chars to {path}"

    def edit_file(self, path: str, old_str: str, new_str: str) -> str:
        fp = self._resolve(path)
        if not fp.is_file():
            raise ToolError("edit_file", f"File not found: {path}")
        content = fp.read_text(encoding="utf-8")
        count = content.count(old_str)
        if count == 0:
            raise ToolError("edit_file", f"String not found in {path}")
        if count > 1:
            raise ToolError("edit_file", f"String appears {count}x in {path}. Add context to make unique.")
        fp.write_text(content.replace(old_str, new_str, 1), encoding="utf-8")
        return f"Edited {path}"

    def bash(self, command: str) -> str:
        _log.info("bash: %s", command)
        try:
            proc = subprocess.run(
                command, shell=True, cwd=self.root, capture_output=True,
                text=True, timeout=self.command_timeout,
            )
        except subprocess.TimeoutExpired:
            raise ToolError("bash", f"Timed out after {self.command_timeout}s")
        output = proc.stdout
        if proc.stderr:
            output += ("\n" if output else "") + proc.stderr
        output = output.strip() or "(no output)"
        if proc.returncode != 0:
            output = f"[exit code {proc.returncode}]\n{output}"
        return _clip(output)


def _clip(text: str) -> str:
    if len(text) > MAX_OUTPUT_CHARS:
        return text[:MAX_OUTPUT_CHARS] + f"\n... (truncated, {len(text)} chars total)"
    return text


class ReadFileArgs(BaseModel):
    path: str = Field(description="File path relative to the workspace")
    start_line: Optional[int] = Field(default=None, ge=1, description="Start line (1-indexed)")
    end_line: Optional[int] = Field(default=None, ge=1, description="End line (inclusive)")


class WriteFileArgs(BaseModel):
    path: str = Field(description="File path relative to the workspace")
    content: str = Field(description="Full file content")


class EditFileArgs(BaseModel):
    path: str = Field(description="File path to edit")
    old_str: str = Field(description="Exact string to find (must be unique)")
    new_str: str = Field(description="Replacement string (empty = delete)")


class BashArgs(BaseModel):
    command: str = Field(description="Bash command to run")


def create_coding_tools(workspace: Workspace) -> List[Tool]:
    ws = workspace

    @tool("read_file", "Read file contents with line numbers. Supports optional line range.",
          ReadFileArgs)
    def read_file(args: ReadFileArgs) -> str:
        return ws.read_file(args.path, args.start_line, args.end_line)

    @tool("write_file", "Create or overwrite a file. Use edit_file for small edits.",
          WriteFileArgs)
    def write_file(args: WriteFileArgs) -> str:
        return ws.write_file(args.path, args.content)

    @tool("edit_file", "Replace a unique string in a file. old_str must appear EXACTLY ONCE.",
          EditFileArgs)
    def edit_file(args: EditFileArgs) -> str:
        return ws.edit_file(args.path, args.old_str, args.new_str)

    @tool("bash", "Execute a bash command in the workspace directory.", BashArgs)
    def bash(args: BashArgs) -> str:
        return ws.bash(args.command)

    return [read_file, write_file, edit_file, bash]
