"""Tool registry: name-keyed dispatch over ``Tool`` capabilities.

A tool is a name, a description, a pydantic model describing its arguments,
and a handler. Built-in tools and plugins build ``Tool`` instances; the
registry never needs to know where they came from.

Usage:
    class EchoArgs(BaseModel):
        message: str = Field(description="Text to echo back")

    @tool("echo", "Echo the message back", EchoArgs)
    def echo(args: EchoArgs) -> str:
        return args.message
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Type, Union

from pydantic import BaseModel, ValidationError

from ..conversation import BinaryPart, ContentPart, TextPart
from ..errors import ToolError, ToolValidationError
from ..logger import get_logger

_log = get_logger(__name__)

__all__ = ["Tool", "ToolRegistry", "tool", "NoArgs"]

ToolOutput = Union[str, ContentPart, List[ContentPart]]


class NoArgs(BaseModel):
    """Argument model for tools that take no parameters."""


@dataclass
class Tool:
    name: str
    description: str
    params: Type[BaseModel]
    handler: Callable[[BaseModel], ToolOutput]

    @property
    def schema(self) -> dict:
        """OpenAI-compatible function schema built from the argument model."""
        parameters = self.params.model_json_schema()
        parameters.pop("title", None)
        parameters.setdefault("properties", {})
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": parameters,
            },
        }

    def validate(self, arguments: Dict[str, Any]) -> BaseModel:
        try:
            return self.params.model_validate(arguments or {})
        except ValidationError as e:
            details = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or '(root)'}: {err['msg']}"
                for err in e.errors()
            )
            raise ToolValidationError(self.name, details) from e

    def execute(self, validated: BaseModel) -> List[ContentPart]:
        output = self.handler(validated)
        return _normalize_output(self.name, output)


def _normalize_output(name: str, output: Any) -> List[ContentPart]:
    if output is None:
        return [TextPart("")]
    if isinstance(output, str):
        return [TextPart(output)]
    if isinstance(output, (TextPart, BinaryPart)):
        return [output]
    if isinstance(output, list) and all(isinstance(p, (TextPart, BinaryPart)) for p in output):
        return list(output)
    raise ToolError(name, f"unsupported result type {type(output).__name__}")


def tool(name: str, description: str, params: Type[BaseModel] = NoArgs):
    """Decorator turning a ``handler(args)`` function into a ``Tool``."""
    def decorator(func: Callable[[BaseModel], ToolOutput]) -> Tool:
        return Tool(name=name, description=description, params=params, handler=func)
    return decorator


class ToolRegistry:
    def __init__(self, tools: Iterable[Tool] = ()):
        self._tools: Dict[str, Tool] = {}
        for t in tools:
            self.register(t)

    def register(self, t: Tool) -> None:
        if t.name in self._tools:
            _log.warning("Tool %s registered twice; keeping the later one", t.name)
        self._tools[t.name] = t

    def lookup(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def merged(self, extra: Iterable[Tool]) -> "ToolRegistry":
        """A new registry holding these tools plus ``extra`` (extra wins on clashes)."""
        registry = ToolRegistry(self._tools.values())
        for t in extra:
            registry.register(t)
        return registry

    @property
    def schemas(self) -> List[dict]:
        return [t.schema for t in self._tools.values()]

    @property
    def names(self) -> List[str]:
        return list(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[Tool]:
        return iter(list(self._tools.values()))

    def __len__(self) -> int:
        return len(self._tools)
