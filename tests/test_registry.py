from typing import Optional

import pytest
from pydantic import BaseModel, Field

from smallbot.conversation import BinaryPart, TextPart
from smallbot.errors import ToolError, ToolValidationError
from smallbot.tools.registry import NoArgs, Tool, ToolRegistry, tool


class SearchArgs(BaseModel):
    query: str = Field(description="Search query")
    limit: Optional[int] = Field(default=5, ge=1, le=20)


@tool("search", "Search things", SearchArgs)
def search(args):
    return f"{args.query}:{args.limit}"


def test_schema_is_openai_function_shape():
    schema = search.schema

    assert schema["type"] == "function"
    fn = schema["function"]
    assert fn["name"] == "search"
    assert fn["description"] == "Search things"
    assert "title" not in fn["parameters"]
    assert fn["parameters"]["required"] == ["query"]
    assert fn["parameters"]["properties"]["query"]["description"] == "Search query"


def test_no_args_schema_has_empty_properties():
    @tool("ping", "Ping", NoArgs)
    def ping(_args):
        return "pong"

    assert ping.schema["function"]["parameters"]["properties"] == {}
    assert ping.execute(ping.validate({})) == [TextPart("pong")]


def test_validate_returns_model_with_defaults():
    validated = search.validate({"query": "cats"})

    assert isinstance(validated, SearchArgs)
    assert validated.limit == 5
    assert search.execute(validated) == [TextPart("cats:5")]


def test_validate_rejects_bad_arguments_with_details():
    with pytest.raises(ToolValidationError) as exc_info:
        search.validate({"limit": 50})

    details = exc_info.value.details
    assert "query" in details
    assert "limit" in details
    assert exc_info.value.tool_name == "search"


def test_execute_normalizes_parts_and_rejects_unknown_types():
    image = BinaryPart(b"png", "image/png")
    photo = Tool("photo", "", NoArgs, lambda _args: [TextPart("here"), image])
    single = Tool("single", "", NoArgs, lambda _args: image)
    bad = Tool("bad", "", NoArgs, lambda _args: 42)

    assert photo.execute(NoArgs()) == [TextPart("here"), image]
    assert single.execute(NoArgs()) == [image]
    with pytest.raises(ToolError):
        bad.execute(NoArgs())


def test_registry_lookup_and_merged_copy():
    other = Tool("other", "", NoArgs, lambda _args: "o")
    registry = ToolRegistry([search])

    merged = registry.merged([other])

    assert registry.lookup("search") is search
    assert registry.lookup("missing") is None
    assert "other" in merged
    assert "other" not in registry
    assert merged.names == ["search", "other"]
    assert len(merged.schemas) == 2


def test_later_registration_wins_on_name_clash():
    replacement = Tool("search", "v2", NoArgs, lambda _args: "new")

    registry = ToolRegistry([search]).merged([replacement])

    assert registry.lookup("search") is replacement
    assert len(registry) == 1
