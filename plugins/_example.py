"""Example plugin template.

To create a plugin:
1. Copy this file to plugins/my_tool.py (drop the leading underscore)
2. Define TOOL with a name, a description and a pydantic params model
3. Define handler(args) returning a string
4. Restart the bot

Files prefixed with _ are skipped by the plugin loader.
"""

from pydantic import BaseModel, Field


class EchoArgs(BaseModel):
    message: str = Field(description="The message to echo")


TOOL = {
    "name": "example_tool",
    "description": "An example tool that echoes input back",
    "params": EchoArgs,
}


def handler(args: EchoArgs) -> str:
    return f"Echo: {args.message}"
