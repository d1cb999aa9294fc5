"""fetch_url plugin: download a URL and return its text."""

from typing import Dict, Optional

import requests
from pydantic import BaseModel, Field

MAX_LENGTH = 50000
TIMEOUT = 30


class FetchArgs(BaseModel):
    url: str = Field(description="The URL to fetch (http/https)")
    headers: Optional[Dict[str, str]] = Field(
        default=None, description="Optional HTTP headers to include")


TOOL = {
    "name": "fetch_url",
    "description": (
        "Fetch the content of a URL. Returns the raw text content. "
        "Useful for reading web pages, APIs, or downloading files."
    ),
    "params": FetchArgs,
}


def handler(args: FetchArgs) -> str:
    if not args.url.lower().startswith(("http://", "https://")):
        raise ValueError(f"Invalid URL scheme: {args.url}")
    headers = {"User-Agent": "SmallBot/1.0", **(args.headers or {})}
    resp = requests.get(args.url, headers=headers, timeout=TIMEOUT)
    resp.raise_for_status()

    content_type = resp.headers.get("content-type", "")
    text = resp.text
    if len(text) > MAX_LENGTH:
        return (f"[Content-Type: {content_type}]\n"
                f"[Truncated to {MAX_LENGTH} chars, total: {len(text)}]\n\n"
                f"{text[:MAX_LENGTH]}...")
    return f"[Content-Type: {content_type}]\n\n{text}"
