"""web_search plugin: DuckDuckGo search, no API key needed."""

import time

from ddgs import DDGS
from pydantic import BaseModel, Field


class SearchArgs(BaseModel):
    query: str = Field(description="What to search for")
    max_results: int = Field(default=5, ge=1, le=10, description="Max results (default 5)")


TOOL = {
    "name": "web_search",
    "description": (
        "Search the web for current information. "
        "Returns top results with titles, URLs, and snippets."
    ),
    "params": SearchArgs,
}


def handler(args: SearchArgs) -> str:
    last_exc = None
    for attempt in range(3):
        try:
            results = list(DDGS().text(args.query, max_results=args.max_results))
            break
        except Exception as e:
            last_exc = e
            if attempt < 2:
                time.sleep(2 ** attempt)
    else:
        raise RuntimeError(f"DuckDuckGo search failed: {last_exc}")

    if not results:
        return "No results found."
    blocks = []
    for r in results:
        body = r.get("body", "")
        if len(body) > 500:
            body = body[:500] + "..."
        blocks.append(f"**{r.get('title', '')}**\n{r.get('href', '')}\n{body}")
    return "\n\n".join(blocks)
