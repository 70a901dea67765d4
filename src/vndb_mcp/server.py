"""MCP server entry point for the VNDB API.

Exposes tools, resources, and prompts via the Model Context Protocol
using the official Python MCP SDK with stdio transport.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Awaitable

from mcp.server.fastmcp import FastMCP

from .client import VNDBClient
from .config import ClientConfig, credentials_from_env
from .errors import VNDBError
from .protocol.commands import GetType
from .protocol.parser import ParsedResponse

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "vndb",
    instructions="MCP server for querying the VNDB visual novel database",
)

# Global connection state
_client: VNDBClient | None = None


def _get_client() -> VNDBClient:
    """Get the connected client, raising if not connected."""
    if _client is None:
        raise RuntimeError(
            "Not connected to VNDB. Use the 'connect' tool first."
        )
    return _client


def _options(
    page: int | None = None,
    results: int | None = None,
    sort: str | None = None,
    reverse: bool | None = None,
) -> dict[str, Any] | None:
    options = {
        "page": page,
        "results": results,
        "sort": sort,
        "reverse": reverse,
    }
    options = {k: v for k, v in options.items() if v is not None}
    return options or None


async def _run(request: Awaitable[ParsedResponse]) -> dict[str, Any]:
    """Await a client request, reporting server errors as a result dict."""
    try:
        response = await request
    except VNDBError as e:
        return {"error": e.msg or e.id, "id": e.id, **e.details}
    return response.to_dict()


# ─── CONNECTION TOOLS ─────────────────────────────────────────────────

@mcp.tool()
async def connect(
    username: str | None = None,
    password: str | None = None,
    host: str | None = None,
    port: int | None = None,
) -> dict[str, Any]:
    """Connect and log in to the VNDB API.

    Credentials default to the VNDB_USERNAME / VNDB_PASSWORD environment
    variables; without them the session is anonymous.

    Args:
        username: Optional VNDB account name.
        password: Optional VNDB password.
        host: Override the API host.
        port: Override the API TLS port.
    """
    global _client
    if _client is not None:
        return {"connected": True, "message": "Already connected"}

    env_user, env_password = credentials_from_env()
    config = ClientConfig.from_env().merged({"host": host, "port": port})
    client = VNDBClient(config=config)
    try:
        await client.connect(username or env_user, password or env_password)
    except VNDBError as e:
        return {"connected": False, "error": e.msg or e.id, "id": e.id}

    _client = client
    return {
        "connected": True,
        "host": config.host,
        "username": username or env_user,
    }


@mcp.tool()
async def disconnect() -> dict[str, bool]:
    """Close the connection to the VNDB API."""
    global _client
    if _client is None:
        return {"disconnected": True}
    client, _client = _client, None
    await client.end()
    return {"disconnected": True}


# ─── QUERY TOOLS ──────────────────────────────────────────────────────

@mcp.tool()
async def get_dbstats() -> dict[str, Any]:
    """Retrieve database statistics (number of users, VNs, releases, ...)."""
    return await _run(_get_client().dbstats())


@mcp.tool()
async def get_entries(
    type: str,
    flags: list[str] | None = None,
    filters: str | None = None,
    page: int | None = None,
    results: int | None = None,
    sort: str | None = None,
    reverse: bool | None = None,
) -> dict[str, Any]:
    """Run a generic 'get' query.

    Args:
        type: vn, release, producer, character, user, votelist, vnlist or wishlist.
        flags: Data flags to fetch, e.g. ["basic", "details"]. Defaults to basic.
        filters: Filter expression, e.g. '(title ~ "fate")' or '(id = 17)'.
        page: Result page, starting at 1.
        results: Results per page (max 25).
        sort: Field to sort on.
        reverse: Reverse the sort order.
    """
    if type not in {t.value for t in GetType}:
        return {"error": f"Unknown type '{type}'. Valid: {[t.value for t in GetType]}"}
    options = _options(page, results, sort, reverse)
    return await _run(_get_client().get(type, flags, filters, options))


@mcp.tool()
async def get_vn(
    filters: str | None = None,
    flags: list[str] | None = None,
    page: int | None = None,
    results: int | None = None,
) -> dict[str, Any]:
    """Look up visual novels.

    Args:
        filters: Filter expression, e.g. '(id = 17)'. Defaults to all entries.
        flags: Data flags, e.g. ["basic", "details", "stats"].
        page: Result page.
        results: Results per page.
    """
    return await _run(_get_client().vn(flags, filters, _options(page, results)))


@mcp.tool()
async def get_release(
    filters: str | None = None,
    flags: list[str] | None = None,
    page: int | None = None,
    results: int | None = None,
) -> dict[str, Any]:
    """Look up releases, e.g. filters='(vn = 17)'."""
    return await _run(_get_client().release(flags, filters, _options(page, results)))


@mcp.tool()
async def get_producer(
    filters: str | None = None,
    flags: list[str] | None = None,
    page: int | None = None,
    results: int | None = None,
) -> dict[str, Any]:
    """Look up producers (developers and publishers)."""
    return await _run(_get_client().producer(flags, filters, _options(page, results)))


@mcp.tool()
async def get_character(
    filters: str | None = None,
    flags: list[str] | None = None,
    page: int | None = None,
    results: int | None = None,
) -> dict[str, Any]:
    """Look up characters, e.g. filters='(vn = 17)'."""
    return await _run(_get_client().character(flags, filters, _options(page, results)))


@mcp.tool()
async def get_user(
    filters: str | None = None,
    flags: list[str] | None = None,
) -> dict[str, Any]:
    """Look up users. Defaults to the logged-in user."""
    return await _run(_get_client().user(flags, filters))


@mcp.tool()
async def get_votelist(
    filters: str | None = None,
    page: int | None = None,
    results: int | None = None,
) -> dict[str, Any]:
    """Read a user's vote list. Defaults to the logged-in user."""
    return await _run(_get_client().votelist(None, filters, _options(page, results)))


@mcp.tool()
async def get_vnlist(
    filters: str | None = None,
    page: int | None = None,
    results: int | None = None,
) -> dict[str, Any]:
    """Read a user's VN list. Defaults to the logged-in user."""
    return await _run(_get_client().vnlist(None, filters, _options(page, results)))


@mcp.tool()
async def get_wishlist(
    filters: str | None = None,
    page: int | None = None,
    results: int | None = None,
) -> dict[str, Any]:
    """Read a user's wishlist. Defaults to the logged-in user."""
    return await _run(_get_client().wishlist(None, filters, _options(page, results)))


# ─── MCP RESOURCES ───────────────────────────────────────────────────

@mcp.resource("vndb://connection/status")
def resource_connection_status() -> str:
    """Connection state and number of queued commands."""
    if _client is None:
        return json.dumps({"connected": False})
    return json.dumps({
        "connected": True,
        "state": _client.state.value,
        "busy": _client.busy,
        "queued": _client.queued,
    })


@mcp.resource("vndb://catalog/types")
def resource_get_types() -> str:
    """Entry types accepted by get_entries."""
    return json.dumps({"types": [t.value for t in GetType]})


# ─── MCP PROMPTS ─────────────────────────────────────────────────────

@mcp.prompt()
def find_visual_novel(description: str) -> str:
    """Guide the AI to find a visual novel matching a description.

    Args:
        description: Title, keywords, or a description of the story.
    """
    return f"""Find the visual novel best matching: {description}

Steps:
- Use get_vn with a title filter such as '(title ~ "keyword")'
- Request the "details" and "stats" flags to compare candidates
- Use get_release with '(vn = <id>)' to list its releases
- Use get_character with '(vn = <id>)' for the main cast

Connect first with the connect tool if not already connected."""


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    logging.basicConfig(level=logging.INFO)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
