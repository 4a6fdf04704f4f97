"""
Page Footprint - MCP Server Entry Point

Exposes the page emissions analyzer as a Model Context Protocol (MCP) server.

Tools exposed:
- analyze_page: Load a page in a real browser, simulate a visitor, and estimate gCO2e
- classify_resources: Tally a list of already-captured resources by type
- cache_stats: Report cached analysis counts and age
- cache_cleanup: Drop cached analyses older than N days
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from footprint.core.analysis_cache import NullAnalysisCache, SqliteAnalysisCache
from footprint.core.config import EngineSettings, create_analysis_options
from footprint.core.errors import FootprintError
from footprint.core.models import ResourceRecord, ResourceState
from footprint.core.page_analyzer import PageAnalyzer
from footprint.core.resource_classifier import classify

settings = EngineSettings.from_env()

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stderr)],
)
logger = logging.getLogger("footprint.server")

_analyzer: PageAnalyzer | None = None
_slots: asyncio.Semaphore | None = None


def get_analyzer() -> PageAnalyzer:
    """Get or create the shared analyzer."""
    global _analyzer, _slots

    if _analyzer is None:
        cache = (
            SqliteAnalysisCache(settings.cache_db_path, ttl_hours=settings.cache_ttl_hours)
            if settings.cache_enabled
            else NullAnalysisCache()
        )
        _analyzer = PageAnalyzer(settings=settings, cache=cache)
        _slots = asyncio.Semaphore(max(1, settings.max_concurrent_analyses))
        logger.info(f"[Server] Analyzer initialized (max concurrent={settings.max_concurrent_analyses})")

    return _analyzer


async def cleanup_analyzer() -> None:
    global _analyzer, _slots

    if _analyzer is not None:
        await _analyzer.close()
        _analyzer = None
        _slots = None
        logger.info("[Server] Analyzer closed")


def records_from_payload(items: list[dict[str, Any]]) -> list[ResourceRecord]:
    records = []
    for index, item in enumerate(items):
        status = item.get("status")
        records.append(
            ResourceRecord(
                request_id=str(item.get("request_id") or index),
                url=str(item["url"]),
                state=ResourceState(item.get("state", ResourceState.FINISHED.value)),
                content_type=str(item.get("content_type") or ""),
                status=int(status) if status is not None else None,
                transfer_size=int(item.get("transfer_size") or 0),
            )
        )
    return records


def _json(payload: Any) -> list[TextContent]:
    return [TextContent(type="text", text=json.dumps(payload, indent=2, default=str))]


server = Server("page-footprint")


@server.list_tools()
async def list_tools() -> list[Tool]:
    return [
        Tool(
            name="analyze_page",
            description="""Load a URL in a headless browser, simulate a visitor, and estimate emissions.

Every network transfer is observed through the DevTools protocol, classified
(document, style, script, media, font, other) and summed; the total feeds the
Sustainable Web Design model, adjusted for green hosting.""",
            inputSchema={
                "type": "object",
                "properties": {
                    "url": {"type": "string", "description": "Page to analyze"},
                    "interaction_level": {
                        "type": "string",
                        "enum": ["minimal", "default", "thorough"],
                        "default": "default",
                    },
                    "device_type": {"type": "string", "enum": ["desktop", "mobile"], "default": "desktop"},
                    "timeout_ms": {"type": "integer", "description": "Navigation timeout (min 30000)"},
                },
                "required": ["url"],
            },
        ),
        Tool(
            name="classify_resources",
            description="Classify already-captured resources and sum bytes per type.",
            inputSchema={
                "type": "object",
                "properties": {
                    "resources": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "url": {"type": "string"},
                                "content_type": {"type": "string"},
                                "status": {"type": "integer"},
                                "transfer_size": {"type": "integer"},
                            },
                            "required": ["url"],
                        },
                    }
                },
                "required": ["resources"],
            },
        ),
        Tool(
            name="cache_stats",
            description="Cached analysis counts, unique URLs and oldest/newest entries.",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="cache_cleanup",
            description="Delete cached analyses older than the given number of days.",
            inputSchema={
                "type": "object",
                "properties": {"older_than_days": {"type": "integer", "default": 30}},
            },
        ),
    ]


@server.call_tool()
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    logger.info(f"[Server] Tool called: {name} with args: {arguments}")

    try:
        analyzer = get_analyzer()

        if name == "analyze_page":
            options = create_analysis_options(
                arguments.get("interaction_level", "default"),
                arguments.get("device_type", "desktop"),
                timeout_ms=arguments.get("timeout_ms"),
            )
            async with _slots:
                result = await analyzer.run_analysis(arguments["url"], options)
            return _json(result.to_dict())

        elif name == "classify_resources":
            tally = classify(records_from_payload(arguments.get("resources") or []))
            return _json(tally.to_dict())

        elif name == "cache_stats":
            cache = analyzer.cache
            if not isinstance(cache, SqliteAnalysisCache):
                return _json({"enabled": False})
            return _json(await asyncio.to_thread(cache.stats))

        elif name == "cache_cleanup":
            cache = analyzer.cache
            if not isinstance(cache, SqliteAnalysisCache):
                return _json({"deleted": 0})
            days = int(arguments.get("older_than_days", 30))
            deleted = await asyncio.to_thread(cache.cleanup, days)
            return _json({"deleted": deleted, "older_than_days": days})

        else:
            return _json({"error": f"Unknown tool: {name}"})

    except FootprintError as e:
        logger.error(f"[Server] {type(e).__name__} in tool {name}: {e}")
        return _json({"error": str(e), "error_type": type(e).__name__, "tool": name})
    except Exception as e:
        logger.exception(f"[Server] Error in tool {name}: {e}")
        return _json({"error": str(e), "tool": name})


async def main() -> None:
    logger.info("[Server] Starting Page Footprint MCP Server...")

    try:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options(),
            )
    finally:
        await cleanup_analyzer()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
