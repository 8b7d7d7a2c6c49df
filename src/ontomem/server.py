"""MCP server entry point. Thin tool layer over MemoryCore."""

import logging

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from .config import OmcConfig
from .core import MemoryCore
from .search.modes import SearchMode
from .tools import (
    do_forget,
    do_get_memory,
    do_memory_graph,
    do_recall,
    do_recall_by_concept,
    do_recall_chain,
    do_remember,
)
from .types import MemoryType

log = logging.getLogger("ontomem")

INSTRUCTIONS = "\n".join([
    "You have a long-term memory backed by a knowledge graph.",
    "",
    "Save preferences, goals, facts, opinions and decisions with add_memory.",
    "Duplicates are skipped and outdated facts are superseded automatically.",
    "",
    "Use search_memory before answering questions that past sessions may cover.",
    "Use search_reasoning_chain for 'why' questions and search_by_concept to",
    "find memories of one kind (preferences, skills, goals).",
])

_MODES = [m.value for m in SearchMode]
_TYPES = [t.value for t in MemoryType]

TOOL_DEFS = [
    Tool(
        name="add_memory",
        description=(
            "Remember something about the user or their work. "
            "Long text is split into atomic memories automatically."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "content": {"type": "string", "description": "What to remember."},
                "memory_type": {"type": "string", "enum": _TYPES,
                                "description": "Kind of memory. Default: fact."},
                "certainty": {"type": "integer", "minimum": 0, "maximum": 100},
                "importance": {"type": "integer", "minimum": 0, "maximum": 100},
            },
            "required": ["content"],
        },
    ),
    Tool(
        name="search_memory",
        description=(
            "Look up what you know about a topic. "
            "Modes trade breadth for tokens: recent (last hours), contextual, deep, full."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Natural language query."},
                "mode": {"type": "string", "enum": _MODES},
                "limit": {"type": "integer", "minimum": 1, "maximum": 100},
            },
            "required": ["query"],
        },
    ),
    Tool(
        name="search_by_concept",
        description="Search weighted by ontology concepts and tags in the query.",
        inputSchema={
            "type": "object",
            "properties": {
                "query": {"type": "string"},
                "mode": {"type": "string", "enum": _MODES},
                "limit": {"type": "integer", "minimum": 1, "maximum": 100},
            },
            "required": ["query"],
        },
    ),
    Tool(
        name="search_reasoning_chain",
        description=(
            "Follow IMPLIES / BECAUSE / CONTRADICTS links from the closest memories "
            "and return the reasoning chains."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "query": {"type": "string"},
                "preset": {"type": "string",
                           "enum": ["default", "causal", "implications", "deep"]},
                "limit": {"type": "integer", "minimum": 1, "maximum": 20},
            },
            "required": ["query"],
        },
    ),
    Tool(
        name="get_memory",
        description="Fetch one memory by id.",
        inputSchema={
            "type": "object",
            "properties": {"memory_id": {"type": "string"}},
            "required": ["memory_id"],
        },
    ),
    Tool(
        name="update_memory",
        description="Change a memory's content, certainty or importance in place.",
        inputSchema={
            "type": "object",
            "properties": {
                "memory_id": {"type": "string"},
                "content": {"type": "string"},
                "certainty": {"type": "integer", "minimum": 0, "maximum": 100},
                "importance": {"type": "integer", "minimum": 0, "maximum": 100},
            },
            "required": ["memory_id"],
        },
    ),
    Tool(
        name="delete_memory",
        description=(
            "Forget a memory. Soft deletion can be undone; "
            "set hard=true only when the user asks for permanent removal."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "memory_id": {"type": "string"},
                "reason": {"type": "string"},
                "hard": {"type": "boolean"},
            },
            "required": ["memory_id", "reason"],
        },
    ),
    Tool(
        name="get_memory_graph",
        description="List the reasoning links of one memory.",
        inputSchema={
            "type": "object",
            "properties": {"memory_id": {"type": "string"}},
            "required": ["memory_id"],
        },
    ),
]


def create_server(core: MemoryCore | None = None) -> Server:
    core = core or MemoryCore(OmcConfig.from_env())
    user_id = core.config.default_user
    server = Server("ontomem", instructions=INSTRUCTIONS)

    @server.list_tools()
    async def list_tools():
        return TOOL_DEFS

    @server.call_tool()
    async def call_tool(name: str, arguments: dict):
        try:
            result = await _dispatch(core, name, arguments or {}, user_id)
        except Exception as e:
            log.error("tool %s failed: %s", name, e)
            result = f"Error: {e}"
        return [TextContent(type="text", text=result)]

    return server


async def _dispatch(core: MemoryCore, name: str, args: dict, user_id: str) -> str:
    if name == "add_memory":
        return await do_remember(
            core, args["content"], user_id=user_id,
            memory_type=args.get("memory_type", MemoryType.fact.value),
            certainty=args.get("certainty"),
            importance=args.get("importance"),
        )

    if name == "search_memory":
        return await do_recall(
            core, args["query"], user_id=user_id,
            mode=args.get("mode"), limit=args.get("limit"),
        )

    if name == "search_by_concept":
        return await do_recall_by_concept(
            core, args["query"], user_id=user_id,
            mode=args.get("mode", "contextual"), limit=args.get("limit"),
        )

    if name == "search_reasoning_chain":
        return await do_recall_chain(
            core, args["query"], user_id=user_id,
            preset=args.get("preset"), limit=args.get("limit", 5),
        )

    if name == "get_memory":
        return await do_get_memory(core, args["memory_id"])

    if name == "update_memory":
        results = await core.update(
            args["memory_id"],
            content=args.get("content"),
            certainty=args.get("certainty"),
            importance=args.get("importance"),
        )
        done = ", ".join(r.operation for r in results)
        return f"Updated {args['memory_id']} ({done})."

    if name == "delete_memory":
        return await do_forget(
            core, args["memory_id"], args["reason"], user_id=user_id,
            hard=bool(args.get("hard", False)),
        )

    if name == "get_memory_graph":
        return await do_memory_graph(core, args["memory_id"])

    return f"Unknown tool: {name}"


async def run_server() -> None:  # pragma: no cover
    server = create_server()
    async with stdio_server() as (read_stream, write_stream):
        log.info("starting ontomem MCP server (stdio)")
        await server.run(
            read_stream, write_stream,
            server.create_initialization_options(),
        )
