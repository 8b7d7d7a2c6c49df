"""CLI entry point for ontomem."""

import asyncio
import json
import logging
import sys
from pathlib import Path

import click
import httpx

from .config import DEFAULT_HELIX_HOST, DEFAULT_HELIX_PORT, OmcConfig, get_log_level
from .core import MemoryCore

log = logging.getLogger("ontomem")

DEPLOY_TIMEOUT = 60.0


def _get_core() -> MemoryCore:
    return MemoryCore(OmcConfig.from_env())


async def _post_file(client: httpx.AsyncClient, url: str, path: Path) -> None:
    resp = await client.post(
        url, content=path.read_text(encoding="utf-8"),
        headers={"Content-Type": "text/plain"},
    )
    if resp.status_code >= 400:
        raise RuntimeError(f"upload of {path.name} failed ({resp.status_code}): {resp.text[:200]}")


async def deploy_schema(base_url: str, schema_dir: Path, schema: bool = True,
                        queries: bool = True) -> list[str]:
    """Upload schema.hx to /schema and queries.hx to /queries. Missing files are skipped."""
    targets = []
    if schema:
        targets.append(("schema.hx", "schema"))
    if queries:
        targets.append(("queries.hx", "queries"))

    deployed = []
    async with httpx.AsyncClient(timeout=DEPLOY_TIMEOUT) as client:
        for filename, endpoint in targets:
            path = schema_dir / filename
            if not path.is_file():
                log.warning("%s not found, skipping", path)
                click.echo(f"warning: {path} not found, skipping", err=True)
                continue
            await _post_file(client, f"{base_url}/{endpoint}", path)
            deployed.append(filename)
    return deployed


@click.group(invoke_without_command=True)
@click.pass_context
def main(ctx):
    """ontomem. Ontological memory for agents, stored in HelixDB."""
    logging.basicConfig(
        level=get_log_level(), stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if ctx.invoked_subcommand is None:
        ctx.invoke(serve)


@main.command()
@click.option("--host", envvar="HELIX_HOST", default=DEFAULT_HELIX_HOST, show_default=True)
@click.option("--port", envvar="HELIX_PORT", default=DEFAULT_HELIX_PORT, type=int, show_default=True)
@click.option("--schema-dir", default="schema", type=click.Path(path_type=Path), show_default=True)
@click.option("--schema-only", is_flag=True, help="Upload schema.hx only")
@click.option("--queries-only", is_flag=True, help="Upload queries.hx only")
def deploy(host, port, schema_dir, schema_only, queries_only):
    """Deploy schema and queries to a HelixDB instance."""
    if schema_only and queries_only:
        click.echo("--schema-only and --queries-only are mutually exclusive", err=True)
        sys.exit(1)
    if not schema_dir.is_dir():
        click.echo(f"schema directory not found: {schema_dir}", err=True)
        sys.exit(1)

    base_url = f"http://{host}:{port}"
    try:
        deployed = asyncio.run(deploy_schema(
            base_url, schema_dir, schema=not queries_only, queries=not schema_only,
        ))
    except (httpx.HTTPError, RuntimeError, OSError) as e:
        click.echo(f"deployment failed: {e}", err=True)
        sys.exit(1)
    if not deployed:
        click.echo("nothing deployed", err=True)
        sys.exit(1)
    click.echo(f"Deployed {', '.join(deployed)} to {base_url}")


@main.command()
@click.argument("content")
@click.option("--user", default=None, help="Owner of the memory")
@click.option("--type", "memory_type", default="fact", help="fact, preference, goal, opinion, experience, achievement")
@click.option("--certainty", default=None, type=int)
@click.option("--importance", default=None, type=int)
@click.option("--no-extract", is_flag=True, help="Store the text as is, without LLM extraction")
def add(content, user, memory_type, certainty, importance, no_extract):
    """Store a new memory."""
    from .tools.remember import do_remember
    core = _get_core()
    result = asyncio.run(do_remember(
        core, content, user_id=user, memory_type=memory_type,
        certainty=certainty, importance=importance, extract=not no_extract,
    ))
    click.echo(result)


@main.command()
@click.argument("query")
@click.option("--user", default=None)
@click.option("--mode", default=None, help="recent, contextual, deep or full")
@click.option("--limit", default=None, type=int)
@click.option("--concepts", is_flag=True, help="Use concept-weighted search")
def search(query, user, mode, limit, concepts):
    """Search memories."""
    from .tools.recall import do_recall, do_recall_by_concept
    core = _get_core()
    if concepts:
        result = asyncio.run(do_recall_by_concept(
            core, query, user_id=user, mode=mode or "contextual", limit=limit,
        ))
    else:
        result = asyncio.run(do_recall(core, query, user_id=user, mode=mode, limit=limit))
    click.echo(result)


@main.command()
@click.argument("query")
@click.option("--user", default=None)
@click.option("--preset", default=None, help="causal, implications or deep")
@click.option("--limit", default=5, type=int)
def chain(query, user, preset, limit):
    """Show reasoning chains around a query."""
    from .tools.recall import do_recall_chain
    core = _get_core()
    click.echo(asyncio.run(do_recall_chain(core, query, user_id=user, preset=preset, limit=limit)))


@main.command()
@click.argument("memory_id")
@click.option("--reason", default="", help="Why to forget this memory")
@click.option("--hard", is_flag=True, help="Delete permanently with all edges")
def delete(memory_id, reason, hard):
    """Forget a memory."""
    from .tools.forget import do_forget
    core = _get_core()
    click.echo(asyncio.run(do_forget(core, memory_id, reason, hard=hard)))


@main.command()
@click.argument("memory_id")
def restore(memory_id):
    """Undo a soft delete."""
    from .tools.forget import do_restore
    core = _get_core()
    click.echo(asyncio.run(do_restore(core, memory_id)))


@main.command()
@click.option("--apply", "apply_", is_flag=True, help="Delete orphans instead of listing them")
def cleanup(apply_):
    """Find (or delete) orphaned entities and edges."""
    core = _get_core()
    stats = asyncio.run(core.cleanup(dry_run=not apply_))
    click.echo(f"Orphaned entities: {len(stats.orphaned_entities)}")
    click.echo(f"Orphaned edges: {len(stats.orphaned_edges)}")
    if not stats.dry_run:
        click.echo(f"Deleted {stats.entities_deleted} entities, {stats.edges_deleted} edges")


@main.command()
def health():
    """Check the store and providers."""
    core = _get_core()
    report = asyncio.run(core.health())
    click.echo(json.dumps(report, indent=2, default=str))
    if report["status"] != "ok":
        sys.exit(1)


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Print the full summary as JSON")
def stats(as_json):
    """Show memory statistics."""
    core = _get_core()
    summary = asyncio.run(core.stats())
    if as_json:
        click.echo(summary.model_dump_json(indent=2))
        return
    click.echo(f"Total memories: {summary.storage.total_memories}")
    for mtype, count in sorted(summary.category_breakdown.items()):
        click.echo(f"  {mtype}: {count}")
    click.echo(f"Storage: {summary.storage.total_size_mb:.2f} MB "
               f"(+{summary.storage.vector_storage_mb:.2f} MB vectors)")
    nodes = ", ".join(f"{k}={v}" for k, v in summary.graph.node_counts.items())
    click.echo(f"Graph nodes: {summary.graph.total_nodes} ({nodes})")
    click.echo(f"Growth: {summary.growth.memories_per_day:.1f}/day ({summary.growth.trend})")


@main.command()
def serve():
    """Start MCP server (stdio transport)."""
    from .server import run_server
    asyncio.run(run_server())
