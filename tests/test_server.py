"""Tests for the MCP server module (server.py) and the tool functions behind it.

Covers: TOOL_DEFS, create_server and _dispatch over a MemoryCore wired to
FakeHelix, so each tool's text output is checked against real store state.
"""

from importlib.metadata import version

import pytest

from conftest import vec
from ontomem.server import INSTRUCTIONS, TOOL_DEFS, _dispatch, create_server
from ontomem.tools import do_forget, do_restore

USER = "default"


async def _add(core, content: str) -> str:
    result = await core.add(content)
    return result.memory_ids[0]


# ---------------------------------------------------------------------------
# TOOL_DEFS
# ---------------------------------------------------------------------------

class TestToolDefs:
    """Tool schemas advertised to the client."""

    def test_tool_names(self):
        assert [t.name for t in TOOL_DEFS] == [
            "add_memory",
            "search_memory",
            "search_by_concept",
            "search_reasoning_chain",
            "get_memory",
            "update_memory",
            "delete_memory",
            "get_memory_graph",
        ]

    def test_required_fields(self):
        required = {t.name: t.inputSchema["required"] for t in TOOL_DEFS}
        assert required["add_memory"] == ["content"]
        assert required["delete_memory"] == ["memory_id", "reason"]

    def test_enums_follow_types(self):
        by_name = {t.name: t.inputSchema["properties"] for t in TOOL_DEFS}
        assert by_name["search_memory"]["mode"]["enum"] == ["recent", "contextual", "deep", "full"]
        assert "preference" in by_name["add_memory"]["memory_type"]["enum"]


class TestCreateServer:
    def test_server_name_and_instructions(self, core):
        server = create_server(core)
        assert server.name == "ontomem"
        assert server.instructions == INSTRUCTIONS

    def test_targets_mcp_1x(self):
        assert version("mcp").split(".")[0] == "1"


# ---------------------------------------------------------------------------
# _dispatch
# ---------------------------------------------------------------------------

class TestDispatchWrites:
    @pytest.mark.asyncio
    async def test_add_memory(self, core, fake_helix):
        out = await _dispatch(core, "add_memory", {"content": "I like green tea."}, USER)

        assert out.startswith("Remembered [fact]: I like green tea.")
        [memory_id] = list(fake_helix.memories)
        assert f"(id: {memory_id})" in out

    @pytest.mark.asyncio
    async def test_add_duplicate(self, core):
        await _dispatch(core, "add_memory", {"content": "I like green tea."}, USER)
        out = await _dispatch(core, "add_memory", {"content": "I like green tea."}, USER)
        assert out.startswith("Already known: I like green tea.")

    @pytest.mark.asyncio
    async def test_add_invalid_type(self, core, fake_helix):
        out = await _dispatch(core, "add_memory",
                              {"content": "x", "memory_type": "bogus"}, USER)
        assert out.startswith("invalid memory type 'bogus'")
        assert fake_helix.memories == {}

    @pytest.mark.asyncio
    async def test_add_reports_supersession(self, core, pin):
        pin({
            "I use vim for editing code.": vec(1, 0),
            "I switched to neovim for editing code.": vec(1, 0.3),
        })
        await _dispatch(core, "add_memory", {"content": "I use vim for editing code."}, USER)
        out = await _dispatch(core, "add_memory",
                              {"content": "I switched to neovim for editing code."}, USER)
        assert out.endswith("[1 links, supersede]")

    @pytest.mark.asyncio
    async def test_update_memory(self, core, fake_helix):
        memory_id = await _add(core, "I like green tea.")

        out = await _dispatch(core, "update_memory", {
            "memory_id": memory_id, "content": "I like green tea with honey.", "importance": 90,
        }, USER)

        assert out == f"Updated {memory_id} (enhance, update)."
        rec = fake_helix.memories[memory_id]
        assert (rec["content"], rec["importance"]) == ("I like green tea with honey.", 90)

    @pytest.mark.asyncio
    async def test_soft_delete_then_get(self, core):
        memory_id = await _add(core, "I like green tea.")

        out = await _dispatch(core, "delete_memory",
                              {"memory_id": memory_id, "reason": "changed taste"}, USER)
        assert out == f"Forgotten: {memory_id} (reason: changed taste). It can be restored."

        shown = await _dispatch(core, "get_memory", {"memory_id": memory_id}, USER)
        assert f"(deleted by {USER})" in shown

        again = await _dispatch(core, "delete_memory",
                                {"memory_id": memory_id, "reason": "again"}, USER)
        assert again == f"Memory {memory_id} is already forgotten."

        assert await do_restore(core, memory_id) == f"Restored: {memory_id}."

    @pytest.mark.asyncio
    async def test_hard_delete(self, core, fake_helix):
        memory_id = await _add(core, "I like green tea.")
        out = await _dispatch(core, "delete_memory",
                              {"memory_id": memory_id, "reason": "gdpr", "hard": True}, USER)
        assert out == f"Deleted permanently: {memory_id} (1 edges removed)."
        assert fake_helix.memories == {}

    @pytest.mark.asyncio
    async def test_delete_unknown(self, core):
        assert await do_forget(core, "ghost", "typo") == "No memory found with id: ghost"


class TestDispatchReads:
    @pytest.mark.asyncio
    async def test_search_memory(self, core, pin):
        pin({"I like green tea.": vec(1, 0), "green tea": vec(1, 0)})
        memory_id = await _add(core, "I like green tea.")

        out = await _dispatch(core, "search_memory", {"query": "green tea"}, USER)

        assert out.startswith("Found 1 memories:")
        assert "I like green tea." in out
        assert f"id: {memory_id}" in out

    @pytest.mark.asyncio
    async def test_search_memory_empty(self, core):
        out = await _dispatch(core, "search_memory", {"query": "anything"}, USER)
        assert out == "No memories found matching that query."

    @pytest.mark.asyncio
    async def test_search_shows_graph_hops(self, core, fake_helix, pin):
        pin({"python": vec(1, 0)})
        fake_helix.seed_memory("A", "I use python every day", vector=vec(1, 0))
        fake_helix.seed_memory("B", "so I know the standard library well")
        fake_helix.add_edge("IMPLIES", "A", "B", probability=80)

        out = await _dispatch(core, "search_memory", {"query": "python", "mode": "contextual"}, USER)

        assert "Found 2 memories:" in out
        assert "via IMPLIES from A" in out

    @pytest.mark.asyncio
    async def test_search_by_concept(self, core, fake_helix, pin):
        pin({"what do I love about python": vec(1, 0)})
        fake_helix.seed_memory("pref", "I love python programming", vector=vec(1, 0))

        out = await _dispatch(core, "search_by_concept",
                              {"query": "what do I love about python"}, USER)

        assert out.startswith("Found 1 memories:")
        assert "concepts=-" in out

    @pytest.mark.asyncio
    async def test_reasoning_chain(self, core, fake_helix, pin):
        pin({"why berlin": vec(1, 0)})
        fake_helix.seed_memory("A", "I moved to Berlin", vector=vec(1, 0))
        fake_helix.seed_memory("B", "I got a job offer there")
        fake_helix.add_edge("BECAUSE", "A", "B", strength=90)

        out = await _dispatch(core, "search_reasoning_chain",
                              {"query": "why berlin", "preset": "causal"}, USER)

        assert out.startswith("Found 1 chains over 2 memories (deepest: 1):")
        assert "--BECAUSE--> I got a job offer there" in out

    @pytest.mark.asyncio
    async def test_reasoning_chain_empty(self, core):
        out = await _dispatch(core, "search_reasoning_chain", {"query": "why"}, USER)
        assert out == "No reasoning chains found."

    @pytest.mark.asyncio
    async def test_get_memory(self, core):
        memory_id = await _add(core, "I like green tea.")
        out = await _dispatch(core, "get_memory", {"memory_id": memory_id}, USER)
        assert out.startswith("[fact] I like green tea.\n")
        assert f"user: {USER}, certainty: 80, importance: 50" in out

    @pytest.mark.asyncio
    async def test_get_missing_memory(self, core):
        out = await _dispatch(core, "get_memory", {"memory_id": "ghost"}, USER)
        assert out == "No memory found with id: ghost"

    @pytest.mark.asyncio
    async def test_memory_graph(self, core, fake_helix):
        fake_helix.seed_memory("A", "I moved to Berlin")
        fake_helix.seed_memory("B", "I got a job offer there")
        fake_helix.add_edge("BECAUSE", "A", "B", strength=90)

        out = await _dispatch(core, "get_memory_graph", {"memory_id": "A"}, USER)
        assert out == "A has 1 links:\n-> BECAUSE B: I got a job offer there"

        incoming = await _dispatch(core, "get_memory_graph", {"memory_id": "B"}, USER)
        assert "<- BECAUSE A" in incoming

    @pytest.mark.asyncio
    async def test_memory_graph_without_links(self, core, fake_helix):
        fake_helix.seed_memory("A", "alone")
        out = await _dispatch(core, "get_memory_graph", {"memory_id": "A"}, USER)
        assert out == "A has no reasoning links."

    @pytest.mark.asyncio
    async def test_unknown_tool(self, core):
        assert await _dispatch(core, "nope", {}, USER) == "Unknown tool: nope"
