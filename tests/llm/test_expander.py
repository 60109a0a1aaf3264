"""Tests for QueryExpander."""

import pytest

from content_search.llm.expander import QueryExpander, parse_variants
from content_search.models.search import SearchContext


@pytest.mark.asyncio
async def test_expand_parses_lines(fake_llm):
    fake_llm.response = '1. binary search tree\n- "balanced trees"\n\nok\n* tree traversal'
    variants = await QueryExpander(fake_llm).expand("binary trees")
    assert variants == ["binary search tree", "balanced trees", "tree traversal"]


@pytest.mark.asyncio
async def test_prompt_includes_context(fake_llm):
    fake_llm.response = "a b c"
    context = SearchContext(course_id="cs101", previous_queries=["graphs", "heaps"])
    await QueryExpander(fake_llm).expand("trees", context)
    prompt = fake_llm.last_prompt
    assert '"trees"' in prompt
    assert "in the context of course cs101" in prompt
    assert "Previous related queries: graphs, heaps" in prompt


@pytest.mark.asyncio
async def test_unavailable_backend_yields_no_variants(fake_llm):
    fake_llm.response = None
    assert await QueryExpander(fake_llm).expand("trees") == []


@pytest.mark.asyncio
async def test_backend_error_yields_no_variants(fake_llm):
    fake_llm.error = RuntimeError("boom")
    assert await QueryExpander(fake_llm).expand("trees") == []


def test_parse_variants_caps_at_five():
    raw = "\n".join(f"variant {i}" for i in range(8))
    assert parse_variants(raw) == [f"variant {i}" for i in range(5)]


@pytest.mark.asyncio
async def test_expansion_uses_short_focused_sampling(fake_llm):
    fake_llm.response = "cellular respiration"
    await QueryExpander(fake_llm).expand("photosynthesis")
    assert fake_llm.calls == [{"system": None, "temperature": 0.5, "max_tokens": 200}]
