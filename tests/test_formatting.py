from __future__ import annotations

from flowclip.formatting import (
    bound_research_summary,
    format_research_summary,
    markdown_to_html,
    render_task_result,
)


def test_header_is_added_when_missing() -> None:
    text = bound_research_summary("Kyoto is busy in spring.", "kyoto hotels")
    assert text.startswith("**kyoto hotels** - Research Summary\n\nKyoto")


def test_existing_header_is_kept() -> None:
    text = bound_research_summary("**Kyoto** overview\n\nDetails.", "kyoto hotels")
    assert text.startswith("**Kyoto** overview")
    assert "Research Summary" not in text


def test_long_summary_is_cut_at_a_sentence_boundary() -> None:
    sentence = "This sentence is part of a long research summary. "
    text = bound_research_summary(sentence * 60, "topic")
    assert text.endswith("*[Summary truncated for display]*")
    body = text.split("\n\n*[Summary")[0]
    assert body.endswith(".")
    assert len(body) <= 1601


def test_whitespace_is_normalized() -> None:
    text = bound_research_summary("**T**\n\n\n\n   First.\n\n\tSecond.", "t")
    assert text == "**T**\n\nFirst.\n\nSecond."


def test_empty_summary_uses_default_text() -> None:
    assert bound_research_summary("   ", "solar panels").startswith("**solar panels** - Research Summary")
    assert format_research_summary("", "solar panels").startswith("<p><strong>solar panels</strong>")


def test_markdown_to_html() -> None:
    html = markdown_to_html("**Bold** and *soft*\nnext\n\nPara <b>")
    assert html == "<p><strong>Bold</strong> and <em>soft</em><br>next</p><p>Para &lt;b&gt;</p>"


def test_format_research_summary_produces_markup() -> None:
    html = format_research_summary("Short answer.", "topic")
    assert html.startswith("<p><strong>topic</strong> - Research Summary</p><p>Short answer.")


def test_render_task_result_lists() -> None:
    text = render_task_result("explain", {"explanation": "Simple.", "key_concepts": ["alpha", "beta"]})
    assert text.splitlines() == ["[explain]", "  explanation: Simple.", "  key_concepts:", "    - alpha", "    - beta"]
