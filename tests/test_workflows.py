from __future__ import annotations

import asyncio
import json

import pytest
from PIL import Image

from flowclip.catalog import WorkflowKind
from flowclip.content_analysis import AnalysisState
from flowclip.errors import ExternalCallError
from flowclip.llm import LLMGateway
from flowclip.models import CaptureContext, SearchResult
from flowclip.research import ResearchState, fallback_query, preprocess_content
from flowclip.summarization import SummaryState

from conftest import FakeSearch, ScriptedChatModel, make_catalog

EXTRACT_REPLY = json.dumps({"keyPoints": ["Rates rise", "Inflation cools"], "contextualSummary": "Central bank news."})


def summary_reply(score: int) -> str:
    return json.dumps({"summary": "Rates rise as inflation cools.", "qualityScore": score, "needsRefinement": score < 70})


def run_with_trace(catalog, kind, state):
    trace: list[str] = []
    result = asyncio.run(catalog.workflow(kind).run(state, trace=trace))
    return result, trace


# Summarization


def test_low_quality_summary_is_refined() -> None:
    catalog = make_catalog([EXTRACT_REPLY, summary_reply(60), "The central bank raised rates while inflation cooled."])
    result, trace = run_with_trace(catalog, WorkflowKind.SUMMARIZATION, SummaryState(content="Long economic news article."))
    assert trace == ["extract_and_contextualize", "generate_quality_summary", "refine_summary"]
    assert result.quality_score == 75
    assert result.final_summary == "The central bank raised rates while inflation cooled."
    assert result.key_points == ("Rates rise", "Inflation cools")


def test_good_summary_skips_refinement() -> None:
    catalog = make_catalog([EXTRACT_REPLY, summary_reply(85)])
    result, trace = run_with_trace(catalog, WorkflowKind.SUMMARIZATION, SummaryState(content="Long economic news article."))
    assert trace == ["extract_and_contextualize", "generate_quality_summary"]
    assert result.quality_score == 85
    assert result.final_summary == result.summary == "Rates rise as inflation cools."
    assert len(catalog.gateway.chat_model.calls) == 2


def test_summary_steps_survive_malformed_output() -> None:
    content = "The quarterly report shows growth in every region. Costs went down across the board. Hiring resumed."
    catalog = make_catalog(["not json", "still not json"])
    result = asyncio.run(catalog.run_summarization(content))
    assert result.key_points[0] == "The quarterly report shows growth in every region"
    assert result.quality_score == 75
    assert result.final_summary


# Research


def test_research_without_search_results_uses_model_knowledge() -> None:
    search = FakeSearch([])
    catalog = make_catalog(["kyoto ryokan prices", "Ryokan are traditional inns."], search=search)
    state = asyncio.run(catalog.run_research("Looking at ryokan in Kyoto for April"))
    assert search.queries == ["kyoto ryokan prices"]
    assert state.research_summary.startswith("**kyoto ryokan prices** - Research Summary")
    assert 0.6 <= state.confidence <= 0.7
    assert state.total_sources == 0
    result = state.to_result()
    assert result["aspect"] == "price"
    assert result["research_quality"] == "basic"
    assert result["formatted_summary"].startswith("<p><strong>kyoto ryokan prices</strong>")


def test_research_result_formats_stored_summary_for_display() -> None:
    empty = ResearchState(content="x", research_queries=("tide tables",))
    assert empty.to_result()["formatted_summary"].startswith("<p><strong>tide tables</strong>")
    long = ResearchState(content="x", research_queries=("tides",), research_summary="Tides rise twice a day. " * 150)
    formatted = long.to_result()["formatted_summary"]
    assert formatted.count("<em>[Summary truncated for display]</em>") == 1
    assert formatted.startswith("<p><strong>tides</strong> - Research Summary</p>")


def test_failed_search_is_not_counted_as_a_source() -> None:
    catalog = make_catalog(["solar panels", "Knowledge answer."], search=FakeSearch(ExternalCallError("offline")))
    state = asyncio.run(catalog.run_research("solar panels"))
    assert state.search_results[0].results[0].type == "fallback"
    assert state.total_sources == 0
    assert state.sources == ()
    assert state.confidence == 0.7


def test_research_with_results_extracts_findings() -> None:
    results = [
        SearchResult(title="Efficiency records", snippet="Panels reach 22%.", url="https://a.example/1"),
        SearchResult(title="Prices", snippet="Costs fell 10%.", url="https://b.example/2"),
    ]
    catalog = make_catalog(
        ["solar panel efficiency", "Panels reach 22% efficiency.", '["Efficiency near 22%", "Costs falling"]'],
        search=FakeSearch(results),
    )
    state = asyncio.run(catalog.run_research("solar panels", existing_analysis={"contentType": "text", "tags": ["energy"]}))
    assert state.confidence == 0.85
    assert state.total_sources == 2
    assert state.key_findings == ("Efficiency near 22%", "Costs falling")
    assert state.sources[0]["url"] == "https://a.example/1"
    assert "Known analysis" in catalog.gateway.chat_model.calls[0][0].content


def test_unusable_query_falls_back_to_context_query() -> None:
    search = FakeSearch([])
    catalog = make_catalog(["https://not-a-query.example", "Lisbon has many places to eat."], search=search)
    asyncio.run(catalog.run_research("Best restaurant in Lisbon"))
    assert search.queries == ["restaurant reviews"]


def test_synthesis_failure_degrades_confidence() -> None:
    catalog = make_catalog(["coffee", RuntimeError("model down")])
    state = asyncio.run(catalog.run_research("coffee"))
    assert state.confidence == 0.6
    assert state.research_summary.startswith("**coffee**")


@pytest.mark.parametrize(
    ("content", "expected"),
    [
        ("https://www.booking.com/hotel/pt/lisbon-central.html", ("lisbon central hotel", "hotel booking research")),
        ("https://www.airbnb.com/rooms/1", ("vacation rental accommodation", "accommodation research")),
        ("https://docs.python.org/3/", ("information from docs.python.org", "website research")),
        ("plain words", ("plain words", "general content")),
    ],
)
def test_preprocess_content(content, expected) -> None:
    assert preprocess_content(content) == expected


def test_fallback_query_for_hotel_booking() -> None:
    assert fallback_query("x", "lisbon central hotel", "hotel booking research") == "lisbon central hotels"


# Comprehensive analysis


def test_url_from_chrome_is_classified_as_url() -> None:
    catalog = make_catalog(["not json"])
    context = CaptureContext(source_app="Chrome")
    state, trace = run_with_trace(
        catalog, WorkflowKind.COMPREHENSIVE_ANALYSIS, AnalysisState(content="https://example.com", context=context)
    )
    assert trace == ["comprehensive_analysis"]
    assert state.content_type == "url"
    assert "url" in state.tags
    assert len(state.tags) <= 5
    assert [a.action for a in state.recommended_actions] == ["research"]


def test_low_confidence_long_content_is_enhanced() -> None:
    content = "Meeting notes: " + "we agreed to revisit the roadmap next sprint and share the draft with the team. " * 2
    analysis = {
        "contentType": "text",
        "sentiment": "neutral",
        "purpose": "notes",
        "confidence": 60,
        "tags": ["Notes", "work"],
        "recommendedActions": [{"action": "summarize", "priority": "high"}],
    }
    enhancement = {"enhancedTags": ["notes", "work", "meeting"], "confidenceBoost": 35}
    catalog = make_catalog([json.dumps(analysis), json.dumps(enhancement)])
    state, trace = run_with_trace(catalog, WorkflowKind.COMPREHENSIVE_ANALYSIS, AnalysisState(content=content))
    assert trace == ["comprehensive_analysis", "enhance_results"]
    assert state.confidence == 80
    assert state.tags == ("notes", "work", "meeting")
    assert [a.action for a in state.recommended_actions] == ["summarize"]
    assert state.analysis_method == "comprehensive_enhanced"


def test_analysis_failure_returns_degraded_state() -> None:
    catalog = make_catalog([RuntimeError("boom")])
    state = asyncio.run(catalog.run_analysis("short note"))
    assert state.confidence == 50
    assert state.analysis_method == "fallback"
    assert [a.action for a in state.recommended_actions] == ["explain"]
    assert state.tags


def test_vision_only_runs_with_a_screenshot(tmp_path) -> None:
    shot = tmp_path / "shot.png"
    Image.linear_gradient("L").convert("RGB").save(shot)
    vision = ScriptedChatModel(["An IDE with a Python file open."])
    catalog = make_catalog(["not json", "not json"], vision=vision)

    asyncio.run(catalog.run_analysis("import os", CaptureContext(source_app="Code")))
    assert vision.calls == []

    state = asyncio.run(catalog.run_analysis("import os", CaptureContext(source_app="Code", screenshot_path=shot)))
    assert len(vision.calls) == 1
    assert state.has_visual_context
    assert "An IDE with a Python file open." in state.context_insights


def test_screenshot_description_is_cached(tmp_path) -> None:
    shot = tmp_path / "shot.png"
    Image.linear_gradient("L").convert("RGB").save(shot)
    vision = ScriptedChatModel(["A spreadsheet."])
    gateway = LLMGateway(ScriptedChatModel(), vision)

    first = asyncio.run(gateway.describe_screenshot(shot, "copied cell", "Describe"))
    second = asyncio.run(gateway.describe_screenshot(shot, "copied cell", "Describe"))
    assert first == second == "A spreadsheet."
    assert len(vision.calls) == 1
    assert asyncio.run(gateway.describe_screenshot(tmp_path / "missing.png", "x", "Describe")) is None


def test_catalog_checks_state_type() -> None:
    catalog = make_catalog()
    assert {kind for kind in WorkflowKind} == set(catalog._workflows)
    with pytest.raises(TypeError):
        asyncio.run(catalog.execute(WorkflowKind.RESEARCH, SummaryState(content="x")))
    with pytest.raises(TypeError):
        asyncio.run(catalog.execute(WorkflowKind.SUMMARIZATION, ResearchState(content="x")))
