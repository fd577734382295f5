from __future__ import annotations

import asyncio
import json

import pytest

from flowclip.consolidator import (
    OrganizedFinding,
    SessionConsolidator,
    analyze_entity_relationships,
    assess_research_quality,
    calculate_research_confidence,
    extract_unique_sources,
    fallback_goals_and_steps,
    process_research_data,
)
from flowclip.errors import NotFoundError
from flowclip.models import ClipboardItem, ConsolidationStrategy, EntryResearch, Session, SessionResearchResult

from conftest import make_catalog

CONSOLIDATED = {
    "researchObjective": "Pick a hotel in Lisbon",
    "summary": "Hotel A is cheaper; Hotel B is closer to the centre.",
    "primaryIntent": "Book a hotel",
    "researchGoals": ["Compare value"],
    "nextSteps": ["Check availability"],
}


def hotel_results() -> list[SessionResearchResult]:
    return [
        SessionResearchResult(
            entry_id="clip_a",
            aspect="price",
            query="hotel alfama prices",
            key_findings=["Rooms from 90 EUR", "Breakfast included"],
            sources=[{"url": "https://www.booking.com/a"}, {"url": "https://tripadvisor.com/a"}],
        ),
        SessionResearchResult(
            entry_id="clip_b",
            aspect="location",
            query="hotel baixa location",
            key_findings=["Five minutes from the metro"],
            sources=[{"url": "https://www.booking.com/a"}],
        ),
    ]


def test_no_results_without_catalog_still_summarizes() -> None:
    session = Session.create("hotel_research", "Lisbon")
    summary = asyncio.run(SessionConsolidator().generate_complete_session_summary([], [], session))
    assert summary.method == "fallback"
    assert summary.session_id == session.id
    assert summary.research_objective == "Research hotel research"
    assert summary.summary.startswith("Completed hotel research with 0 key findings from 0 sources")
    assert summary.research_goals and summary.next_steps
    assert summary.research_quality == "none"
    assert summary.confidence_level == 0.0


def test_missing_session_uses_general_research() -> None:
    summary = asyncio.run(SessionConsolidator(make_catalog()).generate_complete_session_summary(None, None, None))
    assert summary.method == "fallback"
    assert summary.session_id is None
    assert summary.aspects_covered == ["general_information"]


def test_fallback_compares_first_two_entities() -> None:
    session = Session.create("hotel_research", "Lisbon")
    entries = [EntryResearch(entry_id="clip_a", tags=["Hotel Alfama"]), EntryResearch(entry_id="clip_b", tags=["Hotel Baixa"])]
    summary = asyncio.run(SessionConsolidator().generate_complete_session_summary(hotel_results(), entries, session))
    assert summary.research_objective == "Compare Hotel Alfama and Hotel Baixa"
    assert summary.research_goals[0] == "Finalize selection between Hotel Alfama and Hotel Baixa"
    assert len(summary.research_goals) <= 4
    assert summary.next_steps == ["Check availability and rates", "Make reservation"]
    assert summary.key_findings == ["Rooms from 90 EUR", "Breakfast included", "Five minutes from the metro"]
    assert summary.total_sources == 3
    assert summary.research_quality == "moderate"


def test_workflow_result_is_used_when_complete() -> None:
    session = Session.create("hotel_research", "Lisbon")
    catalog = make_catalog([json.dumps(CONSOLIDATED)])
    summary = asyncio.run(SessionConsolidator(catalog).generate_complete_session_summary(hotel_results(), [], session))
    assert summary.method == "workflow"
    assert summary.research_objective == "Pick a hotel in Lisbon"
    assert summary.next_steps == ["Check availability"]
    assert summary.aspects_covered == ["price", "location"]
    assert [s["title"] for s in summary.research_data["sources"]] == ["Booking.com", "Tripadvisor.com"]
    assert len(catalog.gateway.chat_model.calls) == 1


def test_missing_plan_is_filled_by_second_step() -> None:
    session = Session.create("product_research", "Headphones")
    partial = dict(CONSOLIDATED, researchGoals=[], nextSteps=[])
    plan = {"researchGoals": ["Compare noise cancelling"], "nextSteps": ["Order a pair"]}
    catalog = make_catalog([json.dumps(partial), json.dumps(plan)])
    summary = asyncio.run(SessionConsolidator(catalog).generate_complete_session_summary(hotel_results(), [], session))
    assert summary.method == "workflow"
    assert summary.research_goals == ["Compare noise cancelling"]


@pytest.mark.parametrize(
    "reply",
    [json.dumps(dict(CONSOLIDATED, summary="")), "not json", RuntimeError("model down")],
)
def test_incomplete_or_failed_consolidation_falls_back(reply) -> None:
    session = Session.create("hotel_research", "Lisbon")
    catalog = make_catalog([reply])
    summary = asyncio.run(SessionConsolidator(catalog).generate_complete_session_summary(hotel_results(), [], session))
    assert summary.method == "fallback"
    assert summary.research_objective
    assert summary.summary
    assert summary.research_goals and summary.next_steps


def test_summarize_session_from_store(store) -> None:
    session = Session.create("restaurant_research", "Porto dinner")
    asyncio.run(store.save_session(session))
    item = ClipboardItem.create("Cantina 32 menu")
    item.tags = ["cantina"]
    asyncio.run(store.save_clipboard_item(item))
    asyncio.run(
        store.merge_workflow_results(
            item.id,
            "research",
            {
                "research_queries": ["cantina porto menu"],
                "key_findings": ["Tasting menu available"],
                "sources": [{"url": "https://www.timeout.com/porto"}],
                "aspect": "menu",
            },
        )
    )
    asyncio.run(store.add_session_item(session.id, item.id))

    summary = asyncio.run(SessionConsolidator(store=store).summarize_session(session.id))
    assert summary.session_id == session.id
    assert summary.key_findings == ["Tasting menu available"]
    assert summary.entities_researched[:2] == ["cantina", "porto"]
    assert summary.aspects_covered == ["menu"]
    assert summary.research_data["sources"] == [{"url": "https://www.timeout.com/porto", "title": "Timeout.com"}]


def test_summarize_unknown_session(store) -> None:
    with pytest.raises(NotFoundError):
        asyncio.run(SessionConsolidator(store=store).summarize_session("sess_missing"))


def test_research_confidence() -> None:
    assert calculate_research_confidence([]) == 0.0
    findings = [
        OrganizedFinding(aspect=f"aspect{i % 5}", finding=f"f{i}", entry_id="e", query="q", sources=3) for i in range(10)
    ]
    assert calculate_research_confidence(findings) == 1.0
    single = [OrganizedFinding(aspect="price", finding="f", entry_id="e", query="q", sources=0)]
    assert calculate_research_confidence(single) == pytest.approx(0.3)


def test_research_quality_tiers() -> None:
    def result(findings: int, sources: int) -> SessionResearchResult:
        return SessionResearchResult(
            entry_id="e",
            aspect="a",
            query="q",
            key_findings=[f"f{i}" for i in range(findings)],
            sources=[{"url": f"https://s{i}.example"} for i in range(sources)],
        )

    assert assess_research_quality([]) == "none"
    assert assess_research_quality([result(10, 5)]) == "high"
    assert assess_research_quality([result(5, 3)]) == "good"
    assert assess_research_quality([result(2, 1)]) == "moderate"
    assert assess_research_quality([result(1, 0)]) == "basic"


def test_unique_sources_get_titles() -> None:
    sources = extract_unique_sources(["https://www.example.org/a", {"url": "https://www.example.org/a"}, {"title": "x"}])
    assert sources == [
        {"url": "https://www.example.org/a", "title": "Example.org"},
        {"url": "unknown", "title": "Unknown Source"},
    ]


def test_query_terms_become_entities() -> None:
    processed = process_research_data(hotel_results(), [], "hotel_research")
    assert processed.entities == ["hotel", "alfama", "prices", "baixa", "location"]
    assert processed.total_findings == 3


def test_default_goals_for_unknown_session_type() -> None:
    goals, steps = fallback_goals_and_steps("hobby_research", ["one"])
    assert goals == ["Complete comprehensive analysis", "Make informed decisions"]
    assert steps == ["Review findings", "Take appropriate action"]


def hotel_items() -> list[ClipboardItem]:
    return [ClipboardItem.create("Hotel Alfama Lisbon rooms"), ClipboardItem.create("Hotel Baixa Chiado suites")]


def test_several_hotels_are_compared() -> None:
    analysis = analyze_entity_relationships(hotel_items(), "hotel_research")
    assert analysis.strategy is ConsolidationStrategy.COMPARE
    assert analysis.relationship_type == "COMPARABLE_ENTITIES"
    assert [entity.name for entity in analysis.entities] == ["Hotel Alfama Lisbon", "Hotel Baixa Chiado"]
    assert {entity.type for entity in analysis.entities} == {"hotel"}
    assert analysis.comparison_dimensions == ["price", "amenities", "location", "reviews", "availability"]


@pytest.mark.parametrize(
    ("contents", "session_type", "strategy"),
    [
        ([], "hotel_research", ConsolidationStrategy.GENERIC),
        (["Hotel Alfama Lisbon rooms"], "hotel_research", ConsolidationStrategy.MERGE),
        (["Hotel Baixa rooms", "Cervejaria Ramiro restaurant"], "general_research", ConsolidationStrategy.COMPLEMENT),
        (["Hotel Baixa rooms", "Buy Sony headphones"], "general_research", ConsolidationStrategy.GENERIC),
    ],
)
def test_consolidation_strategy_follows_item_content(contents, session_type, strategy) -> None:
    items = [ClipboardItem.create(content) for content in contents]
    assert analyze_entity_relationships(items, session_type).strategy is strategy


def test_entity_types_match_whole_words_only() -> None:
    items = [ClipboardItem.create("Dinner plans with Ana"), ClipboardItem.create("   ")]
    analysis = analyze_entity_relationships(items, "general_research")
    assert [(entity.name, entity.type) for entity in analysis.entities] == [
        ("Dinner Ana", "general"),
        ("Unknown Item", "general"),
    ]


def test_fallback_summary_reports_comparison() -> None:
    session = Session.create("hotel_research", "Lisbon")
    summary = asyncio.run(
        SessionConsolidator().generate_complete_session_summary(hotel_results(), [], session, hotel_items())
    )
    assert summary.consolidation_strategy is ConsolidationStrategy.COMPARE
    assert summary.summary.endswith(
        "Compared Hotel Alfama Lisbon, Hotel Baixa Chiado on price, amenities, location, reviews, availability."
    )
    data = summary.to_dict()
    assert data["consolidationStrategy"] == "COMPARE"
    assert data["entityAnalysis"]["relationshipType"] == "COMPARABLE_ENTITIES"
    assert data["entityAnalysis"]["entities"][0]["clipboardItemId"] == summary.entity_analysis.entities[0].id


def test_single_item_session_merges() -> None:
    session = Session.create("hotel_research", "Lisbon")
    items = [ClipboardItem.create("Hotel Alfama Lisbon rooms")]
    summary = asyncio.run(SessionConsolidator().generate_complete_session_summary(hotel_results(), [], session, items))
    assert summary.consolidation_strategy is ConsolidationStrategy.MERGE
    assert "Compared" not in summary.summary
    assert summary.to_dict()["entityAnalysis"]["relationshipType"] == "SAME_ENTITY"


def test_workflow_prompt_carries_strategy() -> None:
    session = Session.create("hotel_research", "Lisbon")
    catalog = make_catalog([json.dumps(CONSOLIDATED)])
    summary = asyncio.run(
        SessionConsolidator(catalog).generate_complete_session_summary(hotel_results(), [], session, hotel_items())
    )
    assert summary.method == "workflow"
    assert summary.to_dict()["consolidationStrategy"] == "COMPARE"
    prompt = catalog.gateway.chat_model.calls[0][0].content
    assert "Consolidation strategy: COMPARE." in prompt
    assert "side by side along: price, amenities, location, reviews, availability" in prompt


def test_summary_without_session_items_is_generic() -> None:
    summary = asyncio.run(SessionConsolidator().generate_complete_session_summary([], [], None))
    assert summary.entity_analysis is None
    assert summary.to_dict()["consolidationStrategy"] == "GENERIC"
    assert summary.to_dict()["entityAnalysis"] is None
