from __future__ import annotations

import asyncio

import pytest
import requests

from flowclip.config import FlowClipConfig
from flowclip.errors import ExternalCallError
from flowclip.search import DuckDuckGoSearch, SerpApiSearch, build_search


class FakeResponse:
    def __init__(self, payload, status_code: int = 200) -> None:
        self.payload = payload
        self.status_code = status_code

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


class FakeSession:
    def __init__(self, response) -> None:
        self.response = response
        self.headers: dict = {}
        self.requests: list = []

    def get(self, url, params=None, timeout=None):
        self.requests.append((url, params, timeout))
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


def test_serpapi_puts_knowledge_and_answer_first() -> None:
    payload = {
        "organic_results": [{"title": f"Hit {i}", "snippet": "s", "link": f"https://r{i}.example"} for i in range(7)],
        "answer_box": {"title": "Answer", "answer": "42"},
        "knowledge_graph": {"title": "Topic", "description": "About the topic", "website": "https://topic.example"},
    }
    session = FakeSession(FakeResponse(payload))
    results = asyncio.run(SerpApiSearch("key", session).search("topic"))
    assert [r.type for r in results[:2]] == ["knowledge", "featured"]
    assert results[1].snippet == "42"
    assert len(results) == 7
    assert session.requests[0][1]["api_key"] == "key"
    assert session.headers["User-Agent"].startswith("FlowClip")


def test_serpapi_without_organic_results_is_empty() -> None:
    session = FakeSession(FakeResponse({"answer_box": {"answer": "x"}}))
    assert asyncio.run(SerpApiSearch("key", session).search("q")) == []


def test_http_error_status_is_empty() -> None:
    session = FakeSession(FakeResponse({}, status_code=503))
    assert asyncio.run(DuckDuckGoSearch(session).search("q")) == []


def test_network_failure_raises_external_call_error() -> None:
    session = FakeSession(requests.ConnectionError("offline"))
    with pytest.raises(ExternalCallError):
        asyncio.run(DuckDuckGoSearch(session).search("q"))


def test_duckduckgo_abstract_and_topics() -> None:
    payload = {
        "Heading": "Python",
        "AbstractText": "A programming language.",
        "AbstractURL": "https://en.wikipedia.org/wiki/Python",
        "RelatedTopics": [
            {"Text": "Python Software Foundation - nonprofit", "FirstURL": "https://duckduckgo.com/PSF"},
            {"Name": "grouped", "Topics": []},
        ],
    }
    results = asyncio.run(DuckDuckGoSearch(FakeSession(FakeResponse(payload))).search("python"))
    assert [r.title for r in results] == ["Python", "Python Software Foundation"]
    assert results[0].type == "knowledge"


def test_build_search_prefers_serpapi_with_key() -> None:
    assert isinstance(build_search(FlowClipConfig(serpapi_key="k")), SerpApiSearch)
    assert isinstance(build_search(FlowClipConfig()), DuckDuckGoSearch)
