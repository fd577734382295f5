from __future__ import annotations

import pytest

from flowclip.classifier import (
    DEFAULT_RULES,
    ContentClassifier,
    ContentRule,
    extract_content_type,
    generate_fallback_tags,
    infer_aspect,
)
from flowclip.constants import ContentType
from flowclip.models import CaptureContext


@pytest.mark.parametrize(
    ("content", "expected"),
    [
        ("https://example.com", "url"),
        ("jane.doe@example.com", "email"),
        ("555-123-4567", "phone"),
        ("2024-03-15", "date"),
        ("742 Evergreen Terrace Road", "address"),
        ("Portland, OR", "location"),
        ("Acme Inc", "organization"),
        ("Jane Smith", "person"),
        ("$1,299.99", "financial"),
        ("const total = items.length;", "code"),
        ("please review the attached report", "document"),
        ("hello there", "text"),
        ("   ", "text"),
        ("", "empty"),
    ],
)
def test_extract_content_type_labels(content: str, expected: str) -> None:
    assert extract_content_type(content) == expected


def test_url_wins_over_address_pattern() -> None:
    assert extract_content_type("https://maps.example.com/123 Main Street") == "url"


def test_person_requires_short_non_code_text() -> None:
    assert extract_content_type("Jane Smith " + "x" * 120) != "person"


def test_rule_order_is_stable() -> None:
    labels = [rule.label for rule in DEFAULT_RULES]
    assert labels[:3] == [ContentType.URL, ContentType.EMAIL, ContentType.PHONE]
    assert labels.index(ContentType.ORGANIZATION) < labels.index(ContentType.PERSON)
    assert labels[-1] == ContentType.DATA


def test_custom_rule_list_is_evaluated_in_order() -> None:
    classifier = ContentClassifier(
        [
            ContentRule(ContentType.CODE, lambda text: "x" in text),
            ContentRule(ContentType.DATA, lambda text: True),
        ]
    )
    assert classifier.classify("xyz") is ContentType.CODE
    assert classifier.classify("abc") is ContentType.DATA


def test_fallback_tags_for_url_copied_in_browser() -> None:
    tags = generate_fallback_tags("https://example.com", CaptureContext(source_app="Chrome"))
    assert tags == ["url", "web", "browser", "short-content", "brief"]


def test_fallback_tags_are_capped_and_unique() -> None:
    content = "Call Jane Smith at 555-123-4567 or jane@acme.com about the $500 invoice from Acme Inc"
    tags = generate_fallback_tags(content, CaptureContext(source_app="Outlook"))
    assert len(tags) <= 5
    assert len(tags) == len(set(tags))
    assert tags[0] == extract_content_type(content)


def test_infer_aspect() -> None:
    assert infer_aspect("Grand Hotel prices downtown", "hotel_research") == "price"
    assert infer_aspect("best sushi reviews") == "reviews"
    assert infer_aspect("history of the city") == "general_information"
