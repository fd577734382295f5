"""Shared vocabularies and limits for FlowClip workflows."""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Tuple


ALLOWED_ACTIONS: Tuple[str, ...] = (
    "research",
    "fact_check",
    "summarize",
    "translate",
    "explain",
    "expand",
    "create_task",
    "cite",
    "respond",
    "schedule",
)


class ContentType(str, Enum):
    """Closed vocabulary returned by the heuristic classifier."""

    TEXT = "text"
    URL = "url"
    EMAIL = "email"
    PHONE = "phone"
    ADDRESS = "address"
    LOCATION = "location"
    PERSON = "person"
    ORGANIZATION = "organization"
    DATE = "date"
    FINANCIAL = "financial"
    CODE = "code"
    DOCUMENT = "document"
    DATA = "data"
    EMPTY = "empty"

    def __str__(self) -> str:
        return self.value


class SessionType(str, Enum):
    HOTEL_RESEARCH = "hotel_research"
    RESTAURANT_RESEARCH = "restaurant_research"
    PRODUCT_RESEARCH = "product_research"
    ACADEMIC_RESEARCH = "academic_research"
    TRAVEL_RESEARCH = "travel_research"
    GENERAL_RESEARCH = "general_research"


COMPARISON_DIMENSIONS: Dict[str, List[str]] = {
    SessionType.HOTEL_RESEARCH.value: ["price", "amenities", "location", "reviews"],
    SessionType.RESTAURANT_RESEARCH.value: ["cuisine", "price", "atmosphere", "reviews"],
    SessionType.PRODUCT_RESEARCH.value: ["features", "price", "quality", "reviews"],
    SessionType.ACADEMIC_RESEARCH.value: ["relevance", "authority", "methodology"],
    SessionType.TRAVEL_RESEARCH.value: ["cost", "convenience", "experience"],
    "default": ["features", "quality", "value"],
}

# Dimensions used when comparing several entities of one session
ENTITY_COMPARISON_DIMENSIONS: Dict[str, List[str]] = {
    SessionType.HOTEL_RESEARCH.value: ["price", "amenities", "location", "reviews", "availability"],
    SessionType.RESTAURANT_RESEARCH.value: ["cuisine", "price", "atmosphere", "reviews", "location"],
    SessionType.PRODUCT_RESEARCH.value: ["features", "price", "quality", "reviews", "availability"],
    SessionType.ACADEMIC_RESEARCH.value: ["relevance", "authority", "methodology", "findings"],
    SessionType.TRAVEL_RESEARCH.value: ["cost", "convenience", "experience", "reviews"],
    "default": ["features", "quality", "value", "reviews"],
}

# Response limits
MAX_SUMMARY_LENGTH = 1800
MAX_TAGS = 5
MAX_ACTIONS = 5
MAX_SOURCES = 10
MAX_FALLBACK_TAGS = 5
MAX_KEY_FINDINGS = 5

# Workflow thresholds
ENHANCE_CONFIDENCE_THRESHOLD = 80
ENHANCE_MIN_CONTENT_LENGTH = 100
MAX_ENHANCED_CONFIDENCE = 95
MAX_CONFIDENCE_BOOST = 20
REFINE_QUALITY_THRESHOLD = 70
REFINE_QUALITY_BOOST = 15
MAX_REFINED_QUALITY = 95

# Research confidence levels
SEARCH_BACKED_CONFIDENCE = 0.85
KNOWLEDGE_ONLY_CONFIDENCE = 0.7
DEGRADED_RESEARCH_CONFIDENCE = 0.6

# Vision analysis cache
VISION_CACHE_MAX_AGE = 2 * 60.0
VISION_MAX_BASE64_LENGTH = 20_000_000
VISION_MAX_IMAGE_SIDE = 1568

DEFAULT_MODEL = "gpt-3.5-turbo"
DEFAULT_VISION_MODEL = "gpt-4o"
DEFAULT_TEMPERATURE = 0.7
