"""
Pytest configuration for the experience discovery test suite.

This configuration sets up:
- Test markers for categorization
- A seeded two-tenant InMemoryExperienceDatabase (FakeRepository pattern)
- Request contexts bound to each tenant
- Settings with safe defaults (keyword engine, in-memory store)
"""

import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

import pytest

# Add project root to Python path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


# =============================================================================
# Test Markers
# =============================================================================


def pytest_configure(config):
    """
    Register custom markers for test categorization.

    - unit: Low gear tests for individual components
    - integration: High gear tests for service interactions
    - e2e: End-to-end workflow tests
    - slow: Tests that take a long time to run
    """
    config.addinivalue_line("markers", "unit: Unit tests for individual components")
    config.addinivalue_line("markers", "integration: Integration tests for service interactions")
    config.addinivalue_line("markers", "e2e: End-to-end workflow tests")
    config.addinivalue_line("markers", "slow: Tests that take a long time to run")


# =============================================================================
# Records
# =============================================================================


def _at(year: int, month: int, day: int) -> datetime:
    return datetime(year, month, day, 22, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_record() -> Callable[..., Any]:
    """Factory for ExperienceRecord with sensible defaults."""
    from experience_discovery.models.records import ExperienceRecord

    def factory(**overrides: Any) -> ExperienceRecord:
        values: dict[str, Any] = {
            "id": f"rec-{uuid.uuid4().hex[:8]}",
            "identity_id": "alice",
            "title": "Untitled experience",
            "story_text": "",
            "category": "ufo-uap",
        }
        values.update(overrides)
        return ExperienceRecord(**values)

    return factory


ACME_RECORDS = [
    {
        "id": "r1",
        "identity_id": "alice",
        "title": "Triangle over Sacramento",
        "story_text": "A silent black triangle with three red lights hovered over the river.",
        "category": "ufo-uap",
        "tags": ["triangle", "lights"],
        "emotions": ["awe"],
        "location_text": "Sacramento, California",
        "latitude": 38.58,
        "longitude": -121.49,
        "occurred_at": _at(2024, 1, 10),
        "time_of_day": "night",
        "attributes": {"shape": "triangle", "light": "red"},
    },
    {
        "id": "r2",
        "identity_id": "alice",
        "title": "Lights near San Diego",
        "story_text": "Red lights in a triangle formation moved slowly over the bay.",
        "category": "ufo-uap",
        "tags": ["lights"],
        "emotions": ["fear"],
        "location_text": "San Diego, California",
        "latitude": 32.72,
        "longitude": -117.16,
        "occurred_at": _at(2024, 2, 14),
        "time_of_day": "night",
        "attributes": {"shape": "triangle", "light": "red"},
    },
    {
        "id": "r3",
        "identity_id": "bob",
        "title": "Orb above Phoenix",
        "story_text": "A white orb pulsed above the desert and vanished.",
        "category": "ufo-uap",
        "tags": ["orb"],
        "location_text": "Phoenix, Arizona",
        "latitude": 33.45,
        "longitude": -112.07,
        "occurred_at": _at(2024, 3, 5),
        "time_of_day": "evening",
        "attributes": {"shape": "orb", "light": "white"},
    },
    {
        "id": "r4",
        "identity_id": "bob",
        "title": "Flying over the ocean",
        "story_text": "I dreamt I was flying over dark water.",
        "category": "dreams",
        "tags": ["flying", "water"],
        "location_text": "Berlin, Germany",
        "latitude": 52.52,
        "longitude": 13.40,
        "occurred_at": _at(2024, 1, 20),
        "time_of_day": "night",
        "attributes": {"dream_symbol": "water"},
    },
    {
        "id": "r5",
        "identity_id": "alice",
        "title": "Endless falling",
        "story_text": "A recurring dream of falling down a staircase.",
        "category": "dreams",
        "tags": ["falling"],
        "occurred_at": _at(2024, 2, 2),
        "attributes": {"dream_symbol": "falling"},
    },
    {
        "id": "r6",
        "identity_id": "bob",
        "title": "Ayahuasca ceremony",
        "story_text": "Geometric visions and a feeling of connection during the ceremony.",
        "category": "psychedelics",
        "tags": ["visions"],
        "location_text": "Iquitos, Peru",
        "latitude": -3.75,
        "longitude": -73.25,
        "occurred_at": _at(2024, 3, 15),
        "attributes": {"substance": "ayahuasca"},
    },
]

GLOBEX_RECORDS = [
    {
        "id": "g1",
        "identity_id": "carol",
        "title": "Disc over Fresno",
        "story_text": "A metallic disc reflected the afternoon sun above the highway.",
        "category": "ufo-uap",
        "location_text": "Fresno, California",
        "latitude": 36.74,
        "longitude": -119.78,
        "occurred_at": _at(2023, 7, 4),
        "time_of_day": "afternoon",
        "attributes": {"shape": "disc"},
    },
]


@pytest.fixture
def database(make_record):
    """
    Two tenants: acme (alice, bob) and globex (carol).

    Returns:
        InMemoryExperienceDatabase
    """
    from experience_discovery.models.records import RecordConnection
    from experience_discovery.store.memory import InMemoryExperienceDatabase

    db = InMemoryExperienceDatabase()
    db.add_member("alice", tenant_id="acme")
    db.add_member("bob", tenant_id="acme")
    db.add_member("carol", tenant_id="globex")
    db.add_records("acme", [make_record(**values) for values in ACME_RECORDS])
    db.add_records("globex", [make_record(**values) for values in GLOBEX_RECORDS])
    db.add_connections("acme", [RecordConnection(source_id="r1", target_id="r2", weight=0.9, kind="similar")])
    return db


@pytest.fixture
def context(database):
    """RequestContext for alice (tenant acme)."""
    from experience_discovery.core.context import create_context

    return create_context(database.session("alice"), "alice", locale="en", trace_id="trace-alice")


@pytest.fixture
def globex_context(database):
    """RequestContext for carol (tenant globex)."""
    from experience_discovery.core.context import create_context

    return create_context(database.session("carol"), "carol", locale="en", trace_id="trace-carol")


@pytest.fixture
def registry():
    from experience_discovery.tools.registry import build_tool_registry

    return build_tool_registry()


@pytest.fixture
def test_settings():
    """Settings with safe defaults: keyword engine, in-memory store."""
    from experience_discovery.core.config import Settings

    return Settings(
        service_name="experience-discovery-test",
        environment="development",
        store_backend="memory",
        reasoning_engine="keyword",
        tool_budget=12,
        tool_timeout_seconds=5.0,
    )
