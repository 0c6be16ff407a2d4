"""
Integration test fixtures.

Integration tests drive whole requests through the HTTP app or the
orchestrator with the keyword engine. On top of the shared two-tenant
database they add a third tenant, initech, whose only member (dave) has
dream reports and nothing else.
"""

import pytest
from fastapi.testclient import TestClient


INITECH_RECORDS = [
    {
        "id": "i1",
        "identity_id": "dave",
        "title": "Teeth falling out",
        "story_text": "The classic dream where my teeth crumble during a meeting.",
        "category": "dreams",
        "attributes": {"dream_symbol": "teeth"},
    },
    {
        "id": "i2",
        "identity_id": "dave",
        "title": "Late for the exam",
        "story_text": "I could not find the exam room and the clock kept jumping.",
        "category": "dreams",
        "attributes": {"dream_symbol": "exam"},
    },
]


@pytest.fixture
def initech_database(database, make_record):
    database.add_member("dave", tenant_id="initech")
    database.add_records("initech", [make_record(**values) for values in INITECH_RECORDS])
    return database


@pytest.fixture
def dave_context(initech_database):
    from experience_discovery.core.context import create_context

    return create_context(initech_database.session("dave"), "dave", trace_id="trace-dave")


@pytest.fixture
def orchestrator(registry):
    from experience_discovery.reasoning.keyword import KeywordReasoningEngine
    from experience_discovery.services.orchestrator import Orchestrator

    return Orchestrator(registry, KeywordReasoningEngine())


@pytest.fixture
def client(test_settings, initech_database):
    from experience_discovery.main import create_app
    from experience_discovery.store.factory import InMemoryStoreFactory

    app = create_app(test_settings, InMemoryStoreFactory(initech_database))
    with TestClient(app) as test_client:
        yield test_client
