"""
Unit tests for experience_discovery/store/memory.py - InMemoryExperienceDatabase.

The in-memory store is the FakeRepository for every tool test, so its
tenant scoping and filtering are verified here directly.
"""

import pytest


class TestTenantScoping:

    @pytest.mark.asyncio
    async def test_search_sees_only_own_tenant(self, database):
        from experience_discovery.models.records import RecordQuery

        acme = await database.session("alice").search(RecordQuery(categories=["ufo-uap"]))
        globex = await database.session("carol").search(RecordQuery(categories=["ufo-uap"]))

        assert {r.id for r in acme.records} == {"r1", "r2", "r3"}
        assert [r.id for r in globex.records] == ["g1"]

    @pytest.mark.asyncio
    async def test_members_of_one_tenant_share_records(self, database):
        from experience_discovery.models.records import RecordQuery

        alice = await database.session("alice").search(RecordQuery())
        bob = await database.session("bob").search(RecordQuery())

        assert alice.total == bob.total == 6

    @pytest.mark.asyncio
    async def test_get_does_not_cross_tenants(self, database):
        assert await database.session("carol").get("r1") is None
        assert (await database.session("alice").get("r1")).title == "Triangle over Sacramento"

    @pytest.mark.asyncio
    async def test_query_log_records_tenant(self, database):
        from experience_discovery.models.records import RecordQuery

        await database.session("carol").search(RecordQuery())

        assert [entry.operation for entry in database.queries_for("globex")] == ["search"]
        assert database.queries_for("acme") == []

    def test_unregistered_identity_is_its_own_tenant(self, database):
        assert database.tenant_of("mallory") == "mallory"


class TestFiltering:

    @pytest.mark.asyncio
    async def test_location_text_is_case_insensitive_partial(self, database):
        from experience_discovery.models.records import RecordQuery

        page = await database.session("alice").search(RecordQuery(location_text="california"))

        assert {r.id for r in page.records} == {"r1", "r2"}

    @pytest.mark.asyncio
    async def test_attribute_filter(self, database):
        from experience_discovery.models.records import AttributeFilter, RecordQuery

        page = await database.session("alice").search(
            RecordQuery(attribute_filters=[AttributeFilter(key="shape", value="orb")])
        )

        assert [r.id for r in page.records] == ["r3"]

    @pytest.mark.asyncio
    async def test_newest_first_with_total_before_limit(self, database):
        from experience_discovery.models.records import RecordQuery

        page = await database.session("alice").search(RecordQuery(categories=["ufo-uap"], limit=2))

        assert [r.id for r in page.records] == ["r3", "r2"]
        assert page.total == 3

    @pytest.mark.asyncio
    async def test_radius_excludes_unlocated_records(self, database):
        from experience_discovery.models.records import GeoRadius, RecordQuery

        page = await database.session("alice").search(
            RecordQuery(radius=GeoRadius(lat=38.5, lng=-121.5, radius_km=50))
        )

        assert [r.id for r in page.records] == ["r1"]


class TestSearchIndexes:

    @pytest.mark.asyncio
    async def test_full_text_ranks_matching_records(self, database):
        results = await database.session("alice").full_text("triangle lights", "en")

        assert results
        assert results[0].record.id in {"r1", "r2"}
        assert all(0 < s.score <= 1 for s in results)

    @pytest.mark.asyncio
    async def test_full_text_stop_words_only_returns_nothing(self, database):
        assert await database.session("alice").full_text("the and of", "en") == []

    @pytest.mark.asyncio
    async def test_nearest_orders_by_similarity(self, database):
        store = database.session("alice")
        vector = await store.embed(
            "Triangle over Sacramento A silent black triangle with three red lights hovered over the river."
        )

        results = await store.nearest(vector, min_similarity=0.0, limit=3)

        assert results[0].record.id == "r1"
        assert results[0].score == pytest.approx(1.0)
        assert [s.score for s in results] == sorted((s.score for s in results), reverse=True)

    @pytest.mark.asyncio
    async def test_connections_are_tenant_scoped(self, database):
        assert len(await database.session("alice").connections(["r1"])) == 1
        assert await database.session("carol").connections(["r1"]) == []


class TestAvailability:

    @pytest.mark.asyncio
    async def test_unavailable_store_raises(self, database):
        from experience_discovery.core.exceptions import StoreUnavailable
        from experience_discovery.models.records import RecordQuery

        database.unavailable = True

        with pytest.raises(StoreUnavailable):
            await database.session("alice").search(RecordQuery())
