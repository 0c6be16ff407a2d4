"""
Unit tests for experience_discovery/core/exceptions.py - the error taxonomy.
"""

import pytest


class TestDiscoveryError:

    def test_base_exception_carries_message_and_code(self):
        from experience_discovery.core.exceptions import DiscoveryError, ErrorCode

        error = DiscoveryError("boom")

        assert str(error) == "boom"
        assert error.message == "boom"
        assert error.error_code == ErrorCode.DISCOVERY_ERROR
        assert error.kind == "DiscoveryError"

    def test_extra_attributes_are_set(self):
        from experience_discovery.core.exceptions import DiscoveryError

        error = DiscoveryError("boom", call_id="call_1")

        assert error.call_id == "call_1"


class TestTaxonomy:

    @pytest.mark.parametrize(
        "factory, kind, category",
        [
            (lambda e: e.InvalidContext("x"), "InvalidContext", "context"),
            (lambda e: e.MissingContextField("store"), "MissingContextField", "context"),
            (lambda e: e.InvalidToolArguments("x", tool_name="t"), "InvalidToolArguments", "tool_input"),
            (lambda e: e.UnknownTool("x", tool_name="t"), "UnknownTool", "tool_input"),
            (lambda e: e.UnresolvedReference("x", reference="a.b"), "UnresolvedReference", "tool_input"),
            (lambda e: e.InsufficientData("x"), "InsufficientData", "tool_domain"),
            (lambda e: e.SeedNotFound("r1"), "SeedNotFound", "tool_domain"),
            (lambda e: e.InvalidGeometry("x"), "InvalidGeometry", "tool_domain"),
            (lambda e: e.EmbeddingUnavailable("x"), "EmbeddingUnavailable", "tool_domain"),
            (lambda e: e.ComparisonIncomplete(["dreams"]), "ComparisonIncomplete", "tool_domain"),
            (lambda e: e.UnsupportedFormat("xml"), "UnsupportedFormat", "tool_domain"),
            (lambda e: e.ToolTimeout("t", 1.0), "ToolTimeout", "execution"),
            (lambda e: e.StoreUnavailable("x"), "StoreUnavailable", "execution"),
            (lambda e: e.ToolExecutionFailed("x"), "ToolExecutionFailed", "execution"),
            (lambda e: e.ToolBudgetExceeded(3, ["a"]), "ToolBudgetExceeded", "orchestration"),
            (lambda e: e.NoSpecialistMatched("x"), "NoSpecialistMatched", "orchestration"),
            (lambda e: e.NoToolSelected("x"), "NoToolSelected", "orchestration"),
            (lambda e: e.RequestTimeout("x"), "RequestTimeout", "orchestration"),
            (lambda e: e.ReasoningUnavailable("x"), "ReasoningUnavailable", "orchestration"),
        ],
    )
    def test_kind_and_category(self, factory, kind, category):
        from experience_discovery.core import exceptions

        error = factory(exceptions)

        assert error.kind == kind
        assert error.category.value == category

    def test_transient_flags(self):
        from experience_discovery.core.exceptions import (
            InsufficientData,
            StoreUnavailable,
            ToolExecutionFailed,
            ToolTimeout,
        )

        assert ToolTimeout("t", 1.0).transient
        assert StoreUnavailable("x").transient
        assert not ToolExecutionFailed("x").transient
        assert not InsufficientData("x").transient

    def test_budget_message_names_skipped_calls(self):
        from experience_discovery.core.exceptions import ToolBudgetExceeded

        error = ToolBudgetExceeded(2, ["generateMap", "generateTimeline"])

        assert "generateMap, generateTimeline" in error.message
        assert error.skipped == ["generateMap", "generateTimeline"]

    def test_comparison_incomplete_names_empty_categories(self):
        from experience_discovery.core.exceptions import ComparisonIncomplete

        error = ComparisonIncomplete(["nde-obe"])

        assert error.empty_categories == ["nde-obe"]
        assert "nde-obe" in error.message
