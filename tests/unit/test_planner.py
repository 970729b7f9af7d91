"""
Unit tests for attribute sets and the strategy planner.
"""

import pytest

from warden.resolution.attributes import AttributeSets
from warden.resolution.planner import (
    MappingInput,
    SearchQuery,
    Strategy,
    StrategyHint,
    StrategyPlanner,
    resolve_hint,
)

from conftest import FakeSchemaProbe


class TestAttributeSets:
    """Tests for AttributeSets."""

    def test_thorough_union(self):
        """Test that thorough is freetext, email and number without duplicates."""
        sets = AttributeSets()
        thorough = sets.thorough
        assert thorough[: len(sets.freetext)] == sets.freetext
        assert "employeeID" in thorough
        assert len(thorough) == len({a.lower() for a in thorough})

    def test_pruned(self):
        """Test pruning against an allow-list."""
        sets = AttributeSets().pruned({"sAMAccountName", "mail", "displayName", "sn"})
        assert sets.basic == ("sAMAccountName", "mail", "displayName")
        assert sets.number == ()
        assert "employeeID" in sets.removed
        assert "sn" in sets.name

    def test_from_schema_probes_once(self):
        """Test building sets from a probe."""
        probe = FakeSchemaProbe({"sAMAccountName", "mail"})
        sets = AttributeSets.from_schema(probe)
        assert probe.calls == 1
        assert sets.freetext == ("sAMAccountName", "mail")

    def test_from_schema_without_probe(self):
        """Test that no probe means unpruned sets."""
        assert AttributeSets.from_schema(None) == AttributeSets()

    def test_from_schema_probe_failure(self):
        """Test that a failing probe falls back to unpruned sets."""

        class BrokenProbe:
            def allowed_attributes(self, object_class):
                raise RuntimeError("schema partition unavailable")

        assert AttributeSets.from_schema(BrokenProbe()) == AttributeSets()


class TestStrategyPlanner:
    """Tests for StrategyPlanner."""

    @pytest.fixture
    def planner(self):
        return StrategyPlanner(max_depth=5)

    @pytest.mark.parametrize(
        "text,hint",
        [
            ("100234", StrategyHint.NUMBER),
            ("jsmith@corp.local", StrategyHint.EMAIL),
            ("John Smith", StrategyHint.FREETEXT),
        ],
    )
    def test_classify(self, planner, text, hint):
        """Test hint inference from the text shape."""
        assert planner.classify(text) == hint

    def test_plan_default(self, planner):
        """Test the strategy order for a plain name."""
        plan = planner.plan(SearchQuery("John Smith"), AttributeSets())
        assert plan.strategies == (Strategy.BASIC, Strategy.BROAD, Strategy.NAME_PERMUTATION)
        assert plan.attributes == AttributeSets().freetext

    def test_plan_thorough_skips_basic(self, planner):
        """Test that thorough queries go straight to the broad search."""
        plan = planner.plan(SearchQuery("John Smith", thorough=True), AttributeSets())
        assert plan.strategies[0] == Strategy.BROAD

    def test_plan_email(self, planner):
        """Test that e-mail text gets decomposition."""
        plan = planner.plan(SearchQuery("john.smith@corp.local"), AttributeSets())
        assert plan.hint == StrategyHint.EMAIL
        assert Strategy.EMAIL_DECOMPOSITION in plan.strategies

    def test_plan_substrings_opt_in(self, planner):
        """Test that substrings are planned only when allowed."""
        sets = AttributeSets()
        assert Strategy.SUBSTRING not in planner.plan(SearchQuery("a b c d"), sets).strategies
        assert Strategy.SUBSTRING in planner.plan(SearchQuery("a b c d", allow_substrings=True), sets).strategies

    def test_plan_depth_cap(self, planner):
        """Test that no recursive strategy is planned at the depth limit."""
        query = SearchQuery("John Smith", recursion_depth=5)
        plan = planner.plan(query, AttributeSets())
        assert plan.strategies == (Strategy.BASIC, Strategy.BROAD)

    def test_plan_non_recursive(self, planner):
        plan = planner.plan(SearchQuery("John Smith", recursive=False), AttributeSets())
        assert Strategy.NAME_PERMUTATION not in plan.strategies

    def test_structured_input_prefers_email(self, planner):
        """Test that the most specific searchable property wins."""
        source = MappingInput({"Title": "Engineer", "Mail": "jsmith@corp.local", "EmployeeID": "100234"})
        plan = planner.plan(SearchQuery(source), AttributeSets())
        assert plan.text == "jsmith@corp.local"
        assert plan.hint == StrategyHint.EMAIL

    def test_structured_input_fallback(self, planner):
        """Test string fallback when nothing is searchable."""
        plan = planner.plan(SearchQuery(MappingInput({"shoe_size": "11"})), AttributeSets())
        assert plan.text == "11"
        assert plan.hint == StrategyHint.NUMBER

    def test_subquery_increments_depth(self):
        query = SearchQuery("John Smith", thorough=True, recursion_depth=2)
        sub = query.subquery("Smith", StrategyHint.NAME, recursive=False)
        assert sub.recursion_depth == 3
        assert sub.thorough is True
        assert sub.recursive is False

    def test_resolve_hint(self):
        assert resolve_hint(None) == StrategyHint.AUTO
        assert resolve_hint("Email") == StrategyHint.EMAIL
        with pytest.raises(ValueError):
            resolve_hint("phonebook")
