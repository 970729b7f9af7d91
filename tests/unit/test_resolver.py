"""
Unit tests for the multi-strategy Resolver.
"""

import logging

import pytest

from warden.resolution.attributes import AttributeSets
from warden.resolution.planner import MappingInput, SearchQuery, StrategyHint
from warden.resolution.resolver import Resolver

from conftest import JOHN_DN, MARY_DN, FakeDirectory, FakeSchemaProbe, make_account


class TestEscalation:
    """Tests for strategy escalation."""

    def test_basic_hit_stops_escalation(self, directory):
        """Test that a basic match issues exactly one query."""
        resolver = Resolver(directory)
        results = resolver.resolve(SearchQuery("jsmith"))

        assert [c.key for c in results] == [JOHN_DN]
        assert results[0].strategy == "basic"
        assert len(directory.search_calls) == 1
        assert directory.search_calls[0][0] == list(AttributeSets().basic)

    def test_broad_after_basic_miss(self, directory):
        """Test escalation to the broad attribute set."""
        results = Resolver(directory).resolve(SearchQuery("100567"))

        assert [c.key for c in results] == [MARY_DN]
        assert results[0].strategy == "broad"
        assert len(directory.search_calls) == 2

    def test_thorough_runs_every_strategy(self, directory):
        """Test that thorough queries keep going after a hit."""
        resolver = Resolver(directory)
        resolver.resolve(SearchQuery("John Smith", thorough=True))

        texts = directory.search_texts
        assert texts[0] == "John Smith"
        assert "Smith" in texts

    def test_no_match(self, directory):
        assert Resolver(directory).resolve(SearchQuery("Nobody Here")) == []

    def test_blank_text(self, directory):
        """Test that empty text never reaches the directory."""
        assert Resolver(directory).resolve(SearchQuery("   ")) == []
        assert directory.search_calls == []


class TestNamePermutations:
    """Tests for the name-permutation strategy."""

    def test_stops_at_first_hit(self, directory):
        """Test that later permutations are not searched after a match."""
        results = Resolver(directory).resolve(SearchQuery("Smith, John"))

        assert [c.key for c in results] == [JOHN_DN]
        assert results[0].strategy == "name-permutation"
        texts = directory.search_texts
        assert texts[-1] == "John Smith"
        assert "Smith" not in texts

    def test_sub_searches_do_not_recurse(self, directory):
        """Test that non-thorough permutations only run basic and broad."""
        Resolver(directory).resolve(SearchQuery("Smith, John"))
        # Input twice, then at most two queries per permutation tried
        assert len(directory.search_calls) <= 2 + 2 * 3

    def test_thorough_two_part_name_searches_each_text_once(self):
        """Test that permutations of permutations are not searched again."""
        empty = FakeDirectory()
        Resolver(empty).resolve(SearchQuery("John Smith", thorough=True))

        # One broad query for the input, one per distinct name ordering
        assert sorted(t.lower() for t in empty.search_texts) == sorted([
            "john smith",
            "john smith",
            "smith, john",
            "john, smith",
            "smith john",
            "smith",
            "john",
        ])
        assert len(empty.search_calls) == 7

    def test_thorough_three_part_name_searches_each_text_once(self):
        empty = FakeDirectory()
        Resolver(empty).resolve(SearchQuery("John A Smith", thorough=True))

        calls = [(tuple(attributes), text.lower()) for attributes, text in empty.search_calls]
        distinct_texts = {text for _, text in calls}
        assert len(calls) == len(set(calls))
        # The input is searched as free text and again as a name
        assert len(calls) <= len(distinct_texts) + 1
        assert len(calls) < 100

    def test_idempotent(self, directory):
        """Test that repeating a query returns the same keys."""
        resolver = Resolver(directory)
        first = [c.key for c in resolver.resolve(SearchQuery("Smith, John"))]
        second = [c.key for c in resolver.resolve(SearchQuery("Smith, John"))]
        assert first == second


class TestEmailDecomposition:
    """Tests for the e-mail decomposition strategy."""

    def test_local_part_searched_as_name(self, directory):
        """Test that an unknown address resolves through its local part."""
        results = Resolver(directory).resolve(SearchQuery("john.smith@partner.example"))

        assert [c.key for c in results] == [JOHN_DN]
        assert results[0].strategy == "email-decomposition"
        assert "john smith" in directory.search_texts

    def test_known_address_needs_no_decomposition(self, directory):
        results = Resolver(directory).resolve(SearchQuery("mary.jones@corp.local"))
        assert results[0].strategy == "basic"


class TestSubstrings:
    """Tests for the opt-in substring strategy."""

    def test_off_by_default(self, directory):
        assert Resolver(directory).resolve(SearchQuery("Smith Engineering Dept")) == []

    def test_token_searches(self, directory, caplog):
        """Test that allowed substrings find partial matches and warn."""
        resolver = Resolver(directory)
        with caplog.at_level(logging.WARNING):
            results = resolver.resolve(SearchQuery("Smith Engineering Dept", allow_substrings=True))

        assert [c.key for c in results] == [JOHN_DN]
        assert results[0].strategy == "substring"
        assert any("[substring]" in record.getMessage() for record in caplog.records)


class TestResultShaping:
    """Tests for de-duplication and trimming."""

    def test_helper_attributes_trimmed(self, directory):
        """Test that only requested or matching attributes survive."""
        results = Resolver(directory).resolve(SearchQuery("Engineer"), ["sAMAccountName"])

        assert sorted(c.key for c in results) == sorted([JOHN_DN, MARY_DN])
        for candidate in results:
            assert set(candidate.attributes) == {"sAMAccountName", "title"}

    def test_untrimmed_without_properties(self, directory):
        results = Resolver(directory).resolve(SearchQuery("jsmith"))
        assert results[0].get("displayName") == "John Smith"

    def test_deduplicated_by_key(self, directory):
        """Test that two accounts with the same display name stay apart."""
        directory.add(make_account("CN=John Smith,OU=Contractors,DC=corp,DC=local", "jsmith2", "John", "Smith"))
        results = Resolver(directory).resolve(SearchQuery("John Smith", thorough=True))
        assert len(results) == 2
        assert len({c.key for c in results}) == 2

    def test_search_failure_is_empty(self, directory):
        """Test that a failing query is treated as no match."""

        def broken(*args, **kwargs):
            raise RuntimeError("server down")

        directory.search = broken
        assert Resolver(directory).resolve(SearchQuery("jsmith")) == []


class TestSchemaProbe:
    """Tests for schema probing."""

    def test_probed_once(self, directory):
        """Test that the probe runs once across calls."""
        allowed = set(AttributeSets().all_attributes()) - {"employeeID"}
        probe = FakeSchemaProbe(allowed)
        resolver = Resolver(directory, probe)

        resolver.resolve(SearchQuery("100234"))
        resolver.resolve(SearchQuery("Smith, John"))

        assert probe.calls == 1
        assert all("employeeID" not in attributes for attributes, _ in directory.search_calls)

    def test_structured_input(self, directory):
        """Test resolving a record by its most specific property."""
        source = MappingInput({"title": "Engineer", "mail": "john.smith@corp.local"})
        results = Resolver(directory).resolve(SearchQuery(source))
        assert [c.key for c in results] == [JOHN_DN]

    @pytest.mark.parametrize("hint", [StrategyHint.NAME, StrategyHint.THOROUGH])
    def test_explicit_hint(self, directory, hint):
        results = Resolver(directory).resolve(SearchQuery("Mary", hint=hint))
        assert [c.key for c in results] == [MARY_DN]
