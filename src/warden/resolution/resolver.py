"""
Resolver - Turn a loose identifier into directory accounts.

Strategies are tried cheapest first and escalation stops as soon as one
of them finds anything (unless the query is thorough):

  1. basic               one OR query on the highest-confidence attributes
  2. broad               one OR query on every attribute the planner chose
  3. name-permutation    re-search orderings of a 1-3 part name
  4. email-decomposition re-search the name hidden in an e-mail local part
  5. substring           re-search every token (opt-in, noisy)

Steps 3-5 recurse into resolve() one level deeper; only the outermost
call probes the schema and trims helper attributes off the results.
Every (text, hint) pair is searched at most once per outermost call.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from warden.directory.base import Candidate, DirectoryClient, SchemaProbe
from warden.resolution.attributes import AttributeSets
from warden.resolution.names import email_name_tokens, name_permutations, word_tokens
from warden.resolution.planner import (
    SearchPlan,
    SearchQuery,
    Strategy,
    StrategyHint,
    StrategyPlanner,
)

logger = logging.getLogger(__name__)

Searched = Set[Tuple[str, StrategyHint]]


def _merge_names(*groups: Iterable[str]) -> List[str]:
    seen = set()
    merged = []
    for group in groups:
        for name in group:
            if name.lower() not in seen:
                seen.add(name.lower())
                merged.append(name)
    return merged


def _contains(value: Any, needle: str) -> bool:
    if value is None:
        return False
    if isinstance(value, (list, tuple, set)):
        return any(_contains(v, needle) for v in value)
    return needle in str(value).lower()


def _tag(candidates: Iterable[Candidate], strategy: Strategy) -> List[Candidate]:
    return [replace(c, strategy=strategy.value) for c in candidates]


class Resolver:
    """
    Multi-strategy fuzzy account search.

    Example:
        >>> resolver = Resolver(directory, schema_probe)
        >>> resolver.resolve(SearchQuery("Smith, John"), ["sAMAccountName", "displayName"])
        [Candidate(key='CN=John Smith,OU=Staff,DC=corp,DC=local', ...)]
    """

    def __init__(
        self,
        directory: DirectoryClient,
        schema_probe: Optional[SchemaProbe] = None,
        attribute_sets: Optional[AttributeSets] = None,
        max_depth: int = 5,
        object_class: str = "user",
        max_workers: int = 4,
    ):
        """
        Initialize the resolver.

        Args:
            directory: Directory to search
            schema_probe: Used once, by the first outermost resolve(), to prune
                the attribute sets; ignored when attribute_sets is given
            attribute_sets: Pre-computed attribute sets
            max_depth: Hard cap on recursion depth
            object_class: Object class whose schema is probed
            max_workers: Parallel substring sub-searches
        """
        self.directory = directory
        self.schema_probe = schema_probe
        self.object_class = object_class
        self.max_workers = max_workers
        self.planner = StrategyPlanner(max_depth=max_depth)
        self._attribute_sets = attribute_sets

    @property
    def attribute_sets(self) -> AttributeSets:
        if self._attribute_sets is None:
            self._attribute_sets = AttributeSets.from_schema(self.schema_probe, self.object_class)
        return self._attribute_sets

    def resolve(
        self,
        query: SearchQuery,
        properties: Optional[List[str]] = None,
        *,
        is_outermost: bool = True,
        searched: Optional[Searched] = None,
    ) -> List[Candidate]:
        """
        Resolve a query to a de-duplicated list of candidates.

        Args:
            query: What to look for
            properties: Attributes to return. Attributes fetched only to
                support matching are dropped from the outermost result unless
                their value contains the search text. None returns everything
                that was fetched.
            is_outermost: False for recursive sub-searches; they skip the
                schema probe and result trimming
            searched: (text, hint) pairs already run during this resolution;
                owned by the outermost call and shared with every sub-search

        Returns:
            Candidates keyed (and de-duplicated) by distinguished name
        """
        if is_outermost:
            sets = self.attribute_sets
            searched = set()
        else:
            sets = self._attribute_sets or AttributeSets()
            if searched is None:
                searched = set()

        plan = self.planner.plan(query, sets)
        if not plan.text:
            return []

        seen_key = (plan.text.lower(), plan.hint)
        if seen_key in searched:
            logger.debug(f"Already searched '{plan.text}' as {plan.hint.value}")
            return []
        searched.add(seen_key)

        fetch = _merge_names(properties or [], sets.basic, plan.attributes)
        logger.debug(
            f"Resolving '{plan.text}' (depth={query.recursion_depth}, hint={plan.hint.value}, "
            f"strategies={[s.value for s in plan.strategies]})"
        )

        found: Dict[str, Candidate] = {}
        for strategy in plan.strategies:
            if found and not query.thorough:
                break
            for candidate in self._run(strategy, plan, query, fetch, sets, searched):
                found[candidate.key] = candidate

        results = list(found.values())

        if is_outermost:
            logger.info(f"Resolved '{plan.text}' to {len(results)} candidate(s)")
            if properties is not None:
                results = [self._trim(c, properties, plan.text) for c in results]
        return results

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def _run(
        self,
        strategy: Strategy,
        plan: SearchPlan,
        query: SearchQuery,
        fetch: List[str],
        sets: AttributeSets,
        searched: Searched,
    ) -> List[Candidate]:
        if strategy == Strategy.BASIC:
            return self._query(plan.text, list(sets.basic), fetch, strategy)
        if strategy == Strategy.BROAD:
            return self._query(plan.text, list(plan.attributes), fetch, strategy)
        if strategy == Strategy.NAME_PERMUTATION:
            return self._name_permutations(plan, query, fetch, searched)
        if strategy == Strategy.EMAIL_DECOMPOSITION:
            return self._email_decomposition(plan, query, fetch, searched)
        if strategy == Strategy.SUBSTRING:
            return self._substrings(plan, query, fetch, searched)
        raise ValueError(f"Unknown strategy: {strategy}")

    def _query(
        self,
        text: str,
        attributes: List[str],
        fetch: List[str],
        strategy: Strategy,
    ) -> List[Candidate]:
        if not attributes:
            return []
        try:
            hits = self.directory.search(attributes, text, fetch)
        except Exception as e:
            logger.warning(f"{strategy.value} search for '{text}' failed: {e}")
            return []
        if hits:
            logger.debug(f"{strategy.value} search for '{text}' matched {len(hits)}")
        return _tag(hits, strategy)

    def _name_permutations(
        self,
        plan: SearchPlan,
        query: SearchQuery,
        fetch: List[str],
        searched: Searched,
    ) -> List[Candidate]:
        permutations = name_permutations(plan.text)
        if not permutations:
            return []

        # Sub-searches only recurse further when this search is thorough
        nested = query.recursive and query.thorough

        found: Dict[str, Candidate] = {}
        for permutation in permutations:
            sub = query.subquery(permutation, StrategyHint.NAME, recursive=nested)
            hits = self.resolve(sub, fetch, is_outermost=False, searched=searched)
            for candidate in hits:
                found[candidate.key] = candidate
            if hits and not query.thorough:
                logger.info(
                    f"Name permutation '{permutation}' matched {len(hits)}; "
                    f"skipping remaining permutations of '{plan.text}'"
                )
                break

        return _tag(found.values(), Strategy.NAME_PERMUTATION)

    def _email_decomposition(
        self,
        plan: SearchPlan,
        query: SearchQuery,
        fetch: List[str],
        searched: Searched,
    ) -> List[Candidate]:
        tokens = email_name_tokens(plan.text, query.min_token_length)
        joined = " ".join(tokens)
        if not joined or joined.lower() == plan.text.lower():
            return []

        # The joined tokens carry no '@', so this branch cannot re-enter itself
        logger.debug(f"Searching e-mail local part of '{plan.text}' as name '{joined}'")
        sub = query.subquery(joined, StrategyHint.NAME, recursive=query.recursive)
        hits = self.resolve(sub, fetch, is_outermost=False, searched=searched)
        return _tag(hits, Strategy.EMAIL_DECOMPOSITION)

    def _substrings(
        self,
        plan: SearchPlan,
        query: SearchQuery,
        fetch: List[str],
        searched: Searched,
    ) -> List[Candidate]:
        tokens = [t for t in word_tokens(plan.text, query.min_token_length) if t.lower() != plan.text.lower()]
        if not tokens:
            return []

        logger.warning(
            f"[substring] Exploding '{plan.text}' into {len(tokens)} token searches; "
            f"results carry a high false-positive rate"
        )

        def search_token(token: str) -> List[Candidate]:
            sub = query.subquery(token, plan.hint, recursive=False)
            return self.resolve(sub, fetch, is_outermost=False, searched=searched)

        # Each branch returns its own list; only this call writes the merged map
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(tokens))) as pool:
            branches = list(pool.map(search_token, tokens))

        found: Dict[str, Candidate] = {}
        for token, hits in zip(tokens, branches):
            if hits:
                logger.warning(f"[substring] token '{token}' matched {len(hits)} candidate(s)")
            for candidate in hits:
                found[candidate.key] = candidate
        return _tag(found.values(), Strategy.SUBSTRING)

    # ------------------------------------------------------------------
    # Result shaping
    # ------------------------------------------------------------------

    @staticmethod
    def _trim(candidate: Candidate, requested: List[str], text: str) -> Candidate:
        """Drop helper attributes whose values do not contain the search text."""
        keep = {name.lower() for name in requested}
        needle = text.lower()
        drop = [
            name
            for name, value in candidate.attributes.items()
            if name.lower() not in keep and not _contains(value, needle)
        ]
        return candidate.without(drop) if drop else candidate
