"""
Strategy Planner - Decide what to search and how.

Given a query and the schema-pruned attribute sets, the planner picks:
1. The effective search text (inferred from structured input if needed)
2. The ordered list of attributes to search
3. Which of the escalating strategies are eligible
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, List, Mapping, Optional, Protocol, Tuple, Union

from warden.resolution.attributes import AttributeSets
from warden.resolution.names import name_parts, split_email

logger = logging.getLogger(__name__)


class StrategyHint(str, Enum):
    """Caller hint about what kind of identifier the text is."""
    AUTO = "auto"
    THOROUGH = "thorough"
    EMAIL = "email"
    NUMBER = "number"
    NAME = "name"
    FREETEXT = "freetext"


class Strategy(str, Enum):
    """Search strategies, cheapest first."""
    BASIC = "basic"
    BROAD = "broad"
    NAME_PERMUTATION = "name-permutation"
    EMAIL_DECOMPOSITION = "email-decomposition"
    SUBSTRING = "substring"


_SET_HINTS = {
    "Email": StrategyHint.EMAIL,
    "Number": StrategyHint.NUMBER,
    "Name": StrategyHint.NAME,
    "Freetext": StrategyHint.FREETEXT,
}


class NamedAttributes(Protocol):
    """Any structured input that can list its (name, value) pairs."""

    def named_attributes(self) -> List[Tuple[str, Any]]:
        ...


class MappingInput:
    """NamedAttributes adapter over a dict-like record (e.g. a CSV row)."""

    def __init__(self, data: Mapping[str, Any]):
        self.data = data

    def named_attributes(self) -> List[Tuple[str, Any]]:
        return list(self.data.items())

    def __str__(self) -> str:
        return " ".join(str(v) for v in self.data.values() if v not in (None, ""))


@dataclass(frozen=True)
class SearchQuery:
    """
    One resolution attempt.

    recursion_depth is threaded through every sub-search; recursive turns
    the recursive strategies (permutations, e-mail, substrings) on or off.
    """
    text: Union[str, NamedAttributes]
    hint: StrategyHint = StrategyHint.AUTO
    thorough: bool = False
    allow_substrings: bool = False
    min_token_length: int = 3
    recursion_depth: int = 0
    recursive: bool = True

    def subquery(
        self,
        text: str,
        hint: StrategyHint,
        recursive: bool,
        allow_substrings: bool = False,
    ) -> "SearchQuery":
        """Query for a recursive sub-search, one level deeper."""
        return replace(
            self,
            text=text,
            hint=hint,
            recursive=recursive,
            allow_substrings=allow_substrings,
            recursion_depth=self.recursion_depth + 1,
        )


@dataclass(frozen=True)
class SearchPlan:
    """What the resolver should do for one query."""
    text: str
    hint: StrategyHint
    attributes: Tuple[str, ...]
    strategies: Tuple[Strategy, ...]


class StrategyPlanner:
    """
    Plans searches against a fixed set of attribute sets.

    Example:
        >>> planner = StrategyPlanner(max_depth=5)
        >>> plan = planner.plan(SearchQuery("jsmith@corp.com"), AttributeSets())
        >>> plan.hint, plan.attributes[:2]
        (<StrategyHint.EMAIL: 'email'>, ('mail', 'userPrincipalName'))
    """

    def __init__(self, max_depth: int = 5):
        self.max_depth = max_depth

    @staticmethod
    def classify(text: str) -> StrategyHint:
        """Infer a hint from the shape of the text."""
        stripped = text.strip()
        if stripped.isdigit():
            return StrategyHint.NUMBER
        if "@" in stripped:
            return StrategyHint.EMAIL
        return StrategyHint.FREETEXT

    @staticmethod
    def attributes_for(hint: StrategyHint, sets: AttributeSets) -> Tuple[str, ...]:
        if hint == StrategyHint.THOROUGH:
            return sets.thorough
        if hint == StrategyHint.EMAIL:
            return sets.email
        if hint == StrategyHint.NUMBER:
            return sets.number
        if hint == StrategyHint.NAME:
            return sets.name
        return sets.freetext

    @staticmethod
    def infer_text(source: NamedAttributes, sets: AttributeSets) -> Tuple[str, StrategyHint]:
        """
        Pick the search text out of a structured input.

        The first property, in attribute-set specificity order, whose name
        is a searchable attribute wins. Otherwise the whole input is
        converted to a string.
        """
        named = [(name, value) for name, value in source.named_attributes() if value not in (None, "")]
        for set_name, attributes in sets.by_specificity():
            for attribute in attributes:
                for name, value in named:
                    if name.lower() == attribute.lower():
                        logger.debug(f"Using input property '{name}' as {set_name} search text")
                        return str(value).strip(), _SET_HINTS[set_name]

        text = str(source)
        logger.warning(
            f"No searchable property found on structured input; searching its string form '{text}'"
        )
        return text, StrategyHint.AUTO

    def plan(self, query: SearchQuery, sets: AttributeSets) -> SearchPlan:
        hint = query.hint
        if isinstance(query.text, str):
            text = query.text.strip()
        else:
            text, inferred = self.infer_text(query.text, sets)
            if hint == StrategyHint.AUTO:
                hint = inferred

        if hint == StrategyHint.AUTO:
            hint = self.classify(text)

        attributes = self.attributes_for(hint, sets)

        strategies: List[Strategy] = []
        if not query.thorough and sets.basic:
            strategies.append(Strategy.BASIC)
        if attributes:
            strategies.append(Strategy.BROAD)

        if query.recursive and query.recursion_depth < self.max_depth:
            if 1 <= len(name_parts(text)) <= 3:
                strategies.append(Strategy.NAME_PERMUTATION)
            if split_email(text) is not None:
                strategies.append(Strategy.EMAIL_DECOMPOSITION)
            if query.allow_substrings:
                strategies.append(Strategy.SUBSTRING)

        return SearchPlan(text=text, hint=hint, attributes=attributes, strategies=tuple(strategies))


def resolve_hint(value: Optional[str]) -> StrategyHint:
    """Parse a hint name (case-insensitive); None means AUTO."""
    if not value:
        return StrategyHint.AUTO
    try:
        return StrategyHint(value.lower())
    except ValueError:
        valid = ", ".join(h.value for h in StrategyHint)
        raise ValueError(f"Unknown search hint '{value}' (expected one of: {valid})")
