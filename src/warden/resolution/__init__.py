"""
Warden Resolution Module

Turns names, e-mail addresses, numbers and free text into accounts.

Key components:
- Resolver: Escalating multi-strategy search
- StrategyPlanner: Picks attributes and strategies for a query
- AttributeSets: Schema-pruned attribute groups
"""

from warden.resolution.attributes import AttributeSets
from warden.resolution.names import name_permutations, split_email
from warden.resolution.planner import (
    MappingInput,
    SearchQuery,
    Strategy,
    StrategyHint,
    StrategyPlanner,
)
from warden.resolution.resolver import Resolver

__all__ = [
    "AttributeSets",
    "name_permutations",
    "split_email",
    "MappingInput",
    "SearchQuery",
    "Strategy",
    "StrategyHint",
    "StrategyPlanner",
    "Resolver",
]
