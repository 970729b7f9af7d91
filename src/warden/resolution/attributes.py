"""
Searchable attribute sets.

Named, ordered groups of account attributes a fuzzy search may target.
They are pruned once against the attributes the directory schema really
has, then shared read-only by every Planner/Resolver call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Set, Tuple

from warden.directory.base import SchemaProbe

logger = logging.getLogger(__name__)

# High-confidence attributes for the cheap first query
BASIC = ("sAMAccountName", "mail", "displayName")

EMAIL = (
    "mail",
    "userPrincipalName",
    "proxyAddresses",
    "targetAddress",
    "otherMailbox",
)

NUMBER = (
    "employeeID",
    "employeeNumber",
    "telephoneNumber",
    "mobile",
    "ipPhone",
    "homePhone",
    "otherTelephone",
    "otherMobile",
    "pager",
    "facsimileTelephoneNumber",
)

NAME = (
    "displayName",
    "name",
    "cn",
    "givenName",
    "sn",
    "middleName",
    "sAMAccountName",
)

FREETEXT = (
    "sAMAccountName",
    "userPrincipalName",
    "displayName",
    "name",
    "cn",
    "givenName",
    "sn",
    "mail",
    "description",
    "title",
    "department",
    "company",
    "physicalDeliveryOfficeName",
    "info",
)

# Most specific first; used when inferring a target from structured input
SPECIFICITY_ORDER = ("Email", "Number", "Name", "Freetext")


def _dedupe(names: Iterable[str]) -> Tuple[str, ...]:
    seen: Set[str] = set()
    ordered: List[str] = []
    for name in names:
        if name.lower() not in seen:
            seen.add(name.lower())
            ordered.append(name)
    return tuple(ordered)


@dataclass(frozen=True)
class AttributeSets:
    """Immutable, schema-pruned attribute sets."""
    basic: Tuple[str, ...] = BASIC
    email: Tuple[str, ...] = EMAIL
    number: Tuple[str, ...] = NUMBER
    name: Tuple[str, ...] = NAME
    freetext: Tuple[str, ...] = FREETEXT
    removed: Tuple[str, ...] = field(default=())

    def named(self, set_name: str) -> Tuple[str, ...]:
        """Look up a set by its display name (Email, Number, Name, Freetext)."""
        return getattr(self, set_name.lower())

    @property
    def thorough(self) -> Tuple[str, ...]:
        """Freetext ∪ Email ∪ Number, first occurrence order kept."""
        return _dedupe(self.freetext + self.email + self.number)

    def by_specificity(self) -> List[Tuple[str, Tuple[str, ...]]]:
        return [(set_name, self.named(set_name)) for set_name in SPECIFICITY_ORDER]

    def all_attributes(self) -> Tuple[str, ...]:
        return _dedupe(self.basic + self.thorough + self.name)

    def pruned(self, available: Iterable[str]) -> "AttributeSets":
        """Drop every attribute not present in the allow-list."""
        allowed = {a.lower() for a in available}

        def keep(names: Tuple[str, ...]) -> Tuple[str, ...]:
            return tuple(n for n in names if n.lower() in allowed)

        removed = tuple(n for n in self.all_attributes() if n.lower() not in allowed)
        if removed:
            logger.info(f"Pruned {len(removed)} attributes absent from schema: {', '.join(removed)}")

        return AttributeSets(
            basic=keep(self.basic),
            email=keep(self.email),
            number=keep(self.number),
            name=keep(self.name),
            freetext=keep(self.freetext),
            removed=removed,
        )

    @classmethod
    def from_schema(
        cls,
        probe: Optional[SchemaProbe],
        object_class: str = "user",
    ) -> "AttributeSets":
        """
        Build the sets once from a schema probe.

        Without a probe (or when the probe fails) the static sets are used
        unpruned.
        """
        sets = cls()
        if probe is None:
            return sets
        try:
            available = probe.allowed_attributes(object_class)
        except Exception as e:
            logger.warning(f"Schema probe failed, using unpruned attribute sets: {e}")
            return sets
        return sets.pruned(available)
