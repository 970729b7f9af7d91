"""
Name and token helpers for the recursive search strategies.
"""

from __future__ import annotations

import re
from typing import List, Optional, Tuple

NAME_SUFFIXES = ("jr", "jr.", "sr", "sr.", "ii", "iii", "iv", "v")

_NAME_SPLIT = re.compile(r"[\s,]+")
_EMAIL_LOCAL_SPLIT = re.compile(r"[.\s]+")
_NON_WORD = re.compile(r"\W+")
_LAST_FIRST = re.compile(r"^\s*[^,\s]+(?:\s+(?:jr|sr|ii|iii|iv|v)\.?)?\s*,", re.IGNORECASE)


def name_parts(text: str) -> List[str]:
    """Whitespace/comma separated parts of a name."""
    return [p for p in _NAME_SPLIT.split(text.strip()) if p]


def is_suffix(token: str) -> bool:
    return token.lower() in NAME_SUFFIXES


def name_permutations(text: str) -> List[str]:
    """
    Candidate orderings of a 1-3 part name, most specific first.

    Permutations equal to the input (case-insensitively) are dropped; an
    input with more than three parts yields nothing.

    Example:
        >>> name_permutations("John Smith")
        ['Smith, John', 'John, Smith', 'Smith John', 'Smith']
    """
    parts = name_parts(text)
    if not 1 <= len(parts) <= 3:
        return []
    surname_first = _LAST_FIRST.match(text)
    if surname_first:
        # "Smith, John [A]" or "Smith Jr., John" names the surname first
        head = name_parts(text[:surname_first.end()])
        parts = name_parts(text[surname_first.end():]) + head

    first: Optional[str] = None
    middle: Optional[str] = None
    suffix: Optional[str] = None

    if len(parts) == 1:
        last = parts[0]
    elif len(parts) == 2:
        first, last = parts
    elif is_suffix(parts[2]):
        first, last, suffix = parts
    else:
        first, middle, last = parts

    variants = [last]
    if first:
        variants += [
            f"{last} {first}",
            f"{last}, {first}",
            f"{first} {last}",
            f"{first}, {last}",
        ]
    if middle:
        initial = middle[0]
        variants += [
            f"{first} {middle} {last}",
            f"{first} {initial}. {last}",
            f"{first} {initial} {last}",
            f"{last}, {first} {middle}",
            f"{last}, {first} {initial}.",
            f"{last} {first} {initial}",
        ]
    if suffix:
        variants += [
            f"{first} {last} {suffix}",
            f"{first} {last}, {suffix}",
            f"{last} {suffix}, {first}",
            f"{last}, {first} {suffix}",
        ]

    original = text.strip().lower()
    seen = set()
    unique = []
    for variant in variants:
        key = variant.lower()
        if key == original or key in seen:
            continue
        seen.add(key)
        unique.append(variant)

    # Longer strings are more specific; sorted() is stable for equal lengths
    return sorted(unique, key=len, reverse=True)


def split_email(text: str) -> Optional[Tuple[str, str]]:
    """(local part, domain) of an e-mail-shaped string, or None."""
    if "@" not in text:
        return None
    local, _, domain = text.strip().rpartition("@")
    if not local:
        return None
    return local, domain


def email_name_tokens(text: str, min_token_length: int) -> List[str]:
    """Tokens of an e-mail local part split on dots and whitespace."""
    parts = split_email(text)
    if parts is None:
        return []
    return [t for t in _EMAIL_LOCAL_SPLIT.split(parts[0]) if len(t) >= min_token_length]


def word_tokens(text: str, min_token_length: int) -> List[str]:
    """Tokens split on any non-word boundary, short ones dropped, order kept."""
    tokens = []
    for token in _NON_WORD.split(text):
        if len(token) >= min_token_length and token not in tokens:
            tokens.append(token)
    return tokens
