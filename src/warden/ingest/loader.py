"""
Credential Loader - Read claimed credentials from dumps and spreadsheets.

Two input shapes are accepted:

  - Tabular files (CSV, TSV) with a header row. The identifier and
    password columns are sniffed from common header names unless given.
  - Plain text dumps with one "identifier<delimiter>password" per line.
    Lines are split on the first delimiter only, so passwords may contain it.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

import pandas as pd

from warden.config import ConfigurationError
from warden.verification.outcome import CredentialEntry

logger = logging.getLogger(__name__)

# Normalized header names, most specific first
IDENTIFIER_COLUMNS = (
    "identifier",
    "samaccountname",
    "accountname",
    "username",
    "userprincipalname",
    "upn",
    "logon",
    "login",
    "user",
    "account",
    "email",
    "mail",
    "name",
)
PASSWORD_COLUMNS = (
    "password",
    "passwd",
    "pass",
    "pw",
    "pwd",
    "cleartext",
    "plaintext",
    "clear",
    "cracked",
)

TABULAR_SUFFIXES = {".csv", ".tsv"}


def _normalize(column: str) -> str:
    return re.sub(r"[^a-z]", "", str(column).lower())


def find_column(columns: Sequence[str], preferred: Sequence[str]) -> Optional[str]:
    """
    Pick the first column whose normalized header matches a preferred name.

    Example:
        >>> find_column(["User Name", "Clear Text"], PASSWORD_COLUMNS)
        'Clear Text'
    """
    normalized = {}
    for column in columns:
        normalized.setdefault(_normalize(column), column)
    for name in preferred:
        if name in normalized:
            return normalized[name]
    return None


def entries_from_frame(
    frame: pd.DataFrame,
    identifier_column: Optional[str] = None,
    password_column: Optional[str] = None,
    source: Optional[str] = None,
) -> List[CredentialEntry]:
    """
    Convert a DataFrame into credential entries.

    Rows with an empty identifier are dropped; an empty password is kept
    (the health check reports it).

    Raises:
        ConfigurationError: If either column cannot be determined
    """
    columns = [str(c) for c in frame.columns]
    identifier_column = identifier_column or find_column(columns, IDENTIFIER_COLUMNS)
    password_column = password_column or find_column(columns, PASSWORD_COLUMNS)

    missing = [
        label for label, column in (("identifier", identifier_column), ("password", password_column))
        if column is None or column not in frame.columns
    ]
    if missing:
        raise ConfigurationError(
            f"Could not find {' and '.join(missing)} column(s) in {source or 'input'} "
            f"(columns: {', '.join(columns)})"
        )

    subset = frame[[identifier_column, password_column]].fillna("").astype(str)
    entries = [
        CredentialEntry(identifier=identifier.strip(), password=password, source=source)
        for identifier, password in subset.itertuples(index=False, name=None)
        if identifier.strip()
    ]
    logger.info(
        f"Read {len(entries)} credential(s) from {source or 'frame'} "
        f"(identifier={identifier_column}, password={password_column})"
    )
    return entries


def parse_lines(
    lines: Iterable[str],
    delimiter: str = ":",
    source: Optional[str] = None,
) -> List[CredentialEntry]:
    """
    Parse "identifier<delimiter>password" lines.

    Blank lines and lines starting with '#' are skipped, as are lines
    without the delimiter.
    """
    entries = []
    skipped = 0
    for line in lines:
        line = line.rstrip("\r\n")
        if not line.strip() or line.lstrip().startswith("#"):
            continue
        identifier, sep, password = line.partition(delimiter)
        if not sep or not identifier.strip():
            skipped += 1
            continue
        entries.append(CredentialEntry(identifier=identifier.strip(), password=password, source=source))

    if skipped:
        logger.warning(f"Skipped {skipped} malformed line(s) in {source or 'input'}")
    return entries


def load_credentials(
    path: Union[str, Path],
    identifier_column: Optional[str] = None,
    password_column: Optional[str] = None,
    delimiter: str = ":",
) -> List[CredentialEntry]:
    """
    Load credentials from a tabular file or a delimited text dump.

    Args:
        path: Input file
        identifier_column: Header of the identifier column (sniffed if omitted)
        password_column: Header of the password column (sniffed if omitted)
        delimiter: Separator for text dumps

    Returns:
        Credential entries in file order

    Raises:
        ConfigurationError: If the file is missing or its columns cannot be found
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError(f"Credential file not found: {path}")

    suffix = path.suffix.lower()
    logger.info(f"Loading credentials from {path}")

    if suffix in TABULAR_SUFFIXES:
        sep = "\t" if suffix == ".tsv" else ","
        frame = pd.read_csv(path, sep=sep, dtype=str, keep_default_na=False)
        return entries_from_frame(frame, identifier_column, password_column, source=str(path))

    with open(path, encoding="utf-8", errors="replace") as handle:
        return parse_lines(handle, delimiter=delimiter, source=str(path))
