"""
Result export.

Outcomes are written with pandas: CSV by default, JSON for a .json path.
Lockout alerts raised while monitoring go to a sidecar file beside them
(results.csv -> results.alerts.csv).
check_writable runs before a batch starts so an unusable destination
aborts the run before any authentication attempt.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, Union

import pandas as pd

from warden.config import ConfigurationError
from warden.verification.outcome import LockoutAlert, VerificationOutcome

logger = logging.getLogger(__name__)

OUTCOME_COLUMNS = [
    "identifier",
    "found",
    "candidate_key",
    "display_name",
    "account_name",
    "password_checked",
    "password_valid",
    "status",
    "notes",
    "safe_until",
    "password",
]


def check_writable(path: Union[str, Path]) -> Path:
    """
    Make sure results can be written to path.

    Raises:
        ConfigurationError: If path is a directory, its parent is missing,
            or either is not writable
    """
    path = Path(path)
    parent = path.parent if str(path.parent) else Path(".")

    if path.is_dir():
        raise ConfigurationError(f"Export path is a directory: {path}")
    if not parent.is_dir():
        raise ConfigurationError(f"Export directory does not exist: {parent}")
    if path.exists() and not os.access(path, os.W_OK):
        raise ConfigurationError(f"Export file is not writable: {path}")
    if not path.exists() and not os.access(parent, os.W_OK):
        raise ConfigurationError(f"Export directory is not writable: {parent}")
    return path


def outcomes_frame(outcomes: Iterable[VerificationOutcome]) -> pd.DataFrame:
    """Outcomes as a DataFrame with stable column order."""
    return pd.DataFrame([o.to_dict() for o in outcomes], columns=OUTCOME_COLUMNS)


def alerts_path(path: Union[str, Path]) -> Path:
    """Sidecar path for lockout alerts next to an outcome export."""
    path = Path(path)
    return path.with_name(f"{path.stem}.alerts{path.suffix}")


def alerts_frame(alerts: Iterable[LockoutAlert]) -> pd.DataFrame:
    rows = []
    for alert in alerts:
        row = {
            "candidate_key": alert.candidate_key,
            "account_name": alert.account_name,
            "display_name": alert.display_name,
            "detected_at": alert.detected_at.isoformat(),
            "last_bad_password": alert.last_bad_password.isoformat() if alert.last_bad_password else None,
            "last_bad_password_replicas": ", ".join(alert.last_bad_password_replicas),
        }
        row.update(alert.contact)
        rows.append(row)
    return pd.DataFrame(rows)


def _write(frame: pd.DataFrame, path: Path) -> None:
    if path.suffix.lower() == ".json":
        frame.to_json(path, orient="records", indent=2)
    else:
        frame.to_csv(path, index=False)


def export_outcomes(outcomes: Iterable[VerificationOutcome], path: Union[str, Path]) -> Path:
    """
    Write outcomes to path (JSON for .json, CSV otherwise).

    Returns:
        The path written
    """
    path = Path(path)
    frame = outcomes_frame(outcomes)
    _write(frame, path)
    logger.info(f"Exported {len(frame)} outcome(s) to {path}")
    return path


def export_alerts(alerts: Iterable[LockoutAlert], path: Union[str, Path]) -> Path:
    """
    Write lockout alerts to the sidecar of an outcome export path.

    Returns:
        The sidecar path written
    """
    sidecar = alerts_path(path)
    frame = alerts_frame(alerts)
    _write(frame, sidecar)
    logger.warning(f"Exported {len(frame)} lockout alert(s) to {sidecar}")
    return sidecar
