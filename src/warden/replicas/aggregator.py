"""
Replica Aggregator - Reconcile replica-local attributes.

Some account attributes (badPasswordTime, badPwdCount, lastLogon) are not
replicated: every domain controller holds its own value. The aggregator
reads an account from every replica concurrently and reduces the answers
to one value, keeping track of which replicas reported it.

Only non-null values take part in a reduction, so a replica that has not
seen an attribute yet does not skew the result.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from warden.directory.base import DirectoryClient, DirectoryError

logger = logging.getLogger(__name__)

REPLICA_FIELD = "Replica"


class AggregationError(ValueError):
    """Raised when values cannot be reduced with the requested method."""
    pass


class AggregationMethod(str, Enum):
    """Reductions over per-replica values."""
    MAXIMUM = "Maximum"
    MINIMUM = "Minimum"
    COUNT = "Count"
    MEDIAN = "Median"
    MODE = "Mode"
    SUM = "Sum"
    MEAN = "Mean"

    @classmethod
    def parse(cls, value: Union[str, "AggregationMethod"]) -> "AggregationMethod":
        """Case-insensitive lookup; 'Average' is an alias for Mean."""
        if isinstance(value, cls):
            return value
        name = str(value).strip().lower()
        if name == "average":
            name = "mean"
        for method in cls:
            if method.value.lower() == name:
                return method
        valid = ", ".join(m.value for m in cls)
        raise ValueError(f"Unknown aggregation method '{value}' (expected one of: {valid}, Average)")


@dataclass
class AggregationResult:
    """One property reduced across replicas."""
    property_name: str
    method: AggregationMethod
    value: Any
    source_replicas: List[str] = field(default_factory=list)
    mode_count: Optional[int] = None

    def fields(self) -> Dict[str, Any]:
        """Flattened <property>_<method> and <property>_<method>_DC fields."""
        prefix = f"{self.property_name}_{self.method.value}"
        data = {
            prefix: self.value,
            f"{prefix}_DC": list(self.source_replicas),
        }
        if self.method == AggregationMethod.MODE:
            data[f"{self.property_name}_ModeCount"] = self.mode_count
        return data


@dataclass
class ReplicaReading:
    """Raw values one replica returned for an account."""
    replica: str
    values: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    def to_record(self, identity: str) -> Dict[str, Any]:
        record: Dict[str, Any] = {"Identity": identity, REPLICA_FIELD: self.replica}
        record.update(self.values)
        if self.error:
            record["Error"] = self.error
        return record


# ----------------------------------------------------------------------
# Reductions
# ----------------------------------------------------------------------

def _to_ticks(value: datetime) -> int:
    """100ns ticks since 0001-01-01 (UTC for aware datetimes)."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    delta = value - datetime.min
    return (delta.days * 86400 + delta.seconds) * 10_000_000 + delta.microseconds * 10


def _from_ticks(ticks: int, tzinfo: Any) -> Optional[datetime]:
    """Ticks back to a datetime, or None when outside the representable range."""
    try:
        value = datetime.min + timedelta(microseconds=ticks // 10)
    except OverflowError:
        return None
    if tzinfo is not None:
        value = value.replace(tzinfo=timezone.utc).astimezone(tzinfo)
    return value


def _counting_key(value: Any) -> Any:
    return tuple(value) if isinstance(value, list) else value


def _sum_or_mean(
    property_name: str,
    method: AggregationMethod,
    values: List[Any],
) -> Any:
    if all(isinstance(v, datetime) for v in values):
        total = sum(_to_ticks(v) for v in values)
        ticks = total if method == AggregationMethod.SUM else total // len(values)
        converted = _from_ticks(ticks, values[0].tzinfo)
        if converted is None:
            logger.warning(
                f"{method.value} of {property_name} ({ticks} ticks) exceeds the date range; "
                f"returning the raw tick total"
            )
            return ticks
        return converted

    if any(isinstance(v, (str, bytes, datetime)) or isinstance(v, bool) for v in values):
        raise AggregationError(f"Cannot {method.value.lower()} non-numeric values of {property_name}")
    try:
        total = sum(values)
    except TypeError as e:
        raise AggregationError(f"Cannot {method.value.lower()} values of {property_name}: {e}") from e
    return total if method == AggregationMethod.SUM else total / len(values)


def aggregate_values(
    property_name: str,
    method: Union[str, AggregationMethod],
    readings: Sequence[Tuple[str, Any]],
) -> AggregationResult:
    """
    Reduce (replica, value) pairs with one method.

    Args:
        property_name: Attribute being reduced
        method: Reduction (Average is accepted as an alias for Mean)
        readings: (replica, raw value) pairs in replica order; None values
            are ignored

    Returns:
        AggregationResult whose source_replicas lists every replica whose
        raw value equals the result

    Example:
        >>> aggregate_values("badPwdCount", "Maximum", [("dc1", 10), ("dc2", 20), ("dc3", 20), ("dc4", 5)])
        AggregationResult(property_name='badPwdCount', method=<AggregationMethod.MAXIMUM: 'Maximum'>, value=20, source_replicas=['dc2', 'dc3'], mode_count=None)
    """
    method = AggregationMethod.parse(method)
    present = [(replica, value) for replica, value in readings if value is not None]
    values = [value for _, value in present]

    mode_count: Optional[int] = None
    if method == AggregationMethod.COUNT:
        value: Any = len(values)
    elif not values:
        value = None
        if method == AggregationMethod.MODE:
            mode_count = 0
    elif method == AggregationMethod.MAXIMUM:
        value = max(values)
    elif method == AggregationMethod.MINIMUM:
        value = min(values)
    elif method == AggregationMethod.MEDIAN:
        # Upper-middle element for even counts, never interpolated
        value = sorted(values)[len(values) // 2]
    elif method == AggregationMethod.MODE:
        counts: Dict[Any, int] = {}
        firsts: Dict[Any, Any] = {}
        for v in values:
            key = _counting_key(v)
            counts[key] = counts.get(key, 0) + 1
            firsts.setdefault(key, v)
        best_key = None
        for key, count in counts.items():
            if mode_count is None or count > mode_count:
                best_key, mode_count = key, count
        value = firsts[best_key]
    else:
        value = _sum_or_mean(property_name, method, values)

    sources = [replica for replica, raw in present if raw == value]
    return AggregationResult(
        property_name=property_name,
        method=method,
        value=value,
        source_replicas=sources,
        mode_count=mode_count,
    )


# ----------------------------------------------------------------------
# Fan-out
# ----------------------------------------------------------------------

class ReplicaAggregator:
    """
    Query every replica for an account and reduce the answers.

    Example:
        >>> aggregator = ReplicaAggregator(directory)
        >>> aggregator.aggregate_record("jsmith", ["badPasswordTime"], "Maximum")
        [{'Identity': 'jsmith', 'badPasswordTime_Maximum': datetime(...), 'badPasswordTime_Maximum_DC': ['dc02']}]
    """

    def __init__(
        self,
        directory: DirectoryClient,
        replicas: Optional[List[str]] = None,
    ):
        """
        Initialize the aggregator.

        Args:
            directory: Directory client supporting per-call replica targeting
            replicas: Fixed replica list; listed from the directory when omitted
        """
        self.directory = directory
        self._replicas = list(replicas) if replicas else None

    def replicas(self) -> List[str]:
        if self._replicas is None:
            self._replicas = list(self.directory.list_replicas())
            logger.info(f"Discovered {len(self._replicas)} replicas")
        return self._replicas

    def _read(self, identity: str, properties: List[str], replica: str) -> ReplicaReading:
        try:
            account = self.directory.get_account(identity, properties, replica=replica)
        except Exception as e:
            logger.warning(f"Replica {replica} failed for {identity}: {e}")
            return ReplicaReading(replica=replica, values={p: None for p in properties}, error=str(e))

        if account is None:
            logger.debug(f"{identity} not present on {replica}")
            return ReplicaReading(replica=replica, values={p: None for p in properties})
        return ReplicaReading(replica=replica, values={p: account.get(p) for p in properties})

    def collect(
        self,
        identity: str,
        properties: List[str],
        replicas: Optional[List[str]] = None,
    ) -> List[ReplicaReading]:
        """Read the properties from every replica, one worker per replica."""
        targets = list(replicas) if replicas else self.replicas()
        if not targets:
            return []

        with ThreadPoolExecutor(max_workers=len(targets)) as pool:
            return list(pool.map(lambda replica: self._read(identity, properties, replica), targets))

    def aggregate(
        self,
        identity: str,
        properties: List[str],
        method: Union[str, AggregationMethod],
        replicas: Optional[List[str]] = None,
    ) -> Dict[str, AggregationResult]:
        """
        Reduce each property across replicas.

        Raises:
            DirectoryError: If no replica answered at all
        """
        method = AggregationMethod.parse(method)
        readings = self.collect(identity, properties, replicas)
        if not any(r.error is None for r in readings):
            raise DirectoryError(f"No replica answered for {identity}")
        return {
            prop: aggregate_values(prop, method, [(r.replica, r.values.get(prop)) for r in readings])
            for prop in properties
        }

    def aggregate_record(
        self,
        identity: str,
        properties: List[str],
        method: Union[str, AggregationMethod],
        replicas: Optional[List[str]] = None,
        return_all: bool = False,
    ) -> List[Dict[str, Any]]:
        """
        Aggregate into flat records.

        Returns one record with <property>_<method> and <property>_<method>_DC
        fields, or with return_all one record per replica carrying a Replica
        field.
        """
        if return_all:
            return [reading.to_record(identity) for reading in self.collect(identity, properties, replicas)]

        record: Dict[str, Any] = {"Identity": identity}
        for result in self.aggregate(identity, properties, method, replicas).values():
            record.update(result.fields())
        return [record]
