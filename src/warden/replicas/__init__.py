"""
Warden Replicas Module

Reads replica-local attributes from every domain controller and reduces them.
"""

from warden.replicas.aggregator import (
    AggregationError,
    AggregationMethod,
    AggregationResult,
    ReplicaAggregator,
    ReplicaReading,
    aggregate_values,
)

__all__ = [
    "AggregationError",
    "AggregationMethod",
    "AggregationResult",
    "ReplicaAggregator",
    "ReplicaReading",
    "aggregate_values",
]
