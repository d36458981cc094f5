"""Observation layer: read Kubernetes state and wait on it."""

from startup_bench.observation.cluster import ClusterClient
from startup_bench.observation.models import (
    ContainerState,
    EventRecord,
    PodCondition,
    PodState,
    select_latest_pod,
)
from startup_bench.observation.observer import ClusterObserver

__all__ = [
    "ClusterClient",
    "ClusterObserver",
    "ContainerState",
    "EventRecord",
    "PodCondition",
    "PodState",
    "select_latest_pod",
]
