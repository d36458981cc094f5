"""Shared test fixtures for startup_bench tests."""

from __future__ import annotations

import io
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest
from rich.console import Console

from startup_bench.observation import (
    ClusterObserver,
    ContainerState,
    EventRecord,
    PodCondition,
    PodState,
)

T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def at(seconds: float) -> datetime:
    """Wall-clock time ``seconds`` after T0."""
    return T0 + timedelta(seconds=seconds)


def make_pod(
    name: str = "model-server-abc",
    phase: str = "Pending",
    node_name: str | None = None,
    created: datetime | None = T0,
    terminating: bool = False,
    container: str | None = None,
    started_at: datetime | None = None,
    scheduled_at: datetime | None = None,
    ready: bool = False,
) -> PodState:
    conditions = []
    if scheduled_at is not None:
        conditions.append(PodCondition(type="PodScheduled", status="True", last_transition=scheduled_at))
    if ready:
        conditions.append(PodCondition(type="Ready", status="True", last_transition=started_at))
    containers = []
    if container is not None:
        containers.append(
            ContainerState(
                name=container,
                state="running" if started_at else "waiting",
                reason=None if started_at else "ContainerCreating",
                started_at=started_at,
            )
        )
    return PodState(
        name=name,
        phase=phase,
        node_name=node_name,
        creation_timestamp=created,
        deletion_timestamp=at(-1) if terminating else None,
        conditions=conditions,
        containers=containers,
    )


class FakeClock:
    """Monotonic clock that only advances when sleep is called."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _sequence(values: list[Any]) -> Any:
    """Pop values in order, repeating the last one once exhausted."""
    if len(values) > 1:
        return values.pop(0)
    return values[0]


class FakeCluster:
    """In-memory stand-in for ClusterClient driven by scripted responses."""

    def __init__(
        self,
        pods: list[list[PodState]] | None = None,
        pod_reads: list[PodState] | None = None,
        logs: list[str] | None = None,
        events: list[EventRecord] | None = None,
        nodes: list[list[str]] | None = None,
        recent_events: list[EventRecord] | None = None,
    ) -> None:
        self.pods = pods or [[]]
        self.pod_reads = pod_reads or []
        self.logs = logs or [""]
        self.events = events or []
        self.nodes = nodes or [[]]
        self.recent_events = recent_events or []
        self.calls: list[tuple[str, Any]] = []

    def list_pods(self, selector: str) -> list[PodState]:
        self.calls.append(("list_pods", selector))
        return list(_sequence(self.pods))

    def read_pod(self, name: str) -> PodState:
        self.calls.append(("read_pod", name))
        return _sequence(self.pod_reads)

    def read_logs(self, pod_name: str, container: str) -> str:
        self.calls.append(("read_logs", (pod_name, container)))
        return _sequence(self.logs)

    def list_events(self, pod_name: str) -> list[EventRecord]:
        self.calls.append(("list_events", pod_name))
        return list(self.events)

    def list_recent_events(self) -> list[EventRecord]:
        self.calls.append(("list_recent_events", None))
        return list(self.recent_events)

    def list_nodes(self, selector: str) -> list[str]:
        self.calls.append(("list_nodes", selector))
        return list(_sequence(self.nodes))

    def apply_manifest(self, path: Path) -> None:
        self.calls.append(("apply_manifest", path))

    def delete_manifest(self, path: Path) -> None:
        self.calls.append(("delete_manifest", path))

    def delete_deployments(self, selector: str) -> None:
        self.calls.append(("delete_deployments", selector))

    def delete_node(self, name: str) -> None:
        self.calls.append(("delete_node", name))

    def called(self, name: str) -> list[Any]:
        return [arg for call, arg in self.calls if call == name]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def console() -> Console:
    """Console that records output instead of writing to the terminal."""
    return Console(record=True, width=120, file=io.StringIO())


def make_observer(cluster: Any, clock: FakeClock, console: Console, poll_interval: float = 2.0) -> ClusterObserver:
    return ClusterObserver(
        cluster,
        poll_interval=poll_interval,
        clock=clock,
        sleep=clock.sleep,
        console=console,
    )
