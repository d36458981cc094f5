"""Structured models for the Kubernetes state the benchmark watches."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class PodCondition(BaseModel):
    """Pod condition summary."""

    type: str
    status: str
    last_transition: datetime | None = None


class ContainerState(BaseModel):
    """Container state summary (waiting, running, terminated)."""

    name: str
    state: str  # waiting | running | terminated | unknown
    reason: str | None = None
    started_at: datetime | None = None
    ready: bool = False
    restart_count: int = 0


class PodState(BaseModel):
    """Observed state of a single pod."""

    name: str
    namespace: str = "default"
    phase: str = "Unknown"
    node_name: str | None = None
    creation_timestamp: datetime | None = None
    deletion_timestamp: datetime | None = None
    conditions: list[PodCondition] = Field(default_factory=list)
    containers: list[ContainerState] = Field(default_factory=list)
    labels: dict[str, str] = Field(default_factory=dict)

    @property
    def terminating(self) -> bool:
        return self.deletion_timestamp is not None

    @property
    def scheduled(self) -> bool:
        return bool(self.node_name)

    @property
    def ready(self) -> bool:
        return any(c.type == "Ready" and c.status == "True" for c in self.conditions)

    @property
    def failed(self) -> bool:
        return self.phase == "Failed"

    def container(self, name: str) -> ContainerState | None:
        """Return the status of the named container, if reported yet."""
        for c in self.containers:
            if c.name == name:
                return c
        return None

    def container_started_at(self, name: str) -> datetime | None:
        c = self.container(name)
        if c is None or c.state != "running":
            return None
        return c.started_at

    def condition_time(self, type_: str) -> datetime | None:
        """Transition time of the first condition of the given type."""
        for c in self.conditions:
            if c.type == type_:
                return c.last_transition
        return None


class EventRecord(BaseModel):
    """Kubernetes event summary."""

    type: str = "Normal"  # Normal | Warning
    reason: str
    message: str = ""
    involved_object: str = ""  # kind/name
    first_timestamp: datetime | None = None
    last_timestamp: datetime | None = None


def select_latest_pod(pods: list[PodState]) -> PodState | None:
    """Pick the most recently created pod, ignoring pods that are terminating.

    A rollout can leave the previous pod terminating while its replacement is
    pending; only the replacement reflects the run being measured.
    """
    live = [p for p in pods if not p.terminating]
    if not live:
        return None
    return max(live, key=lambda p: (p.creation_timestamp is not None, p.creation_timestamp or datetime.min))
