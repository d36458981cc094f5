"""Data model for startup measurements."""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class DeploymentTarget(BaseModel):
    """What a measurement run deploys and watches."""

    model_config = ConfigDict(frozen=True)

    mode: str = Field(..., description="Display name, e.g. Standard or RunAI")
    manifest: Path = Field(..., description="Manifest applied to start the workload")
    app_label: str = Field(..., description="Value of the pods' app label")
    container: str = Field(..., description="Container whose start and logs are measured")

    @property
    def selector(self) -> str:
        return f"app={self.app_label}"


class Phase(str, Enum):
    """Observable points in a pod's startup."""

    APPLY = "apply"
    CREATION = "creation"
    SCHEDULED = "scheduled"
    PULL_START = "pull_start"
    PULL_END = "pull_end"
    CONTAINER_RUNNING = "container_running"
    APP_READY = "app_ready"


REQUIRED_PHASES = (
    Phase.APPLY,
    Phase.CREATION,
    Phase.SCHEDULED,
    Phase.CONTAINER_RUNNING,
    Phase.APP_READY,
)


class PhaseTimestamps(BaseModel):
    """Timestamps observed during one run. Each phase is set at most once."""

    apply: datetime | None = None
    creation: datetime | None = None
    scheduled: datetime | None = None
    pull_start: datetime | None = None
    pull_end: datetime | None = None
    container_running: datetime | None = None
    app_ready: datetime | None = None

    def record(self, phase: Phase, value: datetime | None) -> bool:
        """Record a phase timestamp. Returns False if it was already set or value is None."""
        if value is None:
            return False
        current = getattr(self, phase.value)
        if current is not None:
            if current != value:
                logger.debug("Ignoring later observation for %s: %s (kept %s)", phase.value, value, current)
            return False
        setattr(self, phase.value, value)
        return True

    def missing(self) -> list[str]:
        return [p.value for p in REQUIRED_PHASES if getattr(self, p.value) is None]

    @property
    def complete(self) -> bool:
        return not self.missing()


class DurationReport(BaseModel):
    """Durations derived from a complete PhaseTimestamps, in whole seconds."""

    model_config = ConfigDict(frozen=True)

    node_provisioning: int
    image_pull: int
    runtime_startup: int
    total_wall_clock: int
    image_pull_observed: bool = True
    weight_load: float | None = None
    torch_compile: float | None = None
    graph_capture: float | None = None
    anomalies: tuple[str, ...] = ()

    @property
    def has_anomalies(self) -> bool:
        return bool(self.anomalies)


class RunRecord(BaseModel):
    """Result of one measurement run."""

    mode: str
    pod_name: str
    node_name: str | None = None
    report: DurationReport
