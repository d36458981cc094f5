"""Measurement run: cleanup → apply → wait scheduled → wait running → wait ready → reduce."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from kubernetes.client.rest import ApiException
from rich.console import Console

from startup_bench.config import Settings
from startup_bench.errors import BenchmarkError, IncompleteMeasurementError, PodFailedError, PollTimeoutError
from startup_bench.measurement.logs import contains_marker, extract_phase_durations
from startup_bench.measurement.models import DeploymentTarget, Phase, PhaseTimestamps, RunRecord
from startup_bench.measurement.reducer import compare, reduce, render_comparison_table, render_report
from startup_bench.observation.cluster import ClusterClient
from startup_bench.observation.models import EventRecord, PodState
from startup_bench.observation.observer import ClusterObserver

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RunStage(str, Enum):
    CLEANUP_PREVIOUS = "cleanup_previous"
    APPLY = "apply"
    WAIT_SCHEDULED = "wait_scheduled"
    WAIT_CONTAINER_RUNNING = "wait_container_running"
    WAIT_APP_READY = "wait_app_ready"
    REDUCE = "reduce"
    REPORTED = "reported"
    FAILED = "failed"


def _first_event_time(events: Iterable[EventRecord], reason: str) -> datetime | None:
    for ev in events:
        if ev.reason == reason and ev.first_timestamp is not None:
            return ev.first_timestamp
    return None


def evict_gpu_nodes(
    cluster: ClusterClient,
    observer: ClusterObserver,
    selector: str,
    timeout: float,
    interval: float,
    console: Console,
) -> list[str]:
    """Delete nodes matching ``selector`` and wait for them to leave the cluster.

    Forces the next pod to trigger a node scale-up. Returns the deleted node names.
    """
    console.print("Cleaning up GPU nodes to ensure scale-up event...")
    nodes = cluster.list_nodes(selector)
    if not nodes:
        console.print("No existing GPU nodes found.")
        return []
    for node in nodes:
        console.print(f"Deleting node/{node}...")
        cluster.delete_node(node)
    console.print("Waiting for nodes to be removed from cluster...")
    observer.poll(
        lambda: cluster.list_nodes(selector),
        lambda remaining: not remaining,
        timeout=timeout,
        interval=interval,
        description=f"nodes matching {selector} to be removed",
    )
    console.print("GPU nodes removed.")
    return nodes


@dataclass
class MeasurementRun:
    """State of a single cold-start measurement, advanced one stage at a time."""

    target: DeploymentTarget
    cluster: ClusterClient
    observer: ClusterObserver
    settings: Settings
    now: Callable[[], datetime] = _utcnow
    console: Console = field(default_factory=Console)

    stage: RunStage = RunStage.CLEANUP_PREVIOUS
    timestamps: PhaseTimestamps = field(default_factory=PhaseTimestamps)
    pod_name: str | None = None
    node_name: str | None = None
    logs: str = ""
    record: RunRecord | None = None
    error: Exception | None = None
    _applied_at: float | None = None

    def execute(self) -> RunRecord:
        """Drive the run through every stage. Any failure leaves stage=FAILED and propagates."""
        steps: list[tuple[RunStage, Callable[[], None]]] = [
            (RunStage.CLEANUP_PREVIOUS, self.cleanup_previous),
            (RunStage.APPLY, self.apply),
            (RunStage.WAIT_SCHEDULED, self.wait_scheduled),
            (RunStage.WAIT_CONTAINER_RUNNING, self.wait_container_running),
            (RunStage.WAIT_APP_READY, self.wait_app_ready),
            (RunStage.REDUCE, self.reduce_durations),
        ]
        try:
            for stage, step in steps:
                self.stage = stage
                logger.debug("%s: entering %s", self.target.mode, stage.value)
                step()
        except Exception as e:
            logger.error("%s run failed during %s: %s", self.target.mode, self.stage.value, e)
            self.error = e
            self.stage = RunStage.FAILED
            raise
        if self.record is None:
            raise IncompleteMeasurementError(["report"])
        self.stage = RunStage.REPORTED
        return self.record

    def _elapsed(self) -> float | None:
        if self._applied_at is None:
            return None
        return self.observer.clock() - self._applied_at

    def _scheduled_pod(self) -> str:
        if self.pod_name is None:
            raise BenchmarkError(f"{self.target.mode} run has no scheduled pod yet")
        return self.pod_name

    def _read_pod(self) -> PodState | None:
        try:
            return self.cluster.read_pod(self._scheduled_pod())
        except ApiException as e:
            logger.debug("Reading pod %s failed: %s", self.pod_name, e.reason)
            return None

    def _raise_if_failed(self, pod: PodState | None) -> None:
        if pod is not None and pod.failed:
            raise PodFailedError(pod.name, pod.phase, self._elapsed())

    def cleanup_previous(self) -> None:
        self.console.print("Step 1: Deleting existing deployment for a true cold-start measure...")
        self.cluster.delete_manifest(self.target.manifest)
        self.console.print("Waiting for pods to terminate...")
        try:
            self.observer.await_no_pods(
                self.target.selector,
                timeout=self.settings.cleanup_timeout,
                interval=self.settings.schedule_poll_interval,
            )
        except PollTimeoutError as e:
            logger.warning("Old pods still present, continuing: %s", e)
        if self.settings.delete_gpu_nodes:
            evict_gpu_nodes(
                self.cluster,
                self.observer,
                self.settings.gpu_node_selector,
                timeout=self.settings.node_removal_timeout,
                interval=self.settings.node_poll_interval,
                console=self.console,
            )

    def apply(self) -> None:
        self.console.print("Step 2: Applying deployment...")
        self.timestamps.record(Phase.APPLY, self.now())
        self._applied_at = self.observer.clock()
        self.cluster.apply_manifest(self.target.manifest)

    def wait_scheduled(self) -> None:
        self.console.print("Step 3: Monitoring Kubernetes Events (Provisioning/Pulling)...")
        pod = self.observer.await_condition(
            self.target.selector,
            lambda p: p.scheduled,
            timeout=self.settings.schedule_timeout,
            interval=self.settings.schedule_poll_interval,
            description=f"{self.target.mode} pod to be scheduled",
        )
        self.pod_name = pod.name
        self.node_name = pod.node_name
        self.console.print(f"Pod {pod.name} scheduled on node {pod.node_name}.")

    def wait_container_running(self) -> None:
        self.console.print("Waiting for image pull and container start...")

        def fetch() -> PodState | None:
            pod = self._read_pod()
            self._raise_if_failed(pod)
            return pod

        self.observer.poll(
            fetch,
            lambda pod: pod is not None and pod.container_started_at(self.target.container) is not None,
            timeout=self.settings.container_timeout,
            interval=self.settings.container_poll_interval,
            description=f"container {self.target.container} to start",
        )

    def wait_app_ready(self) -> None:
        self.console.print("Waiting for the application to be ready (this can take 5-10 minutes)...")

        pod_name = self._scheduled_pod()

        def fetch() -> str:
            try:
                text = self.cluster.read_logs(pod_name, self.target.container)
            except ApiException as e:
                logger.debug("Reading logs for %s failed: %s", pod_name, e.reason)
                text = ""
            if not contains_marker(text):
                self._raise_if_failed(self._read_pod())
            return text

        self.logs = self.observer.poll(
            fetch,
            contains_marker,
            timeout=self.settings.app_ready_timeout,
            interval=self.settings.app_ready_poll_interval,
            description="application startup to complete",
        )
        self.timestamps.record(Phase.APP_READY, self.now())

    def reduce_durations(self) -> None:
        pod_name = self._scheduled_pod()
        pod = self.cluster.read_pod(pod_name)
        self.timestamps.record(Phase.CREATION, pod.creation_timestamp)
        self.timestamps.record(Phase.SCHEDULED, pod.condition_time("PodScheduled"))
        self.timestamps.record(Phase.CONTAINER_RUNNING, pod.container_started_at(self.target.container))

        events = self.cluster.list_events(pod_name)
        self.timestamps.record(Phase.PULL_START, _first_event_time(events, "Pulling"))
        self.timestamps.record(Phase.PULL_END, _first_event_time(events, "Pulled"))

        report = reduce(self.timestamps, extract_phase_durations(self.logs))
        self.record = RunRecord(
            mode=self.target.mode,
            pod_name=pod_name,
            node_name=self.node_name or pod.node_name,
            report=report,
        )


def run_measurement(
    target: DeploymentTarget,
    cluster: ClusterClient,
    observer: ClusterObserver,
    settings: Settings,
    console: Console | None = None,
    now: Callable[[], datetime] = _utcnow,
) -> RunRecord:
    """Run one cold-start measurement and print its breakdown."""
    c = console or observer.console
    c.print(f"\n>>> Starting Measurement for Mode: {target.mode}")
    run = MeasurementRun(
        target=target,
        cluster=cluster,
        observer=observer,
        settings=settings,
        now=now,
        console=c,
    )
    record = run.execute()
    c.print(render_report(record.mode, record.pod_name, record.report), markup=False, highlight=False)
    return record


def run_comparison(
    targets: Iterable[DeploymentTarget],
    cluster: ClusterClient,
    observer: ClusterObserver,
    settings: Settings,
    console: Console | None = None,
    now: Callable[[], datetime] = _utcnow,
) -> dict[str, RunRecord]:
    """Measure each target back to back; with two or more, print the comparison table."""
    c = console or observer.console
    records: dict[str, RunRecord] = {}
    for target in targets:
        records[target.mode] = run_measurement(target, cluster, observer, settings, c, now)
    if len(records) > 1:
        reports = {mode: r.report for mode, r in records.items()}
        c.print()
        c.print(render_comparison_table(reports), markup=False, highlight=False)
        c.print(compare(reports).summary())
    return records
