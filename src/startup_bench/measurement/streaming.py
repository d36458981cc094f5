"""Ready-time comparison: standard image pull vs. image streaming."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from rich.console import Console

from startup_bench.config import Settings
from startup_bench.errors import PollTimeoutError
from startup_bench.measurement.cache import CacheResetController
from startup_bench.measurement.models import DeploymentTarget
from startup_bench.measurement.reducer import Comparison, elapsed_seconds
from startup_bench.measurement.targets import IMAGE_STREAMING, RESET_CACHE_MANIFEST
from startup_bench.observation.cluster import ClusterClient
from startup_bench.observation.models import EventRecord
from startup_bench.observation.observer import ClusterObserver

logger = logging.getLogger(__name__)

STREAMING_EVENT_REASON = "imagestreaming"
STREAMING_EVENT_MESSAGE = "backed by image streaming"


def find_streaming_event(events: list[EventRecord]) -> EventRecord | None:
    """Most recent event reporting that a container image is served by image streaming."""
    matches = [
        ev
        for ev in events
        if STREAMING_EVENT_REASON in f"{ev.reason} {ev.message}".lower()
        and STREAMING_EVENT_MESSAGE in ev.message
    ]
    return matches[-1] if matches else None


class StreamingComparison:
    """Measures time-to-Ready for each target after a node cache reset."""

    def __init__(
        self,
        cluster: ClusterClient,
        observer: ClusterObserver,
        settings: Settings,
        console: Console | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.cluster = cluster
        self.observer = observer
        self.settings = settings
        self.console = console or observer.console
        self.now = now or (lambda: datetime.now(timezone.utc))

    def cleanup(self, target: DeploymentTarget) -> None:
        """Delete the target's deployments and wait (best effort) for its pods to go away."""
        self.cluster.delete_deployments(target.selector)
        try:
            self.observer.await_no_pods(
                target.selector,
                timeout=self.settings.cleanup_timeout,
                interval=self.settings.ready_poll_interval,
            )
        except PollTimeoutError as e:
            logger.warning("Pods for %s still present after cleanup: %s", target.selector, e)

    def measure_ready_time(self, target: DeploymentTarget) -> int:
        self.console.print(f"--- Testing {target.mode} ---")
        self.console.print(f"Cleaning up previous {target.app_label}...")
        self.cleanup(target)

        self.console.print("Deploying...")
        start = self.now()
        self.cluster.apply_manifest(target.manifest)
        self.observer.await_all_ready(
            target.selector,
            timeout=self.settings.pod_ready_timeout,
            interval=self.settings.ready_poll_interval,
        )
        duration = elapsed_seconds(start, self.now())
        self.console.print(f"{target.mode} Ready Time: {duration} seconds")
        if target.mode == IMAGE_STREAMING:
            self.verify_streaming()
        self.console.print()
        return duration

    def verify_streaming(self) -> EventRecord | None:
        self.console.print("Verifying Image Streaming usage...")
        event = find_streaming_event(self.cluster.list_recent_events())
        if event is None:
            logger.warning("No ImageStreaming event found yet; streaming may not have been used")
            self.console.print(
                "Warning: No explicit Image Streaming event found yet (might be fast or on Node object)"
            )
            return None
        self.console.print("Confirmed: Image Streaming active (Event found)")
        self.console.print(f"  {event.involved_object}: {event.message}", markup=False)
        return event

    def run(self, targets: dict[str, DeploymentTarget], reset_cache: bool = True) -> Comparison:
        self.console.print("Starting Comparison...")
        self.console.print("--- PRE-CLEANUP ---")
        for target in targets.values():
            self.cleanup(target)
        self.console.print("Cleanup complete.\n")

        if reset_cache:
            CacheResetController(
                self.cluster,
                self.observer,
                self.settings.manifest_dir / RESET_CACHE_MANIFEST,
                timeout=self.settings.cache_reset_timeout,
                console=self.console,
            ).reset_cache()

        totals = {mode: self.measure_ready_time(target) for mode, target in targets.items()}

        rule = "=" * 44
        self.console.print(rule)
        self.console.print("Results:")
        width = max(len(m) for m in totals) + 2
        for mode, seconds in totals.items():
            self.console.print(f"{mode + ':':<{width}} {seconds}s")
        self.console.print(rule)
        comparison = Comparison.from_totals(totals)
        self.console.print(comparison.summary())
        return comparison
