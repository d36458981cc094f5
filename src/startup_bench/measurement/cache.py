"""Evict cached image layers from nodes before a cold-start measurement."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

from rich.console import Console

from startup_bench.observation.observer import ClusterObserver

logger = logging.getLogger(__name__)

CLEANER_SELECTOR = "app=image-cleaner"


class ManifestApplier(Protocol):
    def apply_manifest(self, path: Path) -> None: ...

    def delete_manifest(self, path: Path) -> None: ...


class CacheResetController:
    """Runs the image-cleaner DaemonSet to completion and removes it.

    If the cleaner pods never become Ready the wait's PollTimeoutError
    propagates: measuring against a warm cache would invalidate the run.
    """

    def __init__(
        self,
        cluster: ManifestApplier,
        observer: ClusterObserver,
        manifest: Path,
        timeout: float = 60.0,
        selector: str = CLEANER_SELECTOR,
        console: Console | None = None,
    ) -> None:
        self.cluster = cluster
        self.observer = observer
        self.manifest = manifest
        self.timeout = timeout
        self.selector = selector
        self.console = console or observer.console

    def reset_cache(self) -> None:
        self.console.print("--- Resetting Node Cache ---")
        self.console.print("Deploying image-cleaner DaemonSet...")
        self.cluster.apply_manifest(self.manifest)
        try:
            self.console.print("Waiting for cleaner to run...")
            pods = self.observer.await_all_ready(self.selector, timeout=self.timeout)
            logger.info("Image cleaner ran on %d node(s)", len(pods))
            self.console.print("Cache cleared. Deleting cleaner...")
        finally:
            self.cluster.delete_manifest(self.manifest)
        self.console.print("Done.\n")
