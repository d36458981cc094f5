"""Bounded polling over cluster state."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Protocol, TypeVar

from kubernetes.client.rest import ApiException
from rich.console import Console

from startup_bench.errors import PollTimeoutError
from startup_bench.observation.models import PodState, select_latest_pod

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PodLister(Protocol):
    def list_pods(self, selector: str) -> list[PodState]: ...


class ClusterObserver:
    """Polls cluster state at a fixed interval until a condition holds.

    The observer only reads. ``clock`` and ``sleep`` are injectable so waits
    can be simulated without real delays.
    """

    def __init__(
        self,
        cluster: PodLister,
        poll_interval: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        console: Console | None = None,
        progress: bool = True,
    ) -> None:
        self.cluster = cluster
        self.poll_interval = poll_interval
        self.clock = clock
        self.sleep = sleep
        self.console = console or Console()
        self.progress = progress

    def poll(
        self,
        fetch: Callable[[], T],
        predicate: Callable[[T], bool],
        timeout: float,
        interval: float | None = None,
        description: str = "condition",
    ) -> T:
        """
        Call ``fetch`` until ``predicate`` accepts its result. Returns that result.

        A poll is never started past the deadline: with timeout=5 and interval=2
        fetch runs at t=0, 2, 4 and the wait then fails. Exceptions raised by
        ``fetch`` or ``predicate`` propagate unchanged.
        """
        step = self.poll_interval if interval is None else interval
        start = self.clock()
        polls = 0
        state: T | None = None
        dotted = False
        while True:
            state = fetch()
            polls += 1
            if predicate(state):
                if dotted:
                    self.console.print()
                logger.debug("%s satisfied after %d polls", description, polls)
                return state
            elapsed = self.clock() - start
            if elapsed + step > timeout:
                if dotted:
                    self.console.print()
                raise PollTimeoutError(description, elapsed, polls, state)
            if self.progress:
                self.console.print(".", end="")
                dotted = True
            self.sleep(step)

    def latest_pod(self, selector: str) -> PodState | None:
        """Most recently created non-terminating pod for the selector, or None."""
        try:
            pods = self.cluster.list_pods(selector)
        except ApiException as e:
            logger.debug("Listing pods for %s failed: %s", selector, e.reason)
            return None
        return select_latest_pod(pods)

    def await_condition(
        self,
        selector: str,
        predicate: Callable[[PodState], bool],
        timeout: float,
        interval: float | None = None,
        description: str | None = None,
    ) -> PodState:
        """Wait until the latest pod for ``selector`` exists and satisfies ``predicate``."""
        return self.poll(
            lambda: self.latest_pod(selector),
            lambda pod: pod is not None and predicate(pod),
            timeout=timeout,
            interval=interval,
            description=description or f"pod matching {selector}",
        )

    def await_all_ready(self, selector: str, timeout: float, interval: float | None = None) -> list[PodState]:
        """Wait until at least one pod matches and every live matching pod is Ready."""

        def fetch() -> list[PodState]:
            try:
                return [p for p in self.cluster.list_pods(selector) if not p.terminating]
            except ApiException as e:
                logger.debug("Listing pods for %s failed: %s", selector, e.reason)
                return []

        return self.poll(
            fetch,
            lambda pods: bool(pods) and all(p.ready for p in pods),
            timeout=timeout,
            interval=interval,
            description=f"pods matching {selector} to be Ready",
        )

    def await_no_pods(self, selector: str, timeout: float, interval: float | None = None) -> None:
        """Wait until no pod matches the selector."""
        self.poll(
            lambda: self.cluster.list_pods(selector),
            lambda pods: not pods,
            timeout=timeout,
            interval=interval,
            description=f"pods matching {selector} to terminate",
        )
