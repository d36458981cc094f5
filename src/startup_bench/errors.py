"""Exceptions raised by the benchmark harness."""

from __future__ import annotations

import reprlib
from typing import Any

# Bounds the last observed state in messages; a whole container log can be that state.
_state_repr = reprlib.Repr()
_state_repr.maxstring = 300
_state_repr.maxother = 300


class BenchmarkError(Exception):
    """Base class for benchmark failures that abort the current run."""


class PollTimeoutError(BenchmarkError, TimeoutError):
    """A polling wait exceeded its bound."""

    def __init__(
        self,
        description: str,
        elapsed: float,
        polls: int,
        last_state: Any = None,
    ) -> None:
        self.description = description
        self.elapsed = elapsed
        self.polls = polls
        self.last_state = last_state
        super().__init__(
            f"Timed out waiting for {description} after {elapsed:.0f}s "
            f"({polls} polls); last observed state: {_state_repr.repr(last_state)}"
        )


class PodFailedError(BenchmarkError):
    """The watched pod reported a terminal failure phase."""

    def __init__(self, pod_name: str, phase: str, elapsed: float | None = None) -> None:
        self.pod_name = pod_name
        self.phase = phase
        self.elapsed = elapsed
        detail = f" after {elapsed:.0f}s" if elapsed is not None else ""
        super().__init__(f"Pod {pod_name} failed to start (phase={phase}){detail}")


class IncompleteMeasurementError(BenchmarkError):
    """A duration report was requested before all required timestamps were observed."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"Missing phase timestamps: {', '.join(missing)}")


class ProxyError(BenchmarkError):
    """The inference backend could not be reached."""

    def __init__(self, target: str, cause: Exception) -> None:
        self.target = target
        self.cause = cause
        super().__init__(f"Proxy request to {target} failed: {cause}")
