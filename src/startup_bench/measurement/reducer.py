"""Reduce phase timestamps into durations and compare runs."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime

from startup_bench.errors import IncompleteMeasurementError
from startup_bench.measurement.models import DurationReport, PhaseTimestamps

logger = logging.getLogger(__name__)

METRIC_WIDTH = 25
VALUE_WIDTH = 12


def _seconds(ts: datetime) -> int:
    """Whole epoch seconds, truncating any fractional part."""
    return int(ts.timestamp())


def elapsed_seconds(start: datetime, end: datetime) -> int:
    """Whole seconds from start to end."""
    return _seconds(end) - _seconds(start)


def seconds_between(start: datetime | None, end: datetime | None) -> int | None:
    """Like elapsed_seconds, but None if either end is unknown."""
    if start is None or end is None:
        return None
    return elapsed_seconds(start, end)


def reduce(timestamps: PhaseTimestamps, sub_phases: Mapping[str, float] | None = None) -> DurationReport:
    """
    Derive the duration report for a completed run.

    Raises IncompleteMeasurementError when a required timestamp is missing.
    A missing pull start/end pair counts as a zero-second pull and the report's
    ``image_pull_observed`` is False. Negative durations are kept as computed and
    listed in ``anomalies``.
    """
    missing = timestamps.missing()
    if missing:
        raise IncompleteMeasurementError(missing)

    pull = seconds_between(timestamps.pull_start, timestamps.pull_end)
    image_pull = pull if pull is not None else 0
    node_provisioning = seconds_between(timestamps.creation, timestamps.scheduled)
    runtime_startup = seconds_between(timestamps.scheduled, timestamps.container_running) - image_pull
    total = seconds_between(timestamps.apply, timestamps.app_ready)

    values = {
        "node_provisioning": node_provisioning,
        "image_pull": image_pull,
        "runtime_startup": runtime_startup,
        "total_wall_clock": total,
    }
    anomalies = tuple(name for name, value in values.items() if value < 0)
    for name in anomalies:
        logger.warning(
            "Negative %s (%ss): events out of order or clocks skewed; check cluster timestamps",
            name,
            values[name],
        )

    sub = dict(sub_phases or {})
    return DurationReport(
        **values,
        image_pull_observed=pull is not None,
        weight_load=sub.get("weight_load"),
        torch_compile=sub.get("torch_compile"),
        graph_capture=sub.get("graph_capture"),
        anomalies=anomalies,
    )


@dataclass(frozen=True)
class Comparison:
    """Total wall clock per mode and which mode came out ahead."""

    totals: dict[str, int]
    fastest: str | None
    improvement: int

    @classmethod
    def from_totals(cls, totals: Mapping[str, int]) -> Comparison:
        if len(totals) < 2:
            raise ValueError("A comparison needs at least two modes")
        ranked = sorted(totals.items(), key=lambda kv: kv[1])
        (best, best_total), (_, runner_up_total) = ranked[0], ranked[1]
        if best_total == runner_up_total:
            return cls(totals=dict(totals), fastest=None, improvement=0)
        return cls(totals=dict(totals), fastest=best, improvement=runner_up_total - best_total)

    def summary(self) -> str:
        if self.fastest is None:
            best_total = min(self.totals.values())
            tied = [n for n, total in self.totals.items() if total == best_total]
            return f"{tied[-1]} is not faster than {', '.join(tied[:-1])}."
        others = [n for n in self.totals if n != self.fastest]
        runner_up = min(others, key=lambda n: self.totals[n])
        return f"{self.fastest} is {self.improvement}s faster than {runner_up}."


def compare(reports: Mapping[str, DurationReport]) -> Comparison:
    return Comparison.from_totals({mode: r.total_wall_clock for mode, r in reports.items()})


def _cell(value: int | float | None, anomalous: bool = False, unobserved: bool = False) -> str:
    if value is None:
        text = "0s"
    elif isinstance(value, float):
        text = f"{value:g}s"
    else:
        text = f"{value}s"
    if unobserved:
        text += "*"
    if anomalous:
        text += " !"
    return text


def _row(label: str, cells: list[str]) -> str:
    return f"{label:<{METRIC_WIDTH}} | " + " | ".join(f"{c:<{VALUE_WIDTH}}" for c in cells)


def render_comparison_table(reports: Mapping[str, DurationReport]) -> str:
    """Fixed-width side-by-side table of every duration, one column per mode."""
    modes = list(reports)
    rule_width = METRIC_WIDTH + (VALUE_WIDTH + 3) * len(modes)
    rows = [
        ("Node Provisioning", "node_provisioning"),
        ("Image Pulling", "image_pull"),
        ("Runtime Startup", "runtime_startup"),
        ("vLLM Weight Loading", "weight_load"),
        ("Torch Compilation", "torch_compile"),
        ("CUDA Graph Capture", "graph_capture"),
    ]
    lines = [
        "=" * rule_width,
        "STARTUP PERFORMANCE COMPARISON".center(rule_width).rstrip(),
        "=" * rule_width,
        _row("Metric", modes),
        "-" * rule_width,
    ]
    for label, field_name in rows:
        cells = []
        for mode in modes:
            r = reports[mode]
            cells.append(
                _cell(
                    getattr(r, field_name),
                    anomalous=field_name in r.anomalies,
                    unobserved=field_name == "image_pull" and not r.image_pull_observed,
                )
            )
        lines.append(_row(label, cells))
    lines.append("-" * rule_width)
    lines.append(
        _row(
            "TOTAL WALL CLOCK",
            [_cell(reports[m].total_wall_clock, "total_wall_clock" in reports[m].anomalies) for m in modes],
        )
    )
    lines.append("=" * rule_width)
    if any(not r.image_pull_observed for r in reports.values()):
        lines.append("* no Pulling/Pulled events observed; pull time unmeasured")
    if any(r.has_anomalies for r in reports.values()):
        lines.append("! negative duration: events out of order or clock skew")
    return "\n".join(lines)


def render_report(mode: str, pod_name: str, report: DurationReport) -> str:
    """Per-run breakdown printed after each measurement."""
    rule = "-" * 48
    pull = _cell(report.image_pull, "image_pull" in report.anomalies, not report.image_pull_observed)
    lines = [
        rule,
        f"Metrics for {mode} ({pod_name})",
        rule,
        f"1. Node Provisioning:    {_cell(report.node_provisioning, 'node_provisioning' in report.anomalies)}",
        f"2. Image Pulling:        {pull}",
        f"3. Runtime Startup:      {_cell(report.runtime_startup, 'runtime_startup' in report.anomalies)}",
        rule,
        f"Total Wall Clock:        {_cell(report.total_wall_clock, 'total_wall_clock' in report.anomalies)}",
        rule,
    ]
    return "\n".join(lines)
