"""Measurement layer: phase timestamps, duration reports, and run orchestration."""

from startup_bench.measurement.cache import CacheResetController
from startup_bench.measurement.logs import contains_marker, extract_phase_durations
from startup_bench.measurement.models import (
    DeploymentTarget,
    DurationReport,
    Phase,
    PhaseTimestamps,
    RunRecord,
)
from startup_bench.measurement.reducer import (
    Comparison,
    compare,
    reduce,
    render_comparison_table,
    render_report,
)
from startup_bench.measurement.runner import (
    MeasurementRun,
    RunStage,
    evict_gpu_nodes,
    run_comparison,
    run_measurement,
)
from startup_bench.measurement.streaming import StreamingComparison

__all__ = [
    "CacheResetController",
    "Comparison",
    "DeploymentTarget",
    "DurationReport",
    "MeasurementRun",
    "Phase",
    "PhaseTimestamps",
    "RunRecord",
    "RunStage",
    "StreamingComparison",
    "compare",
    "contains_marker",
    "evict_gpu_nodes",
    "extract_phase_durations",
    "reduce",
    "render_comparison_table",
    "render_report",
    "run_comparison",
    "run_measurement",
]
