"""Pull sub-phase timings out of inference server logs."""

from __future__ import annotations

import re

APP_READY_MARKER = "Application startup complete"

# phase name -> pattern capturing the seconds value on the marker line
PHASE_PATTERNS: dict[str, re.Pattern[str]] = {
    "weight_load": re.compile(r"Loading weights took ([0-9.]+) seconds"),
    "torch_compile": re.compile(r"torch\.compile takes ([0-9.]+) s"),
    "graph_capture": re.compile(r"Graph capturing finished in ([0-9.]+) secs"),
}


def extract_phase_durations(log_text: str | None) -> dict[str, float]:
    """
    Return the first reported duration for each known phase marker.

    Phases whose marker never appears are omitted. Empty or missing log text
    yields an empty mapping.
    """
    if not log_text:
        return {}
    durations: dict[str, float] = {}
    for phase, pattern in PHASE_PATTERNS.items():
        match = pattern.search(log_text)
        if match is None:
            continue
        try:
            durations[phase] = float(match.group(1))
        except ValueError:
            # e.g. "1.2.3" matched by the digit/dot class
            continue
    return durations


def contains_marker(log_text: str | None, marker: str = APP_READY_MARKER) -> bool:
    return bool(log_text) and marker in log_text
