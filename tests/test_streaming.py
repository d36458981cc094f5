"""Tests for the standard pull vs. image streaming comparison."""

from __future__ import annotations

import pytest

from conftest import FakeCluster, at, make_observer, make_pod
from startup_bench.config import Settings
from startup_bench.errors import PollTimeoutError
from startup_bench.measurement import StreamingComparison
from startup_bench.measurement.streaming import find_streaming_event
from startup_bench.measurement.targets import IMAGE_STREAMING, STANDARD_PULL, streaming_targets
from startup_bench.observation import EventRecord

STREAMING_EVENT = EventRecord(
    reason="ImageStreaming",
    message='Image "gcr.io/p/large:1" is backed by image streaming.',
    involved_object="Node/gke-stream-pool-1",
    last_timestamp=at(50),
)


def ready_pod(name: str):
    return make_pod(name=name, phase="Running", ready=True)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(manifest_dir=tmp_path, static_dir=None)


class TestFindStreamingEvent:
    def test_matches_reason_and_message(self) -> None:
        other = EventRecord(reason="Pulled", message="Successfully pulled image")
        assert find_streaming_event([other, STREAMING_EVENT]) == STREAMING_EVENT

    def test_latest_match_returned(self) -> None:
        newer = STREAMING_EVENT.model_copy(update={"involved_object": "Node/gke-stream-pool-2"})
        assert find_streaming_event([STREAMING_EVENT, newer]).involved_object == "Node/gke-stream-pool-2"

    def test_no_match(self) -> None:
        unrelated = EventRecord(reason="ImageStreaming", message="streaming disabled on node")
        assert find_streaming_event([unrelated]) is None
        assert find_streaming_event([]) is None


class TestStreamingComparison:
    def test_full_comparison(self, settings, clock, console) -> None:
        cluster = FakeCluster(
            pods=[
                [],  # pre-cleanup standard
                [],  # pre-cleanup streaming
                [ready_pod("cleaner")],  # cache reset
                [],  # cleanup standard
                [ready_pod("std")],
                [],  # cleanup streaming
                [ready_pod("stream")],
            ],
            recent_events=[STREAMING_EVENT],
        )
        times = iter([at(0), at(300), at(400), at(445)])
        comparison = StreamingComparison(
            cluster,
            make_observer(cluster, clock, console),
            settings,
            console,
            now=lambda: next(times),
        )

        result = comparison.run(streaming_targets(settings.manifest_dir))

        assert result.totals == {STANDARD_PULL: 300, IMAGE_STREAMING: 45}
        assert result.fastest == IMAGE_STREAMING
        assert result.improvement == 255
        assert cluster.called("delete_deployments") == [
            "app=large-image-standard",
            "app=large-image-streaming",
            "app=large-image-standard",
            "app=large-image-streaming",
        ]
        assert cluster.called("apply_manifest") == [
            settings.manifest_dir / "reset-cache.yaml",
            settings.manifest_dir / "pod-standard.yaml",
            settings.manifest_dir / "pod-streaming.yaml",
        ]
        assert len(cluster.called("list_recent_events")) == 1
        out = console.export_text()
        assert "Confirmed: Image Streaming active" in out
        assert "Image Streaming is 255s faster than Standard Pull." in out

    def test_missing_streaming_event_is_warning(self, settings, clock, console) -> None:
        cluster = FakeCluster(pods=[[], [ready_pod("stream")]])
        times = iter([at(0), at(20)])
        comparison = StreamingComparison(
            cluster, make_observer(cluster, clock, console), settings, console, now=lambda: next(times)
        )
        target = streaming_targets(settings.manifest_dir)[IMAGE_STREAMING]

        assert comparison.measure_ready_time(target) == 20
        assert "No explicit Image Streaming event" in console.export_text()

    def test_ready_timeout_aborts(self, settings, clock, console) -> None:
        settings.pod_ready_timeout = 10
        cluster = FakeCluster(pods=[[], [make_pod(name="std", phase="Pending")]])
        comparison = StreamingComparison(
            cluster, make_observer(cluster, clock, console), settings, console, now=lambda: at(0)
        )
        target = streaming_targets(settings.manifest_dir)[STANDARD_PULL]

        with pytest.raises(PollTimeoutError):
            comparison.measure_ready_time(target)
