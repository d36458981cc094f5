"""Tests for the measurement run state machine."""

from __future__ import annotations

from pathlib import Path

import pytest

from conftest import FakeCluster, at, make_observer, make_pod
from startup_bench.config import Settings
from startup_bench.errors import BenchmarkError, PodFailedError, PollTimeoutError
from startup_bench.measurement import MeasurementRun, RunStage, evict_gpu_nodes, run_comparison, run_measurement
from startup_bench.measurement.targets import RUNAI, STANDARD, vllm_targets
from startup_bench.observation import EventRecord

CONTAINER = "inference-server"
READY_LOG = "Loading weights took 41.5 seconds\nINFO Application startup complete.\n"


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(manifest_dir=tmp_path, delete_gpu_nodes=False, static_dir=None)


@pytest.fixture
def target(settings: Settings):
    return vllm_targets(settings.manifest_dir)[STANDARD]


def wall_clock(*times):
    it = iter(times)
    return lambda: next(it)


def started_pod(phase: str = "Running", name: str = "model-server-abc", container: str = CONTAINER):
    return make_pod(
        name=name,
        phase=phase,
        node_name="gke-l4-node",
        created=at(0),
        container=container,
        started_at=at(140),
        scheduled_at=at(60),
    )


def happy_cluster() -> FakeCluster:
    pending = make_pod(name="model-server-abc", created=at(0))
    scheduled = make_pod(name="model-server-abc", created=at(0), node_name="gke-l4-node")
    waiting = make_pod(name="model-server-abc", node_name="gke-l4-node", container=CONTAINER)
    return FakeCluster(
        pods=[[], [pending], [scheduled]],
        pod_reads=[waiting, started_pod()],
        logs=["", READY_LOG],
        events=[
            EventRecord(reason="Scheduled", first_timestamp=at(60)),
            EventRecord(reason="Pulling", first_timestamp=at(65)),
            EventRecord(reason="Pulled", first_timestamp=at(125)),
            EventRecord(reason="Pulling", first_timestamp=at(126)),
            EventRecord(reason="Pulled", first_timestamp=at(130)),
        ],
    )


class TestMeasurementRun:
    def test_full_run(self, target, settings, clock, console) -> None:
        cluster = happy_cluster()
        run = MeasurementRun(
            target=target,
            cluster=cluster,
            observer=make_observer(cluster, clock, console),
            settings=settings,
            now=wall_clock(at(-2), at(400)),
            console=console,
        )

        record = run.execute()

        assert run.stage == RunStage.REPORTED
        assert record.mode == STANDARD
        assert record.pod_name == "model-server-abc"
        assert record.node_name == "gke-l4-node"
        r = record.report
        assert (r.node_provisioning, r.image_pull, r.runtime_startup, r.total_wall_clock) == (60, 60, 20, 402)
        assert r.weight_load == 41.5
        assert r.torch_compile is None
        assert cluster.called("delete_manifest") == [target.manifest]
        assert cluster.called("apply_manifest") == [target.manifest]
        assert cluster.called("read_logs")[0] == ("model-server-abc", CONTAINER)
        assert cluster.called("list_nodes") == []

    def test_pod_failure_aborts(self, target, settings, clock, console) -> None:
        cluster = happy_cluster()
        cluster.pod_reads = [started_pod(), started_pod(phase="Failed")]
        cluster.logs = ["crash"]
        run = MeasurementRun(
            target=target,
            cluster=cluster,
            observer=make_observer(cluster, clock, console),
            settings=settings,
            now=wall_clock(at(-2), at(400)),
            console=console,
        )

        with pytest.raises(PodFailedError) as exc_info:
            run.execute()

        assert run.stage == RunStage.FAILED
        assert run.record is None
        assert exc_info.value.pod_name == "model-server-abc"
        assert exc_info.value.phase == "Failed"

    def test_failed_while_waiting_for_container(self, target, settings, clock, console) -> None:
        cluster = happy_cluster()
        cluster.pod_reads = [make_pod(name="model-server-abc", phase="Failed", node_name="n")]
        run = MeasurementRun(
            target=target,
            cluster=cluster,
            observer=make_observer(cluster, clock, console),
            settings=settings,
            now=wall_clock(at(-2)),
            console=console,
        )
        with pytest.raises(PodFailedError):
            run.execute()
        assert isinstance(run.error, PodFailedError)

    def test_schedule_timeout_surfaces_context(self, target, settings, clock, console) -> None:
        settings.schedule_timeout = 10
        cluster = FakeCluster(pods=[[], [make_pod(name="model-server-abc")]])
        run = MeasurementRun(
            target=target,
            cluster=cluster,
            observer=make_observer(cluster, clock, console),
            settings=settings,
            now=wall_clock(at(-2)),
            console=console,
        )

        with pytest.raises(PollTimeoutError) as exc_info:
            run.execute()

        assert run.stage == RunStage.FAILED
        assert exc_info.value.last_state.name == "model-server-abc"
        assert "scheduled" in exc_info.value.description
        assert cluster.called("read_pod") == []

    def test_stuck_old_pods_do_not_abort(self, target, settings, clock, console) -> None:
        settings.cleanup_timeout = 4
        settings.schedule_timeout = 4
        old = make_pod(name="old", terminating=True)
        cluster = FakeCluster(pods=[[old]])
        run = MeasurementRun(
            target=target,
            cluster=cluster,
            observer=make_observer(cluster, clock, console),
            settings=settings,
            now=wall_clock(at(-2)),
            console=console,
        )
        with pytest.raises(PollTimeoutError):
            run.execute()
        # cleanup wait timed out, the run still applied and moved on
        assert cluster.called("apply_manifest") == [target.manifest]

    def test_app_ready_timeout_message_stays_short(self, target, settings, clock, console) -> None:
        settings.app_ready_timeout = 20
        noisy_log = "\n".join(f"INFO loading shard {i}" for i in range(5000))
        cluster = happy_cluster()
        cluster.logs = [noisy_log]
        run = MeasurementRun(
            target=target,
            cluster=cluster,
            observer=make_observer(cluster, clock, console),
            settings=settings,
            now=wall_clock(at(-2)),
            console=console,
        )

        with pytest.raises(PollTimeoutError) as exc_info:
            run.execute()

        assert run.stage == RunStage.FAILED
        assert exc_info.value.last_state == noisy_log
        assert len(str(exc_info.value)) < 2000
        assert "application startup" in str(exc_info.value)

    def test_waits_need_a_scheduled_pod(self, target, settings, clock, console) -> None:
        cluster = happy_cluster()
        run = MeasurementRun(
            target=target,
            cluster=cluster,
            observer=make_observer(cluster, clock, console),
            settings=settings,
            console=console,
        )
        with pytest.raises(BenchmarkError, match="no scheduled pod"):
            run.wait_app_ready()
        with pytest.raises(BenchmarkError, match="no scheduled pod"):
            run.reduce_durations()
        assert cluster.called("read_logs") == []


class TestEvictGpuNodes:
    def test_deletes_and_waits(self, clock, console) -> None:
        cluster = FakeCluster(nodes=[["gpu-1", "gpu-2"], ["gpu-2"], []])
        observer = make_observer(cluster, clock, console)

        deleted = evict_gpu_nodes(cluster, observer, "pool=gpu", timeout=60, interval=5, console=console)

        assert deleted == ["gpu-1", "gpu-2"]
        assert cluster.called("delete_node") == ["gpu-1", "gpu-2"]
        assert clock.sleeps == [5]

    def test_no_nodes(self, clock, console) -> None:
        cluster = FakeCluster(nodes=[[]])
        assert evict_gpu_nodes(cluster, make_observer(cluster, clock, console), "pool=gpu", 60, 5, console) == []
        assert cluster.called("delete_node") == []

    def test_run_evicts_when_enabled(self, target, settings, clock, console) -> None:
        settings.delete_gpu_nodes = True
        cluster = happy_cluster()
        cluster.nodes = [["gpu-1"], []]
        run = MeasurementRun(
            target=target,
            cluster=cluster,
            observer=make_observer(cluster, clock, console),
            settings=settings,
            now=wall_clock(at(-2), at(400)),
            console=console,
        )
        run.execute()
        assert cluster.called("delete_node") == ["gpu-1"]
        assert cluster.called("list_nodes")[0] == settings.gpu_node_selector


class TestRunComparison:
    def test_two_modes_print_table(self, settings, clock, console) -> None:
        cluster = happy_cluster()
        runai_pod = started_pod(name="model-server-runai-xyz", container="vllm-container")
        # each run: cleanup sees no pods, then its pod is already running
        cluster.pods = [[], [started_pod()], [], [runai_pod]]
        cluster.pod_reads = [started_pod(), started_pod(), runai_pod, runai_pod]
        cluster.logs = [READY_LOG]
        targets = vllm_targets(settings.manifest_dir)

        records = run_comparison(
            [targets[STANDARD], targets[RUNAI]],
            cluster,
            make_observer(cluster, clock, console),
            settings,
            console,
            now=wall_clock(at(-2), at(400), at(500), at(600)),
        )

        assert list(records) == [STANDARD, RUNAI]
        assert records[STANDARD].report.total_wall_clock == 402
        assert records[RUNAI].report.total_wall_clock == 100
        out = console.export_text()
        assert "STARTUP PERFORMANCE COMPARISON" in out
        assert "RunAI is 302s faster than Standard." in out

    def test_single_mode_prints_breakdown_only(self, target, settings, clock, console) -> None:
        cluster = happy_cluster()
        record = run_measurement(
            target,
            cluster,
            make_observer(cluster, clock, console),
            settings,
            console,
            now=wall_clock(at(-2), at(400)),
        )
        out = console.export_text()
        assert ">>> Starting Measurement for Mode: Standard" in out
        assert "Metrics for Standard (model-server-abc)" in out
        assert "COMPARISON" not in out
        assert record.report.total_wall_clock == 402
