"""Built-in deployment targets for the vLLM and image-streaming benchmarks."""

from __future__ import annotations

from pathlib import Path

from startup_bench.measurement.models import DeploymentTarget

STANDARD = "Standard"
RUNAI = "RunAI"
STANDARD_PULL = "Standard Pull"
IMAGE_STREAMING = "Image Streaming"

RESET_CACHE_MANIFEST = "reset-cache.yaml"


def vllm_targets(manifest_dir: Path) -> dict[str, DeploymentTarget]:
    """GCS Fuse sidecar deployment vs. the Run:ai model streamer deployment."""
    return {
        STANDARD: DeploymentTarget(
            mode=STANDARD,
            manifest=manifest_dir / "vllm-deployment.yaml",
            app_label="model-server",
            container="inference-server",
        ),
        RUNAI: DeploymentTarget(
            mode=RUNAI,
            manifest=manifest_dir / "vllm-deployment-runai.yaml",
            app_label="model-server-runai",
            container="vllm-container",
        ),
    }


def streaming_targets(manifest_dir: Path) -> dict[str, DeploymentTarget]:
    """Large image pulled normally vs. the same image on an image-streaming node pool."""
    return {
        STANDARD_PULL: DeploymentTarget(
            mode=STANDARD_PULL,
            manifest=manifest_dir / "pod-standard.yaml",
            app_label="large-image-standard",
            container="app",
        ),
        IMAGE_STREAMING: DeploymentTarget(
            mode=IMAGE_STREAMING,
            manifest=manifest_dir / "pod-streaming.yaml",
            app_label="large-image-streaming",
            container="app",
        ),
    }
