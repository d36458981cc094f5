"""Configuration and environment for the startup benchmark."""

from __future__ import annotations

from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Benchmark settings loaded from environment and .env."""

    model_config = SettingsConfigDict(
        env_prefix="STARTUP_BENCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Kubernetes
    kubeconfig: Path | None = Field(
        default=None,
        description="Path to kubeconfig; uses KUBECONFIG env or default location if unset",
    )
    context: str | None = Field(default=None, description="Kubernetes context to use")
    namespace: str = Field(default="default", description="Namespace the deployments live in")
    manifest_dir: Path = Field(
        default=Path("."),
        description="Directory holding the deployment and cleanup manifests",
    )

    # Cold start
    delete_gpu_nodes: bool = Field(
        default=True,
        description="Delete GPU nodes before each run so the measurement includes a scale-up",
    )
    gpu_node_selector: str = Field(
        default="cloud.google.com/compute-class=l4",
        description="Label selector for the GPU nodes removed before a cold start",
    )

    # Poll intervals (seconds)
    schedule_poll_interval: float = Field(default=2.0, gt=0)
    container_poll_interval: float = Field(default=2.0, gt=0)
    app_ready_poll_interval: float = Field(default=10.0, gt=0)
    node_poll_interval: float = Field(default=5.0, gt=0)
    ready_poll_interval: float = Field(default=5.0, gt=0)

    # Timeouts (seconds)
    cleanup_timeout: float = Field(default=120.0, gt=0, description="Wait for old pods to terminate")
    node_removal_timeout: float = Field(default=600.0, gt=0)
    schedule_timeout: float = Field(default=1800.0, gt=0, description="Includes node provisioning")
    container_timeout: float = Field(default=1800.0, gt=0, description="Includes image pull")
    app_ready_timeout: float = Field(default=1800.0, gt=0)
    cache_reset_timeout: float = Field(default=60.0, gt=0)
    pod_ready_timeout: float = Field(default=600.0, gt=0)

    # UI proxy
    backend_url: str = Field(
        default="http://localhost:8080",
        description="Inference server base URL; /v1 requests are forwarded here",
    )
    bucket_name: str = Field(
        default="",
        validation_alias=AliasChoices("bucket_name", "STARTUP_BENCH_BUCKET_NAME", "BUCKET_NAME"),
        description="Bucket holding the model weights, exposed to the UI via /api/config",
    )
    static_dir: Path | None = Field(default=Path("public"), description="Static UI files served at /")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000, ge=1, le=65535)
    proxy_timeout: float = Field(default=300.0, gt=0, description="Upstream request timeout")


def get_settings() -> Settings:
    """Return validated settings instance."""
    return Settings()
