"""CLI entrypoint for the startup benchmark."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from startup_bench import __version__
from startup_bench.config import Settings, get_settings
from startup_bench.errors import BenchmarkError
from startup_bench.measurement import StreamingComparison, run_comparison
from startup_bench.measurement.targets import RUNAI, STANDARD, streaming_targets, vllm_targets
from startup_bench.observation import ClusterClient, ClusterObserver
from startup_bench.web import serve


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="startup-bench",
        description="Measure pod cold-start time for different image and weight delivery strategies.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--namespace",
        "-n",
        default=None,
        help="Kubernetes namespace to operate in (default: from env or 'default')",
    )
    parser.add_argument(
        "--kubeconfig",
        type=Path,
        default=None,
        help="Path to kubeconfig (default: KUBECONFIG env or ~/.kube/config)",
    )
    parser.add_argument(
        "--context",
        default=None,
        help="Kubernetes context to use",
    )
    parser.add_argument(
        "--manifest-dir",
        type=Path,
        default=None,
        help="Directory containing the deployment manifests (default: from env or cwd)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    measure = sub.add_parser("measure", help="Break down vLLM startup into provisioning, pull, and runtime phases")
    mode = measure.add_mutually_exclusive_group()
    mode.add_argument("--runai", action="store_true", help="Measure only the Run:ai model streamer deployment")
    mode.add_argument("--compare", action="store_true", help="Measure Standard then RunAI and compare")
    measure.add_argument(
        "--keep-nodes",
        action="store_true",
        help="Do not delete GPU nodes before each run (skips node provisioning)",
    )

    sub.add_parser("streaming", help="Compare time-to-Ready for standard pull vs. image streaming")

    serve_cmd = sub.add_parser("serve", help="Run the chat UI and proxy /v1 to the inference server")
    serve_cmd.add_argument("--host", default=None, help="Bind address (default: from env or 0.0.0.0)")
    serve_cmd.add_argument("--port", type=int, default=None, help="Bind port (default: from env or 3000)")
    return parser


def _apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    if args.namespace:
        settings.namespace = args.namespace
    if args.kubeconfig:
        settings.kubeconfig = args.kubeconfig
    if args.context:
        settings.context = args.context
    if args.manifest_dir:
        settings.manifest_dir = args.manifest_dir
    if getattr(args, "keep_nodes", False):
        settings.delete_gpu_nodes = False
    if getattr(args, "host", None):
        settings.host = args.host
    if getattr(args, "port", None):
        settings.port = args.port
    return settings


def _cluster(settings: Settings) -> ClusterClient:
    return ClusterClient(
        namespace=settings.namespace,
        kubeconfig=str(settings.kubeconfig) if settings.kubeconfig else None,
        context=settings.context,
    )


def _measure(args: argparse.Namespace, settings: Settings, console: Console) -> None:
    targets = vllm_targets(settings.manifest_dir)
    if args.compare:
        console.print("Entering Comparison Mode: Standard vs AI Model Streamer")
        selected = [targets[STANDARD], targets[RUNAI]]
    elif args.runai:
        console.print("Mode: AI Model Streamer (models.gke.io)")
        selected = [targets[RUNAI]]
    else:
        console.print("Mode: Standard (GCS Fuse Sidecar)")
        selected = [targets[STANDARD]]
    cluster = _cluster(settings)
    observer = ClusterObserver(cluster, poll_interval=settings.schedule_poll_interval, console=console)
    run_comparison(selected, cluster, observer, settings, console)


def _streaming(settings: Settings, console: Console) -> None:
    console.print("(Ensure the standard and image-streaming node pools exist first)")
    cluster = _cluster(settings)
    observer = ClusterObserver(cluster, poll_interval=settings.ready_poll_interval, console=console)
    StreamingComparison(cluster, observer, settings, console).run(streaming_targets(settings.manifest_dir))


def main(argv: list[str] | None = None) -> int:
    """Entrypoint for startup-bench CLI."""
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True)],
    )
    logger = logging.getLogger("startup_bench")
    if not args.verbose and args.command != "serve":
        logger.setLevel(logging.WARNING)

    console = Console()
    try:
        settings = _apply_overrides(get_settings(), args)
        if args.command == "measure":
            _measure(args, settings, console)
        elif args.command == "streaming":
            _streaming(settings, console)
        elif args.command == "serve":
            serve(settings)
        return 0
    except BenchmarkError as e:
        console.print(f"[bold red]Run aborted:[/bold red] {escape(str(e))}", highlight=False)
        return 1
    except KeyboardInterrupt:
        return 130
    except Exception as e:
        logging.exception("Benchmark failed")
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
