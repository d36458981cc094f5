"""Startup benchmarking harness for container-image delivery strategies on Kubernetes."""

__version__ = "0.1.0"
