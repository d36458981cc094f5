"""Read and mutate Kubernetes state (pods, events, logs, manifests) for a benchmark run."""

from __future__ import annotations

import logging
from datetime import timezone
from pathlib import Path
from typing import Any

import yaml
from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.dynamic import DynamicClient
from kubernetes.dynamic.exceptions import ConflictError, NotFoundError

from startup_bench.observation.models import (
    ContainerState,
    EventRecord,
    PodCondition,
    PodState,
)

logger = logging.getLogger(__name__)


def _load_kube_config(kubeconfig_path: str | None, context: str | None) -> client.Configuration:
    """Load in-cluster or kubeconfig-based configuration."""
    try:
        config.load_incluster_config()
        return client.Configuration.get_default_copy()
    except config.ConfigException:
        pass
    kwargs: dict[str, Any] = {}
    if kubeconfig_path:
        kwargs["config_file"] = str(kubeconfig_path)
    if context:
        kwargs["context"] = context
    config.load_kube_config(**kwargs)
    return client.Configuration.get_default_copy()


def _utc(ts: Any) -> Any:
    if ts is None:
        return None
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


def _parse_container_state(container_status: Any) -> ContainerState:
    """Extract container state from V1ContainerStatus."""
    state = "unknown"
    reason = None
    started_at = None
    if container_status.state and container_status.state.waiting:
        state = "waiting"
        reason = getattr(container_status.state.waiting, "reason", None)
    elif container_status.state and container_status.state.running:
        state = "running"
        started_at = _utc(getattr(container_status.state.running, "started_at", None))
    elif container_status.state and container_status.state.terminated:
        state = "terminated"
        reason = getattr(container_status.state.terminated, "reason", None)
    return ContainerState(
        name=container_status.name,
        state=state,
        reason=reason,
        started_at=started_at,
        ready=bool(getattr(container_status, "ready", False)),
        restart_count=container_status.restart_count or 0,
    )


def build_pod_state(pod: Any) -> PodState:
    """Build PodState from V1Pod."""
    status = pod.status
    conditions = [
        PodCondition(
            type=c.type or "",
            status=c.status or "",
            last_transition=_utc(c.last_transition_time),
        )
        for c in (getattr(status, "conditions", None) or [])
    ]
    containers = [
        _parse_container_state(cs)
        for cs in (getattr(status, "container_statuses", None) or [])
    ]
    return PodState(
        name=pod.metadata.name,
        namespace=pod.metadata.namespace or "default",
        phase=getattr(status, "phase", None) or "Unknown",
        node_name=getattr(pod.spec, "node_name", None),
        creation_timestamp=_utc(pod.metadata.creation_timestamp),
        deletion_timestamp=_utc(getattr(pod.metadata, "deletion_timestamp", None)),
        conditions=conditions,
        containers=containers,
        labels=dict(pod.metadata.labels or {}),
    )


def build_event_record(ev: Any) -> EventRecord:
    """Build EventRecord from CoreV1Event."""
    obj = ev.involved_object
    involved = f"{getattr(obj, 'kind', '')}/{getattr(obj, 'name', '')}" if obj else ""
    # Events written through events.k8s.io only carry event_time.
    first = ev.first_timestamp or getattr(ev, "event_time", None)
    return EventRecord(
        type=ev.type or "Normal",
        reason=ev.reason or "",
        message=ev.message or "",
        involved_object=involved,
        first_timestamp=_utc(first),
        last_timestamp=_utc(ev.last_timestamp or first),
    )


def load_manifest(path: Path) -> list[dict[str, Any]]:
    """Read every non-empty document of a multi-document YAML manifest."""
    with open(path, encoding="utf-8") as fh:
        return [doc for doc in yaml.safe_load_all(fh) if doc]


class ClusterClient:
    """Kubernetes operations used by a benchmark run.

    Reads (pods, logs, events, nodes) are side-effect free. Mutations are
    limited to applying/deleting manifests, deleting deployments by label, and
    deleting nodes.
    """

    def __init__(
        self,
        namespace: str = "default",
        kubeconfig: str | None = None,
        context: str | None = None,
    ) -> None:
        self.namespace = namespace
        cfg = _load_kube_config(kubeconfig, context)
        api_client = client.ApiClient(cfg)
        self._core = client.CoreV1Api(api_client)
        self._apps = client.AppsV1Api(api_client)
        self._dynamic = DynamicClient(api_client)

    # Reads

    def list_pods(self, selector: str) -> list[PodState]:
        """Pods matching the label selector, oldest first."""
        pod_list = self._core.list_namespaced_pod(namespace=self.namespace, label_selector=selector)
        pods = [build_pod_state(p) for p in pod_list.items]
        return sorted(pods, key=lambda p: p.creation_timestamp.timestamp() if p.creation_timestamp else 0.0)

    def read_pod(self, name: str) -> PodState:
        return build_pod_state(self._core.read_namespaced_pod(name=name, namespace=self.namespace))

    def read_logs(self, pod_name: str, container: str) -> str:
        return self._core.read_namespaced_pod_log(
            name=pod_name,
            namespace=self.namespace,
            container=container,
            timestamps=False,
        ) or ""

    def list_events(self, pod_name: str) -> list[EventRecord]:
        """Events about one pod, in the order the API returns them."""
        event_list = self._core.list_namespaced_event(
            namespace=self.namespace,
            field_selector=f"involvedObject.name={pod_name}",
        )
        return [build_event_record(ev) for ev in event_list.items]

    def list_recent_events(self) -> list[EventRecord]:
        """All namespace events, oldest first by last timestamp."""
        event_list = self._core.list_namespaced_event(namespace=self.namespace)
        events = [build_event_record(ev) for ev in event_list.items]
        return sorted(
            events,
            key=lambda e: e.last_timestamp.timestamp() if e.last_timestamp else 0.0,
        )

    def list_nodes(self, selector: str) -> list[str]:
        node_list = self._core.list_node(label_selector=selector)
        return [n.metadata.name for n in node_list.items]

    # Mutations

    def apply_manifest(self, path: Path) -> None:
        """Create every object in the manifest; objects that already exist are left as is."""
        for doc in load_manifest(path):
            resource = self._dynamic.resources.get(api_version=doc["apiVersion"], kind=doc["kind"])
            name = doc.get("metadata", {}).get("name", "")
            kwargs: dict[str, Any] = {"body": doc}
            if resource.namespaced:
                kwargs["namespace"] = doc.get("metadata", {}).get("namespace") or self.namespace
            try:
                resource.create(**kwargs)
                logger.debug("Created %s/%s", doc["kind"], name)
            except ConflictError:
                logger.info("%s/%s already exists; leaving it in place", doc["kind"], name)

    def delete_manifest(self, path: Path) -> None:
        """Delete every object in the manifest, ignoring objects that are already gone."""
        for doc in load_manifest(path):
            resource = self._dynamic.resources.get(api_version=doc["apiVersion"], kind=doc["kind"])
            name = doc.get("metadata", {}).get("name", "")
            kwargs: dict[str, Any] = {"name": name}
            if resource.namespaced:
                kwargs["namespace"] = doc.get("metadata", {}).get("namespace") or self.namespace
            try:
                resource.delete(**kwargs)
                logger.debug("Deleted %s/%s", doc["kind"], name)
            except NotFoundError:
                logger.debug("%s/%s not found; nothing to delete", doc["kind"], name)

    def delete_deployments(self, selector: str) -> None:
        self._apps.delete_collection_namespaced_deployment(
            namespace=self.namespace,
            label_selector=selector,
        )

    def delete_node(self, name: str) -> None:
        try:
            self._core.delete_node(name=name)
        except ApiException as e:
            if e.status != 404:
                raise
            logger.debug("Node %s already gone", name)
