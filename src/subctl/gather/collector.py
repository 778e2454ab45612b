"""Per-cluster diagnostic data collection.

For every requested module the collector finds the module's pods (by
label selector) and custom resources, then writes:

- ``resources``: one YAML file per object,
  ``<dir>/<cluster>/<module>/<kind>_<namespace>_<name>.yaml``
- ``logs``: one file per pod container,
  ``<dir>/<cluster>/<module>/<pod>_<container>.log``

Names are percent-encoded into path segments, so every distinct name
gets its own file or directory.

Everything passes through the ``Redactor`` before it touches disk unless
``include_sensitive_data`` is set.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable
from urllib.parse import quote

import yaml
from kubernetes import client
from kubernetes.client.exceptions import ApiException

from subctl.gather.redact import Redactor
from subctl.models import GatherModule, GatherOptions, GatherType

if TYPE_CHECKING:
    from subctl.cluster import ClusterContext
    from subctl.reporter import Reporter

logger = logging.getLogger(__name__)

BROKER_SCOPE = "broker"
OPERATOR_SCOPE = "operator"
ALL_NAMESPACES = "all"


@dataclass(frozen=True)
class CustomResource:
    group: str
    version: str
    plural: str
    kind: str
    scope: str = ALL_NAMESPACES


@dataclass(frozen=True)
class ModuleSpec:
    """What belongs to one gather module."""

    pod_selectors: tuple[str, ...] = ()
    custom_resources: tuple[CustomResource, ...] = ()
    broker_secrets: bool = False


MODULE_SPECS: dict[str, ModuleSpec] = {
    GatherModule.CONNECTIVITY: ModuleSpec(
        pod_selectors=(
            "app=submariner-gateway",
            "app=submariner-routeagent",
            "app=submariner-globalnet",
            "app=submariner-metrics-proxy",
        ),
        custom_resources=(
            CustomResource("submariner.io", "v1", "gateways", "Gateway", OPERATOR_SCOPE),
            CustomResource("submariner.io", "v1", "endpoints", "Endpoint", OPERATOR_SCOPE),
            CustomResource("submariner.io", "v1", "clusters", "Cluster", OPERATOR_SCOPE),
        ),
    ),
    GatherModule.SERVICE_DISCOVERY: ModuleSpec(
        pod_selectors=(
            "app=submariner-lighthouse-agent",
            "app=submariner-lighthouse-coredns",
        ),
        custom_resources=(
            CustomResource("multicluster.x-k8s.io", "v1alpha1", "serviceexports", "ServiceExport"),
            CustomResource("multicluster.x-k8s.io", "v1alpha1", "serviceimports", "ServiceImport"),
        ),
    ),
    GatherModule.BROKER: ModuleSpec(
        custom_resources=(
            CustomResource("submariner.io", "v1alpha1", "brokers", "Broker", BROKER_SCOPE),
            CustomResource("submariner.io", "v1", "clusters", "Cluster", BROKER_SCOPE),
            CustomResource("submariner.io", "v1", "endpoints", "Endpoint", BROKER_SCOPE),
        ),
        broker_secrets=True,
    ),
    GatherModule.OPERATOR: ModuleSpec(
        pod_selectors=("name=submariner-operator",),
        custom_resources=(
            CustomResource("submariner.io", "v1alpha1", "submariners", "Submariner", OPERATOR_SCOPE),
            CustomResource("submariner.io", "v1alpha1", "servicediscoveries", "ServiceDiscovery", OPERATOR_SCOPE),
        ),
    ),
}

def _safe(name: str) -> str:
    """Percent-encode *name* into a single path segment.

    Distinct names always map to distinct segments; an empty name (a
    cluster-scoped object's namespace) becomes ``cluster-scoped``.
    """
    if not name:
        return "cluster-scoped"
    if name in (".", ".."):
        return name.replace(".", "%2E")
    return quote(name, safe="")


@functools.lru_cache(maxsize=1)
def _serializer() -> Any:
    return client.ApiClient()


def to_plain(obj: Any) -> Any:
    """Convert a kubernetes model object into JSON-like data."""
    if isinstance(obj, (dict, list)):
        return obj
    return _serializer().sanitize_for_serialization(obj)


@runtime_checkable
class Collector(Protocol):
    """Protocol for per-cluster data collectors."""

    def collect(
        self,
        cluster: ClusterContext,
        options: GatherOptions,
        reporter: Reporter,
        timeout: float | None = None,
    ) -> Path:
        """Collect data from *cluster*; return the cluster's output directory."""
        ...


class KubernetesCollector:
    """Collects logs and resources through the kubernetes client."""

    def __init__(self, module_specs: dict[str, ModuleSpec] | None = None) -> None:
        self._specs = module_specs or MODULE_SPECS

    def collect(
        self,
        cluster: ClusterContext,
        options: GatherOptions,
        reporter: Reporter,
        timeout: float | None = None,
    ) -> Path:
        redactor = Redactor(enabled=not options.include_sensitive_data)
        base = Path(options.directory) / _safe(cluster.name)
        base.mkdir(parents=True, exist_ok=True)
        core = cluster.core_v1()

        for module in options.modules:
            spec = self._specs[module]
            out = base / module
            out.mkdir(exist_ok=True)
            pods = self._list_pods(core, options.operator_namespace, spec, timeout)

            if GatherType.RESOURCES in options.types:
                count = self._gather_resources(cluster, options, spec, pods, out, redactor, timeout)
                reporter.success(f"Gathered {count} {module} resource(s)")
            if GatherType.LOGS in options.types:
                count = self._gather_logs(core, pods, out, redactor, reporter, timeout)
                reporter.success(f"Gathered {count} {module} log file(s)")

        return base

    # --- Private: discovery ---

    def _list_pods(self, core: Any, namespace: str, spec: ModuleSpec, timeout: float | None) -> list[Any]:
        pods: list[Any] = []
        for selector in spec.pod_selectors:
            result = core.list_namespaced_pod(namespace=namespace, label_selector=selector, _request_timeout=timeout)
            pods.extend(result.items or [])
        return pods

    def _list_custom_objects(
        self, api: Any, resource: CustomResource, options: GatherOptions, timeout: float | None,
    ) -> list[dict[str, Any]]:
        target = {"group": resource.group, "version": resource.version, "plural": resource.plural}
        try:
            if resource.scope == ALL_NAMESPACES:
                result = api.list_cluster_custom_object(_request_timeout=timeout, **target)
            else:
                namespace = options.broker_namespace if resource.scope == BROKER_SCOPE else options.operator_namespace
                result = api.list_namespaced_custom_object(namespace=namespace, _request_timeout=timeout, **target)
        except ApiException as exc:
            if exc.status == 404:
                logger.debug("%s.%s is not installed, skipping", resource.plural, resource.group)
                return []
            raise
        return list(result.get("items") or [])

    # --- Private: writers ---

    def _gather_resources(
        self,
        cluster: ClusterContext,
        options: GatherOptions,
        spec: ModuleSpec,
        pods: list[Any],
        out: Path,
        redactor: Redactor,
        timeout: float | None,
    ) -> int:
        objects: list[tuple[str, dict[str, Any]]] = [("Pod", to_plain(pod)) for pod in pods]

        custom = cluster.custom_objects()
        for resource in spec.custom_resources:
            objects.extend(
                (resource.kind, item) for item in self._list_custom_objects(custom, resource, options, timeout)
            )

        if spec.broker_secrets:
            secrets = cluster.core_v1().list_namespaced_secret(
                namespace=options.broker_namespace, _request_timeout=timeout,
            )
            objects.extend(("Secret", to_plain(secret)) for secret in secrets.items or [])

        for kind, data in objects:
            data = dict(data)
            data.setdefault("kind", kind)
            metadata = data.get("metadata") or {}
            name = f"{kind}_{_safe(metadata.get('namespace', ''))}_{_safe(metadata.get('name', ''))}.yaml"
            (out / name).write_text(
                yaml.safe_dump(redactor.redact_object(data), default_flow_style=False, sort_keys=False),
                encoding="utf-8",
            )
        return len(objects)

    def _gather_logs(
        self,
        core: Any,
        pods: list[Any],
        out: Path,
        redactor: Redactor,
        reporter: Reporter,
        timeout: float | None,
    ) -> int:
        written = 0
        for pod in pods:
            name = pod.metadata.name
            namespace = pod.metadata.namespace
            for container in pod.spec.containers or []:
                try:
                    text = core.read_namespaced_pod_log(
                        name=name, namespace=namespace, container=container.name, _request_timeout=timeout,
                    )
                except ApiException as exc:
                    reporter.warning(f"Unable to read logs of {namespace}/{name} ({container.name}): {exc.reason}")
                    continue
                path = out / f"{_safe(name)}_{_safe(container.name)}.log"
                path.write_text(redactor.redact_text(text or ""), encoding="utf-8")
                written += 1
        return written
