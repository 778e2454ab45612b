"""Cluster connection resolution.

Turns kubeconfig contexts into ``ClusterContext`` handles: a name, the
default namespace and a connected kubernetes ``ApiClient``. Everything
downstream treats these handles as opaque, read-only connections.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from kubernetes import client, config
from kubernetes.config.config_exception import ConfigException

from subctl.errors import InvalidConfiguration

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClusterContext:
    """A named, connected handle to one cluster's control plane."""

    name: str
    api_client: Any
    cluster: str = ""
    namespace: str = "default"

    def core_v1(self) -> Any:
        return client.CoreV1Api(self.api_client)

    def apps_v1(self) -> Any:
        return client.AppsV1Api(self.api_client)

    def rbac_v1(self) -> Any:
        return client.RbacAuthorizationV1Api(self.api_client)

    def custom_objects(self) -> Any:
        return client.CustomObjectsApi(self.api_client)


def resolve_clusters(
    kubeconfig: str | None = None,
    contexts: Sequence[str] = (),
) -> list[ClusterContext]:
    """Resolve kubeconfig *contexts* (default: the current context).

    Raises:
        InvalidConfiguration: If the kubeconfig cannot be loaded, a
            requested context does not exist, or no client can be built
            for a selected context.
    """
    try:
        available, active = config.list_kube_config_contexts(config_file=kubeconfig)
    except (ConfigException, OSError) as exc:
        raise InvalidConfiguration(f"unable to load kubeconfig: {exc}") from exc

    by_name = {ctx["name"]: ctx for ctx in available or []}
    if contexts:
        missing = [name for name in contexts if name not in by_name]
        if missing:
            raise InvalidConfiguration(f"unknown kubeconfig context(s): {', '.join(missing)}")
        selected = [by_name[name] for name in contexts]
    elif active:
        selected = [active]
    else:
        raise InvalidConfiguration("no current kubeconfig context; use --context(s)")

    clusters: list[ClusterContext] = []
    for ctx in selected:
        details = ctx.get("context") or {}
        try:
            api_client = config.new_client_from_config(config_file=kubeconfig, context=ctx["name"])
        except (ConfigException, OSError) as exc:
            raise InvalidConfiguration(f"unable to connect to context {ctx['name']}: {exc}") from exc
        clusters.append(ClusterContext(
            name=ctx["name"],
            api_client=api_client,
            cluster=details.get("cluster", ""),
            namespace=details.get("namespace", "default"),
        ))
        logger.debug("Resolved context %s (cluster %s)", ctx["name"], details.get("cluster"))
    return clusters
