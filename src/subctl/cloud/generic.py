"""Generic Kubernetes gateway preparation.

No cloud API is involved: gateways are existing worker nodes carrying the
``submariner.io/gateway=true`` label.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from subctl.cloud.base import GATEWAY_LABEL, CloudError

if TYPE_CHECKING:
    from subctl.cluster import ClusterContext
    from subctl.reporter import Reporter

logger = logging.getLogger(__name__)

CONTROL_PLANE_LABELS = (
    "node-role.kubernetes.io/control-plane",
    "node-role.kubernetes.io/master",
)


def _labels(node: Any) -> dict[str, str]:
    return node.metadata.labels or {}


def is_control_plane(node: Any) -> bool:
    labels = _labels(node)
    return any(label in labels for label in CONTROL_PLANE_LABELS)


def is_gateway(node: Any) -> bool:
    return _labels(node).get(GATEWAY_LABEL) == "true"


class NodeLabelGatewayDeployer:
    """Designates worker nodes as gateways by labelling them."""

    def __init__(self, core_api: Any, timeout: float | None = None) -> None:
        self._core = core_api
        self._timeout = timeout

    def _nodes(self) -> list[Any]:
        return list(self._core.list_node(_request_timeout=self._timeout).items or [])

    def _set_label(self, name: str, value: str | None) -> None:
        body = {"metadata": {"labels": {GATEWAY_LABEL: value}}}
        self._core.patch_node(name, body, _request_timeout=self._timeout)

    def deploy(self, gateways: int, reporter: Reporter) -> int:
        """Label worker nodes until *gateways* of them are gateways.

        Nodes that are already labelled count towards the total. Control
        plane nodes are never picked.

        Raises:
            CloudError: If there are not enough eligible worker nodes.
        """
        if gateways < 1:
            raise CloudError(f"at least one gateway is required, got {gateways}")

        reporter.start(f"Labelling {gateways} gateway node(s)")
        nodes = self._nodes()
        labelled = [n for n in nodes if is_gateway(n)]
        needed = gateways - len(labelled)
        if needed <= 0:
            reporter.success(f"{len(labelled)} node(s) already labelled as gateways")
            reporter.end()
            return 0

        candidates = sorted(
            (n for n in nodes if not is_gateway(n) and not is_control_plane(n)),
            key=lambda n: n.metadata.name,
        )
        if len(candidates) < needed:
            raise reporter.error(
                "Not enough worker nodes to label as gateways",
                CloudError(f"need {needed} more worker node(s), only {len(candidates)} eligible"),
            )

        for node in candidates[:needed]:
            logger.debug("Labelling node %s as gateway", node.metadata.name)
            self._set_label(node.metadata.name, "true")
            reporter.success(f"Labelled node {node.metadata.name} as gateway")
        reporter.end()
        return needed

    def cleanup(self, reporter: Reporter) -> int:
        """Remove the gateway label from every node carrying it."""
        reporter.start("Removing gateway labels")
        removed = 0
        for node in self._nodes():
            if GATEWAY_LABEL in _labels(node):
                self._set_label(node.metadata.name, None)
                removed += 1
        reporter.success(f"Removed the gateway label from {removed} node(s)")
        reporter.end()
        return removed


class GenericProvider:
    """Cloud provider for plain Kubernetes clusters."""

    name = "generic"

    def __init__(self, timeout: float | None = None) -> None:
        self._timeout = timeout

    def resolve_credentials(self, reporter: Reporter) -> dict[str, Any]:
        return {}

    def gateway_deployer(self, cluster: ClusterContext) -> NodeLabelGatewayDeployer:
        return NodeLabelGatewayDeployer(cluster.core_v1(), timeout=self._timeout)
