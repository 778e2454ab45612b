"""Cloud gateway capability: protocols, errors and shared helpers.

A cloud provider knows how to obtain its credentials and how to build a
gateway deployer for a cluster. Variants (generic Kubernetes, RHOS) are
selected at the CLI boundary by ``subctl.cloud.build_provider``.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from subctl.errors import SubctlError

if TYPE_CHECKING:
    from subctl.cluster import ClusterContext
    from subctl.reporter import Reporter

GATEWAY_LABEL = "submariner.io/gateway"
METADATA_FILENAME = "metadata.json"


class CloudError(SubctlError):
    """Raised when cloud preparation or cleanup cannot proceed."""


@runtime_checkable
class GatewayDeployer(Protocol):
    """Protocol for gateway provisioning backends."""

    def deploy(self, gateways: int, reporter: Reporter) -> int:
        """Make sure *gateways* gateway nodes exist; return how many were added."""
        ...

    def cleanup(self, reporter: Reporter) -> int:
        """Undo ``deploy``; return how many gateway nodes were released."""
        ...


@runtime_checkable
class CloudProvider(Protocol):
    """Protocol for cloud variants.

    Any object with ``resolve_credentials()`` and ``gateway_deployer()``
    satisfies this protocol.
    """

    name: str

    def resolve_credentials(self, reporter: Reporter) -> dict[str, Any]:
        """Return the credentials the provider will use.

        Raises:
            CloudError: If no usable credentials can be found.
        """
        ...

    def gateway_deployer(self, cluster: ClusterContext) -> GatewayDeployer: ...


def read_metadata_file(path: str | Path) -> dict[str, Any]:
    """Read an OpenShift installer ``metadata.json``.

    *path* may name the file itself or the installation directory holding it.
    """
    target = Path(path)
    if target.is_dir():
        target = target / METADATA_FILENAME
    try:
        data = json.loads(target.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise CloudError(f"unable to read metadata file {target}: {exc}") from exc
    if not isinstance(data, dict):
        raise CloudError(f"expected a JSON object in {target}, got {type(data).__name__}")
    return data
