"""Cloud gateway capability and its variants."""

from __future__ import annotations

from typing import Any

from subctl.cloud.base import CloudError, CloudProvider, GatewayDeployer, read_metadata_file
from subctl.cloud.generic import GenericProvider, NodeLabelGatewayDeployer
from subctl.cloud.rhos import MachineSetGatewayDeployer, RhosConfig, RhosProvider

PROVIDERS = ("generic", "rhos")


def build_provider(name: str, timeout: float | None = None, **options: Any) -> CloudProvider:
    """Build a cloud provider by name.

    Supported names:
    - ``generic``: node labelling, no options
    - ``rhos``: *options* are ``RhosConfig`` fields
    """
    if name == "generic":
        return GenericProvider(timeout=timeout)
    if name == "rhos":
        return RhosProvider(RhosConfig(**options), timeout=timeout)
    raise CloudError(f"unknown cloud provider: {name!r} (expected one of {', '.join(PROVIDERS)})")


__all__ = [
    "PROVIDERS",
    "CloudError",
    "CloudProvider",
    "GatewayDeployer",
    "GenericProvider",
    "MachineSetGatewayDeployer",
    "NodeLabelGatewayDeployer",
    "RhosConfig",
    "RhosProvider",
    "build_provider",
    "read_metadata_file",
]
