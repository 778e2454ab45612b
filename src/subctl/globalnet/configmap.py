"""The globalnet configuration record kept in the broker namespace.

A ConfigMap named ``submariner-globalnet-info`` holds the shared range,
the default per-cluster block size, the enabled flag and (once members
join) the blocks already allotted to each cluster. Once clusters hold
blocks, the range must never be silently redefined: any difference
between the stored record and a new request is a ``ConflictingState``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from kubernetes import client
from kubernetes.client.exceptions import ApiException

from subctl.errors import ConflictingState, InvalidConfiguration
from subctl.globalnet.cidr import parse_cidr
from subctl.models import GlobalnetState

logger = logging.getLogger(__name__)

GLOBALNET_CONFIGMAP_NAME = "submariner-globalnet-info"
GLOBALNET_ENABLED_KEY = "globalnetEnabled"
CLUSTER_INFO_KEY = "clusterinfo"
GLOBALNET_CIDR_RANGE_KEY = "globalnetCidrRange"
GLOBALNET_CLUSTER_SIZE_KEY = "globalnetClusterSize"


@dataclass(frozen=True)
class GlobalnetInfo:
    """Parsed contents of the globalnet configuration record."""

    enabled: bool
    cidr_range: str = ""
    cluster_size: int = 0
    allocations: dict[str, list[str]] = field(default_factory=dict)

    @classmethod
    def from_data(cls, data: dict[str, str] | None) -> GlobalnetInfo:
        data = data or {}
        try:
            cluster_info = json.loads(data.get(CLUSTER_INFO_KEY) or "[]")
            size = int(data.get(GLOBALNET_CLUSTER_SIZE_KEY) or 0)
            allocations = {
                entry.get("cluster_id", ""): list(entry.get("global_cidr") or [])
                for entry in cluster_info
            }
        except (ValueError, TypeError, AttributeError) as exc:
            raise ConflictingState(f"existing globalnet configuration is unreadable: {exc}") from exc

        return cls(
            enabled=str(data.get(GLOBALNET_ENABLED_KEY, "false")).lower() == "true",
            cidr_range=data.get(GLOBALNET_CIDR_RANGE_KEY, ""),
            cluster_size=size,
            allocations=allocations,
        )


def build_configmap_data(state: GlobalnetState) -> dict[str, str]:
    return {
        GLOBALNET_ENABLED_KEY: "true" if state.enabled else "false",
        GLOBALNET_CIDR_RANGE_KEY: state.cidr_range,
        GLOBALNET_CLUSTER_SIZE_KEY: str(state.cluster_size),
        CLUSTER_INFO_KEY: "[]",
    }


def get_globalnet_info(core_api: Any, namespace: str, timeout: float | None = None) -> GlobalnetInfo | None:
    """Read the record from *namespace*. Returns None if it does not exist."""
    try:
        configmap = core_api.read_namespaced_config_map(
            name=GLOBALNET_CONFIGMAP_NAME, namespace=namespace, _request_timeout=timeout,
        )
    except ApiException as exc:
        if exc.status == 404:
            return None
        raise
    return GlobalnetInfo.from_data(configmap.data)


def validate_existing_global_networks(existing: GlobalnetInfo | None, state: GlobalnetState) -> None:
    """Raise ``ConflictingState`` if *existing* disagrees with *state*."""
    if existing is None:
        return

    if not existing.enabled:
        raise ConflictingState(
            "the broker was deployed with globalnet disabled; "
            "redeploying with globalnet enabled would strand joined clusters"
        )

    try:
        requested = parse_cidr(state.cidr_range)
        stored = parse_cidr(existing.cidr_range) if existing.cidr_range else None
    except InvalidConfiguration as exc:
        raise ConflictingState(f"existing globalnet configuration is invalid: {exc}") from exc

    if stored is not None and stored != requested:
        raise ConflictingState(
            f"globalnet CIDR range {state.cidr_range} conflicts with the existing range {existing.cidr_range}"
        )
    if existing.cluster_size and existing.cluster_size != state.cluster_size:
        raise ConflictingState(
            f"globalnet cluster size {state.cluster_size} conflicts with the existing size {existing.cluster_size}"
        )

    seen: list[tuple[str, Any]] = []
    for cluster_id, cidrs in existing.allocations.items():
        for cidr in cidrs:
            try:
                block = parse_cidr(cidr)
            except InvalidConfiguration as exc:
                raise ConflictingState(f"cluster {cluster_id} holds an invalid global CIDR: {exc}") from exc
            if not block.subnet_of(requested):
                raise ConflictingState(
                    f"cluster {cluster_id} holds {cidr}, outside the requested range {state.cidr_range}"
                )
            for other_id, other in seen:
                if block.overlaps(other):
                    raise ConflictingState(
                        f"clusters {other_id} and {cluster_id} hold overlapping global CIDRs"
                    )
            seen.append((cluster_id, block))


def create_globalnet_configmap(core_api: Any, state: GlobalnetState, timeout: float | None = None) -> bool:
    """Create the record if absent. Returns True if it was created."""
    body = client.V1ConfigMap(
        metadata=client.V1ObjectMeta(name=GLOBALNET_CONFIGMAP_NAME, namespace=state.namespace),
        data=build_configmap_data(state),
    )
    try:
        core_api.create_namespaced_config_map(namespace=state.namespace, body=body, _request_timeout=timeout)
    except ApiException as exc:
        if exc.status != 409:
            raise
        # Another writer got there first; it must agree with us.
        validate_existing_global_networks(get_globalnet_info(core_api, state.namespace, timeout), state)
        return False

    logger.info("Created %s in namespace %s", GLOBALNET_CONFIGMAP_NAME, state.namespace)
    return True
