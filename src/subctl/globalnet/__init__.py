"""Globalnet: the cluster-spanning virtual address space."""

from subctl.globalnet.cidr import (
    check_globalnet_config,
    default_cluster_size,
    get_valid_cluster_size,
    is_valid_cidr,
)
from subctl.globalnet.configmap import (
    CLUSTER_INFO_KEY,
    GLOBALNET_CONFIGMAP_NAME,
    GlobalnetInfo,
    build_configmap_data,
    create_globalnet_configmap,
    get_globalnet_info,
    validate_existing_global_networks,
)

__all__ = [
    "CLUSTER_INFO_KEY",
    "GLOBALNET_CONFIGMAP_NAME",
    "GlobalnetInfo",
    "build_configmap_data",
    "check_globalnet_config",
    "create_globalnet_configmap",
    "default_cluster_size",
    "get_globalnet_info",
    "get_valid_cluster_size",
    "is_valid_cidr",
    "validate_existing_global_networks",
]
