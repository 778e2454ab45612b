"""Globalnet address-space validation and per-cluster block sizing.

The globalnet range is one IPv4 CIDR shared by every cluster that joins
the broker; each cluster is allotted a power-of-two block of it. Sizes
are always strictly smaller than the range so at least two clusters fit.
"""

from __future__ import annotations

import ipaddress

from subctl.errors import InvalidConfiguration
from subctl.models import BrokerSpec

DEFAULT_CLUSTER_COUNT = 256
MIN_DEFAULT_CLUSTER_SIZE = 8

_DISALLOWED_RANGES: tuple[tuple[ipaddress.IPv4Network, str], ...] = (
    (ipaddress.IPv4Network("0.0.0.0/8"), "unspecified"),
    (ipaddress.IPv4Network("127.0.0.0/8"), "loopback"),
    (ipaddress.IPv4Network("169.254.0.0/16"), "link-local"),
    (ipaddress.IPv4Network("224.0.0.0/4"), "multicast"),
    (ipaddress.IPv4Network("255.255.255.255/32"), "broadcast"),
)


def parse_cidr(cidr: str) -> ipaddress.IPv4Network:
    """Parse an IPv4 CIDR. Host bits may be set, as in ``10.1.2.3/16``."""
    try:
        network = ipaddress.ip_network(cidr, strict=False)
    except ValueError as exc:
        raise InvalidConfiguration(f"invalid CIDR {cidr!r}: {exc}") from exc

    if not isinstance(network, ipaddress.IPv4Network) or "/" not in cidr:
        raise InvalidConfiguration(f"invalid CIDR {cidr!r}: expected an IPv4 range like 242.0.0.0/8")
    return network


def _next_power_of_two(value: int) -> int:
    return 1 << (value - 1).bit_length()


def default_cluster_size(network: ipaddress.IPv4Network) -> int:
    """Deterministic per-cluster block size for *network*.

    Room for 256 clusters where the range allows it, otherwise half the
    range.
    """
    total = network.num_addresses
    if total < 2:
        raise InvalidConfiguration(f"globalnet CIDR {network} is too small to split between clusters")

    size = total // DEFAULT_CLUSTER_COUNT
    if size < MIN_DEFAULT_CLUSTER_SIZE:
        size = total // 2
    return size


def get_valid_cluster_size(cidr_range: str, cluster_size: int) -> int:
    """Return the cluster size to use for *cidr_range*.

    Zero means "pick a default". A caller-supplied size is rounded up to
    the next power of two and must leave room for a second cluster.
    """
    network = parse_cidr(cidr_range)

    if cluster_size == 0:
        return default_cluster_size(network)
    if cluster_size < 0:
        raise InvalidConfiguration(f"cluster size {cluster_size} must be positive")

    max_size = network.num_addresses // 2
    size = _next_power_of_two(cluster_size)
    if size > max_size:
        raise InvalidConfiguration(f"cluster size {cluster_size} should be <= {max_size}")
    return size


def is_valid_cidr(cidr: str) -> None:
    """Raise ``InvalidConfiguration`` unless *cidr* is usable for globalnet."""
    network = parse_cidr(cidr)
    for reserved, label in _DISALLOWED_RANGES:
        if network.overlaps(reserved):
            raise InvalidConfiguration(f"{cidr} can't be in the {label} range ({reserved})")


def check_globalnet_config(spec: BrokerSpec) -> BrokerSpec:
    """Validate the globalnet settings of *spec*.

    Returns *spec* unchanged when globalnet is disabled (no field is
    inspected), otherwise a copy carrying the resolved cluster size.
    """
    if not spec.globalnet_enabled:
        return spec

    size = get_valid_cluster_size(spec.globalnet_cidr_range, spec.default_globalnet_cluster_size)
    is_valid_cidr(spec.globalnet_cidr_range)

    return spec.model_copy(update={"default_globalnet_cluster_size": size})
