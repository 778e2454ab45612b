"""Tests for globalnet CIDR validation and the globalnet configuration record."""

from __future__ import annotations

import ipaddress
import json
from unittest.mock import MagicMock

import pytest
from kubernetes import client
from kubernetes.client.exceptions import ApiException

from subctl.errors import ConflictingState, InvalidConfiguration
from subctl.globalnet import (
    CLUSTER_INFO_KEY,
    GLOBALNET_CONFIGMAP_NAME,
    GlobalnetInfo,
    build_configmap_data,
    check_globalnet_config,
    create_globalnet_configmap,
    default_cluster_size,
    get_globalnet_info,
    get_valid_cluster_size,
    is_valid_cidr,
    validate_existing_global_networks,
)
from subctl.models import BrokerSpec, GlobalnetState


def _state(cidr: str = "242.0.0.0/8", size: int = 65536) -> GlobalnetState:
    return GlobalnetState(namespace="submariner-k8s-broker", cidr_range=cidr, cluster_size=size)


def _configmap(data: dict[str, str]) -> client.V1ConfigMap:
    return client.V1ConfigMap(metadata=client.V1ObjectMeta(name=GLOBALNET_CONFIGMAP_NAME), data=data)


# --- Cluster size ---


class TestDefaultClusterSize:
    @pytest.mark.parametrize(("cidr", "expected"), [
        ("242.0.0.0/8", 65536),
        ("242.0.0.0/16", 256),
        ("242.0.0.0/20", 16),
        ("242.0.0.0/24", 128),
        ("242.0.0.0/31", 1),
    ])
    def test_defaults(self, cidr: str, expected: int):
        assert get_valid_cluster_size(cidr, 0) == expected

    def test_default_always_smaller_than_range(self):
        for prefix in range(1, 32):
            network = ipaddress.IPv4Network(f"242.0.0.0/{prefix}", strict=False)
            assert default_cluster_size(network) < network.num_addresses

    def test_deterministic(self):
        assert get_valid_cluster_size("10.0.0.0/12", 0) == get_valid_cluster_size("10.0.0.0/12", 0)

    def test_single_address_rejected(self):
        with pytest.raises(InvalidConfiguration, match="too small"):
            get_valid_cluster_size("242.0.0.1/32", 0)


class TestExplicitClusterSize:
    def test_rounded_up_to_power_of_two(self):
        assert get_valid_cluster_size("242.0.0.0/16", 1000) == 1024

    def test_power_of_two_unchanged(self):
        assert get_valid_cluster_size("242.0.0.0/16", 4096) == 4096

    def test_half_the_range_allowed(self):
        assert get_valid_cluster_size("242.0.0.0/16", 32768) == 32768

    def test_oversize_rejected(self):
        with pytest.raises(InvalidConfiguration, match="cluster size 40000 should be <= 32768"):
            get_valid_cluster_size("242.0.0.0/16", 40000)

    def test_whole_range_rejected(self):
        with pytest.raises(InvalidConfiguration):
            get_valid_cluster_size("242.0.0.0/16", 65536)

    def test_negative_rejected(self):
        with pytest.raises(InvalidConfiguration, match="must be positive"):
            get_valid_cluster_size("242.0.0.0/16", -1)


# --- CIDR validity ---


class TestIsValidCidr:
    def test_default_range_valid(self):
        is_valid_cidr("242.0.0.0/8")

    def test_private_range_valid(self):
        is_valid_cidr("10.0.0.0/8")

    def test_host_bits_allowed(self):
        is_valid_cidr("10.1.2.3/16")

    @pytest.mark.parametrize(("cidr", "label"), [
        ("127.0.0.0/16", "loopback"),
        ("169.254.0.0/16", "link-local"),
        ("224.1.0.0/16", "multicast"),
        ("0.0.0.0/8", "unspecified"),
    ])
    def test_reserved_ranges_rejected(self, cidr: str, label: str):
        with pytest.raises(InvalidConfiguration, match=label):
            is_valid_cidr(cidr)

    def test_range_containing_reserved_block_rejected(self):
        with pytest.raises(InvalidConfiguration, match="loopback"):
            is_valid_cidr("64.0.0.0/2")

    @pytest.mark.parametrize("cidr", ["not-a-cidr", "10.0.0.0", "242.0.0.0/33", "fd00::/8", ""])
    def test_malformed_rejected(self, cidr: str):
        with pytest.raises(InvalidConfiguration):
            is_valid_cidr(cidr)


# --- check_globalnet_config ---


class TestCheckGlobalnetConfig:
    def test_disabled_skips_validation(self):
        spec = BrokerSpec(
            components=["connectivity"],
            globalnet_enabled=False,
            globalnet_cidr_range="garbage",
            default_globalnet_cluster_size=-5,
        )
        assert check_globalnet_config(spec) is spec

    def test_enabled_resolves_default_size(self):
        spec = BrokerSpec(components=["connectivity"], globalnet_enabled=True)
        resolved = check_globalnet_config(spec)
        assert resolved.default_globalnet_cluster_size == 65536
        assert spec.default_globalnet_cluster_size == 0

    def test_enabled_invalid_range(self):
        spec = BrokerSpec(components=["connectivity"], globalnet_enabled=True, globalnet_cidr_range="127.0.0.0/8")
        with pytest.raises(InvalidConfiguration):
            check_globalnet_config(spec)

    def test_enabled_oversize(self):
        spec = BrokerSpec(
            components=["connectivity"],
            globalnet_enabled=True,
            globalnet_cidr_range="242.0.0.0/24",
            default_globalnet_cluster_size=200,
        )
        with pytest.raises(InvalidConfiguration, match="should be <= 128"):
            check_globalnet_config(spec)


# --- Configuration record ---


class TestGlobalnetInfo:
    def test_from_data(self):
        info = GlobalnetInfo.from_data(build_configmap_data(_state()))
        assert info.enabled is True
        assert info.cidr_range == "242.0.0.0/8"
        assert info.cluster_size == 65536
        assert info.allocations == {}

    def test_allocations_parsed(self):
        data = build_configmap_data(_state())
        data[CLUSTER_INFO_KEY] = json.dumps([{"cluster_id": "east", "global_cidr": ["242.0.0.0/16"]}])
        assert GlobalnetInfo.from_data(data).allocations == {"east": ["242.0.0.0/16"]}

    def test_unreadable_record(self):
        data = build_configmap_data(_state())
        data[CLUSTER_INFO_KEY] = "{not json"
        with pytest.raises(ConflictingState, match="unreadable"):
            GlobalnetInfo.from_data(data)

    def test_empty_record_is_disabled(self):
        assert GlobalnetInfo.from_data(None).enabled is False


class TestValidateExistingGlobalNetworks:
    def test_absent_record_ok(self):
        validate_existing_global_networks(None, _state())

    def test_matching_record_ok(self):
        validate_existing_global_networks(GlobalnetInfo.from_data(build_configmap_data(_state())), _state())

    def test_disabled_record_conflicts(self):
        with pytest.raises(ConflictingState, match="globalnet disabled"):
            validate_existing_global_networks(GlobalnetInfo(enabled=False), _state())

    def test_different_range_conflicts(self):
        existing = GlobalnetInfo(enabled=True, cidr_range="243.0.0.0/8", cluster_size=65536)
        with pytest.raises(ConflictingState, match="conflicts with the existing range"):
            validate_existing_global_networks(existing, _state())

    def test_different_size_conflicts(self):
        existing = GlobalnetInfo(enabled=True, cidr_range="242.0.0.0/8", cluster_size=8192)
        with pytest.raises(ConflictingState, match="conflicts with the existing size"):
            validate_existing_global_networks(existing, _state())

    def test_allocation_outside_range_conflicts(self):
        existing = GlobalnetInfo(
            enabled=True, cidr_range="242.0.0.0/8", cluster_size=65536,
            allocations={"east": ["10.0.0.0/16"]},
        )
        with pytest.raises(ConflictingState, match="outside the requested range"):
            validate_existing_global_networks(existing, _state())

    def test_overlapping_allocations_conflict(self):
        existing = GlobalnetInfo(
            enabled=True, cidr_range="242.0.0.0/8", cluster_size=65536,
            allocations={"east": ["242.0.0.0/16"], "west": ["242.0.128.0/17"]},
        )
        with pytest.raises(ConflictingState, match="overlapping"):
            validate_existing_global_networks(existing, _state())

    def test_disjoint_allocations_ok(self):
        existing = GlobalnetInfo(
            enabled=True, cidr_range="242.0.0.0/8", cluster_size=65536,
            allocations={"east": ["242.0.0.0/16"], "west": ["242.1.0.0/16"]},
        )
        validate_existing_global_networks(existing, _state())


class TestGlobalnetRecordIO:
    def test_get_missing_returns_none(self):
        core = MagicMock()
        core.read_namespaced_config_map.side_effect = ApiException(status=404)
        assert get_globalnet_info(core, "ns") is None

    def test_get_propagates_other_errors(self):
        core = MagicMock()
        core.read_namespaced_config_map.side_effect = ApiException(status=500)
        with pytest.raises(ApiException):
            get_globalnet_info(core, "ns")

    def test_create(self):
        core = MagicMock()
        assert create_globalnet_configmap(core, _state(), timeout=5) is True
        kwargs = core.create_namespaced_config_map.call_args.kwargs
        assert kwargs["namespace"] == "submariner-k8s-broker"
        assert kwargs["_request_timeout"] == 5
        assert kwargs["body"].data["globalnetCidrRange"] == "242.0.0.0/8"

    def test_create_race_with_matching_record(self):
        core = MagicMock()
        core.create_namespaced_config_map.side_effect = ApiException(status=409)
        core.read_namespaced_config_map.return_value = _configmap(build_configmap_data(_state()))
        assert create_globalnet_configmap(core, _state()) is False

    def test_create_race_with_conflicting_record(self):
        core = MagicMock()
        core.create_namespaced_config_map.side_effect = ApiException(status=409)
        core.read_namespaced_config_map.return_value = _configmap(
            build_configmap_data(_state(cidr="243.0.0.0/8")),
        )
        with pytest.raises(ConflictingState):
            create_globalnet_configmap(core, _state())
