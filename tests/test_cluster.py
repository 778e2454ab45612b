"""Tests for kubeconfig context resolution."""

from unittest.mock import MagicMock, patch

import pytest
from kubernetes.config.config_exception import ConfigException

from subctl.cluster import ClusterContext, resolve_clusters
from subctl.errors import InvalidConfiguration

EAST = {"name": "east", "context": {"cluster": "east-cluster", "namespace": "sub"}}
WEST = {"name": "west", "context": {"cluster": "west-cluster"}}


def _patched(contexts=None, active=None, client_error=None):
    listing = patch(
        "subctl.cluster.config.list_kube_config_contexts",
        return_value=(contexts if contexts is not None else [EAST, WEST], active),
    )
    new_client = patch(
        "subctl.cluster.config.new_client_from_config",
        side_effect=client_error or (lambda config_file=None, context=None: MagicMock(name=context)),
    )
    return listing, new_client


class TestResolveClusters:
    def test_current_context(self):
        listing, new_client = _patched(active=EAST)
        with listing, new_client as build:
            clusters = resolve_clusters("/kube/config")
        assert [c.name for c in clusters] == ["east"]
        assert clusters[0].cluster == "east-cluster"
        assert clusters[0].namespace == "sub"
        build.assert_called_once_with(config_file="/kube/config", context="east")

    def test_named_contexts_in_order(self):
        listing, new_client = _patched(active=EAST)
        with listing, new_client:
            clusters = resolve_clusters(None, ["west", "east"])
        assert [c.name for c in clusters] == ["west", "east"]
        assert clusters[0].namespace == "default"
        assert isinstance(clusters[0], ClusterContext)

    def test_unknown_context(self):
        listing, new_client = _patched(active=EAST)
        with listing, new_client, pytest.raises(InvalidConfiguration, match="north"):
            resolve_clusters(None, ["east", "north"])

    def test_no_current_context(self):
        listing, new_client = _patched(active=None)
        with listing, new_client, pytest.raises(InvalidConfiguration, match="no current"):
            resolve_clusters(None)

    def test_unreadable_kubeconfig(self):
        with patch("subctl.cluster.config.list_kube_config_contexts", side_effect=ConfigException("bad yaml")):
            with pytest.raises(InvalidConfiguration, match="unable to load kubeconfig"):
                resolve_clusters("/kube/config")

    def test_client_build_failure(self):
        listing, new_client = _patched(active=EAST, client_error=ConfigException("Invalid kube-config file"))
        with listing, new_client, pytest.raises(InvalidConfiguration, match="context east"):
            resolve_clusters("/kube/config")

    def test_missing_credential_file(self):
        listing, new_client = _patched(active=EAST, client_error=FileNotFoundError("/certs/client.key"))
        with listing, new_client, pytest.raises(InvalidConfiguration, match="client.key"):
            resolve_clusters("/kube/config")
