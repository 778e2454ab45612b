"""Broker deployment: component validation, Ensure appliers and the sequencer."""

from subctl.deploy.appliers import Applier, BrokerAppliers, kubernetes_appliers
from subctl.deploy.components import validate_components
from subctl.deploy.image import RepositoryInfo, get_image_path
from subctl.deploy.sequencer import BrokerDeployer, prepare_broker_spec

__all__ = [
    "Applier",
    "BrokerAppliers",
    "BrokerDeployer",
    "RepositoryInfo",
    "get_image_path",
    "kubernetes_appliers",
    "prepare_broker_spec",
    "validate_components",
]
