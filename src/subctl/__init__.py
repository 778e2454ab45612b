"""subctl: broker deployment and multi-cluster diagnostics."""

__version__ = "0.4.0"

from subctl.cluster import ClusterContext, resolve_clusters
from subctl.config import SubctlConfig, find_config, load_config
from subctl.deploy import BrokerDeployer, kubernetes_appliers, prepare_broker_spec
from subctl.errors import (
    ConcurrentModification,
    ConflictingState,
    DeploymentCancelled,
    GatherFailure,
    InvalidConfiguration,
    StepFailure,
    SubctlError,
)
from subctl.gather import GatherOrchestrator, KubernetesCollector, Redactor
from subctl.models import (
    BrokerSpec,
    DeploymentOptions,
    DeploymentResult,
    GatherOptions,
    GatherReport,
    PipelineState,
)
from subctl.reporter import CliReporter, Reporter

__all__ = [
    "BrokerDeployer",
    "BrokerSpec",
    "CliReporter",
    "ClusterContext",
    "ConcurrentModification",
    "ConflictingState",
    "DeploymentCancelled",
    "DeploymentOptions",
    "DeploymentResult",
    "GatherFailure",
    "GatherOptions",
    "GatherOrchestrator",
    "GatherReport",
    "InvalidConfiguration",
    "KubernetesCollector",
    "PipelineState",
    "Redactor",
    "Reporter",
    "StepFailure",
    "SubctlConfig",
    "SubctlError",
    "__version__",
    "find_config",
    "kubernetes_appliers",
    "load_config",
    "prepare_broker_spec",
    "resolve_clusters",
]
