"""Core data models for subctl.

Defines the schemas for:
- Broker desired state (components and globalnet settings)
- Deployment options (operator image, broker namespace)
- Gather options (diagnostic types, modules, output directory)
- Desired-state records handed to the Ensure appliers
- Deployment and gather results
"""

from __future__ import annotations

import enum
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

from subctl.errors import GatherFailure

# --- Enums ---


class Component(enum.StrEnum):
    SERVICE_DISCOVERY = "service-discovery"
    CONNECTIVITY = "connectivity"
    GLOBALNET = "globalnet"


# Components a user may request. Globalnet is added implicitly.
KNOWN_COMPONENTS: frozenset[str] = frozenset(
    {Component.SERVICE_DISCOVERY.value, Component.CONNECTIVITY.value}
)


class GatherType(enum.StrEnum):
    LOGS = "logs"
    RESOURCES = "resources"


class GatherModule(enum.StrEnum):
    CONNECTIVITY = "connectivity"
    SERVICE_DISCOVERY = "service-discovery"
    BROKER = "broker"
    OPERATOR = "operator"


KNOWN_GATHER_TYPES: frozenset[str] = frozenset(t.value for t in GatherType)
KNOWN_GATHER_MODULES: frozenset[str] = frozenset(m.value for m in GatherModule)


class DeployStep(enum.StrEnum):
    RBAC = "rbac"
    OPERATOR = "operator"
    BROKER = "broker"
    GLOBALNET = "globalnet"


class PipelineState(enum.StrEnum):
    NOT_STARTED = "not-started"
    RBAC_DONE = "rbac-done"
    OPERATOR_DONE = "operator-done"
    BROKER_DONE = "broker-done"
    GLOBALNET_DONE = "globalnet-done"
    FAILED = "failed"


# --- Defaults ---

DEFAULT_BROKER_NAMESPACE = "submariner-k8s-broker"
OPERATOR_NAMESPACE = "submariner-operator"
DEFAULT_GLOBALNET_CIDR_RANGE = "242.0.0.0/8"
GATHER_DIRECTORY_PREFIX = "submariner-"
GATHER_TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"


def default_gather_directory(now: datetime | None = None) -> str:
    """Return ``submariner-YYYYMMDDHHMMSS`` for *now* (default: UTC now).

    Second granularity: two invocations in the same UTC second collide.
    """
    now = now or datetime.now(tz=UTC)
    return GATHER_DIRECTORY_PREFIX + now.astimezone(UTC).strftime(GATHER_TIMESTAMP_FORMAT)


# --- Broker ---


class BrokerSpec(BaseModel):
    """Desired state of the broker control point.

    The CIDR range and cluster size only mean something when globalnet
    is enabled; otherwise they are neither validated nor persisted.
    """

    model_config = ConfigDict(frozen=True)

    components: list[str] = Field(default_factory=list)
    globalnet_enabled: bool = False
    globalnet_cidr_range: str = DEFAULT_GLOBALNET_CIDR_RANGE
    default_globalnet_cluster_size: int = 0

    def effective_components(self) -> list[str]:
        """Requested components, de-duplicated, plus globalnet when enabled."""
        components = sorted(set(self.components))
        if self.globalnet_enabled and Component.GLOBALNET.value not in components:
            components.append(Component.GLOBALNET.value)
        return components

    def to_resource_spec(self) -> dict:
        """Render the spec the way the broker custom resource stores it."""
        spec: dict = {
            "components": self.effective_components(),
            "globalnetEnabled": self.globalnet_enabled,
        }
        if self.globalnet_enabled:
            spec["globalnetCIDRRange"] = self.globalnet_cidr_range
            spec["defaultGlobalnetClusterSize"] = self.default_globalnet_cluster_size
        return spec


class DeploymentOptions(BaseModel):
    """Everything the broker deployment needs. Read-only to the sequencer."""

    model_config = ConfigDict(frozen=True)

    operator_debug: bool = False
    repository: str = ""
    image_version: str = ""
    image_overrides: dict[str, str] = Field(default_factory=dict)
    broker_namespace: str = DEFAULT_BROKER_NAMESPACE
    broker_spec: BrokerSpec = Field(default_factory=BrokerSpec)


# --- Gather ---


class GatherOptions(BaseModel):
    """What to collect, and where to put it.

    Membership of ``types`` and ``modules`` is checked by
    ``subctl.gather.validate_gather_options`` so that the offending value
    can be reported before any cluster is contacted.
    """

    model_config = ConfigDict(frozen=True)

    types: tuple[str, ...] = Field(default_factory=lambda: tuple(t.value for t in GatherType))
    modules: tuple[str, ...] = Field(default_factory=lambda: tuple(m.value for m in GatherModule))
    directory: str = Field(default_factory=default_gather_directory)
    include_sensitive_data: bool = False
    broker_namespace: str = DEFAULT_BROKER_NAMESPACE
    operator_namespace: str = OPERATOR_NAMESPACE


# --- Desired state handed to appliers ---


class RbacState(BaseModel):
    model_config = ConfigDict(frozen=True)

    namespace: str
    components: list[str]


class OperatorState(BaseModel):
    model_config = ConfigDict(frozen=True)

    namespace: str
    image: str
    debug: bool = False


class BrokerState(BaseModel):
    model_config = ConfigDict(frozen=True)

    namespace: str
    spec: BrokerSpec


class GlobalnetState(BaseModel):
    model_config = ConfigDict(frozen=True)

    namespace: str
    cidr_range: str
    cluster_size: int
    enabled: bool = True


# --- Results ---


class DeploymentResult(BaseModel):
    """Outcome of a successful broker deployment."""

    state: PipelineState
    completed_steps: list[DeployStep] = Field(default_factory=list)
    skipped_steps: list[DeployStep] = Field(default_factory=list)
    broker_spec: BrokerSpec


class ClusterGatherResult(BaseModel):
    """Outcome of data collection on one cluster."""

    cluster: str
    success: bool
    directory: str | None = None
    error: str | None = None
    duration_ms: float | None = None


class GatherReport(BaseModel):
    """Aggregated outcome of a gather run across clusters."""

    directory: str
    results: list[ClusterGatherResult] = Field(default_factory=list)

    @property
    def failed(self) -> list[str]:
        return [r.cluster for r in self.results if not r.success]

    @property
    def succeeded(self) -> list[str]:
        return [r.cluster for r in self.results if r.success]

    def raise_for_failures(self) -> None:
        """Raise ``GatherFailure`` naming every cluster that failed."""
        failures = {r.cluster: r.error or "unknown error" for r in self.results if not r.success}
        if failures:
            raise GatherFailure(failures)
