"""Red Hat OpenStack (RHOS) gateway preparation.

Credentials come from the user's ``clouds.yaml``. Cluster identity
(infra ID, project ID) is either given explicitly or read from the
OpenShift installer's ``metadata.json``, in which case the region comes
from ``OS_REGION_NAME``.

With a dedicated gateway, gateways are machines of an OpenShift
``MachineSet`` created for the purpose; otherwise existing worker nodes
are labelled, as on generic Kubernetes.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml
from kubernetes.client.exceptions import ApiException

from subctl.cloud.base import GATEWAY_LABEL, CloudError, read_metadata_file
from subctl.cloud.generic import NodeLabelGatewayDeployer

if TYPE_CHECKING:
    from subctl.cluster import ClusterContext
    from subctl.reporter import Reporter

logger = logging.getLogger(__name__)

DEFAULT_CLOUD_ENTRY = "openstack"
DEFAULT_GATEWAY_INSTANCE_TYPE = "PnTAE.CPU_4_Memory_8192_Disk_50"
CLOUDS_FILENAME = "clouds.yaml"

MACHINE_API_GROUP = "machine.openshift.io"
MACHINE_API_VERSION = "v1beta1"
MACHINE_API_NAMESPACE = "openshift-machine-api"
MACHINESETS = "machinesets"


@dataclass(frozen=True)
class RhosConfig:
    """User input for RHOS cloud preparation."""

    dedicated_gateway: bool = False
    gateways: int = 1
    infra_id: str = ""
    region: str = ""
    project_id: str = ""
    ocp_metadata_file: str = ""
    cloud_entry: str = ""
    gw_instance_type: str = DEFAULT_GATEWAY_INSTANCE_TYPE


def clouds_file_candidates() -> list[Path]:
    """Locations searched for ``clouds.yaml``, most specific first."""
    candidates: list[Path] = []
    explicit = os.environ.get("OS_CLIENT_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit))
    candidates.extend([
        Path.cwd() / CLOUDS_FILENAME,
        Path.home() / ".config" / "openstack" / CLOUDS_FILENAME,
        Path("/etc/openstack") / CLOUDS_FILENAME,
    ])
    return candidates


def find_clouds_file() -> Path | None:
    for candidate in clouds_file_candidates():
        if candidate.is_file():
            return candidate
    return None


def load_cloud_entry(path: Path, entry: str) -> dict[str, Any]:
    """Return the *entry* section of the ``clouds.yaml`` at *path*."""
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise CloudError(f"unable to read {path}: {exc}") from exc

    clouds = data.get("clouds") if isinstance(data, dict) else None
    if not isinstance(clouds, dict) or entry not in clouds:
        raise CloudError(f"cloud {entry!r} not found in {path}")
    return dict(clouds[entry])


def resolve_rhos_config(config: RhosConfig, reporter: Reporter) -> RhosConfig:
    """Fill in identity fields from the metadata file and the environment."""
    changes: dict[str, Any] = {}
    if not config.cloud_entry:
        changes["cloud_entry"] = DEFAULT_CLOUD_ENTRY

    if config.ocp_metadata_file:
        try:
            metadata = read_metadata_file(config.ocp_metadata_file)
        except CloudError as exc:
            raise reporter.error(
                f"Failed to read RHOS information from OCP metadata file {config.ocp_metadata_file!r}", exc,
            )
        changes["infra_id"] = metadata.get("infraID", "")
        changes["project_id"] = (metadata.get("rhos") or {}).get("projectID", "")
        reporter.success(
            f"Obtained infra ID {changes['infra_id']!r} and project ID {changes['project_id']!r} "
            f"from OCP metadata file {config.ocp_metadata_file!r}"
        )
        changes["region"] = os.environ.get("OS_REGION_NAME", "")
        reporter.success(f"Obtained region {changes['region']!r} from environment variable OS_REGION_NAME")

    return dataclasses.replace(config, **changes)


def build_machineset(config: RhosConfig, replicas: int) -> dict[str, Any]:
    """The MachineSet that provides dedicated gateway machines."""
    infra_id = config.infra_id
    name = f"{infra_id}-submariner-gw"
    selector = {
        "machine.openshift.io/cluster-api-cluster": infra_id,
        "machine.openshift.io/cluster-api-machineset": name,
    }
    return {
        "apiVersion": f"{MACHINE_API_GROUP}/{MACHINE_API_VERSION}",
        "kind": "MachineSet",
        "metadata": {
            "name": name,
            "namespace": MACHINE_API_NAMESPACE,
            "labels": {"machine.openshift.io/cluster-api-cluster": infra_id},
        },
        "spec": {
            "replicas": replicas,
            "selector": {"matchLabels": selector},
            "template": {
                "metadata": {
                    "labels": {
                        **selector,
                        "machine.openshift.io/cluster-api-machine-role": "worker",
                        "machine.openshift.io/cluster-api-machine-type": "worker",
                    },
                },
                "spec": {
                    "metadata": {"labels": {GATEWAY_LABEL: "true"}},
                    "providerSpec": {
                        "value": {
                            "apiVersion": "openstackproviderconfig.openshift.io/v1alpha1",
                            "kind": "OpenstackProviderSpec",
                            "cloudName": config.cloud_entry or DEFAULT_CLOUD_ENTRY,
                            "cloudsSecret": {"name": "openstack-cloud-credentials", "namespace": MACHINE_API_NAMESPACE},
                            "flavor": config.gw_instance_type,
                            "image": f"{infra_id}-rhcos",
                            "securityGroups": [{"name": f"{infra_id}-worker"}, {"name": f"{infra_id}-submariner-gw-sg"}],
                            "networks": [{
                                "filter": {},
                                "subnets": [{"filter": {"name": f"{infra_id}-nodes", "tags": f"openshiftClusterID={infra_id}"}}],
                            }],
                            "serverMetadata": {"Name": name, "openshiftClusterID": infra_id},
                            "tags": [f"openshiftClusterID={infra_id}"],
                            "trunk": True,
                            "userDataSecret": {"name": "worker-user-data"},
                        },
                    },
                },
            },
        },
    }


class MachineSetGatewayDeployer:
    """Provisions dedicated gateway machines through an OpenShift MachineSet."""

    def __init__(self, custom_api: Any, config: RhosConfig, timeout: float | None = None) -> None:
        if not config.infra_id:
            raise CloudError("an infra ID is required for dedicated gateways")
        self._api = custom_api
        self._config = config
        self._timeout = timeout
        self.name = f"{config.infra_id}-submariner-gw"

    def _target(self) -> dict[str, str]:
        return {
            "group": MACHINE_API_GROUP,
            "version": MACHINE_API_VERSION,
            "namespace": MACHINE_API_NAMESPACE,
            "plural": MACHINESETS,
        }

    def _get(self) -> dict[str, Any] | None:
        try:
            return self._api.get_namespaced_custom_object(name=self.name, _request_timeout=self._timeout, **self._target())
        except ApiException as exc:
            if exc.status == 404:
                return None
            raise

    def deploy(self, gateways: int, reporter: Reporter) -> int:
        if gateways < 1:
            raise CloudError(f"at least one gateway is required, got {gateways}")

        reporter.start(f"Deploying gateway MachineSet {self.name}")
        existing = self._get()
        if existing is None:
            body = build_machineset(self._config, gateways)
            self._api.create_namespaced_custom_object(body=body, _request_timeout=self._timeout, **self._target())
            reporter.end()
            return gateways

        current = int((existing.get("spec") or {}).get("replicas") or 0)
        if current != gateways:
            logger.debug("Scaling MachineSet %s from %d to %d", self.name, current, gateways)
            self._api.patch_namespaced_custom_object(
                name=self.name, body={"spec": {"replicas": gateways}}, _request_timeout=self._timeout, **self._target(),
            )
        reporter.end()
        return max(0, gateways - current)

    def cleanup(self, reporter: Reporter) -> int:
        reporter.start(f"Deleting gateway MachineSet {self.name}")
        existing = self._get()
        if existing is None:
            reporter.success(f"MachineSet {self.name} does not exist")
            reporter.end()
            return 0
        self._api.delete_namespaced_custom_object(name=self.name, _request_timeout=self._timeout, **self._target())
        reporter.end()
        return int((existing.get("spec") or {}).get("replicas") or 0)


class RhosProvider:
    """Cloud provider for OpenShift on Red Hat OpenStack."""

    name = "rhos"

    def __init__(self, config: RhosConfig, timeout: float | None = None) -> None:
        self.config = config
        self._timeout = timeout

    def resolve_credentials(self, reporter: Reporter) -> dict[str, Any]:
        """Resolve identity fields, then load the ``clouds.yaml`` entry.

        Raises:
            CloudError: No ``clouds.yaml``, unknown cloud entry, or the infra
                ID / region could not be determined.
        """
        self.config = resolve_rhos_config(self.config, reporter)

        reporter.start("Retrieving RHOS credentials from your RHOS configuration")
        path = find_clouds_file()
        if path is None:
            searched = ", ".join(str(p) for p in clouds_file_candidates())
            raise reporter.error("error initializing RHOS Client", CloudError(f"no {CLOUDS_FILENAME} found in {searched}"))
        try:
            entry = load_cloud_entry(path, self.config.cloud_entry)
        except CloudError as exc:
            raise reporter.error("error initializing RHOS Client", exc)

        if not self.config.region and entry.get("region_name"):
            self.config = dataclasses.replace(self.config, region=entry["region_name"])
        if not self.config.infra_id:
            raise reporter.error("Invalid RHOS configuration", CloudError("infra ID is required"))
        if not self.config.region:
            raise reporter.error("Invalid RHOS configuration", CloudError("region is required"))

        reporter.end()
        return entry

    def gateway_deployer(self, cluster: ClusterContext) -> MachineSetGatewayDeployer | NodeLabelGatewayDeployer:
        if self.config.dedicated_gateway:
            return MachineSetGatewayDeployer(cluster.custom_objects(), self.config, timeout=self._timeout)
        return NodeLabelGatewayDeployer(cluster.core_v1(), timeout=self._timeout)
