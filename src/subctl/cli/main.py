"""subctl CLI: broker deployment and multi-cluster diagnostics.

Commands:
    deploy-broker   Deploy the broker control point into a cluster
    gather          Collect logs and resources from one or more clusters
    cloud prepare   Prepare gateway nodes (generic, rhos)
    cloud cleanup   Undo gateway preparation (generic, rhos)

Exit codes: 0 success, 1 runtime failure, 2 invalid arguments (always
reported before any cluster is contacted).
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterable
from typing import Any, NoReturn

import click
from kubernetes.client.exceptions import ApiException

from subctl import __version__
from subctl.cloud import CloudProvider, build_provider
from subctl.cluster import ClusterContext, resolve_clusters
from subctl.config import SubctlConfig, load_config
from subctl.deploy import BrokerDeployer, kubernetes_appliers, prepare_broker_spec
from subctl.errors import InvalidConfiguration, SubctlError
from subctl.gather import GatherOrchestrator, KubernetesCollector
from subctl.models import (
    DEFAULT_BROKER_NAMESPACE,
    DEFAULT_GLOBALNET_CIDR_RANGE,
    BrokerSpec,
    Component,
    DeploymentOptions,
    GatherOptions,
)
from subctl.reporter import CliReporter

logger = logging.getLogger(__name__)

# --- Defaults ---

DEFAULT_COMPONENTS = f"{Component.SERVICE_DISCOVERY},{Component.CONNECTIVITY}"

EXIT_FAILURE = 1
EXIT_INVALID = 2


def _or(explicit: Any, cfg_val: Any, fallback: Any) -> Any:
    """Return first non-None value: explicit CLI flag > config > fallback."""
    if explicit is not None:
        return explicit
    if cfg_val is not None:
        return cfg_val
    return fallback


def _split(values: Iterable[str]) -> list[str]:
    """Flatten repeatable and comma-separated option values."""
    return [part.strip() for value in values for part in value.split(",") if part.strip()]


def _invalid(exc: Exception) -> NoReturn:
    click.echo(click.style("Invalid argument", fg="red", bold=True) + f": {exc}", err=True)
    sys.exit(EXIT_INVALID)


def _fail(exc: Exception) -> NoReturn:
    click.echo(click.style("Error", fg="red", bold=True) + f": {exc}", err=True)
    sys.exit(EXIT_FAILURE)


def _cfg(ctx: click.Context) -> SubctlConfig:
    return ctx.obj["config"]


def _single_cluster(kubeconfig: str | None, context: str | None) -> ClusterContext:
    try:
        return resolve_clusters(kubeconfig, [context] if context else ())[0]
    except InvalidConfiguration as exc:
        _invalid(exc)


# --- Root group ---


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option(
    "--config", "config_path", default=None,
    help="Path to subctl.yaml (default: auto-discover)",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config_path: str | None) -> None:
    """subctl: deploy and inspect a multi-cluster network broker."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        cfg = load_config(config_path)
    except (FileNotFoundError, ValueError) as e:
        click.echo(f"Error loading config: {e}", err=True)
        sys.exit(EXIT_INVALID)
    if cfg.config_path is not None:
        logger.debug("Using config file %s", cfg.config_path)
    ctx.ensure_object(dict)
    ctx.obj["config"] = cfg


# --- deploy-broker command ---


@cli.command("deploy-broker")
@click.option(
    "--components", default=DEFAULT_COMPONENTS, show_default=True,
    help="Comma-separated components to enable",
)
@click.option("--globalnet/--no-globalnet", default=False, help="Enable support for overlapping CIDRs")
@click.option(
    "--globalnet-cidr-range", default=DEFAULT_GLOBALNET_CIDR_RANGE, show_default=True,
    help="Global CIDR range supernet shared by all clusters",
)
@click.option(
    "--globalnet-cluster-size", default=0, type=int, show_default=True,
    help="Default number of global IPs per cluster (0 = derive from the range)",
)
@click.option("--repository", default=None, help="Image repository for the operator")
@click.option("--version", "image_version", default=None, help="Image version for the operator")
@click.option("--operator-debug", is_flag=True, default=None, help="Enable operator debugging")
@click.option("--broker-namespace", default=None, help="Namespace the broker is deployed in")
@click.option("--kubeconfig", default=None, help="Path to the kubeconfig file")
@click.option("--context", default=None, help="Kubeconfig context to deploy into")
@click.option("--timeout", default=None, type=float, help="Overall deadline in seconds")
@click.pass_context
def deploy_broker(
    ctx: click.Context,
    components: str,
    globalnet: bool,
    globalnet_cidr_range: str,
    globalnet_cluster_size: int,
    repository: str | None,
    image_version: str | None,
    operator_debug: bool | None,
    broker_namespace: str | None,
    kubeconfig: str | None,
    context: str | None,
    timeout: float | None,
) -> None:
    """Deploy the broker control point into a cluster."""
    cfg = _cfg(ctx)
    spec = BrokerSpec(
        components=_split([components]),
        globalnet_enabled=globalnet,
        globalnet_cidr_range=globalnet_cidr_range,
        default_globalnet_cluster_size=globalnet_cluster_size,
    )
    try:
        spec = prepare_broker_spec(spec)
    except InvalidConfiguration as e:
        _invalid(e)

    options = DeploymentOptions(
        operator_debug=_or(operator_debug, cfg.operator_debug, False),
        repository=_or(repository, cfg.repository, ""),
        image_version=_or(image_version, cfg.image_version, ""),
        broker_namespace=_or(broker_namespace, cfg.broker_namespace, DEFAULT_BROKER_NAMESPACE),
        broker_spec=spec,
    )
    cluster = _single_cluster(_or(kubeconfig, cfg.kubeconfig, None), context)

    deployer = BrokerDeployer(
        kubernetes_appliers(cluster),
        CliReporter(),
        timeout=_or(timeout, cfg.timeout, None),
        cluster_name=cluster.name,
    )
    try:
        result = deployer.deploy(options)
    except InvalidConfiguration as e:
        _invalid(e)
    except SubctlError as e:
        _fail(e)

    click.echo(
        click.style("OK", fg="green", bold=True)
        + f" broker deployed in {options.broker_namespace} on {cluster.name}"
    )
    click.echo(f"  components: {', '.join(result.broker_spec.effective_components())}")
    if result.broker_spec.globalnet_enabled:
        click.echo(
            f"  globalnet:  {result.broker_spec.globalnet_cidr_range}"
            f" ({result.broker_spec.default_globalnet_cluster_size} IPs per cluster)"
        )


# --- gather command ---


@cli.command()
@click.option(
    "--type", "types", multiple=True,
    help="Data to gather: logs, resources (repeatable or comma-separated; default all)",
)
@click.option(
    "--module", "modules", multiple=True,
    help="Modules: connectivity, service-discovery, broker, operator (default all)",
)
@click.option("--dir", "directory", default=None, help="Output directory (default submariner-<timestamp>)")
@click.option("--include-sensitive-data", is_flag=True, help="Do not redact credentials and tokens")
@click.option("--kubeconfig", default=None, help="Path to the kubeconfig file")
@click.option("--contexts", default=None, help="Comma-separated kubeconfig contexts (default current)")
@click.option("--timeout", default=None, type=float, help="Per-request timeout in seconds")
@click.pass_context
def gather(
    ctx: click.Context,
    types: tuple[str, ...],
    modules: tuple[str, ...],
    directory: str | None,
    include_sensitive_data: bool,
    kubeconfig: str | None,
    contexts: str | None,
    timeout: float | None,
) -> None:
    """Collect logs and resources from one or more clusters."""
    cfg = _cfg(ctx)
    fields: dict[str, Any] = {"include_sensitive_data": include_sensitive_data}
    if types:
        fields["types"] = tuple(_split(types))
    if modules:
        fields["modules"] = tuple(_split(modules))
    if directory or cfg.gather_directory:
        fields["directory"] = directory or cfg.gather_directory
    if cfg.broker_namespace:
        fields["broker_namespace"] = cfg.broker_namespace
    options = GatherOptions(**fields)

    kubeconfig = _or(kubeconfig, cfg.kubeconfig, None)
    selected = tuple(_split([contexts])) if contexts else cfg.contexts

    orchestrator = GatherOrchestrator(
        KubernetesCollector(), CliReporter(), timeout=_or(timeout, cfg.timeout, None),
    )
    try:
        report = orchestrator.run(lambda: resolve_clusters(kubeconfig, selected), options)
    except InvalidConfiguration as e:
        _invalid(e)

    for result in report.results:
        status = click.style("OK", fg="green", bold=True) if result.success else click.style("FAIL", fg="red", bold=True)
        click.echo(f"{status} {result.cluster}: {result.directory or result.error}")
    try:
        report.raise_for_failures()
    except SubctlError as e:
        _fail(e)
    click.echo(f"Files are stored under directory {report.directory!r}")


# --- cloud commands ---


@cli.group()
def cloud() -> None:
    """Prepare or clean up cloud infrastructure for gateways."""


@cloud.group()
def prepare() -> None:
    """Prepare gateway nodes on a cloud."""


@cloud.group()
def cleanup() -> None:
    """Undo gateway preparation on a cloud."""


def _kube_options(fn: Any) -> Any:
    fn = click.option("--timeout", default=None, type=float, help="Per-request timeout in seconds")(fn)
    fn = click.option("--context", default=None, help="Kubeconfig context")(fn)
    fn = click.option("--kubeconfig", default=None, help="Path to the kubeconfig file")(fn)
    return fn


def _rhos_options(fn: Any) -> Any:
    for option in reversed([
        click.option("--infra-id", default="", help="RHOS infra ID"),
        click.option("--region", default="", help="RHOS region"),
        click.option("--project-id", default="", help="RHOS project ID"),
        click.option("--ocp-metadata", "ocp_metadata_file", default="",
                     help="OCP metadata.json file (or its directory) to read the infra and project IDs from"),
        click.option("--cloud-entry", default="", help="Cloud entry in clouds.yaml (default openstack)"),
        click.option("--dedicated-gateway/--no-dedicated-gateway", default=True,
                     help="Provision dedicated gateway machines"),
    ]):
        fn = option(fn)
    return fn


def _run_cloud(
    ctx: click.Context,
    provider: CloudProvider,
    kubeconfig: str | None,
    context: str | None,
    gateways: int | None,
) -> None:
    cfg = _cfg(ctx)
    cluster = _single_cluster(_or(kubeconfig, cfg.kubeconfig, None), context)
    reporter = CliReporter()
    try:
        provider.resolve_credentials(reporter)
        deployer = provider.gateway_deployer(cluster)
        if gateways is None:
            count = deployer.cleanup(reporter)
            click.echo(click.style("OK", fg="green", bold=True) + f" released {count} gateway(s) on {cluster.name}")
        else:
            count = deployer.deploy(gateways, reporter)
            click.echo(click.style("OK", fg="green", bold=True) + f" added {count} gateway(s) on {cluster.name}")
    except (SubctlError, ApiException) as e:
        _fail(e)


@prepare.command("generic")
@click.option("--gateways", default=1, type=int, show_default=True, help="Number of gateways")
@_kube_options
@click.pass_context
def prepare_generic(
    ctx: click.Context, gateways: int, kubeconfig: str | None, context: str | None, timeout: float | None,
) -> None:
    """Label worker nodes as gateways on a generic cluster."""
    _run_cloud(ctx, build_provider("generic", timeout=timeout), kubeconfig, context, gateways)


@cleanup.command("generic")
@_kube_options
@click.pass_context
def cleanup_generic(ctx: click.Context, kubeconfig: str | None, context: str | None, timeout: float | None) -> None:
    """Remove gateway labels on a generic cluster."""
    _run_cloud(ctx, build_provider("generic", timeout=timeout), kubeconfig, context, None)


@prepare.command("rhos")
@click.option("--gateways", default=1, type=int, show_default=True, help="Number of gateways")
@click.option("--gateway-instance", "gw_instance_type", default=None, help="Gateway flavor")
@_rhos_options
@_kube_options
@click.pass_context
def prepare_rhos(
    ctx: click.Context,
    gateways: int,
    gw_instance_type: str | None,
    kubeconfig: str | None,
    context: str | None,
    timeout: float | None,
    **rhos: Any,
) -> None:
    """Prepare gateways on OpenShift running on Red Hat OpenStack."""
    if gw_instance_type:
        rhos["gw_instance_type"] = gw_instance_type
    provider = build_provider("rhos", timeout=timeout, gateways=gateways, **rhos)
    _run_cloud(ctx, provider, kubeconfig, context, gateways)


@cleanup.command("rhos")
@_rhos_options
@_kube_options
@click.pass_context
def cleanup_rhos(
    ctx: click.Context, kubeconfig: str | None, context: str | None, timeout: float | None, **rhos: Any,
) -> None:
    """Remove gateways on OpenShift running on Red Hat OpenStack."""
    _run_cloud(ctx, build_provider("rhos", timeout=timeout, **rhos), kubeconfig, context, None)
