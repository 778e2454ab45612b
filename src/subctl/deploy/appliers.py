"""Ensure appliers: idempotent create-or-reconcile of broker resources.

Each applier exposes ``ensure(desired, timeout=None) -> bool``: it creates
the objects if absent, reconciles them if present but different, and
does nothing if they already match. The return value says whether
anything was written.

Kubernetes ``ApiException`` status codes are interpreted here only:
404 means absent, 409 on create means another writer created it first
(re-read and reconcile), 409 on replace means our read was stale and
becomes ``ConcurrentModification``.

``timeout`` is the budget of the whole ``ensure`` call. Before each object
is touched, the remaining budget (and the cancel event, if any) is checked
so a step with many objects stops as soon as either runs out.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from kubernetes import client
from kubernetes.client.exceptions import ApiException

from subctl.cluster import ClusterContext
from subctl.errors import ConcurrentModification, DeploymentCancelled
from subctl.globalnet.configmap import (
    create_globalnet_configmap,
    get_globalnet_info,
    validate_existing_global_networks,
)
from subctl.models import (
    BrokerState,
    Component,
    GlobalnetState,
    OperatorState,
    RbacState,
)

logger = logging.getLogger(__name__)

BROKER_CLIENT_NAME = "submariner-k8s-broker-client"
BROKER_ADMIN_NAME = "submariner-k8s-broker-admin"
BROKER_CLUSTER_ROLE_NAME = "submariner-k8s-broker-cluster"
OPERATOR_NAME = "submariner-operator"

BROKER_GROUP = "submariner.io"
BROKER_VERSION = "v1alpha1"
BROKER_PLURAL = "brokers"
BROKER_NAME = "submariner-broker"

_ALL_VERBS = ["create", "get", "list", "watch", "patch", "update", "delete"]


@runtime_checkable
class Applier(Protocol):
    """Protocol for idempotent deployment steps."""

    def ensure(self, desired: Any, timeout: float | None = None) -> bool:
        """Bring the cluster to *desired*. Returns True if anything changed."""
        ...


@dataclass(frozen=True)
class BrokerAppliers:
    """The four appliers the broker deployment runs, in order."""

    rbac: Applier
    operator: Applier
    broker: Applier
    globalnet: Applier


def kubernetes_appliers(
    cluster: ClusterContext, cancel_event: threading.Event | None = None,
) -> BrokerAppliers:
    """Appliers that talk to *cluster* through the kubernetes client.

    Pass the deployer's *cancel_event* here too so that cancellation also
    interrupts a step between two objects.
    """
    return BrokerAppliers(
        rbac=RbacApplier(cluster, cancel_event),
        operator=OperatorApplier(cluster, cancel_event),
        broker=BrokerObjectApplier(cluster, cancel_event),
        globalnet=GlobalnetConfigApplier(cluster, cancel_event),
    )


class Deadline:
    """Time budget shared by every request of one ``ensure`` call."""

    def __init__(self, timeout: float | None = None, cancel_event: threading.Event | None = None) -> None:
        self._end = None if timeout is None else time.monotonic() + timeout
        self._cancel = cancel_event

    def remaining(self) -> float | None:
        """Seconds left for the next request.

        Raises:
            DeploymentCancelled: The cancel event is set or the budget is spent.
        """
        if self._cancel is not None and self._cancel.is_set():
            raise DeploymentCancelled("deployment cancelled")
        if self._end is None:
            return None
        left = self._end - time.monotonic()
        if left <= 0:
            raise DeploymentCancelled("deadline exceeded")
        return left


class _ClusterApplier:
    def __init__(self, cluster: ClusterContext, cancel_event: threading.Event | None = None) -> None:
        self._cluster = cluster
        self._cancel = cancel_event

    def _deadline(self, timeout: float | None) -> Deadline:
        return Deadline(timeout, self._cancel)


# --- Shared create-or-reconcile ---


def ensure_object(
    kind: str,
    name: str,
    read: Callable[[], Any],
    create: Callable[[], Any],
    replace: Callable[[Any], Any],
    matches: Callable[[Any], bool],
) -> bool:
    """Create the object if absent, replace it if it does not match."""
    try:
        existing = read()
    except ApiException as exc:
        if exc.status != 404:
            raise
        try:
            create()
        except ApiException as create_exc:
            if create_exc.status != 409:
                raise
            logger.debug("%s %s was created concurrently, reconciling", kind, name)
            existing = read()
        else:
            logger.info("Created %s %s", kind, name)
            return True

    if matches(existing):
        logger.debug("%s %s is up to date", kind, name)
        return False

    try:
        replace(existing)
    except ApiException as exc:
        if exc.status == 409:
            raise ConcurrentModification(
                f"{kind} {name} was modified concurrently, re-run to retry"
            ) from exc
        raise
    logger.info("Updated %s %s", kind, name)
    return True


def ensure_namespace(core_api: Any, name: str, timeout: float | None = None) -> bool:
    body = client.V1Namespace(metadata=client.V1ObjectMeta(name=name))
    return ensure_object(
        "Namespace", name,
        read=lambda: core_api.read_namespace(name=name, _request_timeout=timeout),
        create=lambda: core_api.create_namespace(body=body, _request_timeout=timeout),
        replace=lambda existing: None,
        matches=lambda existing: True,
    )


def ensure_service_account(core_api: Any, namespace: str, name: str, timeout: float | None = None) -> bool:
    body = client.V1ServiceAccount(metadata=client.V1ObjectMeta(name=name, namespace=namespace))
    return ensure_object(
        "ServiceAccount", f"{namespace}/{name}",
        read=lambda: core_api.read_namespaced_service_account(
            name=name, namespace=namespace, _request_timeout=timeout,
        ),
        create=lambda: core_api.create_namespaced_service_account(
            namespace=namespace, body=body, _request_timeout=timeout,
        ),
        replace=lambda existing: None,
        matches=lambda existing: True,
    )


def _rules_of(rules: list[Any] | None) -> list[dict[str, Any]]:
    return [rule.to_dict() if hasattr(rule, "to_dict") else dict(rule) for rule in rules or []]


def ensure_role(
    rbac_api: Any, namespace: str, name: str, rules: list[Any], timeout: float | None = None,
) -> bool:
    body = client.V1Role(metadata=client.V1ObjectMeta(name=name, namespace=namespace), rules=rules)

    def replace(existing: Any) -> Any:
        body.metadata.resource_version = existing.metadata.resource_version
        return rbac_api.replace_namespaced_role(
            name=name, namespace=namespace, body=body, _request_timeout=timeout,
        )

    return ensure_object(
        "Role", f"{namespace}/{name}",
        read=lambda: rbac_api.read_namespaced_role(name=name, namespace=namespace, _request_timeout=timeout),
        create=lambda: rbac_api.create_namespaced_role(namespace=namespace, body=body, _request_timeout=timeout),
        replace=replace,
        matches=lambda existing: _rules_of(existing.rules) == _rules_of(rules),
    )


def ensure_role_binding(
    rbac_api: Any, namespace: str, name: str, role: str, service_account: str, timeout: float | None = None,
) -> bool:
    role_ref = client.V1RoleRef(api_group="rbac.authorization.k8s.io", kind="Role", name=role)
    subjects = [client.RbacV1Subject(kind="ServiceAccount", name=service_account, namespace=namespace)]
    body = client.V1RoleBinding(
        metadata=client.V1ObjectMeta(name=name, namespace=namespace), role_ref=role_ref, subjects=subjects,
    )

    def matches(existing: Any) -> bool:
        return (
            existing.role_ref.to_dict() == role_ref.to_dict()
            and _rules_of(existing.subjects) == _rules_of(subjects)
        )

    def replace(existing: Any) -> Any:
        body.metadata.resource_version = existing.metadata.resource_version
        return rbac_api.replace_namespaced_role_binding(
            name=name, namespace=namespace, body=body, _request_timeout=timeout,
        )

    return ensure_object(
        "RoleBinding", f"{namespace}/{name}",
        read=lambda: rbac_api.read_namespaced_role_binding(
            name=name, namespace=namespace, _request_timeout=timeout,
        ),
        create=lambda: rbac_api.create_namespaced_role_binding(
            namespace=namespace, body=body, _request_timeout=timeout,
        ),
        replace=replace,
        matches=matches,
    )


# --- Step 1: broker RBAC ---


def broker_cluster_rules(components: list[str]) -> list[Any]:
    """Permissions a member cluster gets on the broker, per component."""
    rules = [
        client.V1PolicyRule(api_groups=[BROKER_GROUP], resources=["clusters", "endpoints"], verbs=_ALL_VERBS),
    ]
    if Component.SERVICE_DISCOVERY in components:
        rules.append(client.V1PolicyRule(
            api_groups=["multicluster.x-k8s.io"], resources=["serviceimports"], verbs=_ALL_VERBS,
        ))
        rules.append(client.V1PolicyRule(
            api_groups=["discovery.k8s.io"], resources=["endpointslices"], verbs=_ALL_VERBS,
        ))
    if Component.GLOBALNET in components:
        rules.append(client.V1PolicyRule(
            api_groups=[""], resources=["configmaps"], verbs=["get", "list", "watch", "update"],
        ))
    return rules


def broker_admin_rules() -> list[Any]:
    return [
        client.V1PolicyRule(api_groups=[BROKER_GROUP], resources=["*"], verbs=["*"]),
        client.V1PolicyRule(
            api_groups=[""], resources=["serviceaccounts", "secrets", "configmaps"], verbs=["*"],
        ),
        client.V1PolicyRule(
            api_groups=["rbac.authorization.k8s.io"], resources=["roles", "rolebindings"], verbs=["*"],
        ),
    ]


class RbacApplier(_ClusterApplier):
    """Namespace, service accounts, roles and bindings for the broker."""

    def ensure(self, desired: RbacState, timeout: float | None = None) -> bool:
        core = self._cluster.core_v1()
        rbac = self._cluster.rbac_v1()
        ns = desired.namespace
        deadline = self._deadline(timeout)

        changed = ensure_namespace(core, ns, deadline.remaining())
        for account, role, rules in (
            (BROKER_CLIENT_NAME, BROKER_CLUSTER_ROLE_NAME, broker_cluster_rules(desired.components)),
            (BROKER_ADMIN_NAME, BROKER_ADMIN_NAME, broker_admin_rules()),
        ):
            changed |= ensure_service_account(core, ns, account, deadline.remaining())
            changed |= ensure_role(rbac, ns, role, rules, deadline.remaining())
            changed |= ensure_role_binding(rbac, ns, role, role, account, deadline.remaining())
        return changed


# --- Step 2: operator ---


def operator_args(debug: bool) -> list[str]:
    return ["--debug"] if debug else []


def build_operator_deployment(state: OperatorState) -> Any:
    labels = {"name": OPERATOR_NAME}
    container = client.V1Container(
        name=OPERATOR_NAME,
        image=state.image,
        image_pull_policy="IfNotPresent",
        command=[OPERATOR_NAME],
        args=operator_args(state.debug),
        env=[
            client.V1EnvVar(
                name="WATCH_NAMESPACE",
                value_from=client.V1EnvVarSource(
                    field_ref=client.V1ObjectFieldSelector(field_path="metadata.namespace"),
                ),
            ),
            client.V1EnvVar(name="OPERATOR_NAME", value=OPERATOR_NAME),
        ],
    )
    return client.V1Deployment(
        metadata=client.V1ObjectMeta(name=OPERATOR_NAME, namespace=state.namespace, labels=labels),
        spec=client.V1DeploymentSpec(
            replicas=1,
            selector=client.V1LabelSelector(match_labels=labels),
            template=client.V1PodTemplateSpec(
                metadata=client.V1ObjectMeta(labels=labels),
                spec=client.V1PodSpec(service_account_name=OPERATOR_NAME, containers=[container]),
            ),
        ),
    )


def operator_rules() -> list[Any]:
    return [
        client.V1PolicyRule(api_groups=[BROKER_GROUP], resources=["*"], verbs=["*"]),
        client.V1PolicyRule(api_groups=["apps"], resources=["deployments", "daemonsets"], verbs=["*"]),
        client.V1PolicyRule(
            api_groups=[""],
            resources=["pods", "services", "configmaps", "secrets", "serviceaccounts"],
            verbs=["*"],
        ),
    ]


class OperatorApplier(_ClusterApplier):
    """The operator that reconciles broker and member clusters."""

    def ensure(self, desired: OperatorState, timeout: float | None = None) -> bool:
        core = self._cluster.core_v1()
        apps = self._cluster.apps_v1()
        rbac = self._cluster.rbac_v1()
        ns = desired.namespace
        deadline = self._deadline(timeout)

        changed = ensure_namespace(core, ns, deadline.remaining())
        changed |= ensure_service_account(core, ns, OPERATOR_NAME, deadline.remaining())
        changed |= ensure_role(rbac, ns, OPERATOR_NAME, operator_rules(), deadline.remaining())
        changed |= ensure_role_binding(
            rbac, ns, OPERATOR_NAME, OPERATOR_NAME, OPERATOR_NAME, deadline.remaining(),
        )

        body = build_operator_deployment(desired)
        args = operator_args(desired.debug)
        timeout = deadline.remaining()

        def matches(existing: Any) -> bool:
            containers = existing.spec.template.spec.containers or []
            return bool(containers) and containers[0].image == desired.image and (containers[0].args or []) == args

        def replace(existing: Any) -> Any:
            body.metadata.resource_version = existing.metadata.resource_version
            return apps.replace_namespaced_deployment(
                name=OPERATOR_NAME, namespace=ns, body=body, _request_timeout=timeout,
            )

        changed |= ensure_object(
            "Deployment", f"{ns}/{OPERATOR_NAME}",
            read=lambda: apps.read_namespaced_deployment(
                name=OPERATOR_NAME, namespace=ns, _request_timeout=timeout,
            ),
            create=lambda: apps.create_namespaced_deployment(namespace=ns, body=body, _request_timeout=timeout),
            replace=replace,
            matches=matches,
        )
        return changed


# --- Step 3: broker object ---


class BrokerObjectApplier(_ClusterApplier):
    """The broker's top-level custom resource."""

    def ensure(self, desired: BrokerState, timeout: float | None = None) -> bool:
        timeout = self._deadline(timeout).remaining()
        api = self._cluster.custom_objects()
        ns = desired.namespace
        spec = desired.spec.to_resource_spec()
        body: dict[str, Any] = {
            "apiVersion": f"{BROKER_GROUP}/{BROKER_VERSION}",
            "kind": "Broker",
            "metadata": {"name": BROKER_NAME, "namespace": ns},
            "spec": spec,
        }
        target = {"group": BROKER_GROUP, "version": BROKER_VERSION, "namespace": ns, "plural": BROKER_PLURAL}

        def replace(existing: dict[str, Any]) -> Any:
            metadata = dict(body["metadata"])
            metadata["resourceVersion"] = existing.get("metadata", {}).get("resourceVersion")
            return api.replace_namespaced_custom_object(
                name=BROKER_NAME, body={**body, "metadata": metadata}, _request_timeout=timeout, **target,
            )

        return ensure_object(
            "Broker", f"{ns}/{BROKER_NAME}",
            read=lambda: api.get_namespaced_custom_object(name=BROKER_NAME, _request_timeout=timeout, **target),
            create=lambda: api.create_namespaced_custom_object(body=body, _request_timeout=timeout, **target),
            replace=replace,
            matches=lambda existing: existing.get("spec") == spec,
        )


# --- Step 4: globalnet configuration record ---


class GlobalnetConfigApplier(_ClusterApplier):
    """Conflict check, then create-if-absent of the globalnet record."""

    def ensure(self, desired: GlobalnetState, timeout: float | None = None) -> bool:
        core = self._cluster.core_v1()
        deadline = self._deadline(timeout)
        existing = get_globalnet_info(core, desired.namespace, deadline.remaining())
        validate_existing_global_networks(existing, desired)
        if existing is not None:
            return False
        return create_globalnet_configmap(core, desired, deadline.remaining())
