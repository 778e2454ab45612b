"""Shared fixtures: an in-memory reporter and mocked cluster handles."""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock

import pytest
from kubernetes.client.exceptions import ApiException

from subctl.cluster import ClusterContext


class RecordingReporter:
    """Reporter that records every call as ``(event, message)``."""

    def __init__(self, prefix: str = "", sink: list[tuple[str, str]] | None = None) -> None:
        self.prefix = prefix
        self.events: list[tuple[str, str]] = sink if sink is not None else []
        self.children: dict[str, RecordingReporter] = {}
        self._current: str | None = None

    def _record(self, event: str, message: str) -> None:
        self.events.append((event, f"[{self.prefix}] {message}" if self.prefix else message))

    def start(self, message: str) -> None:
        self.end()
        self._current = message
        self._record("start", message)

    def success(self, message: str) -> None:
        self._record("success", message)

    def warning(self, message: str) -> None:
        self._record("warning", message)

    def failure(self, message: str) -> None:
        self._current = None
        self._record("failure", message)

    def end(self) -> None:
        if self._current is not None:
            self._current = None
            self._record("end", "")

    def error(self, message: str, exc: BaseException) -> BaseException:
        self.failure(f"{message}: {exc}")
        return exc

    def for_cluster(self, name: str) -> RecordingReporter:
        child = RecordingReporter(prefix=name, sink=self.events)
        self.children[name] = child
        return child

    def messages(self, event: str) -> list[str]:
        return [message for kind, message in self.events if kind == event]


class FakeKubernetes:
    """In-memory stand-in for the core, apps, rbac and custom objects APIs.

    Objects are stored by ``(kind, namespace, name)``. Every create and
    replace is appended to ``mutations``. Assign an exception to
    ``failures[<method name>]`` to make that method raise it.
    """

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str, str], Any] = {}
        self.mutations: list[tuple[str, str, str]] = []
        self.failures: dict[str, Exception] = {}
        self.timeouts: list[float | None] = []

    def _check(self, method: str, kwargs: dict[str, Any]) -> None:
        self.timeouts.append(kwargs.get("_request_timeout"))
        if method in self.failures:
            raise self.failures[method]

    def _get(self, method: str, kind: str, namespace: str, name: str, kwargs: dict[str, Any]) -> Any:
        self._check(method, kwargs)
        try:
            return self.objects[(kind, namespace, name)]
        except KeyError:
            raise ApiException(status=404, reason="Not Found") from None

    def _create(self, method: str, kind: str, namespace: str, name: str, body: Any, kwargs: dict[str, Any]) -> Any:
        self._check(method, kwargs)
        if (kind, namespace, name) in self.objects:
            raise ApiException(status=409, reason="AlreadyExists")
        self.objects[(kind, namespace, name)] = body
        self.mutations.append(("create", kind, name))
        return body

    def _replace(self, method: str, kind: str, namespace: str, name: str, body: Any, kwargs: dict[str, Any]) -> Any:
        self._check(method, kwargs)
        self.objects[(kind, namespace, name)] = body
        self.mutations.append(("replace", kind, name))
        return body

    # core

    def read_namespace(self, name: str, **kw: Any) -> Any:
        return self._get("read_namespace", "Namespace", "", name, kw)

    def create_namespace(self, body: Any, **kw: Any) -> Any:
        return self._create("create_namespace", "Namespace", "", body.metadata.name, body, kw)

    def read_namespaced_service_account(self, name: str, namespace: str, **kw: Any) -> Any:
        return self._get("read_namespaced_service_account", "ServiceAccount", namespace, name, kw)

    def create_namespaced_service_account(self, namespace: str, body: Any, **kw: Any) -> Any:
        return self._create(
            "create_namespaced_service_account", "ServiceAccount", namespace, body.metadata.name, body, kw,
        )

    def read_namespaced_config_map(self, name: str, namespace: str, **kw: Any) -> Any:
        return self._get("read_namespaced_config_map", "ConfigMap", namespace, name, kw)

    def create_namespaced_config_map(self, namespace: str, body: Any, **kw: Any) -> Any:
        return self._create("create_namespaced_config_map", "ConfigMap", namespace, body.metadata.name, body, kw)

    # rbac

    def read_namespaced_role(self, name: str, namespace: str, **kw: Any) -> Any:
        return self._get("read_namespaced_role", "Role", namespace, name, kw)

    def create_namespaced_role(self, namespace: str, body: Any, **kw: Any) -> Any:
        return self._create("create_namespaced_role", "Role", namespace, body.metadata.name, body, kw)

    def replace_namespaced_role(self, name: str, namespace: str, body: Any, **kw: Any) -> Any:
        return self._replace("replace_namespaced_role", "Role", namespace, name, body, kw)

    def read_namespaced_role_binding(self, name: str, namespace: str, **kw: Any) -> Any:
        return self._get("read_namespaced_role_binding", "RoleBinding", namespace, name, kw)

    def create_namespaced_role_binding(self, namespace: str, body: Any, **kw: Any) -> Any:
        return self._create("create_namespaced_role_binding", "RoleBinding", namespace, body.metadata.name, body, kw)

    def replace_namespaced_role_binding(self, name: str, namespace: str, body: Any, **kw: Any) -> Any:
        return self._replace("replace_namespaced_role_binding", "RoleBinding", namespace, name, body, kw)

    # apps

    def read_namespaced_deployment(self, name: str, namespace: str, **kw: Any) -> Any:
        return self._get("read_namespaced_deployment", "Deployment", namespace, name, kw)

    def create_namespaced_deployment(self, namespace: str, body: Any, **kw: Any) -> Any:
        return self._create("create_namespaced_deployment", "Deployment", namespace, body.metadata.name, body, kw)

    def replace_namespaced_deployment(self, name: str, namespace: str, body: Any, **kw: Any) -> Any:
        return self._replace("replace_namespaced_deployment", "Deployment", namespace, name, body, kw)

    # custom objects

    def get_namespaced_custom_object(
        self, group: str, version: str, namespace: str, plural: str, name: str, **kw: Any,
    ) -> Any:
        return self._get("get_namespaced_custom_object", plural, namespace, name, kw)

    def create_namespaced_custom_object(
        self, group: str, version: str, namespace: str, plural: str, body: Any, **kw: Any,
    ) -> Any:
        return self._create(
            "create_namespaced_custom_object", plural, namespace, body["metadata"]["name"], body, kw,
        )

    def replace_namespaced_custom_object(
        self, group: str, version: str, namespace: str, plural: str, name: str, body: Any, **kw: Any,
    ) -> Any:
        return self._replace("replace_namespaced_custom_object", plural, namespace, name, body, kw)

    def kinds(self, action: str | None = None) -> list[str]:
        return [kind for act, kind, _ in self.mutations if action is None or act == action]


def make_cluster(name: str = "cluster1", **apis: Any) -> ClusterContext:
    """A ClusterContext whose API accessors return the given mocks.

    Accessors not passed in return fresh ``MagicMock`` objects.
    """
    cluster = MagicMock(spec=ClusterContext)
    cluster.name = name
    cluster.namespace = "default"
    for accessor in ("core_v1", "apps_v1", "rbac_v1", "custom_objects"):
        getattr(cluster, accessor).return_value = apis.get(accessor, MagicMock())
    return cluster


def fake_cluster(name: str = "cluster1") -> tuple[ClusterContext, FakeKubernetes]:
    """A ClusterContext backed by one shared ``FakeKubernetes``."""
    fake = FakeKubernetes()
    return make_cluster(name, core_v1=fake, apps_v1=fake, rbac_v1=fake, custom_objects=fake), fake


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()
