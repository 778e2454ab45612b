"""Broker deployment sequencer.

Runs the four deployment steps against one cluster, strictly in order:

  1. RBAC for the selected components
  2. The operator, from the resolved image
  3. The broker custom resource
  4. The globalnet configuration record (only when globalnet is enabled)

Every step is individually idempotent, but the pipeline is fail-fast:
the first failing step aborts everything after it and is raised as a
``StepFailure`` carrying the step name and the cause. Nothing is rolled
back; re-running converges.

State machine:
  NOT_STARTED -> RBAC_DONE -> OPERATOR_DONE -> BROKER_DONE -> GLOBALNET_DONE
  (any transition may instead go to FAILED)
"""

from __future__ import annotations

import logging
import threading
import time
from typing import TYPE_CHECKING, Any

from subctl.deploy.components import validate_components
from subctl.deploy.image import RepositoryInfo
from subctl.errors import DeploymentCancelled, InvalidConfiguration, StepFailure
from subctl.globalnet.cidr import check_globalnet_config
from subctl.models import (
    OPERATOR_NAMESPACE,
    BrokerSpec,
    BrokerState,
    DeploymentOptions,
    DeploymentResult,
    DeployStep,
    GlobalnetState,
    OperatorState,
    PipelineState,
    RbacState,
)

if TYPE_CHECKING:
    from subctl.deploy.appliers import Applier, BrokerAppliers
    from subctl.reporter import Reporter

logger = logging.getLogger(__name__)

_DONE_STATE: dict[DeployStep, PipelineState] = {
    DeployStep.RBAC: PipelineState.RBAC_DONE,
    DeployStep.OPERATOR: PipelineState.OPERATOR_DONE,
    DeployStep.BROKER: PipelineState.BROKER_DONE,
    DeployStep.GLOBALNET: PipelineState.GLOBALNET_DONE,
}

_STEP_MESSAGES: dict[DeployStep, tuple[str, str]] = {
    DeployStep.RBAC: ("Setting up broker RBAC", "error setting up broker RBAC"),
    DeployStep.OPERATOR: ("Deploying the Submariner operator", "error deploying Submariner operator"),
    DeployStep.BROKER: ("Deploying the broker", "Broker deployment failed"),
    DeployStep.GLOBALNET: (
        "Creating the globalnet configuration",
        "error creating globalCIDR configmap on Broker",
    ),
}


def prepare_broker_spec(spec: BrokerSpec) -> BrokerSpec:
    """Validate components and globalnet settings; return the resolved spec.

    Raises ``InvalidConfiguration`` before anything touches a cluster.
    """
    validate_components(spec.components)
    return check_globalnet_config(spec)


class BrokerDeployer:
    """Applies the broker deployment pipeline to one cluster.

    ``timeout`` bounds the whole pipeline; ``cancel_event`` aborts it
    between steps. Either one stops further steps from starting. The
    remaining time goes to each applier, which spends it across the
    objects of its step; appliers built with the same ``cancel_event``
    also stop between objects.

    Each ``deploy`` call starts from ``NOT_STARTED``.
    """

    def __init__(
        self,
        appliers: BrokerAppliers,
        reporter: Reporter,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
        cluster_name: str | None = None,
    ) -> None:
        self._appliers = appliers
        self._reporter = reporter
        self._timeout = timeout
        self._cancel = cancel_event
        self._cluster_name = cluster_name
        self._deadline: float | None = None
        self._state = PipelineState.NOT_STARTED
        self._completed: list[DeployStep] = []
        self._failed_step: DeployStep | None = None

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def completed_steps(self) -> list[DeployStep]:
        return list(self._completed)

    @property
    def failed_step(self) -> DeployStep | None:
        return self._failed_step

    def deploy(self, options: DeploymentOptions) -> DeploymentResult:
        """Validate *options*, then run the pipeline.

        Raises:
            InvalidConfiguration: Invalid components or globalnet settings
                (no step has run).
            StepFailure: A step failed; later steps were not attempted.
        """
        self._state = PipelineState.NOT_STARTED
        self._completed = []
        self._failed_step = None
        self._deadline = None

        try:
            validate_components(options.broker_spec.components)
        except InvalidConfiguration as exc:
            self._reporter.error("invalid components parameter", exc)
            raise
        try:
            spec = check_globalnet_config(options.broker_spec)
        except InvalidConfiguration as exc:
            self._reporter.error("invalid GlobalCIDR configuration", exc)
            raise

        if self._timeout is not None:
            self._deadline = time.monotonic() + self._timeout

        image = RepositoryInfo(
            repository=options.repository,
            version=options.image_version,
            overrides=dict(options.image_overrides),
        ).operator_image()

        steps: list[tuple[DeployStep, Applier, Any]] = [
            (
                DeployStep.RBAC,
                self._appliers.rbac,
                RbacState(namespace=options.broker_namespace, components=spec.effective_components()),
            ),
            (
                DeployStep.OPERATOR,
                self._appliers.operator,
                OperatorState(namespace=OPERATOR_NAMESPACE, image=image, debug=options.operator_debug),
            ),
            (
                DeployStep.BROKER,
                self._appliers.broker,
                BrokerState(namespace=options.broker_namespace, spec=spec),
            ),
        ]
        skipped: list[DeployStep] = []
        if spec.globalnet_enabled:
            steps.append((
                DeployStep.GLOBALNET,
                self._appliers.globalnet,
                GlobalnetState(
                    namespace=options.broker_namespace,
                    cidr_range=spec.globalnet_cidr_range,
                    cluster_size=spec.default_globalnet_cluster_size,
                ),
            ))
        else:
            skipped.append(DeployStep.GLOBALNET)

        for step, applier, desired in steps:
            self._run_step(step, applier, desired)

        self._state = PipelineState.GLOBALNET_DONE
        return DeploymentResult(
            state=self._state,
            completed_steps=self.completed_steps,
            skipped_steps=skipped,
            broker_spec=spec,
        )

    def _remaining(self) -> float | None:
        if self._deadline is None:
            return None
        return self._deadline - time.monotonic()

    def _run_step(self, step: DeployStep, applier: Applier, desired: Any) -> None:
        start_message, error_message = _STEP_MESSAGES[step]

        remaining = self._remaining()
        if self._cancel is not None and self._cancel.is_set():
            raise self._fail(step, error_message, DeploymentCancelled("deployment cancelled"))
        if remaining is not None and remaining <= 0:
            raise self._fail(step, error_message, DeploymentCancelled(f"deadline of {self._timeout}s exceeded"))

        self._reporter.start(start_message)
        logger.debug("Running %s step with %r", step, desired)
        try:
            changed = applier.ensure(desired, timeout=remaining)
        except Exception as exc:
            raise self._fail(step, error_message, exc) from exc

        if not changed:
            logger.debug("%s step made no changes", step)
        self._reporter.end()
        self._completed.append(step)
        self._state = _DONE_STATE[step]

    def _fail(self, step: DeployStep, message: str, exc: Exception) -> StepFailure:
        self._state = PipelineState.FAILED
        self._failed_step = step
        self._reporter.error(message, exc)
        return StepFailure(step, exc, self._cluster_name)
