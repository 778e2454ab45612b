"""Error taxonomy shared by every subctl operation.

- ``InvalidConfiguration``: user input failed static validation; always
  raised before any cluster is contacted.
- ``ConflictingState``: a cluster already holds globalnet configuration
  that the request would silently redefine.
- ``ConcurrentModification``: another writer changed an object between
  our read and our write (HTTP 409 on replace). Retryable.
- ``DeploymentCancelled``: the cancel event or deadline fired before a
  step could start.
- ``StepFailure``: a deployment step failed; wraps the cause.
- ``GatherFailure``: one or more clusters failed during gather.
"""

from __future__ import annotations


class SubctlError(Exception):
    """Base class for all subctl errors."""

    retryable = False


class InvalidConfiguration(SubctlError):
    """Raised when user input fails static validation."""


class ConflictingState(SubctlError):
    """Raised when existing cluster state conflicts with the request."""


class ConcurrentModification(SubctlError):
    """Raised when an optimistic-concurrency write loses a race."""

    retryable = True


class DeploymentCancelled(SubctlError):
    """Raised when a deployment is cancelled or runs past its deadline."""


class StepFailure(SubctlError):
    """A deployment pipeline step failed.

    ``step`` names the step, ``cause`` is the underlying error and
    ``cluster`` (optional) the cluster the step was talking to.
    """

    def __init__(self, step: str, cause: BaseException, cluster: str | None = None) -> None:
        self.step = str(step)
        self.cause = cause
        self.cluster = cluster
        where = f" on cluster {cluster}" if cluster else ""
        super().__init__(f"{self.step} step failed{where}: {cause}")

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return bool(getattr(self.cause, "retryable", False))


class GatherFailure(SubctlError):
    """Raised when data collection failed on one or more clusters."""

    def __init__(self, failures: dict[str, str]) -> None:
        self.failures = dict(failures)
        names = ", ".join(sorted(self.failures))
        super().__init__(f"gather failed on {len(self.failures)} cluster(s): {names}")
