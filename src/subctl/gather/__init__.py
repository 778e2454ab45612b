"""Multi-cluster diagnostic gather: orchestration, collection and redaction."""

from subctl.gather.collector import Collector, KubernetesCollector
from subctl.gather.orchestrator import GatherOrchestrator, validate_gather_options
from subctl.gather.redact import REDACTED, Redactor
from subctl.models import default_gather_directory

__all__ = [
    "REDACTED",
    "Collector",
    "GatherOrchestrator",
    "KubernetesCollector",
    "Redactor",
    "default_gather_directory",
    "validate_gather_options",
]
