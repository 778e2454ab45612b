"""Container image references for deployed components."""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_REPOSITORY = "quay.io/submariner"
DEFAULT_IMAGE_VERSION = "devel"

OPERATOR_COMPONENT = "submariner-operator"
OPERATOR_IMAGE = "submariner-operator"


def get_image_path(
    repository: str,
    version: str,
    image: str,
    component: str,
    overrides: dict[str, str] | None = None,
) -> str:
    """Build ``<repo>/<image>:<version>``.

    A per-component override wins outright. A ``sha256:`` version pins
    the image by digest (``<repo>/<image>@sha256:...``).
    """
    if overrides and component in overrides:
        return overrides[component]

    repository = (repository or DEFAULT_REPOSITORY).rstrip("/")
    version = version or DEFAULT_IMAGE_VERSION

    if version.startswith("sha256:"):
        return f"{repository}/{image}@{version}"
    return f"{repository}/{image}:{version}"


@dataclass(frozen=True)
class RepositoryInfo:
    repository: str = ""
    version: str = ""
    overrides: dict[str, str] = field(default_factory=dict)

    def operator_image(self) -> str:
        return get_image_path(
            self.repository, self.version, OPERATOR_IMAGE, OPERATOR_COMPONENT, self.overrides,
        )
