"""Config file loading and auto-discovery for subctl.

``subctl.yaml`` holds per-project defaults for the CLI (kubeconfig,
contexts, broker namespace, image repository and version, gather
directory, request timeout). The nearest one at or above the working
directory is used unless ``--config`` names a file. Explicit CLI flags
always win over these values.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml

CONFIG_FILENAME = "subctl.yaml"


@dataclass(frozen=True)
class SubctlConfig:
    """Parsed subctl configuration."""

    config_path: Path | None = None
    kubeconfig: str | None = None
    contexts: tuple[str, ...] = ()
    broker_namespace: str | None = None
    repository: str | None = None
    image_version: str | None = None
    operator_debug: bool | None = None
    gather_directory: str | None = None
    timeout: float | None = None


def find_config(start: Path | None = None) -> Path | None:
    """Return the nearest ``subctl.yaml`` at or above *start* (default: cwd)."""
    here = (start or Path.cwd()).resolve()
    for directory in (here, *here.parents):
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def load_config(
    path: str | Path | None = None,
    *,
    auto_discover: bool = True,
) -> SubctlConfig:
    """Load subctl defaults.

    An explicit *path* must exist (``~`` is expanded). Without one, the
    nearest ``subctl.yaml`` is used when *auto_discover* is set; with no
    file at all every field stays unset and the CLI falls back to its
    built-in defaults.
    """
    if path is None:
        found = find_config() if auto_discover else None
        return _parse_config(found) if found else SubctlConfig()

    config_path = Path(path).expanduser().resolve()
    if not config_path.is_file():
        raise FileNotFoundError(f"subctl config not found: {config_path}")
    return _parse_config(config_path)


def _parse_config(config_path: Path) -> SubctlConfig:
    """Parse *config_path*; path-valued keys are taken relative to its directory."""
    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"{config_path} must hold a YAML mapping, not {type(data).__name__}")

    base = config_path.parent

    def _path(key: str) -> str | None:
        val = data.get(key)
        if val is None:
            return None
        return str((base / Path(val).expanduser()).resolve())

    contexts = data.get("contexts") or ()
    if isinstance(contexts, str):
        contexts = [c.strip() for c in contexts.split(",") if c.strip()]

    timeout = data.get("timeout")

    return SubctlConfig(
        config_path=config_path,
        kubeconfig=_path("kubeconfig"),
        contexts=tuple(str(c) for c in contexts),
        broker_namespace=data.get("broker_namespace"),
        repository=data.get("repository"),
        image_version=None if data.get("image_version") is None else str(data["image_version"]),
        operator_debug=data.get("operator_debug"),
        gather_directory=_path("gather_directory"),
        timeout=None if timeout is None else float(timeout),
    )
