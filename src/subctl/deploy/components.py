"""Validation of the requested broker component set."""

from __future__ import annotations

from collections.abc import Iterable

from subctl.errors import InvalidConfiguration
from subctl.models import KNOWN_COMPONENTS


def validate_components(components: Iterable[str]) -> frozenset[str]:
    """Return the de-duplicated component set, or raise.

    The set must be non-empty and drawn from ``KNOWN_COMPONENTS``.
    Globalnet is enabled with its own flag and is rejected here.
    """
    requested = frozenset(components)
    if not requested:
        raise InvalidConfiguration("at least one component required")

    for name in sorted(requested):
        if name not in KNOWN_COMPONENTS:
            raise InvalidConfiguration(f"unknown component: {name}")

    return requested
