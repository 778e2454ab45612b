"""Tests for component set validation."""

import pytest

from subctl.deploy.components import validate_components
from subctl.errors import InvalidConfiguration


class TestValidateComponents:
    def test_accepts_known_components(self):
        assert validate_components(["service-discovery", "connectivity"]) == {
            "service-discovery", "connectivity",
        }

    def test_accepts_single_component(self):
        assert validate_components(["connectivity"]) == {"connectivity"}

    def test_deduplicates(self):
        assert validate_components(["connectivity", "connectivity"]) == {"connectivity"}

    def test_empty_rejected(self):
        with pytest.raises(InvalidConfiguration, match="at least one component required"):
            validate_components([])

    def test_unknown_component_named(self):
        with pytest.raises(InvalidConfiguration, match="unknown component: foo"):
            validate_components(["connectivity", "foo"])

    def test_globalnet_is_not_a_component(self):
        with pytest.raises(InvalidConfiguration, match="unknown component: globalnet"):
            validate_components(["globalnet"])

    def test_first_unknown_in_sorted_order(self):
        with pytest.raises(InvalidConfiguration, match="unknown component: alpha"):
            validate_components(["zeta", "alpha"])
