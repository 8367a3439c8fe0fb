"""Pytest configuration for tcadjax tests

Handles platform-specific JAX configuration:
- macOS: Forces CPU backend since Metal doesn't support triangular_solve or float64

Also provides the shared test structure: a 1-D device of two Poisson regions
joined by a continuity interface, with a Dirichlet contact at each end.

    top (psi=1)                  mid                  bottom (psi=0)
    x=0 ---- 0.25 ---- 0.5 ==== 0.5 ---- 0.75 ---- 1.0
    |------- left -------|      |------- right -------|

Global equations (base 0): left 0..2, right 3..5. The contacts eliminate
rows 0 and 5, the interface redirects row 3 onto row 2. The DC solution is
psi = 1 - x.
"""

import os
import sys

import pytest


def pytest_configure(config):
    """
    Pytest hook that runs before test collection.

    Ensures the JAX backend is chosen BEFORE any test modules are imported.
    """
    if sys.platform == "darwin":
        os.environ["JAX_PLATFORMS"] = "cpu"

    # Import tcadjax to auto-configure precision based on backend
    import tcadjax  # noqa: F401


NODE_X = (0.0, 0.25, 0.5, 0.75, 1.0)


def build_two_region_device(
    name="diode",
    options=None,
    capacitance=0.0,
    intrinsic_density=0.0,
    thermal_voltage=None,
    top_value=1.0,
    ac_magnitude=1.0,
):
    from tcadjax import (
        Contact,
        ContinuityInterfaceModel,
        Coordinate,
        Device,
        DirichletContactModel,
        Interface,
        PoissonRegionModel,
        Region,
    )

    model_kwargs = {"capacitance": capacitance, "intrinsic_density": intrinsic_density}
    if thermal_voltage is not None:
        model_kwargs["thermal_voltage"] = thermal_voltage

    device = Device(name, 1, options)
    coords = [Coordinate(x) for x in NODE_X]
    device.add_coordinates(coords)

    left = Region("left", coords[:3], PoissonRegionModel(**model_kwargs))
    right = Region("right", coords[2:], PoissonRegionModel(**model_kwargs))
    device.add_region(left)
    device.add_region(right)

    device.add_contact(
        Contact("top", left, [coords[0]], DirichletContactModel(top_value, ac_magnitude))
    )
    device.add_contact(Contact("bottom", right, [coords[4]], DirichletContactModel(0.0)))
    device.add_interface(Interface("mid", left, right, [coords[2]], ContinuityInterfaceModel()))
    return device


@pytest.fixture
def device():
    """Two-region device, not yet numbered."""
    return build_two_region_device()


@pytest.fixture
def numbered_device(device):
    """Two-region device numbered from equation 0."""
    device.set_base_equation_number(0)
    return device


@pytest.fixture
def device_factory():
    """Factory for two-region devices with custom model parameters."""
    return build_two_region_device
