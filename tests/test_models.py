"""Tests for the reference physical models."""

import numpy as np
import pytest

from tcadjax import (
    Contact,
    ContinuityInterfaceModel,
    Coordinate,
    Device,
    DirichletContactModel,
    Interface,
    PoissonRegionModel,
    Region,
    TimeMode,
    WhatToLoad,
)
from tcadjax.models import ContactModel, InterfaceModel, RegionModel


def _region(xs, **model_kwargs):
    device = Device("m", 1)
    coords = [Coordinate(x) for x in xs]
    device.add_coordinates(coords)
    region = Region("r", coords, PoissonRegionModel(**model_kwargs))
    device.add_region(region)
    device.set_base_equation_number(0)
    return device, region


class TestModelProtocols:
    """Test that the reference models satisfy the collaborator protocols."""

    def test_protocols(self):
        assert isinstance(PoissonRegionModel(), RegionModel)
        assert isinstance(DirichletContactModel(0.0), ContactModel)
        assert isinstance(ContinuityInterfaceModel(), InterfaceModel)


class TestPoissonRegionModel:
    """Test the 1-D finite-volume Poisson discretisation."""

    def test_invalid_parameters(self):
        with pytest.raises(ValueError):
            PoissonRegionModel(permittivity=0.0)
        with pytest.raises(ValueError):
            PoissonRegionModel(thermal_voltage=-1.0)

    def test_edges_follow_x_order(self):
        _, region = _region([1.0, 0.0, 0.5])
        a, b, h, volume = region.model.edges(region)
        np.testing.assert_array_equal(a, [1, 2])
        np.testing.assert_array_equal(b, [2, 0])
        np.testing.assert_allclose(h, [0.5, 0.5])
        np.testing.assert_allclose(volume, [0.25, 0.25, 0.5])

    def test_coincident_nodes(self):
        _, region = _region([0.0, 0.0])
        with pytest.raises(ValueError, match="coincident"):
            region.model.edges(region)

    def test_linear_residual(self):
        _, region = _region([0.0, 1.0, 2.0], permittivity=2.0, charge_density=1.0)
        region.set_solution("Potential", [0.0, 1.0, 0.0])
        # flux: node0 2*(0-1) = -2, node1 2*(1-0) + 2*(1-0) = 4, node2 -2
        # charge: volume * rho = [0.5, 1.0, 0.5]
        np.testing.assert_allclose(region.model.node_residual(region), [-2.5, 3.0, -2.5])

    def test_jacobian_matches_finite_difference(self):
        _, region = _region(
            [0.0, 0.3, 1.0], intrinsic_density=0.5, thermal_voltage=0.5, charge_density=0.2
        )
        model = region.model
        psi = np.array([0.1, -0.2, 0.3])
        region.set_solution("Potential", psi)

        matrix = []
        model.assemble(region, matrix, [], {}, WhatToLoad.MATRIX_ONLY, TimeMode.DC)
        J = np.zeros((3, 3))
        for e in matrix:
            J[e.row, e.col] += e.val

        eps = 1e-7
        J_fd = np.zeros((3, 3))
        f0 = model.node_residual(region)
        for k in range(3):
            bumped = psi.copy()
            bumped[k] += eps
            region.set_solution("Potential", bumped)
            J_fd[:, k] = (model.node_residual(region) - f0) / eps
        np.testing.assert_allclose(J, J_fd, rtol=1e-5, atol=1e-6)

    def test_time_mode_charge(self):
        _, region = _region([0.0, 1.0], capacitance=3.0)
        region.set_solution("Potential", [1.0, 2.0])
        matrix, rhs = [], []
        region.model.assemble(region, matrix, rhs, {}, WhatToLoad.MATRIX_AND_RHS, TimeMode.TIME)
        assert [(e.row, e.col, e.val) for e in matrix] == [(0, 0, 1.5), (1, 1, 1.5)]
        assert [(e.row, e.val) for e in rhs] == [(0, 1.5), (1, 3.0)]


class TestDirichletContactModel:
    """Test the fixed-value contact."""

    def test_ac_excitation(self):
        device, region = _region([0.0, 1.0])
        driven = Contact("a", region, [device.coordinates[0]], DirichletContactModel(1.0, 0.5j))
        quiet = Contact("b", region, [device.coordinates[1]], DirichletContactModel(0.0))
        assert driven.ac_excitation() == [(0, 0.5j)]
        assert quiet.ac_excitation() == []

    def test_rows(self):
        device, region = _region([0.0, 1.0, 2.0])
        contact = Contact("c", region, list(device.coordinates[1:]), DirichletContactModel(0.0))
        assert contact.model.rows(contact) == [1, 2]


class TestContinuityInterfaceModel:
    """Test the continuity interface equations."""

    def test_multiple_variables(self):
        class TwoVariableModel:
            variables = ("Potential", "Electrons")

        device = Device("d", 1)
        coords = [Coordinate(x) for x in (0.0, 1.0, 2.0)]
        device.add_coordinates(coords)
        a = Region("a", coords[:2], TwoVariableModel())
        b = Region("b", coords[1:], TwoVariableModel())
        device.add_region(a)
        device.add_region(b)
        interface = Interface(
            "ab", a, b, [coords[1]], ContinuityInterfaceModel(("Potential", "Electrons"))
        )
        device.add_interface(interface)
        device.set_base_equation_number(0)

        assert interface.model.equation_pairs(interface) == [
            ("Potential", 2, 4, 1, 0),
            ("Electrons", 3, 5, 1, 0),
        ]

