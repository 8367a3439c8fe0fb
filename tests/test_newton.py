"""Tests for the Newton DC driver and global system construction."""

import numpy as np
import pytest

from tcadjax import (
    Contact,
    ContinuityInterfaceModel,
    DirichletContactModel,
    NRConfig,
    RHSEntry,
    RowColVal,
    newton_solve,
    number_devices,
)
from tcadjax.analysis import (
    assemble_devices,
    build_csr_system,
    build_dense_system,
    solve_system,
)

NODE_X = np.array([0.0, 0.25, 0.5, 0.75, 1.0])

# Tolerances for a well-conditioned 6x6 problem
TEST_CONFIG = NRConfig(abstol=1e-9, reltol=1e-3)


def _potential(device):
    left = device.get_region("left").get_solution("Potential")
    right = device.get_region("right").get_solution("Potential")
    return left, right


class TestGlobalSystem:
    """Test triplet -> matrix conversion."""

    def test_dense_sums_duplicates(self):
        J, f = build_dense_system(
            [RowColVal(0, 0, 1.0), RowColVal(0, 0, 2.0), RowColVal(1, 0, -1.0)],
            [RHSEntry(1, 0.5), RHSEntry(1, 0.25)],
            2,
        )
        np.testing.assert_allclose(np.asarray(J), [[3.0, 0.0], [-1.0, 0.0]])
        np.testing.assert_allclose(np.asarray(f), [0.0, 0.75])

    def test_csr_matches_dense(self, numbered_device):
        system = numbered_device.assemble()
        J, _ = build_dense_system(system.matrix, system.rhs, system.size)
        data, indices, indptr = build_csr_system(system.matrix, system.size)

        dense_from_csr = np.zeros((system.size, system.size))
        data, indices, indptr = np.asarray(data), np.asarray(indices), np.asarray(indptr)
        for row in range(system.size):
            for k in range(indptr[row], indptr[row + 1]):
                dense_from_csr[row, indices[k]] += data[k]
        np.testing.assert_allclose(dense_from_csr, np.asarray(J))

    def test_sparse_solve_matches_dense(self, numbered_device):
        system = numbered_device.assemble()
        dense_delta, _ = solve_system(system, use_sparse=False)
        sparse_delta, _ = solve_system(system, use_sparse=True)
        np.testing.assert_allclose(np.asarray(sparse_delta), np.asarray(dense_delta), atol=1e-12)

    def test_number_devices(self, device_factory):
        first = device_factory("first")
        second = device_factory("second")
        assert number_devices([first, second], base=4) == 16
        assert first.get_base_equation_number() == 4
        assert second.get_base_equation_number() == 10

    def test_shared_registry_across_devices(self, device_factory):
        devices = [device_factory("first"), device_factory("second")]
        size = number_devices(devices)
        system = assemble_devices(devices)
        assert system.size == size == 12
        assert sorted(system.permutations) == [0, 3, 5, 6, 9, 11]
        assert system.permutations.owner_of(9) == "second/interface/mid"


class TestNewtonSolve:
    """Test convergence, multi-device solves and rollback."""

    def test_linear_device(self, device):
        result = newton_solve([device], TEST_CONFIG)

        assert result.converged
        assert result.iterations <= 3
        left, right = _potential(device)
        np.testing.assert_allclose(left, 1.0 - NODE_X[:3], atol=1e-9)
        np.testing.assert_allclose(right, 1.0 - NODE_X[2:], atol=1e-9)

    def test_contact_flux_after_solve(self, device):
        newton_solve([device], TEST_CONFIG)
        assert device.get_contact("top").quantities["flux"] == pytest.approx(1.0)
        assert device.get_contact("bottom").quantities["flux"] == pytest.approx(-1.0)

    def test_sparse_solver(self, device):
        result = newton_solve([device], TEST_CONFIG._replace(use_sparse=True))
        assert result.converged
        left, _ = _potential(device)
        np.testing.assert_allclose(left, 1.0 - NODE_X[:3], atol=1e-9)

    def test_nonlinear_device(self, device_factory):
        device = device_factory(intrinsic_density=1.0, thermal_voltage=0.5)
        result = newton_solve([device], TEST_CONFIG._replace(max_iterations=50))

        assert result.converged
        for region in device.regions.values():
            residual = region.model.node_residual(region)
            # Interior nodes of each region are free of boundary fluxes
            assert abs(residual[1]) < 1e-8
        # Flux balance across the interface node
        left_r = device.get_region("left").model.node_residual(device.get_region("left"))
        right_r = device.get_region("right").model.node_residual(device.get_region("right"))
        assert left_r[2] + right_r[0] == pytest.approx(0.0, abs=1e-8)

    def test_two_devices_one_system(self, device_factory):
        first = device_factory("first")
        second = device_factory("second", top_value=2.0)
        result = newton_solve([first, second], TEST_CONFIG)

        assert result.converged
        assert second.get_base_equation_number() == 6
        left, right = _potential(second)
        np.testing.assert_allclose(left, 2.0 * (1.0 - NODE_X[:3]), atol=1e-9)
        np.testing.assert_allclose(right, 2.0 * (1.0 - NODE_X[2:]), atol=1e-9)
        first_left, _ = _potential(first)
        np.testing.assert_allclose(first_left, 1.0 - NODE_X[:3], atol=1e-9)

    def test_rollback_when_iterations_run_out(self, device):
        result = newton_solve([device], TEST_CONFIG._replace(max_iterations=1))

        assert not result.converged
        assert result.iterations == 1
        left, right = _potential(device)
        np.testing.assert_array_equal(left, np.zeros(3))
        np.testing.assert_array_equal(right, np.zeros(3))
        assert not device.get_region("left").has_dc_solution

    def test_rollback_on_divergence(self, device_factory):
        device = device_factory(top_value=1e6)
        result = newton_solve([device], TEST_CONFIG._replace(max_update=10.0))

        assert not result.converged
        assert result.abs_error > 10.0
        left, _ = _potential(device)
        np.testing.assert_array_equal(left, np.zeros(3))

    def test_warm_start_converges_immediately(self, device):
        newton_solve([device], TEST_CONFIG)
        result = newton_solve([device], TEST_CONFIG)
        assert result.converged
        assert result.iterations == 1

    def test_default_config_converges(self, device):
        result = newton_solve([device])
        assert result.converged
        left, _ = _potential(device)
        np.testing.assert_allclose(left, 1.0 - NODE_X[:3], atol=1e-9)

    def test_contact_on_interface_node_pins_value(self, device):
        left = device.get_region("left")
        device.add_contact(
            Contact("gate", left, [device.coordinates[2]], DirichletContactModel(0.5))
        )
        result = newton_solve([device], TEST_CONFIG)

        assert result.converged
        left, right = _potential(device)
        np.testing.assert_allclose(left, [1.0, 0.75, 0.5], atol=1e-9)
        np.testing.assert_allclose(right, [0.5, 0.25, 0.0], atol=1e-9)

    def test_scaled_interface_flux(self, device):
        device.get_interface("mid").model = ContinuityInterfaceModel(flux_scale=2.0)
        result = newton_solve([device], TEST_CONFIG)

        assert result.converged
        left, right = _potential(device)
        # (x2 - x1) + 2 * (x3 - x4) = 0 with x3 = x2
        np.testing.assert_allclose(left, [1.0, 2.0 / 3.0, 1.0 / 3.0], atol=1e-9)
        np.testing.assert_allclose(right, [1.0 / 3.0, 1.0 / 6.0, 0.0], atol=1e-9)
