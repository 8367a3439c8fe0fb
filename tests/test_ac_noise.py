"""Tests for small-signal AC and adjoint noise analysis."""

import numpy as np
import pytest

from tcadjax import (
    ContinuityInterfaceModel,
    InvalidStateError,
    NRConfig,
    newton_solve,
    run_ac_analysis,
    run_noise_analysis,
)
from tcadjax.analysis import reactive_system

NODE_X = np.array([0.0, 0.25, 0.5, 0.75, 1.0])


@pytest.fixture
def biased_device(device_factory):
    """Two-region device with capacitance, solved at its DC operating point."""
    device = device_factory(capacitance=1.0)
    result = newton_solve([device], NRConfig(abstol=1e-9, reltol=1e-3))
    assert result.converged
    return device


class TestACAnalysis:
    """Test the small-signal solve around the DC point."""

    def test_low_frequency_matches_dc_profile(self, biased_device):
        result = run_ac_analysis([biased_device], [0.0])

        assert result.solutions.shape == (1, 6)
        left = biased_device.get_region("left").get_ac_solution("Potential")
        right = biased_device.get_region("right").get_ac_solution("Potential")
        np.testing.assert_allclose(left, 1.0 - NODE_X[:3], atol=1e-12)
        np.testing.assert_allclose(right, 1.0 - NODE_X[2:], atol=1e-12)

    def test_high_frequency_attenuates_interior(self, biased_device):
        result = run_ac_analysis([biased_device], [0.0, 1.0, 1e3])
        magnitude = np.abs(np.asarray(result.solutions))

        # The driven contact node follows the excitation at every frequency
        np.testing.assert_allclose(magnitude[:, 0], 1.0)
        assert magnitude[0, 1] > magnitude[1, 1] > magnitude[2, 1]
        assert magnitude[2, 1] < 0.01
        # Regions keep the response of the last frequency
        left = biased_device.get_region("left").get_ac_solution("Potential")
        np.testing.assert_allclose(left, np.asarray(result.solutions[2, :3]))

    def test_extra_excitation(self, device_factory):
        device = device_factory(ac_magnitude=0.0)
        newton_solve([device], NRConfig(abstol=1e-9, reltol=1e-3))
        # Drive the bottom contact row instead of the top one
        result = run_ac_analysis([device], [0.0], excitation={5: 2.0})
        right = device.get_region("right").get_ac_solution("Potential")
        np.testing.assert_allclose(right, 2.0 * NODE_X[2:], atol=1e-12)
        assert result.solutions.dtype == np.complex128

    def test_requires_dc_point(self, device_factory):
        device = device_factory(capacitance=1.0)
        device.set_base_equation_number(0)
        with pytest.raises(InvalidStateError):
            run_ac_analysis([device], [1.0])


class TestNoiseAnalysis:
    """Test adjoint transfer functions and their permutation handling."""

    def test_transfer_matches_inverse_row(self, biased_device):
        output_row = 1
        result = run_noise_analysis([biased_device], "v_mid", output_row, [0.0])

        Jr, _, _ = reactive_system([biased_device])
        expected = np.linalg.inv(np.asarray(Jr))[output_row]
        np.testing.assert_allclose(np.asarray(result.transfer[0]), expected, atol=1e-12)

    def test_permuted_and_eliminated_equations(self, biased_device):
        result = run_noise_analysis([biased_device], "v_mid", 1, [10.0])
        y = np.asarray(result.transfer[0])

        np.testing.assert_array_equal(result.permutation, [-1, 1, 2, 2, 4, -1])
        left = biased_device.get_region("left").get_noise_solution("v_mid", "Potential")
        right = biased_device.get_region("right").get_noise_solution("v_mid", "Potential")
        # Contact rows are eliminated; the interface row reads the merged row
        assert left[0] == 0
        assert right[2] == 0
        assert left[1] == pytest.approx(y[1])
        assert right[0] == pytest.approx(left[2])
        assert right[1] == pytest.approx(y[4])

    def test_output_row_range(self, biased_device):
        with pytest.raises(ValueError, match="outside"):
            run_noise_analysis([biased_device], "out", 6, [1.0])

    def test_results_are_kept_per_output(self, biased_device):
        run_noise_analysis([biased_device], "a", 1, [1.0])
        run_noise_analysis([biased_device], "b", 4, [1.0])
        left = biased_device.get_region("left")
        assert not np.allclose(
            left.get_noise_solution("a", "Potential"), left.get_noise_solution("b", "Potential")
        )

    def test_scaled_redirect_transfer(self, device_factory):
        device = device_factory(capacitance=1.0)
        device.get_interface("mid").model = ContinuityInterfaceModel(flux_scale=2.0)
        assert newton_solve([device], NRConfig(abstol=1e-9, reltol=1e-3)).converged

        result = run_noise_analysis([device], "v_mid", 1, [0.0])
        np.testing.assert_allclose(result.scales, [0, 1, 1, 2, 1, 0])

        # A unit injection into right's first bulk equation reaches row 2 doubled
        Jr, _, _ = reactive_system([device])
        direct = np.linalg.solve(np.asarray(Jr), 2.0 * np.eye(6)[2])[1]
        right = device.get_region("right").get_noise_solution("v_mid", "Potential")
        np.testing.assert_allclose(right[0], direct, atol=1e-12)
        np.testing.assert_allclose(right[0], 2.0 * np.asarray(result.transfer[0])[2])
