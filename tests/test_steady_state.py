"""
Tests for the steady-state root-finding driver against closed-form solutions.
"""

import logging

import jax
import jax.numpy as jnp
import numpy as np
import pytest

from ssode.config import SolverConfig
from ssode.dosing import fixed_dose_data
from ssode.diffeqs import OneCompartmentLinear
from ssode.exceptions import SteadyStateSolverError, UnsupportedConfigurationError
from ssode.integrators import DiffraxIntegrator
from ssode.ss_system import SSSystemDD, SSSystemVD
from ssode.steady_state import (analytic_bolus_trough, analytic_infusion_steady_state,
                                analytic_truncated_infusion_trough, residual_jacobian,
                                solve_steady_state)


class TestSolveSteadyState:

    def test_bolus(self, one_cmt, integrator, one_cmt_params):
        ke, dose, ii = one_cmt_params["ke"], one_cmt_params["dose"], one_cmt_params["ii"]
        system = SSSystemDD(f=one_cmt, ii=ii, cmt=1, integrator=integrator)

        result = solve_steady_state(system, [0.0], [ke], fixed_dose_data([0.0], dose))

        assert result.success
        np.testing.assert_allclose(result.x, [analytic_bolus_trough(dose, ke, ii)], rtol=1e-7)

    def test_truncated_infusion(self, one_cmt, integrator):
        ke, amt, rate, ii = 0.3, 80.0, 40.0, 6.0
        system = SSSystemDD(f=one_cmt, ii=ii, cmt=1, integrator=integrator)

        result = solve_steady_state(system, [1.0], [ke], fixed_dose_data([rate], amt))

        np.testing.assert_allclose(result.x,
                                   [analytic_truncated_infusion_trough(amt, rate, ke, ii)],
                                   rtol=1e-7)

    def test_constant_infusion(self, two_cmt, integrator, two_cmt_params):
        system = SSSystemDD(f=two_cmt, ii=0.0, cmt=1, integrator=integrator)
        cl, v1, q, v2 = two_cmt_params
        rate = 10.0

        result = solve_steady_state(system, [1.0, 1.0], two_cmt_params, [rate, 0.0, 0.0])

        # central amount = rate / k10, peripheral at equilibrium with central
        central = rate * v1 / cl
        np.testing.assert_allclose(result.x, [central, central * v2 / v1], rtol=1e-8)

    def test_variable_dose_oral_bolus(self, one_cmt_absorption, integrator):
        ka, cl, vd, amt, ii = 0.3, 4.0, 40.0, 300.0, 12.0
        system = SSSystemVD(f=one_cmt_absorption, ii=ii, cmt=1, integrator=integrator)
        y = [ka, cl, vd, amt]

        result = solve_steady_state(system, [0.0, 0.0], y, [0.0, 0.0])

        np.testing.assert_allclose(system(jnp.asarray(result.x), jnp.asarray(y), [0.0, 0.0]),
                                   0.0, atol=1e-7)
        np.testing.assert_allclose(result.x[0], analytic_bolus_trough(amt, ka, ii), rtol=1e-7)

    def test_lm_method(self, one_cmt, integrator, one_cmt_params):
        ke, dose, ii = one_cmt_params["ke"], one_cmt_params["dose"], one_cmt_params["ii"]
        system = SSSystemDD(f=one_cmt, ii=ii, cmt=1, integrator=integrator)

        result = solve_steady_state(system, [0.0], [ke], fixed_dose_data([0.0], dose),
                                    config=SolverConfig(method="lm"))

        np.testing.assert_allclose(result.x, [analytic_bolus_trough(dose, ke, ii)], rtol=1e-7)

    def test_plain_float_integrator(self, one_cmt, scipy_integrator, one_cmt_params):
        # solve_ivp cannot be traced, so the Jacobian comes from finite differences
        ke, dose, ii = one_cmt_params["ke"], one_cmt_params["dose"], one_cmt_params["ii"]
        system = SSSystemDD(f=one_cmt, ii=ii, cmt=1, integrator=scipy_integrator)

        result = solve_steady_state(system, [0.0], [ke], fixed_dose_data([0.0], dose))

        assert result.success
        np.testing.assert_allclose(result.x, [analytic_bolus_trough(dose, ke, ii)], rtol=1e-6)

    def test_plain_float_integrator_truncated_infusion(self, one_cmt, scipy_integrator):
        ke, amt, rate, ii = 0.3, 80.0, 40.0, 6.0
        system = SSSystemDD(f=one_cmt, ii=ii, cmt=1, integrator=scipy_integrator)

        result = solve_steady_state(system, [1.0], [ke], fixed_dose_data([rate], amt),
                                    config=SolverConfig(method="lm"))

        np.testing.assert_allclose(result.x,
                                   [analytic_truncated_infusion_trough(amt, rate, ke, ii)],
                                   rtol=1e-6)

    def test_forward_mode_jacobian(self, one_cmt, forward_integrator):
        system = SSSystemDD(f=one_cmt, ii=12.0, cmt=1, integrator=forward_integrator)

        jac = residual_jacobian(system, jnp.array([0.1]), [0.0, 100.0])(jnp.array([3.0]))

        np.testing.assert_allclose(np.ravel(jac), [1.0 - np.exp(-1.2)], rtol=1e-8)

    def test_unsupported_configuration_propagates(self, one_cmt, integrator):
        system = SSSystemVD(f=one_cmt, ii=12.0, cmt=1, integrator=integrator)
        with pytest.raises(UnsupportedConfigurationError):
            solve_steady_state(system, [0.0], [0.1, 100.0], [10.0])

    def test_non_convergence(self, one_cmt, integrator):
        # without elimination a constant infusion has no steady state
        system = SSSystemDD(f=one_cmt, ii=0.0, cmt=1, integrator=integrator)
        config = SolverConfig(max_evaluations=20, raise_on_failure=True)

        with pytest.raises(SteadyStateSolverError) as excinfo:
            solve_steady_state(system, [1.0], [0.0], [10.0, 0.0], config=config)
        assert excinfo.value.result is not None
        assert not excinfo.value.result.success

    def test_non_convergence_without_raising_logs_warning(self, one_cmt, integrator, caplog):
        system = SSSystemDD(f=one_cmt, ii=0.0, cmt=1, integrator=integrator)
        config = SolverConfig(max_evaluations=20, raise_on_failure=False)

        with caplog.at_level(logging.WARNING, logger="ssode.steady_state"):
            result = solve_steady_state(system, [1.0], [0.0], [10.0, 0.0], config=config)

        assert not result.success
        assert "did not converge" in caplog.text


@pytest.fixture
def single_precision():
    """JAX's default float32 mode, restored to x64 afterwards."""
    jax.config.update("jax_enable_x64", False)
    yield
    jax.config.update("jax_enable_x64", True)


class TestSinglePrecision:

    def test_bolus_with_default_settings(self, single_precision):
        system = SSSystemDD(f=OneCompartmentLinear(), ii=12.0, cmt=1,
                            integrator=DiffraxIntegrator())

        result = solve_steady_state(system, [0.0], [0.1], [0.0, 100.0])

        assert system(jnp.asarray(result.x), jnp.array([0.1]), [0.0, 100.0]).dtype == jnp.float32
        assert result.success
        expected = 100.0 * np.exp(-1.2) / (1.0 - np.exp(-1.2))
        np.testing.assert_allclose(result.x, [expected], rtol=1e-4)


class TestAnalyticSolutions:

    def test_truncated_infusion_limits(self):
        ke, rate, ii = 0.2, 5.0, 10.0
        # infusion over the whole interval is a constant infusion
        np.testing.assert_allclose(
            analytic_truncated_infusion_trough(rate * ii, rate, ke, ii),
            analytic_infusion_steady_state(rate, ke))
        # a very short infusion is close to a bolus
        np.testing.assert_allclose(
            analytic_truncated_infusion_trough(100.0, 1e9, ke, ii),
            analytic_bolus_trough(100.0, ke, ii), rtol=1e-6)
