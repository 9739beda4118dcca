"""
Test Configuration and Fixtures
================================

Provides pytest configuration and shared fixtures for testing.
"""

import jax
import numpy as np
import pytest

# Steady-state comparisons need double precision.
jax.config.update("jax_enable_x64", True)

from ssode.config import IntegratorConfig
from ssode.diffeqs import OneCompartmentAbsorption, OneCompartmentLinear, TwoCompartmentLinear
from ssode.integrators import DiffraxIntegrator, ScipyIntegrator


@pytest.fixture
def tight_config():
    """Tolerances tight enough for finite-difference comparisons."""
    return IntegratorConfig(rtol=1e-10, atol=1e-12)


@pytest.fixture
def integrator(tight_config):
    return DiffraxIntegrator(tight_config)


@pytest.fixture
def forward_integrator():
    return DiffraxIntegrator(IntegratorConfig(rtol=1e-10, atol=1e-12, adjoint="forward"))


@pytest.fixture
def scipy_integrator():
    return ScipyIntegrator(IntegratorConfig(rtol=1e-10, atol=1e-12))


@pytest.fixture
def one_cmt():
    return OneCompartmentLinear()


@pytest.fixture
def one_cmt_absorption():
    return OneCompartmentAbsorption()


@pytest.fixture
def two_cmt():
    return TwoCompartmentLinear()


@pytest.fixture
def one_cmt_params():
    """ke = 0.1 1/hr, dose 100 mg every 12 hr."""
    return {"ke": 0.1, "dose": 100.0, "ii": 12.0}


@pytest.fixture
def two_cmt_params():
    """cl, v1, q, v2"""
    return np.array([5.0, 20.0, 8.0, 50.0])


@pytest.fixture
def no_int_data():
    return np.zeros((0,), dtype=np.int64)
