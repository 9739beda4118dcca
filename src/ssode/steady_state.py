"""
Driver that finds the root of a steady-state residual with `scipy.optimize.root`.

The residual is evaluated with plain parameters; its Jacobian with respect to
the trough amounts comes from JAX when the integrator can be traced, and from
SciPy's finite differences otherwise. The root-finding algorithm is SciPy's.
"""
import logging
from dataclasses import dataclass

import numpy as np
import jax
import jax.numpy as jnp
from scipy.optimize import root

from .config import SolverConfig
from .exceptions import SteadyStateSolverError
from .numeric import promote_args

logger = logging.getLogger(__name__)

_JAC_METHODS = ("hybr", "lm")


@dataclass
class SteadyStateResult:
    x: np.ndarray
    success: bool
    n_evaluations: int
    residual_norm: float
    message: str


def _uses_forward_mode(system):
    config = getattr(getattr(system, "integrator", None), "config", None)
    return getattr(config, "adjoint", None) == "forward"


def _is_differentiable(system):
    return getattr(getattr(system, "integrator", None), "differentiable", True)


def _working_tolerances(config, dtype, x):
    """
    (tol, residual_tol) reachable in `dtype`.

    Under JAX's default single precision the configured tolerances can be
    tighter than the residual can resolve, so both are floored at a multiple
    of the machine epsilon (the residual one relative to the size of `x`).
    """
    eps = float(jnp.finfo(dtype).eps)
    scale = max(1.0, float(np.max(np.abs(x)))) if np.size(x) else 1.0
    return max(config.tol, 100 * eps), max(config.residual_tol, 100 * eps * scale)


def residual_jacobian(system, y, dat, dat_int=None):
    """
    Jacobian of the residual with respect to the trough amounts.

    Forward mode is used when the system's integrator is configured for it,
    reverse mode otherwise.
    """
    def residual(x):
        return system(x, y, dat, dat_int)

    if _uses_forward_mode(system):
        return jax.jacfwd(residual)
    return jax.jacrev(residual)


def solve_steady_state(system, x_guess, y, dat, dat_int=None, config: SolverConfig = None):
    """
    Solve residual(x) = 0 for the steady-state trough amounts.

    Args:
        system: A residual functor, e.g. `SSSystemDD` or `SSSystemVD`.
        x_guess (array-like): Starting guess, one amount per compartment.
        y (array-like): Parameter vector (plain values).
        dat (array-like): Dosing data in the layout the system expects.
        dat_int (array-like): Integer data.
        config (SolverConfig): Root-finder settings.

    Returns:
        SteadyStateResult

    Raises:
        SteadyStateSolverError: If the solver does not converge and
            `config.raise_on_failure` is set.
        ValidationError, UnsupportedConfigurationError: Propagated from the
            residual on the first evaluation.
    """
    config = SolverConfig() if config is None else config
    y = jnp.asarray(y)
    x_guess = np.asarray(x_guess, dtype=np.float64)

    def fun(x):
        return np.asarray(system(jnp.asarray(x), y, dat, dat_int), dtype=np.float64)

    jac = None
    if config.method in _JAC_METHODS:
        if _is_differentiable(system):
            jac_fn = residual_jacobian(system, y, dat, dat_int)

            def jac(x):
                return np.asarray(jac_fn(jnp.asarray(x)), dtype=np.float64)
        else:
            logger.debug("%s cannot be traced; using finite-difference Jacobians",
                         type(system.integrator).__name__)

    dtype = promote_args(jnp.asarray(x_guess), y)
    tol, _ = _working_tolerances(config, dtype, x_guess)

    options = {}
    if config.max_evaluations is not None:
        options["maxfev" if config.method == "hybr" else "maxiter"] = config.max_evaluations

    sol = root(
        fun,
        x_guess,
        jac=jac,
        method=config.method,
        tol=tol,
        options=options,
    )
    residual_norm = float(np.max(np.abs(sol.fun))) if np.size(sol.fun) else 0.0
    _, residual_tol = _working_tolerances(config, dtype, sol.x)
    success = bool(sol.success) and residual_norm <= residual_tol
    result = SteadyStateResult(
        x=np.asarray(sol.x),
        success=success,
        n_evaluations=int(getattr(sol, "nfev", 0)),
        residual_norm=residual_norm,
        message=str(sol.message),
    )
    if not success:
        msg = (f"Steady state solver did not converge: {result.message} "
               f"(max |residual| = {residual_norm:.3g})")
        if config.raise_on_failure:
            raise SteadyStateSolverError(msg, result=result)
        logger.warning(msg)
        return result

    logger.info("Steady state found in %d evaluations, max |residual| = %.3g",
                result.n_evaluations, residual_norm)
    return result


def analytic_bolus_trough(dose, ke, ii):
    """One-compartment trough after infinitely many boluses every `ii`."""
    decay = jnp.exp(-ke * ii)
    return dose * decay / (1 - decay)


def analytic_infusion_steady_state(rate, ke):
    """One-compartment amount under a never-ending infusion."""
    return rate / ke


def analytic_truncated_infusion_trough(amt, rate, ke, ii):
    """
    One-compartment trough when `amt` is infused at `rate` every `ii`.

    The infusion lasts delta = amt / rate; during it the amount rises towards
    rate / ke, afterwards it decays freely until the next dose.
    """
    delta = amt / rate
    peak_from_zero = rate / ke * (1 - jnp.exp(-ke * delta))
    end_of_cycle = peak_from_zero * jnp.exp(-ke * (ii - delta))
    return end_of_cycle / (1 - jnp.exp(-ke * ii))
