import abc
import logging

import numpy as np
import jax.numpy as jnp
from diffrax import (ODETerm, SaveAt, diffeqsolve,
                     Kvaerno5, Tsit5, Dopri5, PIDController,
                     BacksolveAdjoint, RecursiveCheckpointAdjoint, ForwardMode
                     )
from scipy.integrate import solve_ivp

from .config import IntegratorConfig
from .numeric import is_traced, plain_scalar, plain_vector, promote_args

logger = logging.getLogger(__name__)


class Integrator(abc.ABC):
    """
    Abstract Base Class for trajectory integrators.

    An integrator advances a compartmental state from `t0` through each of the
    observation times `ts` under the derivative function

        f(t, y, params, rate, dat_int, extra_flag) -> dy/dt

    with the continuous infusion `rate` vector held constant. It returns one
    state per observation time, stacked in the order the times were given.

    Observation times must be plain data. When every observation time equals
    `t0` the initial state is returned without calling the solver, which lets
    callers request zero-length segments (e.g. an infusion that lasts the whole
    dosing interval).
    """

    # whether JAX tracers may flow through `_solve`
    differentiable = True

    def __init__(self, config: IntegratorConfig = None):
        self.config = IntegratorConfig() if config is None else config

    def __call__(self, f, y0, t0, ts, params, rate, dat_int):
        """
        Args:
            f (callable): Derivative function.
            y0 (array-like): Initial state, length n.
            t0 (float): Start time.
            ts (array-like): Observation times, non-decreasing and >= t0.
            params (array-like): Model parameters, passed through to `f`.
            rate (array-like): Continuous infusion rates, passed through to `f`.
            dat_int (array-like): Integer data, passed through to `f`.

        Returns:
            jax.Array or np.ndarray: States with shape (len(ts), n).
        """
        t0 = plain_scalar(t0, "t0")
        ts = plain_vector(ts, "ts")
        if ts.shape[0] == 0:
            raise ValueError("At least one observation time is required")
        if np.any(ts < t0) or np.any(np.diff(ts) < 0):
            raise ValueError(
                f"Observation times must be non-decreasing and no earlier than t0={t0}, got {ts}"
            )
        if np.all(ts == t0):
            y0 = jnp.asarray(y0, dtype=promote_args(y0, params))
            return jnp.tile(y0, (ts.shape[0], 1))
        return self._solve(f, y0, t0, ts, params, rate, dat_int)

    @abc.abstractmethod
    def _solve(self, f, y0, t0, ts, params, rate, dat_int):
        pass


class DiffraxIntegrator(Integrator):
    """
    Differentiable integrator built on `diffrax.diffeqsolve`.

    States and parameters may be JAX tracers; derivative information flows
    through to the returned states. Use `adjoint='forward'` in the config when
    the caller differentiates with `jax.jacfwd` or `jax.jvp`.
    """

    def __init__(self, config: IntegratorConfig = None):
        super().__init__(config)
        self.solver = self._make_solver()
        self.stepsize_controller = PIDController(rtol=self.config.rtol,
                                                 atol=self.config.atol)
        self.adjoint = self._make_adjoint()
        logger.debug("Configured diffrax integrator: solver=%s adjoint=%s rtol=%g atol=%g",
                     self.config.solver, self.config.adjoint,
                     self.config.rtol, self.config.atol)

    def _make_solver(self):
        if self.config.solver == "kvaerno5":
            return Kvaerno5()
        if self.config.solver == "dopri5":
            return Dopri5()
        return Tsit5()

    def _make_adjoint(self):
        if self.config.adjoint == "backsolve":
            return BacksolveAdjoint(solver=self.solver,
                                    stepsize_controller=self.stepsize_controller)
        if self.config.adjoint == "forward":
            return ForwardMode()
        return RecursiveCheckpointAdjoint()

    def _solve(self, f, y0, t0, ts, params, rate, dat_int):
        dtype = promote_args(y0, params)
        y0 = jnp.asarray(y0, dtype=dtype)
        params = jnp.asarray(params, dtype=dtype)
        # rate and dat_int are plain data, so closing over them is safe for
        # every adjoint; only params travel through `args`.
        rate = plain_vector(rate, "rate")
        dat_int = plain_vector(dat_int, "dat_int", dtype=np.int64)

        def vector_field(t, y, args):
            return jnp.asarray(f(t, y, args, rate, dat_int, 0), dtype=y.dtype)

        solution = diffeqsolve(
            terms=ODETerm(vector_field),
            solver=self.solver,
            t0=t0,
            t1=float(ts[-1]),
            dt0=self.config.dt0,
            y0=y0,
            args=params,
            max_steps=self.config.max_steps,
            saveat=SaveAt(ts=jnp.asarray(ts, dtype=dtype)),
            stepsize_controller=self.stepsize_controller,
            adjoint=self.adjoint,
        )
        return solution.ys


class ScipyIntegrator(Integrator):
    """
    Plain-float integrator built on `scipy.integrate.solve_ivp`.

    Useful for evaluating a residual without derivatives and for cross-checking
    the diffrax integrator. Traced inputs are rejected.
    """

    differentiable = False

    def _solve(self, f, y0, t0, ts, params, rate, dat_int):
        if is_traced((y0, params)):
            raise TypeError(
                "ScipyIntegrator cannot propagate derivatives; use DiffraxIntegrator"
            )
        y0 = np.asarray(y0, dtype=np.float64)
        params = np.asarray(params, dtype=np.float64)
        rate = np.asarray(rate, dtype=np.float64)
        dat_int = np.asarray(dat_int)

        def fun(t, y):
            return np.asarray(f(t, y, params, rate, dat_int, 0), dtype=np.float64)

        sol = solve_ivp(fun, (t0, float(ts[-1])), y0, t_eval=ts,
                        method=self.config.scipy_method,
                        rtol=self.config.rtol, atol=self.config.atol)
        if not sol.success:
            raise RuntimeError(f"solve_ivp failed: {sol.message}")
        return sol.y.T
