from dataclasses import dataclass, fields
from typing import Literal
import warnings

DIFFRAX_SOLVERS = ("tsit5", "kvaerno5", "dopri5")
DIFFRAX_ADJOINTS = ("recursive", "backsolve", "forward")
SCIPY_METHODS = ("RK45", "RK23", "DOP853", "Radau", "BDF", "LSODA")
ROOT_METHODS = ("hybr", "lm", "broyden1", "krylov", "df-sane")


def _from_dict(cls, config: dict):
    known = {f.name for f in fields(cls)}
    unknown = set(config) - known
    if unknown:
        warnings.warn(f"Ignoring unknown {cls.__name__} keys: {sorted(unknown)}")
    return cls(**{k: v for k, v in config.items() if k in known})


@dataclass(frozen=True)
class IntegratorConfig:
    """
    Settings shared by the integrators.

    `solver`, `adjoint`, `dt0` and `max_steps` are used by the diffrax
    integrator; `scipy_method` by the scipy one. The tolerances are used by both.
    The defaults are the tight tolerances used for the non-stiff population
    solver; loosen the outer root-finder tolerance rather than these.

    Attributes:
        solver: 'tsit5' (non-stiff), 'kvaerno5' (stiff) or 'dopri5'.
        rtol, atol: Step size controller tolerances.
        dt0: Initial step size. None lets diffrax choose.
        max_steps: Hard cap on the number of solver steps.
        adjoint: How reverse-mode derivatives are computed. 'recursive'
            (checkpointed, exact), 'backsolve' (continuous adjoint) or
            'forward', which is required for `jax.jacfwd` / `jax.jvp`.
        scipy_method: `solve_ivp` method used by `ScipyIntegrator`.
    """
    solver: Literal["tsit5", "kvaerno5", "dopri5"] = "tsit5"
    rtol: float = 1e-8
    atol: float = 1e-10
    dt0: float = 0.1
    max_steps: int = 1000000
    adjoint: Literal["recursive", "backsolve", "forward"] = "recursive"
    scipy_method: str = "LSODA"

    def __post_init__(self):
        if self.solver not in DIFFRAX_SOLVERS:
            raise ValueError(
                f"Solver '{self.solver}' is not supported. Allowed solvers are: {DIFFRAX_SOLVERS}"
            )
        if self.adjoint not in DIFFRAX_ADJOINTS:
            raise ValueError(
                f"Adjoint '{self.adjoint}' is not supported. Allowed adjoints are: {DIFFRAX_ADJOINTS}"
            )
        if self.scipy_method not in SCIPY_METHODS:
            raise ValueError(
                f"Method '{self.scipy_method}' is not supported. Allowed methods are: {SCIPY_METHODS}"
            )
        if self.rtol <= 0 or self.atol <= 0:
            raise ValueError("`rtol` and `atol` must be positive")
        if self.dt0 is not None and self.dt0 <= 0:
            raise ValueError("`dt0` must be positive or None")
        if self.max_steps < 1:
            raise ValueError("`max_steps` must be at least 1")

    @classmethod
    def from_dict(cls, config: dict):
        return _from_dict(cls, config)


@dataclass(frozen=True)
class SolverConfig:
    """
    Settings for the steady-state root-finding driver.

    Attributes:
        method: `scipy.optimize.root` method.
        tol: Termination tolerance passed to `scipy.optimize.root`.
        residual_tol: Max-norm of the residual accepted as converged.
        max_evaluations: Residual evaluation budget (None for scipy's default).
        raise_on_failure: Raise `SteadyStateSolverError` instead of returning
            an unsuccessful result.
    """
    method: str = "hybr"
    tol: float = 1e-10
    residual_tol: float = 1e-6
    max_evaluations: int = None
    raise_on_failure: bool = True

    def __post_init__(self):
        if self.method not in ROOT_METHODS:
            raise ValueError(
                f"Method '{self.method}' is not supported. Allowed methods are: {ROOT_METHODS}"
            )
        if self.tol <= 0 or self.residual_tol <= 0:
            raise ValueError("`tol` and `residual_tol` must be positive")

    @classmethod
    def from_dict(cls, config: dict):
        return _from_dict(cls, config)
