"""
Algebraic systems solved when computing steady-state solutions.

Each system is a residual functor

    residual(x, y, dat, dat_int) -> x - state after one dosing cycle from x

whose root, over the trough amounts `x`, is the steady state reached after
infinitely many doses given every `ii` time units into compartment `cmt`.

Two variants exist because the dose amount can be either data or a function
of the parameters being estimated (typically `F * amt` with a bioavailability
parameter `F`):

    SSSystemDD: amount and rate are data. dat = [rate_1..rate_n, amt].
    SSSystemVD: amount is the last element of `y`, rate is data.
                dat = [rate_1..rate_n].

`x` and `y` may be plain arrays or JAX tracers; the residual is written once
with `jax.numpy` so plain evaluation, forward mode and reverse mode all go
through the same code. The dosing regime is chosen from plain data only, so
the branch taken never depends on which parameters are differentiated.
"""
import logging
from typing import Callable

import numpy as np
import jax.numpy as jnp
import flax.struct

from .dosing import (SS_FUNCTION_NAME, check_dose_compartment, infusion_rate,
                     integer_data, split_fixed_dose_data, split_variable_dose_data)
from .exceptions import UnsupportedConfigurationError, ValidationError
from .integrators import Integrator
from .numeric import as_state, plain_scalar, plain_vector, promote_args
from .regimes import DosingRegime, classify_regime

logger = logging.getLogger(__name__)


def _check_interval(ii):
    ii = plain_scalar(ii, "ii")
    if not np.isfinite(ii):
        raise ValidationError(SS_FUNCTION_NAME, "Interdose interval (ii)", ii,
                              ", but must be finite!")
    return ii


def _bolus_residual(f, integrator, x, amt, cmt, ii, params, dat_int):
    """x - state at `ii` after adding `amt` to compartment `cmt` of `x`."""
    if ii <= 0:
        raise ValidationError(
            SS_FUNCTION_NAME, "Interdose interval (ii)", ii,
            ", but must be positive for a bolus dose (rate = 0)!",
        )
    x0 = x.at[cmt - 1].add(amt)
    no_rate = np.zeros(x.shape[0])
    pred = integrator(f, x0, 0.0, [ii], params, no_rate, dat_int)[0]
    return x - pred


def _truncated_infusion_residual(f, integrator, x, amt, rate, rate_v, ii, params, dat_int):
    """
    x - state at `ii` when the infusion runs for amt / rate and then stops.

    An infusion longer than the interdose interval would overlap the next dose;
    the superposition of overlapping infusions is not supported.
    """
    delta = amt / rate
    if delta > ii:
        raise ValidationError(
            SS_FUNCTION_NAME, "Infusion time (F * amt / rate)", delta,
            f", but must be smaller than the interdose interval (ii): {ii}!",
        )
    if delta < 0:
        raise ValidationError(
            SS_FUNCTION_NAME, "Infusion time (F * amt / rate)", delta,
            ", but must be non-negative!",
        )
    # time at which the infusion stops
    x0 = integrator(f, x, 0.0, [delta], params, rate_v, dat_int)[0]
    no_rate = np.zeros(x.shape[0])
    pred = integrator(f, x0, 0.0, [ii - delta], params, no_rate, dat_int)[0]
    return x - pred


def _constant_infusion_residual(f, x, params, rate_v, dat_int, dtype):
    """At steady state under a never-ending infusion, dx/dt is zero."""
    return jnp.asarray(f(0.0, x, params, rate_v, dat_int, 0), dtype=dtype)


@flax.struct.dataclass
class SSSystemDD:
    """
    Steady-state residual when both the dose amount and the rate are data.

    Args:
        f (callable): Derivative function
            f(t, y, params, rate, dat_int, extra_flag) -> dy/dt.
        ii (float): Interdose interval. ii <= 0 means a constant infusion.
        cmt (int): 1-based dosing compartment.
        integrator (Integrator): Trajectory integrator.
    """
    f: Callable = flax.struct.field(pytree_node=False)
    ii: float = flax.struct.field(pytree_node=False)
    cmt: int = flax.struct.field(pytree_node=False)
    integrator: Integrator = flax.struct.field(pytree_node=False)

    def __post_init__(self):
        object.__setattr__(self, "ii", _check_interval(self.ii))
        object.__setattr__(self, "cmt", check_dose_compartment(self.cmt))

    def regime(self, dat, n_compartments=None):
        """Dosing regime selected by `dat` [rate_1..rate_n, amt] and `ii`."""
        dat = plain_vector(dat, "dat")
        if n_compartments is None:
            n_compartments = dat.shape[0] - 1
        rate_v, _amt = split_fixed_dose_data(dat, n_compartments)
        cmt = check_dose_compartment(self.cmt, n_compartments)
        return classify_regime(infusion_rate(rate_v, cmt), self.ii)

    def __call__(self, x, y, dat, dat_int=None):
        """
        Args:
            x (array): Trough amounts, one per compartment.
            y (array): Model parameters.
            dat (array-like): Plain dosing data [rate_1..rate_n, amt].
            dat_int (array-like): Plain integer data, passed through.

        Returns:
            jax.Array: Residual of length n, with the promoted dtype of x and y.
        """
        dtype = promote_args(x, y)
        x = as_state(x, dtype)
        y = jnp.asarray(y, dtype=dtype)
        n = x.shape[0]
        regime = self.regime(dat, n)
        cmt = self.cmt
        rate_v, amt = split_fixed_dose_data(dat, n)
        dat_int = integer_data(dat_int)
        rate = infusion_rate(rate_v, cmt)

        logger.debug("SSSystemDD: regime=%s cmt=%d ii=%g rate=%g amt=%g",
                     regime.value, cmt, self.ii, rate, amt)

        if regime is DosingRegime.BOLUS:
            return _bolus_residual(self.f, self.integrator, x, amt, cmt,
                                   self.ii, y, dat_int)
        if regime is DosingRegime.TRUNCATED_INFUSION:
            return _truncated_infusion_residual(self.f, self.integrator, x, amt, rate,
                                                rate_v, self.ii, y, dat_int)
        return _constant_infusion_residual(self.f, x, y, rate_v, dat_int, dtype)


@flax.struct.dataclass
class SSSystemVD:
    """
    Steady-state residual when the dose amount is a parameter and the rate is data.

    This usually happens because the bioavailability is estimated, making
    F * amt a transformed parameter. The last element of `y` holds the amount;
    the remaining elements are passed to `f` as the model parameters.

    Args:
        f (callable): Derivative function
            f(t, y, params, rate, dat_int, extra_flag) -> dy/dt.
        ii (float): Interdose interval. ii <= 0 means a constant infusion.
        cmt (int): 1-based dosing compartment.
        integrator (Integrator): Trajectory integrator.
    """
    f: Callable = flax.struct.field(pytree_node=False)
    ii: float = flax.struct.field(pytree_node=False)
    cmt: int = flax.struct.field(pytree_node=False)
    integrator: Integrator = flax.struct.field(pytree_node=False)

    def __post_init__(self):
        object.__setattr__(self, "ii", _check_interval(self.ii))
        object.__setattr__(self, "cmt", check_dose_compartment(self.cmt))

    def regime(self, dat, n_compartments=None):
        """
        Dosing regime selected by the rates `dat` and `ii`.

        Without `n_compartments` only the dosing compartment's rate is read,
        so the regime is known before the state or parameters are looked at.
        """
        dat = plain_vector(dat, "dat")
        if n_compartments is not None:
            dat = split_variable_dose_data(dat, n_compartments)
        cmt = check_dose_compartment(self.cmt, dat.shape[0])
        return classify_regime(infusion_rate(dat, cmt), self.ii)

    def __call__(self, x, y, dat, dat_int=None):
        """
        Args:
            x (array): Trough amounts, one per compartment.
            y (array): Model parameters followed by the delivered dose amount.
            dat (array-like): Plain rates [rate_1..rate_n].
            dat_int (array-like): Plain integer data, passed through.

        Returns:
            jax.Array: Residual of length n, with the promoted dtype of x and y.
        """
        regime = self.regime(dat)
        if regime is DosingRegime.TRUNCATED_INFUSION:
            # TODO: a closed-form treatment of F * amt delivered over amt / rate
            # needs the infusion end time as a differentiable quantity.
            raise UnsupportedConfigurationError(
                SS_FUNCTION_NAME,
                "Current version does not handle the case of a multiple truncated "
                "infusion solution (i.e. ii > 0 and rate > 0) when F * amt is a parameter",
            )

        dtype = promote_args(x, y)
        x = as_state(x, dtype)
        y = jnp.asarray(y, dtype=dtype)
        n = x.shape[0]
        cmt = check_dose_compartment(self.cmt, n)
        rate_v = split_variable_dose_data(dat, n)
        dat_int = integer_data(dat_int)
        rate = infusion_rate(rate_v, cmt)
        logger.debug("SSSystemVD: regime=%s cmt=%d ii=%g rate=%g",
                     regime.value, cmt, self.ii, rate)

        if y.ndim != 1 or y.shape[0] < 1:
            raise ValidationError(
                SS_FUNCTION_NAME, "Length of the parameter vector (y)", y.shape,
                ", but must hold the model parameters followed by the dose amount!",
            )
        amt = y[-1]
        params = y[:-1]

        if regime is DosingRegime.BOLUS:
            return _bolus_residual(self.f, self.integrator, x, amt, cmt,
                                   self.ii, params, dat_int)
        return _constant_infusion_residual(self.f, x, params, rate_v, dat_int, dtype)


def make_ss_system(f, ii, cmt, integrator, amt_is_parameter=False):
    """
    Pick the residual variant for a dose event.

    Args:
        amt_is_parameter (bool): True when the delivered amount depends on
            estimated parameters (e.g. bioavailability). The caller then
            appends the amount to the parameter vector and passes only the
            rates as `dat`.
    """
    if amt_is_parameter:
        return SSSystemVD(f=f, ii=ii, cmt=cmt, integrator=integrator)
    return SSSystemDD(f=f, ii=ii, cmt=cmt, integrator=integrator)
