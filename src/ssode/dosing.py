"""
Layout of the plain dosing data passed to the steady-state residuals.

Fixed-dose layout (amount and rate are both data), length n + 1:

    [rate_1, ..., rate_n, amt]

Variable-dose layout (the amount lives in the parameter vector), length n:

    [rate_1, ..., rate_n]

`amt` is the amount actually delivered, i.e. already multiplied by any
bioavailability fraction.
"""
import numpy as np

from .exceptions import ValidationError
from .numeric import plain_vector

SS_FUNCTION_NAME = "Steady State Solution"


def check_dose_compartment(cmt, n_compartments=None):
    """
    Validate the 1-based dosing compartment index.

    Only the lower bound is checked when `n_compartments` is None, which is the
    case when a residual is constructed before the state size is known.
    """
    if isinstance(cmt, (bool, np.bool_)) or not isinstance(cmt, (int, np.integer)):
        raise TypeError(f"`cmt` must be a plain integer, got {type(cmt).__name__}")
    if n_compartments is None:
        if cmt < 1:
            raise ValidationError(SS_FUNCTION_NAME, "Dosing compartment (cmt)", cmt,
                                  ", but must be at least 1!")
        return int(cmt)
    if not 1 <= cmt <= n_compartments:
        raise ValidationError(
            SS_FUNCTION_NAME, "Dosing compartment (cmt)", cmt,
            f", but must be between 1 and the number of compartments ({n_compartments})!",
        )
    return int(cmt)


def split_fixed_dose_data(dat, n_compartments):
    """
    Split fixed-dose data into the rate vector and the dose amount.

    Returns:
        tuple[np.ndarray, float]: (rates of length n, amt)
    """
    dat = plain_vector(dat, "dat")
    if dat.shape[0] != n_compartments + 1:
        raise ValidationError(
            SS_FUNCTION_NAME, "Length of the dosing data (dat)", dat.shape[0],
            f", but must be the number of compartments plus one ({n_compartments + 1}):"
            " one rate per compartment followed by the dose amount!",
        )
    return dat[:-1], float(dat[-1])


def split_variable_dose_data(dat, n_compartments):
    """Validate variable-dose data and return the rate vector."""
    dat = plain_vector(dat, "dat")
    if dat.shape[0] != n_compartments:
        raise ValidationError(
            SS_FUNCTION_NAME, "Length of the dosing data (dat)", dat.shape[0],
            f", but must equal the number of compartments ({n_compartments})!",
        )
    return dat


def infusion_rate(rates, cmt):
    """Plain infusion rate into the 1-based dosing compartment."""
    return float(rates[cmt - 1])


def fixed_dose_data(rates, amt):
    rates = plain_vector(rates, "rates")
    return np.append(rates, float(amt))


def variable_dose_data(rates):
    return plain_vector(rates, "rates").copy()


def integer_data(dat_int=None):
    """Plain integer vector; an empty one when nothing is passed."""
    if dat_int is None:
        return np.zeros((0,), dtype=np.int64)
    return plain_vector(dat_int, "dat_int", dtype=np.int64)
