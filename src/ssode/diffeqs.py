import abc

import jax.numpy as jnp
import flax.struct


class CompartmentODE(abc.ABC):
    """
    Abstract Base Class for compartmental derivative functions.

    Instances are callables with the signature used by the integrators and the
    steady-state residuals:

        ode(t, y, params, rate, dat_int, extra_flag) -> dy/dt

    Subclasses implement `rhs`, the derivative without infusion input; the
    continuous infusion `rate` vector is added per compartment by `__call__`.
    All arithmetic must go through `jax.numpy` so that derivatives with respect
    to `y` and `params` propagate.

    Attributes:
        n_compartments (int): Length of the state vector.
        param_names (tuple[str]): Order of the entries of `params`.
    """
    n_compartments = None
    param_names = ()

    def __call__(self, t, y, params, rate, dat_int, extra_flag=0):
        """
        Args:
            t (float): Current time point.
            y (array): Amounts in each compartment.
            params (array): Model parameters, ordered as `param_names`.
            rate (array): Continuous infusion rate into each compartment.
            dat_int (array): Integer data. Unused by the built-in models.
            extra_flag (int): Reserved flag of the derivative-function
                signature. Unused by the built-in models.

        Returns:
            jax.Array: dy/dt, one entry per compartment.
        """
        return self.rhs(t, y, params, dat_int) + jnp.asarray(rate)

    @abc.abstractmethod
    def rhs(self, t, y, params, dat_int):
        """
        Derivative of the compartment amounts without infusion input.

        Args:
            t (float): Current time point.
            y (array): Amounts in each compartment.
            params (array): Model parameters, ordered as `param_names`.
            dat_int (array): Integer data.

        Returns:
            jax.Array: dy/dt with the same length as `y`.
        """
        pass


class OneCompartmentLinear(CompartmentODE):
    """
    One-compartment model with first-order elimination.

    States (y):
        y[0]: Mass in Central Compartment (amount)

    Parameters:
        ke (float): Elimination rate constant (1/time), ke = cl / vd.

    Steady state:
        - Bolus `dose` every `ii`: trough = dose * exp(-ke*ii) / (1 - exp(-ke*ii)).
        - Constant infusion `R`: amount = R / ke.
    """
    n_compartments = 1
    param_names = ("ke",)

    def rhs(self, t, y, params, dat_int):
        ke = params[0]
        central_mass = y[0]
        return jnp.array([-ke * central_mass])


class OneCompartmentAbsorption(CompartmentODE):
    """
    One-compartment model with first-order absorption (Gut -> Central).

    States (y):
        y[0]: Mass in Gut/Absorption Compartment (amount)
        y[1]: Mass in Central Compartment (amount)
        Order: [Gut, Central], so oral doses go to cmt=1 and IV doses to cmt=2.

    Parameters:
        ka (float): First-order absorption rate constant (1/time).
        cl (float): Clearance from the central compartment (volume/time).
        vd (float): Volume of distribution of the central compartment (volume).
    """
    n_compartments = 2
    param_names = ("ka", "cl", "vd")

    def rhs(self, t, y, params, dat_int):
        ka, cl, vd = params[0], params[1], params[2]
        gut_mass, central_mass = y[0], y[1]
        dGdt = -ka * gut_mass
        dCMdt = ka * gut_mass - (cl / vd) * central_mass
        return jnp.stack([dGdt, dCMdt])


class TwoCompartmentLinear(CompartmentODE):
    """
    Two-compartment model (Central, Peripheral) with elimination from central.

    States (y):
        y[0]: Mass in Central Compartment (amount)
        y[1]: Mass in Peripheral Compartment (amount)

    Parameters:
        cl (float): Clearance from central compartment (volume/time).
        v1 (float): Central volume (volume).
        q (float): Inter-compartmental clearance (volume/time).
        v2 (float): Peripheral volume (volume).
    """
    n_compartments = 2
    param_names = ("cl", "v1", "q", "v2")

    def rhs(self, t, y, params, dat_int):
        return self.rhs_matrix(params) @ y

    @staticmethod
    def rhs_matrix(params):
        """Linear system matrix K such that dy/dt = K @ y."""
        cl, v1, q, v2 = params[0], params[1], params[2], params[3]
        k10 = cl / v1
        k12 = q / v1
        k21 = q / v2
        return jnp.array([[-(k10 + k12), k21],
                          [k12, -k21]])


@flax.struct.dataclass
class LinearODESystem:
    """
    Container for a linear compartmental system dy/dt = K @ y + rate.

    Holds the start time, the initial state, the continuous rate vector and
    the system matrix. It has no behavior beyond evaluating the derivative; it
    exists so a linear model can be handed around as one immutable pytree.
    """
    t0: float
    y0: jnp.ndarray
    rate: jnp.ndarray
    rhs_matrix: jnp.ndarray

    @classmethod
    def from_parameters(cls, t0, y0, rate, params, matrix_fn):
        """Build the container, computing K from `params` with `matrix_fn`."""
        return cls(t0=t0,
                   y0=jnp.asarray(y0),
                   rate=jnp.asarray(rate),
                   rhs_matrix=jnp.asarray(matrix_fn(params)))

    @property
    def n_compartments(self):
        return self.rhs_matrix.shape[0]

    def derivative(self, t, y):
        return self.rhs_matrix @ y + self.rate


class LinearODEDerivative(CompartmentODE):
    """
    Derivative function for any linear model given a system-matrix builder.

    Args:
        matrix_fn (callable): params -> K, an (n, n) array.
        n_compartments (int): Size of K.
        param_names (tuple[str]): Names of the entries of `params`.
    """

    def __init__(self, matrix_fn, n_compartments, param_names=()):
        self.matrix_fn = matrix_fn
        self.n_compartments = n_compartments
        self.param_names = tuple(param_names)

    def __call__(self, t, y, params, rate, dat_int, extra_flag=0):
        system = LinearODESystem.from_parameters(t, y, rate, params, self.matrix_fn)
        return system.derivative(t, y)

    def rhs(self, t, y, params, dat_int):
        return jnp.asarray(self.matrix_fn(params)) @ y
