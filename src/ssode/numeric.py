"""
Helpers for the two kinds of numbers the residuals handle.

Differentiable values are JAX arrays. When a residual is evaluated under
``jax.grad``, ``jax.jacfwd``, ``jax.jvp`` or ``jax.jit`` they arrive as tracers
carrying tangent / cotangent information, and ``jax.numpy`` arithmetic combines
two such values into one carrying both derivative structures. Plain values
(dosing data, integer data, the dosing interval, the dose compartment) must
never be traced: the dosing regime is chosen from them with ordinary Python
comparisons.
"""
import numpy as np
import jax
import jax.numpy as jnp


def is_traced(value):
    """True if `value`, or any leaf of it, is a JAX tracer."""
    return any(isinstance(leaf, jax.core.Tracer)
               for leaf in jax.tree_util.tree_leaves(value))


def plain_vector(values, name, dtype=np.float64):
    """
    Coerce plain data to a 1-D numpy vector.

    Args:
        values (array-like): The data. JAX arrays are accepted as long as they
            are concrete, i.e. not being traced.
        name (str): Used in error messages.
        dtype: numpy dtype of the returned vector.

    Raises:
        TypeError: If `values` is traced or not one dimensional.
    """
    if is_traced(values):
        raise TypeError(
            f"`{name}` must be plain data, got a traced value. Quantities that "
            "select the dosing regime cannot be differentiated."
        )
    arr = np.asarray(values, dtype=dtype)
    if arr.ndim != 1:
        raise TypeError(f"`{name}` must be a 1-D vector, got shape {arr.shape}")
    return arr


def plain_scalar(value, name):
    if is_traced(value):
        raise TypeError(f"`{name}` must be plain data, got a traced value.")
    arr = np.asarray(value, dtype=np.float64)
    if arr.ndim != 0:
        raise TypeError(f"`{name}` must be a scalar, got shape {arr.shape}")
    return float(arr)


def promote_args(*values):
    """
    Scalar type of a result computed from `values`.

    Integer inputs promote to the default float type so that e.g. an integer
    trough guess combined with float parameters yields a float residual.
    """
    dtype = jnp.result_type(*(v if hasattr(v, "dtype") else jnp.asarray(v)
                              for v in values))
    if not jnp.issubdtype(dtype, jnp.inexact):
        dtype = jnp.result_type(dtype, float)
    return dtype


def as_state(x, dtype=None):
    """1-D JAX state vector of `dtype` (the dtype of `x` if not given)."""
    x = jnp.asarray(x) if dtype is None else jnp.asarray(x, dtype=dtype)
    if x.ndim != 1:
        raise TypeError(f"State vectors must be 1-D, got shape {x.shape}")
    return x
