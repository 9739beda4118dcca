"""
Exceptions raised while building or solving steady-state residuals.

Exception Hierarchy:
    SteadyStateError (base)
    ├── ValidationError                 bad dosing data / infusion longer than ii
    ├── UnsupportedConfigurationError   declared capability gap
    └── SteadyStateSolverError          the root-finding driver did not converge

Errors raised by the integrator or the derivative function are never caught
or rewrapped; they reach the caller unchanged.
"""


class SteadyStateError(Exception):
    """Base exception for the steady-state residual package."""
    pass


class ValidationError(SteadyStateError, ValueError):
    """
    An argument failed validation. The message identifies the computation,
    the offending quantity, its value and what was expected of it, e.g.

        Steady State Solution: Infusion time (F * amt / rate) is 15.0, but
        must be smaller than the interdose interval (ii): 12.0!

    Attributes:
        function (str): Name of the computation that rejected the value.
        name (str): Name of the offending quantity.
        value: The offending value.
        explanation (str): Human readable description of the requirement.
    """

    def __init__(self, function, name, value, explanation):
        self.function = function
        self.name = name
        self.value = value
        self.explanation = explanation
        super().__init__(f"{function}: {name} is {value}{explanation}")


class UnsupportedConfigurationError(SteadyStateError, NotImplementedError):
    """
    The requested dosing configuration has no steady-state solution in this
    package, e.g. a parameter-dependent dose amount delivered as a truncated
    infusion. Raised deterministically; not a numerical failure.
    """

    def __init__(self, function, message):
        self.function = function
        super().__init__(f"{function}: {message}")


class SteadyStateSolverError(SteadyStateError, RuntimeError):
    """The root-finding driver failed to bring the residual to zero."""

    def __init__(self, message, result=None):
        self.result = result
        super().__init__(message)
