"""
polynomial-gtm — Polynomial longitudinal dynamics of NASA's Generic Transport Model.

Build the symbolic ODE (optionally augmented with state-transition-matrix
dynamics) and compile it into a numeric ``f(u, p, t)`` with an analytic
Jacobian, ready for any ODE solver.

Quick start::

    from polynomial_gtm import GTM, GTMFunction

    model = GTM()                  # symbolic DynamicalSystem
    f = GTMFunction(stm=True)      # compiled dynamics with STM states
    du = f(f.system.initial_state(), f.system.default_parameters(), 0.0)

"""

from polynomial_gtm.errors import (
    ConfigurationError,
    SymbolicConstructionError,
    CompilationError,
)
from polynomial_gtm.cache import ModelCache
from polynomial_gtm.system import (
    DynamicalSystem,
    compute_full_jacobian,
    stm_equations,
    structural_simplify,
)
from polynomial_gtm.model import (
    GTM,
    ModelBuilder,
    TRIM_CONDITIONS,
    longitudinal_rhs,
    trim_condition,
)
from polynomial_gtm.function import (
    CompileOptions,
    FunctionCompiler,
    GTMFunction,
    ODEFunction,
    compile_system,
)

__version__ = "0.1.0"

__all__ = [
    "GTM",
    "GTMFunction",
    "ModelBuilder",
    "FunctionCompiler",
    "ModelCache",
    "DynamicalSystem",
    "ODEFunction",
    "CompileOptions",
    "compile_system",
    "compute_full_jacobian",
    "stm_equations",
    "structural_simplify",
    "longitudinal_rhs",
    "trim_condition",
    "TRIM_CONDITIONS",
    "ConfigurationError",
    "SymbolicConstructionError",
    "CompilationError",
]
