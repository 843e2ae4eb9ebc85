"""
Shared test fixtures for polynomial-gtm.

Provides:
- ``builder`` / ``compiler``: fresh instances with their own caches, so
  memoisation tests never see state left behind by other tests.
- ``shared_compiler``: one session-wide compiler for the expensive
  STM-augmented builds.
- ``algebraic_system``: a small ODE with one algebraic unknown, used to
  exercise structural simplification.
- ``TRIM_DERIVATIVE``: reference derivative at the default initial
  condition, evaluated independently of SymPy.
"""

import numpy as np
import pytest
import sympy as sp

from polynomial_gtm import DynamicalSystem, FunctionCompiler, ModelBuilder


# =====================================================================
# Reference data
# =====================================================================

# [dV, dalpha, dq, dtheta] at V=29.6, alpha=9 deg, q=0, theta=0,
# delta_e=0.68 deg, delta_t=12.7 (double-precision reference evaluation)
TRIM_DERIVATIVE = np.array([
    1.3732270645985314,
    -0.001355624771406605,
    -0.97396358322238075,
    0.0,
])


def finite_difference_jacobian(f, u, p, t=0.0, rel_step=1e-6):
    """Central-difference Jacobian of ``f(u, p, t)`` with respect to ``u``."""
    u = np.asarray(u, dtype=float)
    n = u.size
    J = np.empty((n, n))
    for j in range(n):
        h = rel_step * max(1.0, abs(u[j]))
        up, um = u.copy(), u.copy()
        up[j] += h
        um[j] -= h
        J[:, j] = (f(up, p, t) - f(um, p, t)) / (2 * h)
    return J


# =====================================================================
# Builders and compilers
# =====================================================================

@pytest.fixture
def builder():
    """A ModelBuilder with an empty private cache."""
    return ModelBuilder()


@pytest.fixture
def compiler(builder):
    """A FunctionCompiler wired to the ``builder`` fixture."""
    return FunctionCompiler(builder=builder)


@pytest.fixture(scope="session")
def shared_compiler():
    """Session-wide compiler; reuses STM builds across tests."""
    return FunctionCompiler()


# =====================================================================
# Small symbolic systems
# =====================================================================

@pytest.fixture
def algebraic_system():
    """dx/dt = -k*x + y with the algebraic constraint y = 2*x.

    Returns (system, x, y, k) where ``x`` and ``y`` are functions of ``t``.
    """
    t = sp.Symbol("t")
    x = sp.Function("x")(t)
    y = sp.Function("y")(t)
    k = sp.Symbol("k")

    system = DynamicalSystem(
        [
            sp.Eq(sp.Derivative(x, t), -k * x + y),
            sp.Eq(y, 2 * x),
        ],
        t,
        [x, y],
        [k],
        defaults={x: 1.0, y: 2.0, k: 0.5},
        name="toy",
    )
    return system, x, y, k


@pytest.fixture
def trim_derivative():
    """Reference derivative at the default initial condition."""
    return TRIM_DERIVATIVE.copy()


@pytest.fixture
def fd_jacobian():
    """The central-difference Jacobian helper."""
    return finite_difference_jacobian
