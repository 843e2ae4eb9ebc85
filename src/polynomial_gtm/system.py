"""
system.py
=========
Symbolic dynamical systems and the transforms applied to them.

A ``DynamicalSystem`` is an immutable bundle of SymPy equations, the
independent variable, ordered states and parameters, default values and a
name.  This module also provides the pieces the model builder composes:

1. **Jacobians** — ``compute_full_jacobian`` differentiates a list of
   right-hand sides with respect to a list of states.
2. **State-transition matrix** — ``stm_equations`` generates the auxiliary
   ``dPhi/dt = A Phi`` block driven by that Jacobian.
3. **Structural simplification** — ``structural_simplify`` checks that a
   system is balanced and eliminates algebraic unknowns, leaving a pure ODE
   ready for compilation.
"""

from types import MappingProxyType

import numpy as np
import sympy as sp
from sympy.core.function import AppliedUndef

from polynomial_gtm.errors import SymbolicConstructionError


class DynamicalSystem:
    """An immutable symbolic ODE (optionally with algebraic equations).

    Parameters
    ----------
    equations : list of sympy.Eq
        Differential equations ``Eq(Derivative(x(t), t), rhs)`` and,
        before simplification, algebraic equations ``Eq(lhs, rhs)``.
    iv : sympy.Symbol
        The independent variable (time).
    states : list of sympy.Function applications
        Unknowns, e.g. ``V(t)``.  Their order is the index convention of
        every numeric vector derived from this system.
    parameters : list of sympy.Symbol
        Time-independent inputs, in order.
    defaults : dict, optional
        Default numeric value per state and parameter.
    name : str
        System name.
    observed : list of sympy.Eq, optional
        Algebraic unknowns eliminated by simplification, as
        ``Eq(y(t), expr)``.
    is_simplified : bool
        Whether ``structural_simplify`` produced this system.

    Attributes
    ----------
    equations, states, parameters, observed : tuple
        Read-only views of the constructor arguments.
    defaults : mappingproxy
        Read-only view of the defaults.
    """

    def __init__(self, equations, iv, states, parameters, defaults=None,
                 name="system", observed=(), is_simplified=False):
        self._equations = tuple(equations)
        self._iv = iv
        self._states = tuple(states)
        self._parameters = tuple(parameters)
        self._defaults = MappingProxyType(dict(defaults or {}))
        self._name = str(name)
        self._observed = tuple(observed)
        self._is_simplified = bool(is_simplified)

    @property
    def equations(self):
        return self._equations

    @property
    def iv(self):
        return self._iv

    @property
    def states(self):
        return self._states

    @property
    def parameters(self):
        return self._parameters

    @property
    def defaults(self):
        return self._defaults

    @property
    def name(self):
        return self._name

    @property
    def observed(self):
        return self._observed

    @property
    def is_simplified(self):
        return self._is_simplified

    @property
    def rhs(self):
        """Right-hand sides ordered like ``states``.

        Raises
        ------
        SymbolicConstructionError
            If some state has no differential equation (the system still
            carries algebraic equations).
        """
        by_state = {}
        for eq in self._equations:
            if isinstance(eq.lhs, sp.Derivative):
                by_state[eq.lhs.expr] = eq.rhs

        missing = [x for x in self._states if x not in by_state]
        if missing:
            raise SymbolicConstructionError(
                f"System '{self._name}' has no differential equation for "
                f"{missing}; apply structural_simplify first."
            )
        return tuple(by_state[x] for x in self._states)

    def missing_defaults(self):
        """Return the states and parameters in the equations that lack a default."""
        used = set()
        for eq in self._equations:
            used.update(eq.atoms(AppliedUndef))
            used.update(eq.free_symbols)
        declared = list(self._states) + list(self._parameters)
        return [s for s in declared if s in used and s not in self._defaults]

    def initial_state(self):
        """Default state vector, ordered like ``states``."""
        return np.array([float(self._defaults[x]) for x in self._states], dtype=float)

    def default_parameters(self):
        """Default parameter vector, ordered like ``parameters``."""
        return np.array([float(self._defaults[p]) for p in self._parameters], dtype=float)

    def __repr__(self):
        return (
            f"DynamicalSystem(name={self._name!r}, states={len(self._states)}, "
            f"parameters={len(self._parameters)}, equations={len(self._equations)}, "
            f"simplified={self._is_simplified})"
        )


def compute_full_jacobian(ode_expressions, state_symbols):
    r"""Compute the symbolic Jacobian matrix of an ODE system.

    .. math::
        J_{ij} = \frac{\partial F_i}{\partial x_j}

    Parameters
    ----------
    ode_expressions : list of sympy.Expr
        RHS expressions ``[dx1/dt, dx2/dt, ...]``.
    state_symbols : list of sympy.Symbol or Function applications
        State variables ``[x1, x2, ...]`` in matching order.

    Returns
    -------
    sympy.Matrix
        Jacobian of shape ``(len(ode_expressions), len(state_symbols))``.
    """
    return sp.Matrix([
        [sp.diff(ode, var) for var in state_symbols]
        for ode in ode_expressions
    ])


def stm_equations(rhs, states, iv, prefix="Phi"):
    """Build the state-transition-matrix block for an ODE.

    The block is ``dPhi/dt = A Phi`` with ``A = d(rhs)/d(states)`` kept
    symbolic, so it tracks the current trajectory rather than a fixed point.

    Parameters
    ----------
    rhs : list of sympy.Expr
        Right-hand sides of the base system.
    states : list
        Base states, in the order used for both rows and columns of ``A``.
    iv : sympy.Symbol
        The independent variable.
    prefix : str
        Name stem of the new states (``Phi_1_1``, ``Phi_1_2``, ...).

    Returns
    -------
    phi_states : list
        The ``n*n`` new states, flattened row-major.
    equations : list of sympy.Eq
        One expanded equation per new state, in the same order.
    defaults : dict
        The flattened identity matrix, ``Phi(0) = I``.
    """
    n = len(states)
    A = compute_full_jacobian(rhs, states)
    Phi = sp.Matrix(n, n, lambda i, j: sp.Function(f"{prefix}_{i + 1}_{j + 1}")(iv))
    dPhi = (A * Phi).applyfunc(sp.expand)

    phi_states = []
    equations = []
    defaults = {}
    for i in range(n):
        for j in range(n):
            phi = Phi[i, j]
            phi_states.append(phi)
            equations.append(sp.Eq(sp.Derivative(phi, iv), dPhi[i, j]))
            defaults[phi] = 1.0 if i == j else 0.0
    return phi_states, equations, defaults


# ----------------------------------------------------------------------
# Structural simplification
# ----------------------------------------------------------------------

def _classify_equations(system):
    """Split equations into ``{state: rhs}`` and algebraic residuals."""
    states = set(system.states)
    differential = {}
    residuals = []

    for eq in system.equations:
        lhs = eq.lhs
        if isinstance(lhs, sp.Derivative):
            if lhs.variables != (system.iv,) or lhs.expr not in states:
                raise SymbolicConstructionError(
                    f"Left-hand side {lhs} is not the first time derivative "
                    f"of a declared state of '{system.name}'."
                )
            if lhs.expr in differential:
                raise SymbolicConstructionError(
                    f"State {lhs.expr} has more than one differential equation "
                    f"in '{system.name}'."
                )
            if eq.rhs.has(sp.Derivative):
                raise SymbolicConstructionError(
                    f"Right-hand side of {lhs} contains derivatives; only "
                    "explicit first-order equations are supported."
                )
            differential[lhs.expr] = eq.rhs
        else:
            if eq.has(sp.Derivative):
                raise SymbolicConstructionError(
                    f"Equation {eq} mixes derivatives into an algebraic relation."
                )
            residuals.append(eq.lhs - eq.rhs)

    return differential, residuals


def _check_known_symbols(system, expressions):
    """Every symbol in ``expressions`` must be a state, parameter or the iv."""
    allowed_symbols = set(system.parameters) | {system.iv}
    allowed_functions = set(system.states)

    for expr in expressions:
        unknown = (expr.free_symbols - allowed_symbols) | (expr.atoms(AppliedUndef) - allowed_functions)
        if unknown:
            names = sorted(str(s) for s in unknown)
            raise SymbolicConstructionError(
                f"System '{system.name}' references undeclared variables {names}."
            )


def structural_simplify(system):
    """Reduce a system to an equivalent pure ODE.

    Checks that the system is balanced (one equation per unknown, every
    differential equation aimed at a distinct declared state, no undeclared
    symbols) and then eliminates algebraic unknowns one at a time.  Each
    eliminated unknown is solved for uniquely with ``sympy.solve``,
    substituted into the remaining equations, and recorded in ``observed``.

    Parameters
    ----------
    system : DynamicalSystem
        The system to simplify.

    Returns
    -------
    DynamicalSystem
        A system marked ``is_simplified`` whose states all have differential
        equations.  Already simplified systems are returned unchanged.

    Raises
    ------
    SymbolicConstructionError
        If the system is over- or under-determined, references undeclared
        symbols, or an algebraic equation has no unique solution.
    """
    if system.is_simplified:
        return system

    differential, residuals = _classify_equations(system)
    _check_known_symbols(system, list(differential.values()) + residuals)

    pending = [x for x in system.states if x not in differential]
    if len(residuals) != len(pending):
        kind = "over" if len(residuals) > len(pending) else "under"
        raise SymbolicConstructionError(
            f"System '{system.name}' is {kind}-determined: {len(residuals)} "
            f"algebraic equation(s) for {len(pending)} algebraic unknown(s) {pending}."
        )

    observed = list(system.observed)
    while residuals:
        # Fewest unknowns first keeps each solve as small as possible
        residual = min(residuals, key=lambda r: sum(1 for u in pending if r.has(u)))
        candidates = [u for u in pending if residual.has(u)]
        if not candidates:
            raise SymbolicConstructionError(
                f"Algebraic equation 0 = {residual} in '{system.name}' involves "
                "no remaining unknown; the equations are inconsistent."
            )

        unknown = candidates[0]
        solutions = sp.solve(residual, unknown)
        if len(solutions) != 1:
            raise SymbolicConstructionError(
                f"Cannot eliminate {unknown} from 0 = {residual}: expected one "
                f"solution, found {len(solutions)}."
            )
        solution = solutions[0]

        residuals.remove(residual)
        pending.remove(unknown)
        residuals = [r.subs(unknown, solution) for r in residuals]
        differential = {x: rhs.subs(unknown, solution) for x, rhs in differential.items()}
        observed = [sp.Eq(o.lhs, o.rhs.subs(unknown, solution)) for o in observed]
        observed.append(sp.Eq(unknown, solution))

    states = [x for x in system.states if x in differential]
    equations = [sp.Eq(sp.Derivative(x, system.iv), differential[x]) for x in states]

    return DynamicalSystem(
        equations,
        system.iv,
        states,
        system.parameters,
        defaults=system.defaults,
        name=system.name,
        observed=observed,
        is_simplified=True,
    )
