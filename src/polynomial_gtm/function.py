"""
function.py
===========
Compile symbolic systems into numeric ODE right-hand-side functions.

The compiled object follows the ``f(u, p, t)`` convention used by ODE
solvers: ``u`` is ordered like ``system.states`` and ``p`` like
``system.parameters``.  Code generation goes through ``sympy.lambdify``;
the analytic Jacobian is derived symbolically before generation rather than
by finite differences.
"""

from dataclasses import dataclass, fields

import numpy as np
import sympy as sp

from polynomial_gtm.cache import ModelCache, log
from polynomial_gtm.errors import CompilationError, ConfigurationError, SymbolicConstructionError
from polynomial_gtm.model import DEFAULT_NAME, ModelBuilder, _default_builder, check_configuration
from polynomial_gtm.system import compute_full_jacobian


@dataclass(frozen=True)
class CompileOptions:
    """Options recognised by :func:`compile_system`.

    Attributes
    ----------
    jac : bool
        Generate the analytic Jacobian ``d(rhs)/d(states)``.
    tgrad : bool
        Generate the explicit time gradient ``d(rhs)/dt``.
    simplify_jac : bool
        Expand Jacobian entries before code generation.
    cse : bool
        Let ``lambdify`` perform common subexpression elimination.
    modules : str
        ``lambdify`` backend, e.g. ``'numpy'`` or ``'math'``.
    """

    jac: bool = True
    tgrad: bool = False
    simplify_jac: bool = False
    cse: bool = False
    modules: str = "numpy"

    @classmethod
    def from_mapping(cls, options):
        """Validate a plain mapping of options.

        Unknown keys and values of the wrong type raise
        ``ConfigurationError``; omitted keys keep their defaults.
        """
        types = {f.name: f.type for f in fields(cls)}
        unknown = sorted(set(options) - set(types))
        if unknown:
            raise ConfigurationError(
                f"Unsupported compile option(s) {unknown}; recognised options are {sorted(types)}"
            )
        for key, value in options.items():
            expected = bool if types[key] in (bool, "bool") else str
            if not isinstance(value, expected):
                raise ConfigurationError(
                    f"Compile option '{key}' must be {expected.__name__}, got {value!r}"
                )
        return cls(**options)


class ODEFunction:
    """Numeric evaluation of a compiled ``DynamicalSystem``.

    Parameters
    ----------
    system : DynamicalSystem
        The (unmodified) system the functions were generated from.
    options : CompileOptions
        The options used for generation.
    f : callable
        Generated ``f(u, p, t)`` returning the state derivative.
    jac, tgrad : callable or None
        Generated Jacobian and time gradient, if requested.

    Examples
    --------
    >>> f = GTMFunction()
    >>> u, p = f.system.initial_state(), f.system.default_parameters()
    >>> f(u, p, 0.0).shape
    (4,)
    >>> f.jacobian(u, p, 0.0).shape
    (4, 4)
    """

    def __init__(self, system, options, f, jac=None, tgrad=None):
        self.system = system
        self.options = options
        self._f = f
        self._jac = jac
        self._tgrad = tgrad
        self._n_states = len(system.states)
        self._n_params = len(system.parameters)

    @property
    def has_jac(self):
        return self._jac is not None

    @property
    def has_tgrad(self):
        return self._tgrad is not None

    def _vectors(self, u, p):
        u = np.asarray(u, dtype=float)
        p = np.asarray(p, dtype=float)
        if u.shape != (self._n_states,):
            raise ConfigurationError(
                f"State vector for '{self.system.name}' must have shape "
                f"({self._n_states},), got {u.shape}"
            )
        if p.shape != (self._n_params,):
            raise ConfigurationError(
                f"Parameter vector for '{self.system.name}' must have shape "
                f"({self._n_params},), got {p.shape}"
            )
        return u, p

    @staticmethod
    def _store(result, out):
        if out is None:
            return result
        out[...] = result
        return out

    def evaluate(self, u, p, t=0.0, out=None):
        """State derivative at ``(u, p, t)``; written into ``out`` if given."""
        u, p = self._vectors(u, p)
        du = np.array(self._f(u, p, t), dtype=float).reshape(self._n_states)
        return self._store(du, out)

    __call__ = evaluate

    def jacobian(self, u, p, t=0.0, out=None):
        """Analytic Jacobian ``d(du)/du`` at ``(u, p, t)``."""
        if self._jac is None:
            raise ConfigurationError(
                f"'{self.system.name}' was compiled without jac=True; no Jacobian available"
            )
        u, p = self._vectors(u, p)
        J = np.array(self._jac(u, p, t), dtype=float).reshape(self._n_states, self._n_states)
        return self._store(J, out)

    def time_gradient(self, u, p, t=0.0, out=None):
        """Explicit time derivative of the right-hand side at ``(u, p, t)``."""
        if self._tgrad is None:
            raise ConfigurationError(
                f"'{self.system.name}' was compiled without tgrad=True; no time gradient available"
            )
        u, p = self._vectors(u, p)
        dt = np.array(self._tgrad(u, p, t), dtype=float).reshape(self._n_states)
        return self._store(dt, out)

    def __repr__(self):
        return (
            f"ODEFunction(system={self.system.name!r}, states={self._n_states}, "
            f"parameters={self._n_params}, jac={self.has_jac}, tgrad={self.has_tgrad})"
        )


def _lambdify(args, exprs, options, label):
    try:
        return sp.lambdify(args, exprs, modules=options.modules, cse=options.cse)
    except (SyntaxError, NameError, TypeError, ImportError) as exc:
        raise CompilationError(f"Could not generate {label}: {exc}") from exc


def compile_system(system, options=None):
    """Generate an :class:`ODEFunction` from a pure-ODE system.

    Parameters
    ----------
    system : DynamicalSystem
        Every state must have a differential equation (simplify first if
        the system carries algebraic equations).
    options : CompileOptions, optional
        Defaults to ``CompileOptions()``.

    Returns
    -------
    ODEFunction

    Raises
    ------
    CompilationError
        If the system is not a pure ODE or code generation fails.
    """
    options = options or CompileOptions()

    try:
        rhs = system.rhs
    except SymbolicConstructionError as exc:
        raise CompilationError(f"Cannot compile '{system.name}': {exc}") from exc

    # Plain dummies stand in for x(t) so partial derivatives hold states fixed
    state_args = [sp.Dummy(str(x.func)) for x in system.states]
    replacements = dict(zip(system.states, state_args))
    rhs = [sp.sympify(g).subs(replacements) for g in rhs]

    args = [state_args, list(system.parameters), system.iv]
    f = _lambdify(args, rhs, options, "right-hand side")

    jac = None
    if options.jac:
        J = compute_full_jacobian(rhs, state_args)
        if options.simplify_jac:
            J = J.applyfunc(sp.expand)
        jac = _lambdify(args, J.tolist(), options, "Jacobian")

    tgrad = None
    if options.tgrad:
        tgrad = _lambdify(args, [sp.diff(g, system.iv) for g in rhs], options, "time gradient")

    return ODEFunction(system, options, f, jac=jac, tgrad=tgrad)


class FunctionCompiler:
    """Compile GTM systems into ``ODEFunction`` objects, memoised per configuration.

    Parameters
    ----------
    builder : ModelBuilder, optional
        Source of symbolic systems.  A fresh builder is created if omitted.
    cache : ModelCache, optional
        Where compiled functions are kept.
    verbose : bool, optional
        If True, prints a trace of each compilation.
    """

    DEFAULT_OPTIONS = {"jac": True}

    def __init__(self, builder=None, cache=None, verbose=False):
        self.builder = builder if builder is not None else ModelBuilder(verbose=verbose)
        self.cache = cache if cache is not None else ModelCache("functions")
        self.verbose = verbose

    def log(self, message, depth=0):
        """Print an indented debug message when ``verbose=True``."""
        log(message, depth, self.verbose)

    def compile(self, stm=False, simplify=True, name=DEFAULT_NAME, **options):
        """Return the compiled function for a configuration.

        ``stm``, ``simplify`` and ``name`` are passed to
        :meth:`ModelBuilder.build`; every other keyword is a
        :class:`CompileOptions` field and overrides ``DEFAULT_OPTIONS``.

        Returns
        -------
        ODEFunction
            The same instance for repeated calls with equal arguments.

        Raises
        ------
        ConfigurationError
            For invalid flags, names or options.
        SymbolicConstructionError
            If the model cannot be built.
        CompilationError
            If code generation fails.
        """
        check_configuration(stm, simplify, name)
        merged = dict(self.DEFAULT_OPTIONS)
        merged.update(options)
        compile_options = CompileOptions.from_mapping(merged)

        key = (stm, simplify, name, tuple(sorted(options.items())))
        return self.cache.get_or_create(
            key,
            lambda: self._construct(stm, simplify, name, compile_options),
            verbose=self.verbose,
        )

    def _construct(self, stm, simplify, name, compile_options):
        model = self.builder.build(stm=stm, simplify=simplify, name=name)
        self.log(f"Compiling {model!r} with {compile_options}")
        function = compile_system(model, compile_options)
        self.log(f"-> {function!r}", 1)
        return function


_default_compiler = FunctionCompiler(builder=_default_builder)


def GTMFunction(stm=False, simplify=True, name=DEFAULT_NAME, **options):
    """Return the memoised compiled GTM dynamics from the shared compiler.

    ``stm``, ``simplify`` and ``name`` select the model as in :func:`GTM`;
    remaining keywords are compile options (``jac`` defaults to True).

    Examples
    --------
    >>> f = GTMFunction()
    >>> u, p = np.random.randn(4), np.random.randn(2)
    >>> du = f(u, p, 0.0)
    """
    return _default_compiler.compile(stm=stm, simplify=simplify, name=name, **options)
