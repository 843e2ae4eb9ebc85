"""
model.py
========
Polynomial longitudinal dynamics of NASA's Generic Transport Model.

The GTM is a sub-scale, radio-controlled research aircraft used for flight
control research.  Near select flight conditions its longitudinal dynamics
are well approximated by the publicly available polynomial model of
Chakraborty et al. (Control Engineering Practice, 2011), which this module
assembles as a SymPy ``DynamicalSystem``.

States are ``[V, alpha, q, theta]`` (airspeed, angle of attack, pitch rate,
pitch angle) and parameters are ``[delta_e, delta_t]`` (elevator deflection,
throttle).  Angles are in radians.

Key entry points
----------------
- ``ModelBuilder`` — builds and memoises systems per configuration
- ``GTM()``        — module-level convenience using a shared builder
- ``trim_condition()`` — published equilibrium points as numeric vectors
"""

import numpy as np
import sympy as sp

from polynomial_gtm.cache import ModelCache, log
from polynomial_gtm.errors import ConfigurationError, SymbolicConstructionError
from polynomial_gtm.system import DynamicalSystem, stm_equations, structural_simplify


DEFAULT_NAME = "GTM"
STM_NAME = "GTMWithSTM"

STATE_NAMES = ("V", "alpha", "q", "theta")
PARAMETER_NAMES = ("delta_e", "delta_t")

# Two published equilibria: (state vector, parameter vector)
TRIM_CONDITIONS = {
    "trim1": (
        (29.6, np.deg2rad(9), 0.0, np.deg2rad(9)),
        (np.deg2rad(0.68), 12.7),
    ),
    "trim2": (
        (25.0, np.deg2rad(18), 0.0, np.deg2rad(18)),
        (np.deg2rad(-7.2), 59.0),
    ),
}


def trim_condition(key="trim1"):
    """Return a published trim condition as numeric vectors.

    Parameters
    ----------
    key : str
        ``'trim1'`` or ``'trim2'``.

    Returns
    -------
    (numpy.ndarray, numpy.ndarray)
        State vector ordered ``[V, alpha, q, theta]`` and parameter vector
        ordered ``[delta_e, delta_t]``.
    """
    try:
        x, p = TRIM_CONDITIONS[key]
    except KeyError:
        raise ConfigurationError(
            f"Unknown trim condition {key!r}; expected one of {sorted(TRIM_CONDITIONS)}"
        ) from None
    return np.array(x, dtype=float), np.array(p, dtype=float)


def longitudinal_rhs(V, alpha, q, theta, delta_e, delta_t):
    """Right-hand sides ``[dV/dt, dalpha/dt, dq/dt, dtheta/dt]``.

    Works on anything supporting ``+``, ``*`` and ``**`` (SymPy expressions
    or floats).  The coefficients are published data; ``2.410e-74`` in the
    alpha equation is reproduced as printed, including its odd magnitude.
    """
    dV = (
        1.233e-8*V**4*q**2 + 4.853e-9*alpha**3*delta_t**3
        + 3.705e-5*V**3*alpha*q - 2.184e-6*V**3*q**2
        + 2.203e-2*V**2*alpha**3 - 2.836e-6*alpha**3*delta_t**2
        + 3.885e-7*alpha**2*delta_t**3 - 1.069e-6*V**3*q
        - 4.517e-2*V**2*alpha**2 - 2.140e-3*V**2*alpha*delta_e
        - 3.282e-3*V**2*alpha*q - 8.901e-4*V**2*delta_e**2
        + 9.677e-5*V**2*q**2 - 2.037e-4*alpha**3*delta_t
        - 2.270e-4*alpha**2*delta_t**2 - 2.912e-8*alpha*delta_t**3
        + 1.591e-3*V**2*alpha - 4.077e-4*V**2*delta_e
        + 9.475e-5*V**2*q - 1.637*alpha**3
        - 1.631e-2*alpha**2*delta_t + 4.903*alpha**2*theta
        - 4.903*alpha*theta**2 + 1.702e-5*alpha*delta_t**2
        - 7.771e-7*delta_t**3 + 1.634*theta**3 - 4.319e-4*V**2
        - 2.142e-1*alpha**2 + 1.222e-3*alpha*delta_t
        + 4.541e-4*delta_t**2 + 9.823*alpha + 3.261e-2*delta_t
        - 9.807*theta + 4.282e-1
    )

    dalpha = (
        -3.709e-11*V**5*q**2 + 6.869e-11*V*alpha**3*delta_t**3
        + 7.957e-10*V**4*alpha*q + 9.860e-9*V**4*q**2
        + 1.694e-5*V**3*alpha**3 - 4.015e-8*V*alpha**3*delta_t**2
        - 7.722e-12*V*alpha**2*delta_t**3 - 6.086e-9*alpha**3*delta_t**3
        - 2.013e-8*V**4*q - 5.180e-5*V**3*alpha**2
        - 2.720e-6*V**3*alpha*delta_e - 1.410e-7*V**3*alpha*q
        + 7.352e-7*V**3*delta_e**2 - 8.736e-7*V**3*q**2
        - 1.501e-3*V**2*alpha**3 - 2.883e-6*V*alpha**3*delta_t
        + 4.513e-9*V*alpha**2*delta_t**2 - 4.121e-10*V*alpha*delta_t**3
        + 3.557e-6*alpha**3*delta_t**2 + 6.841e-10*alpha**2*delta_t**3
        + 4.151e-5*V**3*alpha + 3.648e-6*V**3*delta_e
        + 3.566e-6*V**3*q + 6.246e-6*V**2*alpha*q
        + 4.589e-3*V**2*alpha**2 + 2.410e-74*V**2*alpha*delta_e
        - 6.514e-5*V**2*delta_e**2 + 2.580e-5*V**2*q**2
        - 3.787e-5*V*alpha**3 + 3.241e-7*V*alpha**2*delta_t
        + 2.409e-7*V*alpha*delta_t**2 + 1.544e-11*V*delta_t**3
        + 2.554e-4*alpha**3*delta_t - 3.998e-7*alpha**2*delta_t**2
        + 3.651e-8*alpha*delta_t**3 + 4.716e-7*V**3
        - 3.677e-3*V**2*alpha - 3.231e-4*V**2*delta_e
        - 1.579e-4*V**2*q + 2.605e-3*V*alpha**2
        + 1.730e-5*V*alpha*delta_t - 5.201e-3*V*alpha*theta
        - 9.026e-9*V*delta_t**2 + 2.601e-3*V*theta**2
        + 3.355e-3*alpha**3 - 2.872e-5*alpha**2*delta_t
        - 2.134e-5*alpha*delta_t**2 - 1.368e-9*delta_t**3
        - 4.178e-5*V**2 + 2.272e-4*V*alpha
        - 6.483e-7*V*delta_t - 2.308e-1*alpha**2
        - 1.532e-3*alpha*delta_t + 4.608e-1*alpha*theta - 2.304e-1*theta**2
        + 7.997e-7*delta_t**2 - 5.210e-3*V - 2.013e-2*alpha
        + 5.744e-5*delta_t + q + 4.616e-1
    )

    dq = (
        -6.573e-9*V**5*q**3 + 1.747e-6*V**4*q**3
        - 1.548e-4*V**3*q**3 - 3.569e-3*V**2*alpha**3
        + 4.571e-3*V**2*q**3 + 4.953e-5*V**3*q
        + 9.596e-3*V**2*alpha**2 + 2.049e-2*V**2*alpha*delta_e
        - 2.431e-2*V**2*alpha - 3.063e-2*V**2*delta_e
        - 4.388e-3*V**2*q - 2.594e-7*delta_t**3
        + 2.461e-3*V**2 + 1.516e-4*delta_t**2 + 1.089e-2*delta_t
        + 1.430e-1
    )

    dtheta = q

    return [dV, dalpha, dq, dtheta]


def check_configuration(stm, simplify, name):
    """Validate the arguments shared by every model-building entry point."""
    for label, value in (("stm", stm), ("simplify", simplify)):
        if not isinstance(value, bool):
            raise ConfigurationError(f"'{label}' must be a bool, got {type(value).__name__}")
    if not isinstance(name, str) or not name.isidentifier():
        raise ConfigurationError(f"Model name must be a non-empty identifier string, got {name!r}")


class ModelBuilder:
    """Build symbolic GTM systems, memoised per configuration.

    Building the STM-augmented model differentiates a few hundred polynomial
    terms, so every result is stored in ``cache`` under
    ``(stm, simplify, name)`` and returned as-is on later calls.

    Parameters
    ----------
    cache : ModelCache, optional
        Where built systems are kept.  A fresh cache is created if omitted,
        which makes each builder independent (useful in tests).
    verbose : bool, optional
        If True, prints a trace of each construction step.

    Examples
    --------
    >>> builder = ModelBuilder()
    >>> model = builder.build()
    >>> [str(x) for x in model.states]
    ['V(t)', 'alpha(t)', 'q(t)', 'theta(t)']
    >>> builder.build(stm=True).name
    'GTMWithSTM'
    """

    def __init__(self, cache=None, verbose=False):
        self.cache = cache if cache is not None else ModelCache("models")
        self.verbose = verbose

    def log(self, message, depth=0):
        """Print an indented debug message when ``verbose=True``."""
        log(message, depth, self.verbose)

    def build(self, stm=False, simplify=True, name=DEFAULT_NAME):
        """Return the GTM system for a configuration.

        Parameters
        ----------
        stm : bool
            Append the 16 state-transition-matrix states and equations.
        simplify : bool
            Pass the system through ``structural_simplify``.
        name : str
            System name.  The default ``'GTM'`` becomes ``'GTMWithSTM'``
            when ``stm`` is set; any other name is used verbatim.

        Returns
        -------
        DynamicalSystem
            The same instance for repeated calls with equal arguments.

        Raises
        ------
        ConfigurationError
            If a flag is not a bool or ``name`` is not an identifier.
        SymbolicConstructionError
            If the assembled system is inconsistent.
        """
        check_configuration(stm, simplify, name)

        key = (stm, simplify, name)
        return self.cache.get_or_create(
            key,
            lambda: self._construct(stm, simplify, name),
            verbose=self.verbose,
        )

    def _construct(self, stm, simplify, name):
        self.log(f"Assembling GTM equations (stm={stm}, simplify={simplify}, name={name!r})")

        t = sp.Symbol("t")
        states = [sp.Function(s)(t) for s in STATE_NAMES]
        parameters = list(sp.symbols(PARAMETER_NAMES))
        V, alpha, q, theta = states
        delta_e, delta_t = parameters

        rhs = longitudinal_rhs(V, alpha, q, theta, delta_e, delta_t)
        equations = [sp.Eq(sp.Derivative(x, t), f) for x, f in zip(states, rhs)]

        # One equilibrium as the default initial condition
        defaults = {
            V: 29.6,
            alpha: np.deg2rad(9),
            q: 0.0,
            theta: np.deg2rad(0),
            delta_e: np.deg2rad(0.68),
            delta_t: 12.7,
        }

        if stm:
            self.log("-> Differentiating the right-hand side for STM dynamics", 1)
            phi_states, phi_equations, phi_defaults = stm_equations(rhs, states, t)
            equations.extend(phi_equations)
            states.extend(phi_states)
            defaults.update(phi_defaults)
            self.log(f"-> Appended {len(phi_states)} STM states", 1)

        modelname = STM_NAME if (name == DEFAULT_NAME and stm) else name

        model = DynamicalSystem(equations, t, states, parameters, defaults=defaults, name=modelname)
        missing = model.missing_defaults()
        if missing:
            raise SymbolicConstructionError(f"No default value for {missing} in '{modelname}'")

        if simplify:
            self.log("-> Applying structural simplification", 1)
            model = structural_simplify(model)

        self.log(f"-> Built {model!r}", 1)
        return model


_default_builder = ModelBuilder()


def GTM(stm=False, simplify=True, name=DEFAULT_NAME):
    """Return the memoised GTM system from the shared module-level builder.

    Arguments are those of :meth:`ModelBuilder.build`.

    Trim conditions
    ---------------
    The default initial condition is one equilibrium; both published trims
    are available from :func:`trim_condition`::

        trim1 = [29.6, 9 deg, 0, 9 deg],  [0.68 deg, 12.7]
        trim2 = [25.0, 18 deg, 0, 18 deg], [-7.2 deg, 59]

    References
    ----------
    Chakraborty, Seiler and Balas, "Nonlinear region of attraction analysis
    for flight control verification and validation", Control Engineering
    Practice 19(4), 2011.
    """
    return _default_builder.build(stm=stm, simplify=simplify, name=name)
