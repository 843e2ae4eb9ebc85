# errors.py
"""Custom exception classes."""


class ConfigurationError(ValueError):
    """Malformed or contradictory configuration passed to a builder or compiler."""

    pass


class SymbolicConstructionError(RuntimeError):
    """A symbolic system is structurally inconsistent and cannot be finalized."""

    pass


class CompilationError(RuntimeError):
    """A numeric function cannot be generated from a symbolic system."""

    pass
