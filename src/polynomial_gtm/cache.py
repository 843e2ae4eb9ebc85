"""
cache.py
========
Explicitly owned memoisation for constructed models and compiled functions.

Symbolic differentiation and code generation are expensive, and every build
is a deterministic function of its configuration, so each builder keeps a
``ModelCache`` mapping configuration keys to the artifacts they produced.
"""

import threading


def log(message, depth=0, verbose=True):
    """Print an indented trace line when ``verbose`` is set.

    Parameters
    ----------
    message : str
        The message to print.
    depth : int
        Indentation level (each level = 2 spaces).
    verbose : bool
        Whether anything is printed at all.
    """
    if verbose:
        indent = "  " * depth
        print(f"[polynomial-gtm] {indent}{message}")


class ModelCache:
    """Unbounded mapping from configuration keys to built artifacts.

    Entries are created on first request and reused for the lifetime of the
    cache.  Construction is serialised per key: concurrent callers asking
    for the same key wait for the first one and receive its artifact, while
    callers for different keys build independently.

    Parameters
    ----------
    name : str, optional
        Label used in trace output.

    Examples
    --------
    >>> cache = ModelCache()
    >>> cache.get_or_create(("GTM",), lambda: object()) is cache[("GTM",)]
    True
    """

    def __init__(self, name="cache"):
        self.name = name
        self._entries = {}
        self._key_locks = {}
        self._lock = threading.Lock()    # guards _key_locks

    def __contains__(self, key):
        return key in self._entries

    def __getitem__(self, key):
        return self._entries[key]

    def __len__(self):
        return len(self._entries)

    def __repr__(self):
        return f"ModelCache(name={self.name!r}, entries={len(self._entries)})"

    def keys(self):
        """Return the cached configuration keys."""
        return list(self._entries)

    def get_or_create(self, key, factory, verbose=False, depth=0):
        """Return the artifact stored under ``key``, building it if needed.

        Parameters
        ----------
        key : hashable
            The configuration tuple identifying the artifact.
        factory : callable
            Zero-argument callable producing the artifact.  Called at most
            once per key; if it raises, nothing is stored and the exception
            propagates.
        verbose : bool
            Print cache hits and misses.
        depth : int
            Indentation level for trace output.

        Returns
        -------
        object
            The cached (or freshly built) artifact.
        """
        if key in self._entries:
            log(f"Cache hit in {self.name} for {key}", depth, verbose)
            return self._entries[key]

        with self._lock:
            key_lock = self._key_locks.setdefault(key, threading.Lock())

        with key_lock:
            # Another caller may have finished while we waited
            if key in self._entries:
                log(f"Cache hit in {self.name} for {key}", depth, verbose)
                return self._entries[key]

            log(f"Cache miss in {self.name} for {key}; building", depth, verbose)
            artifact = factory()
            self._entries[key] = artifact
            return artifact

    def clear(self):
        """Drop every entry.  Builders never call this themselves."""
        with self._lock:
            self._entries.clear()
            self._key_locks.clear()
