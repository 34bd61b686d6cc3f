# seriesflow/core/exceptions.py
from __future__ import annotations


class CoreError(Exception):
    """Base error for all core-domain exceptions."""


# ---- Validation / construction errors ----
class InvalidSeries(CoreError):
    """Raised when a Series is constructed or mutated with invalid inputs."""


class InvalidTransform(CoreError):
    """Raised when a transform definition is incomplete or cannot be compiled."""


class InvalidConfig(CoreError):
    """Raised when an EngineConfig is constructed with invalid values."""


class InvalidWindow(CoreError, ValueError):
    """Raised when a time window has negative or non-numeric bounds."""


# ---- Contract violations ----
class SeriesKindMismatch(CoreError, TypeError):
    """Raised when a series is requested as a value kind it does not hold."""


# ---- Lookup errors (also behave like KeyError for dict-like APIs) ----
class SeriesNotFound(CoreError, KeyError):
    """Raised when a requested series name is not present in the store."""


class TransformNotFound(CoreError, KeyError):
    """Raised when a requested transform destination is not registered."""


# ---- Data inconsistency ----
class AxisMisalignment(CoreError):
    """Raised when the X and Y series of an XY curve don't share the same time axis."""


# ---- Collaborator failures ----
class LoadError(CoreError):
    """Raised by loaders when a file can't be read."""


class StreamerError(CoreError):
    """Raised when a streamer fails to start."""
