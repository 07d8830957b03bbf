"""Error kinds raised by the optimizer.

All three are fatal for an invocation: the pipeline never returns a
partially processed print file and never retries internally.
"""


class OptimizationError(Exception):
    """Base class for optimizer failures."""


class AcquisitionError(OptimizationError):
    """Source could not be fetched or decoded (includes fetch timeouts)."""


class ProcessingError(OptimizationError):
    """A stage produced or received a buffer that violates its invariants."""


class EncodingError(OptimizationError):
    """The final buffer could not be serialized."""
