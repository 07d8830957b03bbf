"""Lightweight wall-clock profiling for pipeline stages.

Provides:
    - timer(): Context manager for wall-clock timing with optional sink
    - log_sink(): Sink factory that reports timings through a logger

Used to measure:
    - Acquisition (fetch + decode)
    - Knockout, print boost, sharpening, texture overlay
    - PNG re-encode

No heavy dependencies (no line_profiler, no cProfile overhead per request).
"""

import logging
import time
from contextlib import contextmanager
from typing import Callable, Optional


@contextmanager
def timer(name: str, sink: Optional[Callable[[str, float], None]] = None):
    """Context manager for wall-clock timing.

    Parameters
    ----------
    name : str
        Timer name (for logging/display)
    sink : Optional[Callable[[str, float], None]]
        Optional callback(name, elapsed_seconds)
        If None, prints to stdout

    Yields
    ------
    None

    Notes
    -----
    The sink is called even when the timed block raises, so failed stages
    still report how long they ran.

    Examples
    --------
    >>> with timer("knockout"):
    ...     buf = knockout.remove_black_regions(buf)
    knockout: 0.412 s

    >>> timings = {}
    >>> with timer("encode", sink=timings.__setitem__):
    ...     png = encode.encode_png(buf)
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        if sink is not None:
            sink(name, elapsed)
        else:
            print(f"{name}: {elapsed:.3f} s")


def log_sink(logger: logging.Logger, level: int = logging.DEBUG) -> Callable[[str, float], None]:
    """Build a timer sink that logs "<name>: <seconds> s" at the given level."""
    def _sink(name: str, elapsed: float) -> None:
        logger.log(level, "%s: %.3f s", name, elapsed)
    return _sink
