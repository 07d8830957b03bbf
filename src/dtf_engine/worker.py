"""Bounded worker pool for running optimizations off the request thread.

Optimization is CPU-bound (neighborhood scans over ~1M pixels), so a web
handler should hand jobs to this pool instead of running them inline.
Invocations share no state, so they run fully in parallel; each job still
executes its stages strictly in sequence.

Usage:
    with OptimizationPool(max_workers=4) as pool:
        future = pool.submit(url, {"substrate": "black", "style": "clean"})
        png = future.result()

        jobs = {"sku-1": (url1, opts1), "sku-2": (url2, opts2)}
        for key, outcome in pool.map_optimize(jobs, timeout_s=120):
            if isinstance(outcome, OptimizationError):
                ...
"""

import logging
import os
from concurrent.futures import (
    BrokenExecutor,
    Executor,
    Future,
    ProcessPoolExecutor,
    ThreadPoolExecutor,
    as_completed,
)
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Hashable, Iterator, Mapping, Optional, Tuple, Union

from ..utils.logging_config import setup_logging
from ..utils.validators import OptimizationOptions, OptimizerConfigV1
from . import pipeline
from .acquire import SourceRef
from .errors import OptimizationError

logger = logging.getLogger(__name__)

Outcome = Union[bytes, OptimizationError]


def _init_worker(log_level: str) -> None:
    """Process-pool initializer: workers start with unconfigured logging."""
    setup_logging(log_level=log_level, color=False, context={"worker": os.getpid()})


class OptimizationPool:
    """Executor wrapper that runs pipeline.optimize jobs.

    Parameters
    ----------
    max_workers : int, optional
        Pool size; defaults to the CPU count
    executor : str
        "process" (default, true parallelism) or "thread"
    config : OptimizerConfigV1, optional
        Config shared by every job
    log_level : str, optional
        Log level configured in process workers; None leaves them unconfigured
    """

    def __init__(
        self,
        max_workers: Optional[int] = None,
        executor: str = "process",
        config: Optional[OptimizerConfigV1] = None,
        log_level: Optional[str] = None,
    ):
        self.max_workers = max_workers or os.cpu_count() or 1
        self.config = config or OptimizerConfigV1()

        if executor == "process":
            kwargs = {}
            if log_level:
                kwargs = {"initializer": _init_worker, "initargs": (log_level,)}
            self._executor: Executor = ProcessPoolExecutor(max_workers=self.max_workers, **kwargs)
        elif executor == "thread":
            self._executor = ThreadPoolExecutor(
                max_workers=self.max_workers, thread_name_prefix="dtf-worker"
            )
        else:
            raise ValueError(f"Unknown executor: {executor}. Use 'process' or 'thread'.")
        self.executor_kind = executor
        self._abandoned = False

    def __enter__(self) -> "OptimizationPool":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    def shutdown(self, wait: bool = True) -> None:
        """Release the executor; never waits once a batch budget has expired."""
        wait = wait and not self._abandoned
        self._executor.shutdown(wait=wait, cancel_futures=not wait)

    def abandon(self) -> None:
        """Stop the pool without waiting for running jobs.

        Queued jobs are cancelled. Process workers are terminated; thread
        workers cannot be interrupted and finish in the background with
        their results discarded. The pool accepts no further jobs.
        """
        processes = []
        if self.executor_kind == "process":
            # shutdown() drops the executor's process table, so read it first
            processes = list((getattr(self._executor, "_processes", None) or {}).values())

        self._abandoned = True
        self._executor.shutdown(wait=False, cancel_futures=True)
        for process in processes:
            if process.is_alive():
                process.terminate()
        if processes:
            logger.warning("Terminated %d worker process(es)", len(processes))

    def submit(self, source: SourceRef, options) -> Future:
        """Queue one optimization; the future resolves to PNG bytes.

        Options are validated here, so a malformed request fails in the
        caller instead of inside a worker.
        """
        if not isinstance(options, OptimizationOptions):
            options = OptimizationOptions(**options)
        return self._executor.submit(pipeline.optimize, source, options, self.config)

    def map_optimize(
        self,
        jobs: Mapping[Hashable, Tuple[SourceRef, object]],
        timeout_s: Optional[float] = None,
    ) -> Iterator[Tuple[Hashable, Outcome]]:
        """Run many jobs, yielding (key, png bytes or error) as each finishes.

        Parameters
        ----------
        jobs : Mapping
            key -> (source, options)
        timeout_s : float, optional
            Wall-clock budget for the whole batch; unfinished jobs are
            reported as OptimizationError and the pool is abandoned (see abandon())

        Yields
        ------
        (key, bytes | OptimizationError)
            In completion order
        """
        futures = {self.submit(source, options): key for key, (source, options) in jobs.items()}
        reported = set()

        try:
            for future in as_completed(futures, timeout=timeout_s):
                reported.add(future)
                yield futures[future], self._outcome(futures[future], future)
        except FuturesTimeoutError:
            remaining = []
            for future, key in futures.items():
                if future in reported:
                    continue
                if future.done():
                    remaining.append((key, self._outcome(key, future)))
                else:
                    logger.warning("Job %s exceeded the %.1f s batch budget", key, timeout_s)
                    remaining.append((key, OptimizationError(f"Job {key} exceeded {timeout_s} s budget")))

            # Jobs past the budget must not hold up shutdown()
            self.abandon()
            yield from remaining

    @staticmethod
    def _outcome(key: Hashable, future: Future) -> Outcome:
        try:
            return future.result()
        except OptimizationError as e:
            logger.warning("Job %s failed: %s", key, e)
            return e
        except BrokenExecutor as e:
            logger.error("Job %s lost its worker: %s", key, e)
            return OptimizationError(f"Job {key} lost its worker process: {e}")
        except MemoryError as e:
            logger.error("Job %s ran out of memory", key)
            return OptimizationError(f"Job {key} ran out of memory: {e}")
