"""DTF print optimization pipeline.

Turns an arbitrary generated raster into a print-ready PNG for
direct-to-film transfer:

    1. acquire      fetch + decode to RGBA (alpha synthesized if missing)
    2. knockout     black substrate only: fade out large near-black fills
    3. print_boost  HSL saturation + S-curve grading of visible pixels
    4. sharpen      unsharp mask on RGB
    5. texture      halftone (overlay) or grunge (multiply), style permitting
    6. encode       lossless PNG, maximum compression

Public API:
    optimize(source, options, config=None) -> bytes
    optimize_with_report(source, options, config=None) -> OptimizationResult
    optimize_buffer(buffer, options, config=None) -> bytes
    run_stages(buffer, options, config=None) -> PixelBuffer

Each stage takes a buffer and returns a new one of identical dimensions;
the boundary check after every stage raises ProcessingError on any
violation, and any stage failure aborts the invocation. There is no shared
state between invocations, so calls may run in parallel (see worker.py).
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from ..utils import profiler
from ..utils.logging_config import pop_context, push_context
from ..utils.validators import OptimizationOptions, OptimizerConfigV1, Substrate
from . import acquire, boost, encode, knockout, sharpen, texture
from .acquire import SourceInfo, SourceRef
from .buffer import PixelBuffer
from .errors import OptimizationError, ProcessingError

logger = logging.getLogger(__name__)

OptionsLike = Union[OptimizationOptions, Mapping[str, Any]]
Stage = Callable[[PixelBuffer], PixelBuffer]


@dataclass(frozen=True)
class OptimizationResult:
    """Encoded print file plus what was learned producing it."""
    png: bytes
    source: SourceInfo
    width: int
    height: int
    timings: Dict[str, float] = field(default_factory=dict)


def _coerce_options(options: OptionsLike) -> OptimizationOptions:
    if isinstance(options, OptimizationOptions):
        return options
    return OptimizationOptions(**options)


# ============================================================================
# STAGES
# ============================================================================

def knockout_stage(
    buffer: PixelBuffer,
    options: OptimizationOptions,
    config: OptimizerConfigV1,
) -> PixelBuffer:
    """Run black-region knockout when printing on black, else pass through."""
    substrate = options.substrate
    if substrate is Substrate.BLACK:
        return knockout.remove_black_regions(buffer, config.knockout)
    elif substrate in (Substrate.WHITE, Substrate.GREY, Substrate.COLOR):
        return buffer
    raise ProcessingError(f"Unhandled substrate: {substrate}")


def build_stages(options: OptimizationOptions, config: OptimizerConfigV1) -> List[Tuple[str, Stage]]:
    """Ordered (name, stage) pairs for stages 2-5."""
    return [
        ("knockout", lambda b: knockout_stage(b, options, config)),
        ("print_boost", lambda b: boost.apply_print_boost(b, config.boost)),
        ("sharpen", lambda b: sharpen.sharpen(b, config.sharpen)),
        ("texture", lambda b: texture.apply_texture(b, options.style, config)),
    ]


def _run_stage(
    name: str,
    stage: Stage,
    buffer: PixelBuffer,
    sink: Callable[[str, float], None],
) -> PixelBuffer:
    try:
        with profiler.timer(name, sink):
            result = stage(buffer)
    except OptimizationError:
        raise
    except Exception as e:
        raise ProcessingError(f"Stage '{name}' failed: {e}") from e

    if not isinstance(result, PixelBuffer):
        raise ProcessingError(f"Stage '{name}' returned {type(result).__name__}, expected PixelBuffer")
    result.validate()
    if result.size != buffer.size:
        raise ProcessingError(
            f"Stage '{name}' changed dimensions from {buffer.size} to {result.size}"
        )
    return result


def run_stages(
    buffer: PixelBuffer,
    options: OptionsLike,
    config: Optional[OptimizerConfigV1] = None,
    timings: Optional[Dict[str, float]] = None,
) -> PixelBuffer:
    """Run knockout, print boost, sharpening and texture in order.

    Parameters
    ----------
    buffer : PixelBuffer
        Acquired buffer (not modified)
    options : OptimizationOptions or mapping
        Substrate and style
    config : OptimizerConfigV1, optional
        Stage tuning; production defaults when omitted
    timings : dict, optional
        Receives per-stage wall time in seconds

    Returns
    -------
    PixelBuffer
        Final buffer, same dimensions as the input

    Raises
    ------
    ProcessingError
        If any stage fails or breaks the buffer invariant
    """
    options = _coerce_options(options)
    config = config or OptimizerConfigV1()
    buffer.validate()

    log_time = profiler.log_sink(logger)

    def sink(name: str, elapsed: float) -> None:
        log_time(name, elapsed)
        if timings is not None:
            timings[name] = elapsed

    for name, stage in build_stages(options, config):
        buffer = _run_stage(name, stage, buffer, sink)
    return buffer


def optimize_buffer(
    buffer: PixelBuffer,
    options: OptionsLike,
    config: Optional[OptimizerConfigV1] = None,
    timings: Optional[Dict[str, float]] = None,
) -> bytes:
    """Stages 2-6 for a caller that already holds a decoded buffer."""
    config = config or OptimizerConfigV1()
    final = run_stages(buffer, options, config, timings)

    def sink(name: str, elapsed: float) -> None:
        if timings is not None:
            timings[name] = elapsed

    with profiler.timer("encode", sink):
        return encode.encode_png(final, config.encode)


# ============================================================================
# ENTRY POINTS
# ============================================================================

def optimize_with_report(
    source: SourceRef,
    options: OptionsLike,
    config: Optional[OptimizerConfigV1] = None,
) -> OptimizationResult:
    """Full pipeline with source metadata and stage timings.

    Parameters
    ----------
    source : str, Path, bytes
        URL, filesystem path or encoded image bytes
    options : OptimizationOptions or mapping
        {"substrate": black|white|grey|color, "style": clean|halftone|grunge}
    config : OptimizerConfigV1, optional
        Stage tuning; production defaults when omitted

    Returns
    -------
    OptimizationResult
        PNG bytes (same pixel dimensions as the source) plus metadata

    Raises
    ------
    AcquisitionError, ProcessingError, EncodingError
        Fatal; no partial output is ever returned
    """
    options = _coerce_options(options)
    config = config or OptimizerConfigV1()

    push_context(substrate=options.substrate.value, style=options.style.value)
    try:
        logger.info("Starting DTF optimization")
        timings: Dict[str, float] = {}

        with profiler.timer("acquire", timings.__setitem__):
            raw = acquire.fetch_source(source, config.acquisition)
            buffer, info = acquire.decode_rgba(raw)
        logger.info("Processing %d pixels", buffer.pixel_count)

        png = optimize_buffer(buffer, options, config, timings)

        logger.info(
            "DTF optimization complete: %d bytes -> %d bytes in %.2f s",
            info.byte_size, len(png), sum(timings.values()),
        )
        return OptimizationResult(
            png=png,
            source=info,
            width=buffer.width,
            height=buffer.height,
            timings=timings,
        )
    finally:
        pop_context(keys=["substrate", "style"])


def optimize(
    source: SourceRef,
    options: OptionsLike,
    config: Optional[OptimizerConfigV1] = None,
) -> bytes:
    """Optimize a source image for DTF printing and return PNG bytes.

    Examples
    --------
    >>> png = optimize("https://cdn.example.com/design.png",
    ...                {"substrate": "black", "style": "clean"})
    """
    return optimize_with_report(source, options, config).png
