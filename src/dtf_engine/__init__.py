"""DTF print optimization engine.

Modules:
    - acquire: fetch + decode source images to RGBA buffers
    - knockout: black-region removal for black garments
    - boost: HSL saturation and tone grading
    - sharpen: unsharp mask
    - texture: halftone / grunge synthesis and blend compositing
    - encode: lossless PNG output
    - pipeline: stage orchestration and public entry points
    - worker: bounded pool for running jobs off the request thread

Usage:
    from src.dtf_engine import optimize
    png = optimize(url, {"substrate": "black", "style": "halftone"})
"""

from .buffer import PixelBuffer
from .errors import AcquisitionError, EncodingError, OptimizationError, ProcessingError
from .pipeline import OptimizationResult, optimize, optimize_buffer, optimize_with_report, run_stages
from .worker import OptimizationPool

__all__ = [
    'AcquisitionError',
    'EncodingError',
    'OptimizationError',
    'OptimizationPool',
    'OptimizationResult',
    'PixelBuffer',
    'ProcessingError',
    'optimize',
    'optimize_buffer',
    'optimize_with_report',
    'run_stages',
]
