#!/usr/bin/env python3
"""Optimize generated artwork into DTF print files.

Runs the full pipeline (acquire → knockout → print boost → sharpen →
texture → PNG) on one source, or on several sources through the worker pool.

Supports two modes:
    1. Single mode (default): one source → one output PNG
    2. Batch mode: many sources → one output directory, in parallel

Usage:
    # Single image on a black shirt
    python scripts/optimize.py https://cdn.example.com/design.png --output out/design_dtf.png \\
        --substrate black --style clean

    # Batch, halftone look, 4 workers, with per-file manifests
    python scripts/optimize.py art/*.png --output-dir out/ --substrate white \\
        --style halftone --workers 4 --manifest
"""
import argparse
import sys
from collections import Counter
from pathlib import Path
from typing import List

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.dtf_engine import OptimizationError, OptimizationPool, optimize_with_report
from src.dtf_engine.acquire import is_url
from src.utils import fs, validators
from src.utils.logging_config import get_logger, install_excepthook, setup_logging

logger = get_logger(__name__)

DEFAULT_CONFIG = Path("configs/dtf_optimizer_v1.yaml")


def _output_name(source: str, suffix: str = "") -> str:
    stem = Path(source.split("?", 1)[0]).stem if is_url(source) else Path(source).stem
    return f"{stem or 'design'}{suffix}_dtf.png"


def _load_config(args: argparse.Namespace) -> validators.OptimizerConfigV1:
    if args.config is not None:
        cfg = validators.load_optimizer_config(args.config)
    elif DEFAULT_CONFIG.exists():
        cfg = validators.load_optimizer_config(DEFAULT_CONFIG)
    else:
        cfg = validators.OptimizerConfigV1()

    if args.seed is not None:
        cfg = cfg.model_copy(update={"grunge": cfg.grunge.model_copy(update={"seed": args.seed})})
    return cfg


def run_single(args, options, cfg) -> int:
    source = args.sources[0]
    output = args.output or Path(_output_name(source))
    try:
        result = optimize_with_report(source, options, cfg)
    except OptimizationError as e:
        logger.error("Optimization failed for %s: %s", source, e)
        return 1

    fs.atomic_write_bytes(output, result.png)
    logger.info("Wrote %s (%dx%d, %d bytes)", output, result.width, result.height, len(result.png))

    if args.manifest:
        manifest = {
            "source": str(source),
            "output": str(output),
            "substrate": options.substrate.value,
            "style": options.style.value,
            "width": result.width,
            "height": result.height,
            "source_format": result.source.format,
            "source_had_alpha": result.source.had_alpha,
            "source_bytes": result.source.byte_size,
            "output_bytes": len(result.png),
            "timings_s": {k: round(v, 4) for k, v in result.timings.items()},
        }
        fs.atomic_yaml_dump(manifest, output.with_suffix(".yaml"))
    return 0


def batch_output_names(sources) -> List[str]:
    """One output file name per source, unique within the batch.

    Sources whose plain names collide (same stem in different folders, or
    the same source listed twice) get their 1-based position appended.
    """
    plain = [_output_name(source) for source in sources]
    counts = Counter(plain)
    names = []
    for index, (source, name) in enumerate(zip(sources, plain), start=1):
        if counts[name] > 1:
            name = _output_name(source, suffix=f"_{index}")
        names.append(name)
    return names


def run_batch(args, options, cfg) -> int:
    out_dir = fs.ensure_dir(args.output_dir)
    names = batch_output_names(args.sources)
    jobs = {name: (source, options) for name, source in zip(names, args.sources)}
    failed = 0

    with OptimizationPool(max_workers=args.workers, config=cfg, log_level=args.log_level) as pool:
        for name, outcome in pool.map_optimize(jobs, timeout_s=args.timeout):
            if isinstance(outcome, OptimizationError):
                failed += 1
                continue
            output = out_dir / name
            fs.atomic_write_bytes(output, outcome)
            logger.info("Wrote %s (%d bytes)", output, len(outcome))

    logger.info("Batch complete: %d ok, %d failed", len(jobs) - failed, failed)
    return 1 if failed else 0


def main() -> int:
    """CLI entrypoint for DTF optimization."""
    parser = argparse.ArgumentParser(
        description="Turn generated artwork into print-ready DTF PNG files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Substrates:
  black  - large near-black fills are knocked out (thin outlines kept)
  white, grey, color - no knockout

Styles:
  clean    - grading + sharpening only
  halftone - tiled dot overlay (overlay blend)
  grunge   - blurred speckle (multiply blend)
""",
    )
    parser.add_argument("sources", nargs="+", help="Source URL(s) or image path(s)")
    parser.add_argument("--output", type=Path, help="Output PNG (single mode)")
    parser.add_argument("--output-dir", type=Path, help="Output directory (enables batch mode)")
    parser.add_argument(
        "--substrate",
        default="black",
        help="Garment color: black, white, grey/gray, color (default: black)",
    )
    parser.add_argument(
        "--style",
        default="clean",
        help="Print style: clean, halftone, grunge (default: clean)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help=f"Optimizer config YAML (default: {DEFAULT_CONFIG} if present)",
    )
    parser.add_argument("--seed", type=int, help="Seed for the grunge texture")
    parser.add_argument("--manifest", action="store_true", help="Write a YAML manifest next to the output")
    parser.add_argument("--workers", type=int, default=None, help="Batch worker processes (default: CPU count)")
    parser.add_argument("--timeout", type=float, default=None, help="Batch wall-clock budget in seconds")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")

    args = parser.parse_args()

    setup_logging(log_level=args.log_level, json=args.json_logs, context={"app": "dtf"})
    install_excepthook()

    try:
        options = validators.OptimizationOptions(substrate=args.substrate, style=args.style)
        cfg = _load_config(args)
    except (ValueError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if args.output_dir is not None:
        return run_batch(args, options, cfg)

    if len(args.sources) > 1:
        print("Error: multiple sources require --output-dir", file=sys.stderr)
        return 2
    return run_single(args, options, cfg)


if __name__ == "__main__":
    sys.exit(main())
