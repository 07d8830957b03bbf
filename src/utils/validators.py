"""Schema validation for optimizer options and YAML config loading.

Provides centralized validation using pydantic:
    - Per-invocation options: substrate (garment color) and print style,
      as closed enums so every branch on them is exhaustive
    - Optimizer config (dtf_optimizer.v1.yaml): every tunable constant of the
      knockout, print boost, sharpening, texture and encode stages

Defaults reproduce the production tuning, so `OptimizerConfigV1()` is a
complete config and the YAML file only needs the keys it overrides.

Units:
    - Distances and radii: pixels
    - Opacity, probability, saturation/curve weights: [0.0, 1.0]
    - Color thresholds: 8-bit channel values [0, 255]

Usage:
    from src.utils import validators

    options = validators.OptimizationOptions(substrate="black", style="halftone")
    cfg = validators.load_optimizer_config("configs/dtf_optimizer_v1.yaml")
"""

import math
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ============================================================================
# OPTIONS
# ============================================================================

class Substrate(str, Enum):
    """Garment (film transfer target) color."""
    BLACK = "black"
    WHITE = "white"
    GREY = "grey"
    COLOR = "color"


class PrintStyle(str, Enum):
    """Texture treatment applied after grading."""
    CLEAN = "clean"
    HALFTONE = "halftone"
    GRUNGE = "grunge"


_SUBSTRATE_ALIASES = {"gray": "grey", "colour": "color"}


class OptimizationOptions(BaseModel):
    """Immutable per-invocation options.

    Strings are accepted case-insensitively; "gray" and "colour" are
    normalized to their enum spellings.
    """
    model_config = ConfigDict(frozen=True)

    substrate: Substrate = Field(..., description="Garment color the film is pressed onto")
    style: PrintStyle = Field(PrintStyle.CLEAN, description="Texture treatment")

    @field_validator('substrate', mode='before')
    @classmethod
    def normalize_substrate(cls, v: Any) -> Any:
        if isinstance(v, str) and not isinstance(v, Substrate):
            v = v.strip().lower()
            return _SUBSTRATE_ALIASES.get(v, v)
        return v

    @field_validator('style', mode='before')
    @classmethod
    def normalize_style(cls, v: Any) -> Any:
        if isinstance(v, str) and not isinstance(v, PrintStyle):
            return v.strip().lower()
        return v


# ============================================================================
# OPTIMIZER CONFIG V1
# ============================================================================

class KnockoutParams(BaseModel):
    """Black-region knockout tuning (black substrate only)."""
    black_threshold: int = Field(45, ge=1, le=256, description="Channel value below which a pixel is dark")
    neutral_tolerance: int = Field(12, ge=1, le=256, description="Max pairwise channel spread of a neutral pixel")
    cluster_radius: int = Field(6, ge=1, le=64, description="Half-width of the cluster density window (px)")
    cluster_fill_ratio: float = Field(0.5, gt=0.0, le=4.0, description="Fraction of π·r² a cluster must exceed")
    feather_radius: int = Field(2, ge=1, le=16, description="Half-width of the feather search window (px)")
    feather_falloff: float = Field(2.0, gt=0.0, description="Distance (px) at which removal becomes total")

    @property
    def min_cluster_size(self) -> float:
        """Neighbor count a near-black pixel must exceed to be removed."""
        return math.pi * self.cluster_radius * self.cluster_radius * self.cluster_fill_ratio


class BoostParams(BaseModel):
    """Print boost (HSL grading) tuning."""
    saturation_gain: float = Field(1.12, ge=0.0, le=4.0, description="Saturation multiplier (clamped at 1.0)")
    scurve_mix: float = Field(0.3, ge=0.0, le=1.0, description="Weight of the S-curve in the lightness blend")


class SharpenParams(BaseModel):
    """Unsharp mask parameters (Pillow ImageFilter.UnsharpMask)."""
    radius: float = Field(0.8, gt=0.0, le=10.0, description="Blur radius (px)")
    percent: int = Field(80, ge=0, le=500, description="Edge amplification (%)")
    threshold: int = Field(2, ge=0, le=255, description="Minimum brightness change to sharpen")


class HalftoneParams(BaseModel):
    """Tiled dot overlay."""
    spacing: int = Field(8, ge=2, le=256, description="Tile period (px)")
    dot_diameter: float = Field(6.0, gt=0.0, description="Dot diameter (px)")
    opacity: float = Field(0.3, ge=0.0, le=1.0, description="Dot opacity")

    @model_validator(mode='after')
    def validate_dot_fits_tile(self) -> 'HalftoneParams':
        if self.dot_diameter > self.spacing:
            raise ValueError(
                f"dot_diameter={self.dot_diameter} exceeds tile spacing={self.spacing}"
            )
        return self


class GrungeParams(BaseModel):
    """Binary speckle noise softened by a Gaussian blur."""
    black_probability: float = Field(0.3, ge=0.0, le=1.0, description="Probability a speckle is black")
    blur_sigma: float = Field(1.5, gt=0.0, le=20.0, description="Gaussian sigma (px)")
    seed: Optional[int] = Field(None, ge=0, description="RNG seed; None draws fresh entropy")


class EncodeParams(BaseModel):
    """PNG encoder settings."""
    compress_level: int = Field(9, ge=0, le=9, description="zlib compression level")
    optimize: bool = Field(True, description="Let the encoder search for the smallest output")


class AcquisitionParams(BaseModel):
    """Source fetch limits."""
    fetch_timeout_s: float = Field(30.0, gt=0.0, description="Connect/read timeout for URL sources (s)")
    max_bytes: int = Field(50_000_000, ge=1, description="Largest accepted encoded source")
    user_agent: str = Field("dtf-optimizer/1.0", description="User-Agent header for URL fetches")


class OptimizerConfigV1(BaseModel):
    """Optimizer config (dtf_optimizer.v1.yaml schema)."""
    model_config = ConfigDict(populate_by_name=True)

    schema_version: str = Field("dtf_optimizer.v1", alias="schema", description="Schema version")
    knockout: KnockoutParams = Field(default_factory=KnockoutParams)
    boost: BoostParams = Field(default_factory=BoostParams)
    sharpen: SharpenParams = Field(default_factory=SharpenParams)
    halftone: HalftoneParams = Field(default_factory=HalftoneParams)
    grunge: GrungeParams = Field(default_factory=GrungeParams)
    encode: EncodeParams = Field(default_factory=EncodeParams)
    acquisition: AcquisitionParams = Field(default_factory=AcquisitionParams)

    @field_validator('schema_version')
    @classmethod
    def validate_schema(cls, v: str) -> str:
        if v != "dtf_optimizer.v1":
            raise ValueError(f"Expected schema 'dtf_optimizer.v1', got '{v}'")
        return v


# ============================================================================
# PUBLIC API
# ============================================================================

def load_optimizer_config(path: Union[str, Path]) -> OptimizerConfigV1:
    """Load and validate optimizer config from YAML.

    Parameters
    ----------
    path : Union[str, Path]
        Path to dtf_optimizer.v1.yaml file

    Returns
    -------
    OptimizerConfigV1
        Validated configuration (missing keys take production defaults)

    Raises
    ------
    FileNotFoundError
        If path doesn't exist
    ValueError
        If validation fails (with actionable error message)
    """
    from . import fs

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Optimizer config not found: {path}")

    data = fs.load_yaml(path)
    try:
        return OptimizerConfigV1(**data)
    except Exception as e:
        raise ValueError(f"Optimizer config validation failed at {path}: {e}") from e
