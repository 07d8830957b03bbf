"""Procedural print textures and blend-mode compositing.

Two mutually exclusive treatments:
    - Halftone: a tiled dot screen (one anti-aliased dot per spacing×spacing
      tile, centered, partially transparent black) composited with the
      overlay blend. This is a look, not real halftone screening: no angle,
      no tone-dependent dot size.
    - Grunge: binary speckle (black with probability p, else white) softened
      by a Gaussian blur into blotches, fully opaque, composited with the
      multiply blend (can only darken).

Compositing uses the W3C separable blend formulas applied source-atop:

    Co = Cb * (1 - αs) + αs * B(Cb, Cs),   αo = αb

The texture only tints pixels the design already covers, so knocked-out
regions stay transparent. Fully transparent backdrop pixels keep their bytes.
"""

import logging
from enum import Enum
from typing import Optional

import cv2
import numpy as np

from ..utils.validators import GrungeParams, HalftoneParams, OptimizerConfigV1, PrintStyle
from .buffer import PixelBuffer
from .errors import ProcessingError

logger = logging.getLogger(__name__)

# Fractional bits for sub-pixel circle placement in cv2.circle
_SHIFT = 4


class BlendMode(str, Enum):
    OVERLAY = "overlay"
    MULTIPLY = "multiply"


# ============================================================================
# TEXTURE SYNTHESIS
# ============================================================================

def halftone_tile(params: HalftoneParams) -> np.ndarray:
    """Dot coverage of a single tile.

    Returns
    -------
    np.ndarray
        float64 coverage in [0, 1], shape (spacing, spacing)
    """
    size = params.spacing
    tile = np.zeros((size, size), dtype=np.uint8)
    scale = 1 << _SHIFT
    # Tile center in pixel-index coordinates (pixel centers sit at i + 0.5)
    center = int(round((size / 2.0 - 0.5) * scale))
    radius = int(round(params.dot_diameter / 2.0 * scale))
    cv2.circle(tile, (center, center), radius, 255, thickness=-1, lineType=cv2.LINE_AA, shift=_SHIFT)
    return tile.astype(np.float64) / 255.0


def make_halftone_texture(width: int, height: int, params: Optional[HalftoneParams] = None) -> np.ndarray:
    """Tile the dot pattern over a width×height RGBA texture.

    Returns
    -------
    np.ndarray
        uint8, shape (height, width, 4); RGB black, alpha = coverage * opacity
    """
    params = params or HalftoneParams()
    tile = halftone_tile(params)
    reps_y = -(-height // params.spacing)
    reps_x = -(-width // params.spacing)
    coverage = np.tile(tile, (reps_y, reps_x))[:height, :width]

    texture = np.zeros((height, width, 4), dtype=np.uint8)
    texture[..., 3] = np.floor(coverage * params.opacity * 255.0 + 0.5).astype(np.uint8)
    return texture


def make_grunge_texture(width: int, height: int, params: Optional[GrungeParams] = None) -> np.ndarray:
    """Blurred binary speckle as an opaque greyscale RGBA texture.

    Returns
    -------
    np.ndarray
        uint8, shape (height, width, 4); R = G = B, alpha 255
    """
    params = params or GrungeParams()
    rng = np.random.default_rng(params.seed)
    speckle = np.where(rng.random((height, width)) < params.black_probability, 0, 255).astype(np.uint8)
    blurred = cv2.GaussianBlur(
        speckle,
        (0, 0),
        sigmaX=params.blur_sigma,
        sigmaY=params.blur_sigma,
        borderType=cv2.BORDER_REPLICATE,
    )

    texture = np.empty((height, width, 4), dtype=np.uint8)
    texture[..., :3] = blurred[..., np.newaxis]
    texture[..., 3] = 255
    return texture


# ============================================================================
# COMPOSITING
# ============================================================================

def blend(cb: np.ndarray, cs: np.ndarray, mode: BlendMode) -> np.ndarray:
    """Separable blend function B(Cb, Cs) on [0, 1] floats."""
    if mode is BlendMode.MULTIPLY:
        return cb * cs
    if mode is BlendMode.OVERLAY:
        # Overlay is hard-light with the layers swapped: the backdrop decides
        return np.where(cb <= 0.5, 2.0 * cb * cs, 1.0 - 2.0 * (1.0 - cb) * (1.0 - cs))
    raise ProcessingError(f"Unhandled blend mode: {mode}")


def composite(buffer: PixelBuffer, texture: np.ndarray, mode: BlendMode) -> PixelBuffer:
    """Composite an RGBA texture onto the buffer, source-atop.

    Parameters
    ----------
    buffer : PixelBuffer
        Backdrop (not modified)
    texture : np.ndarray
        uint8, shape (H, W, 4), same dimensions as the buffer
    mode : BlendMode
        Separable blend mode

    Returns
    -------
    PixelBuffer
        New buffer; alpha identical to the backdrop

    Raises
    ------
    ProcessingError
        If the texture dimensions differ from the buffer's
    """
    if texture.shape != buffer.data.shape:
        raise ProcessingError(
            f"Texture shape {texture.shape} does not match buffer shape {buffer.data.shape}"
        )

    cb = buffer.data[..., :3].astype(np.float64) / 255.0
    cs = texture[..., :3].astype(np.float64) / 255.0
    a_s = texture[..., 3:4].astype(np.float64) / 255.0

    co = cb * (1.0 - a_s) + a_s * blend(cb, cs, mode)
    rgb = np.clip(np.floor(co * 255.0 + 0.5), 0, 255).astype(np.uint8)

    out = buffer.copy_data()
    visible = out[..., 3] > 0
    out[..., :3][visible] = rgb[visible]
    return buffer.with_data(out)


def apply_texture(
    buffer: PixelBuffer,
    style: PrintStyle,
    config: Optional[OptimizerConfigV1] = None,
) -> PixelBuffer:
    """Apply the texture treatment requested by the print style.

    Clean returns the buffer unchanged; halftone and grunge each synthesize
    their own texture only (never both).
    """
    config = config or OptimizerConfigV1()
    style = PrintStyle(style)

    if style is PrintStyle.CLEAN:
        return buffer
    elif style is PrintStyle.HALFTONE:
        logger.info("Applying halftone overlay (spacing=%d px)", config.halftone.spacing)
        texture = make_halftone_texture(buffer.width, buffer.height, config.halftone)
        mode = BlendMode.OVERLAY
    elif style is PrintStyle.GRUNGE:
        logger.info("Applying grunge multiply (sigma=%.2f)", config.grunge.blur_sigma)
        texture = make_grunge_texture(buffer.width, buffer.height, config.grunge)
        mode = BlendMode.MULTIPLY
    else:
        raise ProcessingError(f"Unhandled print style: {style}")

    return composite(buffer, texture, mode)
