"""Black-region knockout for prints on black garments.

Large flat black fills disappear into a black shirt anyway, and printing
them wastes ink and stiffens the transfer. Thin black outlines still read
as linework, so they are kept. Three passes over the buffer:

    1. Classify: a pixel is near-black when R, G and B are all below
       black_threshold and every pairwise channel difference is below
       neutral_tolerance (dark *and* neutral, so deep navy/maroon survive).
    2. Cluster test: count near-black pixels in the (2r+1)×(2r+1) window
       around each near-black pixel (window truncated at the image border).
       Pixels whose count exceeds π·r²·cluster_fill_ratio are removed;
       thin lines never reach that density.
    3. Feather: for each removed pixel, find the distance d to the nearest
       kept near-black pixel inside the feather window (d defaults to
       cluster_radius when none is present), then
       alpha = floor(alpha * (1 - clamp(d / feather_falloff, 0, 1))).
       Removal fades out next to preserved linework instead of leaving a
       hard alpha seam.

Invariants:
    - Pixels not removed keep their RGBA bytes exactly
    - Alpha never increases; RGB is never modified
    - Output dimensions equal input dimensions
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..utils import compute
from ..utils.validators import KnockoutParams
from .buffer import PixelBuffer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KnockoutMasks:
    """Intermediate masks of one knockout run, shape (H, W) each."""
    near_black: np.ndarray
    removal: np.ndarray
    feather_distance: np.ndarray

    @property
    def removed_count(self) -> int:
        return int(self.removal.sum())


def near_black_mask(rgb: np.ndarray, params: KnockoutParams) -> np.ndarray:
    """Pass 1: boolean mask of dark, neutral pixels.

    Parameters
    ----------
    rgb : np.ndarray
        uint8 array, shape (H, W, 3)
    params : KnockoutParams
        Thresholds

    Returns
    -------
    np.ndarray
        bool, shape (H, W)
    """
    c = rgb.astype(np.int16)
    r, g, b = c[..., 0], c[..., 1], c[..., 2]
    t = params.black_threshold
    tol = params.neutral_tolerance
    dark = (r < t) & (g < t) & (b < t)
    neutral = (np.abs(r - g) < tol) & (np.abs(r - b) < tol) & (np.abs(g - b) < tol)
    return dark & neutral


def removal_mask(near_black: np.ndarray, params: KnockoutParams) -> np.ndarray:
    """Pass 2: near-black pixels that sit inside a dense near-black cluster."""
    counts = compute.window_count(near_black, params.cluster_radius)
    return near_black & (counts > params.min_cluster_size)


def feather_distance(
    near_black: np.ndarray,
    removal: np.ndarray,
    params: KnockoutParams,
) -> np.ndarray:
    """Pass 3 distances: nearest kept near-black pixel within the feather window.

    Only meaningful where `removal` is True; elsewhere the value is unused.
    """
    kept_edge = near_black & ~removal
    return compute.window_min_distance(kept_edge, params.feather_radius, params.cluster_radius)


def compute_masks(rgb: np.ndarray, params: KnockoutParams) -> KnockoutMasks:
    near_black = near_black_mask(rgb, params)
    removal = removal_mask(near_black, params)
    distance = feather_distance(near_black, removal, params)
    return KnockoutMasks(near_black=near_black, removal=removal, feather_distance=distance)


def remove_black_regions(
    buffer: PixelBuffer,
    params: Optional[KnockoutParams] = None,
) -> PixelBuffer:
    """Fade out large near-black fills, keeping thin dark outlines.

    Parameters
    ----------
    buffer : PixelBuffer
        Source buffer (not modified)
    params : KnockoutParams, optional
        Tuning; production defaults when omitted

    Returns
    -------
    PixelBuffer
        New buffer; only the alpha of removed pixels differs from the input
    """
    params = params or KnockoutParams()
    masks = compute_masks(buffer.rgb, params)

    out = buffer.copy_data()
    if masks.removed_count:
        removal = masks.removal
        amount = np.clip(masks.feather_distance[removal] / params.feather_falloff, 0.0, 1.0)
        alpha = out[..., 3]
        faded = np.floor(alpha[removal].astype(np.float64) * (1.0 - amount))
        alpha[removal] = faded.astype(np.uint8)

    logger.info(
        "Black knockout: %d near-black px, %d removed (min cluster %.1f)",
        int(masks.near_black.sum()), masks.removed_count, params.min_cluster_size,
    )
    return buffer.with_data(out)
