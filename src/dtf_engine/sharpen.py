"""Unsharp-mask sharpening of the graded buffer.

Uses Pillow's UnsharpMask on the RGB channels only; alpha is carried over
unchanged so that knockout transparency and feathering survive sharpening.
"""

import logging
from typing import Optional

import numpy as np
from PIL import Image, ImageFilter

from ..utils.validators import SharpenParams
from .buffer import PixelBuffer

logger = logging.getLogger(__name__)


def sharpen(buffer: PixelBuffer, params: Optional[SharpenParams] = None) -> PixelBuffer:
    """Apply an unsharp mask to the RGB channels.

    Parameters
    ----------
    buffer : PixelBuffer
        Source buffer (not modified)
    params : SharpenParams, optional
        Radius (px), amplification (%) and threshold; defaults when omitted

    Returns
    -------
    PixelBuffer
        New buffer with sharpened RGB and the input alpha
    """
    params = params or SharpenParams()
    rgb_image = Image.fromarray(np.ascontiguousarray(buffer.rgb))
    sharpened = rgb_image.filter(
        ImageFilter.UnsharpMask(
            radius=params.radius,
            percent=params.percent,
            threshold=params.threshold,
        )
    )

    out = buffer.copy_data()
    out[..., :3] = np.asarray(sharpened)
    logger.debug(
        "Sharpen: radius=%.2f percent=%d threshold=%d",
        params.radius, params.percent, params.threshold,
    )
    return buffer.with_data(out)
