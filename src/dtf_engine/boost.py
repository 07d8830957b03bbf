"""Print boost: saturation and tone-curve grading in HSL.

DTF inks print flatter than they look on screen, so every visible pixel
gets a saturation lift and a mild midtone contrast boost:

    s' = min(1, s * saturation_gain)
    l' = l * (1 - scurve_mix) + scurve(l) * scurve_mix

Hue is left alone. Fully transparent pixels (alpha == 0) are skipped and
keep their bytes exactly; alpha is never written.
"""

import logging
from typing import Optional

import numpy as np
import torch

from ..utils import color, compute
from ..utils.validators import BoostParams
from .buffer import PixelBuffer
from .errors import ProcessingError

logger = logging.getLogger(__name__)


def grade_rgb(rgb: torch.Tensor, params: BoostParams) -> torch.Tensor:
    """Grade RGB values in [0, 1].

    Parameters
    ----------
    rgb : torch.Tensor
        float64, shape (3, N)
    params : BoostParams
        Saturation gain and curve mix

    Returns
    -------
    torch.Tensor
        Graded 8-bit values as float64 in [0, 255], shape (3, N)
    """
    hsl = color.rgb_to_hsl(rgb)
    h = hsl[0]
    s = color.boost_saturation(hsl[1], params.saturation_gain)
    l = color.blend_scurve(hsl[2], params.scurve_mix)
    graded = color.hsl_to_rgb(torch.stack([h, s, l], dim=0))
    return color.to_uint8_round(graded)


def apply_print_boost(
    buffer: PixelBuffer,
    params: Optional[BoostParams] = None,
) -> PixelBuffer:
    """Grade every non-transparent pixel of the buffer.

    Parameters
    ----------
    buffer : PixelBuffer
        Source buffer (not modified)
    params : BoostParams, optional
        Grading parameters; production defaults when omitted

    Returns
    -------
    PixelBuffer
        New buffer with graded RGB; alpha identical to the input

    Raises
    ------
    ProcessingError
        If grading produced non-finite values
    """
    params = params or BoostParams()
    out = buffer.copy_data()

    visible = out[..., 3] > 0
    n_visible = int(visible.sum())
    if n_visible:
        # (N, 3) → (3, N)
        rgb = compute.to_0_1(out[..., :3][visible]).T
        graded = grade_rgb(rgb, params)
        try:
            compute.assert_finite(graded, "print boost output")
        except ValueError as e:
            raise ProcessingError(str(e)) from e
        out[..., :3][visible] = graded.T.numpy().astype(np.uint8)

    logger.info("Print boost: graded %d of %d px", n_visible, buffer.pixel_count)
    return buffer.with_data(out)
