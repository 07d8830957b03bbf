"""Lossless PNG re-encode of the finished print buffer.

Pillow applies adaptive per-row filtering to truecolor PNGs; optimize=True
adds the extra compression search on top of zlib level 9.
"""

import io
import logging
from typing import Optional

from ..utils.validators import EncodeParams
from .buffer import PixelBuffer
from .errors import EncodingError

logger = logging.getLogger(__name__)


def encode_png(buffer: PixelBuffer, params: Optional[EncodeParams] = None) -> bytes:
    """Serialize the buffer as an RGBA PNG.

    Parameters
    ----------
    buffer : PixelBuffer
        Final buffer
    params : EncodeParams, optional
        zlib level and optimize flag; maximum compression when omitted

    Returns
    -------
    bytes
        PNG file contents

    Raises
    ------
    EncodingError
        If Pillow cannot serialize the buffer
    """
    params = params or EncodeParams()
    out = io.BytesIO()
    try:
        buffer.to_image().save(
            out,
            format="PNG",
            compress_level=params.compress_level,
            optimize=params.optimize,
        )
    except MemoryError as e:
        raise EncodingError(f"Out of memory encoding {buffer.width}x{buffer.height} PNG") from e
    except (OSError, ValueError) as e:
        raise EncodingError(f"PNG encoding failed: {e}") from e

    data = out.getvalue()
    logger.debug("Encoded %dx%d PNG: %d bytes", buffer.width, buffer.height, len(data))
    return data
