"""Buffer acquisition: fetch the source image and decode it to RGBA.

Sources:
    - http(s) URL: fetched with requests, bounded by a timeout and a size cap
    - Local path (str or Path)
    - Raw encoded bytes

Every failure (unreachable host, HTTP error status, stalled fetch, oversize
payload, missing file, undecodable data) raises AcquisitionError. A source
without alpha gets a fully opaque alpha channel.
"""

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union

import requests
from PIL import Image, UnidentifiedImageError

from ..utils.validators import AcquisitionParams
from .buffer import PixelBuffer
from .errors import AcquisitionError

logger = logging.getLogger(__name__)

SourceRef = Union[str, Path, bytes, bytearray]

_ALPHA_MODES = {"RGBA", "LA", "PA", "RGBa", "La"}
_CHUNK = 1 << 16


@dataclass(frozen=True)
class SourceInfo:
    """What the decoder saw before conversion to RGBA."""
    width: int
    height: int
    format: Optional[str]
    mode: str
    had_alpha: bool
    byte_size: int


def is_url(ref: SourceRef) -> bool:
    return isinstance(ref, str) and ref.lower().startswith(("http://", "https://"))


def _fetch_url(url: str, params: AcquisitionParams) -> bytes:
    try:
        response = requests.get(
            url,
            timeout=params.fetch_timeout_s,
            headers={"User-Agent": params.user_agent},
            stream=True,
        )
    except requests.Timeout as e:
        raise AcquisitionError(f"Timed out after {params.fetch_timeout_s}s fetching {url}") from e
    except requests.RequestException as e:
        raise AcquisitionError(f"Could not fetch {url}: {e}") from e

    with response:
        if response.status_code >= 400:
            raise AcquisitionError(f"Fetching {url} returned HTTP {response.status_code}")

        chunks = []
        received = 0
        try:
            for chunk in response.iter_content(chunk_size=_CHUNK):
                received += len(chunk)
                if received > params.max_bytes:
                    raise AcquisitionError(
                        f"Source {url} exceeds {params.max_bytes} bytes"
                    )
                chunks.append(chunk)
        except requests.RequestException as e:
            raise AcquisitionError(f"Download of {url} failed: {e}") from e

    return b"".join(chunks)


def fetch_source(source: SourceRef, params: Optional[AcquisitionParams] = None) -> bytes:
    """Return the encoded bytes of a source reference.

    Parameters
    ----------
    source : str, Path, bytes or bytearray
        URL, filesystem path or encoded image bytes
    params : AcquisitionParams, optional
        Timeout and size limits; production defaults when omitted

    Returns
    -------
    bytes
        Encoded image

    Raises
    ------
    AcquisitionError
        If the source cannot be read or is too large
    """
    params = params or AcquisitionParams()

    if isinstance(source, (bytes, bytearray)):
        raw = bytes(source)
    elif is_url(source):
        logger.info("Downloading source image from %s", source)
        raw = _fetch_url(source, params)
    elif isinstance(source, (str, Path)):
        path = Path(source)
        try:
            raw = path.read_bytes()
        except OSError as e:
            raise AcquisitionError(f"Could not read source file {path}: {e}") from e
    else:
        raise AcquisitionError(f"Unsupported source type: {type(source).__name__}")

    if not raw:
        raise AcquisitionError("Source is empty")
    if len(raw) > params.max_bytes:
        raise AcquisitionError(f"Source has {len(raw)} bytes, limit is {params.max_bytes}")
    return raw


def decode_rgba(raw: bytes) -> Tuple[PixelBuffer, SourceInfo]:
    """Decode encoded bytes to an RGBA PixelBuffer.

    Multi-frame formats contribute their first frame only.

    Raises
    ------
    AcquisitionError
        If the data is not a decodable image
    """
    try:
        with Image.open(io.BytesIO(raw)) as img:
            img.load()
            had_alpha = img.mode in _ALPHA_MODES or "transparency" in img.info
            info = SourceInfo(
                width=img.width,
                height=img.height,
                format=img.format,
                mode=img.mode,
                had_alpha=had_alpha,
                byte_size=len(raw),
            )
            buffer = PixelBuffer.from_image(img)
    except UnidentifiedImageError as e:
        raise AcquisitionError(f"Source is not a recognized image: {e}") from e
    except Image.DecompressionBombError as e:
        raise AcquisitionError(f"Source image is too large to decode: {e}") from e
    except MemoryError as e:
        raise AcquisitionError(f"Out of memory decoding {len(raw)} byte source") from e
    except (OSError, ValueError, SyntaxError) as e:
        raise AcquisitionError(f"Source image could not be decoded: {e}") from e

    logger.info(
        "Source image: %dx%d format=%s mode=%s alpha=%s",
        info.width, info.height, info.format, info.mode, info.had_alpha,
    )
    return buffer, info


def acquire(source: SourceRef, params: Optional[AcquisitionParams] = None) -> PixelBuffer:
    """Fetch and decode a source into an RGBA buffer (stage 1)."""
    buffer, _ = decode_rgba(fetch_source(source, params))
    return buffer
