"""RGBA pixel buffer passed between pipeline stages.

A PixelBuffer owns a C-contiguous uint8 array of shape (H, W, 4). Pixel
(x, y) occupies bytes [4*(y*width + x), +4) of the flattened data, in
R, G, B, A order.

Ownership:
    Stages receive a buffer and return a buffer; they never mutate the
    buffer they were given. `with_data()` builds the successor buffer and
    re-checks the invariant, so a stage that changes the shape fails
    immediately with ProcessingError instead of corrupting later stages.
"""

from dataclasses import dataclass
from typing import Tuple

import numpy as np
from PIL import Image

from .errors import ProcessingError

CHANNELS = 4


@dataclass(frozen=True, eq=False)
class PixelBuffer:
    """Immutable RGBA image of fixed dimensions."""
    width: int
    height: int
    data: np.ndarray

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Check shape, dtype and length against the declared dimensions.

        Raises
        ------
        ProcessingError
            If any of the invariants does not hold
        """
        if self.width <= 0 or self.height <= 0:
            raise ProcessingError(f"Invalid dimensions {self.width}x{self.height}")
        if not isinstance(self.data, np.ndarray):
            raise ProcessingError(f"Pixel data must be a numpy array, got {type(self.data).__name__}")
        if self.data.dtype != np.uint8:
            raise ProcessingError(f"Pixel data must be uint8, got {self.data.dtype}")
        expected = (self.height, self.width, CHANNELS)
        if self.data.shape != expected:
            raise ProcessingError(
                f"Pixel data shape {self.data.shape} does not match declared {expected}"
            )
        if self.data.size != self.width * self.height * CHANNELS:
            raise ProcessingError(
                f"Pixel data length {self.data.size} != {self.width}*{self.height}*{CHANNELS}"
            )

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_array(cls, arr: np.ndarray) -> "PixelBuffer":
        """Wrap a copy of an (H, W, 4) uint8 array."""
        if arr.ndim != 3:
            raise ProcessingError(f"Expected (H, W, 4) array, got shape {arr.shape}")
        return cls(width=arr.shape[1], height=arr.shape[0], data=np.array(arr, order="C"))

    @classmethod
    def from_bytes(cls, width: int, height: int, raw: bytes) -> "PixelBuffer":
        """Build from a raw RGBA byte sequence of length width*height*4."""
        expected = width * height * CHANNELS
        if len(raw) != expected:
            raise ProcessingError(f"Raw buffer has {len(raw)} bytes, expected {expected}")
        arr = np.frombuffer(raw, dtype=np.uint8).reshape(height, width, CHANNELS).copy()
        return cls(width=width, height=height, data=arr)

    @classmethod
    def from_image(cls, image: Image.Image) -> "PixelBuffer":
        """Build from a PIL image, converting to RGBA.

        Sources without alpha get a fully opaque alpha channel (255).
        """
        if image.mode != "RGBA":
            image = image.convert("RGBA")
        return cls.from_array(np.asarray(image))

    def with_data(self, data: np.ndarray) -> "PixelBuffer":
        """Successor buffer with new pixel data and the same dimensions."""
        if data.shape != self.data.shape:
            raise ProcessingError(
                f"Stage changed buffer shape from {self.data.shape} to {data.shape}"
            )
        return PixelBuffer(self.width, self.height, np.ascontiguousarray(data))

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    @property
    def size(self) -> Tuple[int, int]:
        """(width, height)"""
        return self.width, self.height

    @property
    def pixel_count(self) -> int:
        return self.width * self.height

    @property
    def rgb(self) -> np.ndarray:
        """Read-only (H, W, 3) view."""
        view = self.data[..., :3]
        view.flags.writeable = False
        return view

    @property
    def alpha(self) -> np.ndarray:
        """Read-only (H, W) view."""
        view = self.data[..., 3]
        view.flags.writeable = False
        return view

    def pixel(self, x: int, y: int) -> Tuple[int, int, int, int]:
        r, g, b, a = self.data[y, x]
        return int(r), int(g), int(b), int(a)

    def copy_data(self) -> np.ndarray:
        """Writable copy of the pixel data for a stage to build its output in."""
        return self.data.copy()

    def tobytes(self) -> bytes:
        return self.data.tobytes()

    def to_image(self) -> Image.Image:
        return Image.fromarray(self.data)

    def same_pixels(self, other: "PixelBuffer") -> bool:
        """True when dimensions and every byte match."""
        return self.size == other.size and np.array_equal(self.data, other.data)
