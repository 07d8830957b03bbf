"""Numerics over pixel grids: windowed neighborhood reductions and scaling.

Core utilities:
    - Windowed reduce: window_reduce() folds a value over every in-bounds
      neighbor of each pixel inside a square (2r+1)×(2r+1) window where a
      boolean predicate mask holds
    - Specializations: window_count() (neighbor count) and
      window_min_distance() (Euclidean distance to nearest neighbor)
    - Scaling: to_0_1() converts uint8 arrays to float64 tensors in [0, 1]
    - Guards: assert_finite() for float outputs before quantization

Invariants:
    - Windows are truncated at image borders (out-of-bounds neighbors never
      contribute), they are never padded with synthetic values
    - The center pixel is part of its own window
    - Results depend only on the input mask, so rows/tiles can be computed
      independently without changing the output
"""

import math
from typing import Callable, Iterator, Optional, Tuple

import numpy as np
import torch


def window_offsets(radius: int) -> Iterator[Tuple[int, int]]:
    """Yield (dy, dx) offsets of a square window, row-major.

    Parameters
    ----------
    radius : int
        Half-width r; window is (2r+1)×(2r+1)
    """
    if radius < 0:
        raise ValueError(f"radius must be >= 0, got {radius}")
    for dy in range(-radius, radius + 1):
        for dx in range(-radius, radius + 1):
            yield dy, dx


def shift_mask(mask: np.ndarray, dy: int, dx: int) -> np.ndarray:
    """Return out with out[y, x] = mask[y + dy, x + dx], False out of bounds.

    Parameters
    ----------
    mask : np.ndarray
        Boolean array, shape (H, W)
    dy, dx : int
        Neighbor offset

    Returns
    -------
    np.ndarray
        Boolean array, shape (H, W)
    """
    h, w = mask.shape
    out = np.zeros_like(mask, dtype=bool)
    if abs(dy) >= h or abs(dx) >= w:
        return out

    src_y = slice(max(dy, 0), h + min(dy, 0))
    src_x = slice(max(dx, 0), w + min(dx, 0))
    dst_y = slice(max(-dy, 0), h + min(-dy, 0))
    dst_x = slice(max(-dx, 0), w + min(-dx, 0))
    out[dst_y, dst_x] = mask[src_y, src_x]
    return out


def window_reduce(
    mask: np.ndarray,
    radius: int,
    reducer: Callable[[np.ndarray, float], np.ndarray],
    initial: float,
    weight: Optional[Callable[[int, int], float]] = None,
    dtype=np.float64,
) -> np.ndarray:
    """Reduce a per-offset value over each pixel's masked neighborhood.

    For each pixel (y, x), starting from `initial`, folds
    `reducer(acc, weight(dy, dx))` over every offset in the window for which
    (y + dy, x + dx) is in bounds and mask[y + dy, x + dx] is True.

    Parameters
    ----------
    mask : np.ndarray
        Boolean predicate, shape (H, W)
    radius : int
        Window half-width
    reducer : Callable
        Vectorized binary op, e.g. np.add or np.minimum
    initial : float
        Starting accumulator value for every pixel
    weight : Callable[[int, int], float], optional
        Value contributed by offset (dy, dx); defaults to 1
    dtype : numpy dtype
        Accumulator dtype, default float64

    Returns
    -------
    np.ndarray
        Accumulator per pixel, shape (H, W)

    Examples
    --------
    >>> counts = window_reduce(mask, 6, np.add, 0, dtype=np.int32)
    >>> nearest = window_reduce(mask, 2, np.minimum, 6.0,
    ...                         weight=lambda dy, dx: math.hypot(dy, dx))
    """
    if mask.ndim != 2:
        raise ValueError(f"Expected 2D mask, got shape {mask.shape}")
    mask = mask.astype(bool, copy=False)

    acc = np.full(mask.shape, initial, dtype=dtype)
    for dy, dx in window_offsets(radius):
        hit = shift_mask(mask, dy, dx)
        if not hit.any():
            continue
        value = 1 if weight is None else weight(dy, dx)
        acc = np.where(hit, reducer(acc, value), acc)
    return acc


def window_count(mask: np.ndarray, radius: int) -> np.ndarray:
    """Count True pixels in each (2r+1)×(2r+1) window (border-truncated)."""
    return window_reduce(mask, radius, np.add, 0, dtype=np.int32)


def window_min_distance(mask: np.ndarray, radius: int, ceiling: float) -> np.ndarray:
    """Euclidean distance to the nearest True pixel within the window.

    Parameters
    ----------
    mask : np.ndarray
        Boolean targets, shape (H, W)
    radius : int
        Search window half-width
    ceiling : float
        Value reported when no target lies within the window

    Returns
    -------
    np.ndarray
        float64 distances, shape (H, W), each <= ceiling
    """
    return window_reduce(
        mask,
        radius,
        np.minimum,
        float(ceiling),
        weight=lambda dy, dx: math.hypot(dy, dx),
    )


def to_0_1(x: np.ndarray) -> torch.Tensor:
    """Convert uint8 array [0,255] to a float64 tensor in [0, 1]."""
    return torch.from_numpy(np.ascontiguousarray(x)).to(torch.float64) / 255.0


def assert_finite(x: torch.Tensor, name: str = "tensor") -> None:
    """Assert tensor contains no NaN or Inf values.

    Parameters
    ----------
    x : torch.Tensor
        Tensor to check
    name : str
        Tensor name for error message

    Raises
    ------
    ValueError
        If tensor contains NaN or Inf
    """
    if not torch.isfinite(x).all():
        nan_count = torch.isnan(x).sum().item()
        inf_count = torch.isinf(x).sum().item()
        raise ValueError(
            f"{name} contains non-finite values: {nan_count} NaNs, {inf_count} Infs. "
            f"Shape: {tuple(x.shape)}, dtype: {x.dtype}"
        )
