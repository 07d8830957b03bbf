"""Color space conversions and tone grading primitives.

Provides:
    - RGB ↔ HSL conversions (hue, saturation, lightness all in [0, 1])
    - Saturation boost with hard clamp at 1.0
    - Symmetric S-curve tone mapping blended with the identity

Used by:
    - Print boost stage: saturation + contrast grading before sharpening
    - Tests: known-value checks of the grading math

All conversions operate on torch tensors of shape (3, H, W) or (3, N).
Computation is done in float64 so that the HSL round trip reproduces
8-bit values exactly when no grading is applied.

Invariants:
    - RGB input/output in [0, 1] (float) unless noted
    - Hue is never modified by grading helpers
    - Lightness/saturation outputs clamped to [0, 1]
"""

import torch


def rgb_to_hsl(rgb: torch.Tensor) -> torch.Tensor:
    """Convert RGB [0,1] to HSL [0,1].

    Parameters
    ----------
    rgb : torch.Tensor
        RGB values, shape (3, ...), range [0, 1]

    Returns
    -------
    torch.Tensor
        HSL values, same shape; channel 0 = hue, 1 = saturation, 2 = lightness

    Notes
    -----
    Achromatic pixels (max == min) get h = 0, s = 0.
    Hue sector ties resolve in R, G, B order (red wins over green, green
    over blue), matching the usual scalar formulation.
    """
    if rgb.shape[0] != 3:
        raise ValueError(f"Expected 3 channels in dim 0, got shape {tuple(rgb.shape)}")

    r, g, b = rgb[0], rgb[1], rgb[2]
    cmax = torch.maximum(torch.maximum(r, g), b)
    cmin = torch.minimum(torch.minimum(r, g), b)
    l = (cmax + cmin) / 2.0
    d = cmax - cmin

    chromatic = d > 0
    # Placeholder denominators avoid 0/0 on achromatic pixels
    safe_d = torch.where(chromatic, d, torch.ones_like(d))
    s_den = torch.where(l > 0.5, 2.0 - cmax - cmin, cmax + cmin)
    s_den = torch.where(chromatic, s_den, torch.ones_like(s_den))
    s = torch.where(chromatic, d / s_den, torch.zeros_like(d))

    h_r = ((g - b) / safe_d + (g < b).to(rgb.dtype) * 6.0) / 6.0
    h_g = ((b - r) / safe_d + 2.0) / 6.0
    h_b = ((r - g) / safe_d + 4.0) / 6.0
    h = torch.where(cmax == r, h_r, torch.where(cmax == g, h_g, h_b))
    h = torch.where(chromatic, h, torch.zeros_like(h))

    return torch.stack([h, s, l], dim=0)


def _hue_to_channel(p: torch.Tensor, q: torch.Tensor, t: torch.Tensor) -> torch.Tensor:
    t = torch.where(t < 0, t + 1.0, t)
    t = torch.where(t > 1, t - 1.0, t)
    return torch.where(
        t < 1.0 / 6.0,
        p + (q - p) * 6.0 * t,
        torch.where(
            t < 0.5,
            q,
            torch.where(t < 2.0 / 3.0, p + (q - p) * (2.0 / 3.0 - t) * 6.0, p),
        ),
    )


def hsl_to_rgb(hsl: torch.Tensor) -> torch.Tensor:
    """Convert HSL [0,1] to RGB [0,1].

    Parameters
    ----------
    hsl : torch.Tensor
        HSL values, shape (3, ...), range [0, 1]

    Returns
    -------
    torch.Tensor
        RGB values, same shape, range [0, 1] (not quantized)

    Notes
    -----
    Inverse of rgb_to_hsl. Zero saturation short-circuits to grey (r = g = b = l).
    """
    if hsl.shape[0] != 3:
        raise ValueError(f"Expected 3 channels in dim 0, got shape {tuple(hsl.shape)}")

    h, s, l = hsl[0], hsl[1], hsl[2]
    q = torch.where(l < 0.5, l * (1.0 + s), l + s - l * s)
    p = 2.0 * l - q

    r = _hue_to_channel(p, q, h + 1.0 / 3.0)
    g = _hue_to_channel(p, q, h)
    b = _hue_to_channel(p, q, h - 1.0 / 3.0)

    grey = s == 0
    r = torch.where(grey, l, r)
    g = torch.where(grey, l, g)
    b = torch.where(grey, l, b)
    return torch.stack([r, g, b], dim=0)


def to_uint8_round(x: torch.Tensor) -> torch.Tensor:
    """Scale [0,1] to [0,255], round half up and clamp.

    Round-half-up (floor(x + 0.5)) rather than torch.round, which rounds
    half to even.
    """
    return torch.clamp(torch.floor(x * 255.0 + 0.5), 0.0, 255.0)


def boost_saturation(s: torch.Tensor, gain: float = 1.12) -> torch.Tensor:
    """Multiply saturation by gain, hard-clamped to [0, 1]."""
    return torch.clamp(s * gain, 0.0, 1.0)


def scurve(x: torch.Tensor) -> torch.Tensor:
    """Symmetric ease-in/ease-out curve.

    2x² below the midpoint, 1 - 2(1 - x)² above it. Fixed points at 0, 0.5, 1.
    """
    return torch.where(x < 0.5, 2.0 * x * x, 1.0 - 2.0 * (1.0 - x) * (1.0 - x))


def blend_scurve(l: torch.Tensor, mix: float = 0.3) -> torch.Tensor:
    """Blend lightness with its S-curve: l * (1 - mix) + scurve(l) * mix.

    Parameters
    ----------
    l : torch.Tensor
        Lightness, range [0, 1]
    mix : float
        Curve weight, default 0.3 (70% original, 30% curve)

    Returns
    -------
    torch.Tensor
        Graded lightness, range [0, 1]
    """
    return torch.clamp(l * (1.0 - mix) + scurve(l) * mix, 0.0, 1.0)
