"""Test windowed neighborhood reductions and numeric guards.

Tests for src.utils.compute:
    - shift_mask() offset semantics and out-of-bounds fill
    - window_count() with border truncation
    - window_min_distance() with ceiling
    - to_0_1() scaling, assert_finite() guard

Run:
    pytest tests/test_compute.py -v
"""
import math

import numpy as np
import pytest
import torch

from src.utils import compute


class TestShiftMask:
    """out[y, x] = mask[y + dy, x + dx]."""

    def test_shift_right_neighbor(self):
        mask = np.zeros((3, 3), dtype=bool)
        mask[1, 2] = True
        out = compute.shift_mask(mask, 0, 1)
        assert out[1, 1]
        assert out.sum() == 1

    def test_out_of_bounds_is_false(self):
        mask = np.ones((4, 4), dtype=bool)
        out = compute.shift_mask(mask, -1, 0)
        assert not out[0].any()
        assert out[1:].all()

    def test_offset_larger_than_image(self):
        mask = np.ones((2, 2), dtype=bool)
        assert not compute.shift_mask(mask, 5, 0).any()


class TestWindowCount:
    """Neighbor counting in (2r+1)×(2r+1) windows."""

    def test_offsets_cover_window(self):
        offsets = list(compute.window_offsets(2))
        assert len(offsets) == 25
        assert offsets[0] == (-2, -2)
        assert (0, 0) in offsets

    def test_negative_radius_rejected(self):
        with pytest.raises(ValueError):
            list(compute.window_offsets(-1))

    def test_full_mask_interior_and_borders(self):
        """All-True 20×20: interior 169, corner 49, one step in 56."""
        mask = np.ones((20, 20), dtype=bool)
        counts = compute.window_count(mask, 6)
        assert counts[10, 10] == 169
        assert counts[0, 0] == 49
        assert counts[0, 1] == 56
        assert counts[1, 1] == 64

    def test_empty_mask(self):
        counts = compute.window_count(np.zeros((5, 5), dtype=bool), 2)
        assert counts.dtype == np.int32
        assert not counts.any()

    def test_matches_bruteforce(self):
        rng = np.random.default_rng(3)
        mask = rng.random((15, 11)) < 0.4
        counts = compute.window_count(mask, 2)

        h, w = mask.shape
        for y in range(h):
            for x in range(w):
                window = mask[max(y - 2, 0):y + 3, max(x - 2, 0):x + 3]
                assert counts[y, x] == window.sum()

    def test_rejects_non_2d(self):
        with pytest.raises(ValueError, match="2D"):
            compute.window_count(np.ones((2, 2, 2), dtype=bool), 1)


class TestWindowMinDistance:
    """Nearest-target distance within the window."""

    @pytest.fixture
    def single_target(self):
        mask = np.zeros((11, 11), dtype=bool)
        mask[5, 5] = True
        return compute.window_min_distance(mask, 2, ceiling=6.0)

    def test_on_target(self, single_target):
        assert single_target[5, 5] == 0.0

    def test_axis_and_diagonal(self, single_target):
        assert single_target[5, 7] == pytest.approx(2.0)
        assert single_target[6, 6] == pytest.approx(math.sqrt(2))

    def test_outside_window_gets_ceiling(self, single_target):
        assert single_target[5, 8] == 6.0
        assert single_target[0, 0] == 6.0

    def test_nearest_of_several(self):
        mask = np.zeros((5, 9), dtype=bool)
        mask[2, 0] = True
        mask[2, 6] = True
        dist = compute.window_min_distance(mask, 2, ceiling=10.0)
        assert dist[2, 4] == pytest.approx(2.0)


class TestScalingAndGuards:

    def test_to_0_1(self):
        x = np.array([[0, 255], [51, 102]], dtype=np.uint8)
        t = compute.to_0_1(x)
        assert t.dtype == torch.float64
        np.testing.assert_allclose(t.numpy(), [[0.0, 1.0], [0.2, 0.4]])

    def test_assert_finite_passes(self):
        compute.assert_finite(torch.zeros(3), "zeros")

    def test_assert_finite_reports_counts(self):
        x = torch.tensor([1.0, float("nan"), float("inf")])
        with pytest.raises(ValueError, match="1 NaNs, 1 Infs"):
            compute.assert_finite(x, "graded")
