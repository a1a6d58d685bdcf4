"""Tests for rangesim.dispersal — kernel ordering, boundary reflection,
stochastic and deterministic dispersal.
"""

import numpy as np
import pytest

from rangesim.dispersal import (
    disperse,
    dispersal_order,
    kernel_radius,
    reflect_index,
    reflect_padding,
)
from rangesim.rng import make_rng


def _centre_kernel(side=3):
    k = np.zeros((side, side))
    k[side // 2, side // 2] = 1.0
    return k


def _uniform_kernel(side=3):
    return np.full((side, side), 1.0 / side ** 2)


def _gaussian_kernel(side=5, scale=1.0):
    r = side // 2
    y, x = np.mgrid[-r:r + 1, -r:r + 1]
    k = np.exp(-(x ** 2 + y ** 2) / (2 * scale ** 2))
    return k / k.sum()


# ═══════════════════════════════════════════════════════════════════════
# KERNEL HELPERS
# ═══════════════════════════════════════════════════════════════════════

class TestKernelHelpers:
    def test_radius(self):
        assert kernel_radius(np.zeros((1, 1))) == 0
        assert kernel_radius(np.zeros((3, 3))) == 1
        assert kernel_radius(np.zeros((7, 7))) == 3

    def test_order_descending(self):
        k = np.array([[0.1, 0.2, 0.1],
                      [0.05, 0.4, 0.05],
                      [0.0, 0.1, 0.0]])
        order = dispersal_order(k)
        weights = k.ravel()[order]
        assert order[0] == 4
        assert np.all(np.diff(weights) <= 0)

    def test_order_ties_row_major(self):
        order = dispersal_order(_uniform_kernel(3))
        np.testing.assert_array_equal(order, np.arange(9))


# ═══════════════════════════════════════════════════════════════════════
# REFLECTION
# ═══════════════════════════════════════════════════════════════════════

class TestReflection:
    def test_reflect_index_edges(self):
        idx = np.array([-2, -1, 0, 1, 2, 3, 4])
        np.testing.assert_array_equal(reflect_index(idx, 3), [1, 0, 0, 1, 2, 2, 1])

    def test_reflect_index_bounces(self):
        """Offsets larger than the grid keep bouncing inside it."""
        idx = np.array([-3, -2, -1, 1, 2])
        np.testing.assert_array_equal(reflect_index(idx, 1), [0, 0, 0, 0, 0])
        np.testing.assert_array_equal(reflect_index(np.array([-3, 4]), 2), [1, 0])

    def test_fold_single_interior_cell(self):
        T = np.arange(9, dtype=float).reshape(3, 3)
        out = reflect_padding(T, 1)
        assert out.shape == (1, 1)
        assert out[0, 0] == T.sum()

    def test_fold_conserves_mass(self):
        T = make_rng(1).random((9, 12))
        out = reflect_padding(T, 2)
        assert out.shape == (5, 8)
        assert out.sum() == pytest.approx(T.sum())

    def test_fold_zero_radius(self):
        T = make_rng(2).random((4, 5))
        np.testing.assert_array_equal(reflect_padding(T, 0), T)


# ═══════════════════════════════════════════════════════════════════════
# DISPERSAL
# ═══════════════════════════════════════════════════════════════════════

class TestDisperse:
    @pytest.mark.parametrize("stochastic", [True, False])
    def test_centre_kernel_identity(self, stochastic):
        S = np.array([[1.0, 0.0, 4.0],
                      [7.0, 2.0, 0.0],
                      [0.0, 3.0, 9.0]])
        out = disperse(S, _centre_kernel(3), stochastic=stochastic, seed=1)
        np.testing.assert_array_equal(out, S)

    @pytest.mark.parametrize("stochastic", [True, False])
    def test_centre_kernel_identity_absorbing(self, stochastic):
        S = np.arange(9, dtype=float).reshape(3, 3)
        out = disperse(S, _centre_kernel(5), reflect=False, stochastic=stochastic)
        np.testing.assert_array_equal(out, S)

    def test_output_shape(self):
        S = np.ones((6, 9)) * 10
        out = disperse(S, _gaussian_kernel(5), seed=3)
        assert out.shape == (6, 9)

    def test_corner_reflection_deterministic(self):
        """Uniform 3×3 kernel from a corner folds back onto the corner block."""
        S = np.zeros((4, 4))
        S[0, 0] = 9.0
        out = disperse(S, _uniform_kernel(3), stochastic=False)
        expected = np.zeros((4, 4))
        expected[0, 0] = 4.0
        expected[0, 1] = 2.0
        expected[1, 0] = 2.0
        expected[1, 1] = 1.0
        np.testing.assert_allclose(out, expected)

    def test_corner_absorbing_deterministic(self):
        S = np.zeros((4, 4))
        S[0, 0] = 9.0
        out = disperse(S, _uniform_kernel(3), reflect=False, stochastic=False)
        expected = np.zeros((4, 4))
        expected[:2, :2] = 1.0
        np.testing.assert_allclose(out, expected)

    def test_deterministic_is_weighted_sum(self):
        S = np.zeros((7, 7))
        S[3, 3] = 100.0
        k = _gaussian_kernel(5)
        out = disperse(S, k, stochastic=False)
        np.testing.assert_allclose(out[1:6, 1:6], 100.0 * k)

    @pytest.mark.parametrize("shape,side", [
        ((10, 10), 3), ((7, 13), 5), ((3, 2), 5), ((1, 1), 3), ((2, 2), 7),
    ])
    def test_reflection_conserves_mass_stochastic(self, shape, side):
        S = make_rng(4).integers(0, 500, size=shape).astype(float)
        k = make_rng(5).random((side, side))
        out = disperse(S, k, reflect=True, stochastic=True, seed=6)
        assert out.sum() == S.sum()

    @pytest.mark.parametrize("shape,side", [
        ((10, 10), 3), ((7, 13), 5), ((3, 2), 5), ((1, 1), 3),
    ])
    def test_reflection_conserves_mass_deterministic(self, shape, side):
        S = make_rng(4).integers(0, 500, size=shape).astype(float)
        out = disperse(S, _gaussian_kernel(side), reflect=True, stochastic=False)
        assert out.sum() == pytest.approx(S.sum())

    @pytest.mark.parametrize("stochastic", [True, False])
    def test_absorbing_never_gains_mass(self, stochastic):
        S = make_rng(7).integers(0, 200, size=(8, 8)).astype(float)
        out = disperse(S, _gaussian_kernel(5), reflect=False,
                       stochastic=stochastic, seed=2)
        assert out.sum() <= S.sum() + 1e-9
        assert out.sum() < S.sum()   # edge cells lose dispersers

    def test_stochastic_counts_are_integers(self):
        S = make_rng(8).integers(0, 100, size=(12, 12)).astype(float)
        out = disperse(S, _gaussian_kernel(5), seed=9)
        assert np.all(out >= 0)
        np.testing.assert_array_equal(out, np.round(out))

    def test_fractional_offspring_truncated(self):
        S = np.full((3, 3), 2.7)
        out = disperse(S, _uniform_kernel(3), seed=1)
        assert out.sum() == 18.0

    def test_same_seed_identical(self):
        S = make_rng(10).integers(0, 100, size=(12, 12)).astype(float)
        out1 = disperse(S, _gaussian_kernel(5), seed=11)
        out2 = disperse(S, _gaussian_kernel(5), seed=11)
        np.testing.assert_array_equal(out1, out2)

    def test_rng_argument_matches_seed(self):
        S = make_rng(10).integers(0, 100, size=(12, 12)).astype(float)
        out1 = disperse(S, _gaussian_kernel(5), seed=11)
        out2 = disperse(S, _gaussian_kernel(5), rng=make_rng(11))
        np.testing.assert_array_equal(out1, out2)

    def test_unnormalised_kernel_weights(self):
        """Stochastic mode only uses relative weights."""
        S = np.full((5, 5), 50.0)
        out = disperse(S, _uniform_kernel(3) * 40.0, reflect=True, seed=1)
        assert out.sum() == S.sum()

    def test_stochastic_mean_matches_deterministic(self):
        S = np.full((10, 10), 1000.0)
        S[0, :] = 0.0
        k = _gaussian_kernel(3)
        expected = disperse(S, k, stochastic=False)
        runs = np.stack([disperse(S, k, seed=s) for s in range(200)])
        np.testing.assert_allclose(runs.mean(axis=0), expected, atol=15.0)

    def test_zero_kernel_loses_everything(self):
        S = np.full((3, 3), 5.0)
        out = disperse(S, np.zeros((3, 3)), seed=1)
        assert np.all(out == 0.0)
