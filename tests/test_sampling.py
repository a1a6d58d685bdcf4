"""Tests for rangesim.sampling — binomial sampler and sequential multinomial."""

import numpy as np
import pytest

from rangesim.rng import make_rng
from rangesim.sampling import binomial_sample, sequential_multinomial


# ═══════════════════════════════════════════════════════════════════════
# BINOMIAL SAMPLER
# ═══════════════════════════════════════════════════════════════════════

class TestBinomialSample:
    def test_zero_trials(self):
        n = np.zeros((4, 5), dtype=np.int64)
        p = np.full((4, 5), 0.7)
        y = binomial_sample(n, p, make_rng(1))
        assert np.all(y == 0)

    def test_zero_probability(self):
        n = np.full((4, 5), 50)
        y = binomial_sample(n, np.zeros((4, 5)), make_rng(1))
        assert np.all(y == 0)

    def test_certain_success(self):
        n = np.arange(20).reshape(4, 5)
        y = binomial_sample(n, np.ones((4, 5)), make_rng(1))
        np.testing.assert_array_equal(y, n)

    def test_shape_and_dtype(self):
        y = binomial_sample(np.full((3, 7), 10), np.full((3, 7), 0.5), make_rng(1))
        assert y.shape == (3, 7)
        assert y.dtype == np.int64

    def test_bounded_by_trials(self):
        n = make_rng(0).integers(0, 100, size=(30, 30))
        p = make_rng(1).random((30, 30))
        y = binomial_sample(n, p, make_rng(2))
        assert np.all(y >= 0)
        assert np.all(y <= n)

    def test_mean(self):
        y = binomial_sample(np.full((100, 100), 1000), np.full((100, 100), 0.3),
                            make_rng(42))
        assert abs(y.mean() - 300.0) < 1.0

    def test_reproducible(self):
        n = np.full((10, 10), 25)
        p = np.full((10, 10), 0.4)
        y1 = binomial_sample(n, p, make_rng(7))
        y2 = binomial_sample(n, p, make_rng(7))
        np.testing.assert_array_equal(y1, y2)

    def test_probability_above_one_raises(self):
        with pytest.raises(ValueError):
            binomial_sample(np.full((2, 2), 5), np.full((2, 2), 1.5), make_rng(1))

    def test_nan_probability_raises(self):
        p = np.full((2, 2), 0.5)
        p[0, 1] = np.nan
        with pytest.raises(ValueError):
            binomial_sample(np.full((2, 2), 5), p, make_rng(1))


# ═══════════════════════════════════════════════════════════════════════
# SEQUENTIAL MULTINOMIAL
# ═══════════════════════════════════════════════════════════════════════

class TestSequentialMultinomial:
    def test_never_exceeds_trials(self):
        """Σ y_i ≤ n for arbitrary probability vectors with Σ p ≤ 1."""
        gen = make_rng(3)
        n = gen.integers(0, 200, size=(25, 25))
        probs = gen.dirichlet(np.ones(4), size=(25, 25)) * gen.random((25, 25, 1))
        residual = 1.0 - probs.sum(axis=2)
        y = sequential_multinomial(n, probs, make_rng(4), residual=residual)
        assert y.shape == (25, 25, 4)
        assert np.all(y >= 0)
        assert np.all(y.sum(axis=2) <= n)

    def test_zero_residual_allocates_everything(self):
        n = np.full((10, 10), 37)
        probs = np.broadcast_to([0.5, 0.3, 0.2], (10, 10, 3))
        y = sequential_multinomial(n, probs, make_rng(1))
        np.testing.assert_array_equal(y.sum(axis=2), n)

    def test_unnormalised_weights(self):
        """With no residual, weights are normalised internally."""
        n = np.full((10, 10), 40)
        y = sequential_multinomial(n, np.array([2.0, 6.0, 2.0]), make_rng(1))
        np.testing.assert_array_equal(y.sum(axis=2), n)

    def test_expected_allocation(self):
        """E[y_i] ≈ n · p_i."""
        n = np.full((100, 100), 1000)
        probs = np.broadcast_to([0.2, 0.3, 0.1], (100, 100, 3))
        y = sequential_multinomial(n, probs, make_rng(11), residual=0.4)
        means = y.mean(axis=(0, 1))
        np.testing.assert_allclose(means, [200.0, 300.0, 100.0], atol=1.0)

    def test_expectation_independent_of_order(self):
        n = np.full((100, 100), 1000)
        probs = np.broadcast_to([0.1, 0.3, 0.2], (100, 100, 3))
        y = sequential_multinomial(n, probs, make_rng(12), residual=0.4)
        np.testing.assert_allclose(y.mean(axis=(0, 1)), [100.0, 300.0, 200.0], atol=1.0)

    def test_shared_category_vector(self):
        """A (k,) probability vector applies to every cell."""
        n = np.full((6, 8), 100)
        y = sequential_multinomial(n, np.array([0.25, 0.25]), make_rng(1), residual=0.5)
        assert y.shape == (6, 8, 2)
        assert np.all(y.sum(axis=2) <= 100)

    def test_zero_remaining_mass(self):
        """No probability mass left → no allocation, not an error."""
        n = np.full((3, 3), 10)
        y = sequential_multinomial(n, np.zeros((3, 3, 2)), make_rng(1))
        assert np.all(y == 0)

    def test_certain_first_category(self):
        n = np.full((4, 4), 9)
        y = sequential_multinomial(n, np.array([1.0, 0.0, 0.0]), make_rng(1))
        np.testing.assert_array_equal(y[:, :, 0], n)
        assert np.all(y[:, :, 1:] == 0)

    def test_full_mortality(self):
        n = np.full((4, 4), 9)
        y = sequential_multinomial(n, np.zeros((4, 4, 2)), make_rng(1), residual=1.0)
        assert np.all(y == 0)

    def test_float_counts_truncated(self):
        y = sequential_multinomial(np.array([[3.9]]), np.array([1.0]), make_rng(1))
        assert y[0, 0, 0] == 3

    def test_reproducible(self):
        n = np.full((10, 10), 50)
        probs = np.broadcast_to([0.3, 0.3], (10, 10, 2))
        y1 = sequential_multinomial(n, probs, make_rng(5), residual=0.4)
        y2 = sequential_multinomial(n, probs, make_rng(5), residual=0.4)
        np.testing.assert_array_equal(y1, y2)

    def test_nan_probability_raises(self):
        probs = np.full((2, 2, 2), 0.25)
        probs[1, 1, 0] = np.nan
        with pytest.raises(ValueError):
            sequential_multinomial(np.full((2, 2), 10), probs, make_rng(1), residual=0.5)
