import logging
import unittest

import numpy as np
from scipy.spatial.distance import pdist, squareform

from exactTSNE import affinity
from exactTSNE.affinity import PerplexityBased
from exactTSNE.exceptions import DimensionMismatchError, EmptyDatasetError

affinity.log.setLevel(logging.ERROR)


class TestPerplexityBased(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.x = np.random.RandomState(42).normal(100, 50, (91, 4))
        cls.affinities = PerplexityBased(cls.x, perplexity=10)

    def test_P_is_symmetric(self):
        P = self.affinities.P
        np.testing.assert_array_equal(P, P.T)

    def test_P_sums_to_one(self):
        self.assertAlmostEqual(np.sum(self.affinities.P), 1, delta=1e-6)

    def test_P_has_floor(self):
        self.assertTrue(np.all(self.affinities.P >= 1e-100))

    def test_P_is_read_only(self):
        with self.assertRaises(ValueError):
            self.affinities.P[0, 1] = 1

    def test_row_entropies_match_perplexity(self):
        converged = self.affinities.n_tries_ < self.affinities.max_tries
        self.assertTrue(np.any(converged))
        np.testing.assert_allclose(
            self.affinities.entropies_[converged],
            np.log(self.affinities.perplexity),
            atol=self.affinities.tol,
        )

    def test_row_precisions_reproduce_entropies(self):
        d = squareform(pdist(self.x, metric="sqeuclidean"))
        for i in range(0, 91, 10):
            p = np.exp(-d[i] * self.affinities.betas_[i])
            p[i] = 0
            p /= np.sum(p)
            nonzero = p > 1e-7
            entropy = -np.sum(p[nonzero] * np.log(p[nonzero]))
            self.assertAlmostEqual(entropy, self.affinities.entropies_[i], places=10)

    def test_repeated_computation_is_identical(self):
        affinities = PerplexityBased(self.x, perplexity=10)
        np.testing.assert_array_equal(affinities.P, self.affinities.P)

    def test_precomputed_distances_match_raw_points(self):
        d = squareform(pdist(self.x, metric="sqeuclidean"))
        affinities = PerplexityBased(d, perplexity=10, metric="precomputed")
        np.testing.assert_allclose(affinities.P, self.affinities.P, rtol=1e-8, atol=0)

    def test_precomputed_distances_use_upper_triangle(self):
        d = squareform(pdist(self.x, metric="sqeuclidean"))
        corrupted = np.triu(d) + np.tril(np.full_like(d, 7.0), k=-1)
        affinities = PerplexityBased(corrupted, perplexity=10, metric="precomputed")
        np.testing.assert_array_equal(
            affinities.P, PerplexityBased(d, perplexity=10, metric="precomputed").P
        )

    def test_n_samples(self):
        self.assertEqual(self.affinities.n_samples, 91)

    def test_invalid_perplexity(self):
        with self.assertRaises(ValueError):
            PerplexityBased(self.x, perplexity=0)
        with self.assertRaises(ValueError):
            PerplexityBased(self.x, perplexity=-5)

    def test_too_large_perplexity_warns(self):
        with self.assertLogs(affinity.log, level="WARNING"):
            affinities = PerplexityBased(self.x[:10], perplexity=30)
        # The value is kept as-is
        self.assertEqual(affinities.perplexity, 30)

    def test_invalid_metric(self):
        with self.assertRaises(ValueError):
            PerplexityBased(self.x, metric="cosine")

    def test_empty_data(self):
        with self.assertRaises(EmptyDatasetError):
            PerplexityBased(np.zeros((0, 4)))
        with self.assertRaises(EmptyDatasetError):
            PerplexityBased([], metric="precomputed")

    def test_non_square_distance_matrix(self):
        with self.assertRaises(DimensionMismatchError):
            PerplexityBased(np.zeros((5, 4)), metric="precomputed")


class TestDegenerateData(unittest.TestCase):
    def test_single_point(self):
        affinities = PerplexityBased([[1.0, 2.0]], perplexity=30)
        np.testing.assert_array_equal(affinities.P, [[1e-100]])

    def test_identical_points(self):
        affinities = PerplexityBased(np.ones((4, 3)), perplexity=2)
        P = affinities.P

        # Each point spreads its mass evenly among the other three, which
        # can never reach the target entropy of ln(2)
        expected = np.full((4, 4), (1 / 3 + 1 / 3) / 8)
        np.fill_diagonal(expected, 1e-100)
        np.testing.assert_allclose(P, expected, rtol=1e-12)
        np.testing.assert_array_equal(affinities.n_tries_, affinities.max_tries)
        self.assertTrue(np.all(np.isfinite(P)))
        self.assertAlmostEqual(np.sum(P), 1, delta=1e-12)


class TestConditionalProbabilities(unittest.TestCase):
    def test_vanishing_kernel_gives_zero_row(self):
        d = np.array([[0, 1e6], [1e6, 0]], dtype=np.float64)
        P, betas, entropies, n_tries = affinity.conditional_probabilities(
            d, perplexity=2, max_tries=1
        )
        np.testing.assert_array_equal(P, 0)
        np.testing.assert_array_equal(entropies, 0)
        np.testing.assert_array_equal(betas, 1)
        np.testing.assert_array_equal(n_tries, 1)

    def test_rows_are_normalized(self):
        x = np.random.RandomState(0).normal(size=(30, 5))
        d = squareform(pdist(x, metric="sqeuclidean"))
        P, *_ = affinity.conditional_probabilities(d, perplexity=5)
        np.testing.assert_allclose(np.sum(P, axis=1), 1)
        np.testing.assert_array_equal(np.diag(P), 0)

    def test_precision_grows_for_diffuse_rows(self):
        # At beta=1 the neighbors of each point are almost equally likely, so
        # the kernel has to become narrower to reach a perplexity of 2
        x = np.random.RandomState(0).normal(scale=0.01, size=(20, 3))
        d = squareform(pdist(x, metric="sqeuclidean"))
        _, betas, entropies, n_tries = affinity.conditional_probabilities(
            d, perplexity=2
        )
        self.assertTrue(np.all(betas > 1))
        converged = n_tries < 50
        np.testing.assert_allclose(entropies[converged], np.log(2), atol=1e-4)

    def test_joint_probabilities_diagnostics(self):
        x = np.random.RandomState(0).normal(size=(12, 2))
        d = squareform(pdist(x, metric="sqeuclidean"))
        P = affinity.joint_probabilities(d, perplexity=3)
        P2, betas, entropies, n_tries = affinity.joint_probabilities(
            d, perplexity=3, return_diagnostics=True
        )
        np.testing.assert_array_equal(P, P2)
        self.assertEqual(betas.shape, (12,))
        self.assertEqual(entropies.shape, (12,))
        self.assertEqual(n_tries.shape, (12,))
