import unittest

import numpy as np

from exactTSNE import distances
from exactTSNE.exceptions import DimensionMismatchError, EmptyDatasetError


class TestSquaredEuclidean(unittest.TestCase):
    def test_matches_direct_computation(self):
        x = np.random.RandomState(0).normal(size=(15, 4))
        d = distances.squared_euclidean(x)

        expected = np.zeros((15, 15))
        for i in range(15):
            for j in range(15):
                expected[i, j] = np.sum((x[i] - x[j]) ** 2)

        np.testing.assert_allclose(d, expected, atol=1e-12)

    def test_symmetric_with_zero_diagonal(self):
        x = np.random.RandomState(1).normal(size=(10, 3))
        d = distances.squared_euclidean(x)
        np.testing.assert_array_equal(d, d.T)
        np.testing.assert_array_equal(np.diag(d), 0)

    def test_accepts_lists(self):
        d = distances.squared_euclidean([[0, 0], [3, 4]])
        np.testing.assert_array_equal(d, [[0, 25], [25, 0]])

    def test_single_point(self):
        d = distances.squared_euclidean([[1.0, 2.0, 3.0]])
        np.testing.assert_array_equal(d, [[0]])

    def test_no_samples(self):
        with self.assertRaises(EmptyDatasetError):
            distances.squared_euclidean([])
        with self.assertRaises(EmptyDatasetError):
            distances.squared_euclidean(np.zeros((0, 3)))

    def test_no_features(self):
        with self.assertRaises(EmptyDatasetError):
            distances.squared_euclidean([[], []])
        with self.assertRaises(EmptyDatasetError):
            distances.squared_euclidean(np.zeros((4, 0)))

    def test_ragged_rows(self):
        with self.assertRaises(DimensionMismatchError):
            distances.squared_euclidean([[1, 2], [1, 2, 3]])

    def test_empty_dataset_error_is_value_error(self):
        with self.assertRaises(ValueError):
            distances.squared_euclidean([])


class TestPrecomputed(unittest.TestCase):
    def test_mirrors_upper_triangle(self):
        d = np.array([
            [5, 1, 2],
            [-1, 5, 3],
            [-1, -1, 5],
        ], dtype=np.float64)
        expected = np.array([
            [0, 1, 2],
            [1, 0, 3],
            [2, 3, 0],
        ], dtype=np.float64)
        np.testing.assert_array_equal(distances.precomputed(d), expected)

    def test_symmetric_input_is_unchanged(self):
        x = np.random.RandomState(0).normal(size=(8, 2))
        d = distances.squared_euclidean(x)
        np.testing.assert_array_equal(distances.precomputed(d), d)

    def test_does_not_modify_input(self):
        d = np.array([[1, 2], [3, 4]], dtype=np.float64)
        distances.precomputed(d)
        np.testing.assert_array_equal(d, [[1, 2], [3, 4]])

    def test_not_square(self):
        with self.assertRaises(DimensionMismatchError):
            distances.precomputed(np.zeros((3, 4)))

    def test_ragged_rows(self):
        with self.assertRaises(DimensionMismatchError):
            distances.precomputed([[0, 1, 2], [1, 0], [2, 1, 0]])

    def test_not_a_matrix(self):
        with self.assertRaises(DimensionMismatchError):
            distances.precomputed([1, 2, 3])

    def test_no_rows(self):
        with self.assertRaises(EmptyDatasetError):
            distances.precomputed([])
