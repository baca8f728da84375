import logging

import numpy as np
from scipy.spatial.distance import pdist, squareform

from exactTSNE.exceptions import DimensionMismatchError, EmptyDatasetError
from exactTSNE.utils import as_matrix

log = logging.getLogger(__name__)


def squared_euclidean(data):
    """Compute the squared Euclidean distances between all pairs of samples.

    Parameters
    ----------
    data: array_like
        An :math:`N \\times D` data matrix.

    Returns
    -------
    np.ndarray
        A symmetric :math:`N \\times N` distance matrix with a zero diagonal.

    Raises
    ------
    EmptyDatasetError
        If there are no samples or the samples have no features.
    DimensionMismatchError
        If the samples are not all of the same dimensionality.

    """
    data = as_matrix(data, name="data")
    if data.shape[1] == 0:
        raise EmptyDatasetError(
            "The samples in `data` have no features. Where is the data?"
        )

    # `pdist` only computes the upper triangle, `squareform` mirrors it and
    # leaves the diagonal at zero
    return squareform(pdist(data, metric="sqeuclidean"))


def precomputed(distance_matrix):
    """Prepare a user-provided distance matrix for calibration.

    Only the upper triangle of ``distance_matrix`` is used. It is mirrored
    into the lower triangle so the result is guaranteed to be symmetric, and
    the diagonal is set to zero.

    Parameters
    ----------
    distance_matrix: array_like
        An :math:`N \\times N` matrix of distances.

    Returns
    -------
    np.ndarray

    Raises
    ------
    EmptyDatasetError
        If the matrix has no rows.
    DimensionMismatchError
        If the matrix is not square.

    """
    distance_matrix = as_matrix(distance_matrix, name="distance_matrix")
    n_rows, n_cols = distance_matrix.shape
    if n_rows != n_cols:
        raise DimensionMismatchError(
            "The distance matrix must be square, but has shape (%d, %d)."
            % (n_rows, n_cols)
        )

    upper = np.triu(distance_matrix, k=1)
    if not np.allclose(upper, np.tril(distance_matrix, k=-1).T):
        log.debug("Distance matrix is not symmetric. Using the upper triangle.")

    return upper + upper.T
