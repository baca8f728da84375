import logging

import numpy as np

from exactTSNE import distances as distances_
from exactTSNE import utils

log = logging.getLogger(__name__)

# Probabilities at or below this value do not contribute to the entropy
ENTROPY_THRESHOLD = 1e-7
# Floor of the joint probabilities, keeps ln(P) and ln(Q) finite
MIN_PROBABILITY = 1e-100


class Affinities:
    """Compute the affinities between samples.

    t-SNE takes as input an affinity matrix :math:`P`, and does not really care
    about anything else from the data. This means we can use t-SNE for any data
    where we are able to express interactions between samples with an affinity
    matrix.

    Attributes
    ----------
    P: np.ndarray
        The :math:`N \\times N` affinity matrix expressing interactions between
        :math:`N` initial data samples.

    verbose: bool

    """

    def __init__(self, verbose=False):
        self.P = None
        self.verbose = verbose

    @property
    def n_samples(self):
        if self.P is None:
            raise RuntimeError("The affinity matrix `P` has not been computed!")
        return self.P.shape[0]


class PerplexityBased(Affinities):
    """Compute exact affinities from all pairwise distances.

    Every point gets its own Gaussian kernel, the precision of which is found
    with a binary search so that the entropy of the point's neighbor
    distribution matches ``ln(perplexity)``. The conditional distributions are
    then symmetrized into a joint probability matrix.

    Parameters
    ----------
    data: array_like
        Either an :math:`N \\times D` data matrix or, when
        ``metric="precomputed"``, an :math:`N \\times N` distance matrix of
        which only the upper triangle is used.

    perplexity: float
        Perplexity can be thought of as the continuous :math:`k` number of
        nearest neighbors, for which t-SNE will attempt to preserve distances.

    metric: str
        Either ``euclidean``, in which case squared Euclidean distances are
        computed from ``data``, or ``precomputed``.

    tol: float
        The tolerance on the entropy of each row.

    max_tries: int
        The maximum number of binary search steps for each row.

    verbose: bool

    Attributes
    ----------
    betas_: np.ndarray
        The precision of the kernel that produced each row.

    entropies_: np.ndarray
        The entropy of each row of the conditional probability matrix.

    n_tries_: np.ndarray
        The number of binary search steps each row took.

    """

    def __init__(
        self,
        data,
        perplexity=30,
        metric="euclidean",
        tol=1e-4,
        max_tries=50,
        verbose=False,
    ):
        super().__init__(verbose=verbose)

        if metric == "euclidean":
            distances = distances_.squared_euclidean(data)
        elif metric == "precomputed":
            distances = distances_.precomputed(data)
        else:
            raise ValueError(
                "Unrecognized metric `%s`. Please use `euclidean` or "
                "`precomputed`." % metric
            )

        self.perplexity = self.check_perplexity(perplexity, distances.shape[0])
        self.metric = metric
        self.tol = tol
        self.max_tries = max_tries

        with utils.Timer("Calculating affinity matrix...", verbose):
            P, self.betas_, self.entropies_, self.n_tries_ = joint_probabilities(
                distances,
                self.perplexity,
                tol=tol,
                max_tries=max_tries,
                return_diagnostics=True,
            )

        # P must stay fixed for the lifetime of the embedding
        P.flags.writeable = False
        self.P = P

    def check_perplexity(self, perplexity, n_samples):
        if perplexity <= 0:
            raise ValueError("Perplexity must be >0. %.2f given" % perplexity)

        if perplexity >= n_samples:
            log.warning(
                "Perplexity value %.2f is not lower than the number of samples "
                "(%d). The entropy target can not be reached."
                % (perplexity, n_samples)
            )

        return perplexity


def conditional_probabilities(distances, perplexity, tol=1e-4, max_tries=50):
    """Compute the conditional probability matrix :math:`P_{j|i}`.

    The precision of each row is found with a binary search, doubling or
    halving it until the target entropy is bracketed and bisecting afterwards.
    If the search does not converge within ``max_tries`` steps, the last
    distribution is used.

    Parameters
    ----------
    distances: np.ndarray
        A symmetric :math:`N \\times N` matrix of squared distances.

    perplexity: float
        The desired perplexity of each row.

    tol: float
        The tolerance on the entropy of each row.

    max_tries: int
        The maximum number of binary search steps for each row.

    Returns
    -------
    P: np.ndarray
        The row-stochastic conditional probability matrix. Rows whose kernel
        vanished everywhere contain only zeros.

    betas: np.ndarray
        The precision used to compute each row.

    entropies: np.ndarray
        The entropy of each row.

    n_tries: np.ndarray
        The number of binary search steps performed for each row.

    """
    n_samples = distances.shape[0]
    target_entropy = np.log(perplexity)

    P = np.zeros((n_samples, n_samples), dtype=np.float64)
    betas = np.zeros(n_samples, dtype=np.float64)
    entropies = np.zeros(n_samples, dtype=np.float64)
    n_tries = np.zeros(n_samples, dtype=np.int64)

    for i in range(n_samples):
        beta, beta_min, beta_max = 1.0, -np.inf, np.inf

        for tries in range(1, max_tries + 1):
            p = np.exp(-distances[i] * beta)
            p[i] = 0
            p_sum = np.sum(p)
            if p_sum == 0:
                p[:] = 0
            else:
                p /= p_sum

            nonzero = p > ENTROPY_THRESHOLD
            entropy = -np.sum(p[nonzero] * np.log(p[nonzero]))

            P[i], betas[i], entropies[i], n_tries[i] = p, beta, entropy, tries

            if np.abs(entropy - target_entropy) < tol:
                break

            # Distribution too diffuse, make the kernel narrower
            if entropy > target_entropy:
                beta_min = beta
                if beta_max == np.inf:
                    beta *= 2
                else:
                    beta = (beta + beta_max) / 2
            else:
                beta_max = beta
                if beta_min == -np.inf:
                    beta /= 2
                else:
                    beta = (beta + beta_min) / 2

    n_capped = np.sum(n_tries >= max_tries)
    if n_capped:
        log.debug(
            "Binary search did not converge within %d steps for %d of %d rows."
            % (max_tries, n_capped, n_samples)
        )

    return P, betas, entropies, n_tries


def joint_probabilities(
    distances, perplexity, tol=1e-4, max_tries=50, return_diagnostics=False
):
    """Compute the joint probability matrix :math:`P_{ij}`.

    .. math::

        P_{ij} = \\max \\left( \\frac{P_{j|i} + P_{i|j}}{2N}, 10^{-100} \\right)

    Parameters
    ----------
    distances: np.ndarray
        A symmetric :math:`N \\times N` matrix of squared distances.

    perplexity: float

    tol: float

    max_tries: int

    return_diagnostics: bool
        Also return the per-row precisions, entropies and binary search step
        counts of the conditional probabilities.

    Returns
    -------
    np.ndarray
        A symmetric, strictly positive matrix summing to 1.

    """
    conditional_P, betas, entropies, n_tries = conditional_probabilities(
        distances, perplexity, tol=tol, max_tries=max_tries
    )

    n_samples = distances.shape[0]
    P = np.maximum(
        (conditional_P + conditional_P.T) / (2 * n_samples), MIN_PROBABILITY
    )

    if return_diagnostics:
        return P, betas, entropies, n_tries

    return P
