import numpy as np
from sklearn.utils import check_random_state


class RandomSource:
    """Generate normally distributed samples with the polar method.

    Every accepted pair of uniform samples yields two independent normal
    deviates. The first is returned immediately and the second is cached and
    returned on the following call, so only every other call needs to sample.

    Parameters
    ----------
    random_state: Union[int, RandomState]
        If the value is an int, random_state is the seed used by the random
        number generator. If the value is a RandomState instance, then it will
        be used as the random number generator. If the value is None, the random
        number generator is the RandomState instance used by `np.random`.

    """

    max_rejections = 1000

    def __init__(self, random_state=None):
        self.random_state = check_random_state(random_state)
        self._has_cached = False
        self._cached = 0.0

    def standard_normal(self):
        """Draw a single sample from :math:`\\mathcal{N}(0, 1)`."""
        if self._has_cached:
            self._has_cached = False
            return self._cached

        for _ in range(self.max_rejections):
            u = 2 * self.random_state.random_sample() - 1
            v = 2 * self.random_state.random_sample() - 1
            r = u * u + v * v
            if 0 < r <= 1:
                break
        else:
            raise RuntimeError(
                "Polar method rejected %d consecutive samples. Is the random "
                "number generator broken?" % self.max_rejections
            )

        c = np.sqrt(-2 * np.log(r) / r)
        self._cached = v * c
        self._has_cached = True
        return u * c

    def normal(self, mean=0.0, std=1.0, size=None):
        """Draw samples from :math:`\\mathcal{N}(mean, std^2)`.

        Parameters
        ----------
        mean: float
        std: float
        size: Optional[Union[int, Tuple[int, ...]]]
            If given, return an array of this shape, filled in C order.

        Returns
        -------
        Union[float, np.ndarray]

        """
        if size is None:
            return mean + self.standard_normal() * std

        samples = np.empty(size, dtype=np.float64)
        flat = samples.reshape(-1)
        for idx in range(flat.shape[0]):
            flat[idx] = mean + self.standard_normal() * std
        return samples


def random(n_samples, n_components=2, random_state=None, verbose=False):
    """Initialize an embedding using samples from an isotropic Gaussian.

    Parameters
    ----------
    n_samples: Union[int, np.ndarray]
        The number of samples. Also accepts a data matrix.

    n_components: int
        The dimension of the embedding space.

    random_state: Union[int, RandomState, RandomSource]
        Either a :class:`RandomSource` or anything accepted by its
        constructor.

    verbose: bool

    Returns
    -------
    initialization: np.ndarray

    """
    if not isinstance(random_state, RandomSource):
        random_state = RandomSource(random_state)
    if isinstance(n_samples, np.ndarray):
        n_samples = n_samples.shape[0]
    embedding = random_state.normal(0, 1e-4, (n_samples, n_components))
    return np.ascontiguousarray(embedding)
