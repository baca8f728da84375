import logging
from collections.abc import Iterable
from time import time

import numpy as np
from scipy.spatial.distance import pdist, squareform
from sklearn.base import BaseEstimator

from exactTSNE import initialization as initialization_scheme
from exactTSNE import utils
from exactTSNE.affinity import Affinities, MIN_PROBABILITY, PerplexityBased
from exactTSNE.initialization import RandomSource

log = logging.getLogger(__name__)


def _check_callbacks(callbacks):
    if callbacks is not None:
        # If list was passed, make sure all of them are actually callable
        if isinstance(callbacks, Iterable):
            if any(not callable(c) for c in callbacks):
                raise ValueError("`callbacks` must contain callable objects!")
        # The gradient descent method deals with lists
        elif callable(callbacks):
            callbacks = (callbacks,)
        else:
            raise ValueError("`callbacks` must be a callable object!")

    return callbacks


class OptimizationInterrupt(InterruptedError):
    """Optimization was interrupted by a callback.

    Parameters
    ----------
    error: float
        The cost of the embedding.

    final_embedding: TSNEEmbedding
        The embedding at the time of the interruption.

    """

    def __init__(self, error, final_embedding):
        super().__init__()
        self.error = error
        self.final_embedding = final_embedding


def kl_divergence_exact(embedding, P, exaggeration=1):
    """Evaluate the t-SNE cost and its gradient w.r.t. the embedding.

    The low-dimensional affinities use a Student t-distribution with one degree
    of freedom. The returned cost is :math:`-\\sum_{ij} P_{ij} \\ln Q_{ij}`,
    i.e. the KL divergence without the constant :math:`\\sum P \\ln P` term.
    ``exaggeration`` scales :math:`P` in the gradient only; the cost is always
    evaluated on the unexaggerated :math:`P`.

    Parameters
    ----------
    embedding: np.ndarray
        The embedding :math:`Y`.

    P: np.ndarray
        Joint probability matrix :math:`P`.

    exaggeration: float
        The factor by which :math:`P` is scaled when computing the gradient.

    Returns
    -------
    float
        The cost of the embedding.
    np.ndarray
        The gradient of the cost w.r.t. every coordinate of the embedding.

    """
    embedding = np.asarray(embedding, dtype=np.float64)

    # Unnormalized Student-t kernel
    q_unnormalized = 1 / (1 + squareform(pdist(embedding, metric="sqeuclidean")))
    np.fill_diagonal(q_unnormalized, 0)
    sum_Q = np.sum(q_unnormalized)

    if sum_Q > 0:
        Q = np.maximum(q_unnormalized / sum_Q, MIN_PROBABILITY)
    else:
        Q = np.full_like(q_unnormalized, MIN_PROBABILITY)

    cost = -np.sum(P * np.log(Q))

    weights = 4 * (exaggeration * P - Q) * q_unnormalized
    gradient = np.sum(weights, axis=1)[:, np.newaxis] * embedding - \
        weights @ embedding

    return cost, gradient


def check_gradient(embedding, P, epsilon=1e-5):
    """Compare the analytic gradient to a central difference approximation.

    Each coordinate is perturbed by ``epsilon`` in both directions. No
    exaggeration is applied, so the two gradients should agree.

    Parameters
    ----------
    embedding: np.ndarray
    P: np.ndarray
    epsilon: float

    Returns
    -------
    analytic: np.ndarray
    numerical: np.ndarray

    """
    embedding = np.array(embedding, dtype=np.float64)
    _, analytic = kl_divergence_exact(embedding, P)

    numerical = np.zeros_like(embedding)
    for i, d in np.ndindex(*embedding.shape):
        original = embedding[i, d]

        embedding[i, d] = original + epsilon
        cost_plus, _ = kl_divergence_exact(embedding, P)
        embedding[i, d] = original - epsilon
        cost_minus, _ = kl_divergence_exact(embedding, P)
        embedding[i, d] = original

        numerical[i, d] = (cost_plus - cost_minus) / (2 * epsilon)
        log.debug(
            "%d,%d: gradcheck analytic: %f vs. numerical: %f"
            % (i, d, analytic[i, d], numerical[i, d])
        )

    return analytic, numerical


class TSNEEmbedding(np.ndarray):
    """A t-SNE embedding.

    The embedding holds the affinity object with the fixed matrix :math:`P` and
    an optimizer, which keeps track of the gains, the momentum and the number
    of iterations run so far.

    Parameters
    ----------
    embedding: np.ndarray
        Initial positions for each data point.

    affinities: Affinities
        The affinity object containing the :math:`P` matrix used during
        optimization.

    optimizer: gradient_descent
        Optionally, an existing optimizer can be used for optimization. This is
        useful for keeping momentum gains between different calls to
        :func:`optimize`.

    **gradient_descent_params: dict
        The default optimization parameters, see :class:`gradient_descent`.

    Attributes
    ----------
    kl_divergence: float
        The cost of the embedding at the last optimization step.

    """

    def __new__(cls, embedding, affinities, optimizer=None, **gradient_descent_params):
        if embedding.shape[0] != affinities.P.shape[0]:
            raise ValueError(
                "The provided initialization contains a different number "
                "of points (%d) than the data provided (%d)."
                % (embedding.shape[0], affinities.P.shape[0])
            )

        obj = np.asarray(embedding, dtype=np.float64, order="C").view(TSNEEmbedding)

        obj.affinities = affinities  # type: Affinities
        obj.gradient_descent_params = gradient_descent_params  # type: dict

        if optimizer is None:
            optimizer = gradient_descent()
        elif not isinstance(optimizer, gradient_descent):
            raise TypeError(
                "`optimizer` must be an instance of `%s`, but got `%s`."
                % (gradient_descent.__name__, type(optimizer))
            )
        obj.optimizer = optimizer

        obj.kl_divergence = None

        return obj

    @property
    def n_iter_(self):
        return self.optimizer.iteration

    def step(self):
        """Perform a single optimization step in place.

        Returns
        -------
        float
            The cost of the embedding before the update was applied.

        """
        step_params = dict(self.gradient_descent_params)
        for param in ("callbacks", "callbacks_every_iters", "verbose"):
            step_params.pop(param, None)

        self.kl_divergence = self.optimizer.step(self, self.affinities.P, **step_params)
        return self.kl_divergence

    def optimize(
        self,
        n_iter,
        inplace=False,
        propagate_exception=False,
        **gradient_descent_params,
    ):
        """Run optimization on the embedding for a given number of steps.

        Parameters
        ----------
        n_iter: int
            The number of optimization iterations.

        inplace: bool
            Whether or not to create a copy of the embedding or to perform
            updates inplace.

        propagate_exception: bool
            The optimization process can be interrupted using callbacks. This
            flag indicates whether we should propagate that exception or to
            simply stop optimization and return the resulting embedding.

        **gradient_descent_params: dict
            Overrides of the optimization parameters, see
            :class:`gradient_descent`.

        Returns
        -------
        TSNEEmbedding
            An optimized t-SNE embedding.

        Raises
        ------
        OptimizationInterrupt
            If a callback stops the optimization and the ``propagate_exception``
            flag is set, then an exception is raised.

        """
        # Typically we want to return a new embedding and keep the old one intact
        if inplace:
            embedding = self
        else:
            embedding = TSNEEmbedding(
                np.copy(self),
                self.affinities,
                optimizer=self.optimizer.copy(),
                **self.gradient_descent_params,
            )

        # If optimization parameters were passed to this function, prefer those
        # over the defaults specified in the TSNE object
        optim_params = dict(self.gradient_descent_params)
        optim_params.update(gradient_descent_params)
        optim_params["n_iter"] = n_iter
        optim_params["callbacks"] = _check_callbacks(optim_params.get("callbacks"))

        try:
            error, embedding = embedding.optimizer(
                embedding=embedding, P=self.affinities.P, **optim_params
            )

        except OptimizationInterrupt as ex:
            log.info("Optimization was interrupted with callback.")
            if propagate_exception:
                raise ex
            error, embedding = ex.error, ex.final_embedding

        embedding.kl_divergence = error

        return embedding


class gradient_descent:
    """Batch gradient descent with momentum and adaptive gains.

    The optimizer owns the per-coordinate gains, the momentum accumulator and
    the iteration counter. The counter drives two schedules: :math:`P` is
    exaggerated in the gradient while it is below ``early_exaggeration_iter``
    and the momentum switches from ``initial_momentum`` to ``final_momentum``
    once it reaches ``momentum_switch_iter``.

    """

    def __init__(self):
        self.gains = None
        self.update = None
        self.iteration = 0

    def copy(self):
        optimizer = self.__class__()
        if self.gains is not None:
            optimizer.gains = np.copy(self.gains)
        if self.update is not None:
            optimizer.update = np.copy(self.update)
        optimizer.iteration = self.iteration
        return optimizer

    def reset(self):
        self.gains = None
        self.update = None
        self.iteration = 0

    def step(
        self,
        embedding,
        P,
        learning_rate=10,
        early_exaggeration=4,
        early_exaggeration_iter=100,
        initial_momentum=0.5,
        final_momentum=0.8,
        momentum_switch_iter=250,
        min_gain=0.01,
        objective_function=kl_divergence_exact,
    ):
        """Perform a single gradient descent step, updating ``embedding`` in place.

        Parameters
        ----------
        embedding: np.ndarray
            The embedding :math:`Y`.

        P: np.ndarray
            Joint probability matrix :math:`P`.

        learning_rate: float
            The learning rate for t-SNE optimization.

        early_exaggeration: float
            The factor by which :math:`P` is scaled in the gradient during the
            *early exaggeration* phase.

        early_exaggeration_iter: int
            The iteration at which the *early exaggeration* phase ends.

        initial_momentum: float
            The momentum to use before ``momentum_switch_iter``.

        final_momentum: float
            The momentum to use from ``momentum_switch_iter`` on.

        momentum_switch_iter: int
            The iteration at which the momentum is increased.

        min_gain: float
            Minimum individual gain for each parameter.

        objective_function: Callable[..., Tuple[float, np.ndarray]]
            A callable that evaluates the error and gradient for the current
            embedding.

        Returns
        -------
        float
            The cost of the embedding before the update.

        """
        if self.gains is None:
            self.gains = np.ones(embedding.shape, dtype=np.float64)
        if self.update is None:
            self.update = np.zeros(embedding.shape, dtype=np.float64)

        self.iteration += 1

        # Lie about the P values for bigger attraction forces
        if self.iteration < early_exaggeration_iter:
            exaggeration = early_exaggeration
        else:
            exaggeration = 1

        error, gradient = objective_function(embedding, P, exaggeration=exaggeration)

        # Shrink gains while the gradient keeps the direction of the last step
        grad_direction_same = np.sign(gradient) == np.sign(self.update)
        self.gains[grad_direction_same] *= 0.8
        self.gains[~grad_direction_same] += 0.2
        np.clip(self.gains, min_gain, None, out=self.gains)

        if self.iteration < momentum_switch_iter:
            momentum = initial_momentum
        else:
            momentum = final_momentum

        self.update = momentum * self.update - learning_rate * self.gains * gradient
        embedding += self.update

        # The cost is invariant to translation, so keep the embedding centered
        embedding -= np.mean(embedding, axis=0)

        return error

    def __call__(
        self,
        embedding,
        P,
        n_iter,
        callbacks=None,
        callbacks_every_iters=50,
        verbose=False,
        **step_params,
    ):
        """Run ``n_iter`` steps of gradient descent.

        Parameters
        ----------
        embedding: np.ndarray
            The embedding :math:`Y`.

        P: np.ndarray
            Joint probability matrix :math:`P`.

        n_iter: int
            The number of iterations to run for.

        callbacks: Iterable[Callable[[int, float, np.ndarray] -> bool]]
            Callbacks, which will be run every ``callbacks_every_iters``
            iterations.

        callbacks_every_iters: int
            How many iterations should pass between each time the callbacks are
            invoked.

        verbose: bool

        **step_params: dict
            Parameters passed on to :meth:`step`.

        Returns
        -------
        float
            The cost at the last iteration.
        np.ndarray
            The optimized embedding Y.

        Raises
        ------
        OptimizationInterrupt
            If the provided callback interrupts the optimization, this is raised.

        """
        assert isinstance(embedding, np.ndarray), (
            "`embedding` must be an instance of `np.ndarray`. Got `%s` instead"
            % type(embedding)
        )

        # Notify the callbacks that the optimization is about to start
        if isinstance(callbacks, Iterable):
            for callback in callbacks:
                # Only call function if present on object
                getattr(callback, "optimization_about_to_start", lambda: ...)()

        timer = utils.Timer(
            "Running optimization with lr=%.2f for %d iterations..." % (
                step_params.get("learning_rate", 10), n_iter
            ),
            verbose=verbose,
        )

        error = None
        with timer:
            start_time = time()

            for iteration in range(n_iter):
                error = self.step(embedding, P, **step_params)

                if callbacks is not None and (iteration + 1) % callbacks_every_iters == 0:
                    # Continue only if all the callbacks say so
                    should_stop = any(
                        (bool(c(self.iteration, error, embedding)) for c in callbacks)
                    )
                    if should_stop:
                        raise OptimizationInterrupt(error=error, final_embedding=embedding)

                if verbose and (iteration + 1) % 50 == 0:
                    stop_time = time()
                    print("Iteration %4d, cost %6.4f, 50 iterations in %.4f sec" % (
                        self.iteration, error, stop_time - start_time))
                    start_time = time()

        return error, embedding


class TSNE(BaseEstimator):
    """Exact t-Distributed Stochastic Neighbor Embedding.

    The object is used in one of two ways. Either call :meth:`fit` to run a
    fixed number of iterations, or load the data with
    :meth:`load_raw_points` or :meth:`load_distance_matrix` and call
    :meth:`step` for as long as needed, reading the current positions with
    :meth:`get_embedding`.

    Parameters
    ----------
    n_components: int
        The dimension of the embedding space. This defaults to 2 for easy
        visualization.

    perplexity: float
        Perplexity can be thought of as the continuous :math:`k` number of
        nearest neighbors, for which t-SNE will attempt to preserve distances.

    learning_rate: float
        The learning rate for t-SNE optimization.

    n_iter: int
        The number of iterations :meth:`fit` runs for.

    early_exaggeration: float
        The exaggeration factor applied to the gradient during the *early
        exaggeration* phase.

    early_exaggeration_iter: int
        The iteration at which the *early exaggeration* phase ends.

    initial_momentum: float
        The momentum to use before ``momentum_switch_iter``.

    final_momentum: float
        The momentum to use from ``momentum_switch_iter`` on.

    momentum_switch_iter: int
        The iteration at which the momentum is increased.

    min_gain: float
        Minimum individual gain for each parameter.

    tol: float
        The tolerance on the entropy of each point's neighbor distribution.

    max_tries: int
        The maximum number of binary search steps when calibrating each point.

    metric: str
        The type of input :meth:`fit` expects, either ``euclidean`` for a data
        matrix or ``precomputed`` for a distance matrix.

    callbacks: Union[Callable, List[Callable]]
        Callbacks, which will be run every ``callbacks_every_iters`` iterations
        of :meth:`optimize` and :meth:`fit`.

    callbacks_every_iters: int
        How many iterations should pass between each time the callbacks are
        invoked.

    random_state: Union[int, RandomState, RandomSource]
        The source of the initial point positions. If the value is an int,
        random_state is the seed used by the random number generator. If the
        value is a RandomState instance, then it will be used as the random
        number generator. If the value is None, the random number generator is
        the RandomState instance used by `np.random`.

    verbose: bool

    Attributes
    ----------
    affinities_: PerplexityBased
        The affinities of the loaded data.

    embedding_: TSNEEmbedding
        The current embedding.

    """

    def __init__(
        self,
        n_components=2,
        perplexity=30,
        learning_rate=10,
        n_iter=1000,
        early_exaggeration=4,
        early_exaggeration_iter=100,
        initial_momentum=0.5,
        final_momentum=0.8,
        momentum_switch_iter=250,
        min_gain=0.01,
        tol=1e-4,
        max_tries=50,
        metric="euclidean",
        callbacks=None,
        callbacks_every_iters=50,
        random_state=None,
        verbose=False,
    ):
        self.n_components = n_components
        self.perplexity = perplexity
        self.learning_rate = learning_rate
        self.n_iter = n_iter
        self.early_exaggeration = early_exaggeration
        self.early_exaggeration_iter = early_exaggeration_iter
        self.initial_momentum = initial_momentum
        self.final_momentum = final_momentum
        self.momentum_switch_iter = momentum_switch_iter
        self.min_gain = min_gain
        self.tol = tol
        self.max_tries = max_tries
        self.metric = metric
        self.callbacks = callbacks
        self.callbacks_every_iters = callbacks_every_iters
        self.random_state = random_state
        self.verbose = verbose

    def _check_loaded(self):
        if getattr(self, "affinities_", None) is None:
            raise RuntimeError(
                "No data has been loaded. Call `load_raw_points` or "
                "`load_distance_matrix` first."
            )

    def _load(self, data, metric):
        affinities = PerplexityBased(
            data,
            perplexity=self.perplexity,
            metric=metric,
            tol=self.tol,
            max_tries=self.max_tries,
            verbose=self.verbose,
        )

        # Every load starts from `random_state`, while `reset_solution`
        # continues drawing from the same source
        if isinstance(self.random_state, RandomSource):
            random_source = self.random_state
        else:
            random_source = RandomSource(self.random_state)

        embedding = self.prepare_initial(affinities, random_source)

        # Only replace the current state once everything has been computed
        self.affinities_ = affinities
        self.random_source_ = random_source
        self.embedding_ = embedding
        return self

    def load_raw_points(self, X):
        """Compute the affinities of a data set and initialize the embedding.

        Parameters
        ----------
        X: array_like
            An :math:`N \\times D` data matrix.

        Returns
        -------
        TSNE

        Raises
        ------
        EmptyDatasetError
            If there are no samples or the samples have no features.

        """
        return self._load(X, "euclidean")

    def load_distance_matrix(self, D):
        """Compute the affinities from distances and initialize the embedding.

        Parameters
        ----------
        D: array_like
            An :math:`N \\times N` matrix of distances. Only the upper triangle
            is used.

        Returns
        -------
        TSNE

        Raises
        ------
        EmptyDatasetError
            If the matrix has no rows.
        DimensionMismatchError
            If the matrix is not square.

        """
        return self._load(D, "precomputed")

    def reset_solution(self):
        """Start the optimization over from a random embedding.

        The gains, the momentum and the iteration counter are reset, while the
        affinities are kept.

        """
        self._check_loaded()
        self.embedding_ = self.prepare_initial(self.affinities_, self.random_source_)
        return self

    def prepare_initial(self, affinities, random_source):
        """Create a new embedding with random initial positions.

        Parameters
        ----------
        affinities: Affinities
            The affinities the embedding is optimized against.

        random_source: RandomSource
            The source of the initial positions.

        Returns
        -------
        TSNEEmbedding

        """
        embedding = initialization_scheme.random(
            affinities.n_samples,
            self.n_components,
            random_state=random_source,
            verbose=self.verbose,
        )

        gradient_descent_params = {
            "learning_rate": self.learning_rate,
            "early_exaggeration": self.early_exaggeration,
            "early_exaggeration_iter": self.early_exaggeration_iter,
            "initial_momentum": self.initial_momentum,
            "final_momentum": self.final_momentum,
            "momentum_switch_iter": self.momentum_switch_iter,
            "min_gain": self.min_gain,
            "verbose": self.verbose,
            # Callback params
            "callbacks": self.callbacks,
            "callbacks_every_iters": self.callbacks_every_iters,
        }

        return TSNEEmbedding(embedding, affinities, **gradient_descent_params)

    def step(self):
        """Perform a single optimization step.

        Returns
        -------
        float
            The current cost.

        """
        self._check_loaded()
        return self.embedding_.step()

    def optimize(self, n_iter, propagate_exception=False, **gradient_descent_params):
        """Run a given number of optimization steps on the current embedding.

        Parameters
        ----------
        n_iter: int

        propagate_exception: bool
            Whether to raise :class:`OptimizationInterrupt` when a callback
            stops the optimization.

        **gradient_descent_params: dict
            Overrides of the optimization parameters.

        Returns
        -------
        float
            The cost at the last step.

        """
        self._check_loaded()
        self.embedding_ = self.embedding_.optimize(
            n_iter,
            inplace=True,
            propagate_exception=propagate_exception,
            **gradient_descent_params,
        )
        return self.embedding_.kl_divergence

    def get_embedding(self):
        """Return a copy of the current embedding.

        Returns
        -------
        np.ndarray
            An :math:`N \\times` ``n_components`` matrix.

        """
        self._check_loaded()
        return np.array(self.embedding_, dtype=np.float64)

    def check_gradient(self, epsilon=1e-5):
        """Check the analytic gradient at the current embedding.

        Returns
        -------
        analytic: np.ndarray
        numerical: np.ndarray

        """
        self._check_loaded()
        return check_gradient(self.embedding_, self.affinities_.P, epsilon=epsilon)

    def fit(self, X):
        """Fit a t-SNE embedding for a given data set.

        Parameters
        ----------
        X: array_like
            The data matrix or, if ``metric="precomputed"``, the distance
            matrix to be embedded.

        Returns
        -------
        TSNEEmbedding
            The embedding after ``n_iter`` optimization steps.

        """
        if self.verbose:
            print("-" * 80, repr(self), "-" * 80, sep="\n")

        self._load(X, self.metric)
        self.optimize(self.n_iter)

        return self.embedding_
