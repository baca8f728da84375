import logging
import time

import numpy as np

log = logging.getLogger(__name__)


class Callback:
    def optimization_about_to_start(self):
        """This is called at the beginning of the optimization procedure."""

    def __call__(self, iteration, error, embedding):
        """This is the main method called from the optimization.

        Parameters
        ----------
        iteration: int
            The current iteration number.

        error: float
            The current cost of the given embedding.

        embedding: TSNEEmbedding
            The current t-SNE embedding.

        Returns
        -------
        stop_optimization: bool
            If this value is set to ``True``, the optimization will be
            interrupted.

        """


class ErrorLogger(Callback):
    """Basic error logger.

    This logger prints out basic information about the optimization. These
    include the iteration number, error and how much time has elapsed from the
    previous callback invocation.

    """

    def __init__(self):
        self.iter_count = 0
        self.last_log_time = None

    def optimization_about_to_start(self):
        self.last_log_time = time.time()
        self.iter_count = 0

    def __call__(self, iteration, error, embedding):
        now = time.time()
        duration = now - self.last_log_time
        self.last_log_time = now

        n_iters = iteration - self.iter_count
        self.iter_count = iteration

        print("Iteration % 4d, cost % 6.4f, %d iterations in %.4f sec" % (
            iteration, error, n_iters, duration))


class ConvergenceCheck(Callback):
    """Stop the optimization once the cost stops improving.

    Parameters
    ----------
    min_improvement: float
        The smallest relative decrease of the cost between two invocations
        that is still considered progress.

    patience: int
        The number of consecutive invocations without progress after which
        the optimization is stopped.

    """

    def __init__(self, min_improvement=1e-4, patience=1):
        self.min_improvement = min_improvement
        self.patience = patience
        self.errors = []
        self.n_stalled = 0

    def optimization_about_to_start(self):
        self.errors = []
        self.n_stalled = 0

    def __call__(self, iteration, error, embedding):
        if self.errors:
            previous = self.errors[-1]
            improvement = (previous - error) / max(abs(previous), np.finfo(float).eps)
            if improvement < self.min_improvement:
                self.n_stalled += 1
            else:
                self.n_stalled = 0
        self.errors.append(error)

        if self.n_stalled >= self.patience:
            log.info("Cost converged at iteration %d (%.6f)." % (iteration, error))
            return True

        return False
