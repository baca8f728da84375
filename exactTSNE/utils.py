from time import time

import numpy as np

from exactTSNE.exceptions import DimensionMismatchError, EmptyDatasetError


class Timer:
    def __init__(self, message, verbose=False):
        self.message = message
        self.start_time = None
        self.verbose = verbose

    def __enter__(self):
        self.start_time = time()
        if self.verbose:
            print("===>", self.message)
        return self

    def __exit__(self, *args):
        if self.verbose:
            print("   --> Time elapsed: %.2f seconds" % (time() - self.start_time))


def as_matrix(data, name="data"):
    """Convert a sequence of sequences of floats into a 2d float64 array.

    Parameters
    ----------
    data: array_like
        Either a numpy array or a sequence of equally long sequences.

    name: str
        The name used to refer to ``data`` in error messages.

    Returns
    -------
    np.ndarray
        A C-contiguous ``float64`` matrix.

    Raises
    ------
    EmptyDatasetError
        If ``data`` contains no rows.
    DimensionMismatchError
        If the rows of ``data`` differ in length or ``data`` is not a matrix.

    """
    if not isinstance(data, np.ndarray):
        data = list(data)
        if len(data) == 0:
            raise EmptyDatasetError("`%s` is empty. You must have some data!" % name)
        if any(np.ndim(row) != 1 for row in data):
            raise DimensionMismatchError(
                "`%s` must be a sequence of sequences of floats." % name
            )
        row_lengths = {len(row) for row in data}
        if len(row_lengths) > 1:
            raise DimensionMismatchError(
                "The rows of `%s` have different lengths (%s)."
                % (name, ", ".join(str(l) for l in sorted(row_lengths)))
            )

    data = np.ascontiguousarray(data, dtype=np.float64)

    if data.ndim > 0 and data.shape[0] == 0:
        raise EmptyDatasetError("`%s` is empty. You must have some data!" % name)
    if data.ndim != 2:
        raise DimensionMismatchError(
            "`%s` must be a two-dimensional matrix, but has %d dimension(s)."
            % (name, data.ndim)
        )

    return data
