class EmptyDatasetError(ValueError):
    """The data set contains no samples or the samples have no features."""


class DimensionMismatchError(ValueError):
    """The input matrix does not have the required shape.

    Raised when a distance matrix is not square or when the rows of a data
    matrix are of different lengths.

    """
