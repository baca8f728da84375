from .exceptions import DimensionMismatchError, EmptyDatasetError
from .initialization import RandomSource
from .tsne import TSNE, TSNEEmbedding, OptimizationInterrupt
from .affinity import PerplexityBased

from .version import __version__
