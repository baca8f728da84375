import numpy as np

from exactTSNE.tsne import TSNEEmbedding, kl_divergence_exact


def kl_divergence(embedding: TSNEEmbedding) -> float:
    """The KL divergence between the affinities and the embedding.

    Unlike the cost reported during optimization, this includes the
    :math:`\\sum P \\ln P` term.

    """
    P = embedding.affinities.P
    cost, _ = kl_divergence_exact(embedding, P)
    return cost + np.sum(P * np.log(P))


def pBIC(embedding: TSNEEmbedding) -> float:
    if not hasattr(embedding.affinities, "perplexity"):
        raise TypeError("The embedding affinity matrix has no attribute `perplexity`")
    n_samples = embedding.shape[0]

    return 2 * kl_divergence(embedding) + np.log(n_samples) * \
        embedding.affinities.perplexity / n_samples
