"""
ChatLLM Cache — Token-Overlap Similarity

Cheap near-duplicate detection for chat queries: the Jaccard index of
lower-cased, whitespace-split word sets. Punctuation is kept as part of
the token, so "france?" and "france" are different words.

The metric is symmetric and bounded in [0, 1]; an empty union scores 0.
"""

from cachetools import LRUCache, cached

_TOKEN_CACHE_SIZE = 4096


@cached(cache=LRUCache(maxsize=_TOKEN_CACHE_SIZE))
def tokenize(text: str) -> frozenset[str]:
    """Lower-case and split on runs of whitespace."""
    return frozenset(text.lower().split())


def jaccard_similarity(left: str, right: str) -> float:
    """
    Jaccard index of the token sets of two strings.

    Args:
        left: First text
        right: Second text

    Returns:
        |intersection| / |union|, or 0.0 when both texts have no tokens
    """
    left_tokens = tokenize(left)
    right_tokens = tokenize(right)

    union = left_tokens | right_tokens
    if not union:
        return 0.0

    return len(left_tokens & right_tokens) / len(union)
