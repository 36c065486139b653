"""
Lexical similarity scoring for Universal Memory MCP

Both policies are pure functions over lowercased whitespace tokens. Anything
that is not a non-empty string scores 0.0.
"""

from typing import List


def _tokens(text) -> List[str]:
    if not isinstance(text, str):
        return []
    return text.lower().split()


def query_coverage(query, content) -> float:
    """Fraction of query words found in content.

    A query word counts as matched when it is a substring of some content
    word, or some content word is a substring of it. Used for search ranking
    and duplicate detection.
    """
    query_words = _tokens(query)
    content_words = _tokens(content)
    if not query_words or not content_words:
        return 0.0

    matched = 0
    for word in query_words:
        if any(word in other or other in word for other in content_words):
            matched += 1
    return matched / len(query_words)


def jaccard_similarity(text_a, text_b) -> float:
    """|A & B| / |A | B| over the word sets of both texts"""
    words_a = set(_tokens(text_a))
    words_b = set(_tokens(text_b))
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


POLICIES = {
    "coverage": query_coverage,
    "jaccard": jaccard_similarity,
}


def calculate_similarity(text_a, text_b, policy: str = "coverage") -> float:
    scorer = POLICIES.get(policy)
    if scorer is None:
        raise ValueError(f"Unknown similarity policy: {policy}")
    return scorer(text_a, text_b)
