"""
Content fingerprints for cards.

The identity of a card is a hash of its normalized words, so the same card
survives edits to case, whitespace, punctuation, quote style and stopwords.
Two cards that normalize identically share one identity, which is how
duplicates collapse into a single row.
"""

import hashlib
import re
from collections.abc import Iterator

from repeater.domain.constants import APOSTROPHES, DIGEST_SIZE, SIGN_TOKENS
from repeater.domain.exceptions import MalformedContentError

# English function words (NLTK list). Matched against whole lowercase tokens.
STOPWORDS = frozenset(
    {
        "i", "me", "my", "myself", "we", "our", "ours", "ourselves", "you", "your",
        "yours", "yourself", "yourselves", "he", "him", "his", "himself", "she",
        "her", "hers", "herself", "it", "its", "itself", "they", "them", "their",
        "theirs", "themselves", "what", "which", "who", "whom", "this", "that",
        "these", "those", "am", "is", "are", "was", "were", "be", "been", "being",
        "have", "has", "had", "having", "do", "does", "did", "doing", "a", "an",
        "the", "and", "but", "if", "or", "because", "as", "until", "while", "of",
        "at", "by", "for", "with", "about", "against", "between", "into",
        "through", "during", "before", "after", "above", "below", "to", "from",
        "up", "down", "in", "out", "on", "off", "over", "under", "again",
        "further", "then", "once", "here", "there", "when", "where", "why", "how",
        "all", "any", "both", "each", "few", "more", "most", "other", "some",
        "such", "no", "nor", "not", "only", "own", "same", "so", "than", "too",
        "very", "s", "t", "can", "will", "just", "don", "should", "now",
    }
)  # fmt: skip

_ASCII_TOKEN_RE = re.compile(r"[a-z0-9]+|[+-]")


def identity_of(text: str) -> str | None:
    """
    Fingerprint the semantic content of a card.

    Returns None for blank text and for text whose every word is a stopword
    or punctuation: such content has no usable identity.
    """
    if not text or not text.strip():
        return None

    hasher = hashlib.blake2b(digest_size=DIGEST_SIZE)
    fed = 0
    for token in normalized_tokens(text):
        data = token.encode("utf-8")
        hasher.update(data)
        fed += len(data)

    if fed == 0:
        return None
    return hasher.hexdigest()


def require_identity(text: str) -> str:
    """Like identity_of, but raises MalformedContentError instead of returning None."""
    identity = identity_of(text)
    if identity is None:
        preview = text.strip()[:40]
        raise MalformedContentError(f"Card content has no identity: {preview!r}")
    return identity


def normalized_tokens(text: str) -> Iterator[str]:
    """
    Yield the tokens that make up a card's identity, in order.

    Words are lowercased alphanumeric runs with apostrophes deleted and
    stopwords dropped. '+' and '-' come out as tokens of their own.
    """
    if text.isascii():
        yield from _ascii_tokens(text)
    else:
        yield from _unicode_tokens(text)


def _ascii_tokens(text: str) -> Iterator[str]:
    # Same output as _unicode_tokens for ASCII input, using one regex pass.
    for token in _ASCII_TOKEN_RE.findall(text.lower().replace("'", "")):
        if token in SIGN_TOKENS or token not in STOPWORDS:
            yield token


def _unicode_tokens(text: str) -> Iterator[str]:
    word: list[str] = []
    for ch in text:
        if ch in APOSTROPHES:
            continue
        if ch in SIGN_TOKENS:
            yield from _flush(word)
            yield ch
        elif ch.isalnum():
            word.append(ch.lower())
        else:
            yield from _flush(word)
    yield from _flush(word)


def _flush(word: list[str]) -> Iterator[str]:
    if not word:
        return
    token = "".join(word)
    word.clear()
    if token not in STOPWORDS:
        yield token
