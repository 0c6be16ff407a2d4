"""
Text helpers for keyword ranking and the local embedding index.

The hashing embedder is deterministic and dependency-free; it backs the
in-memory store's vector search and is not meant to rival a learned model.
"""

import hashlib
import math
import re
from typing import Optional


SUPPORTED_LANGUAGES = ("en", "de", "fr", "es")

STOPWORDS: dict[str, frozenset[str]] = {
    "en": frozenset(
        "a an and are as at be but by for from had has have i in is it its me my of on or "
        "our she so that the their them then there they this to was we were what when where "
        "which who with you".split()
    ),
    "de": frozenset(
        "aber als am an auch auf aus bei bin bis das dass dem den der des die ein eine einem "
        "einen einer es für hat ich im in ist mit nach nicht oder sich sie sind und von war "
        "wir zu zum zur".split()
    ),
    "fr": frozenset(
        "au aux avec ce ces dans de des du elle en et il je la le les leur lui mais me mon ne "
        "nous on ou par pas pour qui sa se son sur un une vous".split()
    ),
    "es": frozenset(
        "a al como con de del el ella en era es esta la las lo los me mi no o para pero por "
        "que se su sus un una y yo".split()
    ),
}

_TOKEN = re.compile(r"\w+", re.UNICODE)


def resolve_language(language: Optional[str]) -> str:
    """Two-letter supported language for a locale such as "de-at"; "en" otherwise."""
    if not language:
        return "en"
    code = language[:2].lower()
    return code if code in SUPPORTED_LANGUAGES else "en"


def tokenize(text: str, language: Optional[str] = None) -> list[str]:
    """Lower-cased word tokens with the language's stop words removed."""
    stopwords = STOPWORDS[resolve_language(language)]
    return [token for token in _TOKEN.findall(text.lower()) if token not in stopwords]


class HashingEmbedder:
    """
    Signed feature-hashing embedder over word tokens.

    Returns an L2-normalized vector, or None when the text has no tokens.
    """

    def __init__(self, dimensions: int = 64) -> None:
        self.dimensions = dimensions

    def embed(self, text: str) -> Optional[list[float]]:
        tokens = tokenize(text)
        if not tokens:
            return None
        vector = [0.0] * self.dimensions
        for token in tokens:
            digest = hashlib.md5(token.encode("utf-8")).digest()
            index = int.from_bytes(digest[:4], "big") % self.dimensions
            sign = 1.0 if digest[4] % 2 == 0 else -1.0
            vector[index] += sign
        norm = math.sqrt(sum(v * v for v in vector))
        if norm == 0:
            return None
        return [v / norm for v in vector]
