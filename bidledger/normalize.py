"""Name normalisation used for bidder comparison."""

from __future__ import annotations

import re
import unicodedata
from typing import Any, List

from .utils import clean_text

LEGAL_SUFFIXES = frozenset(
    {
        "co",
        "company",
        "corp",
        "corporation",
        "inc",
        "incorporated",
        "llc",
        "llp",
        "lp",
        "ltd",
        "limited",
        "pc",
        "pllc",
    }
)
CONJUNCTIONS = frozenset({"and", "the"})

_DISPLAY_SUFFIX_RE = re.compile(
    r"(?:,\s*|\s+)(Inc\.?|LLC\.?|Co\.?|Corporation|Corp\.?|Company|Ltd\.?)$", re.IGNORECASE
)


def _strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(char for char in decomposed if not unicodedata.combining(char))


def name_tokens(raw: Any) -> List[str]:
    """Return the comparison tokens of ``raw`` before suffix folding."""

    text = _strip_accents(clean_text(raw)).casefold()
    text = text.replace("&", " and ")
    # "A.B.C." and "O'Neil" keep their letters together
    text = re.sub(r"[.'’]", "", text)
    text = re.sub(r"[^0-9a-z]+", " ", text)
    return text.split()


def normalize_name(raw: Any) -> str:
    """Return the comparison key for a free-text bidder name.

    The key is lower-cased, stripped of punctuation and accents, whitespace
    collapsed, with conjunctions and trailing legal suffixes folded away.
    A name made only of suffix words keeps them so it still has a key.
    """

    tokens = [token for token in name_tokens(raw) if token not in CONJUNCTIONS]
    folded = list(tokens)
    while folded and folded[-1] in LEGAL_SUFFIXES:
        folded.pop()
    if not folded:
        folded = tokens
    return " ".join(folded)


def display_name(raw: Any) -> str:
    """Return the form of ``raw`` used when it becomes a canonical name."""

    text = clean_text(raw).replace("*", "")
    text = _DISPLAY_SUFFIX_RE.sub("", text.strip())
    text = re.sub(r"\s+", " ", text).strip(" ,")
    return text or clean_text(raw)


def name_key(name: Any) -> str:
    """Case-normalised key enforcing canonical name uniqueness."""

    return clean_text(name).casefold()


__all__ = [
    "CONJUNCTIONS",
    "LEGAL_SUFFIXES",
    "clean_text",
    "display_name",
    "name_key",
    "name_tokens",
    "normalize_name",
]
