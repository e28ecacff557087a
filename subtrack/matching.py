"""Text normalization, similarity scoring and interval statistics.

Shared by the subscription pattern engine and the reconciliation service.
Everything here is pure and synchronous.
"""

import re

NOISE_WORDS = frozenset(
    {
        "the", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by",
        "visa", "mastercard", "debit", "credit", "card", "payment", "purchase",
        "inc", "llc", "ltd", "as", "asa", "corp", "company",
    }
)

_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")
_NON_ALNUM = re.compile(r"[\W_]+")


def normalize_description(text: str) -> str:
    text = _PUNCTUATION.sub(" ", text.lower())
    return _WHITESPACE.sub(" ", text).strip()


def compact(text: str) -> str:
    return _NON_ALNUM.sub("", text.lower())


def string_similarity(a: str, b: str) -> float:
    """Similarity in [0, 1]: substring ratio when one contains the other, else word Jaccard."""
    a = normalize_description(a)
    b = normalize_description(b)
    if a == b:
        return 1.0
    if a and b and (a in b or b in a):
        shorter, longer = sorted((a, b), key=len)
        return len(shorter) / len(longer)

    words_a = set(a.split())
    words_b = set(b.split())
    if not words_a and not words_b:
        return 1.0
    if not words_a or not words_b:
        return 0.0
    return len(words_a & words_b) / len(words_a | words_b)


def levenshtein_distance(a: str, b: str) -> int:
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + (ca != cb),
                )
            )
        previous = current
    return previous[-1]


def _significant_words(text: str) -> list[str]:
    return [w for w in _NON_ALNUM.split(text.lower()) if len(w) > 2]


def fuzzy_contains(text: str, pattern: str) -> bool:
    """True when more than 60% of the pattern's words appear (approximately) in text."""
    text_words = _significant_words(text)
    pattern_words = _significant_words(pattern)
    if not pattern_words:
        return False

    matched = 0
    for pw in pattern_words:
        for tw in text_words:
            if tw in pw or pw in tw or levenshtein_distance(tw, pw) <= 2:
                matched += 1
                break
    return matched / len(pattern_words) > 0.6


def mean(values: list[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def population_variance(values: list[float]) -> float:
    if not values:
        return 0.0
    avg = mean(values)
    return sum((v - avg) ** 2 for v in values) / len(values)


def extract_core_words(text: str) -> list[str]:
    return [
        w
        for w in text.lower().split()
        if len(w) > 2 and w not in NOISE_WORDS and not w.isdigit()
    ]


def longest_common_substring(strings: list[str]) -> str:
    if not strings:
        return ""
    shortest = min(strings, key=len)
    for length in range(len(shortest), 0, -1):
        for start in range(len(shortest) - length + 1):
            candidate = shortest[start : start + length]
            if all(candidate in s for s in strings):
                return candidate
    return ""


def common_prefix(strings: list[str]) -> str:
    if not strings:
        return ""
    prefix = strings[0]
    for s in strings[1:]:
        while not s.startswith(prefix):
            prefix = prefix[:-1]
            if not prefix:
                return ""
    return prefix
