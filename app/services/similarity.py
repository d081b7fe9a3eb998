import re
from difflib import SequenceMatcher
from typing import Optional
from rapidfuzz.distance import Levenshtein

CONTAINMENT_SCORE = 0.85


def normalize_label(value: str) -> str:
    """Lower-case, collapse punctuation to single spaces."""
    return re.sub(r"\s+", " ", re.sub(r"[^a-z0-9]+", " ", (value or "").lower())).strip()


def label_similarity(a: str, b: str) -> float:
    """
    Similarity of two free-text labels in [0, 1].

    Uses difflib's ratio on normalized labels, boosted when one label is
    contained in the other ("cardio" vs "cardiology").
    """
    norm_a = normalize_label(a)
    norm_b = normalize_label(b)
    if not norm_a or not norm_b:
        return 0.0
    if norm_a == norm_b:
        return 1.0

    score = SequenceMatcher(None, norm_a, norm_b).ratio()
    if norm_a in norm_b or norm_b in norm_a:
        score = max(score, CONTAINMENT_SCORE)
    return score


def column_similarity(
    a: str,
    b: str,
    type_a: Optional[str] = None,
    type_b: Optional[str] = None,
    include_data_type_matching: bool = True
) -> float:
    """
    Similarity of two column headers that keeps percentiles apart.

    "wrvu_p50" and "wRVU P50" match exactly, while "tcc_p50" vs "tcc_p90"
    (same prefix, different numbers) and "tcc_p50" vs "wrvu_p50" (different
    prefix) score low whatever their edit distance.
    """
    norm_a = re.sub(r"[^a-z0-9]", "", (a or "").lower())
    norm_b = re.sub(r"[^a-z0-9]", "", (b or "").lower())
    if norm_a == norm_b:
        return 1.0

    if re.sub(r"[0-9]", "", norm_a) != re.sub(r"[0-9]", "", norm_b):
        return 0.1

    numbers_a = re.findall(r"[0-9]+", norm_a)
    numbers_b = re.findall(r"[0-9]+", norm_b)
    if numbers_a and numbers_b and any(n1 != n2 for n1 in numbers_a for n2 in numbers_b):
        return 0.2

    score = Levenshtein.normalized_similarity(norm_a, norm_b)
    if include_data_type_matching and type_a and type_a == type_b:
        score += 0.1
    return min(score, 1.0)
