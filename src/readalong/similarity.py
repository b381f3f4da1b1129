# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Word similarity scoring for alignment.

Textual similarity is one minus the Levenshtein distance normalized by the
longer string. An optional phonetic signal compares precomputed code pairs
(primary, secondary) and can only raise the textual score, never lower it.
"""

from rapidfuzz.distance import Levenshtein

PhoneticCodes = tuple[str, str]

NO_CODES: PhoneticCodes = ("", "")


def similarity(a: str, b: str) -> float:
    """Return ``1 - normalized edit distance`` between two strings (0.0 to 1.0).

    Two empty strings are identical (1.0).
    """
    longest: int = max(len(a), len(b)) or 1
    return 1.0 - Levenshtein.distance(a, b) / longest


def phonetic_similarity(spoken_codes: PhoneticCodes, token_codes: PhoneticCodes) -> float:
    """Compare two phonetic code pairs.

    Any shared non-empty code counts as a perfect match. Otherwise the best
    textual similarity between any pair of non-empty codes is returned.
    0.0 when either side has no codes.
    """
    spoken = [c for c in spoken_codes if c]
    token = [c for c in token_codes if c]
    if not spoken or not token:
        return 0.0

    if any(code in token for code in spoken):
        return 1.0

    return max(similarity(a, b) for a in spoken for b in token)


def combined_similarity(
    spoken: str,
    expected: str,
    spoken_codes: PhoneticCodes = NO_CODES,
    expected_codes: PhoneticCodes = NO_CODES,
    phonetic_weight: float = 0.6,
    phonetic_enabled: bool = True
) -> float:
    """Blend textual and phonetic similarity.

    The blend is ``weight * phonetic + (1 - weight) * text`` and the result is
    the larger of the blend and the plain textual score.
    """
    text_sim: float = similarity(spoken, expected)
    if not phonetic_enabled:
        return text_sim
    if not any(spoken_codes) and not any(expected_codes):
        return text_sim

    phon_sim: float = phonetic_similarity(spoken_codes, expected_codes)
    blended: float = phonetic_weight * phon_sim + (1 - phonetic_weight) * text_sim
    return max(text_sim, blended)
