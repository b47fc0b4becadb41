"""Distance and similarity metrics for fingerprint comparison."""

import math
from dataclasses import dataclass

DEFAULT_STEEPNESS = 10.0
DEFAULT_CENTER = 0.8


class LengthMismatchError(ValueError):
    """Raised when two fingerprints of different lengths are compared."""


def hamming_distance(a: str, b: str) -> int:
    """
    Count the bit positions where two fingerprints differ.

    Args:
        a: First fingerprint bit string
        b: Second fingerprint bit string

    Returns:
        Hamming distance (number of differing bits)

    Raises:
        LengthMismatchError: If the fingerprints differ in length
    """
    if len(a) != len(b):
        raise LengthMismatchError(
            f"Cannot compare fingerprints of length {len(a)} and {len(b)}"
        )
    return sum(1 for bit_a, bit_b in zip(a, b) if bit_a != bit_b)


def similarity(a: str, b: str) -> float:
    """
    Raw similarity of two fingerprints, in [0, 1].

    1.0 means identical bits, 0.0 means every bit differs.
    """
    if not a and not b:
        raise LengthMismatchError("Cannot compare empty fingerprints")
    distance = hamming_distance(a, b)
    return (len(a) - distance) / len(a)


def logistic(
    score: float,
    steepness: float = DEFAULT_STEEPNESS,
    center: float = DEFAULT_CENTER,
) -> float:
    """Logistic curve pushing scores away from ``center``."""
    return 1.0 / (1.0 + math.exp(-steepness * (score - center)))


def sharpen(
    score: float,
    steepness: float = DEFAULT_STEEPNESS,
    center: float = DEFAULT_CENTER,
) -> float:
    """
    Logistic sharpening rescaled to keep 0 and 1 fixed.

    The plain logistic maps 1.0 to about 0.88 with the default curve, so
    the result is stretched back onto [0, 1]. Identical fingerprints still
    score exactly 1.0.
    """
    low = logistic(0.0, steepness, center)
    high = logistic(1.0, steepness, center)
    value = (logistic(score, steepness, center) - low) / (high - low)
    return min(max(value, 0.0), 1.0)


@dataclass(frozen=True)
class Comparator:
    """
    Fingerprint similarity function with a fixed scoring variant.

    A single grouping run uses one comparator, so raw and sharpened scores
    are never mixed. The default variant is raw.
    """
    sharpen: bool = False
    steepness: float = DEFAULT_STEEPNESS
    center: float = DEFAULT_CENTER

    def __call__(self, a: str, b: str) -> float:
        score = similarity(a, b)
        if self.sharpen:
            return sharpen(score, self.steepness, self.center)
        return score

    @property
    def variant(self) -> str:
        return "sharpened" if self.sharpen else "raw"
