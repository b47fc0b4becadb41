"""Perceptual fingerprinting and similarity grouping for photos."""

from .hash import (
    DecodeError,
    EmptyInputError,
    FingerprintError,
    FingerprintedImage,
    HashAlgorithm,
    ImageDescriptor,
    fingerprint,
    fingerprint_image,
)
from .distance import Comparator, LengthMismatchError, hamming_distance, similarity
from .cluster import BatchAbortError, GroupingResult, SimilarityGroup, group_images

__all__ = [
    "DecodeError",
    "EmptyInputError",
    "FingerprintError",
    "FingerprintedImage",
    "HashAlgorithm",
    "ImageDescriptor",
    "fingerprint",
    "fingerprint_image",
    "Comparator",
    "LengthMismatchError",
    "hamming_distance",
    "similarity",
    "BatchAbortError",
    "GroupingResult",
    "SimilarityGroup",
    "group_images",
]
