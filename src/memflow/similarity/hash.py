"""Perceptual fingerprint computation for photo similarity."""

import io
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

import imagehash
import numpy as np
from PIL import Image, UnidentifiedImageError

from ..logging import get_logger

logger = get_logger(__name__)

HASH_SIZE = 8


class HashAlgorithm(str, Enum):
    """Interchangeable fingerprint algorithms."""
    AVERAGE = "average"
    DIFFERENCE = "difference"
    COLOR = "color"


HASH_LENGTHS: Dict[HashAlgorithm, int] = {
    HashAlgorithm.AVERAGE: HASH_SIZE * HASH_SIZE,
    HashAlgorithm.DIFFERENCE: HASH_SIZE * HASH_SIZE,
    HashAlgorithm.COLOR: HASH_SIZE * HASH_SIZE * 3,
}


class FingerprintError(Exception):
    """Raised when an image cannot be fingerprinted."""


class DecodeError(FingerprintError):
    """Raised when image bytes cannot be decoded or resized."""


class EmptyInputError(FingerprintError):
    """Raised when the image byte buffer is empty."""


@dataclass(frozen=True)
class ImageDescriptor:
    """An image submitted for analysis."""
    name: str
    data: bytes
    original_name: Optional[str] = None
    preview: Optional[str] = None
    quality: Optional[float] = None  # supplied by an external face/expression analyzer


@dataclass(frozen=True)
class FingerprintedImage:
    """An image identifier paired with its fingerprint."""
    name: str
    fingerprint: str
    algorithm: HashAlgorithm = HashAlgorithm.AVERAGE
    descriptor: Optional[ImageDescriptor] = None


def fingerprint(image_bytes: bytes, algorithm: HashAlgorithm = HashAlgorithm.AVERAGE) -> str:
    """
    Compute a perceptual fingerprint from encoded image bytes.

    Args:
        image_bytes: Raw encoded image (any format Pillow can read)
        algorithm: Fingerprint algorithm to apply

    Returns:
        Bit string of '0'/'1' characters, 64 long for the average and
        difference variants, 192 long for the color variant

    Raises:
        EmptyInputError: If the buffer is zero-length
        DecodeError: If the bytes cannot be decoded as an image
    """
    algorithm = HashAlgorithm(algorithm)
    img = _decode(image_bytes)

    try:
        if algorithm is HashAlgorithm.AVERAGE:
            bits = imagehash.average_hash(img, hash_size=HASH_SIZE).hash
        elif algorithm is HashAlgorithm.DIFFERENCE:
            bits = _difference_bits(img)
        else:
            bits = _color_bits(img)
    except (OSError, ValueError) as exc:
        raise DecodeError(f"Failed to resize image: {exc}") from exc

    result = _to_bitstring(bits)
    logger.debug(f"Computed {algorithm.value} fingerprint: {result}")
    return result


def fingerprint_image(
    descriptor: ImageDescriptor,
    algorithm: HashAlgorithm = HashAlgorithm.AVERAGE,
) -> FingerprintedImage:
    """Fingerprint a single descriptor; errors name the offending image."""
    algorithm = HashAlgorithm(algorithm)
    try:
        bits = fingerprint(descriptor.data, algorithm)
    except EmptyInputError as exc:
        raise EmptyInputError(f"Empty image data for {descriptor.name}") from exc
    except DecodeError as exc:
        raise DecodeError(f"Failed to fingerprint {descriptor.name}: {exc}") from exc

    return FingerprintedImage(
        name=descriptor.name,
        fingerprint=bits,
        algorithm=algorithm,
        descriptor=descriptor,
    )


def fingerprint_to_hex(bits: str) -> str:
    """Hexadecimal form of a fingerprint bit string."""
    if len(bits) % 8 or set(bits) - {"0", "1"}:
        raise ValueError(f"Not a fingerprint bit string: {bits!r}")
    array = np.array([char == "1" for char in bits], dtype=bool)
    return str(imagehash.ImageHash(array))


def _decode(image_bytes: bytes) -> Image.Image:
    if not image_bytes:
        raise EmptyInputError("Empty image data")

    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            img.load()
            # Normalise palette, alpha, and CMYK inputs before hashing
            return img.convert("RGB")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise DecodeError(f"Cannot decode image data: {exc}") from exc


def _difference_bits(img: Image.Image) -> np.ndarray:
    # 9 samples per row give 8 horizontally adjacent comparisons
    resized = img.convert("L").resize((HASH_SIZE + 1, HASH_SIZE), Image.Resampling.LANCZOS)
    pixels = np.asarray(resized, dtype=np.int16)
    return pixels[:, :-1] > pixels[:, 1:]


def _color_bits(img: Image.Image) -> np.ndarray:
    resized = img.resize((HASH_SIZE, HASH_SIZE), Image.Resampling.LANCZOS)
    pixels = np.asarray(resized, dtype=np.float64)
    channels = []
    for channel in range(3):  # R, G, B
        values = pixels[:, :, channel]
        channels.append(values > values.mean())
    return np.concatenate(channels)


def _to_bitstring(bits: np.ndarray) -> str:
    return "".join("1" if bit else "0" for bit in bits.flatten())
