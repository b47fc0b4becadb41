"""
Sharpness estimation for photos.

A 3x3 Laplacian highlights edges; blurry photos have weak edge response.
The mean absolute response is squashed onto [0, 1] with a logistic curve.
"""

import io

import numpy as np
from PIL import Image, UnidentifiedImageError

from ..similarity.distance import logistic
from ..similarity.hash import DecodeError, EmptyInputError
from ..logging import get_logger

logger = get_logger(__name__)

MAX_SIDE = 512
LUMINANCE_WEIGHTS = np.array([0.299, 0.587, 0.114])
EDGE_STEEPNESS = 10.0
EDGE_CENTER = 0.1


def sharpness_score(image_bytes: bytes) -> float:
    """
    Score how sharp an image is.

    Args:
        image_bytes: Raw encoded image

    Returns:
        Score between 0 (blurry) and 1 (sharp)

    Raises:
        EmptyInputError: If the buffer is zero-length
        DecodeError: If the bytes cannot be decoded as an image
    """
    if not image_bytes:
        raise EmptyInputError("Empty image data")

    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            img = img.convert("RGB")
            img.thumbnail((MAX_SIDE, MAX_SIDE))
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise DecodeError(f"Cannot decode image data: {exc}") from exc

    gray = np.asarray(img, dtype=np.float64) @ LUMINANCE_WEIGHTS
    if gray.shape[0] < 3 or gray.shape[1] < 3:
        return 0.0

    edge_intensity = float(np.abs(laplacian(gray)).mean()) / 255.0
    score = logistic(edge_intensity, EDGE_STEEPNESS, EDGE_CENTER)
    logger.debug(f"Edge intensity {edge_intensity:.4f} -> sharpness {score:.3f}")
    return min(max(score, 0.0), 1.0)


def laplacian(gray: np.ndarray) -> np.ndarray:
    """Valid-mode 3x3 Laplacian (0 1 0 / 1 -4 1 / 0 1 0) of a 2-D array."""
    center = gray[1:-1, 1:-1]
    return (
        gray[:-2, 1:-1]
        + gray[2:, 1:-1]
        + gray[1:-1, :-2]
        + gray[1:-1, 2:]
        - 4.0 * center
    )
