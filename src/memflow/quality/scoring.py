"""
Photo quality scoring for choosing the best shot in a group.

Face detection itself is an external capability: callers construct a
``FaceAnalyzer`` (loading whatever models it needs once) and hand it to a
``PhotoScorer``. This module only combines the signals it reports with the
image's sharpness.
"""

import math
from dataclasses import dataclass
from typing import Mapping, Optional, Protocol, Sequence, Tuple

from .blur import sharpness_score
from ..logging import get_logger

logger = get_logger(__name__)

Point = Tuple[float, float]

SMILE_WEIGHT = 0.4
EYES_OPEN_WEIGHT = 0.2
FACE_AREA_WEIGHT = 0.2
BLUR_WEIGHT = 0.2

EYES_OPEN_EAR = 0.25
MAX_FACE_AREA_RATIO = 0.5


@dataclass(frozen=True)
class FaceSignals:
    """Signals reported by a face analyzer for the most prominent face."""
    smile: float
    face_area_ratio: float
    eyes_open: bool = True

    @classmethod
    def from_landmarks(
        cls,
        smile: float,
        face_area_ratio: float,
        left_eye: Sequence[Point],
        right_eye: Sequence[Point],
    ) -> "FaceSignals":
        ear = (eye_aspect_ratio(left_eye) + eye_aspect_ratio(right_eye)) / 2.0
        return cls(smile=smile, face_area_ratio=face_area_ratio, eyes_open=ear > EYES_OPEN_EAR)


@dataclass(frozen=True)
class PhotoScore:
    face_detected: bool
    smile_score: float
    eyes_open: bool
    face_area_ratio: float
    blur_score: float
    final_score: float


class FaceAnalyzer(Protocol):
    def analyze(self, image_bytes: bytes) -> Optional[FaceSignals]:
        """Return signals for the main face, or None when no face is found."""
        ...


def eye_aspect_ratio(eye: Sequence[Point]) -> float:
    """
    Eye aspect ratio from six landmarks ordered around the eye.

    Points 1/5 and 2/4 are the vertical pairs, 0/3 the eye corners.
    """
    if len(eye) != 6:
        raise ValueError(f"Expected 6 eye landmarks, got {len(eye)}")
    vertical_a = math.dist(eye[1], eye[5])
    vertical_b = math.dist(eye[2], eye[4])
    horizontal = math.dist(eye[0], eye[3])
    if horizontal == 0:
        raise ValueError("Degenerate eye landmarks: corners coincide")
    return (vertical_a + vertical_b) / (2.0 * horizontal)


def score_photo(signals: Optional[FaceSignals], blur_score: float) -> PhotoScore:
    """
    Weighted photo score: smile 40%, open eyes 20%, face size 20%, sharpness 20%.

    Photos without a detected face score 0.
    """
    if signals is None:
        return PhotoScore(
            face_detected=False,
            smile_score=0.0,
            eyes_open=False,
            face_area_ratio=0.0,
            blur_score=blur_score,
            final_score=0.0,
        )

    face_area = min(max(signals.face_area_ratio, 0.0), MAX_FACE_AREA_RATIO) / MAX_FACE_AREA_RATIO
    final = (
        signals.smile * SMILE_WEIGHT
        + (EYES_OPEN_WEIGHT if signals.eyes_open else 0.0)
        + face_area * FACE_AREA_WEIGHT
        + blur_score * BLUR_WEIGHT
    )
    return PhotoScore(
        face_detected=True,
        smile_score=signals.smile,
        eyes_open=signals.eyes_open,
        face_area_ratio=face_area,
        blur_score=blur_score,
        final_score=final,
    )


class PhotoScorer:
    """Scores photos from their bytes, optionally with an injected face analyzer."""

    def __init__(self, analyzer: Optional[FaceAnalyzer] = None) -> None:
        self._analyzer = analyzer

    def score(self, image_bytes: bytes) -> PhotoScore:
        blur = sharpness_score(image_bytes)
        if self._analyzer is None:
            # No face model configured: rank on sharpness alone
            return PhotoScore(
                face_detected=False,
                smile_score=0.0,
                eyes_open=False,
                face_area_ratio=0.0,
                blur_score=blur,
                final_score=blur,
            )
        return score_photo(self._analyzer.analyze(image_bytes), blur)


def find_best_photo(scores: Mapping[str, float]) -> Tuple[str, float]:
    """
    Return the id and score of the highest-scoring photo; the first wins ties.

    NaN scores are ignored.
    """
    if not scores:
        raise ValueError("No photos provided")

    best_id, best_score = None, -math.inf
    for image_id, score in scores.items():
        if math.isnan(score):
            continue
        if best_id is None or score > best_score:
            best_id, best_score = image_id, score

    if best_id is None:
        raise ValueError("No photo has a usable score")
    return best_id, best_score
