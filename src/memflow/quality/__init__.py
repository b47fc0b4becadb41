"""Photo quality scoring used to pick a representative per similarity group."""

from .blur import sharpness_score
from .scoring import (
    FaceAnalyzer,
    FaceSignals,
    PhotoScore,
    PhotoScorer,
    eye_aspect_ratio,
    find_best_photo,
    score_photo,
)

__all__ = [
    "sharpness_score",
    "FaceAnalyzer",
    "FaceSignals",
    "PhotoScore",
    "PhotoScorer",
    "eye_aspect_ratio",
    "find_best_photo",
    "score_photo",
]
