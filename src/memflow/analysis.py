"""Public API for analysing a batch of photos."""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .config import Settings
from .similarity.hash import (
    FingerprintError,
    FingerprintedImage,
    HashAlgorithm,
    ImageDescriptor,
    fingerprint,
    fingerprint_image,
)
from .similarity.distance import Comparator
from .similarity.cluster import GroupingResult, ScoreFunction, group_images
from .quality.scoring import PhotoScorer, find_best_photo
from .logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class BatchAnalysis:
    """Fingerprints, group membership and representatives for one batch."""
    grouping: GroupingResult
    fingerprints: Dict[str, str] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)
    quality: Dict[str, float] = field(default_factory=dict)
    representatives: Dict[str, str] = field(default_factory=dict)
    descriptors: Dict[str, ImageDescriptor] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Response shape: per-image group ids plus per-group aggregates."""
        images = []
        for image_id, group_id in self.grouping.assignments.items():
            descriptor = self.descriptors.get(image_id)
            images.append({
                "id": image_id,
                "originalName": descriptor.original_name if descriptor and descriptor.original_name else image_id,
                "preview": descriptor.preview if descriptor else None,
                "fingerprint": self.fingerprints[image_id],
                "groupId": group_id,
                "quality": self.quality.get(image_id),
            })

        groups = []
        for group in self.grouping.groups:
            entry = group.to_dict()
            entry["representativeId"] = self.representatives.get(group.group_id)
            groups.append(entry)

        return {
            "images": images,
            "groups": groups,
            "failures": [
                {"id": image_id, "error": message}
                for image_id, message in self.failures.items()
            ],
        }


def analyze_batch(
    descriptors: Sequence[ImageDescriptor],
    settings: Optional[Settings] = None,
    scorer: Optional[PhotoScorer] = None,
) -> BatchAnalysis:
    """
    Fingerprint, group, and pick a representative for a batch of photos.

    Args:
        descriptors: Images in submission order
        settings: Threshold, algorithm and failure policy (defaults if omitted)
        scorer: Optional photo scorer for images without a supplied quality

    Returns:
        BatchAnalysis covering every image that could be fingerprinted

    Raises:
        FingerprintError: If an image fails and skip_undecodable is off
        BatchAbortError: If a pairwise comparison fails
    """
    settings = settings or Settings()

    fingerprinted: List[FingerprintedImage] = []
    failures: Dict[str, str] = {}
    for descriptor in descriptors:
        try:
            fingerprinted.append(fingerprint_image(descriptor, settings.algorithm))
        except FingerprintError as exc:
            if not settings.skip_undecodable:
                raise
            logger.warning(f"Excluding {descriptor.name} from grouping: {exc}")
            failures[descriptor.name] = str(exc)

    comparator = Comparator(sharpen=settings.sharpen)
    logger.info(
        f"Grouping {len(fingerprinted)} images at threshold {settings.similarity_threshold} "
        f"({settings.algorithm.value} fingerprints, {comparator.variant} scores)"
    )
    grouping = group_images(
        fingerprinted,
        settings.similarity_threshold,
        comparator=comparator,
        skip_failed_pairs=settings.skip_failed_pairs,
    )

    quality = _collect_quality(fingerprinted, scorer)
    representatives = {}
    for group in grouping.groups:
        scored = {
            name: quality[name]
            for name in group.member_ids
            if name in quality and not math.isnan(quality[name])
        }
        if scored:
            representatives[group.group_id], _ = find_best_photo(scored)

    return BatchAnalysis(
        grouping=grouping,
        fingerprints={image.name: image.fingerprint for image in fingerprinted},
        failures=failures,
        quality=quality,
        representatives=representatives,
        descriptors={image.name: image.descriptor for image in fingerprinted},
    )


def compare_images(
    image_a: bytes,
    image_b: bytes,
    algorithm: HashAlgorithm = HashAlgorithm.AVERAGE,
    comparator: Optional[ScoreFunction] = None,
) -> float:
    """Fingerprint two images with the same algorithm and score them."""
    compare = comparator or Comparator()
    return compare(fingerprint(image_a, algorithm), fingerprint(image_b, algorithm))


def describe_similarity(score: float) -> str:
    if score >= 0.8:
        return "very similar"
    if score >= 0.6:
        return "somewhat similar"
    return "not very similar"


def _collect_quality(
    images: Sequence[FingerprintedImage],
    scorer: Optional[PhotoScorer],
) -> Dict[str, float]:
    quality = {}
    for image in images:
        descriptor = image.descriptor
        if descriptor is not None and descriptor.quality is not None:
            quality[image.name] = descriptor.quality
        elif scorer is not None and descriptor is not None:
            try:
                quality[image.name] = scorer.score(descriptor.data).final_score
            except FingerprintError as exc:
                logger.warning(f"Failed to score {image.name}: {exc}")
    return quality
