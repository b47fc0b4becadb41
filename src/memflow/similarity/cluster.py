"""Grouping logic for clustering similar images."""

import itertools
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from .hash import FingerprintedImage
from .distance import Comparator
from ..logging import get_logger

logger = get_logger(__name__)

ScoreFunction = Callable[[str, str], float]


class BatchAbortError(Exception):
    """Raised when a pairwise comparison fails during grouping."""


@dataclass(frozen=True)
class SimilarityGroup:
    """A group of mutually reachable similar images."""
    group_id: str
    member_ids: Tuple[str, ...]
    average_score: float

    @property
    def count(self) -> int:
        return len(self.member_ids)

    def to_dict(self) -> Dict[str, object]:
        return {
            "groupId": self.group_id,
            "memberIds": list(self.member_ids),
            "averageScore": self.average_score,
            "count": self.count,
        }


@dataclass(frozen=True)
class GroupingResult:
    """Group membership for one batch; ungrouped images map to None."""
    assignments: Mapping[str, Optional[str]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    groups: Tuple[SimilarityGroup, ...] = ()

    def group_of(self, image_id: str) -> Optional[SimilarityGroup]:
        group_id = self.assignments[image_id]
        if group_id is None:
            return None
        return next(group for group in self.groups if group.group_id == group_id)

    def ungrouped(self) -> List[str]:
        return [image_id for image_id, group_id in self.assignments.items() if group_id is None]

    def to_dict(self) -> Dict[str, object]:
        return {
            "images": [
                {"id": image_id, "groupId": group_id}
                for image_id, group_id in self.assignments.items()
            ],
            "groups": [group.to_dict() for group in self.groups],
        }


def group_images(
    images: Sequence[FingerprintedImage],
    threshold: float,
    comparator: Optional[ScoreFunction] = None,
    skip_failed_pairs: bool = False,
) -> GroupingResult:
    """
    Partition images into similarity groups by incremental merging.

    Every pair scoring at or above the threshold ends up in the same group,
    so membership is the transitive closure of the pairwise relation.
    Comparisons are O(n^2), which is fine for tens to low hundreds of
    images per batch.

    Args:
        images: Fingerprinted images in input order
        threshold: Minimum similarity for linking two images, in [0, 1]
        comparator: Score function for two fingerprints (raw Comparator by default)
        skip_failed_pairs: Log and skip pairs that fail to compare instead
            of aborting the batch (degraded mode)

    Returns:
        GroupingResult with multi-member groups only

    Raises:
        ValueError: If the threshold is out of range or image names repeat
        BatchAbortError: If a pairwise comparison fails
    """
    if not 0.0 <= threshold <= 1.0:
        raise ValueError(f"Similarity threshold must be within [0, 1], got {threshold}")

    names = [image.name for image in images]
    if len(set(names)) != len(names):
        raise ValueError("Image names must be unique within a batch")

    if not images:
        return GroupingResult()

    compare = comparator or Comparator()
    group_ids = _group_id_allocator()
    groups: Dict[str, List[str]] = {}
    membership: Dict[str, str] = {}

    for i, first in enumerate(images):
        if first.name not in membership:
            # Tentative; a later merge may move it
            group_id = next(group_ids)
            groups[group_id] = [first.name]
            membership[first.name] = group_id

        for second in images[i + 1:]:
            score = _score_pair(compare, first, second, skip_failed_pairs)
            if score is None or score < threshold:
                continue
            logger.debug(f"Linked {first.name} and {second.name} (similarity: {score:.3f})")
            _link(groups, membership, first.name, second.name, group_ids)

    fingerprints = {image.name: image for image in images}
    surviving = []
    for group_id, members in groups.items():
        if len(members) < 2:
            continue
        average = _average_score(compare, [fingerprints[name] for name in members], skip_failed_pairs)
        surviving.append(SimilarityGroup(group_id=group_id, member_ids=tuple(members), average_score=average))
        logger.info(f"Created similarity group {group_id} with {len(members)} images (average score: {average:.3f})")

    surviving.sort(key=lambda group: (-group.count, -group.average_score))
    reported = {group.group_id for group in surviving}
    assignments = {
        name: membership[name] if membership[name] in reported else None
        for name in names
    }

    logger.info(f"Found {len(surviving)} similarity groups among {len(images)} images")
    return GroupingResult(assignments=MappingProxyType(assignments), groups=tuple(surviving))


def _group_id_allocator() -> Iterator[str]:
    return (f"group-{n}" for n in itertools.count(1))


def _link(
    groups: Dict[str, List[str]],
    membership: Dict[str, str],
    a: str,
    b: str,
    group_ids: Iterator[str],
) -> None:
    group_a = membership.get(a)
    group_b = membership.get(b)

    if group_a is None and group_b is None:
        group_id = next(group_ids)
        groups[group_id] = [a, b]
        membership[a] = membership[b] = group_id
    elif group_b is None:
        groups[group_a].append(b)
        membership[b] = group_a
    elif group_a is None:
        groups[group_b].append(a)
        membership[a] = group_b
    elif group_a != group_b:
        # Move the smaller group into the larger; ties keep the earlier image's group
        if len(groups[group_a]) < len(groups[group_b]):
            smaller, larger = group_a, group_b
        else:
            smaller, larger = group_b, group_a
        for name in groups.pop(smaller):
            groups[larger].append(name)
            membership[name] = larger
        logger.debug(f"Merged {smaller} into {larger}")


def _score_pair(
    compare: ScoreFunction,
    first: FingerprintedImage,
    second: FingerprintedImage,
    skip_failed_pairs: bool,
) -> Optional[float]:
    try:
        return compare(first.fingerprint, second.fingerprint)
    except Exception as exc:
        if not skip_failed_pairs:
            raise BatchAbortError(
                f"Failed to compare {first.name} with {second.name}: {exc}"
            ) from exc
        logger.warning(f"Skipping comparison of {first.name} with {second.name}: {exc}")
        return None


def _average_score(
    compare: ScoreFunction,
    members: List[FingerprintedImage],
    skip_failed_pairs: bool,
) -> float:
    """Mean similarity over every member pair of the final group."""
    scores = []
    for first, second in itertools.combinations(members, 2):
        score = _score_pair(compare, first, second, skip_failed_pairs)
        if score is not None:
            scores.append(score)
    return sum(scores) / len(scores) if scores else 0.0
