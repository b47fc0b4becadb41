"""Tests for similarity grouping logic."""

import logging
from itertools import combinations

import pytest
from hypothesis import given, settings, strategies as st

from memflow.similarity.cluster import (
    BatchAbortError,
    GroupingResult,
    SimilarityGroup,
    group_images,
)
from memflow.similarity.distance import Comparator, LengthMismatchError, similarity
from memflow.similarity.hash import FingerprintedImage, fingerprint
from tests.helpers.images import encode, noise_image


def flip(bits: str, positions) -> str:
    chars = list(bits)
    for position in positions:
        chars[position] = "1" if chars[position] == "0" else "0"
    return "".join(chars)


def images_from(fingerprints) -> list:
    return [FingerprintedImage(name=name, fingerprint=bits) for name, bits in fingerprints]


def linked_pairs(*pairs):
    """Stub comparator scoring 1.0 for the listed name pairs and 0.0 otherwise.

    Fingerprints in these tests are set to the image names.
    """
    linked = {frozenset(pair) for pair in pairs}

    def compare(a: str, b: str) -> float:
        return 1.0 if frozenset((a, b)) in linked else 0.0

    return compare


def named(*names) -> list:
    return images_from((name, name) for name in names)


ZEROS = "0" * 64


class TestSimilarityGroup:
    def test_group_immutable(self):
        group = SimilarityGroup(group_id="group-1", member_ids=("a", "b"), average_score=0.9)
        with pytest.raises(AttributeError):
            group.group_id = "group-2"  # type: ignore

    def test_count_and_dict(self):
        group = SimilarityGroup(group_id="group-1", member_ids=("a", "b", "c"), average_score=0.9)
        assert group.count == 3
        assert group.to_dict() == {
            "groupId": "group-1",
            "memberIds": ["a", "b", "c"],
            "averageScore": 0.9,
            "count": 3,
        }


class TestGroupImages:
    def test_empty_batch(self):
        """An empty batch yields no groups and no memberships."""
        result = group_images([], threshold=0.85)
        assert dict(result.assignments) == {}
        assert result.groups == ()

    def test_single_image(self):
        result = group_images(images_from([("a", ZEROS)]), threshold=0.85)
        assert dict(result.assignments) == {"a": None}
        assert result.groups == ()

    def test_identical_bytes_grouped(self):
        """The same bytes twice fingerprint identically and always group."""
        data = encode(noise_image(seed=11))
        bits = fingerprint(data)
        images = images_from([("first", bits), ("second", fingerprint(data))])

        result = group_images(images, threshold=0.99)

        assert len(result.groups) == 1
        assert result.groups[0].member_ids == ("first", "second")
        assert result.groups[0].average_score == 1.0

    def test_transitive_merge_through_middle_image(self):
        """A-B and B-C above threshold merge all three even though A-C is below."""
        scores = {
            frozenset(("A", "B")): 0.97,
            frozenset(("B", "C")): 0.96,
            frozenset(("A", "C")): 0.80,
        }
        result = group_images(
            named("A", "B", "C"),
            threshold=0.95,
            comparator=lambda a, b: scores[frozenset((a, b))],
        )

        assert len(result.groups) == 1
        group = result.groups[0]
        assert set(group.member_ids) == {"A", "B", "C"}
        assert group.average_score == pytest.approx((0.97 + 0.96 + 0.80) / 3)
        assert result.assignments["A"] == result.assignments["C"] == group.group_id

    def test_transitive_merge_with_hamming_scores(self):
        a = ZEROS
        b = flip(a, range(4))
        c = flip(a, range(8))
        assert similarity(a, c) < 0.9 <= similarity(a, b)

        result = group_images(images_from([("a", a), ("b", b), ("c", c)]), threshold=0.9)

        assert len(result.groups) == 1
        assert result.groups[0].member_ids == ("a", "b", "c")
        assert result.groups[0].average_score == pytest.approx((0.9375 + 0.875 + 0.9375) / 3)

    def test_dissimilar_images_stay_ungrouped(self):
        """Five mutually distant fingerprints produce no groups."""
        fingerprints = ["0" * 64, "1" * 64, "01" * 32, "10" * 32, "0011" * 16]
        images = images_from((f"img{i}", bits) for i, bits in enumerate(fingerprints))

        result = group_images(images, threshold=0.85)

        assert result.groups == ()
        assert result.ungrouped() == [f"img{i}" for i in range(5)]
        assert all(group_id is None for group_id in result.assignments.values())

    def test_singleton_excluded_from_groups(self):
        images = images_from([
            ("a", ZEROS),
            ("b", flip(ZEROS, [0])),
            ("c", "1" * 64),
        ])

        result = group_images(images, threshold=0.85)

        assert result.assignments == {"a": "group-1", "b": "group-1", "c": None}
        assert result.group_of("c") is None
        assert result.group_of("a").member_ids == ("a", "b")
        assert all(group.count >= 2 for group in result.groups)

    def test_threshold_is_inclusive(self):
        images = images_from([("a", ZEROS), ("b", flip(ZEROS, range(8)))])
        assert len(group_images(images, threshold=0.875).groups) == 1
        assert group_images(images, threshold=0.876).groups == ()

    def test_zero_threshold_groups_everything(self):
        images = images_from([("a", ZEROS), ("b", "1" * 64), ("c", "01" * 32)])
        result = group_images(images, threshold=0.0)
        assert len(result.groups) == 1
        assert result.groups[0].count == 3


class TestMergeBookkeeping:
    def test_smaller_group_moves_into_larger(self):
        """b/c/e form a group of three that absorbs the a/d pair."""
        compare = linked_pairs(("a", "d"), ("b", "c"), ("b", "e"), ("c", "d"))
        result = group_images(named("a", "b", "c", "d", "e"), threshold=0.5, comparator=compare)

        assert len(result.groups) == 1
        group = result.groups[0]
        assert group.group_id == "group-2"
        assert group.member_ids == ("b", "c", "e", "a", "d")
        assert set(result.assignments.values()) == {"group-2"}

    def test_tentative_singleton_joins_existing_group(self):
        compare = linked_pairs(("p0", "p2"), ("p1", "p2"), ("p1", "p3"))
        result = group_images(named("p0", "p1", "p2", "p3"), threshold=0.5, comparator=compare)

        assert len(result.groups) == 1
        assert result.groups[0].group_id == "group-1"
        assert result.groups[0].member_ids == ("p0", "p2", "p1", "p3")

    def test_equal_sizes_keep_earlier_image_group(self):
        compare = linked_pairs(("a", "c"), ("b", "d"), ("c", "d"))
        result = group_images(named("a", "b", "c", "d"), threshold=0.5, comparator=compare)

        assert len(result.groups) == 1
        assert result.groups[0].group_id == "group-1"
        assert result.groups[0].member_ids == ("a", "c", "b", "d")

    def test_groups_sorted_by_size_then_score(self):
        scores = {
            frozenset(("a", "b")): 0.9,
            frozenset(("c", "d")): 0.95,
            frozenset(("e", "f")): 0.9, frozenset(("f", "g")): 0.9, frozenset(("e", "g")): 0.9,
        }
        result = group_images(
            named("a", "b", "c", "d", "e", "f", "g"),
            threshold=0.85,
            comparator=lambda a, b: scores.get(frozenset((a, b)), 0.0),
        )

        assert [group.member_ids for group in result.groups] == [
            ("e", "f", "g"),
            ("c", "d"),
            ("a", "b"),
        ]

    def test_group_ids_are_local_to_each_call(self):
        images = images_from([("a", ZEROS), ("b", ZEROS)])
        first = group_images(images, threshold=0.9)
        second = group_images(images, threshold=0.9)

        assert first == second
        assert first.groups[0].group_id == "group-1"


class TestGroupingValidation:
    @pytest.mark.parametrize("threshold", [-0.1, 1.5])
    def test_threshold_out_of_range(self, threshold):
        with pytest.raises(ValueError):
            group_images(images_from([("a", ZEROS)]), threshold=threshold)

    def test_duplicate_names_rejected(self):
        with pytest.raises(ValueError):
            group_images(images_from([("a", ZEROS), ("a", ZEROS)]), threshold=0.9)

    def test_mixed_lengths_abort_batch(self):
        images = images_from([("gray", ZEROS), ("copy", ZEROS), ("color", "0" * 192)])

        with pytest.raises(BatchAbortError, match="gray") as excinfo:
            group_images(images, threshold=0.9)

        assert "color" in str(excinfo.value)
        assert isinstance(excinfo.value.__cause__, LengthMismatchError)

    def test_skip_failed_pairs_degraded_mode(self, caplog):
        images = images_from([("gray", ZEROS), ("copy", ZEROS), ("color", "0" * 192)])

        with caplog.at_level(logging.WARNING, logger="memflow.similarity.cluster"):
            result = group_images(images, threshold=0.9, skip_failed_pairs=True)

        assert result.assignments == {"gray": "group-1", "copy": "group-1", "color": None}
        assert "Skipping comparison" in caplog.text


class TestGroupingResult:
    def test_assignments_are_read_only(self):
        result = group_images(images_from([("a", ZEROS), ("b", ZEROS)]), threshold=0.9)
        with pytest.raises(TypeError):
            result.assignments["a"] = None  # type: ignore

    def test_to_dict(self):
        result = group_images(
            images_from([("a", ZEROS), ("b", ZEROS), ("c", "1" * 64)]), threshold=0.9
        )
        assert result.to_dict() == {
            "images": [
                {"id": "a", "groupId": "group-1"},
                {"id": "b", "groupId": "group-1"},
                {"id": "c", "groupId": None},
            ],
            "groups": [
                {"groupId": "group-1", "memberIds": ["a", "b"], "averageScore": 1.0, "count": 2},
            ],
        }

    def test_default_result_is_empty(self):
        assert GroupingResult().ungrouped() == []

    def test_sharpened_comparator_used_for_links_and_scores(self):
        a, b = ZEROS, flip(ZEROS, range(8))
        comparator = Comparator(sharpen=True)

        result = group_images(images_from([("a", a), ("b", b)]), threshold=0.5, comparator=comparator)

        assert result.groups[0].average_score == comparator(a, b)


class TestGroupingProperties:
    """
    Membership is the transitive closure of the above-threshold relation.
    """

    @settings(max_examples=60, deadline=None)
    @given(
        fingerprints=st.lists(st.text(alphabet="01", min_size=16, max_size=16), min_size=0, max_size=8),
        threshold=st.floats(min_value=0.5, max_value=1.0),
    )
    def test_closure_and_singleton_exclusion(self, fingerprints, threshold):
        images = images_from((f"img{i}", bits) for i, bits in enumerate(fingerprints))
        result = group_images(images, threshold=threshold)

        linked = {
            (first.name, second.name)
            for first, second in combinations(images, 2)
            if similarity(first.fingerprint, second.fingerprint) >= threshold
        }

        # Every above-threshold pair shares a reported group
        for a, b in linked:
            assert result.assignments[a] is not None
            assert result.assignments[a] == result.assignments[b]

        # Every grouped image has at least one above-threshold partner
        partnered = {name for pair in linked for name in pair}
        for name, group_id in result.assignments.items():
            assert (group_id is not None) == (name in partnered)

        # Reported groups partition the grouped images
        members = [name for group in result.groups for name in group.member_ids]
        assert len(members) == len(set(members)) == len(partnered)
        assert all(group.count >= 2 for group in result.groups)
        assert all(0.0 <= group.average_score <= 1.0 for group in result.groups)

    @settings(max_examples=30, deadline=None)
    @given(
        fingerprints=st.lists(st.text(alphabet="01", min_size=16, max_size=16), min_size=0, max_size=8),
        threshold=st.floats(min_value=0.5, max_value=1.0),
    )
    def test_deterministic(self, fingerprints, threshold):
        images = images_from((f"img{i}", bits) for i, bits in enumerate(fingerprints))
        assert group_images(images, threshold) == group_images(images, threshold)
