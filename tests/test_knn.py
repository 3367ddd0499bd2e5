"""Tests for the kNN classification engine."""

import pytest
import torch

from knn_classify.data.dataset import ImageDataset
from knn_classify.distance import cosine, euclidean
from knn_classify.errors import DimensionMismatchError, InvalidKError
from knn_classify.inference.knn import (
    KNNClassifier,
    check_compatible,
    classify,
    majority_vote,
    select_neighbors,
)

# Labels used by the tiny_training / tiny_testing fixtures.
LABEL_A = 0
LABEL_B = 1


class TestSelectNeighbors:
    def test_returns_k_nearest_in_distance_order(self) -> None:
        d = torch.tensor([5.0, 1.0, 3.0, 0.5, 9.0])
        assert select_neighbors(d, 3).tolist() == [3, 1, 2]

    def test_ties_broken_by_training_order(self) -> None:
        d = torch.tensor([2.0, 1.0, 1.0, 1.0, 0.0])
        assert select_neighbors(d, 2).tolist() == [4, 1]
        assert select_neighbors(d, 3).tolist() == [4, 1, 2]

    def test_all_equal_distances_keep_index_order(self) -> None:
        d = torch.ones(6)
        assert select_neighbors(d, 4).tolist() == [0, 1, 2, 3]

    def test_k_equal_to_size_returns_everything_sorted(self) -> None:
        d = torch.tensor([3.0, 1.0, 2.0])
        assert select_neighbors(d, 3).tolist() == [1, 2, 0]

    def test_k_larger_than_candidates_raises(self) -> None:
        with pytest.raises(InvalidKError):
            select_neighbors(torch.zeros(2), 3)

    def test_k_zero_raises(self) -> None:
        with pytest.raises(InvalidKError):
            select_neighbors(torch.zeros(2), 0)


class TestMajorityVote:
    def test_clear_majority(self) -> None:
        assert majority_vote([1, 2, 2, 3, 2]) == 2

    def test_tie_goes_to_label_of_nearest_member(self) -> None:
        # Labels are ordered nearest first: 7 owns the nearest neighbour.
        assert majority_vote([7, 3, 3, 7]) == 7
        assert majority_vote([3, 7, 7, 3]) == 3

    def test_tie_is_not_resolved_by_label_value(self) -> None:
        assert majority_vote([9, 1]) == 9

    def test_single_label(self) -> None:
        assert majority_vote([4]) == 4

    def test_empty_raises(self) -> None:
        with pytest.raises(ValueError):
            majority_vote([])


class TestClassify:
    def test_end_to_end_example(self, tiny_training: ImageDataset) -> None:
        query = torch.tensor([1.0, 1.0])
        assert classify(query, tiny_training, k=1, metric=euclidean) == LABEL_A

    def test_k3_majority_overrides_nearest(self, tiny_training: ImageDataset) -> None:
        query = torch.tensor([1.0, 1.0])
        assert classify(query, tiny_training, k=3) == LABEL_B

    def test_vote_tie_uses_nearest_tied_member(self) -> None:
        # K=2 selects one A (distance 1) and one B (distance 2): A wins.
        training = ImageDataset.from_items(
            [(LABEL_B, [2.0]), (LABEL_A, [1.0]), (LABEL_B, [9.0])]
        )
        assert classify(torch.tensor([0.0]), training, k=2) == LABEL_A

    def test_equal_distance_tie_prefers_earlier_training_item(self) -> None:
        training = ImageDataset.from_items([(5, [1.0]), (3, [-1.0])])
        assert classify(torch.tensor([0.0]), training, k=1) == 5
        swapped = ImageDataset.from_items([(3, [-1.0]), (5, [1.0])])
        assert classify(torch.tensor([0.0]), swapped, k=1) == 3

    def test_cosine_metric(self) -> None:
        training = ImageDataset.from_items([(0, [1.0, 0.0]), (1, [0.0, 1.0])])
        # Far away in euclidean terms but pointing along the first axis.
        assert classify(torch.tensor([100.0, 1.0]), training, metric=cosine) == 0

    def test_k_larger_than_training_is_rejected(
        self, tiny_training: ImageDataset
    ) -> None:
        with pytest.raises(InvalidKError):
            classify(torch.tensor([1.0, 1.0]), tiny_training, k=4)

    def test_k_below_one_is_rejected(self, tiny_training: ImageDataset) -> None:
        with pytest.raises(InvalidKError):
            KNNClassifier(tiny_training, k=0)

    def test_query_dimension_mismatch(self, tiny_training: ImageDataset) -> None:
        with pytest.raises(DimensionMismatchError):
            classify(torch.tensor([1.0, 1.0, 1.0]), tiny_training)


class TestLeaveOneOut:
    def test_excluded_item_selects_nearest_distinct_neighbour(
        self, tiny_training: ImageDataset
    ) -> None:
        clf = KNNClassifier(tiny_training, k=1)
        label, features = tiny_training[1]
        assert clf.neighbors(features, exclude=1).tolist() == [2]
        assert clf.predict(features, exclude=1) == label

    def test_without_exclusion_item_finds_itself(
        self, tiny_training: ImageDataset
    ) -> None:
        clf = KNNClassifier(tiny_training, k=1)
        assert clf.neighbors(tiny_training[0].features).tolist() == [0]

    def test_exclusion_is_deterministic_with_ties(self) -> None:
        training = ImageDataset.from_items(
            [(0, [0.0]), (1, [1.0]), (2, [-1.0]), (3, [0.0])]
        )
        clf = KNNClassifier(training, k=1)
        # Items 1, 2 and 3 are all at distance 1 or 0 from item 0; 3 is nearest.
        assert clf.predict(training[0].features, exclude=0) == 3
        # Items 0 and 3 are equidistant from item 1; the earlier one wins.
        assert clf.neighbors(training[1].features, exclude=1).tolist() == [0]

    def test_k_must_fit_remaining_items(self, tiny_training: ImageDataset) -> None:
        clf = KNNClassifier(tiny_training, k=3)
        with pytest.raises(InvalidKError):
            clf.predict(tiny_training[0].features, exclude=0)


class TestKNNClassifier:
    def test_predict_many(self, clustered: tuple[ImageDataset, ImageDataset]) -> None:
        training, testing = clustered
        clf = KNNClassifier(training, k=3)
        preds = clf.predict_many(testing.features)
        assert len(preds) == testing.num_items
        correct = sum(int(p == t) for p, t in zip(preds, testing.labels.tolist()))
        assert correct == testing.num_items - 1

    def test_does_not_modify_training(
        self, clustered: tuple[ImageDataset, ImageDataset]
    ) -> None:
        training, testing = clustered
        before = training.features.clone()
        KNNClassifier(training, k=5, metric=cosine).predict_many(testing.features)
        assert torch.equal(training.features, before)

    def test_repeated_predictions_are_identical(
        self, clustered: tuple[ImageDataset, ImageDataset]
    ) -> None:
        training, testing = clustered
        clf = KNNClassifier(training, k=4)
        assert clf.predict_many(testing.features) == clf.predict_many(testing.features)


class TestCheckCompatible:
    def test_matching_datasets_pass(
        self, tiny_training: ImageDataset, tiny_testing: ImageDataset
    ) -> None:
        check_compatible(tiny_training, tiny_testing, k=3)

    def test_dimension_mismatch(self, tiny_training: ImageDataset) -> None:
        testing = ImageDataset.from_items([(0, [1.0, 2.0, 3.0])])
        with pytest.raises(DimensionMismatchError, match="does not match"):
            check_compatible(tiny_training, testing, k=1)

    def test_k_too_large(
        self, tiny_training: ImageDataset, tiny_testing: ImageDataset
    ) -> None:
        with pytest.raises(InvalidKError, match="exceeds"):
            check_compatible(tiny_training, tiny_testing, k=4)
