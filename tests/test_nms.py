"""Tests for greedy Non-Maximum Suppression (NMS)."""

from __future__ import annotations

import jax.numpy as jnp
import numpy as np
import pytest

from decodax.models.utils import box_iou, kept_indices, nms


def test_overlapping_boxes_are_suppressed() -> None:
    boxes = jnp.asarray(
        [
            [0.0, 0.0, 2.0, 2.0],
            [0.1, 0.1, 2.0, 2.0],
            [3.0, 3.0, 5.0, 5.0],
        ],
        dtype=jnp.float32,
    )
    scores = jnp.asarray([0.95, 0.9, 0.4], dtype=jnp.float32)

    kept = kept_indices(nms(boxes, scores, iou_threshold=0.5))

    np.testing.assert_array_equal(kept, np.array([0, 2], dtype=np.int32))


def test_higher_score_wins_regardless_of_position() -> None:
    boxes = jnp.asarray([[0.0, 0.0, 10.0, 10.0], [1.0, 1.0, 10.0, 10.0]], dtype=jnp.float32)
    scores = jnp.asarray([0.8, 0.9], dtype=jnp.float32)
    assert float(box_iou(boxes[:1], boxes[1:])[0, 0]) > 0.5

    kept = kept_indices(nms(boxes, scores, iou_threshold=0.5))

    np.testing.assert_array_equal(kept, np.array([1], dtype=np.int32))


def test_overlap_below_threshold_keeps_both() -> None:
    boxes = jnp.asarray([[0.0, 0.0, 2.0, 2.0], [1.0, 1.0, 3.0, 3.0]], dtype=jnp.float32)
    scores = jnp.asarray([0.9, 0.8], dtype=jnp.float32)

    kept = kept_indices(nms(boxes, scores, iou_threshold=0.3))

    np.testing.assert_array_equal(kept, np.array([0, 1], dtype=np.int32))


def test_non_overlapping_boxes_all_kept_in_score_order() -> None:
    boxes = jnp.asarray(
        [
            [0.0, 0.0, 1.0, 1.0],
            [2.0, 2.0, 3.0, 3.0],
            [4.0, 4.0, 5.0, 5.0],
        ],
        dtype=jnp.float32,
    )
    scores = jnp.asarray([0.3, 0.6, 0.8], dtype=jnp.float32)

    kept = kept_indices(nms(boxes, scores, iou_threshold=0.5))

    np.testing.assert_array_equal(kept, np.array([2, 1, 0], dtype=np.int32))


def test_equal_scores_prefer_lower_index() -> None:
    boxes = jnp.asarray(
        [
            [0.0, 0.0, 4.0, 4.0],
            [0.0, 0.0, 4.0, 4.0],
            [10.0, 10.0, 12.0, 12.0],
            [20.0, 20.0, 22.0, 22.0],
        ],
        dtype=jnp.float32,
    )
    scores = jnp.asarray([0.5, 0.5, 0.5, 0.7], dtype=jnp.float32)

    kept = kept_indices(nms(boxes, scores, iou_threshold=0.5))

    np.testing.assert_array_equal(kept, np.array([3, 0, 2], dtype=np.int32))


def test_running_twice_is_idempotent() -> None:
    rng = np.random.default_rng(7)
    corners = rng.uniform(0.0, 80.0, size=(40, 2))
    sizes = rng.uniform(5.0, 30.0, size=(40, 2))
    boxes = jnp.asarray(np.concatenate((corners, corners + sizes), axis=1), dtype=jnp.float32)
    scores = jnp.asarray(rng.uniform(size=40), dtype=jnp.float32)

    first = kept_indices(nms(boxes, scores, iou_threshold=0.3))
    second = kept_indices(nms(boxes[first], scores[first], iou_threshold=0.3))

    np.testing.assert_array_equal(first[second], first)


def test_degenerate_boxes_never_suppress_each_other() -> None:
    boxes = jnp.asarray([[1.0, 1.0, 1.0, 1.0], [1.0, 1.0, 1.0, 1.0]], dtype=jnp.float32)
    scores = jnp.asarray([0.6, 0.9], dtype=jnp.float32)

    kept = kept_indices(nms(boxes, scores, iou_threshold=0.0))

    np.testing.assert_array_equal(kept, np.array([1, 0], dtype=np.int32))


def test_empty_input_returns_no_indices() -> None:
    result = nms(jnp.zeros((0, 4), dtype=jnp.float32), jnp.zeros((0,), dtype=jnp.float32))

    assert kept_indices(result).size == 0
    assert int(result.valid_counts) == 0


def test_single_box_always_kept() -> None:
    boxes = jnp.asarray([[0.0, 0.0, 1.0, 1.0]], dtype=jnp.float32)
    scores = jnp.asarray([0.4], dtype=jnp.float32)

    kept = kept_indices(nms(boxes, scores))

    np.testing.assert_array_equal(kept, np.array([0], dtype=np.int32))


def test_max_output_size_limits_results() -> None:
    boxes = jnp.asarray(
        [
            [0.0, 0.0, 1.0, 1.0],
            [2.0, 2.0, 3.0, 3.0],
            [4.0, 4.0, 5.0, 5.0],
        ],
        dtype=jnp.float32,
    )
    scores = jnp.asarray([0.9, 0.8, 0.7], dtype=jnp.float32)

    result = nms(boxes, scores, max_output_size=2)

    assert result.indices.shape == (2,)
    np.testing.assert_array_equal(kept_indices(result), np.array([0, 1], dtype=np.int32))


def test_padding_uses_negative_one() -> None:
    boxes = jnp.asarray([[0.0, 0.0, 2.0, 2.0], [0.0, 0.0, 2.0, 2.0]], dtype=jnp.float32)
    scores = jnp.asarray([0.9, 0.8], dtype=jnp.float32)

    result = nms(boxes, scores, iou_threshold=0.5)

    np.testing.assert_array_equal(np.asarray(result.indices), np.array([0, -1], dtype=np.int32))


def test_invalid_shapes_raise() -> None:
    with pytest.raises(ValueError):
        nms(jnp.zeros((3, 5)), jnp.zeros((3,)))
    with pytest.raises(ValueError):
        nms(jnp.zeros((3, 4)), jnp.zeros((2,)))
