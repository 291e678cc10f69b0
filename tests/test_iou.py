"""Tests for IoU computations."""

from __future__ import annotations

import jax.numpy as jnp
import numpy as np

from decodax.models.utils import box_iou


def test_perfect_overlap_returns_one() -> None:
    boxes = jnp.asarray([[0.0, 0.0, 2.0, 2.0]], dtype=jnp.float32)
    result = box_iou(boxes, boxes)
    np.testing.assert_allclose(result, np.ones((1, 1), dtype=np.float32), rtol=1e-6, atol=1e-6)


def test_non_overlapping_boxes_return_zero() -> None:
    box_a = jnp.asarray([[0.0, 0.0, 1.0, 1.0]], dtype=jnp.float32)
    box_b = jnp.asarray([[2.0, 2.0, 3.0, 3.0]], dtype=jnp.float32)
    result = box_iou(box_a, box_b)
    np.testing.assert_array_equal(result, np.zeros((1, 1), dtype=np.float32))


def test_partial_overlap_matches_expected_value() -> None:
    boxes1 = jnp.asarray([[0.0, 0.0, 2.0, 2.0]], dtype=jnp.float32)
    boxes2 = jnp.asarray([[1.0, 1.0, 3.0, 3.0]], dtype=jnp.float32)
    result = box_iou(boxes1, boxes2)
    expected = 1.0 / 7.0  # intersection=1, union=7
    np.testing.assert_allclose(result, np.full((1, 1), expected, dtype=np.float32), rtol=1e-6, atol=1e-6)


def test_inclusive_boundaries_add_one_pixel() -> None:
    boxes1 = jnp.asarray([[0.0, 0.0, 1.0, 1.0]], dtype=jnp.float32)
    boxes2 = jnp.asarray([[1.0, 1.0, 2.0, 2.0]], dtype=jnp.float32)

    exclusive = box_iou(boxes1, boxes2)
    inclusive = box_iou(boxes1, boxes2, include_boundaries=True)

    np.testing.assert_array_equal(exclusive, np.zeros((1, 1), dtype=np.float32))
    np.testing.assert_allclose(inclusive, np.full((1, 1), 1.0 / 7.0, dtype=np.float32), rtol=1e-6)


def test_degenerate_boxes_have_zero_iou() -> None:
    points = jnp.asarray([[1.0, 1.0, 1.0, 1.0], [5.0, 5.0, 5.0, 9.0]], dtype=jnp.float32)
    result = np.asarray(box_iou(points, points))

    assert np.all(np.isfinite(result))
    np.testing.assert_array_equal(result, np.zeros((2, 2), dtype=np.float32))


def test_pairwise_shape_and_empty_inputs() -> None:
    boxes1 = jnp.asarray([[0.0, 0.0, 2.0, 2.0], [1.0, 1.0, 4.0, 4.0]], dtype=jnp.float32)
    boxes2 = jnp.asarray([[0.5, 0.5, 1.5, 1.5], [2.0, 2.0, 3.0, 3.5], [4.0, 4.0, 5.0, 5.0]], dtype=jnp.float32)

    result = np.asarray(box_iou(boxes1, boxes2))

    assert result.shape == (2, 3)
    np.testing.assert_allclose(result[0, 0], 0.25, rtol=1e-6)
    np.testing.assert_allclose(result[1, 1], 1.5 / 9.0, rtol=1e-6)
    assert box_iou(boxes1, jnp.zeros((0, 4))).shape == (2, 0)
