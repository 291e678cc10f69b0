"""Tests for anchor-relative box and landmark decoding."""

from __future__ import annotations

import math

import numpy as np
import pytest

from decodax.models.utils import (
    centers_to_corners,
    corners_to_centers,
    decode_boxes,
    decode_landmarks,
    decode_selected,
    decode_selected_landmarks,
)

jnp = pytest.importorskip("jax.numpy")


@pytest.mark.parametrize("anchor_format", ["xyxy", "cxcywh"])
def test_zero_deltas_reproduce_anchor(anchor_format: str) -> None:
    corners = jnp.array(
        [
            [-16.0, -16.0, 16.0, 16.0],
            [40.0, 8.0, 104.0, 72.0],
            [100.0, 200.0, 612.0, 712.0],
        ],
        dtype=jnp.float32,
    )
    anchors = corners if anchor_format == "xyxy" else corners_to_centers(corners)

    decoded = decode_boxes(jnp.zeros_like(corners), anchors, (0.1, 0.2), anchor_format=anchor_format)

    np.testing.assert_array_equal(decoded, corners)


def test_decode_applies_variance_to_offsets_and_log_sizes() -> None:
    anchors = jnp.array([[0.0, 0.0, 10.0, 20.0]], dtype=jnp.float32)
    deltas = jnp.array([[1.0, -1.0, math.log(2.0) / 0.2, 0.0]], dtype=jnp.float32)

    decoded = decode_boxes(deltas, anchors, (0.1, 0.2))

    # centre (6, 8), size (20, 20)
    np.testing.assert_allclose(decoded, np.asarray([[-4.0, -2.0, 16.0, 18.0]], dtype=np.float32), rtol=1e-5, atol=1e-5)


def test_centre_form_anchors_decode_like_corner_form() -> None:
    corners = jnp.array([[10.0, 15.0, 30.0, 45.0], [20.0, 25.0, 50.0, 65.0]], dtype=jnp.float32)
    deltas = jnp.array([[0.5, -0.3, 0.2, -0.1], [-1.0, 0.25, -0.5, 0.75]], dtype=jnp.float32)

    from_corners = decode_boxes(deltas, corners)
    from_centers = decode_boxes(deltas, corners_to_centers(corners), anchor_format="cxcywh")

    np.testing.assert_allclose(from_corners, from_centers, rtol=1e-6, atol=1e-5)


def test_centre_corner_conversion_is_invertible() -> None:
    boxes = jnp.array([[1.5, 2.25, 9.0, 30.5], [-4.0, -8.0, 4.0, 8.0]], dtype=jnp.float32)
    np.testing.assert_allclose(centers_to_corners(corners_to_centers(boxes)), boxes, rtol=0, atol=1e-6)


def test_degenerate_values_are_passed_through() -> None:
    anchors = jnp.array([[0.0, 0.0, 10.0, 10.0], [0.0, 0.0, 10.0, 10.0]], dtype=jnp.float32)
    deltas = jnp.array([[0.0, 0.0, 1e4, 0.0], [jnp.nan, 0.0, 0.0, 0.0]], dtype=jnp.float32)

    decoded = np.asarray(decode_boxes(deltas, anchors, (0.1, 0.2)))

    assert np.isinf(decoded[0, 2])
    assert np.isnan(decoded[1, 0])


def test_zero_variance_collapses_to_anchor_without_raising() -> None:
    anchors = jnp.array([[0.0, 0.0, 10.0, 10.0]], dtype=jnp.float32)
    deltas = jnp.array([[3.0, -2.0, 1.0, 5.0]], dtype=jnp.float32)

    decoded = decode_boxes(deltas, anchors, (0.0, 0.0))

    np.testing.assert_array_equal(decoded, anchors)


@pytest.mark.parametrize("variance", [(0.1,), (0.1, 0.2, 0.3)])
def test_variance_must_have_two_values(variance: tuple[float, ...]) -> None:
    anchors = jnp.zeros((1, 4), dtype=jnp.float32)
    with pytest.raises(ValueError):
        decode_boxes(anchors, anchors, variance)


def test_mismatched_shapes_raise() -> None:
    with pytest.raises(ValueError):
        decode_boxes(jnp.zeros((2, 4)), jnp.zeros((3, 4)))


def test_landmarks_use_centre_offsets_only() -> None:
    anchors = jnp.array([[50.0, 50.0, 20.0, 40.0]], dtype=jnp.float32)
    deltas = jnp.array([[1.0, 0.0, 0.0, -1.0, 0.5, 0.5]], dtype=jnp.float32)

    points = decode_landmarks(deltas, anchors, (0.1, 0.2), anchor_format="cxcywh")

    expected = np.asarray([[[52.0, 50.0], [50.0, 46.0], [51.0, 52.0]]], dtype=np.float32)
    np.testing.assert_allclose(points, expected, rtol=1e-6, atol=1e-5)


def test_decode_selected_gathers_filtered_rows() -> None:
    anchors = jnp.array(
        [[0.0, 0.0, 10.0, 10.0], [10.0, 10.0, 20.0, 20.0], [20.0, 20.0, 40.0, 40.0]],
        dtype=jnp.float32,
    )
    box_tensor = jnp.zeros((1, 3, 4), dtype=jnp.float32).at[0, 2, 0].set(1.0)

    decoded = decode_selected(box_tensor, anchors, jnp.array([2, 0], dtype=jnp.int32))

    expected = np.asarray([[22.0, 20.0, 42.0, 40.0], [0.0, 0.0, 10.0, 10.0]], dtype=np.float32)
    np.testing.assert_allclose(decoded, expected, rtol=1e-6, atol=1e-5)


def test_decode_selected_handles_empty_selection() -> None:
    anchors = jnp.zeros((3, 4), dtype=jnp.float32)
    empty = jnp.zeros((0,), dtype=jnp.int32)

    boxes = decode_selected(jnp.zeros((1, 3, 4)), anchors, empty)
    points = decode_selected_landmarks(jnp.zeros((1, 3, 10)), anchors, empty, 5)

    assert boxes.shape == (0, 4)
    assert points.shape == (0, 5, 2)
