"""Anchor-relative box and landmark decoding.

This module implements the SSD-style parameterization used by FaceBoxes and
RetinaFace. A regression output ``(dx, dy, dw, dh)`` is applied to an anchor
with centre ``(acx, acy)`` and size ``(aw, ah)`` using a two-element variance
``(v0, v1)``:

``cx = dx * v0 * aw + acx``

``cy = dy * v0 * ah + acy``

``w = exp(dw * v1) * aw``

``h = exp(dh * v1) * ah``

Landmarks reuse the centre-offset term only. Anchors may be given in
``(x1, y1, x2, y2)`` or ``(cx, cy, w, h)`` form; decoded boxes are always
returned as ``(x1, y1, x2, y2)``.

Decoded values are not validated. Pathological regressions or a zero variance
can produce NaN or Inf coordinates, and those are passed through unchanged
for the caller to interpret.
"""

from __future__ import annotations

from collections.abc import Sequence

import jax.numpy as jnp
from jaxtyping import Array, Float, Int

from .anchor_generator import BoxFormat

Boxes = Float[Array, "... 4"]
Deltas = Float[Array, "... 4"]
LandmarkDeltas = Float[Array, "num_boxes num_landmarks_times2"]
Landmarks = Float[Array, "num_boxes num_landmarks 2"]
Indices = Int[Array, "num_selected"]

DEFAULT_VARIANCE: tuple[float, float] = (0.1, 0.2)


def validate_variance(variance: Sequence[float]) -> jnp.ndarray:
    """Convert and validate the ``(center, size)`` variance pair."""
    variance_array = jnp.asarray(variance, dtype=jnp.float32)
    if variance_array.shape != (2,):
        raise ValueError(f"variance must contain two values, received shape {variance_array.shape}.")
    return variance_array


def _split_boxes(boxes: Boxes) -> tuple[jnp.ndarray, jnp.ndarray, jnp.ndarray, jnp.ndarray]:
    """Split boxes into coordinate components."""
    return boxes[..., 0], boxes[..., 1], boxes[..., 2], boxes[..., 3]


def corners_to_centers(boxes: Boxes) -> Boxes:
    """Convert ``(x1, y1, x2, y2)`` boxes to ``(cx, cy, w, h)``."""
    boxes = jnp.asarray(boxes, dtype=jnp.float32)
    x1, y1, x2, y2 = _split_boxes(boxes)
    widths = x2 - x1
    heights = y2 - y1
    return jnp.stack((x1 + 0.5 * widths, y1 + 0.5 * heights, widths, heights), axis=-1)


def centers_to_corners(boxes: Boxes) -> Boxes:
    """Convert ``(cx, cy, w, h)`` boxes to ``(x1, y1, x2, y2)``."""
    boxes = jnp.asarray(boxes, dtype=jnp.float32)
    cx, cy, widths, heights = _split_boxes(boxes)
    half_w = 0.5 * widths
    half_h = 0.5 * heights
    return jnp.stack((cx - half_w, cy - half_h, cx + half_w, cy + half_h), axis=-1)


def _anchor_centers(anchors: Boxes, anchor_format: BoxFormat) -> Boxes:
    if anchor_format == "cxcywh":
        return jnp.asarray(anchors, dtype=jnp.float32)
    if anchor_format == "xyxy":
        return corners_to_centers(anchors)
    raise ValueError(f"anchor_format must be 'xyxy' or 'cxcywh'; received {anchor_format!r}.")


def decode_boxes(
    deltas: Deltas,
    anchors: Boxes,
    variance: Sequence[float] = DEFAULT_VARIANCE,
    *,
    anchor_format: BoxFormat = "xyxy",
) -> Boxes:
    """Decode regression deltas into ``(x1, y1, x2, y2)`` boxes.

    Args:
        deltas: Box regression deltas in ``(dx, dy, dw, dh)`` format.
        anchors: Anchors that correspond row-for-row to ``deltas``.
        variance: Scale factors for the centre offset and log-size terms.
        anchor_format: Representation of ``anchors``.

    Returns:
        Decoded boxes with the same leading dimensions as the inputs, in
        the pixel space of the anchors.
    """
    deltas = jnp.asarray(deltas, dtype=jnp.float32)
    anchors = jnp.asarray(anchors, dtype=jnp.float32)
    if deltas.shape != anchors.shape:
        raise ValueError(f"deltas and anchors must share the same shape; got {deltas.shape} and {anchors.shape}.")
    if deltas.shape[-1] != 4:
        raise ValueError(f"deltas must have a trailing dimension of 4; received {deltas.shape}.")

    center_variance, size_variance = validate_variance(variance)
    acx, acy, aw, ah = _split_boxes(_anchor_centers(anchors, anchor_format))
    dx, dy, dw, dh = _split_boxes(deltas)

    pred_cx = dx * center_variance * aw + acx
    pred_cy = dy * center_variance * ah + acy
    pred_w = jnp.exp(dw * size_variance) * aw
    pred_h = jnp.exp(dh * size_variance) * ah

    return centers_to_corners(jnp.stack((pred_cx, pred_cy, pred_w, pred_h), axis=-1))


def decode_landmarks(
    deltas: LandmarkDeltas,
    anchors: Float[Array, "num_boxes 4"],
    variance: Sequence[float] = DEFAULT_VARIANCE,
    *,
    anchor_format: BoxFormat = "xyxy",
) -> Landmarks:
    """Decode landmark offsets into absolute ``(x, y)`` points.

    Args:
        deltas: Interleaved ``(lx, ly)`` offsets shaped ``[N, 2 * L]``.
        anchors: Anchors that correspond row-for-row to ``deltas``.
        variance: Variance pair; only the centre term is used.
        anchor_format: Representation of ``anchors``.

    Returns:
        Landmark points shaped ``[N, L, 2]``.
    """
    deltas = jnp.asarray(deltas, dtype=jnp.float32)
    anchors = jnp.asarray(anchors, dtype=jnp.float32)
    if deltas.ndim != 2 or deltas.shape[-1] % 2 != 0:
        raise ValueError(f"landmark deltas must have shape (N, 2 * L); received {deltas.shape}.")
    if anchors.ndim != 2 or anchors.shape != (deltas.shape[0], 4):
        raise ValueError(f"anchors must have shape ({deltas.shape[0]}, 4); received {anchors.shape}.")

    center_variance, _ = validate_variance(variance)
    centers = _anchor_centers(anchors, anchor_format)
    offsets = deltas.reshape(deltas.shape[0], deltas.shape[-1] // 2, 2)
    origin = centers[:, None, :2]
    sizes = centers[:, None, 2:]
    return origin + offsets * center_variance * sizes


def _gather_rows(tensor: jnp.ndarray, indices: Indices, row_width: int, name: str) -> jnp.ndarray:
    """Flatten ``tensor`` to ``[N, row_width]`` and take ``indices``."""
    tensor = jnp.asarray(tensor, dtype=jnp.float32)
    if tensor.size % row_width != 0:
        raise ValueError(f"{name} size {tensor.size} is not divisible by row width {row_width}.")
    rows = tensor.reshape(-1, row_width)
    return jnp.take(rows, jnp.asarray(indices, dtype=jnp.int32), axis=0)


def decode_selected(
    box_tensor: jnp.ndarray,
    anchors: Float[Array, "num_anchors 4"],
    indices: Indices,
    variance: Sequence[float] = DEFAULT_VARIANCE,
    *,
    anchor_format: BoxFormat = "xyxy",
) -> Float[Array, "num_selected 4"]:
    """Decode the regression rows of the selected anchors only.

    ``box_tensor`` is the raw network output (``[1, N, 4]`` or ``[N, 4]``);
    ``indices`` are anchor indices from the score filter.
    """
    indices = jnp.asarray(indices, dtype=jnp.int32)
    deltas = _gather_rows(box_tensor, indices, 4, "box tensor")
    selected_anchors = jnp.take(jnp.asarray(anchors, dtype=jnp.float32), indices, axis=0)
    return decode_boxes(deltas, selected_anchors, variance, anchor_format=anchor_format)


def decode_selected_landmarks(
    landmark_tensor: jnp.ndarray,
    anchors: Float[Array, "num_anchors 4"],
    indices: Indices,
    num_landmarks: int,
    variance: Sequence[float] = DEFAULT_VARIANCE,
    *,
    anchor_format: BoxFormat = "xyxy",
) -> Landmarks:
    """Decode the landmark rows of the selected anchors only."""
    if num_landmarks <= 0:
        raise ValueError(f"num_landmarks must be positive; received {num_landmarks}.")
    indices = jnp.asarray(indices, dtype=jnp.int32)
    deltas = _gather_rows(landmark_tensor, indices, 2 * num_landmarks, "landmark tensor")
    selected_anchors = jnp.take(jnp.asarray(anchors, dtype=jnp.float32), indices, axis=0)
    return decode_landmarks(deltas, selected_anchors, variance, anchor_format=anchor_format)


__all__ = [
    "DEFAULT_VARIANCE",
    "centers_to_corners",
    "corners_to_centers",
    "decode_boxes",
    "decode_landmarks",
    "decode_selected",
    "decode_selected_landmarks",
    "validate_variance",
]
