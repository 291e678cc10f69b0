"""Intersection-over-Union utilities for bounding boxes.

This module provides vectorized IoU computations that are compatible with JAX
transformations. :func:`box_iou` operates on sets of bounding boxes in
``(x1, y1, x2, y2)`` format and returns pairwise overlaps. Pairs whose union
is empty (both boxes degenerate) have an IoU of zero.
"""

from __future__ import annotations

from typing import Any

import jax
import jax.numpy as jnp
from jaxtyping import Array, Float

Boxes = Float[Array, "num_boxes 4"]
IoUMatrix = Float[Array, "num_boxes1 num_boxes2"]


def _box_area(box: Float[Array, 4], border: float) -> Float[Array, ""]:
    """Compute the non-negative area of a single box."""
    width = jnp.maximum(0.0, box[2] - box[0] + border)
    height = jnp.maximum(0.0, box[3] - box[1] + border)
    return width * height


def _intersection(box1: Float[Array, 4], box2: Float[Array, 4], border: float) -> Float[Array, ""]:
    """Return the overlap area of a box pair."""
    x1 = jnp.maximum(box1[0], box2[0])
    y1 = jnp.maximum(box1[1], box2[1])
    x2 = jnp.minimum(box1[2], box2[2])
    y2 = jnp.minimum(box1[3], box2[3])

    intersection_w = jnp.maximum(0.0, x2 - x1 + border)
    intersection_h = jnp.maximum(0.0, y2 - y1 + border)
    return intersection_w * intersection_h


def _validate_boxes(name: str, boxes: jnp.ndarray) -> Boxes:
    """Validate box tensor shape."""
    if boxes.ndim != 2 or boxes.shape[-1] != 4:
        raise ValueError(f"{name} must have shape (N, 4); received {boxes.shape}.")
    return boxes


def box_iou(boxes1: Boxes, boxes2: Boxes, *, include_boundaries: bool = False) -> IoUMatrix:
    """Compute the pairwise Intersection-over-Union between two box sets.

    Args:
        boxes1: First box set shaped ``(N, 4)``.
        boxes2: Second box set shaped ``(M, 4)``.
        include_boundaries: Treat coordinates as inclusive pixel indices, so a
            box spanning ``x1..x2`` is ``x2 - x1 + 1`` pixels wide.

    Returns:
        IoU matrix shaped ``(N, M)``.
    """
    boxes1 = _validate_boxes("boxes1", jnp.asarray(boxes1, dtype=jnp.float32))
    boxes2 = _validate_boxes("boxes2", jnp.asarray(boxes2, dtype=jnp.float32))

    if boxes1.shape[0] == 0 or boxes2.shape[0] == 0:
        return jnp.zeros((boxes1.shape[0], boxes2.shape[0]), dtype=jnp.float32)

    border = 1.0 if include_boundaries else 0.0
    areas1 = jax.vmap(_box_area, in_axes=(0, None))(boxes1, border)
    areas2 = jax.vmap(_box_area, in_axes=(0, None))(boxes2, border)

    def pairwise(box1: Float[Array, 4], area1: Float[Array, ""]) -> Any:
        def iou_with(box2: Float[Array, 4], area2: Float[Array, ""]) -> Float[Array, ""]:
            intersection = _intersection(box1, box2, border)
            union = area1 + area2 - intersection
            union_safe = jnp.where(union > 0.0, union, 1.0)
            return jnp.where(union > 0.0, intersection / union_safe, 0.0)

        return jax.vmap(iou_with, in_axes=(0, 0))(boxes2, areas2)

    return jax.vmap(pairwise, in_axes=(0, 0))(boxes1, areas1)


__all__ = ["box_iou"]
